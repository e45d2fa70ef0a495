from datetime import date, datetime, timezone

from app.services.dates import as_utc, format_week_label, subtract_months, week_bounds


def test_week_bounds_is_monday_to_sunday():
    assert week_bounds(date(2025, 3, 6)) == (date(2025, 3, 3), date(2025, 3, 9))
    assert week_bounds(date(2025, 3, 3)) == (date(2025, 3, 3), date(2025, 3, 9))
    assert week_bounds(date(2025, 3, 9)) == (date(2025, 3, 3), date(2025, 3, 9))


def test_subtract_months_clamps_day():
    assert subtract_months(date(2025, 4, 30), 2) == date(2025, 2, 28)
    assert subtract_months(date(2025, 1, 15), 2) == date(2024, 11, 15)


def test_week_label_across_months():
    assert format_week_label(date(2025, 3, 3), date(2025, 3, 9)) == "Mar 3-9, 2025"
    assert format_week_label(date(2025, 3, 31), date(2025, 4, 6)) == "Mar 31 - Apr 6, 2025"


def test_naive_datetimes_are_treated_as_utc():
    naive = datetime(2025, 3, 3, 12, 0)
    assert as_utc(naive) == datetime(2025, 3, 3, 12, 0, tzinfo=timezone.utc)
    assert as_utc(None) is None
