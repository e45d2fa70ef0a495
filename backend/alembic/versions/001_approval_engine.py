"""Timesheet approval engine tables

Revision ID: 001
Revises:
Create Date: 2026-10-19

Directory tables (users, projects, project_members) plus timesheets,
time_entries, per-project approval records and the approval history ledger.
Status columns are VARCHAR; the application owns the allowed values.
"""

from alembic import op

revision = "001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    # ── Directory ──
    op.execute("""
        CREATE TABLE IF NOT EXISTS users (
          user_id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
          email VARCHAR(255),
          full_name VARCHAR(200),
          role VARCHAR(50) NOT NULL DEFAULT 'employee',
          is_active BOOLEAN NOT NULL DEFAULT TRUE,
          created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
          updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
        );
    """)
    op.execute("CREATE INDEX IF NOT EXISTS ix_users_email ON users(email);")

    op.execute("""
        CREATE TABLE IF NOT EXISTS projects (
          id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
          name VARCHAR(200) NOT NULL,
          description TEXT,
          status VARCHAR(20) NOT NULL DEFAULT 'active',
          project_type VARCHAR(30) NOT NULL DEFAULT 'regular',
          primary_manager_id UUID REFERENCES users(user_id) ON DELETE SET NULL,
          is_billable BOOLEAN NOT NULL DEFAULT TRUE,
          lead_approval_auto_escalates BOOLEAN NOT NULL DEFAULT FALSE,
          deleted_at TIMESTAMPTZ,
          created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
          updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
        );
    """)
    op.execute("CREATE INDEX IF NOT EXISTS ix_projects_primary_manager_id ON projects(primary_manager_id);")

    op.execute("""
        CREATE TABLE IF NOT EXISTS project_members (
          id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
          project_id UUID NOT NULL REFERENCES projects(id) ON DELETE CASCADE,
          user_id UUID NOT NULL REFERENCES users(user_id) ON DELETE CASCADE,
          project_role VARCHAR(30) NOT NULL DEFAULT 'employee',
          assigned_at TIMESTAMPTZ NOT NULL DEFAULT now(),
          removed_at TIMESTAMPTZ,
          deleted_at TIMESTAMPTZ,
          CONSTRAINT uq_project_member UNIQUE (project_id, user_id)
        );
    """)
    op.execute("CREATE INDEX IF NOT EXISTS ix_project_members_project_id ON project_members(project_id);")
    op.execute("CREATE INDEX IF NOT EXISTS ix_project_members_user_id ON project_members(user_id);")

    # ── Timesheets ──
    op.execute("""
        CREATE TABLE IF NOT EXISTS timesheets (
          id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
          user_id UUID NOT NULL REFERENCES users(user_id),
          week_start_date DATE NOT NULL,
          week_end_date DATE NOT NULL,
          total_hours NUMERIC(6,2) NOT NULL DEFAULT 0,
          status VARCHAR(30) NOT NULL DEFAULT 'draft',
          approved_by_lead_id UUID,
          approved_by_lead_at TIMESTAMPTZ,
          lead_rejection_reason TEXT,
          lead_rejected_at TIMESTAMPTZ,
          approved_by_manager_id UUID,
          approved_by_manager_at TIMESTAMPTZ,
          manager_rejection_reason TEXT,
          manager_rejected_at TIMESTAMPTZ,
          approved_by_management_id UUID,
          approved_by_management_at TIMESTAMPTZ,
          management_rejection_reason TEXT,
          management_rejected_at TIMESTAMPTZ,
          verified_by_id UUID,
          verified_at TIMESTAMPTZ,
          is_verified BOOLEAN NOT NULL DEFAULT FALSE,
          is_frozen BOOLEAN NOT NULL DEFAULT FALSE,
          billed_at TIMESTAMPTZ,
          submitted_at TIMESTAMPTZ,
          deleted_at TIMESTAMPTZ,
          deleted_by UUID,
          deleted_reason TEXT,
          version INTEGER NOT NULL DEFAULT 1,
          created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
          updated_at TIMESTAMPTZ NOT NULL DEFAULT now(),
          CONSTRAINT uq_timesheet_user_week UNIQUE (user_id, week_start_date)
        );
    """)
    op.execute("CREATE INDEX IF NOT EXISTS ix_timesheets_user_id ON timesheets(user_id);")
    op.execute("CREATE INDEX IF NOT EXISTS ix_timesheets_status_week ON timesheets(status, week_start_date);")

    op.execute("""
        CREATE TABLE IF NOT EXISTS time_entries (
          id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
          timesheet_id UUID NOT NULL REFERENCES timesheets(id) ON DELETE CASCADE,
          project_id UUID NOT NULL REFERENCES projects(id),
          task_name VARCHAR(200) NOT NULL DEFAULT 'General',
          date DATE NOT NULL,
          hours NUMERIC(4,2) NOT NULL CHECK (hours > 0 AND hours <= 24),
          description TEXT DEFAULT '',
          is_billable BOOLEAN NOT NULL DEFAULT TRUE,
          is_rejected BOOLEAN NOT NULL DEFAULT FALSE,
          rejection_reason TEXT,
          deleted_at TIMESTAMPTZ,
          created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
          updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
        );
    """)
    op.execute("CREATE INDEX IF NOT EXISTS ix_time_entries_timesheet_project ON time_entries(timesheet_id, project_id);")
    op.execute("CREATE INDEX IF NOT EXISTS ix_time_entries_project_id ON time_entries(project_id);")

    # ── Approval records ──
    op.execute("""
        CREATE TABLE IF NOT EXISTS timesheet_project_approvals (
          id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
          timesheet_id UUID NOT NULL REFERENCES timesheets(id) ON DELETE CASCADE,
          project_id UUID NOT NULL REFERENCES projects(id),
          lead_id UUID,
          manager_id UUID,
          lead_status VARCHAR(30) NOT NULL DEFAULT 'not_required',
          lead_approved_at TIMESTAMPTZ,
          lead_rejection_reason TEXT,
          manager_status VARCHAR(30) NOT NULL DEFAULT 'pending',
          manager_approved_at TIMESTAMPTZ,
          manager_rejection_reason TEXT,
          management_status VARCHAR(30) NOT NULL DEFAULT 'pending',
          management_approved_at TIMESTAMPTZ,
          management_rejection_reason TEXT,
          worked_hours NUMERIC(6,2) NOT NULL DEFAULT 0,
          billable_adjustment NUMERIC(6,2) NOT NULL DEFAULT 0,
          billable_hours NUMERIC(6,2) NOT NULL DEFAULT 0,
          created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
          updated_at TIMESTAMPTZ NOT NULL DEFAULT now(),
          CONSTRAINT uq_approval_timesheet_project UNIQUE (timesheet_id, project_id)
        );
    """)
    op.execute("CREATE INDEX IF NOT EXISTS ix_timesheet_project_approvals_timesheet_id ON timesheet_project_approvals(timesheet_id);")
    op.execute("CREATE INDEX IF NOT EXISTS ix_approvals_project_created ON timesheet_project_approvals(project_id, created_at);")

    op.execute("""
        CREATE TABLE IF NOT EXISTS approval_history (
          id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
          timesheet_id UUID NOT NULL REFERENCES timesheets(id),
          project_id UUID REFERENCES projects(id),
          user_id UUID NOT NULL,
          actor_id UUID NOT NULL,
          actor_role VARCHAR(30) NOT NULL,
          action VARCHAR(30) NOT NULL,
          status_before VARCHAR(30) NOT NULL,
          status_after VARCHAR(30) NOT NULL,
          reason TEXT,
          notes TEXT,
          created_at TIMESTAMPTZ NOT NULL DEFAULT now()
        );
    """)
    op.execute("CREATE INDEX IF NOT EXISTS ix_approval_history_timesheet_id ON approval_history(timesheet_id);")
    op.execute("CREATE INDEX IF NOT EXISTS ix_approval_history_project_id ON approval_history(project_id);")


def downgrade():
    op.execute("DROP TABLE IF EXISTS approval_history;")
    op.execute("DROP TABLE IF EXISTS timesheet_project_approvals;")
    op.execute("DROP TABLE IF EXISTS time_entries;")
    op.execute("DROP TABLE IF EXISTS timesheets;")
    op.execute("DROP TABLE IF EXISTS project_members;")
    op.execute("DROP TABLE IF EXISTS projects;")
    op.execute("DROP TABLE IF EXISTS users;")
