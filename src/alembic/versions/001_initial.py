"""Initial migration

Revision ID: 001
Revises:
Create Date: 2025-01-01 00:00:00.000000

"""

from collections.abc import Sequence

import sqlalchemy as sa
import sqlmodel
from sqlalchemy.dialects import postgresql

from alembic import op

revision: str = "001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

JSONType = sa.JSON().with_variant(postgresql.JSONB(), "postgresql")
RUNNING_ONLY = sa.text("status = 'running'")


def _string(length: int) -> sqlmodel.sql.sqltypes.AutoString:
    return sqlmodel.sql.sqltypes.AutoString(length=length)


def upgrade() -> None:
    # 1. Automations (the fenced document)
    op.create_table(
        "automations",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("title", _string(200), nullable=False),
        sa.Column("description", _string(2000), nullable=True),
        sa.Column("status", _string(20), nullable=False),
        sa.Column("trigger_mode", _string(20), nullable=False),
        sa.Column("trigger_enabled", sa.Boolean(), nullable=False),
        sa.Column("code", sqlmodel.sql.sqltypes.AutoString(), nullable=True),
        sa.Column("files", JSONType, nullable=True),
        sa.Column("dependencies", JSONType, nullable=False),
        sa.Column("env_var_names", JSONType, nullable=False),
        sa.Column("runtime_environment", _string(50), nullable=True),
        sa.Column("cost", sa.Float(), nullable=True),
        sa.Column("api_key_hash", _string(64), nullable=True),
        sa.Column("owner_user_id", _string(100), nullable=False),
        sa.Column("admin_user_ids", JSONType, nullable=False),
        sa.Column("doc_version", sa.Integer(), nullable=False),
        sa.Column("run_state", _string(20), nullable=False),
        sa.Column("current_execution_id", sa.Uuid(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.Column("deleted_at", sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_automations_title", "automations", ["title"])
    op.create_index("ix_automations_api_key_hash", "automations", ["api_key_hash"])
    op.create_index("ix_automations_owner_user_id", "automations", ["owner_user_id"])
    op.create_index(
        "ix_automations_owner_created", "automations", ["owner_user_id", "created_at"]
    )

    # 2. Immutable code versions
    op.create_table(
        "code_versions",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("automation_id", sa.Uuid(), nullable=False),
        sa.Column("sequence", sa.Integer(), nullable=False),
        sa.Column("major", sa.Integer(), nullable=False),
        sa.Column("minor", sa.Integer(), nullable=False),
        sa.Column("patch", sa.Integer(), nullable=False),
        sa.Column("version", _string(50), nullable=False),
        sa.Column("code", sqlmodel.sql.sqltypes.AutoString(), nullable=True),
        sa.Column("files", JSONType, nullable=True),
        sa.Column("dependencies", JSONType, nullable=False),
        sa.Column("env_var_names", JSONType, nullable=False),
        sa.Column("message", _string(1000), nullable=False),
        sa.Column("code_hash", _string(64), nullable=False),
        sa.Column("total_files", sa.Integer(), nullable=False),
        sa.Column("changed_files", sa.Integer(), nullable=False),
        sa.Column("created_by", _string(100), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("sync_status", _string(20), nullable=False),
        sa.Column("sync_error", _string(1000), nullable=True),
        sa.Column("synced_at", sa.DateTime(), nullable=True),
        sa.Column("remote_sha", _string(64), nullable=True),
        sa.ForeignKeyConstraint(["automation_id"], ["automations.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "automation_id", "sequence", name="uq_code_versions_automation_sequence"
        ),
    )
    op.create_index("ix_code_versions_automation_id", "code_versions", ["automation_id"])
    op.create_index(
        "ix_code_versions_automation_created", "code_versions", ["automation_id", "created_at"]
    )

    # 3. Pending rollback slot and deferred edits
    op.create_table(
        "pending_rollbacks",
        sa.Column("automation_id", sa.Uuid(), nullable=False),
        sa.Column("target_version_id", sa.Uuid(), nullable=False),
        sa.Column("message", _string(1000), nullable=False),
        sa.Column("created_by", _string(100), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["automation_id"], ["automations.id"]),
        sa.ForeignKeyConstraint(["target_version_id"], ["code_versions.id"]),
        sa.PrimaryKeyConstraint("automation_id"),
    )
    op.create_table(
        "deferred_edits",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("automation_id", sa.Uuid(), nullable=False),
        sa.Column("sequence", sa.Integer(), nullable=False),
        sa.Column("code", sqlmodel.sql.sqltypes.AutoString(), nullable=True),
        sa.Column("files", JSONType, nullable=True),
        sa.Column("dependencies", JSONType, nullable=True),
        sa.Column("env_var_names", JSONType, nullable=True),
        sa.Column("message", _string(1000), nullable=True),
        sa.Column("source", _string(20), nullable=False),
        sa.Column("created_by", _string(100), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["automation_id"], ["automations.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_deferred_edits_automation_sequence", "deferred_edits", ["automation_id", "sequence"]
    )

    # 4. Schedules
    op.create_table(
        "schedules",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("automation_id", sa.Uuid(), nullable=False),
        sa.Column("cron_expression", _string(120), nullable=False),
        sa.Column("timezone", _string(64), nullable=False),
        sa.Column("runtime_environment", _string(50), nullable=True),
        sa.Column("schedule_description", _string(500), nullable=True),
        sa.Column("email_notifications_enabled", sa.Boolean(), nullable=False),
        sa.Column("email_on_completed", sa.Boolean(), nullable=False),
        sa.Column("email_on_failed", sa.Boolean(), nullable=False),
        sa.Column("notification_email", _string(320), nullable=True),
        sa.Column("created_by", _string(100), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["automation_id"], ["automations.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_schedules_automation_id", "schedules", ["automation_id"])

    # 5. Execution history ledger
    op.create_table(
        "execution_records",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("automation_id", sa.Uuid(), nullable=False),
        sa.Column("schedule_id", sa.Uuid(), nullable=True),
        sa.Column("status", _string(20), nullable=False),
        sa.Column("trigger_type", _string(20), nullable=False),
        sa.Column("started_at", sa.DateTime(), nullable=False),
        sa.Column("ended_at", sa.DateTime(), nullable=True),
        sa.Column("duration_ms", sa.Integer(), nullable=True),
        sa.Column("exit_code", sa.Integer(), nullable=True),
        sa.Column("error_message", _string(2000), nullable=True),
        sa.Column("automation_title", _string(200), nullable=False),
        sa.Column("user_id", _string(100), nullable=True),
        sa.Column("user_name", _string(200), nullable=True),
        sa.Column("user_email", _string(320), nullable=True),
        sa.Column("runtime_environment", _string(50), nullable=False),
        sa.Column("version", _string(50), nullable=True),
        sa.Column("cancel_requested", sa.Boolean(), nullable=False),
        sa.Column("cancel_requested_at", sa.DateTime(), nullable=True),
        sa.Column("cancel_requested_by", _string(100), nullable=True),
        sa.ForeignKeyConstraint(["automation_id"], ["automations.id"]),
        sa.ForeignKeyConstraint(["schedule_id"], ["schedules.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_execution_records_automation_id", "execution_records", ["automation_id"]
    )
    op.create_index(
        "ix_execution_records_automation_started",
        "execution_records",
        ["automation_id", "started_at"],
    )
    op.create_index(
        "ix_execution_records_status_started", "execution_records", ["status", "started_at"]
    )
    # At most one running record per automation
    op.create_index(
        "uq_execution_records_one_running",
        "execution_records",
        ["automation_id"],
        unique=True,
        sqlite_where=RUNNING_ONLY,
        postgresql_where=RUNNING_ONLY,
    )

    op.create_table(
        "execution_logs",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("execution_id", sa.Uuid(), nullable=False),
        sa.Column("seq", sa.Integer(), nullable=False),
        sa.Column("line", sqlmodel.sql.sqltypes.AutoString(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["execution_id"], ["execution_records.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("execution_id", "seq", name="uq_execution_logs_execution_seq"),
    )
    op.create_index("ix_execution_logs_execution_id", "execution_logs", ["execution_id"])

    op.create_table(
        "scheduler_notifications",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("automation_id", sa.Uuid(), nullable=False),
        sa.Column("execution_id", sa.Uuid(), nullable=False),
        sa.Column("schedule_id", sa.Uuid(), nullable=True),
        sa.Column("status", _string(20), nullable=False),
        sa.Column("recipient", _string(320), nullable=True),
        sa.Column("email_sent", sa.Boolean(), nullable=False),
        sa.Column("email_disabled", sa.Boolean(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["automation_id"], ["automations.id"]),
        sa.ForeignKeyConstraint(["execution_id"], ["execution_records.id"]),
        sa.ForeignKeyConstraint(["schedule_id"], ["schedules.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("execution_id"),
    )
    op.create_index(
        "ix_scheduler_notifications_automation_id", "scheduler_notifications", ["automation_id"]
    )

    # 6. Version-control mirroring
    op.create_table(
        "vcs_connections",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("user_id", _string(100), nullable=False),
        sa.Column("provider", _string(20), nullable=False),
        sa.Column("account_login", _string(200), nullable=False),
        sa.Column("access_token", _string(500), nullable=False),
        sa.Column("connected_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_vcs_connections_user_id", "vcs_connections", ["user_id"], unique=True)

    op.create_table(
        "repository_links",
        sa.Column("automation_id", sa.Uuid(), nullable=False),
        sa.Column("connection_id", sa.Uuid(), nullable=False),
        sa.Column("owner", _string(200), nullable=False),
        sa.Column("name", _string(200), nullable=False),
        sa.Column("branch", _string(200), nullable=False),
        sa.Column("is_private", sa.Boolean(), nullable=False),
        sa.Column("html_url", _string(500), nullable=True),
        sa.Column("linked_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["automation_id"], ["automations.id"]),
        sa.ForeignKeyConstraint(["connection_id"], ["vcs_connections.id"]),
        sa.PrimaryKeyConstraint("automation_id"),
    )
    op.create_index(
        "ix_repository_links_connection_id", "repository_links", ["connection_id"]
    )


def downgrade() -> None:
    op.drop_table("repository_links")
    op.drop_table("vcs_connections")
    op.drop_table("scheduler_notifications")
    op.drop_table("execution_logs")
    op.drop_table("execution_records")
    op.drop_table("schedules")
    op.drop_table("deferred_edits")
    op.drop_table("pending_rollbacks")
    op.drop_table("code_versions")
    op.drop_table("automations")
