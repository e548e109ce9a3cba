"""certification_tracking

Organizations, users, audit log, certification catalog, per-user progress
and the stage transition log.

Revision ID: 0001_certification_tracking
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

revision: str = "0001_certification_tracking"
down_revision: str | None = None
branch_labels = None
depends_on = None

_org_type = sa.Enum("BUSINESS", "VENDOR", "ADMIN", name="orgtype")
_sub_tier = sa.Enum("LITE", "PROFESSIONAL", "ENTERPRISE", name="subscriptiontier")
_sub_status = sa.Enum("ACTIVE", "TRIAL", "SUSPENDED", "CANCELLED", name="subscriptionstatus")
_user_role = sa.Enum("ADMIN", "MANAGER", "ANALYST", "VIEWER", name="userrole")


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    ]


def upgrade() -> None:
    # ── Tenancy ───────────────────────────────────────────────────────────────

    op.create_table(
        "organizations",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("slug", sa.String(255), nullable=False),
        sa.Column("type", _org_type, nullable=False),
        sa.Column("industry", sa.String(100)),
        sa.Column("settings", postgresql.JSONB(), nullable=False, server_default=sa.text("'{}'::jsonb")),
        sa.Column("subscription_tier", _sub_tier, nullable=False),
        sa.Column("subscription_status", _sub_status, nullable=False),
        *_timestamps(),
        sa.Column("is_deleted", sa.Boolean(), nullable=False, server_default=sa.false()),
    )
    op.create_index("ix_organizations_slug", "organizations", ["slug"], unique=True)
    op.create_index("ix_organizations_type", "organizations", ["type"])

    op.create_table(
        "users",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("org_id", sa.Uuid(), sa.ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False),
        sa.Column("email", sa.String(320), nullable=False),
        sa.Column("full_name", sa.String(255), nullable=False),
        sa.Column("role", _user_role, nullable=False),
        sa.Column("external_auth_id", sa.String(255), nullable=False),
        sa.Column("last_login_at", sa.DateTime(timezone=True)),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
        sa.Column("is_deleted", sa.Boolean(), nullable=False, server_default=sa.false()),
    )
    op.create_index("ix_users_org_id", "users", ["org_id"])
    op.create_index("ix_users_email", "users", ["email"], unique=True)
    op.create_index("ix_users_external_auth_id", "users", ["external_auth_id"], unique=True)

    op.create_table(
        "audit_logs",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("org_id", sa.Uuid(), sa.ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False),
        sa.Column("user_id", sa.Uuid(), sa.ForeignKey("users.id", ondelete="SET NULL")),
        sa.Column("action", sa.String(100), nullable=False),
        sa.Column("entity_type", sa.String(100), nullable=False),
        sa.Column("entity_id", sa.String(64)),
        sa.Column("ip_address", sa.String(45)),
        sa.Column("user_agent", sa.Text()),
        sa.Column("timestamp", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_audit_logs_org_id", "audit_logs", ["org_id"])
    op.create_index("ix_audit_logs_entity", "audit_logs", ["entity_type", "entity_id"])
    op.create_index("ix_audit_logs_timestamp", "audit_logs", ["timestamp"])

    # ── Certification catalog ─────────────────────────────────────────────────

    op.create_table(
        "certification_types",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(255), nullable=False, unique=True),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("requirements", postgresql.JSONB(), nullable=False),
        sa.Column("validity_period", sa.Integer(), nullable=False),
        sa.Column("industry", postgresql.JSONB(), nullable=False),
        sa.Column("difficulty", sa.String(50), nullable=False),
        sa.Column("provider", sa.String(255), nullable=False),
        sa.Column("provider_url", sa.String(512), nullable=False, server_default=""),
        sa.Column("estimated_time", sa.String(100), nullable=False, server_default=""),
        sa.Column("cost", sa.String(50), nullable=False, server_default=""),
        sa.Column("relevance", sa.Integer(), nullable=False, server_default="0"),
        *_timestamps(),
    )

    # ── Progress tracking ─────────────────────────────────────────────────────

    op.create_table(
        "certification_progress",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("org_id", sa.Uuid(), sa.ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False),
        sa.Column("user_id", sa.Uuid(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column(
            "certification_type_id",
            sa.Integer(),
            sa.ForeignKey("certification_types.id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column("current_stage", sa.String(20), nullable=False, server_default="started"),
        sa.Column("started_at", sa.DateTime(timezone=True)),
        sa.Column("applied_at", sa.DateTime(timezone=True)),
        sa.Column("in_progress_at", sa.DateTime(timezone=True)),
        sa.Column("approved_at", sa.DateTime(timezone=True)),
        sa.Column("next_steps", postgresql.JSONB()),
        sa.Column("notes", sa.Text()),
        *_timestamps(),
        sa.Column("is_deleted", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.UniqueConstraint("user_id", "certification_type_id", name="uq_certification_progress_user_type"),
        sa.CheckConstraint(
            "current_stage IN ('started', 'applied', 'in_progress', 'approved')",
            name="ck_certification_progress_stage",
        ),
    )
    op.create_index("ix_certification_progress_org_id", "certification_progress", ["org_id"])
    op.create_index("ix_certification_progress_user_id", "certification_progress", ["user_id"])
    op.create_index(
        "ix_certification_progress_org_stage", "certification_progress", ["org_id", "current_stage"]
    )

    op.create_table(
        "certification_stage_transitions",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("org_id", sa.Uuid(), sa.ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False),
        sa.Column(
            "progress_id",
            sa.Uuid(),
            sa.ForeignKey("certification_progress.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("from_stage", sa.String(20)),
        sa.Column("to_stage", sa.String(20), nullable=False),
        sa.Column("checked", sa.Boolean()),
        sa.Column("transitioned_by", sa.Uuid(), sa.ForeignKey("users.id", ondelete="SET NULL")),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index(
        "ix_certification_stage_transitions_org_id", "certification_stage_transitions", ["org_id"]
    )
    op.create_index(
        "ix_certification_transitions_progress",
        "certification_stage_transitions",
        ["progress_id", "created_at"],
    )


def downgrade() -> None:
    op.drop_table("certification_stage_transitions")
    op.drop_table("certification_progress")
    op.drop_table("certification_types")
    op.drop_table("audit_logs")
    op.drop_table("users")
    op.drop_table("organizations")
    for enum_type in (_user_role, _sub_status, _sub_tier, _org_type):
        enum_type.drop(op.get_bind(), checkfirst=True)
