"""init deal desk tables

Revision ID: 20261019_0001
Revises: None
Create Date: 2026-10-19
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20261019_0001_init_deal_desk_tables"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    # Enums are stored as VARCHAR (native_enum=False in the models) so new
    # values never need ALTER TYPE.
    draft_status = sa.Enum("open", "submitting", "submitted", name="draftstatus", native_enum=False)
    submission_outcome = sa.Enum(
        "succeeded", "partially_succeeded", "failed", name="submissionoutcome", native_enum=False
    )

    op.create_table(
        "audit_logs",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("action", sa.String(length=128), nullable=False),
        sa.Column("user_id", sa.String(length=64), nullable=True),
        sa.Column("payload_json", sa.Text()),
        sa.Column("request_id", sa.String(length=64), nullable=True),
        sa.Column("ip", sa.String(length=64), nullable=True),
        sa.Column("user_agent", sa.String(length=256), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_audit_logs_action", "audit_logs", ["action"])
    op.create_index("ix_audit_logs_user_id", "audit_logs", ["user_id"])
    op.create_index("ix_audit_logs_request_id", "audit_logs", ["request_id"])

    op.create_table(
        "deal_drafts",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("draft_uuid", sa.String(length=36), nullable=False),
        sa.Column("name", sa.String(length=255)),
        sa.Column("division", sa.String(length=128)),
        sa.Column("status", draft_status, nullable=False, server_default="open"),
        sa.Column("document", sa.JSON(), nullable=False),
        sa.Column("upstream_deal_id", sa.String(length=64), nullable=True),
        sa.Column("created_by", sa.String(length=64), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_deal_drafts_draft_uuid", "deal_drafts", ["draft_uuid"], unique=True)
    op.create_index("ix_deal_drafts_name", "deal_drafts", ["name"])
    op.create_index("ix_deal_drafts_division", "deal_drafts", ["division"])
    op.create_index("ix_deal_drafts_status", "deal_drafts", ["status"])
    op.create_index("ix_deal_drafts_upstream_deal_id", "deal_drafts", ["upstream_deal_id"])

    op.create_table(
        "deal_submissions",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("draft_id", sa.Integer(), sa.ForeignKey("deal_drafts.id"), nullable=False),
        sa.Column("outcome", submission_outcome, nullable=False),
        sa.Column("upstream_deal_id", sa.String(length=64), nullable=True),
        sa.Column("failed_attachments", sa.JSON(), nullable=False),
        sa.Column("failed_split_schedules", sa.JSON(), nullable=False),
        sa.Column("unmatched_schedules", sa.JSON(), nullable=False),
        sa.Column("error", sa.Text(), nullable=True),
        sa.Column("submitted_by", sa.String(length=64), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_deal_submissions_draft_id", "deal_submissions", ["draft_id"])

    op.create_table(
        "label_mappings",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("division", sa.String(length=128), nullable=False),
        sa.Column("agent", sa.String(length=64), nullable=False),
        sa.Column("agents", sa.String(length=64), nullable=False),
        sa.Column("deal", sa.String(length=64), nullable=False),
        sa.Column("deals", sa.String(length=64), nullable=False),
        sa.Column("updated_by", sa.String(length=64), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint("division", name="uq_label_mappings_division"),
    )
    op.create_index("ix_label_mappings_division", "label_mappings", ["division"])


def downgrade() -> None:
    op.drop_index("ix_label_mappings_division", table_name="label_mappings")
    op.drop_table("label_mappings")
    op.drop_index("ix_deal_submissions_draft_id", table_name="deal_submissions")
    op.drop_table("deal_submissions")
    for ix in (
        "ix_deal_drafts_upstream_deal_id",
        "ix_deal_drafts_status",
        "ix_deal_drafts_division",
        "ix_deal_drafts_name",
        "ix_deal_drafts_draft_uuid",
    ):
        op.drop_index(ix, table_name="deal_drafts")
    op.drop_table("deal_drafts")
    for ix in ("ix_audit_logs_request_id", "ix_audit_logs_user_id", "ix_audit_logs_action"):
        op.drop_index(ix, table_name="audit_logs")
    op.drop_table("audit_logs")
