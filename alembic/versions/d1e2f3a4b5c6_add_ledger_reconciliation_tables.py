"""Add implant reference, ledger cache, audit mirror and sync status tables.

- implant_references: one row per write issued to the ledger
- ledger_cache: confirmed ledger entries keyed by transaction hash
- audit_logs: local mirror of audit events (audit_tx_hash links to the ledger)
- sync_status: single-row switch for the reconciliation sweep
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision = "d1e2f3a4b5c6"
down_revision = None
branch_labels = None
depends_on = None


UUIDType = postgresql.UUID(as_uuid=True).with_variant(sa.String(length=36), "sqlite")
JSONType = postgresql.JSONB().with_variant(sa.JSON(), "sqlite")

AUDIT_ACTIONS = (
    "IMPLANT_PLACEMENT",
    "IMPLANT_REMOVAL",
    "IMPLANT_PLACEMENT_CORRECTION",
    "IMPLANT_REMOVAL_CORRECTION",
    "PATIENT_RECORDS_VIEW",
    "PROVIDER_HISTORY_VIEW",
    "CORRECTION_CHAIN_VIEW",
    "BLOCKCHAIN_SYNC",
    "SYNC_TOGGLE",
)


def upgrade() -> None:
    op.create_table(
        "implant_references",
        sa.Column("id", UUIDType, nullable=False),
        sa.Column("patient_id", sa.String(length=255), nullable=False),
        sa.Column("dentist_id", sa.String(length=255), nullable=False),
        sa.Column("tx_hash", sa.String(length=255), nullable=False),
        sa.Column("record_type", sa.String(length=32), nullable=False),
        sa.Column("is_corrected", sa.Boolean(), server_default=sa.text("false"), nullable=False),
        sa.Column("corrected_by_tx_hash", sa.String(length=255), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("tx_hash"),
    )
    op.create_index(op.f("ix_implant_references_patient_id"), "implant_references", ["patient_id"], unique=False)
    op.create_index(op.f("ix_implant_references_dentist_id"), "implant_references", ["dentist_id"], unique=False)
    op.create_index(op.f("ix_implant_references_created_at"), "implant_references", ["created_at"], unique=False)

    op.create_table(
        "ledger_cache",
        sa.Column("id", UUIDType, nullable=False),
        sa.Column("patient_id", sa.String(length=255), nullable=False),
        sa.Column("dentist_id", sa.String(length=255), nullable=True),
        sa.Column("tx_hash", sa.String(length=255), nullable=False),
        sa.Column("record_type", sa.String(length=32), nullable=False),
        sa.Column("record_data", JSONType, nullable=False),
        sa.Column("location", sa.String(length=64), nullable=True),
        sa.Column("placement_date", sa.String(length=32), nullable=True),
        sa.Column("removal_date", sa.String(length=32), nullable=True),
        sa.Column("ledger_record_id", sa.String(length=78), nullable=True),
        sa.Column("ledger_timestamp", sa.DateTime(timezone=True), nullable=True),
        sa.Column("is_corrected", sa.Boolean(), server_default=sa.text("false"), nullable=False),
        sa.Column("corrected_by_tx_hash", sa.String(length=255), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("tx_hash"),
    )
    op.create_index(op.f("ix_ledger_cache_patient_id"), "ledger_cache", ["patient_id"], unique=False)
    op.create_index(op.f("ix_ledger_cache_dentist_id"), "ledger_cache", ["dentist_id"], unique=False)
    op.create_index(op.f("ix_ledger_cache_is_corrected"), "ledger_cache", ["is_corrected"], unique=False)
    op.create_index(op.f("ix_ledger_cache_created_at"), "ledger_cache", ["created_at"], unique=False)

    op.create_table(
        "audit_logs",
        sa.Column("id", UUIDType, nullable=False),
        sa.Column("dentist_id", sa.String(length=255), nullable=True),
        sa.Column("patient_id", sa.String(length=255), nullable=True),
        sa.Column("action", sa.Enum(*AUDIT_ACTIONS, name="auditaction"), nullable=False),
        sa.Column("metadata", JSONType, nullable=True),
        sa.Column("audit_tx_hash", sa.String(length=255), nullable=True),
        sa.Column("ip_address", sa.String(length=45), nullable=True),
        sa.Column("user_agent", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_audit_logs_dentist_id"), "audit_logs", ["dentist_id"], unique=False)
    op.create_index(op.f("ix_audit_logs_patient_id"), "audit_logs", ["patient_id"], unique=False)
    op.create_index(op.f("ix_audit_logs_created_at"), "audit_logs", ["created_at"], unique=False)

    op.create_table(
        "sync_status",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("sync_enabled", sa.Boolean(), server_default=sa.text("true"), nullable=False),
        sa.Column("last_sync", sa.DateTime(timezone=True), nullable=True),
        sa.Column("sync_frequency_hours", sa.Integer(), server_default="1", nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )


def downgrade() -> None:
    op.drop_table("sync_status")

    op.drop_index(op.f("ix_audit_logs_created_at"), table_name="audit_logs")
    op.drop_index(op.f("ix_audit_logs_patient_id"), table_name="audit_logs")
    op.drop_index(op.f("ix_audit_logs_dentist_id"), table_name="audit_logs")
    op.drop_table("audit_logs")
    sa.Enum(name="auditaction").drop(op.get_bind(), checkfirst=True)

    op.drop_index(op.f("ix_ledger_cache_created_at"), table_name="ledger_cache")
    op.drop_index(op.f("ix_ledger_cache_is_corrected"), table_name="ledger_cache")
    op.drop_index(op.f("ix_ledger_cache_dentist_id"), table_name="ledger_cache")
    op.drop_index(op.f("ix_ledger_cache_patient_id"), table_name="ledger_cache")
    op.drop_table("ledger_cache")

    op.drop_index(op.f("ix_implant_references_created_at"), table_name="implant_references")
    op.drop_index(op.f("ix_implant_references_dentist_id"), table_name="implant_references")
    op.drop_index(op.f("ix_implant_references_patient_id"), table_name="implant_references")
    op.drop_table("implant_references")
