"""initial_scan_tracking_schema

Creates the production scan reconciliation schema:
  - machines                        — shop-floor machines with scanner terminals
  - work_orders / work_order_operations / work_order_operation_machines
  - production_days → machine_days → operator_sessions → scan_events
  - completion_snapshots            — reconciled completion per work order
  - invalid_scan_fingerprints       — invalid scans already counted
  - scheduled_jobs                  — background job registry + run history

Each table is skipped when it already exists, so a development database
bootstrapped by create_app's db.create_all() can still be stamped and upgraded.

Revision ID: 3f1c9a7d2b10
Revises:
Create Date: 2026-10-19 09:12:41.208417
"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect as sa_inspect


# revision identifiers, used by Alembic.
revision = '3f1c9a7d2b10'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    bind = op.get_bind()
    inspector = sa_inspect(bind)
    existing = set(inspector.get_table_names())

    # ── Machines ──────────────────────────────────────────────────────────
    if "machines" not in existing:
        op.create_table(
            "machines",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("name", sa.String(length=150), nullable=False),
            sa.Column("serial_number", sa.String(length=100), nullable=True),
            sa.Column("machine_type", sa.String(length=100), nullable=True,
                      comment="e.g. overlock, flatlock, single_needle"),
            sa.Column("is_active", sa.Boolean(), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("serial_number"),
        )

    # ── Work orders ───────────────────────────────────────────────────────
    if "work_orders" not in existing:
        op.create_table(
            "work_orders",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("work_order_number", sa.String(length=60), nullable=False),
            sa.Column("barcode_key", sa.String(length=40), nullable=False,
                      comment="Key embedded in unit barcodes, [A-Z0-9-]+"),
            sa.Column("product_name", sa.String(length=200), nullable=True),
            sa.Column("quantity", sa.Integer(), nullable=False),
            sa.Column("priority", sa.String(length=20), nullable=True),
            sa.Column("status", sa.String(length=30), nullable=True),
            sa.Column("planned_start_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("planned_end_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("actual_start_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("actual_end_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("work_order_number"),
        )
        op.create_index("ix_work_orders_barcode_key", "work_orders", ["barcode_key"], unique=True)
        op.create_index("ix_work_orders_status", "work_orders", ["status"])

    if "work_order_operations" not in existing:
        op.create_table(
            "work_order_operations",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("work_order_id", sa.Integer(), nullable=False),
            sa.Column("sequence", sa.Integer(), nullable=False,
                      comment="1-based position, matches OO in barcodes"),
            sa.Column("operation_type", sa.String(length=100), nullable=True),
            sa.Column("machine_type", sa.String(length=100), nullable=True),
            sa.Column("primary_machine_id", sa.Integer(), nullable=True),
            sa.Column("estimated_time_seconds", sa.Float(), nullable=True),
            sa.Column("planned_time_seconds", sa.Float(), nullable=True),
            sa.Column("status", sa.String(length=20), nullable=True),
            sa.Column("notes", sa.Text(), nullable=True),
            sa.ForeignKeyConstraint(["work_order_id"], ["work_orders.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["primary_machine_id"], ["machines.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("work_order_id", "sequence", name="uq_wo_operation_sequence"),
        )
        op.create_index("ix_work_order_operations_work_order_id", "work_order_operations",
                        ["work_order_id"])

    if "work_order_operation_machines" not in existing:
        op.create_table(
            "work_order_operation_machines",
            sa.Column("operation_id", sa.Integer(), nullable=False),
            sa.Column("machine_id", sa.Integer(), nullable=False),
            sa.ForeignKeyConstraint(["operation_id"], ["work_order_operations.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["machine_id"], ["machines.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("operation_id", "machine_id"),
        )

    # ── Scan log ──────────────────────────────────────────────────────────
    if "production_days" not in existing:
        op.create_table(
            "production_days",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("production_date", sa.Date(), nullable=False),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_production_days_production_date", "production_days",
                        ["production_date"], unique=True)

    if "machine_days" not in existing:
        op.create_table(
            "machine_days",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("production_day_id", sa.Integer(), nullable=False),
            sa.Column("machine_id", sa.Integer(), nullable=False),
            sa.ForeignKeyConstraint(["production_day_id"], ["production_days.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["machine_id"], ["machines.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("production_day_id", "machine_id", name="uq_machine_day"),
        )
        op.create_index("ix_machine_days_production_day_id", "machine_days", ["production_day_id"])
        op.create_index("ix_machine_days_machine_id", "machine_days", ["machine_id"])

    if "operator_sessions" not in existing:
        op.create_table(
            "operator_sessions",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("machine_day_id", sa.Integer(), nullable=False),
            sa.Column("operator_id", sa.String(length=64), nullable=False),
            sa.Column("operator_name", sa.String(length=150), nullable=True),
            sa.Column("signed_in_at", sa.DateTime(timezone=True), nullable=False),
            sa.Column("signed_out_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["machine_day_id"], ["machine_days.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_operator_sessions_machine_day_id", "operator_sessions", ["machine_day_id"])
        op.create_index("ix_operator_sessions_operator_id", "operator_sessions", ["operator_id"])

    if "scan_events" not in existing:
        op.create_table(
            "scan_events",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("session_id", sa.Integer(), nullable=False),
            sa.Column("barcode_id", sa.String(length=120), nullable=False),
            sa.Column("scanned_at", sa.DateTime(timezone=True), nullable=False),
            sa.ForeignKeyConstraint(["session_id"], ["operator_sessions.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_scan_events_session_id", "scan_events", ["session_id"])
        op.create_index("ix_scan_events_barcode_id", "scan_events", ["barcode_id"])

    # ── Completion ────────────────────────────────────────────────────────
    if "completion_snapshots" not in existing:
        op.create_table(
            "completion_snapshots",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("work_order_id", sa.Integer(), nullable=False),
            sa.Column("overall_completed_quantity", sa.Integer(), nullable=True),
            sa.Column("overall_completion_percentage", sa.Float(), nullable=True),
            sa.Column("operation_completion", sa.JSON(), nullable=True),
            sa.Column("operator_details", sa.JSON(), nullable=True),
            sa.Column("efficiency_metrics", sa.JSON(), nullable=True),
            sa.Column("time_metrics", sa.JSON(), nullable=True),
            sa.Column("invalid_scans", sa.JSON(), nullable=True,
                      comment="Latest invalid scans, newest first"),
            sa.Column("invalid_scans_count", sa.Integer(), nullable=True),
            sa.Column("last_synced_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["work_order_id"], ["work_orders.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_completion_snapshots_work_order_id", "completion_snapshots",
                        ["work_order_id"], unique=True)

    if "invalid_scan_fingerprints" not in existing:
        op.create_table(
            "invalid_scan_fingerprints",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("work_order_id", sa.Integer(), nullable=False),
            sa.Column("barcode_id", sa.String(length=120), nullable=False),
            sa.Column("scanned_at", sa.DateTime(timezone=True), nullable=False),
            sa.Column("reason", sa.String(length=30), nullable=False),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["work_order_id"], ["work_orders.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("work_order_id", "barcode_id", "scanned_at",
                                name="uq_invalid_scan_fingerprint"),
        )
        op.create_index("ix_invalid_scan_fingerprints_work_order_id", "invalid_scan_fingerprints",
                        ["work_order_id"])
        op.create_index("ix_invalid_scan_fingerprints_scanned_at", "invalid_scan_fingerprints",
                        ["scanned_at"])

    # ── Scheduler ─────────────────────────────────────────────────────────
    if "scheduled_jobs" not in existing:
        op.create_table(
            "scheduled_jobs",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("job_name", sa.String(length=100), nullable=False,
                      comment="Unique job identifier: production_sync, tracking_retention"),
            sa.Column("description", sa.String(length=500), nullable=True),
            sa.Column("schedule_type", sa.String(length=30), nullable=True, comment="interval, daily"),
            sa.Column("schedule_config", sa.JSON(), nullable=True,
                      comment="Interval seconds or daily hour"),
            sa.Column("is_enabled", sa.Boolean(), nullable=True),
            sa.Column("last_run_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("last_run_status", sa.String(length=20), nullable=True,
                      comment="success, failed, skipped"),
            sa.Column("last_run_duration_ms", sa.Integer(), nullable=True),
            sa.Column("last_run_result", sa.JSON(), nullable=True),
            sa.Column("run_count", sa.Integer(), nullable=True),
            sa.Column("error_count", sa.Integer(), nullable=True),
            sa.Column("skipped_count", sa.Integer(), nullable=True),
            sa.Column("last_error", sa.Text(), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("job_name"),
        )


def downgrade():
    for table in (
        "scheduled_jobs",
        "invalid_scan_fingerprints",
        "completion_snapshots",
        "scan_events",
        "operator_sessions",
        "machine_days",
        "production_days",
        "work_order_operation_machines",
        "work_order_operations",
        "work_orders",
        "machines",
    ):
        op.drop_table(table)
