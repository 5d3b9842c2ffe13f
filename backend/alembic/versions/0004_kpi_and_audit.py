from alembic import op
import sqlalchemy as sa

revision = "0004_kpi_and_audit"
down_revision = "0003_salary"
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "kpi_plans",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("period_start", sa.Date(), nullable=False),
        sa.Column("period_type", sa.String(length=8), nullable=False, server_default="month"),
        sa.Column("company_code", sa.String(length=32), nullable=True),
        sa.Column("shift_type", sa.String(length=8), nullable=True),
        sa.Column("owner_role", sa.String(length=16), nullable=False),
        sa.Column("owner_id", sa.Integer(), nullable=True),
        sa.Column("turnover_target_month", sa.Numeric(14, 2), nullable=False, server_default="0"),
        sa.Column("turnover_target_week", sa.Numeric(14, 2), nullable=False, server_default="0"),
        sa.Column("shifts_target_month", sa.Numeric(10, 2), nullable=False, server_default="0"),
        sa.Column("shifts_target_week", sa.Numeric(10, 2), nullable=False, server_default="0"),
        sa.Column("meta", sa.JSON(), nullable=True),
        sa.Column("is_locked", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(), server_default=sa.text("now()"), nullable=True),
    )
    op.create_index("ix_kpi_plans_period_start", "kpi_plans", ["period_start"])
    op.create_index("ix_kpi_plans_period_owner", "kpi_plans", ["period_start", "owner_role"])

    op.create_table(
        "audit_logs",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("created_at", sa.DateTime(), server_default=sa.text("now()"), nullable=True),
        sa.Column("username", sa.String(length=64), nullable=False),
        sa.Column("action", sa.String(length=64), nullable=False),
        sa.Column("entity_type", sa.String(length=64), nullable=False),
        sa.Column("entity_id", sa.Integer(), nullable=True),
        sa.Column("details", sa.JSON(), nullable=True),
    )
    for col in ("created_at", "username", "action", "entity_type"):
        op.create_index(f"ix_audit_logs_{col}", "audit_logs", [col])
    op.create_index("ix_audit_logs_entity", "audit_logs", ["entity_type", "entity_id"])


def downgrade():
    op.drop_index("ix_audit_logs_entity", table_name="audit_logs")
    for col in ("entity_type", "action", "username", "created_at"):
        op.drop_index(f"ix_audit_logs_{col}", table_name="audit_logs")
    op.drop_table("audit_logs")

    op.drop_index("ix_kpi_plans_period_owner", table_name="kpi_plans")
    op.drop_index("ix_kpi_plans_period_start", table_name="kpi_plans")
    op.drop_table("kpi_plans")
