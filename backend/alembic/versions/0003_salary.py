from alembic import op
import sqlalchemy as sa

revision = "0003_salary"
down_revision = "0002_journals"
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "operator_salary_rules",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("company_code", sa.String(length=32), nullable=False),
        sa.Column("shift_type", sa.String(length=8), nullable=False),
        sa.Column("base_per_shift", sa.Numeric(14, 2), nullable=True),
        sa.Column("threshold1_turnover", sa.Numeric(14, 2), nullable=True),
        sa.Column("threshold1_bonus", sa.Numeric(14, 2), nullable=True),
        sa.Column("threshold2_turnover", sa.Numeric(14, 2), nullable=True),
        sa.Column("threshold2_bonus", sa.Numeric(14, 2), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(), server_default=sa.text("now()"), nullable=True),
        sa.UniqueConstraint("company_code", "shift_type", name="uq_salary_rule_company_shift"),
    )

    op.create_table(
        "operator_salary_adjustments",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("operator_id", sa.Integer(), sa.ForeignKey("operators.id", ondelete="CASCADE"), nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("amount", sa.Numeric(14, 2), nullable=False),
        sa.Column("kind", sa.String(length=16), nullable=False),
        sa.Column("comment", sa.String(length=256), nullable=True),
        sa.Column("created_at", sa.DateTime(), server_default=sa.text("now()"), nullable=True),
    )
    op.create_index("ix_operator_salary_adjustments_operator_id", "operator_salary_adjustments", ["operator_id"])
    op.create_index("ix_operator_salary_adjustments_date", "operator_salary_adjustments", ["date"])

    op.create_table(
        "debts",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("operator_id", sa.Integer(), sa.ForeignKey("operators.id", ondelete="CASCADE"), nullable=False),
        sa.Column("amount", sa.Numeric(14, 2), nullable=False),
        sa.Column("week_start", sa.Date(), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="active"),
        sa.Column("comment", sa.String(length=256), nullable=True),
        sa.Column("created_at", sa.DateTime(), server_default=sa.text("now()"), nullable=True),
    )
    op.create_index("ix_debts_operator_id", "debts", ["operator_id"])
    op.create_index("ix_debts_week_start", "debts", ["week_start"])
    op.create_index("ix_debts_status", "debts", ["status"])


def downgrade():
    op.drop_index("ix_debts_status", table_name="debts")
    op.drop_index("ix_debts_week_start", table_name="debts")
    op.drop_index("ix_debts_operator_id", table_name="debts")
    op.drop_table("debts")

    op.drop_index("ix_operator_salary_adjustments_date", table_name="operator_salary_adjustments")
    op.drop_index("ix_operator_salary_adjustments_operator_id", table_name="operator_salary_adjustments")
    op.drop_table("operator_salary_adjustments")

    op.drop_table("operator_salary_rules")
