from alembic import op
import sqlalchemy as sa

revision = "0002_journals"
down_revision = "0001_init"
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "incomes",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("company_id", sa.Integer(), sa.ForeignKey("companies.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("operator_id", sa.Integer(), sa.ForeignKey("operators.id", ondelete="SET NULL"), nullable=True),
        sa.Column("shift", sa.String(length=8), nullable=False, server_default="day"),
        sa.Column("zone", sa.String(length=64), nullable=True),
        sa.Column("cash_amount", sa.Numeric(14, 2), nullable=False, server_default="0"),
        sa.Column("kaspi_amount", sa.Numeric(14, 2), nullable=False, server_default="0"),
        sa.Column("online_amount", sa.Numeric(14, 2), nullable=False, server_default="0"),
        sa.Column("card_amount", sa.Numeric(14, 2), nullable=False, server_default="0"),
        sa.Column("comment", sa.String(length=512), nullable=True),
        sa.Column("is_virtual", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(), server_default=sa.text("now()"), nullable=True),
    )
    op.create_index("ix_incomes_date", "incomes", ["date"])
    op.create_index("ix_incomes_company_id", "incomes", ["company_id"])
    op.create_index("ix_incomes_operator_id", "incomes", ["operator_id"])

    op.create_table(
        "expenses",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("company_id", sa.Integer(), sa.ForeignKey("companies.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("category", sa.String(length=128), nullable=True),
        sa.Column("cash_amount", sa.Numeric(14, 2), nullable=False, server_default="0"),
        sa.Column("kaspi_amount", sa.Numeric(14, 2), nullable=False, server_default="0"),
        sa.Column("comment", sa.String(length=512), nullable=True),
        sa.Column("created_at", sa.DateTime(), server_default=sa.text("now()"), nullable=True),
    )
    op.create_index("ix_expenses_date", "expenses", ["date"])
    op.create_index("ix_expenses_company_id", "expenses", ["company_id"])
    op.create_index("ix_expenses_category", "expenses", ["category"])


def downgrade():
    op.drop_index("ix_expenses_category", table_name="expenses")
    op.drop_index("ix_expenses_company_id", table_name="expenses")
    op.drop_index("ix_expenses_date", table_name="expenses")
    op.drop_table("expenses")

    op.drop_index("ix_incomes_operator_id", table_name="incomes")
    op.drop_index("ix_incomes_company_id", table_name="incomes")
    op.drop_index("ix_incomes_date", table_name="incomes")
    op.drop_table("incomes")
