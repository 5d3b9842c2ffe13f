from alembic import op
import sqlalchemy as sa

revision = "0005_categories_and_shifts"
down_revision = "0004_kpi_and_audit"
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "expense_categories",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=128), nullable=False),
        sa.Column("type", sa.String(length=64), nullable=True),
        sa.Column("created_at", sa.DateTime(), server_default=sa.text("now()"), nullable=True),
    )
    op.create_index("ix_expense_categories_name", "expense_categories", ["name"], unique=True)

    op.create_table(
        "shifts",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("company_id", sa.Integer(), sa.ForeignKey("companies.id", ondelete="CASCADE"), nullable=False),
        sa.Column("shift_type", sa.String(length=8), nullable=False),
        sa.Column("operator_name", sa.String(length=128), nullable=False),
        sa.Column("comment", sa.String(length=512), nullable=True),
        sa.Column("created_at", sa.DateTime(), server_default=sa.text("now()"), nullable=True),
        sa.UniqueConstraint("company_id", "date", "shift_type", name="uq_shifts_slot"),
    )
    op.create_index("ix_shifts_date", "shifts", ["date"])
    op.create_index("ix_shifts_company_id", "shifts", ["company_id"])


def downgrade():
    op.drop_index("ix_shifts_company_id", table_name="shifts")
    op.drop_index("ix_shifts_date", table_name="shifts")
    op.drop_table("shifts")

    op.drop_index("ix_expense_categories_name", table_name="expense_categories")
    op.drop_table("expense_categories")
