from alembic import op
import sqlalchemy as sa

revision = "0001_init"
down_revision = None
branch_labels = None
depends_on = None

def upgrade():
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("username", sa.String(length=64), nullable=False),
        sa.Column("password_hash", sa.String(length=255), nullable=False),
        sa.Column("role", sa.String(length=16), nullable=False, server_default="viewer"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(), server_default=sa.text("now()"), nullable=True),
    )
    op.create_index("ix_users_username", "users", ["username"], unique=True)

    op.create_table(
        "companies",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=128), nullable=False),
        sa.Column("code", sa.String(length=32), nullable=True),
        sa.Column("created_at", sa.DateTime(), server_default=sa.text("now()"), nullable=True),
    )
    op.create_index("ix_companies_name", "companies", ["name"], unique=True)
    op.create_index("ix_companies_code", "companies", ["code"], unique=False)

    op.create_table(
        "operators",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=128), nullable=False),
        sa.Column("short_name", sa.String(length=64), nullable=True),
        sa.Column("role", sa.String(length=16), nullable=False, server_default="worker"),
        sa.Column("telegram_chat_id", sa.String(length=32), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(), server_default=sa.text("now()"), nullable=True),
    )
    op.create_index("ix_operators_name", "operators", ["name"], unique=False)
    op.create_index("ix_operators_telegram_chat_id", "operators", ["telegram_chat_id"], unique=False)
    op.create_index("ix_operators_is_active", "operators", ["is_active"], unique=False)

    op.create_table(
        "staff",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("full_name", sa.String(length=128), nullable=False),
        sa.Column("short_name", sa.String(length=64), nullable=True),
        sa.Column("role", sa.String(length=16), nullable=False, server_default="other"),
        sa.Column("monthly_salary", sa.Numeric(14, 2), nullable=False, server_default="0"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(), server_default=sa.text("now()"), nullable=True),
    )

    op.create_table(
        "staff_salary_payments",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("staff_id", sa.Integer(), sa.ForeignKey("staff.id", ondelete="CASCADE"), nullable=False),
        sa.Column("pay_date", sa.Date(), nullable=False),
        sa.Column("slot", sa.String(length=16), nullable=False, server_default="first"),
        sa.Column("amount", sa.Numeric(14, 2), nullable=False),
        sa.Column("comment", sa.String(length=256), nullable=True),
        sa.Column("created_at", sa.DateTime(), server_default=sa.text("now()"), nullable=True),
    )
    op.create_index("ix_staff_salary_payments_staff_id", "staff_salary_payments", ["staff_id"], unique=False)
    op.create_index("ix_staff_salary_payments_pay_date", "staff_salary_payments", ["pay_date"], unique=False)

def downgrade():
    op.drop_index("ix_staff_salary_payments_pay_date", table_name="staff_salary_payments")
    op.drop_index("ix_staff_salary_payments_staff_id", table_name="staff_salary_payments")
    op.drop_table("staff_salary_payments")
    op.drop_table("staff")

    op.drop_index("ix_operators_is_active", table_name="operators")
    op.drop_index("ix_operators_telegram_chat_id", table_name="operators")
    op.drop_index("ix_operators_name", table_name="operators")
    op.drop_table("operators")

    op.drop_index("ix_companies_code", table_name="companies")
    op.drop_index("ix_companies_name", table_name="companies")
    op.drop_table("companies")

    op.drop_index("ix_users_username", table_name="users")
    op.drop_table("users")
