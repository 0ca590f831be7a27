"""initial ledger schema

Revision ID: 202610181200
Revises:
Create Date: 2026-10-18 12:00:00.000000

"""

from alembic import op
import sqlalchemy as sa


revision = "202610181200"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps():
    return [
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    ]


def upgrade():
    transaction_type = sa.Enum("income", "expense", name="transactiontype")

    op.create_table(
        "accounts",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column(
            "type",
            sa.Enum("checking", "credit_card", "cash", name="accounttype"),
            nullable=False,
        ),
        sa.Column("balance_cents", sa.BigInteger(), nullable=False, server_default="0"),
        # Filled from balance_cents by the ORM; NULL marks an account without a
        # reconciliation baseline.
        sa.Column("opening_balance_cents", sa.BigInteger()),
        sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
    )
    op.create_index("ix_accounts_user_active", "accounts", ["user_id", "active"])

    op.create_table(
        "credit_card_details",
        sa.Column(
            "account_id", sa.Integer(), sa.ForeignKey("accounts.id"), primary_key=True
        ),
        sa.Column("bank_name", sa.String(length=120)),
        sa.Column("brand", sa.String(length=40)),
        sa.Column("limit_total_cents", sa.BigInteger(), nullable=False),
        sa.Column("limit_available_cents", sa.BigInteger(), nullable=False),
        sa.Column("due_day", sa.Integer()),
        *_timestamps(),
        sa.CheckConstraint(
            "limit_total_cents >= 0", name="ck_card_limit_total_positive"
        ),
    )

    op.create_table(
        "categories",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer()),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("type", transaction_type, nullable=False),
        sa.Column("color", sa.String(length=7)),
        sa.Column("icon", sa.String(length=50)),
        *_timestamps(),
    )

    op.create_table(
        "tags",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(length=50), nullable=False),
        sa.Column("color", sa.String(length=9)),
        *_timestamps(),
    )

    op.create_table(
        "transactions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("type", transaction_type, nullable=False),
        sa.Column(
            "account_id", sa.Integer(), sa.ForeignKey("accounts.id"), nullable=False
        ),
        sa.Column("category_id", sa.Integer(), sa.ForeignKey("categories.id")),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("notes", sa.Text()),
        sa.Column("amount_cents", sa.BigInteger(), nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column(
            "status",
            sa.Enum("pending", "confirmed", "cancelled", name="transactionstatus"),
            nullable=False,
            server_default="confirmed",
        ),
        sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("deleted_at", sa.DateTime()),
        sa.Column("is_salary", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("salary_installment", sa.Integer()),
        sa.Column("salary_installments_total", sa.Integer()),
        sa.Column(
            "is_invoice_payment", sa.Boolean(), nullable=False, server_default=sa.false()
        ),
        sa.Column("source_card_id", sa.Integer(), sa.ForeignKey("accounts.id")),
        *_timestamps(),
        sa.CheckConstraint("amount_cents > 0", name="ck_transactions_amount_positive"),
    )
    op.create_index("ix_transactions_user_date", "transactions", ["user_id", "date"])
    op.create_index(
        "ix_transactions_user_type_date", "transactions", ["user_id", "type", "date"]
    )
    op.create_index(
        "ix_transactions_account_status",
        "transactions",
        ["account_id", "status", "active"],
    )

    op.create_table(
        "transaction_tags",
        sa.Column(
            "transaction_id",
            sa.Integer(),
            sa.ForeignKey("transactions.id"),
            primary_key=True,
        ),
        sa.Column("tag_id", sa.Integer(), sa.ForeignKey("tags.id"), primary_key=True),
    )

    op.create_table(
        "budget_periods",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("month", sa.Integer(), nullable=False),
        sa.Column("year", sa.Integer(), nullable=False),
        sa.Column("income_cents", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("expense_cents", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("net_cents", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column(
            "savings_goal_cents", sa.BigInteger(), nullable=False, server_default="0"
        ),
        sa.Column("notes", sa.Text()),
        *_timestamps(),
        sa.UniqueConstraint(
            "user_id", "month", "year", name="uq_budget_period_user_month"
        ),
        sa.CheckConstraint("month BETWEEN 1 AND 12", name="ck_budget_period_month"),
    )


def downgrade():
    op.drop_table("budget_periods")
    op.drop_table("transaction_tags")
    op.drop_index("ix_transactions_account_status", table_name="transactions")
    op.drop_index("ix_transactions_user_type_date", table_name="transactions")
    op.drop_index("ix_transactions_user_date", table_name="transactions")
    op.drop_table("transactions")
    op.drop_table("tags")
    op.drop_table("categories")
    op.drop_table("credit_card_details")
    op.drop_index("ix_accounts_user_active", table_name="accounts")
    op.drop_table("accounts")
