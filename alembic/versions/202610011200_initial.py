"""initial ledger schema

Revision ID: 202610011200
Revises:
Create Date: 2026-10-01 12:00:00.000000

"""

from alembic import op
import sqlalchemy as sa


revision = "202610011200"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "accounts",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column(
            "type",
            sa.Enum(
                "checking",
                "savings",
                "credit_card",
                "cash",
                "investment",
                "loan",
                "other",
                name="accounttype",
            ),
            nullable=False,
        ),
        sa.Column("initial_balance_cents", sa.Integer(), nullable=False),
        sa.Column("current_balance_cents", sa.Integer(), nullable=False),
        sa.Column("account_number", sa.String(length=64)),
        sa.Column("institution_name", sa.String(length=120)),
        sa.Column("color", sa.String(length=7), nullable=False),
        sa.Column("icon", sa.String(length=50), nullable=False),
        sa.Column(
            "is_default", sa.Boolean(), nullable=False, server_default=sa.false()
        ),
        sa.Column(
            "status",
            sa.Enum("active", "inactive", "closed", name="accountstatus"),
            nullable=False,
            server_default="active",
        ),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )
    op.create_index(
        "ix_accounts_user_default", "accounts", ["user_id", "is_default"]
    )

    op.create_table(
        "categories",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("description", sa.Text()),
        sa.Column(
            "type",
            sa.Enum("income", "expense", "transfer", name="categorytype"),
            nullable=False,
        ),
        sa.Column("color", sa.String(length=7), nullable=False),
        sa.Column("icon", sa.String(length=50), nullable=False),
        sa.Column(
            "is_default", sa.Boolean(), nullable=False, server_default=sa.false()
        ),
        sa.Column(
            "status",
            sa.Enum("active", "inactive", name="categorystatus"),
            nullable=False,
            server_default="active",
        ),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_categories_user_type", "categories", ["user_id", "type"])

    op.create_table(
        "transactions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("amount_cents", sa.Integer(), nullable=False),
        sa.Column("description", sa.String(length=255)),
        sa.Column(
            "type",
            sa.Enum(
                "income", "expense", "transfer", "adjustment", name="transactiontype"
            ),
            nullable=False,
        ),
        sa.Column("transaction_date", sa.DateTime(), nullable=False),
        sa.Column("reference_number", sa.String(length=64)),
        sa.Column("notes", sa.Text()),
        sa.Column(
            "is_recurring", sa.Boolean(), nullable=False, server_default=sa.false()
        ),
        sa.Column(
            "recurring_frequency",
            sa.Enum("daily", "weekly", "monthly", "yearly", name="recurringfrequency"),
        ),
        sa.Column("next_recurring_date", sa.Date()),
        sa.Column(
            "status",
            sa.Enum(
                "pending", "completed", "cancelled", "failed", name="transactionstatus"
            ),
            nullable=False,
            server_default="completed",
        ),
        sa.Column(
            "account_id", sa.Integer(), sa.ForeignKey("accounts.id"), nullable=False
        ),
        sa.Column("to_account_id", sa.Integer(), sa.ForeignKey("accounts.id")),
        sa.Column("category_id", sa.Integer(), sa.ForeignKey("categories.id")),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.CheckConstraint(
            "amount_cents >= 0 OR type = 'adjustment'",
            name="ck_transactions_amount_positive",
        ),
    )
    op.create_index(
        "ix_transactions_user_date", "transactions", ["user_id", "transaction_date"]
    )
    op.create_index("ix_transactions_account", "transactions", ["account_id"])
    op.create_index("ix_transactions_to_account", "transactions", ["to_account_id"])
    op.create_index(
        "ix_transactions_user_category", "transactions", ["user_id", "category_id"]
    )

    op.create_table(
        "budgets",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("description", sa.Text()),
        sa.Column("category_id", sa.Integer(), sa.ForeignKey("categories.id")),
        sa.Column("amount_cents", sa.Integer(), nullable=False),
        sa.Column("spent_cents", sa.Integer(), nullable=False, server_default="0"),
        sa.Column(
            "period",
            sa.Enum("weekly", "monthly", "quarterly", "yearly", name="budgetperiod"),
            nullable=False,
        ),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("end_date", sa.Date()),
        sa.Column("color", sa.String(length=7), nullable=False),
        sa.Column(
            "alert_threshold", sa.Integer(), nullable=False, server_default="80"
        ),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column(
            "status",
            sa.Enum(
                "active", "inactive", "completed", "cancelled", name="budgetstatus"
            ),
            nullable=False,
            server_default="active",
        ),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.CheckConstraint("amount_cents >= 0", name="ck_budgets_amount_positive"),
        sa.CheckConstraint(
            "alert_threshold BETWEEN 0 AND 100", name="ck_budgets_alert_threshold"
        ),
    )
    op.create_index("ix_budgets_user_active", "budgets", ["user_id", "is_active"])

    op.create_table(
        "goals",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("description", sa.Text()),
        sa.Column("target_amount_cents", sa.Integer(), nullable=False),
        sa.Column(
            "current_amount_cents", sa.Integer(), nullable=False, server_default="0"
        ),
        sa.Column(
            "type",
            sa.Enum(
                "savings",
                "debt_payoff",
                "emergency_fund",
                "investment",
                "purchase",
                "travel",
                "education",
                "other",
                name="goaltype",
            ),
            nullable=False,
        ),
        sa.Column("target_date", sa.Date()),
        sa.Column("color", sa.String(length=7), nullable=False),
        sa.Column("icon", sa.String(length=50), nullable=False),
        sa.Column(
            "is_primary", sa.Boolean(), nullable=False, server_default=sa.false()
        ),
        sa.Column(
            "status",
            sa.Enum("active", "completed", "paused", "cancelled", name="goalstatus"),
            nullable=False,
            server_default="active",
        ),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.CheckConstraint(
            "target_amount_cents >= 0", name="ck_goals_target_positive"
        ),
    )
    op.create_index("ix_goals_user_status", "goals", ["user_id", "status"])


def downgrade():
    op.drop_index("ix_goals_user_status", table_name="goals")
    op.drop_table("goals")
    op.drop_index("ix_budgets_user_active", table_name="budgets")
    op.drop_table("budgets")
    op.drop_index("ix_transactions_user_category", table_name="transactions")
    op.drop_index("ix_transactions_to_account", table_name="transactions")
    op.drop_index("ix_transactions_account", table_name="transactions")
    op.drop_index("ix_transactions_user_date", table_name="transactions")
    op.drop_table("transactions")
    op.drop_index("ix_categories_user_type", table_name="categories")
    op.drop_table("categories")
    op.drop_index("ix_accounts_user_default", table_name="accounts")
    op.drop_table("accounts")
