"""initial schema: ledger, recurring rules and credit card bills

Revision ID: 3a7e91c0d2b4
Revises:
Create Date: 2026-10-19 09:00:00.000000
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "3a7e91c0d2b4"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        "account",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("type", sa.Enum("bank", "cash", "credit", "savings", name="account_type"), nullable=False),
        sa.Column("currency", sa.String(length=3), nullable=False),
        sa.Column("initial_balance", sa.Numeric(18, 4), nullable=False),
        sa.Column("color", sa.String(length=9), nullable=True),
        sa.Column("icon", sa.String(length=50), nullable=True),
        sa.Column("include_in_budget", sa.Boolean(), nullable=False),
        sa.Column("is_default", sa.Boolean(), nullable=False),
        sa.Column("billing_day", sa.Integer(), nullable=True),
        sa.Column("payment_day", sa.Integer(), nullable=True),
        sa.Column("linked_account_id", sa.Integer(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["linked_account_id"], ["account.id"], ondelete="SET NULL"),
        sa.CheckConstraint("linked_account_id IS NULL OR linked_account_id != id", name="ck_account_link_not_self"),
        sa.CheckConstraint("billing_day IS NULL OR (billing_day >= 1 AND billing_day <= 31)", name="ck_account_billing_day"),
        sa.CheckConstraint("payment_day IS NULL OR (payment_day >= 1 AND payment_day <= 31)", name="ck_account_payment_day"),
    )

    op.create_table(
        "category",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("type", sa.Enum("income", "expense", name="category_type"), nullable=False),
        sa.Column("color", sa.String(length=9), nullable=True),
        sa.Column("icon", sa.String(length=50), nullable=True),
        sa.Column("parent_id", sa.Integer(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["parent_id"], ["category.id"], ondelete="SET NULL"),
    )

    op.create_table(
        "transaction",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("account_id", sa.Integer(), nullable=False),
        sa.Column("category_id", sa.Integer(), nullable=True),
        sa.Column("amount", sa.Numeric(18, 4), nullable=False),
        sa.Column("type", sa.Enum("income", "expense", "transfer", name="txn_type"), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("transfer_to_account_id", sa.Integer(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["account_id"], ["account.id"]),
        sa.ForeignKeyConstraint(["category_id"], ["category.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["transfer_to_account_id"], ["account.id"]),
        sa.CheckConstraint("amount >= 0", name="ck_txn_amount_unsigned"),
        sa.CheckConstraint(
            "(type = 'transfer' AND transfer_to_account_id IS NOT NULL AND transfer_to_account_id != account_id)"
            " OR (type != 'transfer' AND transfer_to_account_id IS NULL)",
            name="ck_txn_transfer_target",
        ),
    )
    op.create_index("ix_txn_account_date", "transaction", ["account_id", "date"], unique=False)
    op.create_index("ix_txn_category", "transaction", ["category_id"], unique=False)

    op.create_table(
        "recurring_transaction",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=120), nullable=False),
        sa.Column("account_id", sa.Integer(), nullable=True),
        sa.Column("category_id", sa.Integer(), nullable=True),
        sa.Column("amount", sa.Numeric(18, 4), nullable=False),
        sa.Column("type", sa.Enum("income", "expense", name="recurring_type"), nullable=False),
        sa.Column(
            "frequency",
            sa.Enum(
                "daily", "weekly", "monthly", "bimonthly", "quarterly", "semiannually", "yearly",
                name="recurring_frequency",
            ),
            nullable=False,
        ),
        sa.Column("day_of_week", sa.Integer(), nullable=True),
        sa.Column("day_of_month", sa.Integer(), nullable=True),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("end_date", sa.Date(), nullable=True),
        sa.Column("active", sa.Boolean(), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(["account_id"], ["account.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["category_id"], ["category.id"], ondelete="SET NULL"),
        sa.CheckConstraint("amount >= 0", name="ck_recurring_amount_unsigned"),
        sa.CheckConstraint("day_of_week IS NULL OR (day_of_week >= 0 AND day_of_week <= 6)", name="ck_recurring_day_of_week"),
        sa.CheckConstraint("day_of_month IS NULL OR (day_of_month >= 1 AND day_of_month <= 31)", name="ck_recurring_day_of_month"),
        sa.CheckConstraint(
            "(frequency = 'daily' AND day_of_week IS NULL AND day_of_month IS NULL)"
            " OR (frequency = 'weekly' AND day_of_week IS NOT NULL AND day_of_month IS NULL)"
            " OR (frequency NOT IN ('daily', 'weekly') AND day_of_month IS NOT NULL AND day_of_week IS NULL)",
            name="ck_recurring_anchor",
        ),
        sa.CheckConstraint("end_date IS NULL OR end_date >= start_date", name="ck_recurring_window"),
    )

    op.create_table(
        "recurring_instance",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("recurring_id", sa.Integer(), nullable=False),
        sa.Column("due_date", sa.Date(), nullable=False),
        sa.Column("completed", sa.Boolean(), nullable=False),
        sa.Column("completed_at", sa.DateTime(), nullable=True),
        sa.Column("transaction_id", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["recurring_id"], ["recurring_transaction.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["transaction_id"], ["transaction.id"], ondelete="SET NULL"),
        sa.UniqueConstraint("recurring_id", "due_date", name="uq_recurring_instance_due"),
    )
    op.create_index("ix_recurring_instance_due", "recurring_instance", ["due_date"], unique=False)

    op.create_table(
        "recurring_exception",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("recurring_id", sa.Integer(), nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("amount", sa.Numeric(18, 4), nullable=True),
        sa.Column("note", sa.Text(), nullable=True),
        sa.Column("skip", sa.Boolean(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["recurring_id"], ["recurring_transaction.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("recurring_id", "date", name="uq_recurring_exception_date"),
    )
    op.create_index("ix_recurring_exception_date", "recurring_exception", ["date"], unique=False)

    op.create_table(
        "credit_card_bill",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("account_id", sa.Integer(), nullable=False),
        sa.Column("period_start", sa.Date(), nullable=False),
        sa.Column("period_end", sa.Date(), nullable=False),
        sa.Column("payment_date", sa.Date(), nullable=False),
        sa.Column("amount", sa.Numeric(18, 4), nullable=False),
        sa.Column("completed", sa.Boolean(), nullable=False),
        sa.Column("completed_at", sa.DateTime(), nullable=True),
        sa.Column("transaction_id", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["account_id"], ["account.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["transaction_id"], ["transaction.id"], ondelete="SET NULL"),
        sa.UniqueConstraint("account_id", "period_start", "period_end", name="uq_credit_card_bill_period"),
        sa.CheckConstraint("period_start <= period_end", name="ck_credit_card_bill_period"),
    )
    op.create_index("ix_credit_card_bill_payment_date", "credit_card_bill", ["payment_date"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_credit_card_bill_payment_date", table_name="credit_card_bill")
    op.drop_table("credit_card_bill")
    op.drop_index("ix_recurring_exception_date", table_name="recurring_exception")
    op.drop_table("recurring_exception")
    op.drop_index("ix_recurring_instance_due", table_name="recurring_instance")
    op.drop_table("recurring_instance")
    op.drop_table("recurring_transaction")
    op.drop_index("ix_txn_category", table_name="transaction")
    op.drop_index("ix_txn_account_date", table_name="transaction")
    op.drop_table("transaction")
    op.drop_table("category")
    op.drop_table("account")
