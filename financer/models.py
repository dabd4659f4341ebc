from __future__ import annotations

from datetime import date, datetime
from zoneinfo import ZoneInfo
from enum import Enum

from sqlalchemy import (
    CheckConstraint,
    Date,
    DateTime,
    Enum as SAEnum,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    Index,
    Boolean,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .core.config import settings
from .core.database import Base


try:
    LOCAL_ZONE = ZoneInfo(getattr(settings, "TIMEZONE", "Europe/Berlin"))
except Exception:
    LOCAL_ZONE = ZoneInfo("Europe/Berlin")


def now_local_naive() -> datetime:
    """Return naive datetime normalized to configured local timezone."""
    return datetime.now(LOCAL_ZONE).replace(tzinfo=None)


def today_local() -> date:
    return now_local_naive().date()


def _enum_values(enum_cls: type[Enum]) -> list[str]:
    return [member.value for member in enum_cls]


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(DateTime, default=now_local_naive, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=now_local_naive, onupdate=now_local_naive, nullable=False)


class AccountType(str, Enum):
    BANK = "bank"
    CASH = "cash"
    CREDIT = "credit"
    SAVINGS = "savings"


class Account(Base, TimestampMixin):
    """Money source/destination. Credit accounts carry billing anchors."""

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    type: Mapped[AccountType] = mapped_column(
        SAEnum(AccountType, name="account_type", values_callable=_enum_values),
        nullable=False,
    )
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="EUR")
    initial_balance: Mapped[float] = mapped_column(Numeric(18, 4), nullable=False, default=0)
    color: Mapped[str | None] = mapped_column(String(9))
    icon: Mapped[str | None] = mapped_column(String(50))
    include_in_budget: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    is_default: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    # billing_day closes the statement, payment_day is when it is paid (both 1-31)
    billing_day: Mapped[int | None] = mapped_column(Integer)
    payment_day: Mapped[int | None] = mapped_column(Integer)
    linked_account_id: Mapped[int | None] = mapped_column(ForeignKey("account.id", ondelete="SET NULL"))

    linked_account: Mapped["Account | None"] = relationship(
        "Account",
        remote_side="Account.id",
        foreign_keys=[linked_account_id],
    )

    __table_args__ = (
        CheckConstraint("linked_account_id IS NULL OR linked_account_id != id", name="ck_account_link_not_self"),
        CheckConstraint("billing_day IS NULL OR (billing_day >= 1 AND billing_day <= 31)", name="ck_account_billing_day"),
        CheckConstraint("payment_day IS NULL OR (payment_day >= 1 AND payment_day <= 31)", name="ck_account_payment_day"),
    )


class CategoryType(str, Enum):
    INCOME = "income"
    EXPENSE = "expense"


class Category(Base, TimestampMixin):
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    type: Mapped[CategoryType] = mapped_column(
        SAEnum(CategoryType, name="category_type", values_callable=_enum_values),
        nullable=False,
    )
    color: Mapped[str | None] = mapped_column(String(9))
    icon: Mapped[str | None] = mapped_column(String(50))
    parent_id: Mapped[int | None] = mapped_column(ForeignKey("category.id", ondelete="SET NULL"))


class TxnType(str, Enum):
    INCOME = "income"
    EXPENSE = "expense"
    TRANSFER = "transfer"


class Transaction(Base, TimestampMixin):
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    account_id: Mapped[int] = mapped_column(ForeignKey("account.id"), nullable=False)
    category_id: Mapped[int | None] = mapped_column(ForeignKey("category.id", ondelete="SET NULL"))
    # Always positive; direction comes from ``type``
    amount: Mapped[float] = mapped_column(Numeric(18, 4), nullable=False)
    type: Mapped[TxnType] = mapped_column(
        SAEnum(TxnType, name="txn_type", values_callable=_enum_values),
        nullable=False,
    )
    description: Mapped[str | None] = mapped_column(Text)
    date: Mapped[date] = mapped_column(Date, nullable=False)
    notes: Mapped[str | None] = mapped_column(Text)
    transfer_to_account_id: Mapped[int | None] = mapped_column(ForeignKey("account.id"))

    account: Mapped["Account"] = relationship("Account", foreign_keys=[account_id])
    transfer_to_account: Mapped["Account | None"] = relationship("Account", foreign_keys=[transfer_to_account_id])

    __table_args__ = (
        CheckConstraint("amount >= 0", name="ck_txn_amount_unsigned"),
        CheckConstraint(
            "(type = 'transfer' AND transfer_to_account_id IS NOT NULL AND transfer_to_account_id != account_id)"
            " OR (type != 'transfer' AND transfer_to_account_id IS NULL)",
            name="ck_txn_transfer_target",
        ),
        Index("ix_txn_account_date", "account_id", "date"),
        Index("ix_txn_category", "category_id"),
    )


class RecurringFrequency(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    BIMONTHLY = "bimonthly"
    QUARTERLY = "quarterly"
    SEMIANNUALLY = "semiannually"
    YEARLY = "yearly"

    @property
    def month_interval(self) -> int | None:
        """Months between occurrences for day-of-month anchored frequencies."""
        return _MONTH_INTERVALS.get(self)

    @property
    def anchor(self) -> str | None:
        if self is RecurringFrequency.WEEKLY:
            return "day_of_week"
        if self in _MONTH_INTERVALS:
            return "day_of_month"
        return None


_MONTH_INTERVALS: dict[RecurringFrequency, int] = {
    RecurringFrequency.MONTHLY: 1,
    RecurringFrequency.BIMONTHLY: 2,
    RecurringFrequency.QUARTERLY: 3,
    RecurringFrequency.SEMIANNUALLY: 6,
    RecurringFrequency.YEARLY: 12,
}


class RecurringType(str, Enum):
    INCOME = "income"
    EXPENSE = "expense"


class RecurringRule(Base, TimestampMixin):
    __tablename__ = "recurring_transaction"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    account_id: Mapped[int | None] = mapped_column(ForeignKey("account.id", ondelete="SET NULL"))
    category_id: Mapped[int | None] = mapped_column(ForeignKey("category.id", ondelete="SET NULL"))
    amount: Mapped[float] = mapped_column(Numeric(18, 4), nullable=False)
    type: Mapped[RecurringType] = mapped_column(
        SAEnum(RecurringType, name="recurring_type", values_callable=_enum_values),
        nullable=False,
    )
    frequency: Mapped[RecurringFrequency] = mapped_column(
        SAEnum(RecurringFrequency, name="recurring_frequency", values_callable=_enum_values),
        nullable=False,
    )
    day_of_week: Mapped[int | None] = mapped_column(Integer)  # 0=Sun .. 6=Sat
    day_of_month: Mapped[int | None] = mapped_column(Integer)  # 1-31, clamped per month
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date | None] = mapped_column(Date)
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    account: Mapped["Account | None"] = relationship("Account", foreign_keys=[account_id])
    category: Mapped["Category | None"] = relationship("Category", foreign_keys=[category_id])
    instances: Mapped[list["RecurringInstance"]] = relationship(
        back_populates="rule",
        cascade="all, delete-orphan",
    )
    exceptions: Mapped[list["RecurringException"]] = relationship(
        back_populates="rule",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        CheckConstraint("amount >= 0", name="ck_recurring_amount_unsigned"),
        CheckConstraint("day_of_week IS NULL OR (day_of_week >= 0 AND day_of_week <= 6)", name="ck_recurring_day_of_week"),
        CheckConstraint("day_of_month IS NULL OR (day_of_month >= 1 AND day_of_month <= 31)", name="ck_recurring_day_of_month"),
        CheckConstraint(
            "(frequency = 'daily' AND day_of_week IS NULL AND day_of_month IS NULL)"
            " OR (frequency = 'weekly' AND day_of_week IS NOT NULL AND day_of_month IS NULL)"
            " OR (frequency NOT IN ('daily', 'weekly') AND day_of_month IS NOT NULL AND day_of_week IS NULL)",
            name="ck_recurring_anchor",
        ),
        CheckConstraint("end_date IS NULL OR end_date >= start_date", name="ck_recurring_window"),
    )


class RecurringInstance(Base):
    __tablename__ = "recurring_instance"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    recurring_id: Mapped[int] = mapped_column(
        ForeignKey("recurring_transaction.id", ondelete="CASCADE"),
        nullable=False,
    )
    due_date: Mapped[date] = mapped_column(Date, nullable=False)
    completed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime)
    transaction_id: Mapped[int | None] = mapped_column(ForeignKey("transaction.id", ondelete="SET NULL"))
    created_at: Mapped[datetime] = mapped_column(DateTime, default=now_local_naive, nullable=False)

    rule: Mapped["RecurringRule"] = relationship(back_populates="instances")
    transaction: Mapped["Transaction | None"] = relationship("Transaction", foreign_keys=[transaction_id])

    __table_args__ = (
        UniqueConstraint("recurring_id", "due_date", name="uq_recurring_instance_due"),
        Index("ix_recurring_instance_due", "due_date"),
    )


class RecurringException(Base):
    __tablename__ = "recurring_exception"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    recurring_id: Mapped[int] = mapped_column(
        ForeignKey("recurring_transaction.id", ondelete="CASCADE"),
        nullable=False,
    )
    date: Mapped[date] = mapped_column(Date, nullable=False)
    amount: Mapped[float | None] = mapped_column(Numeric(18, 4))
    note: Mapped[str | None] = mapped_column(Text)
    skip: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=now_local_naive, nullable=False)

    rule: Mapped["RecurringRule"] = relationship(back_populates="exceptions")

    __table_args__ = (
        UniqueConstraint("recurring_id", "date", name="uq_recurring_exception_date"),
        Index("ix_recurring_exception_date", "date"),
    )


class CreditCardBill(Base):
    __tablename__ = "credit_card_bill"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    account_id: Mapped[int] = mapped_column(ForeignKey("account.id", ondelete="CASCADE"), nullable=False)
    period_start: Mapped[date] = mapped_column(Date, nullable=False)
    period_end: Mapped[date] = mapped_column(Date, nullable=False)
    payment_date: Mapped[date] = mapped_column(Date, nullable=False)
    amount: Mapped[float] = mapped_column(Numeric(18, 4), nullable=False)
    completed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime)
    transaction_id: Mapped[int | None] = mapped_column(ForeignKey("transaction.id", ondelete="SET NULL"))
    created_at: Mapped[datetime] = mapped_column(DateTime, default=now_local_naive, nullable=False)

    account: Mapped["Account"] = relationship("Account", foreign_keys=[account_id])
    transaction: Mapped["Transaction | None"] = relationship("Transaction", foreign_keys=[transaction_id])

    __table_args__ = (
        UniqueConstraint("account_id", "period_start", "period_end", name="uq_credit_card_bill_period"),
        CheckConstraint("period_start <= period_end", name="ck_credit_card_bill_period"),
        Index("ix_credit_card_bill_payment_date", "payment_date"),
    )
