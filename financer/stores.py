"""
Row-level persistence collaborators used by the scheduling services.

Each store wraps the injected ``Session`` and is keyed by the unique
constraints of its table. Stores only read and stage writes (``add`` /
``flush``); committing is the calling service's unit of work.
"""

from __future__ import annotations

from datetime import date
from typing import Optional

from sqlalchemy import func
from sqlalchemy.orm import Session, selectinload

from financer import models


class RuleStore:
    def __init__(self, db: Session) -> None:
        self.db = db

    def get(self, rule_id: int) -> Optional[models.RecurringRule]:
        return (
            self.db.query(models.RecurringRule)
            .options(selectinload(models.RecurringRule.account), selectinload(models.RecurringRule.category))
            .filter(models.RecurringRule.id == rule_id)
            .first()
        )

    def list_all(self) -> list[models.RecurringRule]:
        return (
            self.db.query(models.RecurringRule)
            .options(selectinload(models.RecurringRule.account), selectinload(models.RecurringRule.category))
            .order_by(models.RecurringRule.name.asc(), models.RecurringRule.id.asc())
            .all()
        )

    def list_active_overlapping(self, window_start: date, window_end: date) -> list[models.RecurringRule]:
        return (
            self.db.query(models.RecurringRule)
            .options(selectinload(models.RecurringRule.account), selectinload(models.RecurringRule.category))
            .filter(
                models.RecurringRule.active.is_(True),
                models.RecurringRule.start_date <= window_end,
                (models.RecurringRule.end_date.is_(None)) | (models.RecurringRule.end_date >= window_start),
            )
            .order_by(models.RecurringRule.id.asc())
            .all()
        )

    def add(self, rule: models.RecurringRule) -> models.RecurringRule:
        self.db.add(rule)
        self.db.flush()
        return rule

    def update_amount(self, rule: models.RecurringRule, amount: float) -> None:
        rule.amount = abs(amount)

    def set_active(self, rule: models.RecurringRule, active: bool) -> None:
        rule.active = bool(active)

    def delete(self, rule: models.RecurringRule) -> None:
        # ORM cascade removes instances and exceptions
        self.db.delete(rule)


class ExceptionStore:
    def __init__(self, db: Session) -> None:
        self.db = db

    def list_for_rule(
        self,
        recurring_id: int,
        *,
        date_from: date | None = None,
        date_to: date | None = None,
    ) -> list[models.RecurringException]:
        q = self.db.query(models.RecurringException).filter(models.RecurringException.recurring_id == recurring_id)
        if date_from is not None:
            q = q.filter(models.RecurringException.date >= date_from)
        if date_to is not None:
            q = q.filter(models.RecurringException.date <= date_to)
        return q.order_by(models.RecurringException.date.asc()).all()

    def get_by_date(self, recurring_id: int, on: date) -> Optional[models.RecurringException]:
        return (
            self.db.query(models.RecurringException)
            .filter(
                models.RecurringException.recurring_id == recurring_id,
                models.RecurringException.date == on,
            )
            .first()
        )

    def get(self, recurring_id: int, exception_id: int) -> Optional[models.RecurringException]:
        return (
            self.db.query(models.RecurringException)
            .filter(
                models.RecurringException.id == exception_id,
                models.RecurringException.recurring_id == recurring_id,
            )
            .first()
        )

    def add(self, item: models.RecurringException) -> models.RecurringException:
        self.db.add(item)
        self.db.flush()
        return item

    def delete(self, item: models.RecurringException) -> None:
        self.db.delete(item)

    def delete_from(self, recurring_id: int, threshold: date) -> int:
        """Bulk-delete exceptions dated on or after ``threshold``."""
        return (
            self.db.query(models.RecurringException)
            .filter(
                models.RecurringException.recurring_id == recurring_id,
                models.RecurringException.date >= threshold,
            )
            .delete(synchronize_session="fetch")
        )


class InstanceStore:
    def __init__(self, db: Session) -> None:
        self.db = db

    def get(self, instance_id: int) -> Optional[models.RecurringInstance]:
        return self.db.query(models.RecurringInstance).filter(models.RecurringInstance.id == instance_id).first()

    def get_by_due_date(self, recurring_id: int, due_date: date) -> Optional[models.RecurringInstance]:
        return (
            self.db.query(models.RecurringInstance)
            .filter(
                models.RecurringInstance.recurring_id == recurring_id,
                models.RecurringInstance.due_date == due_date,
            )
            .first()
        )

    def add(self, item: models.RecurringInstance) -> models.RecurringInstance:
        self.db.add(item)
        self.db.flush()
        return item


class BillStore:
    def __init__(self, db: Session) -> None:
        self.db = db

    def get(self, bill_id: int) -> Optional[models.CreditCardBill]:
        return self.db.query(models.CreditCardBill).filter(models.CreditCardBill.id == bill_id).first()

    def get_by_period(self, account_id: int, period_start: date, period_end: date) -> Optional[models.CreditCardBill]:
        return (
            self.db.query(models.CreditCardBill)
            .filter(
                models.CreditCardBill.account_id == account_id,
                models.CreditCardBill.period_start == period_start,
                models.CreditCardBill.period_end == period_end,
            )
            .first()
        )

    def add(self, item: models.CreditCardBill) -> models.CreditCardBill:
        self.db.add(item)
        self.db.flush()
        return item


class LedgerStore:
    def __init__(self, db: Session) -> None:
        self.db = db

    def get(self, txn_id: int) -> Optional[models.Transaction]:
        return self.db.query(models.Transaction).filter(models.Transaction.id == txn_id).first()

    def add(self, txn: models.Transaction) -> models.Transaction:
        self.db.add(txn)
        self.db.flush()
        return txn

    def delete(self, txn: models.Transaction) -> None:
        self.db.delete(txn)

    def sum_expenses(self, account_id: int, period_start: date, period_end: date) -> float:
        total = (
            self.db.query(func.coalesce(func.sum(models.Transaction.amount), 0))
            .filter(
                models.Transaction.account_id == account_id,
                models.Transaction.type == models.TxnType.EXPENSE,
                models.Transaction.date >= period_start,
                models.Transaction.date <= period_end,
            )
            .scalar()
        )
        return round(float(total or 0), 4)


class AccountStore:
    def __init__(self, db: Session) -> None:
        self.db = db

    def get(self, account_id: int) -> Optional[models.Account]:
        return self.db.query(models.Account).filter(models.Account.id == account_id).first()

    def list_billable_credit_accounts(self) -> list[models.Account]:
        return (
            self.db.query(models.Account)
            .options(selectinload(models.Account.linked_account))
            .filter(
                models.Account.type == models.AccountType.CREDIT,
                models.Account.billing_day.isnot(None),
                models.Account.payment_day.isnot(None),
            )
            .order_by(models.Account.id.asc())
            .all()
        )


class CategoryStore:
    def __init__(self, db: Session) -> None:
        self.db = db

    def get(self, category_id: int) -> Optional[models.Category]:
        return self.db.query(models.Category).filter(models.Category.id == category_id).first()
