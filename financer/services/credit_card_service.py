from __future__ import annotations

import logging
from datetime import date
from typing import NamedTuple, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from financer import models, schemas
from financer.core.database import unit_of_work
from financer.core.errors import NotFoundError, ValidationError
from financer.services.ledger_service import LedgerService
from financer.stores import AccountStore, BillStore, LedgerStore
from financer.utils.schedule import add_months, clamp_day, validate_year_month


logger = logging.getLogger(__name__)


class BillingPeriod(NamedTuple):
    period_start: date
    period_end: date


def _check_anchor_day(name: str, value: int) -> None:
    if value is None or not 1 <= value <= 31:
        raise ValidationError(f"{name} must be between 1 and 31")


def billing_period(billing_day: int, year: int, month: int) -> BillingPeriod:
    """Statement period closing in (year, month).

    The period ends on ``billing_day`` of the target month and starts the day
    after ``billing_day`` of the previous month, both clamped to month length.
    Billing day 20 for March 2024 gives 2024-02-21 .. 2024-03-20.
    """
    _check_anchor_day("billing_day", billing_day)
    validate_year_month(year, month)
    prev_year, prev_month = add_months(year, month, -1)
    if prev_year < 1:
        raise ValidationError("Billing period precedes the supported calendar")
    period_end = clamp_day(year, month, billing_day)
    period_start = clamp_day(prev_year, prev_month, billing_day + 1)
    return BillingPeriod(period_start, period_end)


def payment_date(payment_day: int, year: int, month: int) -> date:
    _check_anchor_day("payment_day", payment_day)
    validate_year_month(year, month)
    return clamp_day(year, month, payment_day)


class CreditCardService:
    """Derive monthly card bills from card expenses and settle them."""

    def __init__(self, db: Session) -> None:
        self.db = db
        self.accounts = AccountStore(db)
        self.bills = BillStore(db)
        self.ledger_store = LedgerStore(db)
        self.ledger = LedgerService(db)

    def ensure_bills_for_month(self, year: int, month: int) -> list[schemas.CreditCardBillOut]:
        validate_year_month(year, month)
        views: list[schemas.CreditCardBillOut] = []
        with unit_of_work(self.db):
            for card in self.accounts.list_billable_credit_accounts():
                bill = self._ensure_bill(card, year, month)
                if bill is not None:
                    views.append(self._bill_view(card, bill))
        views.sort(key=lambda v: (v.payment_date, v.id))
        return views

    def _ensure_bill(self, card: models.Account, year: int, month: int) -> Optional[models.CreditCardBill]:
        period = billing_period(card.billing_day, year, month)
        due = payment_date(card.payment_day, year, month)
        total = self.ledger_store.sum_expenses(card.id, period.period_start, period.period_end)
        if total == 0:
            return None

        bill = self.bills.get_by_period(card.id, period.period_start, period.period_end)
        if bill is None:
            try:
                with self.db.begin_nested():
                    bill = self.bills.add(
                        models.CreditCardBill(
                            account_id=card.id,
                            period_start=period.period_start,
                            period_end=period.period_end,
                            payment_date=due,
                            amount=total,
                        )
                    )
                logger.info("Created bill for card %s (%s .. %s): %s", card.id, period.period_start, period.period_end, total)
                return bill
            except IntegrityError:
                bill = self.bills.get_by_period(card.id, period.period_start, period.period_end)
                if bill is None:
                    raise

        # Completed bills keep the amount they were paid with
        if not bill.completed and round(float(bill.amount), 4) != total:
            bill.amount = total
            bill.payment_date = due
            self.db.flush()
        return bill

    def _bill_view(self, card: models.Account, bill: models.CreditCardBill) -> schemas.CreditCardBillOut:
        linked = card.linked_account
        return schemas.CreditCardBillOut(
            id=bill.id,
            account_id=bill.account_id,
            period_start=bill.period_start,
            period_end=bill.period_end,
            payment_date=bill.payment_date,
            amount=float(bill.amount),
            completed=bool(bill.completed),
            completed_at=bill.completed_at,
            transaction_id=bill.transaction_id,
            created_at=bill.created_at,
            account_name=card.name,
            linked_account_id=linked.id if linked is not None else None,
            linked_account_name=linked.name if linked is not None else None,
        )

    def toggle_bill(self, bill_id: int) -> schemas.ToggleResult:
        bill = self.bills.get(bill_id)
        if bill is None:
            raise NotFoundError("CreditCardBill", bill_id)

        with unit_of_work(self.db):
            if not bill.completed:
                txn = self._record_payment(bill)
                bill.transaction_id = txn.id if txn is not None else None
                bill.completed = True
                bill.completed_at = models.now_local_naive()
            else:
                linked_id = bill.transaction_id
                bill.transaction_id = None
                bill.completed = False
                bill.completed_at = None
                self.db.flush()
                self.ledger.remove_entry(linked_id)

        self.db.refresh(bill)
        return schemas.ToggleResult(completed=bool(bill.completed), transaction_id=bill.transaction_id)

    def _record_payment(self, bill: models.CreditCardBill) -> Optional[models.Transaction]:
        card = self.accounts.get(bill.account_id)
        if card is None:
            logger.warning("Bill %s has no card account; completing without a transfer", bill.id)
            return None
        if card.linked_account_id is None:
            logger.info("Card %s has no linked account; completing bill %s without a transfer", card.id, bill.id)
            return None
        return self.ledger.record_entry(
            account_id=card.linked_account_id,
            amount=float(bill.amount),
            txn_type=models.TxnType.TRANSFER,
            on=bill.payment_date,
            description=f"Credit card bill {card.name}",
            transfer_to_account_id=card.id,
        )
