from __future__ import annotations

from datetime import date

import pytest

from financer import models
from financer.core.errors import NotFoundError, ValidationError
from financer.services import CreditCardService, billing_period, payment_date


def test_billing_period_spans_previous_month():
    period = billing_period(20, 2024, 3)
    assert period.period_start == date(2024, 2, 21)
    assert period.period_end == date(2024, 3, 20)


def test_billing_period_crosses_year():
    assert billing_period(20, 2024, 1) == (date(2023, 12, 21), date(2024, 1, 20))


def test_billing_period_clamps_both_ends():
    period = billing_period(31, 2024, 2)
    assert period.period_end == date(2024, 2, 29)
    assert period.period_start == date(2024, 1, 31)
    assert billing_period(30, 2023, 3) == (date(2023, 2, 28), date(2023, 3, 30))


def test_payment_date_clamps():
    assert payment_date(5, 2024, 3) == date(2024, 3, 5)
    assert payment_date(31, 2024, 2) == date(2024, 2, 29)


@pytest.mark.parametrize("day", [0, 32, None])
def test_anchor_days_are_validated(day):
    with pytest.raises(ValidationError):
        billing_period(day, 2024, 3)
    with pytest.raises(ValidationError):
        payment_date(day, 2024, 3)


def test_bill_sums_expenses_in_period(db_session, credit_card, add_expense):
    add_expense(credit_card, 7, date(2024, 2, 20))
    add_expense(credit_card, 100, date(2024, 2, 25))
    add_expense(credit_card, 50.5, date(2024, 3, 20))
    add_expense(credit_card, 999, date(2024, 3, 21))

    bills = CreditCardService(db_session).ensure_bills_for_month(2024, 3)

    assert len(bills) == 1
    bill = bills[0]
    assert bill.amount == 150.5
    assert bill.period_start == date(2024, 2, 21)
    assert bill.period_end == date(2024, 3, 20)
    assert bill.payment_date == date(2024, 3, 5)
    assert bill.account_name == "Visa"
    assert bill.linked_account_name == "Checking"
    assert bill.completed is False


def test_zero_spend_creates_no_bill(db_session, credit_card):
    assert CreditCardService(db_session).ensure_bills_for_month(2024, 5) == []
    assert db_session.query(models.CreditCardBill).count() == 0


def test_bill_is_reused_and_refreshed_while_pending(db_session, credit_card, add_expense):
    svc = CreditCardService(db_session)
    add_expense(credit_card, 100, date(2024, 3, 1))
    first = svc.ensure_bills_for_month(2024, 3)[0]

    add_expense(credit_card, 25, date(2024, 3, 2))
    second = svc.ensure_bills_for_month(2024, 3)[0]

    assert second.id == first.id
    assert second.amount == 125.0
    assert db_session.query(models.CreditCardBill).count() == 1


def test_completed_bill_is_frozen(db_session, credit_card, add_expense):
    svc = CreditCardService(db_session)
    add_expense(credit_card, 100, date(2024, 3, 1))
    bill = svc.ensure_bills_for_month(2024, 3)[0]
    svc.toggle_bill(bill.id)

    add_expense(credit_card, 40, date(2024, 3, 3))
    again = svc.ensure_bills_for_month(2024, 3)[0]

    assert again.id == bill.id
    assert again.amount == 100.0
    assert again.completed is True


def test_toggle_bill_books_transfer_from_linked_account(db_session, credit_card, bank_account, add_expense):
    svc = CreditCardService(db_session)
    add_expense(credit_card, 320, date(2024, 3, 10))
    bill = svc.ensure_bills_for_month(2024, 3)[0]

    done = svc.toggle_bill(bill.id)
    assert done.completed is True
    txn = db_session.get(models.Transaction, done.transaction_id)
    assert txn.type is models.TxnType.TRANSFER
    assert txn.account_id == bank_account.id
    assert txn.transfer_to_account_id == credit_card.id
    assert txn.date == date(2024, 3, 5)
    assert float(txn.amount) == 320.0
    assert txn.description == "Credit card bill Visa"

    undone = svc.toggle_bill(bill.id)
    assert undone.completed is False
    assert undone.transaction_id is None
    assert db_session.get(models.Transaction, done.transaction_id) is None
    # the card expense itself is untouched
    assert db_session.query(models.Transaction).count() == 1


def test_toggle_bill_without_linked_account(db_session, add_expense):
    card = models.Account(name="Store card", type=models.AccountType.CREDIT, billing_day=15, payment_day=1)
    db_session.add(card)
    db_session.commit()
    add_expense(card, 60, date(2024, 3, 1))
    svc = CreditCardService(db_session)
    bill = svc.ensure_bills_for_month(2024, 3)[0]
    assert bill.linked_account_id is None

    result = svc.toggle_bill(bill.id)
    assert result.completed is True
    assert result.transaction_id is None


def test_bills_sorted_by_payment_date(db_session, credit_card, add_expense):
    early = models.Account(name="Amex", type=models.AccountType.CREDIT, billing_day=20, payment_day=1)
    db_session.add(early)
    db_session.commit()
    add_expense(credit_card, 10, date(2024, 3, 1))
    add_expense(early, 20, date(2024, 3, 1))

    bills = CreditCardService(db_session).ensure_bills_for_month(2024, 3)
    assert [b.account_name for b in bills] == ["Amex", "Visa"]


def test_cards_without_anchors_are_ignored(db_session, add_expense):
    card = models.Account(name="No schedule", type=models.AccountType.CREDIT)
    db_session.add(card)
    db_session.commit()
    add_expense(card, 80, date(2024, 3, 1))
    assert CreditCardService(db_session).ensure_bills_for_month(2024, 3) == []


def test_toggle_unknown_bill(db_session):
    with pytest.raises(NotFoundError):
        CreditCardService(db_session).toggle_bill(4242)
