from __future__ import annotations

from datetime import date

import pytest

from financer import models
from financer.core.errors import ConflictError, NotFoundError, ValidationError
from financer.services import RecurringService


def _monthly_rule(svc: RecurringService, account=None, **overrides) -> models.RecurringRule:
    data = {
        "name": "Rent",
        "account_id": account.id if account is not None else None,
        "amount": 850,
        "type": "expense",
        "frequency": "monthly",
        "day_of_month": 31,
        "start_date": date(2024, 1, 1),
    }
    data.update(overrides)
    return svc.create_rule(data)


def _instance_rows(db_session, rule_id: int) -> list[models.RecurringInstance]:
    return (
        db_session.query(models.RecurringInstance)
        .filter(models.RecurringInstance.recurring_id == rule_id)
        .order_by(models.RecurringInstance.due_date)
        .all()
    )


def test_create_rule_normalizes_amount_and_anchor(db_session):
    svc = RecurringService(db_session)
    rule = svc.create_rule(
        {
            "name": "  Gym  ",
            "amount": -30,
            "type": "expense",
            "frequency": "weekly",
            "day_of_week": 2,
            "day_of_month": 14,
            "start_date": date(2024, 1, 1),
        }
    )
    assert rule.name == "Gym"
    assert float(rule.amount) == 30.0
    assert rule.day_of_week == 2
    assert rule.day_of_month is None
    assert rule.active is True


def test_create_rule_rejects_bad_input(db_session):
    svc = RecurringService(db_session)
    with pytest.raises(ValidationError):
        _monthly_rule(svc, frequency="weekly", day_of_month=None)
    with pytest.raises(ValidationError):
        _monthly_rule(svc, end_date=date(2023, 12, 31))
    with pytest.raises(ValidationError):
        _monthly_rule(svc, name="   ")
    assert db_session.query(models.RecurringRule).count() == 0


def test_update_rule_revalidates_merged_fields(db_session, bank_account):
    svc = RecurringService(db_session)
    rule = _monthly_rule(svc, bank_account)
    with pytest.raises(ValidationError):
        svc.update_rule(rule.id, {"frequency": "weekly"})

    updated = svc.update_rule(rule.id, {"frequency": "weekly", "day_of_week": 5, "amount": 20})
    assert updated.frequency is models.RecurringFrequency.WEEKLY
    assert updated.day_of_month is None
    assert float(updated.amount) == 20.0


def test_get_missing_rule_raises_not_found(db_session):
    with pytest.raises(NotFoundError):
        RecurringService(db_session).get_rule(999)


def test_month_instances_are_idempotent(db_session, bank_account):
    svc = RecurringService(db_session)
    rule = _monthly_rule(svc, bank_account)

    first = svc.list_instances_for_month(2024, 2)
    second = svc.list_instances_for_month(2024, 2)

    assert [i.due_date for i in first] == [date(2024, 2, 29)]
    assert [i.id for i in first] == [i.id for i in second]
    assert len(_instance_rows(db_session, rule.id)) == 1
    assert first[0].account_name == "Checking"
    assert first[0].amount == 850.0
    assert first[0].completed is False


def test_instances_are_sorted_across_rules(db_session, bank_account):
    svc = RecurringService(db_session)
    _monthly_rule(svc, bank_account, name="Late", day_of_month=25)
    _monthly_rule(svc, bank_account, name="Early", day_of_month=3)
    views = svc.list_instances_for_month(2024, 3)
    assert [v.name for v in views] == ["Early", "Late"]


def test_inactive_rule_produces_no_instances(db_session, bank_account):
    svc = RecurringService(db_session)
    rule = _monthly_rule(svc, bank_account)
    svc.set_active(rule.id, False)
    assert svc.list_instances_for_month(2024, 3) == []
    assert _instance_rows(db_session, rule.id) == []


def test_concurrent_insert_is_reconciled(db_session, bank_account, monkeypatch):
    svc = RecurringService(db_session)
    rule = _monthly_rule(svc, bank_account, day_of_month=1)

    # Another request already materialized the date
    existing = models.RecurringInstance(recurring_id=rule.id, due_date=date(2024, 3, 1))
    db_session.add(existing)
    db_session.commit()

    real_lookup = svc.instances.get_by_due_date
    calls: list[date] = []

    def stale_lookup(recurring_id, due_date):
        calls.append(due_date)
        if len(calls) == 1:
            return None
        return real_lookup(recurring_id, due_date)

    monkeypatch.setattr(svc.instances, "get_by_due_date", stale_lookup)
    views = svc.list_instances_for_month(2024, 3)

    assert [v.id for v in views] == [existing.id]
    assert len(_instance_rows(db_session, rule.id)) == 1


def test_exception_override_and_duplicate(db_session, bank_account):
    svc = RecurringService(db_session)
    rule = _monthly_rule(svc, bank_account)
    exc = svc.create_exception(rule.id, {"date": date(2024, 2, 29), "amount": 900, "note": "increase"})

    view = svc.list_instances_for_month(2024, 2)[0]
    assert view.amount == 900.0
    assert view.original_amount == 850.0
    assert view.is_modified is True
    assert view.exception_id == exc.id
    assert view.exception_note == "increase"

    with pytest.raises(ConflictError):
        svc.create_exception(rule.id, {"date": date(2024, 2, 29), "amount": 1})


def test_skipped_date_is_hidden_but_row_kept(db_session, bank_account):
    svc = RecurringService(db_session)
    rule = _monthly_rule(svc, bank_account)
    svc.create_exception(rule.id, {"date": date(2024, 3, 31), "skip": True})

    assert svc.list_instances_for_month(2024, 3) == []
    rows = _instance_rows(db_session, rule.id)
    assert [r.due_date for r in rows] == [date(2024, 3, 31)]
    assert rows[0].completed is False


def test_update_and_delete_exception(db_session, bank_account):
    svc = RecurringService(db_session)
    rule = _monthly_rule(svc, bank_account)
    exc = svc.create_exception(rule.id, {"date": date(2024, 1, 31), "amount": 700})

    updated = svc.update_exception(rule.id, exc.id, {"skip": True})
    assert updated.skip is True
    assert float(updated.amount) == 700.0

    svc.delete_exception(rule.id, exc.id)
    assert svc.list_exceptions(rule.id) == []
    with pytest.raises(NotFoundError):
        svc.delete_exception(rule.id, exc.id)


def test_amount_from_date_clears_future_exceptions(db_session, bank_account):
    svc = RecurringService(db_session)
    rule = _monthly_rule(svc, bank_account)
    svc.create_exception(rule.id, {"date": date(2024, 2, 29), "amount": 900})
    svc.create_exception(rule.id, {"date": date(2024, 4, 30), "amount": 950})

    updated = svc.set_amount_from_date(rule.id, -1000, date(2024, 3, 1))

    assert float(updated.amount) == 1000.0
    assert [e.date for e in svc.list_exceptions(rule.id)] == [date(2024, 2, 29)]
    assert svc.list_instances_for_month(2024, 2)[0].amount == 900.0
    assert svc.list_instances_for_month(2024, 4)[0].amount == 1000.0


def test_occurrences_include_skipped_dates(db_session, bank_account):
    svc = RecurringService(db_session)
    rule = _monthly_rule(svc, bank_account)
    svc.create_exception(rule.id, {"date": date(2024, 2, 29), "skip": True})

    items = svc.list_occurrences(rule.id, date(2024, 1, 1), date(2024, 3, 31))
    assert [o.date for o in items] == [date(2024, 1, 31), date(2024, 2, 29), date(2024, 3, 31)]
    assert items[1].is_skipped is True
    assert items[1].effective_amount == 0.0
    assert items[1].exception is not None
    # read-only: nothing materialized
    assert _instance_rows(db_session, rule.id) == []


def test_toggle_round_trip_manages_ledger_entry(db_session, bank_account, expense_category):
    svc = RecurringService(db_session)
    rule = _monthly_rule(svc, bank_account, category_id=expense_category.id, day_of_month=1)
    svc.create_exception(rule.id, {"date": date(2024, 3, 1), "amount": 875})
    instance_id = svc.list_instances_for_month(2024, 3)[0].id

    done = svc.toggle_instance(instance_id, today=date(2024, 3, 2))
    assert done.completed is True
    txn = db_session.get(models.Transaction, done.transaction_id)
    assert txn is not None
    assert txn.account_id == bank_account.id
    assert txn.category_id == expense_category.id
    assert txn.type is models.TxnType.EXPENSE
    assert float(txn.amount) == 875.0
    assert txn.date == date(2024, 3, 2)
    assert txn.description == "Rent"

    undone = svc.toggle_instance(instance_id)
    assert undone.completed is False
    assert undone.transaction_id is None
    assert db_session.get(models.Transaction, done.transaction_id) is None
    instance = db_session.get(models.RecurringInstance, instance_id)
    assert instance.completed_at is None

    again = svc.toggle_instance(instance_id, today=date(2024, 3, 5))
    assert again.completed is True
    assert again.transaction_id is not None
    assert db_session.query(models.Transaction).count() == 1


def test_toggle_without_account_completes_without_entry(db_session):
    svc = RecurringService(db_session)
    rule = _monthly_rule(svc, None)
    instance_id = svc.list_instances_for_month(2024, 1)[0].id

    result = svc.toggle_instance(instance_id)
    assert result.completed is True
    assert result.transaction_id is None
    assert db_session.query(models.Transaction).count() == 0
    assert db_session.get(models.RecurringInstance, instance_id).completed_at is not None
    assert rule.account_id is None


def test_toggle_unknown_instance(db_session):
    with pytest.raises(NotFoundError):
        RecurringService(db_session).toggle_instance(12345)


def test_delete_rule_cascades(db_session, bank_account):
    svc = RecurringService(db_session)
    rule = _monthly_rule(svc, bank_account)
    svc.create_exception(rule.id, {"date": date(2024, 1, 31), "note": "first"})
    svc.list_instances_for_month(2024, 1)
    rule_id = rule.id

    svc.delete_rule(rule_id)

    assert db_session.query(models.RecurringInstance).count() == 0
    assert db_session.query(models.RecurringException).count() == 0
    with pytest.raises(NotFoundError):
        svc.get_rule(rule_id)


def test_income_rule_end_to_end(db_session, bank_account):
    svc = RecurringService(db_session)
    rule = svc.create_rule(
        {
            "name": "Salary",
            "account_id": bank_account.id,
            "amount": 1000,
            "type": "income",
            "frequency": "monthly",
            "day_of_month": 1,
            "start_date": date(2024, 1, 1),
        }
    )

    before = svc.list_instances_for_month(2024, 3)
    assert len(before) == 1
    assert before[0].due_date == date(2024, 3, 1)
    assert before[0].amount == 1000.0
    assert before[0].is_modified is False

    svc.create_exception(rule.id, {"date": date(2024, 3, 1), "amount": 1200})
    after = svc.list_instances_for_month(2024, 3)
    assert after[0].id == before[0].id
    assert after[0].amount == 1200.0
    assert after[0].is_modified is True


def test_unknown_account_or_category_is_rejected(db_session, bank_account):
    svc = RecurringService(db_session)
    with pytest.raises(ValidationError):
        _monthly_rule(svc, None, account_id=999)
    with pytest.raises(ValidationError):
        _monthly_rule(svc, bank_account, category_id=999)
    assert db_session.query(models.RecurringRule).count() == 0

    rule = _monthly_rule(svc, bank_account)
    with pytest.raises(ValidationError):
        svc.update_rule(rule.id, {"account_id": 999})
    assert svc.get_rule(rule.id).account_id == bank_account.id


def test_exception_amounts_are_stored_unsigned(db_session, bank_account):
    svc = RecurringService(db_session)
    rule = _monthly_rule(svc, bank_account, day_of_month=1)
    exc = svc.create_exception(rule.id, {"date": date(2024, 3, 1), "amount": -50})
    assert float(exc.amount) == 50.0
    assert svc.list_instances_for_month(2024, 3)[0].amount == 50.0

    updated = svc.update_exception(rule.id, exc.id, {"amount": -75})
    assert float(updated.amount) == 75.0
    assert svc.list_occurrences(rule.id, date(2024, 3, 1), date(2024, 3, 1))[0].effective_amount == 75.0


def test_completing_a_skipped_instance_books_base_amount(db_session, bank_account):
    svc = RecurringService(db_session)
    rule = _monthly_rule(svc, bank_account, day_of_month=1)
    instance_id = svc.list_instances_for_month(2024, 3)[0].id
    svc.create_exception(rule.id, {"date": date(2024, 3, 1), "skip": True})

    result = svc.toggle_instance(instance_id, today=date(2024, 3, 1))
    txn = db_session.get(models.Transaction, result.transaction_id)
    assert float(txn.amount) == 850.0
