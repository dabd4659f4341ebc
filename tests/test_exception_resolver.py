from __future__ import annotations

from datetime import date
from types import SimpleNamespace

from financer.services.exception_resolver import exceptions_by_date, resolve_occurrence


RULE = SimpleNamespace(amount=850.0)
DUE = date(2024, 3, 1)


def _exc(on=DUE, amount=None, note=None, skip=False, id=1):
    return SimpleNamespace(id=id, date=on, amount=amount, note=note, skip=skip)


def test_no_exception_uses_base_amount():
    res = resolve_occurrence(RULE, DUE, [])
    assert res.effective_amount == 850.0
    assert res.original_amount == 850.0
    assert not res.is_modified
    assert not res.is_skipped
    assert res.exception_id is None


def test_override_amount_applies_to_its_date_only():
    lookup = exceptions_by_date([_exc(amount=900.0)])
    res = resolve_occurrence(RULE, DUE, lookup)
    assert res.effective_amount == 900.0
    assert res.original_amount == 850.0
    assert res.is_modified
    other = resolve_occurrence(RULE, date(2024, 4, 1), lookup)
    assert other.effective_amount == 850.0
    assert not other.is_modified


def test_skip_zeroes_the_effective_amount():
    res = resolve_occurrence(RULE, DUE, [_exc(skip=True, note="holiday", id=7)])
    assert res.is_skipped
    assert res.effective_amount == 0.0
    assert res.original_amount == 850.0
    assert res.note == "holiday"
    assert res.exception_id == 7


def test_note_only_exception_counts_as_modified():
    res = resolve_occurrence(RULE, DUE, [_exc(note="paid late")])
    assert res.effective_amount == 850.0
    assert res.is_modified
    assert res.note == "paid late"


def test_empty_exception_is_not_a_modification():
    res = resolve_occurrence(RULE, DUE, [_exc()])
    assert not res.is_modified
    assert res.exception_id == 1
