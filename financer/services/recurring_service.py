from __future__ import annotations

import logging
from datetime import date
from typing import Any, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from financer import models, schemas
from financer.core.database import unit_of_work
from financer.core.errors import ConflictError, NotFoundError, StorageError, ValidationError
from financer.services.exception_resolver import exceptions_by_date, resolve_occurrence
from financer.services.ledger_service import LedgerService
from financer.stores import AccountStore, CategoryStore, ExceptionStore, InstanceStore, RuleStore
from financer.utils.schedule import due_dates_for_month, month_bounds, occurrences_in_range, validate_anchor


logger = logging.getLogger(__name__)

_RULE_FIELDS = (
    "name",
    "account_id",
    "category_id",
    "amount",
    "type",
    "frequency",
    "day_of_week",
    "day_of_month",
    "start_date",
    "end_date",
    "active",
)


def _unsigned(amount: Any) -> Optional[float]:
    return abs(float(amount)) if amount is not None else None


def _normalize_rule_fields(data: dict[str, Any]) -> dict[str, Any]:
    """Validate a full set of rule fields and clear the anchor the frequency does not use."""
    name = (data.get("name") or "").strip()
    if not name:
        raise ValidationError("Recurring rule name must not be empty")
    data["name"] = name

    if data.get("amount") is None:
        raise ValidationError("amount is required")
    data["amount"] = _unsigned(data["amount"])

    try:
        data["type"] = models.RecurringType(data.get("type"))
    except ValueError:
        raise ValidationError(f"Invalid type: {data.get('type')!r}") from None

    if data.get("start_date") is None:
        raise ValidationError("start_date is required")
    if data.get("end_date") is not None and data["end_date"] < data["start_date"]:
        raise ValidationError("end_date must not be before start_date")

    freq = validate_anchor(data.get("frequency"), data.get("day_of_week"), data.get("day_of_month"))
    data["frequency"] = freq
    if freq.anchor != "day_of_week":
        data["day_of_week"] = None
    if freq.anchor != "day_of_month":
        data["day_of_month"] = None
    return data


class RecurringService:
    """Recurring rules: occurrences, exceptions, lazy instances and completion."""

    def __init__(self, db: Session) -> None:
        self.db = db
        self.rules = RuleStore(db)
        self.exceptions = ExceptionStore(db)
        self.instances = InstanceStore(db)
        self.accounts = AccountStore(db)
        self.categories = CategoryStore(db)
        self.ledger = LedgerService(db)

    # ---- Rules -----------------------------------------------------------
    def get_rule(self, rule_id: int) -> models.RecurringRule:
        rule = self.rules.get(rule_id)
        if rule is None:
            raise NotFoundError("RecurringRule", rule_id)
        return rule

    def list_rules(self) -> list[schemas.RecurringRuleOut]:
        return [self.rule_view(rule) for rule in self.rules.list_all()]

    def _check_references(self, fields: dict[str, Any]) -> None:
        if fields.get("account_id") is not None and self.accounts.get(fields["account_id"]) is None:
            raise ValidationError(f"Account {fields['account_id']} does not exist")
        if fields.get("category_id") is not None and self.categories.get(fields["category_id"]) is None:
            raise ValidationError(f"Category {fields['category_id']} does not exist")

    def rule_view(self, rule: models.RecurringRule) -> schemas.RecurringRuleOut:
        out = schemas.RecurringRuleOut.model_validate(rule, from_attributes=True)
        out.account_name = rule.account.name if rule.account is not None else None
        if rule.category is not None:
            out.category_name = rule.category.name
            out.category_color = rule.category.color
        return out

    def create_rule(self, data: dict[str, Any]) -> models.RecurringRule:
        fields = _normalize_rule_fields({k: data.get(k) for k in _RULE_FIELDS if k != "active"})
        self._check_references(fields)
        rule = models.RecurringRule(**fields, active=True)
        with unit_of_work(self.db):
            self.rules.add(rule)
        self.db.refresh(rule)
        logger.info("Created recurring rule %s (%s, %s)", rule.id, rule.name, rule.frequency.value)
        return rule

    def update_rule(self, rule_id: int, changes: dict[str, Any]) -> models.RecurringRule:
        """Apply a partial update; changes only affect occurrences computed from now on."""
        rule = self.get_rule(rule_id)
        changes = {k: v for k, v in changes.items() if k in _RULE_FIELDS}
        if not changes:
            return rule

        merged = {k: getattr(rule, k) for k in _RULE_FIELDS}
        merged.update(changes)
        active = merged.pop("active")
        fields = _normalize_rule_fields(merged)
        self._check_references(fields)

        with unit_of_work(self.db):
            for key, value in fields.items():
                setattr(rule, key, value)
            if active is not None:
                self.rules.set_active(rule, active)
        self.db.refresh(rule)
        return rule

    def set_active(self, rule_id: int, active: bool) -> models.RecurringRule:
        rule = self.get_rule(rule_id)
        with unit_of_work(self.db):
            self.rules.set_active(rule, active)
        self.db.refresh(rule)
        return rule

    def delete_rule(self, rule_id: int) -> None:
        rule = self.get_rule(rule_id)
        with unit_of_work(self.db):
            self.rules.delete(rule)
        logger.info("Deleted recurring rule %s with its instances and exceptions", rule_id)

    def set_amount_from_date(self, rule_id: int, amount: float, from_date: date) -> models.RecurringRule:
        """Change the base amount and drop overrides dated ``from_date`` or later."""
        if amount is None or from_date is None:
            raise ValidationError("amount and from_date are required")
        rule = self.get_rule(rule_id)
        with unit_of_work(self.db):
            self.rules.update_amount(rule, amount)
            removed = self.exceptions.delete_from(rule.id, from_date)
        self.db.refresh(rule)
        logger.info("Rule %s amount set to %s from %s; %d exception(s) cleared", rule_id, rule.amount, from_date, removed)
        return rule

    # ---- Exceptions ------------------------------------------------------
    def list_exceptions(self, rule_id: int) -> list[models.RecurringException]:
        self.get_rule(rule_id)
        return self.exceptions.list_for_rule(rule_id)

    def create_exception(self, rule_id: int, data: dict[str, Any]) -> models.RecurringException:
        on = data.get("date")
        if on is None:
            raise ValidationError("date is required")
        self.get_rule(rule_id)
        if self.exceptions.get_by_date(rule_id, on) is not None:
            raise ConflictError(f"An exception already exists for {on.isoformat()}")

        item = models.RecurringException(
            recurring_id=rule_id,
            date=on,
            amount=_unsigned(data.get("amount")),
            note=data.get("note"),
            skip=bool(data.get("skip", False)),
        )
        try:
            with unit_of_work(self.db):
                self.exceptions.add(item)
        except StorageError as exc:
            if isinstance(exc.__cause__, IntegrityError):
                raise ConflictError(f"An exception already exists for {on.isoformat()}") from exc
            raise
        self.db.refresh(item)
        return item

    def update_exception(self, rule_id: int, exception_id: int, changes: dict[str, Any]) -> models.RecurringException:
        item = self.exceptions.get(rule_id, exception_id)
        if item is None:
            raise NotFoundError("RecurringException", exception_id)
        with unit_of_work(self.db):
            for key in ("amount", "note", "skip"):
                if key in changes:
                    value = changes[key]
                    if key == "skip":
                        value = bool(value)
                    elif key == "amount":
                        value = _unsigned(value)
                    setattr(item, key, value)
        self.db.refresh(item)
        return item

    def delete_exception(self, rule_id: int, exception_id: int) -> None:
        item = self.exceptions.get(rule_id, exception_id)
        if item is None:
            raise NotFoundError("RecurringException", exception_id)
        with unit_of_work(self.db):
            self.exceptions.delete(item)

    # ---- Occurrences (read-only) ----------------------------------------
    def list_occurrences(self, rule_id: int, date_from: date, date_to: date) -> list[schemas.RecurringOccurrenceOut]:
        if date_from is None or date_to is None:
            raise ValidationError("from and to are required")
        rule = self.get_rule(rule_id)
        dates = occurrences_in_range(rule, date_from, date_to)
        lookup = exceptions_by_date(self.exceptions.list_for_rule(rule.id, date_from=date_from, date_to=date_to))
        return [
            schemas.RecurringOccurrenceOut.model_validate(resolve_occurrence(rule, d, lookup), from_attributes=True)
            for d in dates
        ]

    # ---- Instances -------------------------------------------------------
    def _get_or_create_instance(self, rule: models.RecurringRule, due_date: date) -> models.RecurringInstance:
        instance = self.instances.get_by_due_date(rule.id, due_date)
        if instance is not None:
            return instance
        try:
            with self.db.begin_nested():
                instance = self.instances.add(models.RecurringInstance(recurring_id=rule.id, due_date=due_date))
        except IntegrityError:
            # A concurrent request materialized the same date first
            instance = self.instances.get_by_due_date(rule.id, due_date)
            if instance is None:
                raise
        return instance

    def ensure_instances_for_rule(self, rule: models.RecurringRule, year: int, month: int) -> list[schemas.RecurringInstanceOut]:
        """Materialize ``rule``'s instances for the month and return the visible ones.

        Safe to repeat: existing rows are reused. Skipped dates keep their
        (pending) row but are left out of the result.
        """
        month_start, month_end = month_bounds(year, month)
        due_dates = due_dates_for_month(rule, year, month)
        if not due_dates:
            return []
        lookup = exceptions_by_date(self.exceptions.list_for_rule(rule.id, date_from=month_start, date_to=month_end))

        views: list[schemas.RecurringInstanceOut] = []
        for due in due_dates:
            instance = self._get_or_create_instance(rule, due)
            resolved = resolve_occurrence(rule, due, lookup)
            if resolved.is_skipped:
                continue
            views.append(self._instance_view(rule, instance, resolved))
        views.sort(key=lambda v: v.due_date)
        return views

    def list_instances_for_month(self, year: int, month: int) -> list[schemas.RecurringInstanceOut]:
        month_start, month_end = month_bounds(year, month)
        views: list[schemas.RecurringInstanceOut] = []
        with unit_of_work(self.db):
            for rule in self.rules.list_active_overlapping(month_start, month_end):
                views.extend(self.ensure_instances_for_rule(rule, year, month))
        views.sort(key=lambda v: (v.due_date, v.id))
        return views

    def _instance_view(self, rule: models.RecurringRule, instance: models.RecurringInstance, resolved) -> schemas.RecurringInstanceOut:
        return schemas.RecurringInstanceOut(
            id=instance.id,
            recurring_id=instance.recurring_id,
            due_date=instance.due_date,
            completed=bool(instance.completed),
            completed_at=instance.completed_at,
            transaction_id=instance.transaction_id,
            created_at=instance.created_at,
            name=rule.name,
            account_id=rule.account_id,
            account_name=rule.account.name if rule.account is not None else None,
            amount=resolved.effective_amount,
            original_amount=resolved.original_amount,
            type=rule.type,
            category_name=rule.category.name if rule.category is not None else None,
            category_color=rule.category.color if rule.category is not None else None,
            is_modified=resolved.is_modified,
            exception_id=resolved.exception_id,
            exception_note=resolved.note,
        )

    def toggle_instance(self, instance_id: int, *, today: Optional[date] = None) -> schemas.ToggleResult:
        """Flip an instance between pending and completed, keeping its ledger entry in step."""
        instance = self.instances.get(instance_id)
        if instance is None:
            raise NotFoundError("RecurringInstance", instance_id)

        with unit_of_work(self.db):
            if not instance.completed:
                txn = self._record_completion(instance, today or models.today_local())
                instance.transaction_id = txn.id if txn is not None else None
                instance.completed = True
                instance.completed_at = models.now_local_naive()
            else:
                linked_id = instance.transaction_id
                instance.transaction_id = None
                instance.completed = False
                instance.completed_at = None
                self.db.flush()
                self.ledger.remove_entry(linked_id)

        self.db.refresh(instance)
        return schemas.ToggleResult(completed=bool(instance.completed), transaction_id=instance.transaction_id)

    def _record_completion(self, instance: models.RecurringInstance, today: date) -> Optional[models.Transaction]:
        rule = self.rules.get(instance.recurring_id)
        if rule is None:
            logger.warning("Instance %s has no owning rule; completing without a ledger entry", instance.id)
            return None
        if rule.account_id is None:
            logger.info("Rule %s has no account; completing instance %s without a ledger entry", rule.id, instance.id)
            return None

        exception = self.exceptions.get_by_date(rule.id, instance.due_date)
        resolved = resolve_occurrence(rule, instance.due_date, [exception] if exception is not None else [])
        amount = resolved.effective_amount
        if resolved.is_skipped:
            # completing a skipped date books its override, else the base amount
            amount = float(exception.amount) if exception.amount is not None else resolved.original_amount
        return self.ledger.record_entry(
            account_id=rule.account_id,
            amount=amount,
            txn_type=models.TxnType(rule.type.value),
            # booked on the day it was actually paid, not the due date
            on=today,
            description=rule.name,
            category_id=rule.category_id,
        )
