from __future__ import annotations

from datetime import date

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.orm import Session

from financer.core.database import get_db
from financer.schemas import (
    RecurringAmountFromDate,
    RecurringExceptionCreate,
    RecurringExceptionOut,
    RecurringExceptionUpdate,
    RecurringInstanceOut,
    RecurringOccurrenceOut,
    RecurringRuleCreate,
    RecurringRuleOut,
    RecurringRuleUpdate,
    ToggleResult,
)
from financer.services import RecurringService


router = APIRouter(prefix="/recurring", tags=["recurring"])


@router.get("", response_model=list[RecurringRuleOut])
def list_recurring_rules(db: Session = Depends(get_db)):
    return RecurringService(db).list_rules()


@router.post("", response_model=RecurringRuleOut, status_code=201)
def create_recurring_rule(payload: RecurringRuleCreate, db: Session = Depends(get_db)):
    svc = RecurringService(db)
    return svc.rule_view(svc.create_rule(payload.model_dump()))


# Month view: materializes the instances it returns
@router.get("/instances/{year}/{month}", response_model=list[RecurringInstanceOut])
def list_recurring_instances(year: int, month: int, db: Session = Depends(get_db)):
    return RecurringService(db).list_instances_for_month(year, month)


@router.post("/instances/{instance_id}/toggle", response_model=ToggleResult)
def toggle_recurring_instance(instance_id: int, db: Session = Depends(get_db)):
    return RecurringService(db).toggle_instance(instance_id)


@router.get("/{rule_id}", response_model=RecurringRuleOut)
def get_recurring_rule(rule_id: int, db: Session = Depends(get_db)):
    svc = RecurringService(db)
    return svc.rule_view(svc.get_rule(rule_id))


@router.put("/{rule_id}", response_model=RecurringRuleOut)
def update_recurring_rule(rule_id: int, payload: RecurringRuleUpdate, db: Session = Depends(get_db)):
    svc = RecurringService(db)
    return svc.rule_view(svc.update_rule(rule_id, payload.model_dump(exclude_unset=True)))


@router.delete("/{rule_id}", status_code=204)
def delete_recurring_rule(rule_id: int, db: Session = Depends(get_db)):
    RecurringService(db).delete_rule(rule_id)
    return Response(status_code=204)


@router.patch("/{rule_id}/amount-from-date", response_model=RecurringRuleOut)
def set_recurring_amount_from_date(rule_id: int, payload: RecurringAmountFromDate, db: Session = Depends(get_db)):
    svc = RecurringService(db)
    return svc.rule_view(svc.set_amount_from_date(rule_id, payload.amount, payload.from_date))


@router.get("/{rule_id}/occurrences", response_model=list[RecurringOccurrenceOut])
def list_recurring_occurrences(
    rule_id: int,
    date_from: date = Query(..., alias="from"),
    date_to: date = Query(..., alias="to"),
    db: Session = Depends(get_db),
):
    return RecurringService(db).list_occurrences(rule_id, date_from, date_to)


@router.get("/{rule_id}/exceptions", response_model=list[RecurringExceptionOut])
def list_recurring_exceptions(rule_id: int, db: Session = Depends(get_db)):
    return RecurringService(db).list_exceptions(rule_id)


@router.post("/{rule_id}/exceptions", response_model=RecurringExceptionOut, status_code=201)
def create_recurring_exception(rule_id: int, payload: RecurringExceptionCreate, db: Session = Depends(get_db)):
    return RecurringService(db).create_exception(rule_id, payload.model_dump())


@router.put("/{rule_id}/exceptions/{exception_id}", response_model=RecurringExceptionOut)
def update_recurring_exception(
    rule_id: int,
    exception_id: int,
    payload: RecurringExceptionUpdate,
    db: Session = Depends(get_db),
):
    return RecurringService(db).update_exception(rule_id, exception_id, payload.model_dump(exclude_unset=True))


@router.delete("/{rule_id}/exceptions/{exception_id}", status_code=204)
def delete_recurring_exception(rule_id: int, exception_id: int, db: Session = Depends(get_db)):
    RecurringService(db).delete_exception(rule_id, exception_id)
    return Response(status_code=204)
