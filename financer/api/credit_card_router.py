from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from financer.core.database import get_db
from financer.schemas import CreditCardBillOut, ToggleResult
from financer.services import CreditCardService


router = APIRouter(prefix="/credit-cards", tags=["credit-cards"])


@router.get("/bills/{year}/{month}", response_model=list[CreditCardBillOut])
def list_credit_card_bills(year: int, month: int, db: Session = Depends(get_db)):
    return CreditCardService(db).ensure_bills_for_month(year, month)


@router.post("/bills/{bill_id}/toggle", response_model=ToggleResult)
def toggle_credit_card_bill(bill_id: int, db: Session = Depends(get_db)):
    return CreditCardService(db).toggle_bill(bill_id)
