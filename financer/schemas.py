from __future__ import annotations

import math
from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .models import RecurringFrequency, RecurringType


def _finite(v: float | None) -> float | None:
    if v is None:
        return v
    if not math.isfinite(v):
        raise ValueError("amount must be finite")
    return v


class RecurringRuleCreate(BaseModel):
    name: str = Field(min_length=1, max_length=120)
    account_id: Optional[int] = None
    category_id: Optional[int] = None
    amount: float
    type: RecurringType
    frequency: RecurringFrequency
    day_of_week: Optional[int] = Field(default=None, ge=0, le=6)
    day_of_month: Optional[int] = Field(default=None, ge=1, le=31)
    start_date: date
    end_date: Optional[date] = None

    @field_validator("amount")
    def amount_finite(cls, v: float):
        return _finite(v)


class RecurringRuleUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=120)
    account_id: Optional[int] = None
    category_id: Optional[int] = None
    amount: Optional[float] = None
    type: Optional[RecurringType] = None
    frequency: Optional[RecurringFrequency] = None
    day_of_week: Optional[int] = Field(default=None, ge=0, le=6)
    day_of_month: Optional[int] = Field(default=None, ge=1, le=31)
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    active: Optional[bool] = None

    @field_validator("amount")
    def amount_finite(cls, v: float | None):
        return _finite(v)


class RecurringRuleOut(BaseModel):
    id: int
    name: str
    account_id: Optional[int]
    category_id: Optional[int]
    amount: float
    type: RecurringType
    frequency: RecurringFrequency
    day_of_week: Optional[int]
    day_of_month: Optional[int]
    start_date: date
    end_date: Optional[date]
    active: bool
    created_at: datetime
    updated_at: datetime
    account_name: Optional[str] = None
    category_name: Optional[str] = None
    category_color: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class RecurringAmountFromDate(BaseModel):
    amount: float
    from_date: date

    @field_validator("amount")
    def amount_finite(cls, v: float):
        return _finite(v)


class RecurringExceptionCreate(BaseModel):
    date: date
    amount: Optional[float] = None
    note: Optional[str] = Field(default=None, max_length=500)
    skip: bool = False

    @field_validator("amount")
    def amount_finite(cls, v: float | None):
        return _finite(v)


class RecurringExceptionUpdate(BaseModel):
    amount: Optional[float] = None
    note: Optional[str] = Field(default=None, max_length=500)
    skip: Optional[bool] = None

    @field_validator("amount")
    def amount_finite(cls, v: float | None):
        return _finite(v)


class RecurringExceptionOut(BaseModel):
    id: int
    recurring_id: int
    date: date
    amount: Optional[float]
    note: Optional[str]
    skip: bool
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class RecurringOccurrenceOut(BaseModel):
    date: date
    original_amount: float
    effective_amount: float
    is_modified: bool
    is_skipped: bool
    note: Optional[str] = None
    exception: Optional[RecurringExceptionOut] = None

    model_config = ConfigDict(from_attributes=True)


class RecurringInstanceOut(BaseModel):
    id: int
    recurring_id: int
    due_date: date
    completed: bool
    completed_at: Optional[datetime]
    transaction_id: Optional[int]
    created_at: datetime
    name: str
    account_id: Optional[int] = None
    account_name: Optional[str] = None
    # Effective amount after the exception for this date is applied
    amount: float
    original_amount: float
    type: RecurringType
    category_name: Optional[str] = None
    category_color: Optional[str] = None
    is_modified: bool = False
    exception_id: Optional[int] = None
    exception_note: Optional[str] = None


class CreditCardBillOut(BaseModel):
    id: int
    account_id: int
    period_start: date
    period_end: date
    payment_date: date
    amount: float
    completed: bool
    completed_at: Optional[datetime]
    transaction_id: Optional[int]
    created_at: datetime
    account_name: str
    linked_account_id: Optional[int] = None
    linked_account_name: Optional[str] = None


class ToggleResult(BaseModel):
    completed: bool
    transaction_id: Optional[int] = None
