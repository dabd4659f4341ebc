"""
Services package

Business logic for recurring schedules, card bills and their ledger entries.
"""

from .credit_card_service import BillingPeriod, CreditCardService, billing_period, payment_date
from .exception_resolver import ResolvedOccurrence, resolve_occurrence
from .ledger_service import LedgerService
from .recurring_service import RecurringService

__all__ = [
    "BillingPeriod",
    "CreditCardService",
    "LedgerService",
    "RecurringService",
    "ResolvedOccurrence",
    "billing_period",
    "payment_date",
    "resolve_occurrence",
]
