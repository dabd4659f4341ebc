from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Iterable, Mapping, Optional, Protocol


class RuleAmount(Protocol):
    amount: float


class ExceptionLike(Protocol):
    id: int
    date: date
    amount: float | None
    note: str | None
    skip: bool


@dataclass(frozen=True)
class ResolvedOccurrence:
    """Effective values of one occurrence after its exception is layered on."""

    date: date
    original_amount: float
    effective_amount: float
    is_modified: bool
    is_skipped: bool
    note: Optional[str] = None
    exception: Optional[ExceptionLike] = None

    @property
    def exception_id(self) -> int | None:
        return self.exception.id if self.exception is not None else None


def exceptions_by_date(exceptions: Iterable[ExceptionLike]) -> dict[date, ExceptionLike]:
    return {item.date: item for item in exceptions}


def resolve_occurrence(
    rule: RuleAmount,
    occurrence_date: date,
    exceptions: Mapping[date, ExceptionLike] | Iterable[ExceptionLike],
) -> ResolvedOccurrence:
    """Apply the exception stored for ``occurrence_date`` (if any) to ``rule``.

    * no exception: base amount, unmodified
    * ``skip``: hidden occurrence, effective amount 0, base amount kept as original
    * override amount: replaces the base amount for this date only

    A note-only exception keeps the base amount but still counts as modified.
    """
    lookup = exceptions if isinstance(exceptions, Mapping) else exceptions_by_date(exceptions)
    base = float(rule.amount)
    exception = lookup.get(occurrence_date)

    if exception is None:
        return ResolvedOccurrence(
            date=occurrence_date,
            original_amount=base,
            effective_amount=base,
            is_modified=False,
            is_skipped=False,
        )

    if exception.skip:
        return ResolvedOccurrence(
            date=occurrence_date,
            original_amount=base,
            effective_amount=0.0,
            is_modified=False,
            is_skipped=True,
            note=exception.note,
            exception=exception,
        )

    effective = float(exception.amount) if exception.amount is not None else base
    return ResolvedOccurrence(
        date=occurrence_date,
        original_amount=base,
        effective_amount=effective,
        is_modified=exception.amount is not None or exception.note is not None,
        is_skipped=False,
        note=exception.note,
        exception=exception,
    )
