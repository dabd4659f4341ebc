from __future__ import annotations

import logging
from datetime import date
from typing import Optional

from sqlalchemy.orm import Session

from financer import models
from financer.stores import AccountStore, LedgerStore


logger = logging.getLogger(__name__)


class LedgerService:
    """Create and remove the ledger entries linked to completed instances/bills.

    Writes are flushed but never committed; the toggle that calls in owns the
    transaction so the entry and the status flip land together.
    """

    def __init__(self, db: Session) -> None:
        self.db = db
        self.ledger = LedgerStore(db)
        self.accounts = AccountStore(db)

    def record_entry(
        self,
        *,
        account_id: int,
        amount: float,
        txn_type: models.TxnType,
        on: date,
        description: Optional[str] = None,
        category_id: Optional[int] = None,
        transfer_to_account_id: Optional[int] = None,
    ) -> Optional[models.Transaction]:
        """Insert an entry, or return None when an involved account is gone."""
        if self.accounts.get(account_id) is None:
            logger.warning("Skipping ledger entry: account %s no longer exists", account_id)
            return None
        if transfer_to_account_id is not None and self.accounts.get(transfer_to_account_id) is None:
            logger.warning("Skipping ledger entry: transfer target %s no longer exists", transfer_to_account_id)
            return None

        txn = models.Transaction(
            account_id=account_id,
            category_id=category_id,
            # amounts stay unsigned; direction lives in the type
            amount=abs(float(amount)),
            type=txn_type,
            description=description,
            date=on,
            transfer_to_account_id=transfer_to_account_id,
        )
        return self.ledger.add(txn)

    def remove_entry(self, txn_id: Optional[int]) -> bool:
        if txn_id is None:
            return False
        txn = self.ledger.get(txn_id)
        if txn is None:
            logger.info("Linked transaction %s already removed", txn_id)
            return False
        self.ledger.delete(txn)
        return True
