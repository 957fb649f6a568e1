"""
Transaction Ledger — Persistence for transaction records and payout attempts.

The ledger is the single source of truth for payout state. Every write goes
through commit(), which rolls the session back and raises PersistenceError
on database failures.
"""
import logging
from datetime import datetime
from typing import List, Optional

from sqlalchemy import or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from stableupi.errors import NotFoundError, PersistenceError
from stableupi.models.payout import PayoutAttempt
from stableupi.models.transaction import TransactionRecord
from stableupi.services.state_machine import PayoutStatus

logger = logging.getLogger(__name__)

OUTSTANDING_STATUSES = (PayoutStatus.INITIATED.value, PayoutStatus.PROCESSING.value)


class TransactionLedger:
    def __init__(self, db: Session):
        self.db = db

    # --- Transactions ---

    def create(self, **fields) -> TransactionRecord:
        record = TransactionRecord(**fields)
        self.db.add(record)
        self.commit()
        self.db.refresh(record)
        return record

    def find_by_id(self, transaction_id: int) -> Optional[TransactionRecord]:
        return self.db.query(TransactionRecord).filter(TransactionRecord.id == transaction_id).first()

    def get(self, transaction_id: int) -> TransactionRecord:
        record = self.find_by_id(transaction_id)
        if record is None:
            raise NotFoundError(f"Transaction {transaction_id} not found")
        return record

    def find_by_txn_hash(self, chain_tx_hash: str) -> Optional[TransactionRecord]:
        return (
            self.db.query(TransactionRecord)
            .filter(TransactionRecord.chain_tx_hash == chain_tx_hash)
            .first()
        )

    def create_or_update(self, record: TransactionRecord) -> TransactionRecord:
        self.db.add(record)
        self.commit()
        self.db.refresh(record)
        return record

    def list_transactions(self, state: Optional[str] = None, limit: int = 50, offset: int = 0) -> List[TransactionRecord]:
        query = self.db.query(TransactionRecord)
        if state:
            query = query.filter(TransactionRecord.state == state)
        return query.order_by(TransactionRecord.id.desc()).offset(offset).limit(limit).all()

    def list_triggered(self) -> List[TransactionRecord]:
        return self.db.query(TransactionRecord).filter(TransactionRecord.payout_triggered.is_(True)).all()

    # --- Payout slot ---

    def claim_payout_slot(self, transaction_id: int) -> bool:
        """Atomically take the payout slot of a paid record.

        Single conditional UPDATE; of two concurrent callers at most one sees a
        matched row. The claim joins the open transaction; the caller commits.
        """
        try:
            claimed = (
                self.db.query(TransactionRecord)
                .filter(
                    TransactionRecord.id == transaction_id,
                    TransactionRecord.is_success.is_(True),
                    TransactionRecord.payout_locked.is_(False),
                )
                .update(
                    {
                        TransactionRecord.payout_locked: True,
                        TransactionRecord.payout_triggered: True,
                        TransactionRecord.updated_at: datetime.utcnow(),
                    },
                    synchronize_session=False,
                )
            )
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise PersistenceError("Failed to claim payout slot") from exc
        if claimed != 1:
            return False
        record = self.find_by_id(transaction_id)
        self.db.refresh(record)
        return True

    def release_payout_slot(self, record: TransactionRecord):
        record.payout_locked = False

    # --- Payout attempts ---

    def add_attempt(self, attempt: PayoutAttempt, commit: bool = True) -> PayoutAttempt:
        self.db.add(attempt)
        if not commit:
            try:
                self.db.flush()
            except SQLAlchemyError as exc:
                self.db.rollback()
                raise PersistenceError("Failed to record payout attempt") from exc
            return attempt
        self.commit()
        self.db.refresh(attempt)
        return attempt

    def find_attempt_by_transfer_id(self, transfer_id: str) -> Optional[PayoutAttempt]:
        return self.db.query(PayoutAttempt).filter(PayoutAttempt.transfer_id == transfer_id).first()

    def find_by_provider_transfer_id(
        self, transfer_ref: str, provider: Optional[str] = None
    ) -> Optional[PayoutAttempt]:
        """Attempt whose provider id, or failing that our own transfer id, equals transfer_ref.

        With provider set, only attempts submitted through that provider match.
        """
        if not transfer_ref:
            return None
        query = self.db.query(PayoutAttempt).filter(
            or_(PayoutAttempt.provider_transfer_id == transfer_ref, PayoutAttempt.transfer_id == transfer_ref)
        )
        if provider:
            query = query.filter(PayoutAttempt.provider == provider)
        matches = query.all()
        for attempt in matches:
            if attempt.provider_transfer_id == transfer_ref:
                return attempt
        return matches[0] if matches else None

    def list_outstanding_attempts(self, limit: int) -> List[PayoutAttempt]:
        """Attempts whose outcome is still open: initiated, processing, or a timed-out failure."""
        return (
            self.db.query(PayoutAttempt)
            .filter(
                or_(
                    PayoutAttempt.status.in_(OUTSTANDING_STATUSES),
                    PayoutAttempt.reconcilable.is_(True),
                )
            )
            .order_by(PayoutAttempt.id.asc())
            .limit(limit)
            .all()
        )

    def list_attempts(self, transaction_id: int) -> List[PayoutAttempt]:
        return (
            self.db.query(PayoutAttempt)
            .filter(PayoutAttempt.transaction_id == transaction_id)
            .order_by(PayoutAttempt.id.asc())
            .all()
        )

    # --- Unit of work ---

    def commit(self):
        try:
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.error("ledger commit failed: %s", exc)
            raise PersistenceError("Failed to persist ledger update") from exc
