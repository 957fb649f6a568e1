"""
Audit Service — Hash-chained trail of every ledger mutation.

Each transaction has its own chain: an entry's payload_hash is
SHA-256(previous entry's payload_hash + SHA-256(payload)), so editing or
removing any row breaks verification from that row onward.
"""
from datetime import datetime
from typing import Optional, Dict

from sqlalchemy.orm import Session

from stableupi.models.audit import AuditLog
from stableupi.utils.hashing import generate_chain_hash


class AuditService:
    """Creates tamper-evident audit log entries with hash chaining."""

    @staticmethod
    def log(
        db: Session,
        transaction_id: int,
        action: str,
        payload: Optional[Dict] = None,
        ip_address: Optional[str] = None,
        commit: bool = False,
    ) -> AuditLog:
        """Append an entry to a transaction's chain.

        Args:
            db: Database session.
            transaction_id: Transaction this action belongs to.
            action: Action identifier (e.g. TXN_SCANNED, PAYOUT_INITIATED).
            payload: JSON-safe data describing the mutation; stored and hashed.
            ip_address: Client IP, when the action came from an API call.
            commit: Commit immediately. Callers that mutate the ledger in the
                same unit of work leave this off and commit together.
        """
        last_entry = (
            db.query(AuditLog)
            .filter(AuditLog.transaction_id == transaction_id)
            .order_by(AuditLog.id.desc())
            .first()
        )
        previous_hash = last_entry.payload_hash if last_entry else ""

        payload_data = payload or {}
        entry = AuditLog(
            transaction_id=transaction_id,
            action=action,
            payload_hash=generate_chain_hash(payload_data, previous_hash),
            previous_hash=previous_hash,
            ip_address=ip_address,
            log_metadata={"payload": payload_data},
            timestamp=datetime.utcnow(),
        )

        db.add(entry)
        if commit:
            db.commit()
            db.refresh(entry)
        else:
            db.flush()
        return entry

    @staticmethod
    def get_trail(db: Session, transaction_id: int) -> list[AuditLog]:
        return (
            db.query(AuditLog)
            .filter(AuditLog.transaction_id == transaction_id)
            .order_by(AuditLog.id.asc())
            .all()
        )

    @staticmethod
    def verify_chain(db: Session, transaction_id: int) -> dict:
        """Verify links and recompute hashes for a transaction's chain.

        Returns:
            dict with 'valid' (bool), 'total_entries', and 'broken_at' (if invalid).
        """
        entries = AuditService.get_trail(db, transaction_id)

        for i, entry in enumerate(entries):
            expected_prev = entries[i - 1].payload_hash if i > 0 else ""
            payload = (entry.log_metadata or {}).get("payload", {})
            if entry.previous_hash != expected_prev or entry.payload_hash != generate_chain_hash(payload, expected_prev):
                return {
                    "valid": False,
                    "total_entries": len(entries),
                    "broken_at": entry.id,
                    "message": f"Chain broken at entry {entry.id} ({entry.action})",
                }

        return {"valid": True, "total_entries": len(entries), "broken_at": None}
