"""
Payout Orchestrator — Drives a transaction from scan to settled INR payout.

Flow: record_scan → attach_quote → record_onchain_payment → initiate_payout,
then provider status updates (webhook or poll) converge on
apply_provider_status. The atomic slot claim in the ledger guarantees at most
one live payout attempt per transaction.
"""
import json
import logging
import secrets
import time
from dataclasses import dataclass, replace
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Mapping, NamedTuple, Optional

from sqlalchemy.orm import Session

from stableupi.config import get_settings
from stableupi.errors import (
    AuthenticationError,
    ConflictError,
    GatewayError,
    InvalidAmount,
    NotFoundError,
    UpstreamTimeout,
    ValidationError,
)
from stableupi.models.payout import PayoutAttempt
from stableupi.models.transaction import TransactionRecord
from stableupi.services.audit_service import AuditService
from stableupi.services.beneficiary_service import BeneficiaryService
from stableupi.services.conversion import ConversionQuote, round_usdc
from stableupi.services.ledger import TransactionLedger
from stableupi.services.providers import get_payout_provider
from stableupi.services.providers.base import BeneficiaryDetails, PayoutProvider, StatusUpdate
from stableupi.services.state_machine import (
    PRE_PAYMENT_STATES,
    PayoutStatus,
    TransactionState,
    Transition,
    classify_transition,
    holds_payout_slot,
    transaction_state_for,
)
from stableupi.utils.validators import MAX_INR_AMOUNT, parse_inr, validate_upi_vpa

logger = logging.getLogger(__name__)
settings = get_settings()

TRANSFER_ID_ALPHABET = "0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZ"
# Largest amount a Numeric(20, 6) column holds
MAX_USDC_AMOUNT = Decimal("99999999999999.999999")


@dataclass(frozen=True)
class ChainPayment:
    """Outcome of the payer's on-chain USDC transfer, reported by the client."""

    wallet_address: str
    chain_tx_hash: str
    is_success: bool
    chain_id: Optional[int] = None


class AppliedStatus(NamedTuple):
    attempt: Optional[PayoutAttempt]
    transition: Transition


def generate_transfer_id() -> str:
    suffix = "".join(secrets.choice(TRANSFER_ID_ALPHABET) for _ in range(6))
    return f"TXN_{int(time.time() * 1000)}_{suffix}"


def _json_safe(data: Any) -> Any:
    return json.loads(json.dumps(data, default=str))


class PayoutOrchestrator:
    """Ledger-backed payout workflow for one database session."""

    def __init__(
        self,
        db: Session,
        provider: Optional[PayoutProvider] = None,
        batch_limit: int = settings.PAYOUT_BATCH_LIMIT,
    ):
        self.db = db
        self.ledger = TransactionLedger(db)
        self.beneficiaries = BeneficiaryService(db)
        self.provider = provider or get_payout_provider()
        self.batch_limit = batch_limit

    def _provider_for(self, name: Optional[str]) -> PayoutProvider:
        if not name or name == self.provider.name:
            return self.provider
        return get_payout_provider(name)

    def _audit(self, record_id: int, action: str, payload: Dict, ip_address: Optional[str] = None):
        AuditService.log(self.db, record_id, action, _json_safe(payload), ip_address=ip_address)

    # --- Ledger lifecycle ---

    def record_scan(
        self,
        upi_id: str,
        merchant_name: Optional[str],
        inr_amount,
        usdc_amount=None,
        chain_id: Optional[int] = None,
        wallet_address: Optional[str] = None,
        ip_address: Optional[str] = None,
    ) -> TransactionRecord:
        if not validate_upi_vpa(upi_id):
            raise ValidationError(f"Invalid UPI ID: {upi_id}")
        inr = parse_inr(inr_amount)
        if inr is None or inr <= 0:
            raise InvalidAmount(f"INR amount must be a positive number of at most {MAX_INR_AMOUNT}")

        usdc = None
        if usdc_amount is not None:
            try:
                usdc = Decimal(str(usdc_amount))
            except ArithmeticError:
                raise InvalidAmount("USDC amount must be a number") from None
            if not usdc.is_finite() or usdc <= 0 or usdc > MAX_USDC_AMOUNT:
                raise InvalidAmount(f"USDC amount must be a positive number of at most {MAX_USDC_AMOUNT}")
            usdc = round_usdc(usdc)

        record = self.ledger.create(
            upi_id=upi_id,
            merchant_name=merchant_name,
            inr_amount=inr,
            usdc_amount_paid=usdc,
            chain_id=chain_id,
            wallet_address=wallet_address,
            state=(TransactionState.QUOTED if usdc is not None else TransactionState.SCANNED).value,
        )
        self._audit(record.id, "TXN_SCANNED", {
            "upi_id": upi_id,
            "inr_amount": inr,
            "usdc_amount": usdc,
            "chain_id": chain_id,
        }, ip_address)
        self.ledger.commit()
        logger.info("transaction %s recorded for %s (%s INR)", record.id, upi_id, inr)
        return record

    def attach_quote(self, transaction_id: int, quote: ConversionQuote) -> TransactionRecord:
        record = self.ledger.get(transaction_id)
        if TransactionState(record.state) not in PRE_PAYMENT_STATES:
            raise ConflictError(f"Transaction {transaction_id} is already {record.state}; quote cannot change")

        record.inr_amount = quote.inr_amount
        record.usdc_amount_paid = quote.total_usdc_amount
        record.chain_id = quote.chain_id
        record.state = TransactionState.QUOTED.value
        self._audit(record.id, "TXN_QUOTED", quote.to_dict())
        return self.ledger.create_or_update(record)

    def record_onchain_payment(
        self, transaction_id: int, payment: ChainPayment, ip_address: Optional[str] = None
    ) -> TransactionRecord:
        record = self.ledger.get(transaction_id)

        if payment.chain_tx_hash:
            other = self.ledger.find_by_txn_hash(payment.chain_tx_hash)
            if other is not None and other.id != record.id:
                raise ConflictError(f"Transaction hash already recorded for transaction {other.id}")

        if record.is_success:
            if payment.is_success and payment.chain_tx_hash == record.chain_tx_hash:
                return record
            raise ConflictError("On-chain payment already confirmed; result cannot be rewritten")

        record.wallet_address = payment.wallet_address
        record.chain_tx_hash = payment.chain_tx_hash or None
        record.is_success = bool(payment.is_success)
        if payment.chain_id is not None:
            record.chain_id = payment.chain_id
        if record.is_success:
            record.paid_at = datetime.utcnow()
            record.state = TransactionState.ONCHAIN_CONFIRMED.value
        else:
            record.state = TransactionState.ONCHAIN_PENDING.value

        self._audit(record.id, "ONCHAIN_RECORDED", {
            "wallet_address": payment.wallet_address,
            "chain_tx_hash": payment.chain_tx_hash,
            "is_success": record.is_success,
            "chain_id": record.chain_id,
        }, ip_address)
        return self.ledger.create_or_update(record)

    # --- Payout initiation ---

    def initiate_payout(
        self,
        transaction_id: int,
        transfer_id: Optional[str] = None,
        remarks: Optional[str] = None,
        provider: Optional[str] = None,
        ip_address: Optional[str] = None,
    ) -> PayoutAttempt:
        """Start one INR payout for a paid transaction.

        Provider rejections and transport failures do not raise: they are
        recorded on the returned attempt with status failed.

        Raises:
            NotFoundError: Unknown transaction.
            ConflictError: Not paid on-chain, a live attempt already holds the
                slot, or the supplied transfer id is taken.
            ValidationError: Amount outside (0, provider ceiling].
        """
        rail = self._provider_for(provider)
        record = self.ledger.get(transaction_id)

        if not record.is_success:
            raise ConflictError("On-chain payment is not confirmed for this transaction")

        amount = Decimal(str(record.inr_amount or 0))
        if amount <= 0 or amount > rail.max_transfer_inr:
            raise ValidationError(
                f"Payout amount must be greater than 0 and at most {rail.max_transfer_inr} INR for {rail.name}",
                details={"amount": str(amount), "max": str(rail.max_transfer_inr)},
            )

        if transfer_id is not None:
            transfer_id = transfer_id.strip()
            if not transfer_id or len(transfer_id) > 64:
                raise ValidationError("transfer_id must be 1-64 characters")
            if self.ledger.find_attempt_by_transfer_id(transfer_id) is not None:
                raise ConflictError(f"Transfer id {transfer_id} already used")

        # Slot claim, attempt row and audit entry commit together or not at all
        if not self.ledger.claim_payout_slot(transaction_id):
            raise ConflictError("A payout for this transaction is already in progress or completed")

        record = self.ledger.get(transaction_id)
        attempt = self.ledger.add_attempt(PayoutAttempt(
            transaction_id=record.id,
            provider=rail.name,
            transfer_id=transfer_id or generate_transfer_id(),
            amount=amount,
            mode="upi",
            status=PayoutStatus.INITIATED.value,
            raw_response={},
        ), commit=False)
        record.state = TransactionState.PAYOUT_INITIATED.value
        self._audit(record.id, "PAYOUT_INITIATED", {
            "transfer_id": attempt.transfer_id,
            "provider": rail.name,
            "amount": amount,
        }, ip_address)
        self.ledger.commit()

        transfer_submitted = False
        try:
            beneficiary, _ = self.beneficiaries.resolve(rail, record.upi_id, record.merchant_name)
            attempt.beneficiary_ref = beneficiary.beneficiary_ref
            transfer_submitted = True
            result = rail.initiate_transfer(
                beneficiary.beneficiary_ref,
                amount,
                attempt.transfer_id,
                mode="upi",
                remarks=remarks,
                beneficiary=BeneficiaryDetails(upi_id=record.upi_id, name=beneficiary.name or record.upi_id),
            )
        except UpstreamTimeout as exc:
            # Only a timed-out transfer call may have been accepted upstream
            return self._record_failure(record, attempt, exc.message, reconcilable=transfer_submitted)
        except GatewayError as exc:
            return self._record_failure(record, attempt, exc.message, reconcilable=False)

        attempt.provider_transfer_id = result.provider_transfer_id
        attempt.raw_response = _json_safe(result.raw)
        attempt.status = result.status.value
        if result.status == PayoutStatus.PROCESSED:
            attempt.utr = result.utr
            attempt.processed_at = datetime.utcnow()
        record.state = transaction_state_for(result.status).value
        self._audit(record.id, "PAYOUT_SUBMITTED", {
            "transfer_id": attempt.transfer_id,
            "provider_transfer_id": attempt.provider_transfer_id,
            "status": attempt.status,
        })
        self.ledger.commit()
        logger.info(
            "payout %s for transaction %s submitted to %s: %s",
            attempt.transfer_id, record.id, rail.name, attempt.status,
        )
        return attempt

    def _record_failure(
        self, record: TransactionRecord, attempt: PayoutAttempt, reason: str, reconcilable: bool
    ) -> PayoutAttempt:
        attempt.status = PayoutStatus.FAILED.value
        attempt.failure_reason = reason[:512]
        attempt.reconcilable = reconcilable
        record.state = TransactionState.PAYOUT_FAILED.value
        if not holds_payout_slot(PayoutStatus.FAILED, reconcilable):
            self.ledger.release_payout_slot(record)
        self._audit(record.id, "PAYOUT_FAILED", {
            "transfer_id": attempt.transfer_id,
            "reason": reason,
            "reconcilable": reconcilable,
        })
        self.ledger.commit()
        logger.warning(
            "payout %s for transaction %s failed (reconcilable=%s): %s",
            attempt.transfer_id, record.id, reconcilable, reason,
        )
        return attempt

    # --- Status convergence ---

    def apply_provider_status(self, update: StatusUpdate, provider: Optional[str] = None) -> AppliedStatus:
        """Fold a provider-reported status into the ledger. Safe to call repeatedly.

        With provider set, the update only matches attempts submitted through
        that provider.
        """
        attempt = None
        if update.provider_transfer_id:
            attempt = self.ledger.find_by_provider_transfer_id(update.provider_transfer_id, provider)
        if attempt is None and update.transfer_id:
            attempt = self.ledger.find_by_provider_transfer_id(update.transfer_id, provider)
        if attempt is None:
            logger.warning(
                "status %s for unknown payout (provider id %s, transfer id %s)",
                update.status.value, update.provider_transfer_id, update.transfer_id,
            )
            return AppliedStatus(None, Transition.IGNORE)

        current = PayoutStatus(attempt.status)
        transition = classify_transition(current, update.status, attempt.reconcilable)

        if transition == Transition.NOOP:
            logger.debug("payout %s already %s", attempt.transfer_id, current.value)
            return AppliedStatus(attempt, transition)
        if transition == Transition.IGNORE:
            logger.info(
                "ignoring %s for payout %s in status %s",
                update.status.value, attempt.transfer_id, current.value,
            )
            return AppliedStatus(attempt, transition)

        new = update.status
        attempt.status = new.value
        attempt.reconcilable = False
        if update.provider_transfer_id and not attempt.provider_transfer_id:
            attempt.provider_transfer_id = update.provider_transfer_id
        if new == PayoutStatus.PROCESSED:
            attempt.utr = update.utr or attempt.utr
            attempt.processed_at = attempt.processed_at or datetime.utcnow()
            attempt.failure_reason = None
        elif new in (PayoutStatus.FAILED, PayoutStatus.REVERSED):
            attempt.utr = None
            attempt.failure_reason = (update.failure_reason or attempt.failure_reason or new.value)[:512]
        attempt.raw_response = _json_safe(update.raw)

        record = attempt.transaction
        if record.payout_attempt is attempt:
            record.state = transaction_state_for(new).value
            record.payout_locked = holds_payout_slot(new)

        self._audit(record.id, "PAYOUT_STATUS_APPLIED", {
            "transfer_id": attempt.transfer_id,
            "from": current.value,
            "to": new.value,
            "event": update.event,
            "utr": attempt.utr,
        })
        self.ledger.commit()
        logger.info("payout %s moved %s -> %s", attempt.transfer_id, current.value, new.value)
        return AppliedStatus(attempt, transition)

    def _poll_attempt(self, attempt: PayoutAttempt) -> AppliedStatus:
        rail = self._provider_for(attempt.provider)
        update = rail.get_transfer_status(attempt.provider_transfer_id, attempt.transfer_id)
        update = replace(
            update,
            provider_transfer_id=update.provider_transfer_id or attempt.provider_transfer_id,
            transfer_id=attempt.transfer_id,
        )
        return self.apply_provider_status(update, attempt.provider)

    def poll_status(self, transaction_id: int) -> AppliedStatus:
        record = self.ledger.get(transaction_id)
        attempt = record.payout_attempt
        if attempt is None:
            raise NotFoundError(f"No payout attempt for transaction {transaction_id}")
        return self._poll_attempt(attempt)

    def handle_webhook(self, provider_name: str, raw_body: bytes, headers: Mapping[str, str]) -> dict:
        rail = self._provider_for(provider_name)
        lowered = {key.lower(): value for key, value in headers.items()}
        if not rail.verify_webhook(raw_body, lowered):
            logger.warning("rejected %s webhook with bad signature", rail.name)
            raise AuthenticationError("Invalid webhook signature")

        try:
            payload = json.loads(raw_body)
        except ValueError:
            raise ValidationError("Webhook body is not valid JSON") from None
        if not isinstance(payload, dict):
            raise ValidationError("Webhook body must be a JSON object")

        update = rail.parse_webhook(payload)
        if update is None:
            logger.info("%s webhook event ignored: %s", rail.name, payload.get("event") or payload.get("type"))
            return {"status": "ignored", "reason": "unhandled event"}

        applied = self.apply_provider_status(update, rail.name)
        if applied.attempt is None:
            return {"status": "ignored", "reason": "unknown payout"}
        return {
            "status": "ok",
            "transition": applied.transition.value,
            "transactionId": applied.attempt.transaction_id,
            "payoutStatus": applied.attempt.status,
        }

    # --- Reconciliation ---

    def _reconcile(self, items: Iterable, poll) -> dict:
        results: List[dict] = []
        for key, target in items:
            try:
                applied = poll(target)
            except GatewayError as exc:
                self.db.rollback()
                logger.warning("reconciliation of %s failed: %s", key, exc.message)
                results.append({"id": key, "ok": False, "error": exc.message, "errorCode": exc.code})
                continue
            attempt = applied.attempt
            results.append({
                "id": key,
                "ok": True,
                "transition": applied.transition.value,
                "status": attempt.status if attempt is not None else None,
            })
        return {
            "checked": len(results),
            "updated": sum(1 for r in results if r.get("transition") == Transition.APPLY.value),
            "failed": sum(1 for r in results if not r["ok"]),
            "results": results,
        }

    def reconcile_batch(self, limit: Optional[int] = None) -> dict:
        """Poll outstanding attempts, oldest first, up to the batch limit."""
        limit = min(limit or self.batch_limit, self.batch_limit)
        attempts = self.ledger.list_outstanding_attempts(limit)
        return self._reconcile(((a.transaction_id, a) for a in attempts), self._poll_attempt)

    def reconcile_transactions(self, transaction_ids: Iterable[int]) -> dict:
        ids = list(dict.fromkeys(transaction_ids))[: self.batch_limit]
        return self._reconcile(((i, i) for i in ids), self.poll_status)

    # --- Reporting ---

    def payout_stats(self) -> dict:
        breakdown: Dict[str, dict] = {}
        total = 0
        processed = 0
        for record in self.ledger.list_triggered():
            attempt = record.payout_attempt
            status = attempt.status if attempt is not None else "unknown"
            total += 1
            if status == PayoutStatus.PROCESSED.value:
                processed += 1
            bucket = breakdown.setdefault(status, {"count": 0, "totalAmount": Decimal("0")})
            bucket["count"] += 1
            if attempt is not None:
                bucket["totalAmount"] += Decimal(str(attempt.amount))

        return {
            "totalPayouts": total,
            "successfulPayouts": processed,
            "successRate": f"{processed / total * 100:.2f}" if total else "0",
            "statusBreakdown": {
                status: {"count": b["count"], "totalAmount": float(b["totalAmount"])}
                for status, b in breakdown.items()
            },
        }
