"""
Payout State Machine — Legal status moves for payout attempts and the
matching transaction states.

Status moves are monotonic. Re-applying the current status is a no-op, and
stale or backward updates (webhooks arriving late or twice) are ignored
rather than treated as errors.
"""
from enum import Enum


class PayoutStatus(str, Enum):
    INITIATED = "initiated"
    PROCESSING = "processing"
    PROCESSED = "processed"
    FAILED = "failed"
    REVERSED = "reversed"


class TransactionState(str, Enum):
    SCANNED = "scanned"
    QUOTED = "quoted"
    ONCHAIN_PENDING = "onchain_pending"
    ONCHAIN_CONFIRMED = "onchain_confirmed"
    PAYOUT_INITIATED = "payout_initiated"
    PAYOUT_PROCESSING = "payout_processing"
    PAYOUT_PROCESSED = "payout_processed"
    PAYOUT_FAILED = "payout_failed"
    PAYOUT_REVERSED = "payout_reversed"


class Transition(str, Enum):
    APPLY = "apply"
    NOOP = "noop"        # same status delivered again
    IGNORE = "ignore"    # stale, backward, or after a terminal status


ALLOWED = {
    PayoutStatus.INITIATED: {PayoutStatus.PROCESSING, PayoutStatus.PROCESSED, PayoutStatus.FAILED, PayoutStatus.REVERSED},
    PayoutStatus.PROCESSING: {PayoutStatus.PROCESSED, PayoutStatus.FAILED, PayoutStatus.REVERSED},
    PayoutStatus.PROCESSED: {PayoutStatus.REVERSED},
    PayoutStatus.FAILED: set(),
    PayoutStatus.REVERSED: set(),
}

# A timed-out initiation is recorded as failed but the provider may still settle it
RECONCILABLE_FAILED_ALLOWED = {PayoutStatus.PROCESSING, PayoutStatus.PROCESSED, PayoutStatus.FAILED, PayoutStatus.REVERSED}

TERMINAL = {PayoutStatus.PROCESSED, PayoutStatus.FAILED, PayoutStatus.REVERSED}

STATE_FOR_STATUS = {
    PayoutStatus.INITIATED: TransactionState.PAYOUT_INITIATED,
    PayoutStatus.PROCESSING: TransactionState.PAYOUT_PROCESSING,
    PayoutStatus.PROCESSED: TransactionState.PAYOUT_PROCESSED,
    PayoutStatus.FAILED: TransactionState.PAYOUT_FAILED,
    PayoutStatus.REVERSED: TransactionState.PAYOUT_REVERSED,
}

PRE_PAYMENT_STATES = {TransactionState.SCANNED, TransactionState.QUOTED}


def classify_transition(current: PayoutStatus, new: PayoutStatus, reconcilable: bool = False) -> Transition:
    """Decide how an incoming provider status relates to the stored one."""
    current, new = PayoutStatus(current), PayoutStatus(new)

    if current == PayoutStatus.FAILED and reconcilable:
        return Transition.APPLY if new in RECONCILABLE_FAILED_ALLOWED else Transition.IGNORE
    if current == new:
        return Transition.NOOP
    if new in ALLOWED[current]:
        return Transition.APPLY
    return Transition.IGNORE


def holds_payout_slot(status: PayoutStatus, reconcilable: bool = False) -> bool:
    """Whether an attempt in this status blocks a new attempt for the same transaction."""
    return PayoutStatus(status) != PayoutStatus.FAILED or reconcilable


def transaction_state_for(status: PayoutStatus) -> TransactionState:
    return STATE_FOR_STATUS[PayoutStatus(status)]
