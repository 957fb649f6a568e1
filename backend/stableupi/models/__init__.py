from stableupi.models.transaction import TransactionRecord
from stableupi.models.payout import PayoutAttempt
from stableupi.models.beneficiary import Beneficiary
from stableupi.models.audit import AuditLog

__all__ = ["TransactionRecord", "PayoutAttempt", "Beneficiary", "AuditLog"]
