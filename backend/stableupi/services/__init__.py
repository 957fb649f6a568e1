from stableupi.services.qr_parser import UpiQrParser, parse_upi_qr
from stableupi.services.conversion import ConversionEngine
from stableupi.services.audit_service import AuditService
from stableupi.services.payout_orchestrator import PayoutOrchestrator

__all__ = ["UpiQrParser", "parse_upi_qr", "ConversionEngine", "AuditService", "PayoutOrchestrator"]
