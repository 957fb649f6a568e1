from stableupi.utils.hashing import generate_hash, generate_chain_hash, signatures_match
from stableupi.utils.validators import validate_upi_vpa, validate_upi_amount, parse_inr, sanitize_remarks

__all__ = [
    "generate_hash", "generate_chain_hash", "signatures_match",
    "validate_upi_vpa", "validate_upi_amount", "parse_inr", "sanitize_remarks",
]
