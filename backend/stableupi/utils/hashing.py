"""
Cryptographic Utilities — SHA-256 audit hashing and webhook HMAC checks.
"""
import base64
import hashlib
import hmac
import json


def generate_hash(data: dict) -> str:
    """Generate a SHA-256 hash of a dictionary (deterministic, sorted keys)."""
    canonical = json.dumps(data, sort_keys=True, default=str).encode("utf-8")
    return hashlib.sha256(canonical).hexdigest()


def generate_chain_hash(current_data: dict, previous_hash: str = "") -> str:
    """Generate a chain hash: SHA-256(previous_hash + current_payload)."""
    current_hash = generate_hash(current_data)
    chain_input = f"{previous_hash}{current_hash}".encode("utf-8")
    return hashlib.sha256(chain_input).hexdigest()


def hmac_sha256_hex(secret: str, message: bytes) -> str:
    return hmac.new(secret.encode("utf-8"), message, hashlib.sha256).hexdigest()


def hmac_sha256_b64(secret: str, message: bytes) -> str:
    digest = hmac.new(secret.encode("utf-8"), message, hashlib.sha256).digest()
    return base64.b64encode(digest).decode("ascii")


def signatures_match(expected: str, received: str | None) -> bool:
    """Constant-time comparison; a missing signature never matches."""
    if not received or not expected:
        return False
    return hmac.compare_digest(expected.strip(), received.strip())
