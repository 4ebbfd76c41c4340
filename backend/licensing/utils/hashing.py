"""
Hashing Utilities — SHA-256 payload hashing for the workflow audit chain,
and constant-time comparison for OTP codes.
"""
import hashlib
import hmac
import json


def generate_hash(data: dict) -> str:
    """Generate a SHA-256 hash of a dictionary (deterministic, sorted keys)."""
    canonical = json.dumps(data, sort_keys=True, default=str).encode("utf-8")
    return hashlib.sha256(canonical).hexdigest()


def generate_chain_hash(current_data: dict, previous_hash: str = "") -> str:
    """SHA-256(previous_hash + payload hash); links entries of one application."""
    current_hash = generate_hash(current_data)
    chain_input = f"{previous_hash}{current_hash}".encode("utf-8")
    return hashlib.sha256(chain_input).hexdigest()


def codes_match(expected: str, submitted: str | None) -> bool:
    """Constant-time comparison of two OTP codes."""
    if submitted is None:
        return False
    return hmac.compare_digest(expected.encode("utf-8"), submitted.strip().encode("utf-8"))
