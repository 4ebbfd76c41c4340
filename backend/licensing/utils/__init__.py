from licensing.utils.hashing import generate_hash, generate_chain_hash, codes_match
from licensing.utils.validators import (
    validate_email, validate_phone, is_blank,
    normalize_application_number, emails_match,
)

__all__ = [
    "generate_hash", "generate_chain_hash", "codes_match",
    "validate_email", "validate_phone", "is_blank",
    "normalize_application_number", "emails_match",
]
