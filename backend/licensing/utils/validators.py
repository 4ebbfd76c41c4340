"""
Validators — Input checks for applicant identifiers and comments.
"""
import re


def validate_email(email: str | None) -> bool:
    """Loose email shape check: local@domain.tld."""
    if not email:
        return False
    return bool(re.match(r"^[^@\s]+@[^@\s]+\.[^@\s]+$", email.strip()))


def validate_phone(phone: str | None) -> bool:
    """Indian mobile number: 10 digits starting 6-9, optional +91."""
    if not phone:
        return False
    cleaned = re.sub(r"[\s-]", "", phone)
    return bool(re.match(r"^(\+91)?[6-9]\d{9}$", cleaned))


def is_blank(text: str | None) -> bool:
    return text is None or not text.strip()


def normalize_application_number(number: str | None) -> str:
    if not number:
        return ""
    return number.strip().upper()


def emails_match(a: str | None, b: str | None) -> bool:
    """Case-insensitive email equality."""
    if not a or not b:
        return False
    return a.strip().lower() == b.strip().lower()
