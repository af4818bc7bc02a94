"""
Custom Validators
Validation functions for payment intents and request headers
"""

import re
from typing import Any, Optional

DEFAULT_COUNTRY_CODE = '254'

# Subscriber number length after the country code
SUBSCRIBER_DIGITS = 9


def validate_phone_number(phone: Any, country_code: str = DEFAULT_COUNTRY_CODE) -> tuple[bool, Optional[str]]:
    """
    Validate a payer phone number

    The gateway expects the country code followed by the subscriber number,
    digits only (e.g. 254712345678).

    Returns:
        Tuple of (is_valid, error_message)
    """
    if not phone or not isinstance(phone, str):
        return False, "Phone number is required"

    if not re.fullmatch(rf'{re.escape(country_code)}\d{{{SUBSCRIBER_DIGITS}}}', phone):
        return False, (
            f"Phone number must be {country_code} followed by {SUBSCRIBER_DIGITS} digits "
            f"({country_code}XXXXXXXXX)"
        )

    return True, None


def validate_amount(amount: Any) -> tuple[bool, Optional[str]]:
    """
    Validate a payment amount in whole currency units

    Returns:
        Tuple of (is_valid, error_message)
    """
    # bool is an int subclass
    if isinstance(amount, bool) or not isinstance(amount, int):
        return False, f"Amount must be a whole number, got {type(amount).__name__}"

    if amount <= 0:
        return False, "Amount must be greater than 0"

    return True, None


def validate_text(value: Any, name: str, max_length: int) -> tuple[bool, Optional[str]]:
    """
    Validate a short free-text field shown on the payer's handset

    Returns:
        Tuple of (is_valid, error_message)
    """
    if not isinstance(value, str) or not value.strip():
        return False, f"{name} is required"

    if len(value) > max_length:
        return False, f"{name} must be at most {max_length} characters"

    return True, None


def validate_idempotency_key(key: str) -> tuple[bool, Optional[str]]:
    """
    Validate idempotency key format

    Args:
        key: Idempotency key to validate

    Returns:
        Tuple of (is_valid, error_message)
    """
    if not key:
        return False, "Idempotency key is required"

    # Check length (reasonable range)
    if len(key) < 10 or len(key) > 255:
        return False, "Idempotency key must be between 10 and 255 characters"

    # Check format (alphanumeric, hyphens, underscores)
    if not re.match(r'^[a-zA-Z0-9_-]+$', key):
        return False, "Idempotency key must contain only alphanumeric characters, hyphens, and underscores"

    return True, None


def sanitize_phone_number(phone: str, country_code: str = DEFAULT_COUNTRY_CODE) -> str:
    """
    Normalise common phone spellings to country-code-prefixed digits

    Accepts: +254712345678, 0712345678, 254712345678, 254 712 345 678
    Anything else is returned with separators stripped and left for
    validate_phone_number() to reject.
    """
    if not phone:
        return ''

    # Remove all non-digit characters except +
    phone_clean = re.sub(r'[^\d+]', '', str(phone))

    if phone_clean.startswith('+'):
        phone_clean = phone_clean[1:]
    elif phone_clean.startswith('0'):
        phone_clean = country_code + phone_clean[1:]

    return phone_clean
