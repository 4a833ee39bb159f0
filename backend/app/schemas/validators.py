"""Reusable Pydantic validators for billing input.

- Email validation
- ISO 4217 currency codes
- UUID identifiers
- Explicit invoice numbers
"""

import re
import uuid

# Regex patterns
EMAIL_REGEX = re.compile(r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$")
CURRENCY_REGEX = re.compile(r"^[A-Z]{3}$")
INVOICE_NUMBER_REGEX = re.compile(r"^[A-Za-z0-9][A-Za-z0-9/_-]{0,49}$")


def validate_email(value: str) -> str:
    """Validate email address.

    Returns:
        Lowercase email address

    Raises:
        ValueError: If email is invalid
    """
    if not value:
        raise ValueError("Email is required")

    value = value.strip().lower()

    if len(value) > 254:  # RFC 5321
        raise ValueError("Email address too long")

    if not EMAIL_REGEX.match(value):
        raise ValueError("Invalid email address format")

    return value


def validate_currency(value: str) -> str:
    """Validate a three-letter currency code, returned upper-cased."""
    value = value.strip().upper()
    if not CURRENCY_REGEX.match(value):
        raise ValueError("Currency must be a 3-letter ISO code (e.g. BRL, USD)")
    return value


def validate_uuid(value: str) -> str:
    """Validate a UUID string and return its canonical form."""
    try:
        return str(uuid.UUID(str(value)))
    except ValueError:
        raise ValueError("Must be a valid UUID") from None


def validate_invoice_number(value: str) -> str:
    """Validate an explicitly supplied invoice number."""
    value = value.strip()
    if not INVOICE_NUMBER_REGEX.match(value):
        raise ValueError(
            "Invoice number must be 1-50 characters: letters, digits, '/', '_' or '-'"
        )
    return value
