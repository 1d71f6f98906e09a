"""Phone number normalization: the identity key of every stored entity."""

import phonenumbers

# Fewer digits than this cannot be a full international number.
MIN_DIGITS = 10


def normalize_phone(raw: str | None) -> str | None:
    """Return "+" followed by the digits of raw, or None if invalid.

    Whitespace and punctuation are dropped; non-ASCII digits are folded to
    ASCII. The result is idempotent: normalize_phone(normalize_phone(x)) equals
    normalize_phone(x). Inputs with fewer than MIN_DIGITS digits are rejected.
    """
    if raw is None:
        return None
    digits = phonenumbers.normalize_digits_only(str(raw).strip())
    if len(digits) < MIN_DIGITS:
        return None
    return "+" + digits


def format_phone(identity: str) -> str:
    """Human-readable form of a normalized identity, or the identity itself."""
    try:
        parsed = phonenumbers.parse(identity, None)
    except phonenumbers.NumberParseException:
        return identity
    if not phonenumbers.is_valid_number(parsed):
        return identity
    return phonenumbers.format_number(parsed, phonenumbers.PhoneNumberFormat.INTERNATIONAL)
