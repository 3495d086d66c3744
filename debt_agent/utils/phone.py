"""
Phone number normalization.

Debtor phones are stored and compared in one canonical form: digits only,
international, with the country code and no leading zero.
"""
import re

_NON_DIGITS = re.compile(r"\D")


def normalize_phone(raw_phone: str, country_code: str = "62") -> str:
    """
    Normalize a phone number to canonical digit-only international form.

    Args:
        raw_phone: Phone as typed by an operator or received from the channel
        country_code: Country code prepended to local numbers

    Returns:
        Canonical phone, e.g. ``"081234567890"`` -> ``"6281234567890"``

    Raises:
        ValueError: If the input contains no digits
    """
    if not isinstance(raw_phone, str):
        raise ValueError("Phone number must be a string")

    # Channel addresses carry a domain suffix ("628123@s.whatsapp.net")
    local_part = raw_phone.split("@", 1)[0]
    digits = _NON_DIGITS.sub("", local_part)
    if not digits:
        raise ValueError("Phone number contains no digits")

    if digits.startswith(country_code):
        return digits
    if digits.startswith("0"):
        return country_code + digits[1:]
    return country_code + digits


def to_channel_address(phone: str, suffix: str = "@s.whatsapp.net", country_code: str = "62") -> str:
    """Build the channel address for a phone number."""
    return normalize_phone(phone, country_code) + suffix
