"""Phone number utilities for matching noisy, hand-entered numbers."""

import logging
import re

logger = logging.getLogger(__name__)

PHONE_KEY_LENGTH = 10


def digits_only(phone: str | None) -> str:
    """Strip everything but digits from a phone number."""
    if not phone:
        return ""
    return re.sub(r"\D", "", phone)


def normalize_phone_key(phone: str | None) -> str:
    """Normalize phone to its last 10 digits.

    The last 10 digits are the subscriber number for Indian mobiles, so this
    drops country codes (+91), trunk prefixes (0) and any formatting.

    Examples:
        +91 98765-43210      → 9876543210
        09876543210 (home)   → 9876543210
        98765 43210          → 9876543210

    Returns:
        Up to 10 trailing digits (shorter when the input has fewer digits)
    """
    return digits_only(phone)[-PHONE_KEY_LENGTH:]


def fuzzy_phone_pattern(phone_key: str) -> str:
    """Build a regex that finds ``phone_key`` inside a noisy stored number.

    Any run of non-digits is tolerated between digits and after the last one,
    and the match is anchored at the end of the string, so
    ``9876543210`` matches ``+91 98765-43210`` and ``09876543210 (home)`` but
    not ``98765432101``.

    Args:
        phone_key: Exactly 10 digits from :func:`normalize_phone_key`

    Returns:
        POSIX-compatible regular expression (usable by Postgres ``~`` and re)
    """
    return "[^0-9]*".join(phone_key) + "[^0-9]*$"


def suffix_phone_pattern(digits: str) -> str:
    """Plain suffix match for numbers too short to normalize."""
    return re.escape(digits) + "$"


def phone_match_pattern(phone: str | None) -> str | None:
    """Pick the matching pattern for a phone number.

    Returns:
        Fuzzy pattern for 10+ digit numbers, suffix pattern for shorter ones,
        or None when the number has no digits at all
    """
    key = normalize_phone_key(phone)
    if not key:
        return None
    if len(key) == PHONE_KEY_LENGTH:
        return fuzzy_phone_pattern(key)
    logger.debug(f"Phone has fewer than {PHONE_KEY_LENGTH} digits, using suffix match: {phone}")
    return suffix_phone_pattern(key)
