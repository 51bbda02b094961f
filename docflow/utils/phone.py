"""Phone number helpers."""

import re
from typing import Optional

_NON_DIGIT = re.compile(r"\D")


def normalize_phone(phone: Optional[str]) -> Optional[str]:
    """Strip a leading ``+`` or international ``00`` prefix and surrounding whitespace.

    Returns None for empty input.
    """
    if phone is None:
        return None
    value = str(phone).strip()
    if not value:
        return None
    if value.startswith("+"):
        value = value[1:]
    elif value.startswith("00"):
        value = value[2:]
    value = value.replace(" ", "")
    return value or None


def digits_only(value: Optional[str]) -> str:
    """Remove every non-digit character."""
    if value is None:
        return ""
    return _NON_DIGIT.sub("", str(value))
