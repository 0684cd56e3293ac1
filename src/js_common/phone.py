"""Phone number normalization for Indonesian WhatsApp numbers.

The gateway delivers senders as bare digits ("6281234567890"), while people
type numbers as "0812-3456-7890" or "+62 812 ...". Everything is stored and
compared in the bare 62-prefixed form.
"""

import re

_NON_DIGIT = re.compile(r"\D")


def normalize_phone(raw: str) -> str:
    """'0812-3456-7890' -> '6281234567890'. Raises ValueError on empty input."""
    digits = _NON_DIGIT.sub("", raw or "")
    if not digits:
        raise ValueError(f"Phone number has no digits: {raw!r}")
    if digits.startswith("0"):
        digits = "62" + digits[1:]
    elif not digits.startswith("62"):
        digits = "62" + digits
    return digits


def mask_phone(phone: str) -> str:
    """For log lines: '6281234567890' -> '62812****890'."""
    if len(phone) <= 8:
        return phone
    return f"{phone[:5]}****{phone[-3:]}"
