"""
Numeric helpers for the unit-suffixed tokens tc prints.

Everything here is lenient: an empty or unrecognised token is 0, never an
exception, so one odd field cannot blank a whole snapshot.
"""
from typing import Optional, Tuple

_COUNTER_SUFFIXES = "bBkKmMgGpP"

# 1024-based, matching how tc renders memory and backlog sizes
_BYTE_MULTIPLIERS = (
    ("Gb", 1024 * 1024 * 1024),
    ("Mb", 1024 * 1024),
    ("Kb", 1024),
    ("b", 1),
)

# "us" and "ms" must be tried before "s"
_DELAY_SUFFIXES = ("us", "ms", "s")


def parse_uint(token: Optional[str]) -> int:
    """
    Parse an unsigned counter such as "1592616", "0b" or "12p".

    Returns 0 for empty, negative or malformed input.
    """
    if not token:
        return 0
    digits = token.strip().rstrip(_COUNTER_SUFFIXES)
    if not digits.isdigit():
        return 0
    return int(digits)


def parse_bytes(value: Optional[str]) -> int:
    """Parse a byte string like "238656b", "4097Kb", "32Mb" or "1Gb" into bytes"""
    value = (value or "").strip()
    for suffix, multiplier in _BYTE_MULTIPLIERS:
        if value.endswith(suffix):
            number = value[:-len(suffix)]
            return int(number) * multiplier if number.isdigit() else 0
    return int(value) if value.isdigit() else 0


def format_bytes(total: int) -> str:
    return f"{total}b"


def _split_delay(value: Optional[str]) -> Optional[Tuple[float, str]]:
    value = (value or "").strip()
    if value in ("", "0"):
        return None
    for suffix in _DELAY_SUFFIXES:
        if value.endswith(suffix):
            try:
                return float(value[:-len(suffix)]), suffix
            except ValueError:
                return None
    return None


def parse_delay_usec(value: Optional[str]) -> float:
    """
    Convert a CAKE delay string ("500us", "1.5ms", "2s") to microseconds.

    "", "0" and anything without a known unit suffix resolve to 0.
    """
    parsed = _split_delay(value)
    if parsed is None:
        return 0.0
    number, unit = parsed
    if unit == "us":
        return number
    if unit == "ms":
        return number * 1000
    return number * 1_000_000


def parse_delay_ms(value: Optional[str]) -> float:
    """Convert a CAKE delay string to milliseconds"""
    parsed = _split_delay(value)
    if parsed is None:
        return 0.0
    number, unit = parsed
    if unit == "us":
        return number / 1000
    if unit == "ms":
        return number
    return number * 1000
