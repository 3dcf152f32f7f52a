import re
from typing import Any

STATE_CODES = (
    "AS", "BC", "BS", "CC", "CL", "CM", "CS", "CH", "DF", "DG", "GT", "GR", "HG", "JC", "MC", "MN",
    "MS", "NT", "NL", "OC", "PL", "QT", "QR", "SP", "SL", "SR", "TC", "TS", "TL", "VZ", "YN", "ZS",
    "NE",
)

CURP_RE = re.compile(
    r"^[A-Z][AEIOU][A-Z]{2}"
    r"[0-9]{2}(0[1-9]|1[0-2])(0[1-9]|[12][0-9]|3[01])"
    r"[HM]"
    rf"({'|'.join(STATE_CODES)})"
    r"[B-DF-HJ-NP-TV-Z]{3}"
    r"[0-9A-Z][0-9]$"
)


def normalize_curp(value: str) -> str:
    return value.strip().upper()


def validate_curp(value: Any) -> bool:
    """Format check for the 18-character candidate identifier; case-insensitive."""
    if not isinstance(value, str) or not value:
        return False
    return CURP_RE.fullmatch(value.upper()) is not None
