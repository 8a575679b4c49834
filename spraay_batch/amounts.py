"""
Fixed-point amount handling.

Amounts travel as decimal strings from the user and as integers in the
asset's smallest unit everywhere else (1 CELO = 10**18 wei, 1 TAO = 10**9 RAO,
1 USDC = 10**6). Conversion and summation are exact integer arithmetic; no
value ever passes through a float, not even for display.
"""

from __future__ import annotations

import re
from typing import Iterable, Optional

from spraay_batch.errors import MalformedAmountError

# Plain non-negative decimal: "1", "1.5", "1.", ".5". No sign, exponent or separators.
_DECIMAL_RE = re.compile(r"^(?P<whole>[0-9]*)(?:\.(?P<frac>[0-9]*))?$")


def to_smallest_unit(amount: str, precision: int) -> int:
    """
    Convert a decimal string to an integer count of smallest units.

    Digits beyond ``precision`` are only accepted when they are zeros,
    so the result is never rounded.

        >>> to_smallest_unit("1.5", 18)
        1500000000000000000
        >>> to_smallest_unit("100.000001", 6)
        100000001
    """
    if isinstance(precision, bool) or not isinstance(precision, int) or precision < 0:
        raise ValueError(f"precision must be a non-negative integer, got {precision!r}")
    if not isinstance(amount, str):
        raise MalformedAmountError(amount, precision, "amount must be a decimal string")

    text = amount.strip()
    match = _DECIMAL_RE.match(text)
    if not text or match is None:
        raise MalformedAmountError(amount, precision, "not a decimal number")

    whole = match.group("whole") or ""
    frac = match.group("frac") or ""
    if not whole and not frac:
        raise MalformedAmountError(amount, precision, "not a decimal number")

    if len(frac) > precision:
        excess = frac[precision:]
        if excess.strip("0"):
            raise MalformedAmountError(
                amount, precision, f"more than {precision} decimal places"
            )
        frac = frac[:precision]

    return int(whole or "0") * 10 ** precision + int(frac.ljust(precision, "0") or "0")


def parse_positive_amount(amount: str, precision: int) -> int:
    """Like :func:`to_smallest_unit` but zero is rejected."""
    value = to_smallest_unit(amount, precision)
    if value <= 0:
        raise MalformedAmountError(amount, precision, "must be greater than 0")
    return value


def sum_amounts(values: Iterable[int]) -> int:
    """Exact sum of smallest-unit integers."""
    total = 0
    for value in values:
        if isinstance(value, bool) or not isinstance(value, int):
            raise TypeError(f"smallest-unit amounts must be int, got {type(value).__name__}")
        total += value
    return total


def format_amount(value: int, precision: int, display_decimals: Optional[int] = None) -> str:
    """
    Render a smallest-unit integer as a decimal string.

    With ``display_decimals=None`` the output is the exact minimal form
    ("1.5", "100.000001", "3"). Otherwise it is truncated toward zero and
    padded to exactly ``display_decimals`` places; a displayed total never
    overstates what will be sent.
    """
    if isinstance(value, bool) or not isinstance(value, int):
        raise TypeError(f"value must be int, got {type(value).__name__}")
    if precision < 0:
        raise ValueError(f"precision must be non-negative, got {precision}")

    sign = "-" if value < 0 else ""
    whole, frac = divmod(abs(value), 10 ** precision)
    frac_digits = str(frac).rjust(precision, "0") if precision else ""

    if display_decimals is None:
        frac_digits = frac_digits.rstrip("0")
    elif display_decimals <= precision:
        frac_digits = frac_digits[:display_decimals]
    else:
        frac_digits = frac_digits.ljust(display_decimals, "0")

    if frac_digits:
        return f"{sign}{whole}.{frac_digits}"
    return f"{sign}{whole}"
