"""
Lenient numeric parsing and fixed-point formatting for money/percent fields.

Draft fields are edited as text. They are parsed on demand with the same
rules the dashboard form uses (``parseFloat(x) || 0``) and written back with
two decimals (``toFixed(2)``). Invalid input is never rejected: it counts as 0.
"""

from __future__ import annotations

import math
import re
from decimal import ROUND_HALF_UP, Decimal, localcontext
from typing import Optional, Union

Numeric = Union[str, int, float, None]

# Longest leading decimal literal, the way parseFloat scans its input.
_NUMBER_PREFIX = re.compile(r"^\s*([+-]?(?:[0-9]+\.?[0-9]*|\.[0-9]+)(?:[eE][+-]?[0-9]+)?)")

_CENT = Decimal("0.01")


def _scan(value: Numeric) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        result = float(value)
    else:
        m = _NUMBER_PREFIX.match(str(value))
        if not m:
            return None
        result = float(m.group(1))
    if not math.isfinite(result):
        return None
    return result


def parse_amount(value: Numeric) -> float:
    """Parse a user-entered amount; anything unparseable is 0.0."""
    # `or 0.0` also folds -0.0 into 0.0.
    return _scan(value) or 0.0


def parse_optional_amount(value: Numeric) -> Optional[float]:
    """Like parse_amount, but blank or unparseable input yields None."""
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    return _scan(value)


def format_amount(value: float) -> str:
    # Decimal(float) is the exact binary value, so half-up here rounds the same
    # way toFixed(2) does (0.125 -> "0.13", 1.005 -> "1.00").
    if not math.isfinite(value):
        value = 0.0
    exact = Decimal(value)
    with localcontext() as ctx:
        # Room for every integer digit of large amounts plus the cents.
        ctx.prec = max(ctx.prec, exact.adjusted() + 3)
        return f"{exact.quantize(_CENT, rounding=ROUND_HALF_UP):f}"


def amounts_equal(a: Numeric, b: Numeric) -> bool:
    return parse_amount(a) == parse_amount(b)


def percent_of(total: Numeric, percent: Numeric) -> str:
    """Currency share of ``total`` for ``percent`` (blank percent -> 0.00)."""
    return format_amount(parse_amount(total) * (parse_amount(percent) / 100))
