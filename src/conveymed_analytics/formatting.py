from __future__ import annotations

import math
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Optional


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def fixed1(value: float) -> str:
    """One decimal, ties rounded away from zero on the exact binary value."""

    return str(Decimal(value).quantize(Decimal("0.1"), rounding=ROUND_HALF_UP))


def ratio(affected: float, total: float, percent: bool = False):
    """
    ``affected / total`` as a one-decimal string, or ``0`` when ``total`` is 0.

    With ``percent`` the quotient is scaled by 100 first.
    """

    if not total:
        return 0
    value = affected / total
    return fixed1(value * 100 if percent else value)


def format_number(value: Any) -> str:
    if value is None:
        return "-"
    if isinstance(value, bool):
        return str(value)
    if isinstance(value, int):
        return f"{value:,}"
    if isinstance(value, float):
        if value.is_integer():
            return f"{int(value):,}"
        return f"{value:,.3f}".rstrip("0").rstrip(".")
    return str(value)


def format_percent(value: Optional[float], decimals: int = 1) -> str:
    if value is None:
        return "-"
    return f"{float(value):.{decimals}f}%"


def format_duration(seconds: Optional[float]) -> str:
    """
    Render a duration as ``Xh Ym Zs``, dropping zero units.

    At least one unit is always shown, so zero (or a missing value) is ``0s``.
    """

    if not seconds:
        return "0s"
    total = int(seconds)
    hours, remainder = divmod(total, 3600)
    minutes, secs = divmod(remainder, 60)
    parts = []
    if hours > 0:
        parts.append(f"{hours}h")
    if minutes > 0:
        parts.append(f"{minutes}m")
    if secs > 0 or not parts:
        parts.append(f"{secs}s")
    return " ".join(parts)


def display_name(user: Optional[dict], fallback: str = "Unknown") -> str:
    """``first last`` when both are set, else the email, else ``fallback``."""

    if not user:
        return fallback
    first, last = user.get("first_name"), user.get("last_name")
    if first and last:
        return f"{first} {last}"
    return user.get("email") or fallback
