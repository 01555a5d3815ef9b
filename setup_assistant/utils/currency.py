"""
Currency Parser
===============

Locale-aware amount parsing for Brazilian financial spreadsheets.

Example inputs:
- "R$ 1.234,56" → 1234.56
- "R$ 50" → 50.0
- "1,234.56" → 1234.56
- "(1.500,00)" → -1500.0
- "12.500" → 12500.0 (pt-BR thousands)

The rule for a string with separators: when both "." and "," appear, the
last one is the decimal separator; when only one kind appears, it is a
decimal separator only if it occurs once and at most two digits follow it.
"""

import re
from decimal import Decimal, InvalidOperation
from typing import Final

CURRENCY_MARKERS: Final[tuple[str, ...]] = ("R$", "US$", "BRL", "USD", "EUR", "$", "€")

_NON_NUMERIC = re.compile(r"[^\d.,\-]")
_PLAIN_NUMBER = re.compile(r"^-?\d+$")


def parse_currency(value: str | int | float | Decimal | None) -> float | None:
    """
    Parse a monetary value into a float.

    Args:
        value: Cell content (string, number, or None)

    Returns:
        Parsed amount, or None when nothing numeric can be recovered
    """
    amount = parse_decimal(value)
    return float(amount) if amount is not None else None


def parse_decimal(value: str | int | float | Decimal | None) -> Decimal | None:
    """Parse a monetary value keeping Decimal precision."""
    if value is None or isinstance(value, bool):
        return None

    if isinstance(value, (int, float, Decimal)):
        try:
            amount = Decimal(str(value))
        except (InvalidOperation, ValueError):
            return None
        return amount if amount.is_finite() else None

    if not isinstance(value, str):
        return None

    raw = value.strip()
    if not raw:
        return None

    negative = raw.startswith("(") and raw.endswith(")")
    cleaned = _clean_amount_string(raw)
    if not cleaned:
        return None

    if cleaned.endswith("-"):
        negative = True
        cleaned = cleaned.rstrip("-")
    if cleaned.startswith("-"):
        negative = True
        cleaned = cleaned.lstrip("-")
    if "-" in cleaned or not cleaned:
        return None

    try:
        amount = Decimal(normalize_separators(cleaned))
    except (InvalidOperation, ValueError):
        return None

    return -amount if negative else amount


def _clean_amount_string(value: str) -> str:
    """Strip currency markers, spaces and any non-numeric noise."""
    cleaned = value
    for marker in CURRENCY_MARKERS:
        cleaned = cleaned.replace(marker, "")
    cleaned = cleaned.replace(" ", "").replace("\u00a0", "")
    return _NON_NUMERIC.sub("", cleaned)


def normalize_separators(value: str) -> str:
    """
    Normalize decimal and thousands separators to a plain "1234.56" form.

    Args:
        value: Digits with "." and/or "," separators, no sign

    Returns:
        String accepted by Decimal()
    """
    if _PLAIN_NUMBER.match(value):
        return value

    has_comma = "," in value
    has_dot = "." in value

    if has_comma and has_dot:
        # Both present - the LAST one is the decimal separator
        if value.rfind(",") > value.rfind("."):
            return value.replace(".", "").replace(",", ".")
        return value.replace(",", "")

    separator = "," if has_comma else "."
    parts = value.split(separator)
    if len(parts) == 2 and len(parts[1]) <= 2:
        # Single separator with cents: "1234,5" / "99.99"
        return f"{parts[0] or '0'}.{parts[1] or '0'}"
    # Thousands grouping: "1.234.567" / "12,500"
    return "".join(parts)


def parse_number(value: str | int | float | Decimal | None) -> float | None:
    """
    Parse a plain quantity written pt-BR style ("1.234,5" → 1234.5).

    Dots are thousands separators and the comma is the decimal mark, unless
    the string is already a canonical "1234.5" number.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float, Decimal)):
        return float(value)

    raw = str(value).strip().replace(" ", "")
    if not raw:
        return None
    if re.fullmatch(r"-?\d+(\.\d+)?", raw) and raw.count(".") == 1 and len(raw.split(".")[1]) != 3:
        return float(raw)

    try:
        return float(raw.replace(".", "").replace(",", "."))
    except ValueError:
        return None


def round_money(value: float | None) -> float | None:
    """Round to cents, keeping None."""
    if value is None:
        return None
    return float(Decimal(str(value)).quantize(Decimal("0.01")))
