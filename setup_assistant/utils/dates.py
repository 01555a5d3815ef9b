"""
Date Normalization
==================

Turns the date spellings found in Brazilian spreadsheets into calendar dates.

Supported inputs:
- date / datetime cells from the spreadsheet reader
- Excel serial day numbers (e.g. 45292 → 2024-01-01)
- ISO strings: "2024-09-15", "2024-09-15T10:00:00"
- Day/month-name: "23/Oct/20", "05-set-2024", "1 Fev 2023"
- Numeric day-first: "15/09/2024", "15.09.24", and year-first "2024/09/15"

Two-digit years resolve to the current century.
"""

import re
from datetime import date, datetime, timedelta
from typing import Final

MONTHS: Final[dict[str, int]] = {
    # English
    "jan": 1, "feb": 2, "mar": 3, "apr": 4, "may": 5, "jun": 6,
    "jul": 7, "aug": 8, "sep": 9, "oct": 10, "nov": 11, "dec": 12,
    # Portuguese
    "fev": 2, "abr": 4, "mai": 5, "ago": 8, "set": 9, "out": 10, "dez": 12,
}

EXCEL_EPOCH: Final[date] = date(1899, 12, 30)
# Serials outside this window are treated as plain numbers (1954..2119)
EXCEL_SERIAL_RANGE: Final[tuple[int, int]] = (20000, 80000)

_ISO = re.compile(r"^(\d{4})-(\d{1,2})-(\d{1,2})(?:[T ].*)?$")
_MONTH_NAME = re.compile(r"^(\d{1,4})[\s/\-.]+([A-Za-zçÇ]{3,})\.?[\s/\-.]+(\d{1,4})$")
_NUMERIC = re.compile(r"^(\d{1,4})[/\-.](\d{1,2})[/\-.](\d{1,4})$")


def normalize_date(
    value: str | date | datetime | int | float | None,
    today: date | None = None,
) -> date | None:
    """
    Normalize a cell value into a date.

    Args:
        value: Raw cell content
        today: Reference date for two-digit year expansion (defaults to today)

    Returns:
        The parsed date, or None when the value is not a recognizable date
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, (int, float)):
        return _from_excel_serial(value)

    text = str(value).strip()
    if not text:
        return None

    reference = today or date.today()

    match = _ISO.match(text)
    if match:
        year, month, day = (int(part) for part in match.groups())
        return _safe_date(year, month, day)

    match = _MONTH_NAME.match(text)
    if match:
        first, month_name, last = match.groups()
        month = MONTHS.get(_fold_month(month_name)[:3])
        if month is None:
            return None
        day, year = int(first), int(last)
        if day > 31:
            # Year-first: "2020-Oct-23"
            day, year = year, day
        return _safe_date(expand_year(year, reference), month, day)

    match = _NUMERIC.match(text)
    if match:
        first, middle, last = (int(part) for part in match.groups())
        if first > 31:
            return _safe_date(first, middle, last)
        return _safe_date(expand_year(last, reference), middle, first)

    if re.fullmatch(r"\d{5}(\.\d+)?", text):
        return _from_excel_serial(float(text))

    return None


def expand_year(year: int, today: date | None = None) -> int:
    """Expand a two-digit year into the current century; longer years pass through."""
    if year >= 100:
        return year
    century = (today or date.today()).year // 100 * 100
    return century + year


def to_iso(value: date | None) -> str | None:
    """Format as YYYY-MM-DD, keeping None."""
    return value.isoformat() if value else None


def _fold_month(name: str) -> str:
    return name.lower().replace("ç", "c")


def _safe_date(year: int, month: int, day: int) -> date | None:
    try:
        return date(year, month, day)
    except ValueError:
        return None


def _from_excel_serial(value: float) -> date | None:
    low, high = EXCEL_SERIAL_RANGE
    if not low <= value <= high:
        return None
    return EXCEL_EPOCH + timedelta(days=int(value))
