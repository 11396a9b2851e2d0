"""
Parsing and formatting of currency amounts and closing dates.

Spreadsheets exported in Brazil use ``.`` as thousands separator and ``,`` as
decimal separator (``1.234,56``); values typed by hand sometimes arrive with a
plain decimal point (``99.90``). Both are accepted here.
"""
import re
from datetime import date, datetime
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Optional

TWO_PLACES = Decimal("0.01")
ZERO = Decimal("0.00")

_BR_DATE = re.compile(r"^(\d{2})[/\-](\d{2})[/\-](\d{4})$")
_ISO_DATE = re.compile(r"^(\d{4})-(\d{2})-(\d{2})$")


def _normalize_number_text(text: str) -> str:
    cleaned = text.replace("R$", "").replace("\u00a0", "").replace(" ", "").strip()
    if "," in cleaned:
        # Brazilian: dots are thousands separators, the comma is the decimal mark
        return cleaned.replace(".", "").replace(",", ".")
    if cleaned.count(".") > 1:
        return cleaned.replace(".", "")
    if "." in cleaned:
        integer_part, _, fraction = cleaned.partition(".")
        # "5.000" is five thousand, "99.90" is ninety-nine and ninety cents
        if len(fraction) == 3 and integer_part.lstrip("-+"):
            return integer_part + fraction
    return cleaned


def parse_brl_number(text: Optional[str]) -> Optional[Decimal]:
    """Parse a currency string; returns None when it is not a finite number."""
    if text is None:
        return None
    normalized = _normalize_number_text(str(text))
    if not normalized:
        return None
    try:
        value = Decimal(normalized)
    except InvalidOperation:
        return None
    if not value.is_finite():
        return None
    return value


def to_amount(value: Any) -> Decimal:
    """Coerce anything to a 2-place amount, falling back to zero when it does not parse."""
    if value is None or isinstance(value, bool):
        return ZERO
    if isinstance(value, Decimal):
        amount = value
    elif isinstance(value, int):
        amount = Decimal(value)
    elif isinstance(value, float):
        amount = Decimal(repr(value))
    else:
        amount = parse_brl_number(str(value))
        if amount is None:
            return ZERO
    if not amount.is_finite():
        return ZERO
    return amount.quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


def format_brl_number(value: Any) -> str:
    return f"{to_amount(value):.2f}".replace(".", ",")


def parse_closing_date(text: Optional[str]) -> Optional[date]:
    """Accepts DD/MM/YYYY, DD-MM-YYYY and YYYY-MM-DD; None for anything else."""
    if not text:
        return None
    candidate = text.strip()
    match = _BR_DATE.match(candidate)
    if match:
        day, month, year = match.groups()
    else:
        match = _ISO_DATE.match(candidate)
        if not match:
            return None
        year, month, day = match.groups()
    try:
        return datetime(int(year), int(month), int(day)).date()
    except ValueError:
        return None
