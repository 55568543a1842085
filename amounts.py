import re
from datetime import date, datetime
from decimal import Decimal, InvalidOperation

AMOUNT_QUANTUM = Decimal("0.01")
# Numeric(14, 2) holds twelve integer digits
MAX_AMOUNT = Decimal("1000000000000")

_RUPIAH_MARKS = ("Rp", "IDR")
_CURRENCY_MARKS = _RUPIAH_MARKS + ("€", "$")
_DOT_GROUPED = re.compile(r"\d{1,3}(\.\d{3})+")


def _normalize_separators(clean: str, *, rupiah: bool) -> str:
    if "," in clean and "." in clean:
        # whichever separator comes last is the decimal one
        if clean.rfind(",") > clean.rfind("."):
            return clean.replace(".", "").replace(",", ".")
        return clean.replace(",", "")
    if "," in clean:
        if clean.count(",") == 1:
            return clean.replace(",", ".")
        return clean.replace(",", "")
    if clean.count(".") > 1 or (rupiah and _DOT_GROUPED.fullmatch(clean)):
        return clean.replace(".", "")
    return clean


def parse_amount(value: object) -> Decimal:
    """Parse an amount sent as a JSON number or a human formatted string.

    Strings may carry a currency mark, spaces, grouping separators and a comma
    decimal separator ("Rp 12.500,50" -> 12500.50). Rupiah amounts use the dot
    for thousands only ("Rp 12.500" -> 12500). Amounts must be strictly
    positive and fit the amount column.
    """
    if isinstance(value, bool) or value is None:
        raise ValueError("Invalid amount")
    if isinstance(value, (int, Decimal)):
        amount = Decimal(value)
    elif isinstance(value, float):
        amount = Decimal(str(value))
    elif isinstance(value, str):
        clean = value.strip()
        rupiah = any(mark in clean for mark in _RUPIAH_MARKS)
        for mark in _CURRENCY_MARKS:
            clean = clean.replace(mark, "")
        clean = _normalize_separators(clean.replace(" ", ""), rupiah=rupiah)
        try:
            amount = Decimal(clean)
        except InvalidOperation as exc:
            raise ValueError("Invalid amount") from exc
    else:
        raise ValueError("Invalid amount")
    if not amount.is_finite():
        raise ValueError("Invalid amount")
    if amount >= MAX_AMOUNT:
        raise ValueError("Amount is too large")
    amount = amount.quantize(AMOUNT_QUANTUM)
    if amount <= 0:
        raise ValueError("Amount must be positive")
    return amount


def parse_date(value: object) -> date:
    """Accept ``YYYY-MM-DD``, ``DD.MM.YYYY`` or an ISO datetime; the time is dropped."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str) or not value.strip():
        raise ValueError("Invalid date")
    value = value.strip()
    try:
        return datetime.strptime(value, "%Y-%m-%d").date()
    except ValueError:
        pass
    try:
        return datetime.strptime(value, "%d.%m.%Y").date()
    except ValueError:
        pass
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00")).date()
    except ValueError as exc:
        raise ValueError("Invalid date") from exc
