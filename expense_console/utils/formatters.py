from typing import Optional

STATUS_LABELS = {
    "DRAFT": "Draft",
    "SUBMITTED": "Submitted",
    "APPROVED": "Approved",
    "PAID": "Paid",
    "CLOSED": "Closed",
    "ACTIVE": "Active",
    "INACTIVE": "Inactive",
}

STATUS_VARIANTS = {
    "DRAFT": "secondary",
    "SUBMITTED": "default",
    "APPROVED": "default",
    "PAID": "default",
    "CLOSED": "outline",
    "ACTIVE": "default",
    "INACTIVE": "secondary",
}

_CURRENCY_SYMBOLS = {"USD": "$", "VND": "₫", "EUR": "€"}
_CURRENCY_DECIMALS = {"VND": 0}


def format_status(status: Optional[str]) -> str:
    """IN_PROGRESS -> In Progress"""
    if not status:
        return ""
    return " ".join(word[:1] + word[1:].lower() for word in status.split("_"))


def get_status_label(status: Optional[str]) -> str:
    return STATUS_LABELS.get(status or "") or format_status(status)


def get_status_variant(status: Optional[str]) -> str:
    return STATUS_VARIANTS.get(status or "", "default")


def format_currency(amount: Optional[float], currency: Optional[str]) -> str:
    code = (currency or "USD").upper()
    decimals = _CURRENCY_DECIMALS.get(code, 2)
    value = float(amount or 0)
    number = f"{abs(value):,.{decimals}f}"
    symbol = _CURRENCY_SYMBOLS.get(code)
    text = f"{symbol}{number}" if symbol else f"{code} {number}"
    return f"-{text}" if value < 0 else text
