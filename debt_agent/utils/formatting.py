"""
Human-readable money and date formatting for outbound messages.
"""
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal

_CURRENCY_PREFIX = {"IDR": "Rp", "USD": "$", "EUR": "€"}


def format_amount(amount: Decimal, currency: str = "IDR") -> str:
    """
    Format an amount the way debtors expect to read it.

    IDR uses dot thousands separators and no decimals (``Rp 1.000.000``);
    other currencies use comma separators and two decimals (``$ 1,250.00``).
    """
    prefix = _CURRENCY_PREFIX.get(currency, currency)
    value = Decimal(amount)
    if currency == "IDR":
        whole = int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))
        return f"{prefix} {whole:,}".replace(",", ".")
    return f"{prefix} {value.quantize(Decimal('0.01'), rounding=ROUND_HALF_UP):,}"


def format_date(value: datetime) -> str:
    return value.strftime("%d/%m/%Y")
