"""Display helpers shared by exports and log messages."""

from __future__ import annotations

import re
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation


def format_phone_number(phone: str) -> str:
    """Render Egyptian numbers as ``+20 123 456 7890``; leave others untouched."""

    digits = re.sub(r"\D", "", phone)
    if digits.startswith("20") and len(digits) == 12:
        return f"+{digits[:2]} {digits[2:5]} {digits[5:8]} {digits[8:]}"
    return phone


def format_price(amount: Decimal | int | float | str | None, currency: str = "EGP") -> str:
    """Format a price with thousands separators and no fraction, e.g. ``3,000,000 EGP``."""

    try:
        value = Decimal(str(amount)) if amount is not None else Decimal("0")
    except InvalidOperation:
        value = Decimal("0")
    if not value.is_finite():
        value = Decimal("0")
    rounded = value.quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    return f"{int(rounded):,} {currency}"
