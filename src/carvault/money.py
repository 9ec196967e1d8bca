"""Payable-amount arithmetic using fixed paise precision."""

from __future__ import annotations

from decimal import Decimal, ROUND_HALF_UP


PAISE_PER_RUPEE = 100
_RUPEE_QUANT = Decimal("0.01")

# Gateway fee (2%) plus GST on the fee (18% of 2%) passed on to the customer.
GATEWAY_FEE_MULTIPLIER = Decimal("1.0236")


def to_decimal(value: Decimal | float | int | str) -> Decimal:
    return Decimal(str(value))


def payable_amount(total: Decimal | float | int | str) -> float:
    """Quoted booking total plus gateway fee and tax, in rupees."""
    dec = (to_decimal(total) * GATEWAY_FEE_MULTIPLIER).quantize(_RUPEE_QUANT, rounding=ROUND_HALF_UP)
    return float(dec)


def rupees_to_paise(value: Decimal | float | int | str) -> int:
    """Convert a rupee amount to integer paise, the gateway's minor unit."""
    dec = to_decimal(value).quantize(_RUPEE_QUANT, rounding=ROUND_HALF_UP)
    return int(dec * PAISE_PER_RUPEE)


def paise_to_rupees(value: int) -> Decimal:
    return (Decimal(value) / Decimal(PAISE_PER_RUPEE)).quantize(_RUPEE_QUANT)


def format_inr(value: Decimal | float | int | str) -> str:
    return f"INR {to_decimal(value).quantize(_RUPEE_QUANT, rounding=ROUND_HALF_UP):.2f}"
