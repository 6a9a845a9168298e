"""Currency conversion utilities for league payments.

Internal storage unit: cents (smallest CAD unit, 100 cents = $1).
API / display unit: dollars (Decimal, e.g. Decimal("120.00")).

Conversion chain
----------------
Dollars × 100 → Cents
Cents   ÷ 100 → Dollars
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal

# ─── constants ───────────────────────────────────────────────────────────────

CENTS_PER_DOLLAR: int = 100
_CENT = Decimal("0.01")


# ─── conversion helpers ───────────────────────────────────────────────────────


def dollars_to_cents(dollars: Decimal | int | float | str) -> int:
    """Convert dollars to cents (round half-up). $1 = 100 cents."""
    amount = Decimal(str(dollars)).quantize(_CENT, rounding=ROUND_HALF_UP)
    return int(amount * CENTS_PER_DOLLAR)


def cents_to_dollars(cents: int) -> Decimal:
    """Convert cents to dollars. 100 cents = $1."""
    return (Decimal(cents) / CENTS_PER_DOLLAR).quantize(_CENT)


def format_dollars(cents: int) -> str:
    """Render cents for humans, e.g. 12050 → "$120.50"."""
    return f"${cents_to_dollars(cents):,.2f}"
