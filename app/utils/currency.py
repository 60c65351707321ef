"""Major/minor currency unit conversion and price formatting."""
from decimal import ROUND_HALF_UP, Decimal

# Minor units per major unit (INR: paise per rupee).
MINOR_UNITS = {"INR": 100}


def to_minor_units(amount: int | float | Decimal, currency: str = "INR") -> int:
    """Convert a major-unit amount (rupees) to the gateway's minor unit (paise)."""
    factor = MINOR_UNITS.get(currency.upper(), 100)
    value = Decimal(str(amount)) * factor
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def format_price(amount: int | float, currency: str = "INR") -> str:
    """Return a string like «₹499» (or «499 USD» for other currencies)."""
    text = f"{amount:g}" if isinstance(amount, float) else str(amount)
    if currency.upper() == "INR":
        return f"₹{text}"
    return f"{text} {currency.upper()}"
