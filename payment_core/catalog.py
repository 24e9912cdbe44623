from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

from payment_core.exceptions import ValidationError

# Share of the total collected up front at checkout.
DEPOSIT_NUMERATOR = 1
DEPOSIT_DENOMINATOR = 2
DEFAULT_CURRENCY = "ZAR"


@dataclass(frozen=True)
class Service:
    id: str
    name: str
    price: int          # whole currency units
    currency: str

    @property
    def total_minor(self) -> int:
        return to_minor_units(self.price)


SERVICES = {
    "s1": Service("s1", "Custom AI-Powered Niche Site", 8000, "ZAR"),
    "s2": Service("s2", "30 AI-Generated Articles", 5000, "ZAR"),
    "s3": Service("s3", "Full Automation Setup", 15000, "ZAR"),
    "s4": Service("s4", "Strategy Consulting (1 Hour)", 800, "ZAR"),
}


def get_service(service_id: str) -> Service:
    service = SERVICES.get(service_id)
    if service is None:
        raise ValidationError("Invalid service ID")
    return service


def compute_deposit(total: int) -> int:
    """Deposit for an integer total, rounded half-up: 801 -> 401."""
    if total < 0:
        raise ValueError("total must be non-negative")
    numerator = total * DEPOSIT_NUMERATOR
    return (2 * numerator + DEPOSIT_DENOMINATOR) // (2 * DEPOSIT_DENOMINATOR)


def remainder_due(total: int) -> int:
    return total - compute_deposit(total)


def to_minor_units(value, exponent: int = 2) -> int:
    """Convert a major-unit amount ("50.00", 800, Decimal) to integer minor units."""
    try:
        amount = Decimal(str(value))
    except ArithmeticError as exc:
        raise ValueError(f"Invalid amount: {value!r}") from exc
    scaled = (amount * (Decimal(10) ** exponent)).quantize(Decimal(1), rounding=ROUND_HALF_UP)
    return int(scaled)


def to_major_units(value: int, exponent: int = 2) -> str:
    """Render integer minor units as a decimal string ("400.00")."""
    quantum = Decimal(1).scaleb(-exponent)
    return str((Decimal(value) / (Decimal(10) ** exponent)).quantize(quantum))
