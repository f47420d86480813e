"""
Validation pre-step for the order workflow.

Each function raises errors.ValidationError describing the first problem
found; nothing here touches the Record Store.
"""
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Optional

from .errors import ValidationError

ORDER_STATUSES = ("pending", "processing", "completed", "cancelled")
DEFAULT_STATUS = "pending"
CENT = Decimal("0.01")

# Column limits: Integer quantities and Numeric(10, 2) money amounts
MAX_QUANTITY = 2**31 - 1
MAX_AMOUNT = Decimal("99999999.99")


def validate_quantity(quantity) -> int:
    """Return quantity if it is a positive integer."""
    if isinstance(quantity, bool) or not isinstance(quantity, int):
        raise ValidationError(f"Quantity must be an integer, got {quantity!r}")
    if quantity <= 0:
        raise ValidationError(f"Quantity must be positive, got {quantity}")
    if quantity > MAX_QUANTITY:
        raise ValidationError(f"Quantity cannot exceed {MAX_QUANTITY}, got {quantity}")
    return quantity


def parse_amount(value, field: str = "total_amount") -> Decimal:
    """
    Parse a non-negative money amount with at most 2 fractional digits.

    Args:
        value: str, int or Decimal
        field: Field name used in error messages

    Returns:
        Decimal quantized to cents
    """
    try:
        amount = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise ValidationError(f"{field} must be a decimal amount, got {value!r}")
    if not amount.is_finite():
        raise ValidationError(f"{field} must be a finite amount")
    if amount < 0:
        raise ValidationError(f"{field} cannot be negative")
    if amount > MAX_AMOUNT:
        raise ValidationError(f"{field} cannot exceed {MAX_AMOUNT}, got {value}")
    if amount.as_tuple().exponent < -2:
        raise ValidationError(f"{field} must have at most 2 fractional digits, got {value}")
    try:
        return amount.quantize(CENT)
    except InvalidOperation:
        raise ValidationError(f"{field} must be a decimal amount, got {value!r}")


def validate_status(status: Optional[str]) -> str:
    """Return the status, defaulting to pending, if it is a known order status."""
    if status is None:
        return DEFAULT_STATUS
    if status not in ORDER_STATUSES:
        raise ValidationError(
            f"Unknown status '{status}'; expected one of {', '.join(ORDER_STATUSES)}"
        )
    return status


def compute_order_total(quantity: int, unit_price: Decimal) -> Decimal:
    """quantity x unit price, rounded half-up to cents."""
    try:
        return (Decimal(unit_price) * quantity).quantize(CENT, rounding=ROUND_HALF_UP)
    except InvalidOperation:
        raise ValidationError(f"Order total for {quantity} x {unit_price} is out of range")


def validate_order_total(quantity: int, unit_price: Decimal, claimed_total: Optional[Decimal]) -> Decimal:
    """
    Derive the order total and check it against the caller's claim.

    Args:
        quantity: Units ordered
        unit_price: Product price per unit
        claimed_total: Total supplied by the caller, or None

    Returns:
        The derived total

    Raises:
        ValidationError: if the derived total cannot be stored, or the
            claimed total differs by more than 0.01
    """
    calculated_total = compute_order_total(quantity, unit_price)
    if calculated_total > MAX_AMOUNT:
        raise ValidationError(f"Order total ${calculated_total} exceeds the maximum of ${MAX_AMOUNT}")
    if claimed_total is not None and abs(calculated_total - claimed_total) > CENT:
        raise ValidationError(
            f"Order total mismatch: calculated ${calculated_total}, claimed ${claimed_total}"
        )
    return calculated_total
