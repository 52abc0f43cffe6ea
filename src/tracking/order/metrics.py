"""Delivery metrics: shipped/pending totals and the derived delivery status.

Pure arithmetic shared by the TrackedOrder aggregate, the board projection
and the per-product-type breakdown. Quantities are non-negative and may be
fractional (cable is dispatched in metres).
"""

from enum import Enum

from protean.exceptions import ValidationError


class DeliveryStatus(Enum):
    PENDING = "pending"
    PARTIAL = "partial"
    COMPLETE = "complete"


class InvalidDeltaError(ValidationError):
    """A challan quantity that would corrupt the shipped totals."""


def derive_delivery_status(shipped: float, required: float) -> str:
    """Tri-state delivery status.

    Nothing shipped is ``pending``; anything short of the requirement is
    ``partial``; meeting or exceeding it is ``complete``. Over-dispatch is
    tolerated and still counts as complete.
    """
    shipped = shipped or 0
    required = required or 0
    if shipped <= 0:
        return DeliveryStatus.PENDING.value
    if shipped < required:
        return DeliveryStatus.PARTIAL.value
    return DeliveryStatus.COMPLETE.value


def pending_quantity(shipped: float, required: float) -> float:
    return max(0, (required or 0) - (shipped or 0))


def excess_quantity(shipped: float, required: float) -> float:
    return max(0, (shipped or 0) - (required or 0))


def validate_shipped_delta(delta: float) -> None:
    if delta is None or delta < 0:
        raise InvalidDeltaError(
            {"quantity_shipped_delta": ["Shipped quantity cannot be negative; record a challan return instead"]}
        )


def validate_returned_quantity(quantity: float, shipped: float) -> None:
    if quantity is None or quantity < 0:
        raise InvalidDeltaError({"quantity_returned": ["Returned quantity cannot be negative"]})
    if quantity > (shipped or 0):
        raise InvalidDeltaError(
            {"quantity_returned": [f"Cannot return {quantity}; only {shipped or 0} has been shipped"]}
        )


def product_type_breakdown(required_by_type: dict, delivered_by_type: dict) -> dict:
    """Per product type delivery status, e.g. panels complete while cable is partial.

    Types present only in ``delivered_by_type`` are reported with a zero
    requirement so that stray dispatches stay visible.
    """
    breakdown = {}
    for product_type in list(required_by_type) + [t for t in delivered_by_type if t not in required_by_type]:
        required = required_by_type.get(product_type, 0) or 0
        delivered = delivered_by_type.get(product_type, 0) or 0
        breakdown[product_type] = {
            "required": required,
            "delivered": delivered,
            "pending": pending_quantity(delivered, required),
            "status": derive_delivery_status(delivered, required),
        }
    return breakdown
