"""Delivery challans: commands and handler.

Each command applies one challan (or one return) to the order's shipped
totals. Passing ``challan_id`` makes redelivery of the same challan a no-op.
"""

from protean import handle
from protean.fields import DateTime, Float, Identifier, String
from protean.utils.globals import current_domain

from tracking.domain import tracking
from tracking.order.order import TrackedOrder


@tracking.command(part_of="TrackedOrder")
class RecordChallan:
    """Record a dispatched delivery challan against an order."""

    order_id = Identifier(required=True)
    challan_id = String(max_length=100)
    quantity_shipped_delta = Float(required=True)
    occurred_at = DateTime(required=True)


@tracking.command(part_of="TrackedOrder")
class RecordChallanReturn:
    """Record material returned against an earlier challan."""

    order_id = Identifier(required=True)
    challan_id = String(max_length=100)
    quantity_returned = Float(required=True)
    occurred_at = DateTime(required=True)


@tracking.command_handler(part_of=TrackedOrder)
class DeliveryChallanHandler:
    @handle(RecordChallan)
    def record_challan(self, command):
        repo = current_domain.repository_for(TrackedOrder)
        order = repo.get(command.order_id)
        applied = order.apply_challan_event(
            quantity_shipped_delta=command.quantity_shipped_delta,
            occurred_at=command.occurred_at,
            event_id=command.challan_id,
        )
        if applied:
            repo.add(order)
        return applied

    @handle(RecordChallanReturn)
    def record_challan_return(self, command):
        repo = current_domain.repository_for(TrackedOrder)
        order = repo.get(command.order_id)
        applied = order.apply_challan_return(
            quantity_returned=command.quantity_returned,
            occurred_at=command.occurred_at,
            event_id=command.challan_id,
        )
        if applied:
            repo.add(order)
        return applied
