"""Tracking start: command and handler."""

from protean import handle
from protean.fields import Float, String
from protean.utils.globals import current_domain

from tracking.domain import tracking
from tracking.order.order import TrackedOrder


@tracking.command(part_of="TrackedOrder")
class StartTracking:
    """Start tracking a confirmed order at the first pipeline stage."""

    order_id = String(max_length=100)  # upstream order id, generated when absent
    order_number = String(max_length=100)
    total_required = Float(required=True, min_value=0.0)
    capacity = Float(min_value=0.0)


@tracking.command_handler(part_of=TrackedOrder)
class StartTrackingHandler:
    @handle(StartTracking)
    def start_tracking(self, command):
        order = TrackedOrder.start(
            total_required=command.total_required,
            order_number=command.order_number,
            capacity=command.capacity,
            order_id=command.order_id,
        )
        current_domain.repository_for(TrackedOrder).add(order)
        return str(order.id)
