"""Tracking cancellation: command and handler."""

from protean import handle
from protean.fields import Identifier, String
from protean.utils.globals import current_domain

from tracking.domain import tracking
from tracking.order.order import TrackedOrder


@tracking.command(part_of="TrackedOrder")
class CancelTracking:
    """Freeze the stage pipeline of an order cancelled upstream."""

    order_id = Identifier(required=True)
    reason = String(required=True, max_length=500)


@tracking.command_handler(part_of=TrackedOrder)
class CancelTrackingHandler:
    @handle(CancelTracking)
    def cancel_tracking(self, command):
        repo = current_domain.repository_for(TrackedOrder)
        order = repo.get(command.order_id)
        order.cancel(command.reason)
        repo.add(order)
