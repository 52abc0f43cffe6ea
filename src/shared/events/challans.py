"""Cross-domain event contracts for delivery challans.

Challans are issued by the dispatch/warehouse system, outside this
repository. These classes define the event shape the Tracking domain
consumes; they are registered as external events via
domain.register_external_event() with matching __type__ strings so
Protean's stream deserialization works correctly.

Delivery is at-least-once. Publishers should fill ``challan_id`` so the
consumer can drop redeliveries.
"""

from protean.core.event import BaseEvent
from protean.fields import DateTime, Float, Identifier, String


class ChallanIssued(BaseEvent):
    """A delivery challan dispatched material for an order."""

    __version__ = 1

    order_id = Identifier(required=True)
    challan_id = String()
    quantity_shipped_delta = Float(required=True)
    occurred_at = DateTime(required=True)


class ChallanReturnRecorded(BaseEvent):
    """Material dispatched on a challan came back to the warehouse."""

    __version__ = 1

    order_id = Identifier(required=True)
    challan_id = String()
    quantity_returned = Float(required=True)
    occurred_at = DateTime(required=True)
