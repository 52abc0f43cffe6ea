"""TrackedOrder domain events: immutable facts about fulfillment progress.

All events are past tense, versioned, and carry enough data for the board
and timeline projectors without reloading the aggregate.
"""

from protean.fields import Boolean, Date, DateTime, Float, Identifier, Integer, String, Text

from tracking.domain import tracking


@tracking.event(part_of="TrackedOrder")
class TrackingStarted:
    """A confirmed order entered fulfillment tracking."""

    __version__ = 1

    order_id = Identifier(required=True)
    order_number = String()
    current_stage_key = String(required=True)
    total_required = Float(required=True)
    capacity = Float()
    started_at = DateTime(required=True)


@tracking.event(part_of="TrackedOrder")
class StageCompleted:
    """A stage was completed for the first time and the pipeline advanced."""

    __version__ = 1

    order_id = Identifier(required=True)
    stage = String(required=True)
    next_stage = String()
    details = Text()  # JSON object of submitted fields
    completed_at = DateTime(required=True)


@tracking.event(part_of="TrackedOrder")
class StageDetailsAmended:
    """Details of an already completed stage were edited."""

    __version__ = 1

    order_id = Identifier(required=True)
    stage = String(required=True)
    details = Text()  # JSON object of submitted fields
    amended_at = DateTime(required=True)


@tracking.event(part_of="TrackedOrder")
class PlanningUpdated:
    """Planner details that drive board ranking were set or changed."""

    __version__ = 1

    order_id = Identifier(required=True)
    planned_delivery_date = Date()
    planned_priority = String()
    planned_warehouse_id = String()
    updated_at = DateTime(required=True)


@tracking.event(part_of="TrackedOrder")
class AssigneesAssigned:
    """Fabricator and installer were assigned to the order."""

    __version__ = 1

    order_id = Identifier(required=True)
    fabricator_installer_are_same = Boolean(required=True)
    fabricator_id = String()
    installer_id = String()
    assigned_at = DateTime(required=True)


@tracking.event(part_of="TrackedOrder")
class TrackingCompleted:
    """The terminal stage was completed; the order left active tracking."""

    __version__ = 1

    order_id = Identifier(required=True)
    completed_at = DateTime(required=True)


@tracking.event(part_of="TrackedOrder")
class ChallanApplied:
    """A delivery challan increased the shipped quantity."""

    __version__ = 1

    order_id = Identifier(required=True)
    challan_id = String()
    quantity_shipped_delta = Float(required=True)
    total_required = Float(required=True)
    total_shipped = Float(required=True)
    total_pending = Float(required=True)
    delivery_status = String(required=True)
    challan_count = Integer(required=True)
    last_challan_date = DateTime()
    occurred_at = DateTime(required=True)


@tracking.event(part_of="TrackedOrder")
class ChallanReturnApplied:
    """Returned material decreased the shipped quantity."""

    __version__ = 1

    order_id = Identifier(required=True)
    challan_id = String()
    quantity_returned = Float(required=True)
    total_required = Float(required=True)
    total_shipped = Float(required=True)
    total_pending = Float(required=True)
    delivery_status = String(required=True)
    occurred_at = DateTime(required=True)


@tracking.event(part_of="TrackedOrder")
class DeliveryStatusChanged:
    """The derived delivery status moved between pending, partial and complete."""

    __version__ = 1

    order_id = Identifier(required=True)
    previous_status = String(required=True)
    delivery_status = String(required=True)
    changed_at = DateTime(required=True)


@tracking.event(part_of="TrackedOrder")
class TrackingCancelled:
    """The order was cancelled upstream; stage transitions are frozen."""

    __version__ = 1

    order_id = Identifier(required=True)
    reason = String(required=True)
    cancelled_at = DateTime(required=True)
