"""Tracking bounded context: Order Fulfillment Tracking.

Follows a confirmed order through its production and delivery stages
(estimate, planning, delivery, fabrication, installation, net metering,
subsidy) and derives how much of it has been dispatched from delivery
challans. Uses CQRS: the stage pipeline is linear and challans are owned by
the dispatch system, so the order is persisted as current state and the
kanban board reads from a projection.
"""

from protean.domain import Domain

tracking = Domain(name="tracking")
