"""Delivery board: one card per tracked order for the kanban board.

Holds exactly the attributes the classifier and ranker read, so the board
can be built without loading aggregates.
"""

from protean.core.projector import on
from protean.fields import Boolean, Date, DateTime, Float, Identifier, Integer, String
from protean.utils.globals import current_domain

from tracking.domain import tracking
from tracking.order.events import (
    ChallanApplied,
    ChallanReturnApplied,
    PlanningUpdated,
    StageCompleted,
    TrackingCancelled,
    TrackingStarted,
)
from tracking.order.metrics import derive_delivery_status
from tracking.order.order import TrackedOrder


@tracking.projection
class DeliveryBoardView:
    order_id = Identifier(identifier=True, required=True)
    order_number = String()
    delivery_status = String(required=True)
    total_required = Float(default=0.0)
    total_shipped = Float(default=0.0)
    total_pending = Float(default=0.0)
    planned_delivery_date = Date()
    planned_priority = String()
    planned_warehouse_id = String()
    last_challan_date = DateTime()
    challan_count = Integer(default=0)
    capacity = Float(default=0.0)
    current_stage_key = String()
    cancelled = Boolean(default=False)
    updated_at = DateTime()


@tracking.projector(projector_for=DeliveryBoardView, aggregates=[TrackedOrder])
class DeliveryBoardProjector:
    @on(TrackingStarted)
    def on_tracking_started(self, event):
        current_domain.repository_for(DeliveryBoardView).add(
            DeliveryBoardView(
                order_id=event.order_id,
                order_number=event.order_number,
                delivery_status=derive_delivery_status(0, event.total_required),
                total_required=event.total_required,
                total_shipped=0.0,
                total_pending=event.total_required,
                challan_count=0,
                capacity=event.capacity or 0.0,
                current_stage_key=event.current_stage_key,
                cancelled=False,
                updated_at=event.started_at,
            )
        )

    @on(ChallanApplied)
    def on_challan_applied(self, event):
        repo = current_domain.repository_for(DeliveryBoardView)
        view = repo.get(event.order_id)
        view.total_required = event.total_required
        view.total_shipped = event.total_shipped
        view.total_pending = event.total_pending
        view.delivery_status = event.delivery_status
        view.challan_count = event.challan_count
        view.last_challan_date = event.last_challan_date
        view.updated_at = event.occurred_at
        repo.add(view)

    @on(ChallanReturnApplied)
    def on_challan_return_applied(self, event):
        repo = current_domain.repository_for(DeliveryBoardView)
        view = repo.get(event.order_id)
        view.total_shipped = event.total_shipped
        view.total_pending = event.total_pending
        view.delivery_status = event.delivery_status
        view.updated_at = event.occurred_at
        repo.add(view)

    @on(PlanningUpdated)
    def on_planning_updated(self, event):
        repo = current_domain.repository_for(DeliveryBoardView)
        view = repo.get(event.order_id)
        view.planned_delivery_date = event.planned_delivery_date
        view.planned_priority = event.planned_priority
        view.planned_warehouse_id = event.planned_warehouse_id
        view.updated_at = event.updated_at
        repo.add(view)

    @on(StageCompleted)
    def on_stage_completed(self, event):
        repo = current_domain.repository_for(DeliveryBoardView)
        view = repo.get(event.order_id)
        view.current_stage_key = event.next_stage or None
        view.updated_at = event.completed_at
        repo.add(view)

    @on(TrackingCancelled)
    def on_tracking_cancelled(self, event):
        repo = current_domain.repository_for(DeliveryBoardView)
        view = repo.get(event.order_id)
        view.cancelled = True
        view.updated_at = event.cancelled_at
        repo.add(view)
