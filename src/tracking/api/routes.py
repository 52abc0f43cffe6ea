"""FastAPI routes for the Tracking domain."""

from contextlib import contextmanager

from fastapi import APIRouter, HTTPException
from protean.exceptions import ObjectNotFoundError, ValidationError
from protean.utils.globals import current_domain

from tracking.api.schemas import (
    AssignAssigneesRequest,
    BoardCard,
    BoardColumnResponse,
    BoardResponse,
    CancelTrackingRequest,
    ChallanResponse,
    CompleteStageRequest,
    DeliveryBreakdownRequest,
    DeliveryBreakdownResponse,
    RecordChallanRequest,
    RecordChallanReturnRequest,
    StageResponse,
    StartTrackingRequest,
    StatusResponse,
    TrackedOrderIdResponse,
)
from tracking.board.kanban import classify
from tracking.order.cancellation import CancelTracking
from tracking.order.creation import StartTracking
from tracking.order.delivery import RecordChallan, RecordChallanReturn
from tracking.order.order import AlreadyTerminalError, OrderCancelledError, OutOfOrderError, TrackedOrder
from tracking.order.stages import AssigneeContext
from tracking.service import OrderFulfillmentService

# ---------------------------------------------------------------------------
# Tracked Order Router
# ---------------------------------------------------------------------------
tracked_order_router = APIRouter(prefix="/tracked-orders", tags=["tracked-orders"])

_CONFLICT_ERRORS = (OutOfOrderError, AlreadyTerminalError, OrderCancelledError)


@contextmanager
def _domain_errors():
    """Translate domain errors into HTTP responses carrying the field messages."""
    try:
        yield
    except ObjectNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except _CONFLICT_ERRORS as exc:
        raise HTTPException(status_code=409, detail=exc.messages) from exc
    except ValidationError as exc:
        raise HTTPException(status_code=422, detail=exc.messages) from exc


def _load(order_id: str) -> TrackedOrder:
    return current_domain.repository_for(TrackedOrder).get(order_id)


def _challan_response(order_id: str, applied: bool) -> ChallanResponse:
    order = _load(order_id)
    return ChallanResponse(
        applied=bool(applied),
        delivery_status=order.delivery_status,
        total_shipped=order.total_shipped,
        total_pending=order.total_pending,
        column=classify(order),
    )


@tracked_order_router.post("", status_code=201, response_model=TrackedOrderIdResponse)
async def start_tracking(body: StartTrackingRequest) -> TrackedOrderIdResponse:
    """Start tracking a confirmed order at the first pipeline stage."""
    command = StartTracking(
        order_id=body.order_id,
        order_number=body.order_number,
        total_required=body.total_required,
        capacity=body.capacity,
    )
    with _domain_errors():
        result = current_domain.process(command, asynchronous=False)
    return TrackedOrderIdResponse(order_id=result)


@tracked_order_router.put("/{order_id}/stages/{stage_key}", response_model=StageResponse)
async def complete_stage(order_id: str, stage_key: str, body: CompleteStageRequest) -> StageResponse:
    """Complete the current stage, or amend one that is already completed."""
    context = AssigneeContext(same_assignee=body.same_assignee) if body.same_assignee is not None else None
    with _domain_errors():
        before = _load(order_id).stage_status(stage_key)
        order, column = OrderFulfillmentService().advance_stage(order_id, stage_key, body.details, context)
    return StageResponse(
        status="amended" if before == "completed" else "completed",
        current_stage_key=order.current_stage_key,
        column=column,
    )


@tracked_order_router.put("/{order_id}/assignees", response_model=StageResponse)
async def assign_fabricator_installer(order_id: str, body: AssignAssigneesRequest) -> StageResponse:
    """Assign the fabricator and installer, completing the assignment stage."""
    with _domain_errors():
        order, column = OrderFulfillmentService().assign_fabricator_installer(order_id, **body.model_dump())
    return StageResponse(status="assigned", current_stage_key=order.current_stage_key, column=column)


@tracked_order_router.post("/{order_id}/challans", response_model=ChallanResponse)
async def record_challan(order_id: str, body: RecordChallanRequest) -> ChallanResponse:
    """Apply a dispatched delivery challan to the shipped totals."""
    command = RecordChallan(
        order_id=order_id,
        challan_id=body.challan_id,
        quantity_shipped_delta=body.quantity_shipped_delta,
        occurred_at=body.occurred_at,
    )
    with _domain_errors():
        applied = current_domain.process(command, asynchronous=False)
        return _challan_response(order_id, applied)


@tracked_order_router.post("/{order_id}/challan-returns", response_model=ChallanResponse)
async def record_challan_return(order_id: str, body: RecordChallanReturnRequest) -> ChallanResponse:
    """Take returned material back off the shipped totals."""
    command = RecordChallanReturn(
        order_id=order_id,
        challan_id=body.challan_id,
        quantity_returned=body.quantity_returned,
        occurred_at=body.occurred_at,
    )
    with _domain_errors():
        applied = current_domain.process(command, asynchronous=False)
        return _challan_response(order_id, applied)


@tracked_order_router.post("/{order_id}/delivery-breakdown", response_model=DeliveryBreakdownResponse)
async def delivery_breakdown(order_id: str, body: DeliveryBreakdownRequest) -> DeliveryBreakdownResponse:
    """Per product type delivery cards, e.g. panels complete while cable is partial."""
    with _domain_errors():
        breakdown = OrderFulfillmentService().delivery_breakdown(
            order_id, body.required_by_type, body.delivered_by_type
        )
    return DeliveryBreakdownResponse(**breakdown)


@tracked_order_router.put("/{order_id}/cancel", response_model=StatusResponse)
async def cancel_tracking(order_id: str, body: CancelTrackingRequest) -> StatusResponse:
    """Cancel tracking after an upstream order cancellation."""
    command = CancelTracking(order_id=order_id, reason=body.reason)
    with _domain_errors():
        current_domain.process(command, asynchronous=False)
    return StatusResponse(status="cancelled")


@tracked_order_router.get("/board", response_model=BoardResponse)
async def get_board(planned_priority: str | None = None, warehouse_id: str | None = None) -> BoardResponse:
    """Delivery execution board: pending, partial and complete columns."""

    def matches(card) -> bool:
        if planned_priority and card.planned_priority != planned_priority:
            return False
        if warehouse_id and card.planned_warehouse_id != warehouse_id:
            return False
        return True

    board = OrderFulfillmentService().get_board(matches)
    summary = board.summary()
    return BoardResponse(
        columns=[
            BoardColumnResponse(
                key=column,
                title=summary[column]["title"],
                count=summary[column]["count"],
                capacity=summary[column]["capacity"],
                orders=[BoardCard(**card.to_dict()) for card in ranked],
            )
            for column, ranked in board.items()
        ]
    )
