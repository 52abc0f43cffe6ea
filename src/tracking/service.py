"""Order fulfillment service: the use cases the board and the admin API call.

Each mutating use case dispatches the matching command (so it runs in its own
unit of work against the order repository), then reloads the order and
re-classifies it for the board. Must be called inside the tracking domain
context.
"""

import json
from collections.abc import Callable, Iterable, Mapping

from protean.utils.globals import current_domain

from tracking.board.kanban import Board, build_board, classify
from tracking.order.delivery import RecordChallan, RecordChallanReturn
from tracking.order.metrics import product_type_breakdown
from tracking.order.order import TrackedOrder
from tracking.order.progression import AssignFabricatorInstaller, CompleteStage
from tracking.order.stages import AssigneeContext
from tracking.projections.delivery_board import DeliveryBoardView
from tracking.utils.logging import get_logger

logger = get_logger(__name__)

BOARD_PAGE_SIZE = 500


def active_board_orders() -> list:
    """Default board query: every tracked order that has not been cancelled.

    Read page by page until the query is exhausted, so no card is left off.
    """
    query = (
        current_domain.repository_for(DeliveryBoardView)
        ._dao.query.filter(cancelled=False)
        .order_by("order_id")
    )
    orders = []
    offset = 0
    while True:
        page = query.offset(offset).limit(BOARD_PAGE_SIZE).all()
        orders.extend(page.items)
        if len(page.items) < BOARD_PAGE_SIZE:
            return orders
        offset += BOARD_PAGE_SIZE


def _field(event, name: str, default=None):
    if isinstance(event, Mapping):
        return event.get(name, default)
    return getattr(event, name, default)


class OrderFulfillmentService:
    def __init__(self, board_query: Callable[[], Iterable] | None = None):
        self.board_query = board_query or active_board_orders

    def _reload(self, order_id: str) -> tuple[TrackedOrder, str]:
        order = current_domain.repository_for(TrackedOrder).get(order_id)
        return order, classify(order)

    def advance_stage(
        self,
        order_id: str,
        stage_key: str,
        fields: dict | None = None,
        assignee_context: AssigneeContext | None = None,
    ) -> tuple[TrackedOrder, str]:
        """Complete (or amend) a stage and return the order with its board column."""
        current_domain.process(
            CompleteStage(
                order_id=order_id,
                stage_key=stage_key,
                details=json.dumps(fields or {}, default=str),
                same_assignee=assignee_context.same_assignee if assignee_context else None,
            ),
            asynchronous=False,
        )
        return self._reload(order_id)

    def assign_fabricator_installer(
        self,
        order_id: str,
        same_assignee: bool = True,
        fabricator_installer_id: str | None = None,
        fabricator_id: str | None = None,
        installer_id: str | None = None,
        fabrication_due_date=None,
        installation_due_date=None,
        fabrication_remarks: str | None = None,
    ) -> tuple[TrackedOrder, str]:
        current_domain.process(
            AssignFabricatorInstaller(
                order_id=order_id,
                same_assignee=same_assignee,
                fabricator_installer_id=fabricator_installer_id,
                fabricator_id=fabricator_id,
                installer_id=installer_id,
                fabrication_due_date=fabrication_due_date,
                installation_due_date=installation_due_date,
                fabrication_remarks=fabrication_remarks,
            ),
            asynchronous=False,
        )
        return self._reload(order_id)

    def record_challan(self, order_id: str, event) -> tuple[TrackedOrder, str]:
        """Apply one challan record ``{quantity_shipped_delta, occurred_at, event_id?}``."""
        applied = current_domain.process(
            RecordChallan(
                order_id=order_id,
                challan_id=_field(event, "event_id") or _field(event, "challan_id"),
                quantity_shipped_delta=_field(event, "quantity_shipped_delta"),
                occurred_at=_field(event, "occurred_at"),
            ),
            asynchronous=False,
        )
        order, column = self._reload(order_id)
        logger.info("Challan recorded", order_id=order_id, applied=applied, column=column)
        return order, column

    def record_challan_return(self, order_id: str, event) -> tuple[TrackedOrder, str]:
        """Apply one return record ``{quantity_returned, occurred_at, event_id?}``."""
        current_domain.process(
            RecordChallanReturn(
                order_id=order_id,
                challan_id=_field(event, "event_id") or _field(event, "challan_id"),
                quantity_returned=_field(event, "quantity_returned"),
                occurred_at=_field(event, "occurred_at"),
            ),
            asynchronous=False,
        )
        return self._reload(order_id)

    def delivery_breakdown(
        self,
        order_id: str,
        required_by_type: Mapping[str, float],
        delivered_by_type: Mapping[str, float],
    ) -> dict:
        """Per product type delivery cards for one order, next to its overall status.

        Product level quantities come from the dispatch system; the order only
        carries the totals.
        """
        order, column = self._reload(order_id)
        return {
            "order_id": str(order.id),
            "delivery_status": order.delivery_status,
            "column": column,
            "product_types": product_type_breakdown(dict(required_by_type), dict(delivered_by_type)),
        }

    def get_board(self, filter_predicate: Callable | None = None) -> Board:
        """Group and rank the board query's candidates into kanban columns."""
        board = build_board(self.board_query(), filter_predicate)
        logger.debug("Board built", **{column: len(ranked) for column, ranked in board.items()})
        return board
