"""Inbound cross-domain event handler: Tracking reacts to Dispatch challans.

Listens for ChallanIssued and ChallanReturnRecorded events from the dispatch
system and applies them to the order's delivery totals through the regular
commands, so the board projection is refreshed in the same unit of work.

Cross-domain events are imported from shared.events.challans and registered
as external events via tracking.register_external_event().
"""

import structlog
from protean.utils.globals import current_domain
from protean.utils.mixins import handle
from shared.events.challans import ChallanIssued, ChallanReturnRecorded

from tracking.domain import tracking
from tracking.order.delivery import RecordChallan, RecordChallanReturn
from tracking.order.order import TrackedOrder

logger = structlog.get_logger(__name__)

# Register external events so Protean can deserialize them
tracking.register_external_event(ChallanIssued, "Dispatch.ChallanIssued.v1")
tracking.register_external_event(ChallanReturnRecorded, "Dispatch.ChallanReturnRecorded.v1")


@tracking.event_handler(part_of=TrackedOrder, stream_category="dispatch::challan")
class ChallanTrackingEventHandler:
    """Reacts to Dispatch challan events to update delivery totals."""

    @handle(ChallanIssued)
    def on_challan_issued(self, event: ChallanIssued) -> None:
        logger.info(
            "Applying issued challan to order",
            order_id=str(event.order_id),
            challan_id=event.challan_id,
            quantity=event.quantity_shipped_delta,
        )
        current_domain.process(
            RecordChallan(
                order_id=event.order_id,
                challan_id=event.challan_id,
                quantity_shipped_delta=event.quantity_shipped_delta,
                occurred_at=event.occurred_at,
            ),
            asynchronous=False,
        )

    @handle(ChallanReturnRecorded)
    def on_challan_return_recorded(self, event: ChallanReturnRecorded) -> None:
        logger.info(
            "Applying challan return to order",
            order_id=str(event.order_id),
            challan_id=event.challan_id,
            quantity=event.quantity_returned,
        )
        current_domain.process(
            RecordChallanReturn(
                order_id=event.order_id,
                challan_id=event.challan_id,
                quantity_returned=event.quantity_returned,
                occurred_at=event.occurred_at,
            ),
            asynchronous=False,
        )
