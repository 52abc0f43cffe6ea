"""Application tests for ChallanTrackingEventHandler: Tracking reacts to Dispatch challans.

Covers:
- on_challan_issued: applies the shipped quantity
- on_challan_issued: redelivery of the same challan is a no-op
- on_challan_return_recorded: takes the returned quantity back off
"""

from datetime import UTC, datetime

from protean import current_domain
from shared.events.challans import ChallanIssued, ChallanReturnRecorded
from tracking.order.challan_events import ChallanTrackingEventHandler
from tracking.order.creation import StartTracking
from tracking.order.order import TrackedOrder


def _start():
    return current_domain.process(
        StartTracking(order_number="SO-6001", total_required=20),
        asynchronous=False,
    )


def _issued(order_id, quantity, challan_id="DC-1", day=3):
    return ChallanIssued(
        order_id=order_id,
        challan_id=challan_id,
        quantity_shipped_delta=quantity,
        occurred_at=datetime(2024, 1, day, tzinfo=UTC),
    )


class TestChallanIssuedHandler:
    def test_applies_shipped_quantity(self):
        order_id = _start()

        ChallanTrackingEventHandler().on_challan_issued(_issued(order_id, 8))

        order = current_domain.repository_for(TrackedOrder).get(order_id)
        assert order.total_shipped == 8
        assert order.delivery_status == "partial"
        assert order.last_challan_date == datetime(2024, 1, 3, tzinfo=UTC)

    def test_redelivered_event_is_applied_once(self):
        order_id = _start()
        handler = ChallanTrackingEventHandler()

        handler.on_challan_issued(_issued(order_id, 8, "DC-7"))
        handler.on_challan_issued(_issued(order_id, 8, "DC-7"))

        order = current_domain.repository_for(TrackedOrder).get(order_id)
        assert order.total_shipped == 8
        assert order.challan_count == 1

    def test_out_of_order_arrival_keeps_latest_date(self):
        order_id = _start()
        handler = ChallanTrackingEventHandler()

        handler.on_challan_issued(_issued(order_id, 5, "DC-2", day=9))
        handler.on_challan_issued(_issued(order_id, 5, "DC-1", day=4))

        order = current_domain.repository_for(TrackedOrder).get(order_id)
        assert order.last_challan_date == datetime(2024, 1, 9, tzinfo=UTC)
        assert order.challan_count == 2


class TestChallanReturnRecordedHandler:
    def test_takes_returned_quantity_back(self):
        order_id = _start()
        handler = ChallanTrackingEventHandler()
        handler.on_challan_issued(_issued(order_id, 20, "DC-9"))

        handler.on_challan_return_recorded(
            ChallanReturnRecorded(
                order_id=order_id,
                challan_id="DC-9",
                quantity_returned=5,
                occurred_at=datetime(2024, 1, 6, tzinfo=UTC),
            )
        )

        order = current_domain.repository_for(TrackedOrder).get(order_id)
        assert order.total_shipped == 15
        assert order.total_pending == 5
        assert order.delivery_status == "partial"
