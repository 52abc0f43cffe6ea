"""Application tests for challan commands via domain.process()."""

from datetime import UTC, datetime

import pytest
from protean import current_domain
from tracking.order.creation import StartTracking
from tracking.order.delivery import RecordChallan, RecordChallanReturn
from tracking.order.metrics import InvalidDeltaError
from tracking.order.order import TrackedOrder


def _start(total_required=10):
    return current_domain.process(
        StartTracking(order_number="SO-5001", total_required=total_required),
        asynchronous=False,
    )


def _challan(order_id, quantity, day, challan_id=None):
    return current_domain.process(
        RecordChallan(
            order_id=order_id,
            challan_id=challan_id,
            quantity_shipped_delta=quantity,
            occurred_at=datetime(2024, 1, day, tzinfo=UTC),
        ),
        asynchronous=False,
    )


class TestRecordChallan:
    def test_totals_are_persisted(self):
        order_id = _start()
        assert _challan(order_id, 4, 3, "DC-100") is True

        order = current_domain.repository_for(TrackedOrder).get(order_id)
        assert order.total_shipped == 4
        assert order.total_pending == 6
        assert order.delivery_status == "partial"
        assert order.challan_count == 1

    def test_sequence_reaches_complete(self):
        order_id = _start()
        _challan(order_id, 4, 3)
        _challan(order_id, 6, 5)

        order = current_domain.repository_for(TrackedOrder).get(order_id)
        assert order.delivery_status == "complete"
        assert order.total_pending == 0

    def test_redelivered_challan_is_ignored(self):
        order_id = _start()
        _challan(order_id, 4, 3, "DC-200")
        assert _challan(order_id, 4, 3, "DC-200") is False

        order = current_domain.repository_for(TrackedOrder).get(order_id)
        assert order.total_shipped == 4
        assert order.applied_challan_ids == ["DC-200"]

    def test_negative_delta_rejected(self):
        order_id = _start()
        with pytest.raises(InvalidDeltaError):
            _challan(order_id, -3, 3)

        order = current_domain.repository_for(TrackedOrder).get(order_id)
        assert order.total_shipped == 0
        assert order.challan_count == 0


class TestRecordChallanReturn:
    def test_return_is_persisted(self):
        order_id = _start()
        _challan(order_id, 10, 3, "DC-300")

        applied = current_domain.process(
            RecordChallanReturn(
                order_id=order_id,
                challan_id="DC-300",
                quantity_returned=2,
                occurred_at=datetime(2024, 1, 6, tzinfo=UTC),
            ),
            asynchronous=False,
        )

        order = current_domain.repository_for(TrackedOrder).get(order_id)
        assert applied is True
        assert order.total_shipped == 8
        assert order.total_returned == 2
        assert order.delivery_status == "partial"

    def test_return_beyond_shipped_rejected(self):
        order_id = _start()
        _challan(order_id, 1, 3)
        with pytest.raises(InvalidDeltaError):
            current_domain.process(
                RecordChallanReturn(
                    order_id=order_id,
                    quantity_returned=5,
                    occurred_at=datetime(2024, 1, 6, tzinfo=UTC),
                ),
                asynchronous=False,
            )
