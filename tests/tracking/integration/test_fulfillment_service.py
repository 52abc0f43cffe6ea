"""Integration tests for OrderFulfillmentService: use cases over the domain."""

from datetime import UTC, date, datetime

import pytest
import tracking.service as service_module
from protean import current_domain
from protean.exceptions import ObjectNotFoundError
from tracking.order import stages as registry
from tracking.order.cancellation import CancelTracking
from tracking.order.creation import StartTracking
from tracking.order.order import OutOfOrderError
from tracking.order.stages import AssigneeContext
from tracking.service import OrderFulfillmentService, active_board_orders


def _start(order_number="SO-8001", total_required=10, capacity=0.0):
    return current_domain.process(
        StartTracking(order_number=order_number, total_required=total_required, capacity=capacity),
        asynchronous=False,
    )


@pytest.fixture()
def service():
    return OrderFulfillmentService()


class TestAdvanceStage:
    def test_returns_order_and_column(self, service, stage_fields):
        order_id = _start()
        order, column = service.advance_stage(order_id, "estimate_generated", stage_fields["estimate_generated"])
        assert order.current_stage_key == "estimate_paid"
        assert column == "pending"

    def test_errors_reach_the_caller(self, service, stage_fields):
        order_id = _start()
        with pytest.raises(OutOfOrderError):
            service.advance_stage(order_id, "delivery", stage_fields["delivery"])

    def test_assignee_context_is_applied(self, service, stage_fields):
        order_id = _start()
        for key in registry.stage_keys()[:4]:
            service.advance_stage(order_id, key, stage_fields[key])

        order, _ = service.advance_stage(
            order_id,
            "assign_fabricator_and_installer",
            {
                "fabricator_id": "user-f",
                "installer_id": "user-i",
                "fabrication_due_date": "2024-01-25",
                "installation_due_date": "2024-01-30",
            },
            AssigneeContext(same_assignee=False),
        )
        assert order.fabricator_id == "user-f"
        assert order.installer_id == "user-i"


class TestAssignFabricatorInstaller:
    def test_completes_assignment_stage(self, service, stage_fields):
        order_id = _start()
        for key in registry.stage_keys()[:4]:
            service.advance_stage(order_id, key, stage_fields[key])

        order, column = service.assign_fabricator_installer(
            order_id,
            same_assignee=True,
            fabricator_installer_id="user-42",
            fabrication_due_date=date(2024, 1, 25),
            installation_due_date=date(2024, 1, 30),
        )
        assert order.current_stage_key == "fabrication"
        assert order.installer_id == "user-42"
        assert column == "pending"


class TestRecordChallan:
    def test_column_follows_delivery_status(self, service):
        order_id = _start()

        _, column = service.record_challan(
            order_id, {"quantity_shipped_delta": 4, "occurred_at": datetime(2024, 1, 3, tzinfo=UTC)}
        )
        assert column == "partial"

        order, column = service.record_challan(
            order_id,
            {"quantity_shipped_delta": 6, "occurred_at": datetime(2024, 1, 5, tzinfo=UTC), "event_id": "DC-2"},
        )
        assert column == "complete"
        assert order.applied_challan_ids == ["DC-2"]

    def test_return_moves_card_back(self, service):
        order_id = _start()
        service.record_challan(order_id, {"quantity_shipped_delta": 10, "occurred_at": datetime(2024, 1, 3, tzinfo=UTC)})

        order, column = service.record_challan_return(
            order_id, {"quantity_returned": 4, "occurred_at": datetime(2024, 1, 4, tzinfo=UTC)}
        )
        assert column == "partial"
        assert order.total_shipped == 6


class TestGetBoard:
    def test_board_groups_and_ranks_read_models(self, service, stage_fields):
        early = _start("SO-early", capacity=3.0)
        late = _start("SO-late", capacity=5.0)
        shipped = _start("SO-shipped", capacity=7.0)
        unplanned = _start("SO-unplanned", capacity=1.0)

        for order_id, planned in ((early, "2024-01-05"), (late, "2024-02-05")):
            for key in registry.stage_keys()[:3]:
                fields = dict(stage_fields[key])
                if key == "planner":
                    fields["planned_delivery_date"] = planned
                service.advance_stage(order_id, key, fields)

        service.record_challan(shipped, {"quantity_shipped_delta": 10, "occurred_at": datetime(2024, 1, 9, tzinfo=UTC)})

        board = service.get_board()

        assert [str(card.order_id) for card in board["pending"]] == [early, late, unplanned]
        assert [str(card.order_id) for card in board["complete"]] == [shipped]
        assert len(board["partial"]) == 0
        assert board.summary()["pending"]["capacity"] == 9.0

    def test_cancelled_orders_are_left_off(self, service):
        kept = _start("SO-kept")
        dropped = _start("SO-dropped")
        current_domain.process(
            CancelTracking(order_id=dropped, reason="Duplicate"),
            asynchronous=False,
        )

        board = service.get_board()
        assert [str(card.order_id) for card in board["pending"]] == [kept]

    def test_predicate_and_custom_query(self):
        cards = [
            {"order_id": "a", "delivery_status": "partial", "planned_priority": "high"},
            {"order_id": "b", "delivery_status": "partial", "planned_priority": "low"},
        ]
        service = OrderFulfillmentService(board_query=lambda: cards)
        board = service.get_board(lambda card: card["planned_priority"] == "high")
        assert board["partial"].keys() == ["a"]

    def test_every_candidate_appears_once(self):
        statuses = ["pending", "complete", None, "partial", "odd"]
        cards = [{"order_id": str(n), "delivery_status": status} for n, status in enumerate(statuses)]
        board = OrderFulfillmentService(board_query=lambda: cards).get_board()
        placed = [key for ranked in board.values() for key in ranked.keys()]
        assert sorted(placed) == sorted(card["order_id"] for card in cards)

    def test_default_query_reads_past_one_page(self, service, monkeypatch):
        monkeypatch.setattr(service_module, "BOARD_PAGE_SIZE", 2)
        started = [_start(f"SO-page-{n}") for n in range(5)]
        dropped = _start("SO-page-cancelled")
        current_domain.process(CancelTracking(order_id=dropped, reason="Duplicate"), asynchronous=False)

        candidates = active_board_orders()
        assert sorted(str(card.order_id) for card in candidates) == sorted(started)

        board = service.get_board()
        placed = [str(key) for ranked in board.values() for key in ranked.keys()]
        assert sorted(placed) == sorted(started)


class TestDeliveryBreakdown:
    def test_breakdown_sits_next_to_overall_status(self, service):
        order_id = _start(total_required=12)
        service.record_challan(order_id, {"quantity_shipped_delta": 5, "occurred_at": datetime(2024, 1, 9, tzinfo=UTC)})

        breakdown = service.delivery_breakdown(
            order_id,
            {"panels": 10, "cable": 2},
            {"panels": 4, "cable": 1, "clamps": 3},
        )

        assert breakdown["delivery_status"] == "partial"
        assert breakdown["column"] == "partial"
        assert breakdown["product_types"]["panels"] == {"required": 10, "delivered": 4, "pending": 6, "status": "partial"}
        assert breakdown["product_types"]["clamps"]["required"] == 0
        assert breakdown["product_types"]["clamps"]["status"] == "complete"

    def test_unknown_order_is_not_found(self, service):
        with pytest.raises(ObjectNotFoundError):
            service.delivery_breakdown("missing-order", {"panels": 1}, {})
