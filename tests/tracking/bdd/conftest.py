"""Shared BDD fixtures and step definitions for the Tracking domain."""

import pytest
from protean.exceptions import ValidationError
from pytest_bdd import given, parsers, then
from tracking.order.order import TrackedOrder


@pytest.fixture()
def error():
    """Container for captured validation errors."""
    return {"exc": None}


# ---------------------------------------------------------------------------
# Given steps
# ---------------------------------------------------------------------------
@given("a newly tracked order", target_fixture="order")
def new_order():
    order = TrackedOrder.start(total_required=10, order_number="SO-BDD-1")
    order._events.clear()
    return order


@given(parsers.cfparse("a tracked order requiring {required} units"), target_fixture="order")
def order_requiring(required):
    order = TrackedOrder.start(total_required=float(required), order_number="SO-BDD-2")
    order._events.clear()
    return order


# ---------------------------------------------------------------------------
# Then steps
# ---------------------------------------------------------------------------
@then(parsers.cfparse('the current stage is "{stage_key}"'))
def current_stage_is(order, stage_key):
    assert order.current_stage_key == stage_key


@then(parsers.cfparse('the delivery status is "{status}"'))
def delivery_status_is(order, status):
    assert order.delivery_status == status


@then(parsers.cfparse("{pending} units are pending"))
def units_pending(order, pending):
    assert order.total_pending == float(pending)


@then("the request is rejected as out of order")
def rejected_out_of_order(error):
    from tracking.order.order import OutOfOrderError

    assert isinstance(error["exc"], OutOfOrderError)


@then(parsers.cfparse('the request is rejected for missing "{field}"'))
def rejected_for_missing(error, field):
    assert isinstance(error["exc"], ValidationError)
    assert field in error["exc"].messages


@pytest.fixture()
def snapshot():
    """Values captured before a step, for later comparison."""
    return {}
