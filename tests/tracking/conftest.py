import pytest
from protean.integrations.pytest import DomainFixture


@pytest.fixture(scope="session")
def tracking_bed():
    from tracking.domain import tracking

    bed = DomainFixture(tracking)
    bed.setup()
    yield bed
    bed.teardown()


@pytest.fixture(autouse=True)
def _ctx(tracking_bed):
    with tracking_bed.domain_context():
        yield


_STAGE_FIELDS = {
    "estimate_generated": {
        "estimate_quotation_serial_no": "EST-2024-0042",
        "estimate_amount": 185000,
        "estimate_due_date": "2024-01-10",
    },
    "estimate_paid": {"estimate_paid_by": "Customer"},
    "planner": {
        "planned_delivery_date": "2024-01-20",
        "planned_priority": "high",
        "planned_warehouse_id": "wh-pune",
    },
    "delivery": {"delivered_on": "2024-01-21"},
    "assign_fabricator_and_installer": {
        "fabricator_installer_id": "user-fab-1",
        "fabrication_due_date": "2024-01-25",
        "installation_due_date": "2024-01-30",
    },
    "fabrication": {"fabrication_start_date": "2024-01-22", "fabrication_end_date": "2024-01-24"},
    "installation": {"installation_start_date": "2024-01-26", "installation_end_date": "2024-01-29"},
    "netmeter_apply": {"netmeter_applied_on": "2024-02-01"},
    "netmeter_installed": {"netmeter_installed_on": "2024-02-15", "generate_service": False},
    "subsidy_claim": {"claim_date": "2024-02-20"},
    "subsidy_disbursed": {"disbursed_date": "2024-03-15"},
}


@pytest.fixture()
def stage_fields():
    """Valid completion fields for every stage, keyed by stage key."""
    return {key: dict(fields) for key, fields in _STAGE_FIELDS.items()}
