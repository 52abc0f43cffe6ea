"""Stage registry: the ordered pipeline a tracked order passes through.

The registry is static data and the single source of truth for stage
ordering, required fields and terminal detection. Nothing here touches an
order; the TrackedOrder aggregate consults it when a stage is completed.

Pipeline:
    ESTIMATE_GENERATED → ESTIMATE_PAID → PLANNER → DELIVERY →
    ASSIGN_FABRICATOR_AND_INSTALLER → FABRICATION → INSTALLATION →
    NETMETER_APPLY → NETMETER_INSTALLED → SUBSIDY_CLAIM → SUBSIDY_DISBURSED
"""

from dataclasses import dataclass
from enum import Enum

from protean.exceptions import ValidationError


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class StageStatus(Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    LOCKED = "locked"


class StageKey(Enum):
    ESTIMATE_GENERATED = "estimate_generated"
    ESTIMATE_PAID = "estimate_paid"
    PLANNER = "planner"
    DELIVERY = "delivery"
    ASSIGN_FABRICATOR_AND_INSTALLER = "assign_fabricator_and_installer"
    FABRICATION = "fabrication"
    INSTALLATION = "installation"
    NETMETER_APPLY = "netmeter_apply"
    NETMETER_INSTALLED = "netmeter_installed"
    SUBSIDY_CLAIM = "subsidy_claim"
    SUBSIDY_DISBURSED = "subsidy_disbursed"


# Role-dependent assignee fields
SHARED_ASSIGNEE_FIELD = "fabricator_installer_id"
FABRICATOR_FIELD = "fabricator_id"
INSTALLER_FIELD = "installer_id"


class UnknownStageError(ValidationError):
    """The stage key is not part of the registry."""


# ---------------------------------------------------------------------------
# Stage definition
# ---------------------------------------------------------------------------
@dataclass(frozen=True)
class StageDefinition:
    key: str
    label: str
    required_fields: frozenset = frozenset()
    next_key: str | None = None
    # (flag_field, extra_fields): extra fields are required when the flag is truthy
    conditional_fields: tuple = ()
    assigns_roles: bool = False

    @property
    def completed_at_field(self) -> str:
        return f"{self.key}_completed_at"

    @property
    def is_terminal(self) -> bool:
        return self.next_key is None


def _chain(*definitions: StageDefinition) -> tuple[StageDefinition, ...]:
    """Link each definition to its successor in declaration order."""
    linked = []
    for index, definition in enumerate(definitions):
        next_key = definitions[index + 1].key if index + 1 < len(definitions) else None
        linked.append(
            StageDefinition(
                key=definition.key,
                label=definition.label,
                required_fields=definition.required_fields,
                next_key=next_key,
                conditional_fields=definition.conditional_fields,
                assigns_roles=definition.assigns_roles,
            )
        )
    return tuple(linked)


STAGE_REGISTRY: tuple[StageDefinition, ...] = _chain(
    StageDefinition(
        key=StageKey.ESTIMATE_GENERATED.value,
        label="Estimate Generated",
        required_fields=frozenset({"estimate_quotation_serial_no", "estimate_amount", "estimate_due_date"}),
    ),
    StageDefinition(
        key=StageKey.ESTIMATE_PAID.value,
        label="Estimate Paid",
        required_fields=frozenset({"estimate_paid_by"}),
    ),
    StageDefinition(
        key=StageKey.PLANNER.value,
        label="Planner",
        required_fields=frozenset({"planned_delivery_date", "planned_priority", "planned_warehouse_id"}),
    ),
    StageDefinition(
        key=StageKey.DELIVERY.value,
        label="Delivery",
        required_fields=frozenset({"delivered_on"}),
    ),
    StageDefinition(
        key=StageKey.ASSIGN_FABRICATOR_AND_INSTALLER.value,
        label="Assign Fabricator & Installer",
        required_fields=frozenset({"fabrication_due_date", "installation_due_date"}),
        assigns_roles=True,
    ),
    StageDefinition(
        key=StageKey.FABRICATION.value,
        label="Fabrication",
        required_fields=frozenset({"fabrication_start_date", "fabrication_end_date"}),
    ),
    StageDefinition(
        key=StageKey.INSTALLATION.value,
        label="Installation",
        required_fields=frozenset({"installation_start_date", "installation_end_date"}),
    ),
    StageDefinition(
        key=StageKey.NETMETER_APPLY.value,
        label="Netmeter Apply",
        required_fields=frozenset({"netmeter_applied_on"}),
    ),
    StageDefinition(
        key=StageKey.NETMETER_INSTALLED.value,
        label="Netmeter Installed",
        required_fields=frozenset({"netmeter_installed_on"}),
        conditional_fields=(("generate_service", frozenset({"service_visit_scheduled_on", "service_assign_to"})),),
    ),
    StageDefinition(
        key=StageKey.SUBSIDY_CLAIM.value,
        label="Subsidy Claim",
        required_fields=frozenset({"claim_date"}),
    ),
    StageDefinition(
        key=StageKey.SUBSIDY_DISBURSED.value,
        label="Subsidy Disbursed",
        required_fields=frozenset({"disbursed_date"}),
    ),
)

_BY_KEY = {definition.key: definition for definition in STAGE_REGISTRY}
_POSITION = {definition.key: index for index, definition in enumerate(STAGE_REGISTRY)}


# ---------------------------------------------------------------------------
# Assignee context
# ---------------------------------------------------------------------------
@dataclass(frozen=True)
class AssigneeContext:
    """Whether one person covers both fabrication and installation."""

    same_assignee: bool = True


# ---------------------------------------------------------------------------
# Lookups
# ---------------------------------------------------------------------------
def get_stage(key: str) -> StageDefinition:
    try:
        return _BY_KEY[key]
    except KeyError:
        raise UnknownStageError({"stage_key": [f"Unknown stage '{key}'"]}) from None


def stage_keys() -> list[str]:
    return [definition.key for definition in STAGE_REGISTRY]


def first_stage() -> StageDefinition:
    return STAGE_REGISTRY[0]


def terminal_stage() -> StageDefinition:
    return STAGE_REGISTRY[-1]


def stage_after(key: str) -> str | None:
    return get_stage(key).next_key


def is_terminal(key: str) -> bool:
    return get_stage(key).is_terminal


def position(key: str) -> int:
    get_stage(key)
    return _POSITION[key]


def stages_before(key: str) -> list[str]:
    return stage_keys()[: position(key)]


def stages_after(key: str) -> list[str]:
    return stage_keys()[position(key) + 1 :]


def initial_stage_map() -> dict[str, str]:
    """Stage map for an order entering the pipeline. Absent keys are locked."""
    return {first_stage().key: StageStatus.PENDING.value}


def completion_fields() -> list[str]:
    return [definition.completed_at_field for definition in STAGE_REGISTRY]


# ---------------------------------------------------------------------------
# Required field resolution
# ---------------------------------------------------------------------------
def required_fields(key: str, fields: dict | None = None, same_assignee: bool | None = None) -> frozenset:
    """Return the fields that must be non-empty before ``key`` may be completed.

    Role substitution is applied first for stages that assign roles: a single
    shared assignee field when the fabricator and installer are the same
    person, otherwise one field per role. Conditional fields are added when
    their flag is truthy in ``fields``.
    """
    definition = get_stage(key)
    required = set(definition.required_fields)

    if definition.assigns_roles:
        if same_assignee is None or same_assignee:
            required.add(SHARED_ASSIGNEE_FIELD)
        else:
            required.update({FABRICATOR_FIELD, INSTALLER_FIELD})

    for flag, extra in definition.conditional_fields:
        if fields and is_truthy(fields.get(flag)):
            required.update(extra)

    return frozenset(required)


def is_filled(value) -> bool:
    if value is None:
        return False
    if isinstance(value, str):
        return value.strip() != ""
    if isinstance(value, (list, tuple, dict, set)):
        return len(value) > 0
    return True


def missing_fields(key: str, fields: dict | None, same_assignee: bool | None = None) -> list[str]:
    fields = fields or {}
    required = required_fields(key, fields, same_assignee)
    return sorted(name for name in required if not is_filled(fields.get(name)))


def is_truthy(value) -> bool:
    if isinstance(value, str):
        return value.strip().lower() not in ("", "false", "0", "no")
    return bool(value)
