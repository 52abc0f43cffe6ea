"""TrackedOrder aggregate (CQRS): the core of the tracking domain.

The TrackedOrder follows one confirmed order through the stage pipeline
defined in ``tracking.order.stages`` and keeps the delivery totals derived
from delivery challans. It uses CQRS (not event sourcing): the pipeline only
moves forward and challans are owned by the dispatch system, so current
state is stored and projectors build the kanban board from the events.

Stage pipeline:
    pending (current) → completed; the next stage becomes pending,
    later stages stay locked (absent from the stage map).
    A completed stage may be re-submitted to amend its details; that never
    moves the pipeline or touches the completion timestamp. Once the terminal
    stage is completed the order is closed and no stage may change.

Delivery status:
    pending (nothing shipped) → partial → complete (shipped >= required)
    Returns move the status back down.
"""

import json
from datetime import UTC, date, datetime

import structlog
from protean import atomic_change, invariant
from protean.exceptions import ValidationError
from protean.fields import Boolean, Date, DateTime, Dict, Float, Integer, List, String

from tracking.domain import tracking
from tracking.order import stages as registry
from tracking.order.events import (
    AssigneesAssigned,
    ChallanApplied,
    ChallanReturnApplied,
    DeliveryStatusChanged,
    PlanningUpdated,
    StageCompleted,
    StageDetailsAmended,
    TrackingCancelled,
    TrackingCompleted,
    TrackingStarted,
)
from tracking.order.metrics import (
    DeliveryStatus,
    derive_delivery_status,
    excess_quantity,
    pending_quantity,
    validate_returned_quantity,
    validate_shipped_delta,
)
from tracking.order.stages import AssigneeContext, StageKey, StageStatus

logger = structlog.get_logger(__name__)


class OutOfOrderError(ValidationError):
    """The stage being completed is not the order's current stage."""


class AlreadyTerminalError(ValidationError):
    """The pipeline has already completed its terminal stage."""


class OrderCancelledError(ValidationError):
    """The order was cancelled; its stages can no longer change."""


def _as_utc(value: datetime | None) -> datetime | None:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def _as_date(value) -> date | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value)[:10])


# ---------------------------------------------------------------------------
# Aggregate Root (CQRS)
# ---------------------------------------------------------------------------
@tracking.aggregate
class TrackedOrder:
    order_number = String(max_length=100)

    # Stage pipeline
    stages = Dict()
    current_stage_key = String(max_length=100)
    stage_details = Dict()
    estimate_generated_completed_at = DateTime()
    estimate_paid_completed_at = DateTime()
    planner_completed_at = DateTime()
    delivery_completed_at = DateTime()
    assign_fabricator_and_installer_completed_at = DateTime()
    fabrication_completed_at = DateTime()
    installation_completed_at = DateTime()
    netmeter_apply_completed_at = DateTime()
    netmeter_installed_completed_at = DateTime()
    subsidy_claim_completed_at = DateTime()
    subsidy_disbursed_completed_at = DateTime()

    # Assignees (weak references into the user directory)
    fabricator_installer_are_same = Boolean(default=True)
    fabricator_installer_id = String(max_length=100)
    fabricator_id = String(max_length=100)
    installer_id = String(max_length=100)

    # Planning
    planned_delivery_date = Date()
    planned_priority = String(max_length=50)
    planned_warehouse_id = String(max_length=100)
    capacity = Float(default=0.0, min_value=0.0)

    # Delivery
    total_required = Float(required=True, min_value=0.0)
    total_shipped = Float(default=0.0, min_value=0.0)
    total_pending = Float(default=0.0, min_value=0.0)
    total_excess = Float(default=0.0, min_value=0.0)
    total_returned = Float(default=0.0, min_value=0.0)
    delivery_status = String(
        max_length=20,
        choices=DeliveryStatus,
        default=DeliveryStatus.PENDING.value,
    )
    last_challan_date = DateTime()
    challan_count = Integer(default=0, min_value=0)
    applied_challan_ids = List(content_type=String)

    # Cancellation
    cancelled = Boolean(default=False)
    cancellation_reason = String(max_length=500)
    cancelled_at = DateTime()

    created_at = DateTime()
    updated_at = DateTime()

    # -------------------------------------------------------------------
    # Invariants
    # -------------------------------------------------------------------
    @invariant.post
    def current_stage_is_the_only_pending_stage(self):
        stage_map = self.stages or {}
        pending = {key for key, status in stage_map.items() if status == StageStatus.PENDING.value}
        if self.current_stage_key is None:
            if pending:
                raise ValidationError({"stages": ["A pending stage requires a current stage"]})
            return
        if pending != {self.current_stage_key}:
            raise ValidationError({"stages": [f"Only the current stage '{self.current_stage_key}' may be pending"]})

    @invariant.post
    def stages_before_current_are_completed(self):
        stage_map = self.stages or {}
        if self.current_stage_key is None:
            if stage_map and any(stage_map.get(key) != StageStatus.COMPLETED.value for key in registry.stage_keys()):
                raise ValidationError({"stages": ["A finished pipeline must have every stage completed"]})
            return
        for key in registry.stages_before(self.current_stage_key):
            if stage_map.get(key) != StageStatus.COMPLETED.value:
                raise ValidationError({"stages": [f"Stage '{key}' must be completed before the current stage"]})
        for key in registry.stages_after(self.current_stage_key):
            if stage_map.get(key) == StageStatus.COMPLETED.value:
                raise ValidationError({"stages": [f"Stage '{key}' cannot be completed ahead of the current stage"]})

    @invariant.post
    def delivery_totals_are_consistent(self):
        shipped = self.total_shipped or 0
        required = self.total_required or 0
        if (self.total_pending or 0) != pending_quantity(shipped, required):
            raise ValidationError({"total_pending": ["Pending quantity must equal required minus shipped"]})
        if (self.total_excess or 0) != excess_quantity(shipped, required):
            raise ValidationError({"total_excess": ["Excess quantity must equal shipped beyond required"]})
        if self.delivery_status != derive_delivery_status(shipped, required):
            raise ValidationError({"delivery_status": ["Delivery status does not match shipped quantity"]})

    # -------------------------------------------------------------------
    # Factory method
    # -------------------------------------------------------------------
    @classmethod
    def start(
        cls,
        total_required: float,
        order_number: str | None = None,
        capacity: float | None = None,
        order_id: str | None = None,
    ):
        """Start tracking a confirmed order at the first registry stage."""
        now = datetime.now(UTC)
        first = registry.first_stage().key
        kwargs = {"id": order_id} if order_id else {}
        order = cls(
            order_number=order_number,
            stages=registry.initial_stage_map(),
            current_stage_key=first,
            stage_details={},
            capacity=capacity or 0.0,
            total_required=total_required,
            total_shipped=0.0,
            total_pending=pending_quantity(0, total_required),
            total_excess=0.0,
            delivery_status=derive_delivery_status(0, total_required),
            challan_count=0,
            applied_challan_ids=[],
            created_at=now,
            updated_at=now,
            **kwargs,
        )
        order.raise_(
            TrackingStarted(
                order_id=str(order.id),
                order_number=order_number,
                current_stage_key=first,
                total_required=total_required,
                capacity=order.capacity,
                started_at=now,
            )
        )
        return order

    # -------------------------------------------------------------------
    # Stage queries
    # -------------------------------------------------------------------
    def stage_status(self, stage_key: str) -> str:
        registry.get_stage(stage_key)
        return (self.stages or {}).get(stage_key, StageStatus.LOCKED.value)

    def completed_at(self, stage_key: str) -> datetime | None:
        return getattr(self, registry.get_stage(stage_key).completed_at_field)

    @property
    def is_tracking_complete(self) -> bool:
        return (self.stages or {}).get(registry.terminal_stage().key) == StageStatus.COMPLETED.value

    # -------------------------------------------------------------------
    # Stage transitions
    # -------------------------------------------------------------------
    def complete_stage(
        self,
        stage_key: str,
        fields: dict | None = None,
        assignee_context: AssigneeContext | None = None,
    ) -> bool:
        """Complete ``stage_key`` or amend it when it is already completed.

        Returns True when the pipeline advanced and False for an amendment.
        Every check runs before any attribute changes, so a rejected call
        leaves the order untouched.
        """
        fields = dict(fields or {})
        if self.cancelled:
            raise OrderCancelledError({"stage_key": ["Cannot change stages of a cancelled order"]})

        definition = registry.get_stage(stage_key)
        context = assignee_context or AssigneeContext(
            same_assignee=registry.is_truthy(fields.get("fabricator_installer_are_same", self.fabricator_installer_are_same))
        )

        if self.is_tracking_complete:
            raise AlreadyTerminalError(
                {"stage_key": [f"Pipeline already finished; cannot complete or amend '{stage_key}'"]}
            )

        if self.stage_status(stage_key) == StageStatus.COMPLETED.value:
            self._amend_stage(definition, fields, context)
            return False

        if self.current_stage_key is None:
            raise OutOfOrderError({"stage_key": ["Tracking has not started for this order"]})

        if stage_key != self.current_stage_key:
            raise OutOfOrderError(
                {"stage_key": [f"Cannot complete '{stage_key}' while current stage is '{self.current_stage_key}'"]}
            )

        self._validate_stage_fields(definition, fields, context)

        now = datetime.now(UTC)
        next_key = definition.next_key
        with atomic_change(self):
            stage_map = dict(self.stages or {})
            stage_map[stage_key] = StageStatus.COMPLETED.value
            if next_key is not None:
                stage_map[next_key] = StageStatus.PENDING.value
            self.stages = stage_map
            self.current_stage_key = next_key
            setattr(self, definition.completed_at_field, now)
            self._store_details(definition, fields, context)
            self._lift_fields(definition, fields, context, now)
            self.updated_at = now

        logger.info("Stage completed", order_id=str(self.id), stage=stage_key, next_stage=next_key)
        self.raise_(
            StageCompleted(
                order_id=str(self.id),
                stage=stage_key,
                next_stage=next_key,
                details=json.dumps(fields, default=str),
                completed_at=now,
            )
        )
        if next_key is None:
            self.raise_(TrackingCompleted(order_id=str(self.id), completed_at=now))
        return True

    def _amend_stage(self, definition, fields: dict, context: AssigneeContext) -> None:
        merged = {**(self.stage_details or {}).get(definition.key, {}), **fields}
        self._validate_stage_fields(definition, merged, context)

        now = datetime.now(UTC)
        with atomic_change(self):
            self._store_details(definition, fields, context)
            self._lift_fields(definition, merged, context, now)
            self.updated_at = now

        logger.info("Stage details amended", order_id=str(self.id), stage=definition.key)
        self.raise_(
            StageDetailsAmended(
                order_id=str(self.id),
                stage=definition.key,
                details=json.dumps(fields, default=str),
                amended_at=now,
            )
        )

    def _validate_stage_fields(self, definition, fields: dict, context: AssigneeContext) -> None:
        missing = registry.missing_fields(definition.key, fields, context.same_assignee)
        if missing:
            raise ValidationError({name: ["is required"] for name in missing})

        if definition.key == StageKey.PLANNER.value:
            try:
                _as_date(fields.get("planned_delivery_date"))
            except ValueError as exc:
                raise ValidationError({"planned_delivery_date": ["is not a valid date"]}) from exc

        if definition.assigns_roles and not context.same_assignee:
            if str(fields[registry.FABRICATOR_FIELD]) == str(fields[registry.INSTALLER_FIELD]):
                raise ValidationError(
                    {registry.INSTALLER_FIELD: ["Installer must differ from fabricator; use the same-person toggle"]}
                )

    def _store_details(self, definition, fields: dict, context: AssigneeContext) -> None:
        details = {key: dict(value) for key, value in (self.stage_details or {}).items()}
        merged = {**details.get(definition.key, {}), **fields}
        if definition.assigns_roles:
            # Only the ids of the chosen assignee mode stay on record
            stale = (
                (registry.FABRICATOR_FIELD, registry.INSTALLER_FIELD)
                if context.same_assignee
                else (registry.SHARED_ASSIGNEE_FIELD,)
            )
            for name in stale:
                merged.pop(name, None)
        details[definition.key] = merged
        self.stage_details = details

    def _lift_fields(self, definition, fields: dict, context: AssigneeContext, now: datetime) -> None:
        if definition.key == StageKey.PLANNER.value:
            self.planned_delivery_date = _as_date(fields.get("planned_delivery_date"))
            self.planned_priority = fields.get("planned_priority")
            self.planned_warehouse_id = fields.get("planned_warehouse_id")
            self.raise_(
                PlanningUpdated(
                    order_id=str(self.id),
                    planned_delivery_date=self.planned_delivery_date,
                    planned_priority=self.planned_priority,
                    planned_warehouse_id=self.planned_warehouse_id,
                    updated_at=now,
                )
            )

        if definition.assigns_roles:
            self.fabricator_installer_are_same = context.same_assignee
            if context.same_assignee:
                shared = str(fields[registry.SHARED_ASSIGNEE_FIELD])
                self.fabricator_installer_id = shared
                self.fabricator_id = shared
                self.installer_id = shared
            else:
                self.fabricator_installer_id = None
                self.fabricator_id = str(fields[registry.FABRICATOR_FIELD])
                self.installer_id = str(fields[registry.INSTALLER_FIELD])
            self.raise_(
                AssigneesAssigned(
                    order_id=str(self.id),
                    fabricator_installer_are_same=context.same_assignee,
                    fabricator_id=self.fabricator_id,
                    installer_id=self.installer_id,
                    assigned_at=now,
                )
            )

    # -------------------------------------------------------------------
    # Delivery metrics
    # -------------------------------------------------------------------
    def apply_challan_event(
        self,
        quantity_shipped_delta: float,
        occurred_at: datetime,
        event_id: str | None = None,
    ) -> bool:
        """Apply one dispatched challan to the shipped totals.

        Returns False without changing anything when ``event_id`` was already
        applied. Without an id every call is applied.
        """
        validate_shipped_delta(quantity_shipped_delta)
        if event_id and event_id in (self.applied_challan_ids or []):
            logger.warning("Duplicate challan skipped", order_id=str(self.id), challan_id=event_id)
            return False

        occurred_at = _as_utc(occurred_at) or datetime.now(UTC)
        previous_status = self.delivery_status
        latest = _as_utc(self.last_challan_date)

        with atomic_change(self):
            self._set_shipped((self.total_shipped or 0) + quantity_shipped_delta)
            self.challan_count = (self.challan_count or 0) + 1
            if latest is None or occurred_at > latest:
                self.last_challan_date = occurred_at
            if event_id:
                self.applied_challan_ids = list(self.applied_challan_ids or []) + [event_id]
            self.updated_at = datetime.now(UTC)

        self.raise_(
            ChallanApplied(
                order_id=str(self.id),
                challan_id=event_id,
                quantity_shipped_delta=quantity_shipped_delta,
                total_required=self.total_required,
                total_shipped=self.total_shipped,
                total_pending=self.total_pending,
                delivery_status=self.delivery_status,
                challan_count=self.challan_count,
                last_challan_date=self.last_challan_date,
                occurred_at=occurred_at,
            )
        )
        self._announce_status_change(previous_status)
        return True

    def apply_challan_return(
        self,
        quantity_returned: float,
        occurred_at: datetime,
        event_id: str | None = None,
    ) -> bool:
        """Take returned material back off the shipped totals."""
        validate_returned_quantity(quantity_returned, self.total_shipped)
        dedupe_key = f"return:{event_id}" if event_id else None
        if dedupe_key and dedupe_key in (self.applied_challan_ids or []):
            logger.warning("Duplicate challan return skipped", order_id=str(self.id), challan_id=event_id)
            return False

        occurred_at = _as_utc(occurred_at) or datetime.now(UTC)
        previous_status = self.delivery_status

        with atomic_change(self):
            self._set_shipped((self.total_shipped or 0) - quantity_returned)
            self.total_returned = (self.total_returned or 0) + quantity_returned
            if dedupe_key:
                self.applied_challan_ids = list(self.applied_challan_ids or []) + [dedupe_key]
            self.updated_at = datetime.now(UTC)

        self.raise_(
            ChallanReturnApplied(
                order_id=str(self.id),
                challan_id=event_id,
                quantity_returned=quantity_returned,
                total_required=self.total_required,
                total_shipped=self.total_shipped,
                total_pending=self.total_pending,
                delivery_status=self.delivery_status,
                occurred_at=occurred_at,
            )
        )
        self._announce_status_change(previous_status)
        return True

    def _set_shipped(self, shipped: float) -> None:
        self.total_shipped = shipped
        self.total_pending = pending_quantity(shipped, self.total_required)
        self.total_excess = excess_quantity(shipped, self.total_required)
        self.delivery_status = derive_delivery_status(shipped, self.total_required)

    def _announce_status_change(self, previous_status: str) -> None:
        if previous_status == self.delivery_status:
            return
        logger.info(
            "Delivery status changed",
            order_id=str(self.id),
            previous_status=previous_status,
            delivery_status=self.delivery_status,
        )
        self.raise_(
            DeliveryStatusChanged(
                order_id=str(self.id),
                previous_status=previous_status,
                delivery_status=self.delivery_status,
                changed_at=datetime.now(UTC),
            )
        )

    # -------------------------------------------------------------------
    # Cancellation
    # -------------------------------------------------------------------
    def cancel(self, reason: str) -> None:
        """Freeze the pipeline after an upstream cancellation."""
        if self.cancelled:
            raise OrderCancelledError({"cancelled": ["Order is already cancelled"]})
        if self.is_tracking_complete:
            raise AlreadyTerminalError({"cancelled": ["Cannot cancel an order whose pipeline has finished"]})

        now = datetime.now(UTC)
        self.cancelled = True
        self.cancellation_reason = reason
        self.cancelled_at = now
        self.updated_at = now
        self.raise_(
            TrackingCancelled(
                order_id=str(self.id),
                reason=reason,
                cancelled_at=now,
            )
        )
