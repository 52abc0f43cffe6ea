"""Stage timeline: audit trail of stage completions and amendments per order."""

from protean.core.projector import on
from protean.fields import DateTime, Identifier, String, Text
from protean.utils.globals import current_domain

from tracking.domain import tracking
from tracking.order.events import StageCompleted, StageDetailsAmended
from tracking.order.order import TrackedOrder


@tracking.projection
class StageTimelineView:
    id = Identifier(identifier=True)
    order_id = Identifier(required=True)
    stage = String(required=True)
    action = String(required=True)  # completed | amended
    details = Text()
    recorded_at = DateTime(required=True)


def _entry_id(order_id: str, stage: str, action: str, recorded_at) -> str:
    return f"{order_id}-{stage}-{action}-{recorded_at.isoformat()}"


@tracking.projector(projector_for=StageTimelineView, aggregates=[TrackedOrder])
class StageTimelineProjector:
    @on(StageCompleted)
    def on_stage_completed(self, event):
        current_domain.repository_for(StageTimelineView).add(
            StageTimelineView(
                id=_entry_id(event.order_id, event.stage, "completed", event.completed_at),
                order_id=event.order_id,
                stage=event.stage,
                action="completed",
                details=event.details,
                recorded_at=event.completed_at,
            )
        )

    @on(StageDetailsAmended)
    def on_stage_details_amended(self, event):
        current_domain.repository_for(StageTimelineView).add(
            StageTimelineView(
                id=_entry_id(event.order_id, event.stage, "amended", event.amended_at),
                order_id=event.order_id,
                stage=event.stage,
                action="amended",
                details=event.details,
                recorded_at=event.amended_at,
            )
        )
