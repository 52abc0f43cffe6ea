"""Stage progression: commands and handler.

Completing a stage and assigning the fabricator/installer both go through
``TrackedOrder.complete_stage``; the assignment command only spells out the
role fields so callers cannot forget the same-person toggle.
"""

import json

from protean import handle
from protean.fields import Boolean, Date, Identifier, String, Text
from protean.utils.globals import current_domain

from tracking.domain import tracking
from tracking.order.order import TrackedOrder
from tracking.order.stages import AssigneeContext, StageKey


def _iso(value):
    return value.isoformat() if value is not None else None


@tracking.command(part_of="TrackedOrder")
class CompleteStage:
    """Complete the current stage, or amend a stage that is already completed."""

    order_id = Identifier(required=True)
    stage_key = String(required=True, max_length=100)
    details = Text()  # JSON object of submitted stage fields
    same_assignee = Boolean()


@tracking.command(part_of="TrackedOrder")
class AssignFabricatorInstaller:
    """Assign who fabricates and installs the system."""

    order_id = Identifier(required=True)
    same_assignee = Boolean(default=True)
    fabricator_installer_id = String(max_length=100)
    fabricator_id = String(max_length=100)
    installer_id = String(max_length=100)
    fabrication_due_date = Date()
    installation_due_date = Date()
    fabrication_remarks = String(max_length=1000)


@tracking.command_handler(part_of=TrackedOrder)
class StageProgressionHandler:
    @handle(CompleteStage)
    def complete_stage(self, command):
        details = json.loads(command.details) if isinstance(command.details, str) else (command.details or {})
        context = None
        if command.same_assignee is not None:
            context = AssigneeContext(same_assignee=command.same_assignee)

        repo = current_domain.repository_for(TrackedOrder)
        order = repo.get(command.order_id)
        advanced = order.complete_stage(command.stage_key, details, context)
        repo.add(order)
        return advanced

    @handle(AssignFabricatorInstaller)
    def assign_fabricator_installer(self, command):
        details = {
            "fabrication_due_date": _iso(command.fabrication_due_date),
            "installation_due_date": _iso(command.installation_due_date),
            "fabrication_remarks": command.fabrication_remarks,
        }
        if command.same_assignee:
            details["fabricator_installer_id"] = command.fabricator_installer_id
        else:
            details["fabricator_id"] = command.fabricator_id
            details["installer_id"] = command.installer_id

        repo = current_domain.repository_for(TrackedOrder)
        order = repo.get(command.order_id)
        advanced = order.complete_stage(
            StageKey.ASSIGN_FABRICATOR_AND_INSTALLER.value,
            {key: value for key, value in details.items() if value is not None},
            AssigneeContext(same_assignee=command.same_assignee),
        )
        repo.add(order)
        return advanced
