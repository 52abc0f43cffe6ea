"""Pydantic API schemas for the Tracking domain.

These are the external API contracts, kept separate from domain commands.
The API layer translates between these schemas and domain commands.
"""

from datetime import date, datetime

from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------
class StartTrackingRequest(BaseModel):
    order_id: str | None = None
    order_number: str | None = None
    total_required: float = Field(ge=0)
    capacity: float | None = None


class CompleteStageRequest(BaseModel):
    details: dict = Field(default_factory=dict)
    same_assignee: bool | None = None


class AssignAssigneesRequest(BaseModel):
    same_assignee: bool = True
    fabricator_installer_id: str | None = None
    fabricator_id: str | None = None
    installer_id: str | None = None
    fabrication_due_date: date | None = None
    installation_due_date: date | None = None
    fabrication_remarks: str | None = None


class RecordChallanRequest(BaseModel):
    challan_id: str | None = None
    quantity_shipped_delta: float
    occurred_at: datetime


class RecordChallanReturnRequest(BaseModel):
    challan_id: str | None = None
    quantity_returned: float
    occurred_at: datetime


class CancelTrackingRequest(BaseModel):
    reason: str



class DeliveryBreakdownRequest(BaseModel):
    required_by_type: dict[str, float] = Field(default_factory=dict)
    delivered_by_type: dict[str, float] = Field(default_factory=dict)


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------
class TrackedOrderIdResponse(BaseModel):
    order_id: str


class StageResponse(BaseModel):
    status: str
    current_stage_key: str | None = None
    column: str


class ChallanResponse(BaseModel):
    applied: bool
    delivery_status: str
    total_shipped: float
    total_pending: float
    column: str


class StatusResponse(BaseModel):
    status: str



class ProductTypeDelivery(BaseModel):
    required: float
    delivered: float
    pending: float
    status: str


class DeliveryBreakdownResponse(BaseModel):
    order_id: str
    delivery_status: str
    column: str
    product_types: dict[str, ProductTypeDelivery]


class BoardCard(BaseModel):
    order_id: str
    order_number: str | None = None
    delivery_status: str
    total_required: float | None = None
    total_shipped: float | None = None
    total_pending: float | None = None
    planned_delivery_date: date | None = None
    planned_priority: str | None = None
    planned_warehouse_id: str | None = None
    last_challan_date: datetime | None = None
    capacity: float | None = None
    current_stage_key: str | None = None


class BoardColumnResponse(BaseModel):
    key: str
    title: str
    count: int
    capacity: float
    orders: list[BoardCard]


class BoardResponse(BaseModel):
    columns: list[BoardColumnResponse]
