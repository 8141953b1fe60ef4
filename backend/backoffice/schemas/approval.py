"""Pydantic schemas for approval workflow API endpoints."""
import uuid
from datetime import datetime
from decimal import Decimal
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from backoffice.models.approval import ApprovalModule


# ─── Step output ───

class ApprovalStepOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    entity_type: str
    entity_id: uuid.UUID
    policy_id: uuid.UUID
    requester_id: uuid.UUID
    level_order: int
    approver_role: str
    status: str
    resolved_by_id: uuid.UUID | None
    resolved_at: datetime | None
    decision_channel: str | None
    notes: str | None
    created_at: datetime


class ChainSummaryOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    total_steps: int
    completed_steps: int
    current_level: int | None
    status: str


class ApprovalChainOut(BaseModel):
    entity_type: str
    entity_id: uuid.UUID
    steps: list[ApprovalStepOut]
    summary: ChainSummaryOut


class ApprovalListResponse(BaseModel):
    items: list[ApprovalStepOut]
    total: int


# ─── Workflow start ───

class WorkflowStartRequest(BaseModel):
    entity_type: ApprovalModule
    entity_id: uuid.UUID
    metric: Decimal = Field(..., ge=0, description="Days for leave requests, amount otherwise")
    requester_id: uuid.UUID | None = None


class WorkflowStartResponse(BaseModel):
    approval_required: bool
    policy_id: uuid.UUID | None = None
    steps: list[ApprovalStepOut] = []


# ─── Decisions ───

class StepDecisionRequest(BaseModel):
    action: Literal["approve", "reject"]
    notes: str | None = Field(None, max_length=500)


class StepDecisionResponse(BaseModel):
    step: ApprovalStepOut
    request_status: str
    is_chain_complete: bool
    next_step: ApprovalStepOut | None = None


class BypassRequest(BaseModel):
    notes: str | None = Field(None, max_length=500)


class BypassResponse(BaseModel):
    approved_count: int
    request_status: str
    steps: list[ApprovalStepOut]
