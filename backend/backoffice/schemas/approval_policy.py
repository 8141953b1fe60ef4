"""Pydantic schemas for approval policies and their levels."""
import uuid
from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from backoffice.core.permissions import ApproverRole
from backoffice.models.approval import ApprovalModule


# ─── Levels ───

class ApprovalLevelIn(BaseModel):
    level_order: int = Field(..., ge=1, le=5)
    approver_role: ApproverRole


class ApprovalLevelOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    level_order: int
    approver_role: str


# ─── Policies ───

class ApprovalPolicyIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    module: ApprovalModule
    is_active: bool = True
    priority: int = 0
    min_amount: Decimal | None = None
    max_amount: Decimal | None = None
    min_days: int | None = None
    max_days: int | None = None
    levels: list[ApprovalLevelIn] = Field(..., min_length=1, max_length=5)


class ApprovalPolicyUpdate(BaseModel):
    """Partial update. ``levels``, when given, replaces the whole chain."""

    name: str | None = Field(None, min_length=1, max_length=255)
    is_active: bool | None = None
    priority: int | None = None
    min_amount: Decimal | None = None
    max_amount: Decimal | None = None
    min_days: int | None = None
    max_days: int | None = None
    levels: list[ApprovalLevelIn] | None = Field(None, min_length=1, max_length=5)

    @field_validator("name", "is_active", "priority")
    @classmethod
    def reject_null(cls, v, info):
        # Omit the field to keep its value; these columns are NOT NULL
        if v is None:
            raise ValueError(f"{info.field_name} cannot be null")
        return v


class ApprovalPolicyOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    name: str
    module: str
    is_active: bool
    priority: int
    min_amount: Decimal | None
    max_amount: Decimal | None
    min_days: int | None
    max_days: int | None
    levels: list[ApprovalLevelOut]
    created_at: datetime
    updated_at: datetime
