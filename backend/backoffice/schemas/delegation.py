"""Pydantic schemas for approver delegations."""
import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class DelegationIn(BaseModel):
    delegatee_id: uuid.UUID
    start_date: datetime
    end_date: datetime
    reason: str | None = Field(None, max_length=500)
    # Admins may create a delegation on behalf of another approver
    delegator_id: uuid.UUID | None = None


class DelegationOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    delegator_id: uuid.UUID
    delegatee_id: uuid.UUID
    start_date: datetime
    end_date: datetime
    is_active: bool
    reason: str | None
    created_at: datetime


class DelegationListResponse(BaseModel):
    given: list[DelegationOut]
    received: list[DelegationOut]
