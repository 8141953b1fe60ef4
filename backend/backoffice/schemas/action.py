"""Pydantic schemas for token redemption (no-auth endpoints)."""
import uuid

from pydantic import BaseModel, Field


class RedeemRequest(BaseModel):
    token: str = Field(..., min_length=1, max_length=128)
    notes: str | None = Field(None, max_length=500)


class TokenInfo(BaseModel):
    entity_type: str
    entity_id: uuid.UUID
    action: str


class RedeemResponse(BaseModel):
    valid: bool
    error: str | None = None
    error_code: str | None = None
    token: TokenInfo | None = None
    request_status: str | None = None


class ValidateResponse(BaseModel):
    valid: bool
    error: str | None = None
    error_code: str | None = None
    token: TokenInfo | None = None
