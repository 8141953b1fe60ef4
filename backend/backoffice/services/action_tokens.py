"""Remote action tokens: signed, single-use, short-lived approve/reject tokens.

External form is ``<32 hex token_id>:<16 hex hmac>``. Only ``token_id`` is
persisted; the HMAC half is recomputed from the server secret, so a leaked
database row cannot be turned into a working token.
"""
import enum
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta

from sqlalchemy import delete, or_, select, update
from sqlalchemy.orm import Session

from backoffice.core.config import settings
from backoffice.core.security import (
    new_token_id,
    sign_action_token,
    split_action_token,
    verify_action_token_signature,
)
from backoffice.db.base import as_utc, utcnow
from backoffice.models.action_token import RemoteActionToken

logger = logging.getLogger(__name__)

ACTIONS = ("approve", "reject")


class TokenError(str, enum.Enum):
    MALFORMED = "MALFORMED"
    NOT_FOUND = "NOT_FOUND"
    INVALID_SIGNATURE = "INVALID_SIGNATURE"
    EXPIRED = "EXPIRED"
    ALREADY_USED = "ALREADY_USED"
    RACE_LOST = "RACE_LOST"


ERROR_MESSAGES = {
    TokenError.MALFORMED: "Invalid token format",
    TokenError.NOT_FOUND: "Token not found",
    TokenError.INVALID_SIGNATURE: "Invalid token signature",
    TokenError.EXPIRED: "Token has expired",
    TokenError.ALREADY_USED: "Token has already been used",
    TokenError.RACE_LOST: "Token already used (race condition)",
}


@dataclass
class TokenPayload:
    tenant_id: uuid.UUID
    entity_type: str
    entity_id: uuid.UUID
    action: str
    approver_id: uuid.UUID


@dataclass
class TokenValidationResult:
    valid: bool
    payload: TokenPayload | None = None
    error: TokenError | None = None

    @property
    def message(self) -> str | None:
        return ERROR_MESSAGES.get(self.error) if self.error else None

    @classmethod
    def fail(cls, error: TokenError) -> "TokenValidationResult":
        return cls(valid=False, error=error)


@dataclass
class TokenPair:
    approve_token: str
    reject_token: str


# ─── Issue ───

def issue(
    db: Session,
    tenant_id: uuid.UUID,
    entity_type: str,
    entity_id: uuid.UUID,
    action: str,
    approver_id: uuid.UUID,
    ttl: timedelta | None = None,
) -> str:
    """Persist a token row and return the external token string. Flushes only."""
    if action not in ACTIONS:
        raise ValueError(f"Invalid action '{action}'. Must be 'approve' or 'reject'.")

    ttl = ttl or timedelta(minutes=settings.ACTION_TOKEN_EXPIRE_MINUTES)
    token_id = new_token_id()
    signature = sign_action_token(token_id, entity_type, str(entity_id), action)

    db.add(
        RemoteActionToken(
            tenant_id=tenant_id,
            token_id=token_id,
            entity_type=entity_type,
            entity_id=entity_id,
            action=action,
            approver_id=approver_id,
            expires_at=utcnow() + ttl,
            used=False,
        )
    )
    db.flush()
    return f"{token_id}:{signature}"


def issue_pair(
    db: Session,
    tenant_id: uuid.UUID,
    entity_type: str,
    entity_id: uuid.UUID,
    approver_id: uuid.UUID,
    ttl: timedelta | None = None,
) -> TokenPair:
    return TokenPair(
        approve_token=issue(db, tenant_id, entity_type, entity_id, "approve", approver_id, ttl),
        reject_token=issue(db, tenant_id, entity_type, entity_id, "reject", approver_id, ttl),
    )


# ─── Validate / consume ───

def _check(db: Session, token: str, now: datetime) -> tuple[RemoteActionToken | None, TokenValidationResult]:
    parts = split_action_token(token or "")
    if parts is None:
        return None, TokenValidationResult.fail(TokenError.MALFORMED)
    token_id, signature = parts

    row = db.execute(
        select(RemoteActionToken)
        .where(RemoteActionToken.token_id == token_id)
        .execution_options(populate_existing=True)
    ).scalars().first()
    if row is None:
        return None, TokenValidationResult.fail(TokenError.NOT_FOUND)

    if not verify_action_token_signature(signature, token_id, row.entity_type, str(row.entity_id), row.action):
        logger.warning("Action token %s failed signature check", token_id)
        return row, TokenValidationResult.fail(TokenError.INVALID_SIGNATURE)
    if row.used:
        return row, TokenValidationResult.fail(TokenError.ALREADY_USED)
    if as_utc(row.expires_at) <= now:
        return row, TokenValidationResult.fail(TokenError.EXPIRED)

    payload = TokenPayload(
        tenant_id=row.tenant_id,
        entity_type=row.entity_type,
        entity_id=row.entity_id,
        action=row.action,
        approver_id=row.approver_id,
    )
    return row, TokenValidationResult(valid=True, payload=payload)


def validate(db: Session, token: str) -> TokenValidationResult:
    """Read-only check. Does not mark the token as used."""
    _, result = _check(db, token, utcnow())
    return result


def _claim(db: Session, row_id: uuid.UUID, now: datetime) -> int:
    """Flip used=false -> true; the affected row count decides the winner."""
    result = db.execute(
        update(RemoteActionToken)
        .where(RemoteActionToken.id == row_id, RemoteActionToken.used.is_(False))
        .values(used=True, used_at=now)
        .execution_options(synchronize_session=False)
    )
    db.commit()
    return result.rowcount


def consume(db: Session, token: str) -> TokenValidationResult:
    """Validate and atomically mark the token used. Commits the claim."""
    now = utcnow()
    row, result = _check(db, token, now)
    if not result.valid:
        return result

    if _claim(db, row.id, now) == 0:
        logger.info("Action token %s lost a concurrent redemption", row.token_id)
        return TokenValidationResult.fail(TokenError.RACE_LOST)

    logger.info(
        "Action token consumed: %s %s/%s by approver %s",
        row.action, row.entity_type, row.entity_id, row.approver_id,
    )
    return result


# ─── Housekeeping ───

def invalidate_for_entity(db: Session, entity_type: str, entity_id: uuid.UUID) -> int:
    """Mark every outstanding token for the entity as used. Does not commit."""
    result = db.execute(
        update(RemoteActionToken)
        .where(
            RemoteActionToken.entity_type == entity_type,
            RemoteActionToken.entity_id == entity_id,
            RemoteActionToken.used.is_(False),
        )
        .values(used=True, used_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    if result.rowcount:
        logger.debug("Invalidated %d action tokens for %s/%s", result.rowcount, entity_type, entity_id)
    return result.rowcount


def cleanup_expired(db: Session, retention: timedelta | None = None) -> int:
    """Delete expired tokens and tokens used longer ago than ``retention``."""
    now = utcnow()
    retention = retention or timedelta(hours=settings.ACTION_TOKEN_USED_RETENTION_HOURS)
    result = db.execute(
        delete(RemoteActionToken)
        .where(
            or_(
                RemoteActionToken.expires_at < now,
                (RemoteActionToken.used.is_(True)) & (RemoteActionToken.used_at < now - retention),
            )
        )
        .execution_options(synchronize_session=False)
    )
    db.commit()
    return result.rowcount
