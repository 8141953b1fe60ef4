"""Token-based decisions from outside the app (WhatsApp buttons, e-mail links).

Callers are unauthenticated, so nothing is raised from here: every failure
comes back as ``RedemptionResult(valid=False, error=...)``.
"""
import logging
from dataclasses import dataclass

from sqlalchemy.orm import Session

from backoffice.core.exceptions import WorkflowError
from backoffice.services import action_tokens
from backoffice.services.action_tokens import TokenPayload
from backoffice.services.approval import StepDecisionResult, process_step
from backoffice.services.approval_steps import get_active_step

logger = logging.getLogger(__name__)


@dataclass
class RedemptionResult:
    valid: bool
    error: str | None = None
    error_code: str | None = None
    payload: TokenPayload | None = None
    decision: StepDecisionResult | None = None


def redeem_token(
    db: Session,
    token: str,
    notes: str | None = None,
    channel: str = "link",
) -> RedemptionResult:
    """Consume ``token`` and apply its action to the entity's active step."""
    try:
        consumed = action_tokens.consume(db, token)
    except WorkflowError as exc:
        logger.error("Token redemption unavailable: %s", exc.message)
        return RedemptionResult(valid=False, error="Remote approval is unavailable", error_code=exc.error_code)
    if not consumed.valid:
        return RedemptionResult(valid=False, error=consumed.message, error_code=consumed.error.value)

    payload = consumed.payload
    step = get_active_step(db, payload.entity_type, payload.entity_id)
    if step is None:
        logger.info(
            "Token redeemed for %s/%s but no step is pending", payload.entity_type, payload.entity_id
        )
        return RedemptionResult(
            valid=False,
            error="This request has already been processed",
            error_code="invalid_state",
            payload=payload,
        )

    try:
        decision = process_step(
            db,
            step_id=step.id,
            action=payload.action,
            actor_id=payload.approver_id,
            notes=notes,
            channel=channel,
            tenant_id=payload.tenant_id,
        )
    except WorkflowError as exc:
        logger.info(
            "Token redemption for %s/%s rejected: %s",
            payload.entity_type, payload.entity_id, exc.message,
        )
        return RedemptionResult(valid=False, error=exc.message, error_code=exc.error_code, payload=payload)

    return RedemptionResult(valid=True, payload=payload, decision=decision)
