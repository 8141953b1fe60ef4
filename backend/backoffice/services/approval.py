"""Approval workflow lifecycle service.

All functions accept a sync SQLAlchemy Session, so they are safe to call from
Celery tasks (which cannot use async sessions) as well as from the API.

Every state change of a step goes through a conditional UPDATE on
``status = 'PENDING'``; the affected row count decides which of two
concurrent deciders wins.
"""
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from backoffice.core.config import settings
from backoffice.core.exceptions import Forbidden, InvalidState, NotFound, ValidationError
from backoffice.core.permissions import permissions_for
from backoffice.db.base import utcnow
from backoffice.models.approval import ApprovalModule, ApprovalPolicy, ApprovalStep, StepStatus
from backoffice.models.user import User
from backoffice.services import action_tokens
from backoffice.services import audit as audit_svc
from backoffice.services.approval_policy import match_policy
from backoffice.services.approval_steps import active_step, get_chain, materialize_steps
from backoffice.services.approvers import can_decide

logger = logging.getLogger(__name__)

ACTIONS = ("approve", "reject")


@dataclass
class StepDecisionResult:
    step: ApprovalStep
    request_status: str  # PENDING, APPROVED, REJECTED
    is_chain_complete: bool
    next_step: ApprovalStep | None = None


@dataclass
class WorkflowStartResult:
    approval_required: bool
    policy: ApprovalPolicy | None = None
    steps: list[ApprovalStep] = field(default_factory=list)


@dataclass
class BypassResult:
    steps: list[ApprovalStep]
    approved_count: int
    request_status: str = "APPROVED"


def _snapshot(step: ApprovalStep) -> dict[str, Any]:
    return {
        "step_id": str(step.id),
        "level_order": step.level_order,
        "approver_role": step.approver_role,
        "status": step.status,
    }


def _validate_decision(action: str, notes: str | None) -> str:
    action = (action or "").lower()
    if action not in ACTIONS:
        raise ValidationError(f"Invalid action '{action}'. Must be 'approve' or 'reject'.", field="action")
    if notes is not None and len(notes) > settings.DECISION_NOTES_MAX_LENGTH:
        raise ValidationError(
            f"Notes must be at most {settings.DECISION_NOTES_MAX_LENGTH} characters.", field="notes"
        )
    return action


# ─── Start workflow ───

def start_workflow(
    db: Session,
    tenant_id: uuid.UUID,
    entity_type: str,
    entity_id: uuid.UUID,
    metric: Any,
    requester_id: uuid.UUID,
    notify: bool = True,
) -> WorkflowStartResult:
    """Match a policy, materialize its steps and notify the first level.

    A request with an existing chain gets that chain back; nobody is
    re-notified.
    """
    try:
        entity_type = ApprovalModule(entity_type).value
    except ValueError:
        raise ValidationError(f"Unknown entity type '{entity_type}'.", field="entity_type")

    existing = get_chain(db, entity_type, entity_id)
    if existing:
        if existing[0].tenant_id != tenant_id:
            raise NotFound(f"{entity_type} {entity_id} not found.")
        policy = db.execute(
            select(ApprovalPolicy).where(ApprovalPolicy.id == existing[0].policy_id)
        ).scalars().first()
        logger.info("Workflow already started for %s/%s", entity_type, entity_id)
        return WorkflowStartResult(approval_required=True, policy=policy, steps=existing)

    requester = db.execute(
        select(User).where(
            User.id == requester_id,
            User.tenant_id == tenant_id,
            User.is_active.is_(True),
            User.deleted_at.is_(None),
        )
    ).scalars().first()
    if requester is None:
        raise ValidationError("Requester is not an active member of this tenant.", field="requester_id")

    policy = match_policy(db, tenant_id, entity_type, metric)
    if policy is None:
        return WorkflowStartResult(approval_required=False)

    steps = materialize_steps(db, policy, entity_type, entity_id, requester_id)
    audit_svc.log(
        db=db,
        action="approval.workflow_started",
        entity_type=entity_type,
        entity_id=entity_id,
        actor_id=requester_id,
        tenant_id=tenant_id,
        after={
            "policy_id": str(policy.id),
            "metric": str(metric),
            "levels": [s.approver_role for s in steps],
        },
    )
    db.commit()

    first = active_step(steps)
    if notify and first is not None:
        from backoffice.services.notifications import notify_step_approvers

        notify_step_approvers(db, first)

    return WorkflowStartResult(approval_required=True, policy=policy, steps=steps)


# ─── Process step decision ───

def process_step(
    db: Session,
    step_id: uuid.UUID,
    action: str,
    actor_id: uuid.UUID,
    notes: str | None = None,
    channel: str = "web",
    tenant_id: uuid.UUID | None = None,
    notify: bool = True,
) -> StepDecisionResult:
    """Apply an approve or reject decision to the active step of a chain.

    Raises:
        ValidationError: Unknown action or notes too long.
        NotFound: No such step (or it belongs to another tenant).
        InvalidState: Step already decided, not the active step, or the
            decision lost a race with a concurrent one.
        Forbidden: Actor is not an effective approver for the step.
    """
    action = _validate_decision(action, notes)

    step = db.execute(select(ApprovalStep).where(ApprovalStep.id == step_id)).scalars().first()
    if step is None or (tenant_id is not None and step.tenant_id != tenant_id):
        raise NotFound(f"Approval step {step_id} not found.")
    if step.status != StepStatus.PENDING.value:
        raise InvalidState(f"Approval step {step_id} is already decided (status={step.status}).")

    chain = get_chain(db, step.entity_type, step.entity_id)
    current = active_step(chain)
    if current is None or current.id != step.id:
        raise InvalidState(
            f"Approval step {step_id} is not the active step; level "
            f"{current.level_order if current else '-'} must be decided first."
        )

    now = utcnow()
    if not can_decide(db, step, actor_id, now):
        raise Forbidden("You are not an approver for this step.")

    before = [_snapshot(s) for s in chain]
    new_status = StepStatus.APPROVED.value if action == "approve" else StepStatus.REJECTED.value

    result = db.execute(
        update(ApprovalStep)
        .where(ApprovalStep.id == step.id, ApprovalStep.status == StepStatus.PENDING.value)
        .values(
            status=new_status,
            resolved_by_id=actor_id,
            resolved_at=now,
            decision_channel=channel,
            notes=notes,
        )
    )
    if result.rowcount == 0:
        db.rollback()
        raise InvalidState(f"Approval step {step_id} was decided concurrently.")

    others = [s for s in chain if s.id != step.id and s.status == StepStatus.PENDING.value]
    next_step = None

    if action == "reject":
        if others:
            db.execute(
                update(ApprovalStep)
                .where(
                    ApprovalStep.entity_type == step.entity_type,
                    ApprovalStep.entity_id == step.entity_id,
                    ApprovalStep.status == StepStatus.PENDING.value,
                    ApprovalStep.id != step.id,
                )
                .values(status=StepStatus.SKIPPED.value, resolved_at=now)
            )
        request_status = "REJECTED"
    else:
        next_step = active_step(others)
        request_status = "PENDING" if next_step is not None else "APPROVED"

    db.refresh(step)
    for other in others:
        db.refresh(other)

    action_tokens.invalidate_for_entity(db, step.entity_type, step.entity_id)

    audit_svc.log(
        db=db,
        action=f"approval.step_{new_status.lower()}",
        entity_type=step.entity_type,
        entity_id=step.entity_id,
        actor_id=actor_id,
        tenant_id=step.tenant_id,
        channel=channel,
        before={"steps": before},
        after={"steps": [_snapshot(s) for s in chain], "request_status": request_status},
        notes=notes,
    )
    db.commit()

    logger.info(
        "Step %s (%s/%s level %s) %s by %s via %s; request is %s",
        step.id, step.entity_type, step.entity_id, step.level_order,
        new_status, actor_id, channel, request_status,
    )

    if notify and next_step is not None:
        from backoffice.services.notifications import notify_step_approvers

        notify_step_approvers(db, next_step)

    return StepDecisionResult(
        step=step,
        request_status=request_status,
        is_chain_complete=request_status != "PENDING",
        next_step=next_step,
    )


# ─── Admin bypass ───

def admin_bypass(
    db: Session,
    tenant_id: uuid.UUID,
    entity_type: str,
    entity_id: uuid.UUID,
    admin,
    notes: str | None = None,
) -> BypassResult:
    """Approve every PENDING step of a chain at once. Admins only."""
    if not permissions_for(admin.role).is_admin:
        raise Forbidden("Only admins can bypass an approval chain.")
    _validate_decision("approve", notes)

    chain = [s for s in get_chain(db, entity_type, entity_id) if s.tenant_id == tenant_id]
    if not chain:
        raise NotFound(f"No approval chain for {entity_type} {entity_id}.")
    if active_step(chain) is None:
        raise InvalidState(f"Approval chain for {entity_type} {entity_id} is already complete.")

    before = [_snapshot(s) for s in chain]
    now = utcnow()
    result = db.execute(
        update(ApprovalStep)
        .where(
            ApprovalStep.entity_type == entity_type,
            ApprovalStep.entity_id == entity_id,
            ApprovalStep.status == StepStatus.PENDING.value,
        )
        .values(
            status=StepStatus.APPROVED.value,
            resolved_by_id=admin.id,
            resolved_at=now,
            decision_channel="bypass",
            notes=notes or "Approved by admin bypass",
        )
    )
    if result.rowcount == 0:
        db.rollback()
        raise InvalidState(f"Approval chain for {entity_type} {entity_id} was decided concurrently.")

    for s in chain:
        db.refresh(s)
    action_tokens.invalidate_for_entity(db, entity_type, entity_id)

    audit_svc.log(
        db=db,
        action="approval.admin_bypass",
        entity_type=entity_type,
        entity_id=entity_id,
        actor_id=admin.id,
        actor_email=getattr(admin, "email", None),
        tenant_id=tenant_id,
        channel="bypass",
        before={"steps": before},
        after={"steps": [_snapshot(s) for s in chain], "request_status": "APPROVED"},
        notes=notes,
    )
    db.commit()
    logger.info("Admin %s bypassed %d steps of %s/%s", admin.id, result.rowcount, entity_type, entity_id)
    return BypassResult(steps=chain, approved_count=result.rowcount)


# ─── Queries ───

def pending_steps_for_user(db: Session, user, at: datetime | None = None) -> list[ApprovalStep]:
    """Active steps in the user's tenant that the user may decide right now."""
    pending = db.execute(
        select(ApprovalStep)
        .where(ApprovalStep.tenant_id == user.tenant_id, ApprovalStep.status == StepStatus.PENDING.value)
        .order_by(ApprovalStep.created_at, ApprovalStep.level_order)
    ).scalars().all()

    chains: dict[tuple[str, str], list[ApprovalStep]] = {}
    for s in pending:
        chains.setdefault((s.entity_type, str(s.entity_id)), []).append(s)

    at = at or utcnow()
    result = []
    for steps in chains.values():
        current = active_step(steps)
        if current is not None and can_decide(db, current, user.id, at):
            result.append(current)
    return result
