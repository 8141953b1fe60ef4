"""Level sequencing: turning a policy into an ordered chain of steps."""
import logging
import uuid
from dataclasses import dataclass
from typing import Iterable

from sqlalchemy import select
from sqlalchemy.orm import Session

from backoffice.models.approval import ApprovalPolicy, ApprovalStep, StepStatus

logger = logging.getLogger(__name__)


@dataclass
class ChainSummary:
    total_steps: int
    completed_steps: int
    current_level: int | None
    status: str  # NOT_STARTED, PENDING, APPROVED, REJECTED


def get_chain(db: Session, entity_type: str, entity_id: uuid.UUID) -> list[ApprovalStep]:
    return list(
        db.execute(
            select(ApprovalStep)
            .where(ApprovalStep.entity_type == entity_type, ApprovalStep.entity_id == entity_id)
            .order_by(ApprovalStep.level_order)
        ).scalars().all()
    )


def materialize_steps(
    db: Session,
    policy: ApprovalPolicy,
    entity_type: str,
    entity_id: uuid.UUID,
    requester_id: uuid.UUID,
) -> list[ApprovalStep]:
    """Create one PENDING step per policy level, ascending by level_order.

    Idempotent: an entity that already has a chain gets it back unchanged.
    Flushes but does not commit.
    """
    existing = get_chain(db, entity_type, entity_id)
    if existing:
        logger.warning(
            "Approval chain already exists for %s/%s (%d steps); not recreating",
            entity_type, entity_id, len(existing),
        )
        return existing

    steps = [
        ApprovalStep(
            tenant_id=policy.tenant_id,
            entity_type=entity_type,
            entity_id=entity_id,
            policy_id=policy.id,
            requester_id=requester_id,
            level_order=level.level_order,
            approver_role=level.approver_role,
            status=StepStatus.PENDING.value,
        )
        for level in sorted(policy.levels, key=lambda lvl: lvl.level_order)
    ]
    db.add_all(steps)
    db.flush()
    logger.info(
        "Created %d approval steps for %s/%s from policy %s",
        len(steps), entity_type, entity_id, policy.id,
    )
    return steps


def active_step(steps: Iterable[ApprovalStep]) -> ApprovalStep | None:
    """The earliest PENDING step. Derived, never stored."""
    pending = [s for s in steps if s.status == StepStatus.PENDING.value]
    if not pending:
        return None
    return min(pending, key=lambda s: s.level_order)


def get_active_step(db: Session, entity_type: str, entity_id: uuid.UUID) -> ApprovalStep | None:
    return active_step(get_chain(db, entity_type, entity_id))


def summarize_chain(steps: Iterable[ApprovalStep]) -> ChainSummary:
    steps = list(steps)
    if not steps:
        return ChainSummary(total_steps=0, completed_steps=0, current_level=None, status="NOT_STARTED")

    statuses = [s.status for s in steps]
    completed = statuses.count(StepStatus.APPROVED.value)
    current = active_step(steps)

    if StepStatus.REJECTED.value in statuses:
        status = "REJECTED"
    elif current is not None:
        status = "PENDING"
    else:
        status = "APPROVED"

    return ChainSummary(
        total_steps=len(steps),
        completed_steps=completed,
        current_level=current.level_order if current else None,
        status=status,
    )
