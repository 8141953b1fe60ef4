"""Approver directory: who may decide a step."""
import logging
import uuid
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.orm import Session

from backoffice.core.permissions import APPROVER_ROLE_FLAGS, ApproverRole, roles_with
from backoffice.models.approval import ApprovalStep
from backoffice.models.user import User
from backoffice.services.delegation import resolve_approver

logger = logging.getLogger(__name__)


def _active_members(tenant_id: uuid.UUID):
    return select(User).where(
        User.tenant_id == tenant_id,
        User.is_active.is_(True),
        User.deleted_at.is_(None),
    )


def nominal_approvers(db: Session, step: ApprovalStep) -> list[User]:
    """Team members whose role makes them approvers for the step, before delegation.

    MANAGER means the requester's direct manager; the other roles map to a
    permission flag. The requester is never included.
    """
    role = ApproverRole(step.approver_role)
    flag = APPROVER_ROLE_FLAGS[role]

    if flag is None:
        requester = db.execute(select(User).where(User.id == step.requester_id)).scalars().first()
        if requester is None or requester.reporting_to_id is None:
            logger.warning(
                "Requester %s has no manager; MANAGER step %s has no approver",
                step.requester_id, step.id,
            )
            return []
        members = db.execute(
            _active_members(step.tenant_id).where(User.id == requester.reporting_to_id)
        ).scalars().all()
    else:
        roles = [r.value for r in roles_with(flag)]
        members = db.execute(
            _active_members(step.tenant_id).where(User.role.in_(roles)).order_by(User.created_at)
        ).scalars().all()

    return [m for m in members if str(m.id) != str(step.requester_id)]


def effective_approver_ids(
    db: Session, step: ApprovalStep, at: datetime | None = None
) -> list[uuid.UUID]:
    """Nominal approvers after delegation, deduplicated, requester excluded."""
    result: list[uuid.UUID] = []
    for member in nominal_approvers(db, step):
        effective = resolve_approver(db, member.id, at)
        if str(effective) == str(step.requester_id):
            continue
        if all(str(effective) != str(existing) for existing in result):
            result.append(effective)
    return result


def effective_approvers(db: Session, step: ApprovalStep, at: datetime | None = None) -> list[User]:
    ids = effective_approver_ids(db, step, at)
    if not ids:
        return []
    users = db.execute(
        select(User).where(User.id.in_(ids), User.is_active.is_(True), User.deleted_at.is_(None))
    ).scalars().all()
    by_id = {str(u.id): u for u in users}
    return [by_id[str(i)] for i in ids if str(i) in by_id]


def can_decide(db: Session, step: ApprovalStep, user_id: uuid.UUID, at: datetime | None = None) -> bool:
    return any(str(user_id) == str(i) for i in effective_approver_ids(db, step, at))
