"""Approver delegation: resolution and management.

Resolution is one hop only. If M delegates to D and D delegates to X, M's
approvals go to D, never to X.
"""
import logging
import uuid
from datetime import datetime
from typing import Iterable

from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from backoffice.core.exceptions import Forbidden, InvalidState, NotFound, ValidationError
from backoffice.core.permissions import permissions_for
from backoffice.db.base import as_utc, utcnow
from backoffice.models.delegation import ApproverDelegation
from backoffice.services import audit as audit_svc

logger = logging.getLogger(__name__)


def is_in_effect(delegation, at: datetime) -> bool:
    return (
        bool(delegation.is_active)
        and as_utc(delegation.start_date) <= at < as_utc(delegation.end_date)
    )


def pick_delegation(delegations: Iterable, at: datetime | None = None):
    """Return the delegation in effect at ``at``, or None.

    Overlaps cannot be created through the API, but legacy rows may overlap:
    the latest start wins, then the most recently created.
    """
    at = as_utc(at) or utcnow()
    in_effect = [d for d in delegations if is_in_effect(d, at)]
    if not in_effect:
        return None
    return max(
        in_effect,
        key=lambda d: (as_utc(d.start_date), as_utc(d.created_at) or as_utc(d.start_date)),
    )


def resolve_approver(
    db: Session,
    nominal_approver_id: uuid.UUID,
    at: datetime | None = None,
) -> uuid.UUID:
    """Map a nominal approver to whoever holds their authority at ``at``."""
    candidates = db.execute(
        select(ApproverDelegation).where(
            ApproverDelegation.delegator_id == nominal_approver_id,
            ApproverDelegation.is_active.is_(True),
        )
    ).scalars().all()
    delegation = pick_delegation(candidates, at)
    if delegation is None:
        return nominal_approver_id
    logger.debug(
        "Approver %s delegated to %s (delegation %s)",
        nominal_approver_id, delegation.delegatee_id, delegation.id,
    )
    return delegation.delegatee_id


# ─── Management ───

def create_delegation(
    db: Session,
    tenant_id: uuid.UUID,
    delegator_id: uuid.UUID,
    delegatee_id: uuid.UUID,
    start_date: datetime,
    end_date: datetime,
    reason: str | None = None,
    actor_id: uuid.UUID | None = None,
) -> ApproverDelegation:
    """Create an active delegation after checking window, parties and overlap."""
    from backoffice.models.user import User

    start_date, end_date = as_utc(start_date), as_utc(end_date)
    if end_date <= start_date:
        raise ValidationError("end_date must be after start_date.", field="end_date")
    if str(delegator_id) == str(delegatee_id):
        raise ValidationError("Cannot delegate approval authority to yourself.", field="delegatee_id")

    delegatee = db.execute(
        select(User).where(
            User.id == delegatee_id,
            User.tenant_id == tenant_id,
            User.is_active.is_(True),
            User.deleted_at.is_(None),
        )
    ).scalars().first()
    if delegatee is None:
        raise ValidationError("Delegatee not found or inactive.", field="delegatee_id")

    overlapping = db.execute(
        select(ApproverDelegation).where(
            ApproverDelegation.delegator_id == delegator_id,
            ApproverDelegation.is_active.is_(True),
            ApproverDelegation.start_date < end_date,
            ApproverDelegation.end_date > start_date,
        )
    ).scalars().first()
    if overlapping is not None:
        raise InvalidState(
            f"An active delegation ({overlapping.id}) already covers part of this period."
        )

    delegation = ApproverDelegation(
        tenant_id=tenant_id,
        delegator_id=delegator_id,
        delegatee_id=delegatee_id,
        start_date=start_date,
        end_date=end_date,
        is_active=True,
        reason=reason,
    )
    db.add(delegation)
    db.flush()

    audit_svc.log(
        db=db,
        action="delegation.created",
        entity_type="approver_delegation",
        entity_id=delegation.id,
        actor_id=actor_id or delegator_id,
        tenant_id=tenant_id,
        after={
            "delegator_id": str(delegator_id),
            "delegatee_id": str(delegatee_id),
            "start_date": start_date.isoformat(),
            "end_date": end_date.isoformat(),
        },
        notes=reason,
    )
    db.commit()
    logger.info(
        "Delegation %s created: %s -> %s [%s, %s)",
        delegation.id, delegator_id, delegatee_id, start_date, end_date,
    )
    return delegation


def deactivate_delegation(db: Session, delegation_id: uuid.UUID, actor) -> ApproverDelegation:
    """End a delegation early. Allowed for the delegator and for admins."""
    delegation = db.execute(
        select(ApproverDelegation).where(
            ApproverDelegation.id == delegation_id,
            ApproverDelegation.tenant_id == actor.tenant_id,
        )
    ).scalars().first()
    if delegation is None:
        raise NotFound(f"Delegation {delegation_id} not found.")
    if str(delegation.delegator_id) != str(actor.id) and not permissions_for(actor.role).is_admin:
        raise Forbidden("Only the delegator or an admin can deactivate this delegation.")
    if not delegation.is_active:
        return delegation

    delegation.is_active = False
    db.flush()
    audit_svc.log(
        db=db,
        action="delegation.deactivated",
        entity_type="approver_delegation",
        entity_id=delegation.id,
        actor_id=actor.id,
        tenant_id=delegation.tenant_id,
        before={"is_active": True},
        after={"is_active": False},
    )
    db.commit()
    return delegation


def list_delegations(
    db: Session, user_id: uuid.UUID
) -> tuple[list[ApproverDelegation], list[ApproverDelegation]]:
    """Return (given, received) delegations for a user, newest first."""
    rows = db.execute(
        select(ApproverDelegation)
        .where(
            or_(
                ApproverDelegation.delegator_id == user_id,
                ApproverDelegation.delegatee_id == user_id,
            )
        )
        .order_by(ApproverDelegation.start_date.desc())
    ).scalars().all()
    given = [d for d in rows if str(d.delegator_id) == str(user_id)]
    received = [d for d in rows if str(d.delegatee_id) == str(user_id)]
    return given, received
