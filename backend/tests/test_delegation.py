"""Tests for approver delegation."""
import uuid
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import pytest
from sqlalchemy import select

from backoffice.core.exceptions import Forbidden, InvalidState, NotFound, ValidationError
from backoffice.db.base import utcnow
from backoffice.models.audit import AuditLog
from backoffice.services.approval_steps import materialize_steps
from backoffice.services.approvers import can_decide, effective_approver_ids
from backoffice.services.delegation import (
    create_delegation,
    deactivate_delegation,
    list_delegations,
    pick_delegation,
    resolve_approver,
)

T0 = datetime(2026, 3, 1, tzinfo=timezone.utc)
T1 = datetime(2026, 3, 8, tzinfo=timezone.utc)


def _make_delegation(start, end, is_active=True, created_at=None, delegatee=None):
    return SimpleNamespace(
        id=uuid.uuid4(),
        delegatee_id=delegatee or uuid.uuid4(),
        start_date=start,
        end_date=end,
        is_active=is_active,
        created_at=created_at or start,
    )


# ─── pick_delegation ──────────────────────────────────────────────────────────

def test_window_is_half_open():
    d = _make_delegation(T0, T1)
    assert pick_delegation([d], T0 - timedelta(seconds=1)) is None
    assert pick_delegation([d], T0) is d
    assert pick_delegation([d], T1 - timedelta(seconds=1)) is d
    assert pick_delegation([d], T1) is None


def test_inactive_delegation_ignored():
    assert pick_delegation([_make_delegation(T0, T1, is_active=False)], T0) is None


def test_overlapping_legacy_rows_latest_start_wins():
    early = _make_delegation(T0, T1)
    late = _make_delegation(T0 + timedelta(days=2), T1)
    assert pick_delegation([early, late], T0 + timedelta(days=3)) is late
    assert pick_delegation([early, late], T0 + timedelta(days=1)) is early


def test_same_start_most_recently_created_wins():
    older = _make_delegation(T0, T1, created_at=T0 - timedelta(days=2))
    newer = _make_delegation(T0, T1, created_at=T0 - timedelta(days=1))
    assert pick_delegation([older, newer], T0) is newer


# ─── Resolution against the database ──────────────────────────────────────────

def test_resolve_within_and_outside_window(db, team):
    create_delegation(db, team.tenant_id, team.manager.id, team.deputy.id, T0, T1)

    assert resolve_approver(db, team.manager.id, T0 - timedelta(hours=1)) == team.manager.id
    assert resolve_approver(db, team.manager.id, T0 + timedelta(days=1)) == team.deputy.id
    assert resolve_approver(db, team.manager.id, T1) == team.manager.id


def test_delegation_swaps_who_can_decide(db, team, leave_policy):
    create_delegation(db, team.tenant_id, team.manager.id, team.deputy.id, T0, T1)
    steps = materialize_steps(db, leave_policy, "LEAVE_REQUEST", uuid.uuid4(), team.employee.id)
    db.commit()
    manager_step = steps[0]
    during = T0 + timedelta(days=2)

    assert can_decide(db, manager_step, team.deputy.id, during)
    assert not can_decide(db, manager_step, team.manager.id, during)

    # After the window the nominal approver is back
    assert can_decide(db, manager_step, team.manager.id, T1)
    assert not can_decide(db, manager_step, team.deputy.id, T1)


def test_resolution_is_single_hop(db, team):
    create_delegation(db, team.tenant_id, team.manager.id, team.deputy.id, T0, T1)
    create_delegation(db, team.tenant_id, team.deputy.id, team.finance.id, T0, T1)

    assert resolve_approver(db, team.manager.id, T0) == team.deputy.id


def test_delegation_back_to_requester_is_dropped(db, team, leave_policy):
    # Manager hands authority to the employee who filed the request
    create_delegation(db, team.tenant_id, team.manager.id, team.employee.id, T0, T1)
    steps = materialize_steps(db, leave_policy, "LEAVE_REQUEST", uuid.uuid4(), team.employee.id)
    db.commit()

    assert effective_approver_ids(db, steps[0], T0) == []


def test_effective_approvers_deduplicated(db, team, leave_policy):
    # Owner and admin both hold HR access; both delegate to the deputy
    create_delegation(db, team.tenant_id, team.owner.id, team.deputy.id, T0, T1)
    create_delegation(db, team.tenant_id, team.admin.id, team.deputy.id, T0, T1)
    steps = materialize_steps(db, leave_policy, "LEAVE_REQUEST", uuid.uuid4(), team.employee.id)
    db.commit()

    ids = effective_approver_ids(db, steps[1], T0)
    assert ids.count(team.deputy.id) == 1
    assert team.hr.id in ids


# ─── Management ───────────────────────────────────────────────────────────────

def test_create_writes_audit_entry(db, team):
    delegation = create_delegation(
        db, team.tenant_id, team.manager.id, team.deputy.id, T0, T1, reason="Annual leave"
    )
    entry = db.execute(select(AuditLog).where(AuditLog.entity_id == delegation.id)).scalars().one()
    assert entry.action == "delegation.created"
    assert entry.notes == "Annual leave"


def test_end_must_follow_start(db, team):
    with pytest.raises(ValidationError):
        create_delegation(db, team.tenant_id, team.manager.id, team.deputy.id, T1, T0)
    with pytest.raises(ValidationError):
        create_delegation(db, team.tenant_id, team.manager.id, team.deputy.id, T0, T0)


def test_cannot_delegate_to_self(db, team):
    with pytest.raises(ValidationError):
        create_delegation(db, team.tenant_id, team.manager.id, team.manager.id, T0, T1)


def test_delegatee_must_be_active_member_of_tenant(db, team):
    team.deputy.is_active = False
    db.commit()
    with pytest.raises(ValidationError):
        create_delegation(db, team.tenant_id, team.manager.id, team.deputy.id, T0, T1)
    with pytest.raises(ValidationError):
        create_delegation(db, uuid.uuid4(), team.manager.id, team.hr.id, T0, T1)


def test_overlapping_delegation_rejected(db, team):
    create_delegation(db, team.tenant_id, team.manager.id, team.deputy.id, T0, T1)
    with pytest.raises(InvalidState):
        create_delegation(
            db, team.tenant_id, team.manager.id, team.hr.id,
            T0 + timedelta(days=3), T1 + timedelta(days=3),
        )
    # Back-to-back windows do not overlap
    create_delegation(db, team.tenant_id, team.manager.id, team.hr.id, T1, T1 + timedelta(days=3))


def test_deactivate_by_delegator(db, team):
    delegation = create_delegation(db, team.tenant_id, team.manager.id, team.deputy.id, T0, T1)
    deactivate_delegation(db, delegation.id, team.manager)

    assert delegation.is_active is False
    assert resolve_approver(db, team.manager.id, T0) == team.manager.id
    # Deactivating twice is harmless
    deactivate_delegation(db, delegation.id, team.manager)


def test_deactivate_by_admin(db, team):
    delegation = create_delegation(db, team.tenant_id, team.manager.id, team.deputy.id, T0, T1)
    deactivate_delegation(db, delegation.id, team.admin)
    assert delegation.is_active is False


def test_deactivate_by_stranger_forbidden(db, team):
    delegation = create_delegation(db, team.tenant_id, team.manager.id, team.deputy.id, T0, T1)
    with pytest.raises(Forbidden):
        deactivate_delegation(db, delegation.id, team.deputy)


def test_deactivate_other_tenant_not_found(db, team):
    delegation = create_delegation(db, team.tenant_id, team.manager.id, team.deputy.id, T0, T1)
    outsider = SimpleNamespace(id=uuid.uuid4(), tenant_id=uuid.uuid4(), role="ADMIN")
    with pytest.raises(NotFound):
        deactivate_delegation(db, delegation.id, outsider)


def test_list_given_and_received(db, team):
    start = utcnow()
    create_delegation(db, team.tenant_id, team.manager.id, team.deputy.id, start, start + timedelta(days=1))
    create_delegation(db, team.tenant_id, team.hr.id, team.manager.id, start, start + timedelta(days=1))

    given, received = list_delegations(db, team.manager.id)
    assert [d.delegatee_id for d in given] == [team.deputy.id]
    assert [d.delegator_id for d in received] == [team.hr.id]
