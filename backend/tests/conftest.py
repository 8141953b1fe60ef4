"""Shared fixtures.

Service tests that need real SQL semantics (conditional updates, unique
constraints, two sessions racing) run against a throwaway SQLite file.
"""
import uuid
from dataclasses import dataclass
from datetime import timedelta
from decimal import Decimal

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from backoffice.core.limiter import limiter
from backoffice.core.permissions import ApproverRole, TeamRole
from backoffice.db.base import Base, utcnow
from backoffice.models.approval import ApprovalLevel, ApprovalModule, ApprovalPolicy
from backoffice.models.user import User


@pytest.fixture(autouse=True)
def _reset_rate_limits():
    limiter.reset()
    yield


@pytest.fixture
def session_factory(tmp_path):
    engine = create_engine(
        f"sqlite:///{tmp_path / 'workflow.db'}",
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(engine)
    factory = sessionmaker(bind=engine, expire_on_commit=False, autoflush=False)
    yield factory
    engine.dispose()


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


# ─── Team / policy factories ──────────────────────────────────────────────────

@dataclass
class Team:
    tenant_id: uuid.UUID
    owner: User
    admin: User
    manager: User
    hr: User
    finance: User
    employee: User
    deputy: User


def add_user(db, tenant_id, email, role, reporting_to=None, phone=None, **extra) -> User:
    user = User(
        tenant_id=tenant_id,
        email=email,
        name=email.split("@")[0].title(),
        role=role.value,
        reporting_to_id=reporting_to.id if reporting_to else None,
        whatsapp_phone=phone,
        is_active=True,
        **extra,
    )
    db.add(user)
    db.flush()
    return user


@pytest.fixture
def team(db) -> Team:
    tenant_id = uuid.uuid4()
    owner = add_user(db, tenant_id, "owner@example.com", TeamRole.OWNER)
    admin = add_user(db, tenant_id, "admin@example.com", TeamRole.ADMIN)
    manager = add_user(db, tenant_id, "manager@example.com", TeamRole.MANAGER, reporting_to=owner, phone="+974 5500 0001")
    hr = add_user(db, tenant_id, "hr@example.com", TeamRole.HR, reporting_to=owner)
    finance = add_user(db, tenant_id, "finance@example.com", TeamRole.FINANCE, reporting_to=owner)
    employee = add_user(db, tenant_id, "employee@example.com", TeamRole.EMPLOYEE, reporting_to=manager)
    deputy = add_user(db, tenant_id, "deputy@example.com", TeamRole.EMPLOYEE, reporting_to=owner)
    db.commit()
    return Team(tenant_id, owner, admin, manager, hr, finance, employee, deputy)


def add_policy(
    db,
    tenant_id,
    roles,
    module=ApprovalModule.LEAVE_REQUEST,
    name="Policy",
    priority=0,
    min_days=None,
    max_days=None,
    min_amount=None,
    max_amount=None,
    created_offset=timedelta(0),
) -> ApprovalPolicy:
    policy = ApprovalPolicy(
        tenant_id=tenant_id,
        name=name,
        module=module.value,
        is_active=True,
        priority=priority,
        min_days=min_days,
        max_days=max_days,
        min_amount=Decimal(str(min_amount)) if min_amount is not None else None,
        max_amount=Decimal(str(max_amount)) if max_amount is not None else None,
        created_at=utcnow() + created_offset,
        levels=[
            ApprovalLevel(level_order=i, approver_role=role.value)
            for i, role in enumerate(roles, start=1)
        ],
    )
    db.add(policy)
    db.commit()
    return policy


@pytest.fixture
def leave_policy(db, team) -> ApprovalPolicy:
    """Leave 5-30 days: MANAGER then HR_MANAGER."""
    return add_policy(
        db, team.tenant_id,
        [ApproverRole.MANAGER, ApproverRole.HR_MANAGER],
        name="Extended leave", min_days=5, max_days=30,
    )


# ─── API fixtures ─────────────────────────────────────────────────────────────

@pytest.fixture
def api(db):
    """The app with the workflow session bound to the test database."""
    from backoffice.db.session import get_sync_session
    from backoffice.main import app

    app.dependency_overrides[get_sync_session] = lambda: db
    yield app
    app.dependency_overrides.clear()


def login_as(app, user) -> None:
    from backoffice.core.deps import get_current_user

    app.dependency_overrides[get_current_user] = lambda: user
