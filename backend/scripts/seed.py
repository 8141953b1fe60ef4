"""Seed script: creates a demo tenant's team and approval policies.

Idempotent: checks for existing records before inserting.
Run: python backend/scripts/seed.py
"""
import asyncio
import uuid
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from backoffice.core.config import settings
from backoffice.core.permissions import ApproverRole, TeamRole
from backoffice.models.approval import ApprovalLevel, ApprovalModule, ApprovalPolicy
from backoffice.models.user import User

DEMO_TENANT_ID = uuid.UUID("00000000-0000-4000-8000-000000000001")


# ─── Upsert helpers ───────────────────────────────────────────────────────────

async def _upsert_user(
    db: AsyncSession,
    email: str,
    name: str,
    role: TeamRole,
    reporting_to: User | None = None,
    whatsapp_phone: str | None = None,
) -> User:
    result = await db.execute(
        select(User).where(User.tenant_id == DEMO_TENANT_ID, User.email == email)
    )
    user = result.scalars().first()
    if user:
        print(f"  [skip] User {email}")
        return user
    user = User(
        tenant_id=DEMO_TENANT_ID,
        email=email,
        name=name,
        role=role.value,
        reporting_to_id=reporting_to.id if reporting_to else None,
        whatsapp_phone=whatsapp_phone,
        is_active=True,
    )
    db.add(user)
    await db.flush()
    print(f"  [new]  User {email} ({role.value})")
    return user


async def _upsert_policy(
    db: AsyncSession,
    name: str,
    module: ApprovalModule,
    roles: list[ApproverRole],
    priority: int = 0,
    min_amount: Decimal | None = None,
    max_amount: Decimal | None = None,
    min_days: int | None = None,
    max_days: int | None = None,
) -> ApprovalPolicy:
    result = await db.execute(
        select(ApprovalPolicy).where(
            ApprovalPolicy.tenant_id == DEMO_TENANT_ID, ApprovalPolicy.name == name
        )
    )
    policy = result.scalars().first()
    if policy:
        print(f"  [skip] Policy {name}")
        return policy
    policy = ApprovalPolicy(
        tenant_id=DEMO_TENANT_ID,
        name=name,
        module=module.value,
        is_active=True,
        priority=priority,
        min_amount=min_amount,
        max_amount=max_amount,
        min_days=min_days,
        max_days=max_days,
        levels=[
            ApprovalLevel(level_order=i, approver_role=role.value)
            for i, role in enumerate(roles, start=1)
        ],
    )
    db.add(policy)
    await db.flush()
    print(f"  [new]  Policy {name} ({' -> '.join(r.value for r in roles)})")
    return policy


# ─── Main ─────────────────────────────────────────────────────────────────────

async def seed():
    engine = create_async_engine(settings.DATABASE_URL)
    SessionLocal = async_sessionmaker(engine, expire_on_commit=False)

    async with SessionLocal() as db:
        print("\n── Team ──")
        owner = await _upsert_user(db, "owner@example.com", "Olivia Owner", TeamRole.OWNER)
        await _upsert_user(db, "admin@example.com", "Adam Admin", TeamRole.ADMIN)
        manager = await _upsert_user(
            db, "manager@example.com", "Maya Manager", TeamRole.MANAGER,
            reporting_to=owner, whatsapp_phone="+97455000001",
        )
        await _upsert_user(db, "hr@example.com", "Hana HR", TeamRole.HR, reporting_to=owner)
        await _upsert_user(db, "finance@example.com", "Farid Finance", TeamRole.FINANCE, reporting_to=owner)
        await _upsert_user(db, "employee@example.com", "Eli Employee", TeamRole.EMPLOYEE, reporting_to=manager)
        await db.commit()

        print("\n── Approval Policies ──")
        await _upsert_policy(
            db, "Short leave", ApprovalModule.LEAVE_REQUEST,
            [ApproverRole.MANAGER], min_days=0, max_days=4,
        )
        await _upsert_policy(
            db, "Extended leave", ApprovalModule.LEAVE_REQUEST,
            [ApproverRole.MANAGER, ApproverRole.HR_MANAGER], min_days=5, max_days=30,
        )
        await _upsert_policy(
            db, "Long leave", ApprovalModule.LEAVE_REQUEST,
            [ApproverRole.MANAGER, ApproverRole.HR_MANAGER, ApproverRole.DIRECTOR], min_days=31,
        )
        await _upsert_policy(
            db, "Standard purchase", ApprovalModule.PURCHASE_REQUEST,
            [ApproverRole.MANAGER, ApproverRole.FINANCE_MANAGER],
            min_amount=Decimal("0"), max_amount=Decimal("10000"),
        )
        await _upsert_policy(
            db, "Large purchase", ApprovalModule.PURCHASE_REQUEST,
            [ApproverRole.MANAGER, ApproverRole.FINANCE_MANAGER, ApproverRole.DIRECTOR],
            min_amount=Decimal("10000.01"),
        )
        await _upsert_policy(
            db, "Asset request", ApprovalModule.ASSET_REQUEST,
            [ApproverRole.MANAGER],
        )
        await db.commit()

    await engine.dispose()
    print("\n✓ Seed complete.")
    print(f"  Tenant: {DEMO_TENANT_ID}")
    print("  owner@ · admin@ · manager@ · hr@ · finance@ · employee@example.com")


if __name__ == "__main__":
    asyncio.run(seed())
