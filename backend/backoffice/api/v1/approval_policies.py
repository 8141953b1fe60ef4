"""Approval policy settings API (admins only)."""
import uuid
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.core.deps import require_permission
from backoffice.db.session import get_session
from backoffice.models.approval import ApprovalLevel, ApprovalPolicy
from backoffice.models.user import User
from backoffice.schemas.approval_policy import (
    ApprovalPolicyIn,
    ApprovalPolicyOut,
    ApprovalPolicyUpdate,
)
from backoffice.services import audit as audit_svc
from backoffice.services.approval_policy import validate_policy_config

router = APIRouter()


async def _get_policy(db: AsyncSession, policy_id: uuid.UUID, tenant_id: uuid.UUID) -> ApprovalPolicy:
    result = await db.execute(
        select(ApprovalPolicy).where(
            ApprovalPolicy.id == policy_id,
            ApprovalPolicy.tenant_id == tenant_id,
        )
    )
    policy = result.scalars().first()
    if policy is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Approval policy not found.")
    return policy


def _audit(db: AsyncSession, action: str, policy: ApprovalPolicy, user: User, after: dict | None = None):
    return db.run_sync(
        lambda sync_db: audit_svc.log(
            sync_db,
            action=action,
            entity_type="approval_policy",
            entity_id=policy.id,
            actor_id=user.id,
            tenant_id=user.tenant_id,
            after=after,
        )
    )


@router.get(
    "",
    response_model=list[ApprovalPolicyOut],
    summary="List approval policies of the tenant (ADMIN)",
)
async def list_policies(
    db: Annotated[AsyncSession, Depends(get_session)],
    current_user: Annotated[User, Depends(require_permission("is_admin"))],
    module: str | None = Query(None, description="Filter by module"),
    include_inactive: bool = Query(False),
):
    stmt = select(ApprovalPolicy).where(ApprovalPolicy.tenant_id == current_user.tenant_id)
    if module:
        stmt = stmt.where(ApprovalPolicy.module == module)
    if not include_inactive:
        stmt = stmt.where(ApprovalPolicy.is_active.is_(True))
    result = await db.execute(
        stmt.order_by(ApprovalPolicy.module, ApprovalPolicy.priority.desc(), ApprovalPolicy.created_at)
    )
    return [ApprovalPolicyOut.model_validate(p) for p in result.scalars().all()]


@router.post(
    "",
    response_model=ApprovalPolicyOut,
    status_code=status.HTTP_201_CREATED,
    summary="Create an approval policy with its levels (ADMIN)",
)
async def create_policy(
    body: ApprovalPolicyIn,
    db: Annotated[AsyncSession, Depends(get_session)],
    current_user: Annotated[User, Depends(require_permission("is_admin"))],
):
    validate_policy_config(
        body.module.value,
        min_amount=body.min_amount,
        max_amount=body.max_amount,
        min_days=body.min_days,
        max_days=body.max_days,
        levels=body.levels,
    )
    data = body.model_dump(exclude={"levels"})
    data["module"] = body.module.value
    policy = ApprovalPolicy(
        tenant_id=current_user.tenant_id,
        levels=[
            ApprovalLevel(level_order=lvl.level_order, approver_role=lvl.approver_role.value)
            for lvl in sorted(body.levels, key=lambda lvl: lvl.level_order)
        ],
        **data,
    )
    db.add(policy)
    await db.flush()
    await _audit(db, "approval_policy.created", policy, current_user, after=body.model_dump(mode="json"))
    await db.commit()
    return ApprovalPolicyOut.model_validate(policy)


@router.get(
    "/{policy_id}",
    response_model=ApprovalPolicyOut,
    summary="Get an approval policy (ADMIN)",
)
async def get_policy(
    policy_id: uuid.UUID,
    db: Annotated[AsyncSession, Depends(get_session)],
    current_user: Annotated[User, Depends(require_permission("is_admin"))],
):
    policy = await _get_policy(db, policy_id, current_user.tenant_id)
    return ApprovalPolicyOut.model_validate(policy)


@router.put(
    "/{policy_id}",
    response_model=ApprovalPolicyOut,
    summary="Update an approval policy; levels, when given, replace the chain (ADMIN)",
)
async def update_policy(
    policy_id: uuid.UUID,
    body: ApprovalPolicyUpdate,
    db: Annotated[AsyncSession, Depends(get_session)],
    current_user: Annotated[User, Depends(require_permission("is_admin"))],
):
    policy = await _get_policy(db, policy_id, current_user.tenant_id)
    changes = body.model_dump(exclude_unset=True, exclude={"levels"})

    merged = {
        f: changes.get(f, getattr(policy, f))
        for f in ("min_amount", "max_amount", "min_days", "max_days")
    }
    validate_policy_config(
        policy.module,
        levels=body.levels if body.levels is not None else policy.levels,
        **merged,
    )

    for field, value in changes.items():
        setattr(policy, field, value)

    if body.levels is not None:
        # Old rows go first so the (policy_id, level_order) constraint holds
        policy.levels.clear()
        await db.flush()
        policy.levels.extend(
            ApprovalLevel(level_order=lvl.level_order, approver_role=lvl.approver_role.value)
            for lvl in sorted(body.levels, key=lambda lvl: lvl.level_order)
        )

    await db.flush()
    await _audit(db, "approval_policy.updated", policy, current_user, after=body.model_dump(mode="json", exclude_unset=True))
    await db.commit()
    return ApprovalPolicyOut.model_validate(policy)


@router.delete(
    "/{policy_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Deactivate an approval policy (ADMIN)",
)
async def delete_policy(
    policy_id: uuid.UUID,
    db: Annotated[AsyncSession, Depends(get_session)],
    current_user: Annotated[User, Depends(require_permission("is_admin"))],
):
    # Running chains reference the policy, so it is deactivated, never deleted
    policy = await _get_policy(db, policy_id, current_user.tenant_id)
    policy.is_active = False
    await _audit(db, "approval_policy.deactivated", policy, current_user, after={"is_active": False})
    await db.commit()
