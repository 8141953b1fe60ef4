"""Approval workflow API endpoints.

In-app endpoints (JWT required):
  POST /approvals/workflows                          start a workflow for a request
  GET  /approvals                                    active steps the current user can decide
  GET  /approvals/{entity_type}/{entity_id}          chain + summary
  POST /approvals/steps/{step_id}/decision           approve / reject
  POST /approvals/{entity_type}/{entity_id}/bypass   admin bypass

The workflow services use a sync session (shared with Celery tasks), so these
handlers are plain ``def`` and run in the threadpool.
"""
import logging
import uuid
from dataclasses import asdict
from typing import Annotated

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from backoffice.core.deps import get_current_user, require_permission
from backoffice.core.exceptions import Forbidden
from backoffice.core.permissions import permissions_for
from backoffice.db.session import get_sync_session
from backoffice.models.user import User
from backoffice.schemas.approval import (
    ApprovalChainOut,
    ApprovalListResponse,
    ApprovalStepOut,
    BypassRequest,
    BypassResponse,
    ChainSummaryOut,
    StepDecisionRequest,
    StepDecisionResponse,
    WorkflowStartRequest,
    WorkflowStartResponse,
)
from backoffice.services import approval as approval_svc
from backoffice.services.approval_steps import get_chain, summarize_chain

logger = logging.getLogger(__name__)

router = APIRouter()


# ─── Start workflow ───

@router.post(
    "/workflows",
    response_model=WorkflowStartResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Match a policy and create the approval chain for a request",
)
def start_workflow(
    body: WorkflowStartRequest,
    db: Annotated[Session, Depends(get_sync_session)],
    current_user: Annotated[User, Depends(get_current_user)],
):
    requester_id = body.requester_id or current_user.id
    if str(requester_id) != str(current_user.id) and not permissions_for(current_user.role).is_admin:
        raise Forbidden("Only admins can start a workflow on behalf of another member.")

    result = approval_svc.start_workflow(
        db,
        tenant_id=current_user.tenant_id,
        entity_type=body.entity_type.value,
        entity_id=body.entity_id,
        metric=body.metric,
        requester_id=requester_id,
    )
    return WorkflowStartResponse(
        approval_required=result.approval_required,
        policy_id=result.policy.id if result.policy else None,
        steps=[ApprovalStepOut.model_validate(s) for s in result.steps],
    )


# ─── Pending steps for current user ───

@router.get(
    "",
    response_model=ApprovalListResponse,
    summary="List active approval steps the current user can decide",
)
def list_my_approvals(
    db: Annotated[Session, Depends(get_sync_session)],
    current_user: Annotated[User, Depends(get_current_user)],
):
    steps = approval_svc.pending_steps_for_user(db, current_user)
    items = [ApprovalStepOut.model_validate(s) for s in steps]
    return ApprovalListResponse(items=items, total=len(items))


# ─── Decision ───

@router.post(
    "/steps/{step_id}/decision",
    response_model=StepDecisionResponse,
    summary="Approve or reject the active step (in-app, JWT required)",
)
def decide_step(
    step_id: uuid.UUID,
    body: StepDecisionRequest,
    db: Annotated[Session, Depends(get_sync_session)],
    current_user: Annotated[User, Depends(get_current_user)],
):
    result = approval_svc.process_step(
        db,
        step_id=step_id,
        action=body.action,
        actor_id=current_user.id,
        notes=body.notes,
        channel="web",
        tenant_id=current_user.tenant_id,
    )
    return StepDecisionResponse(
        step=ApprovalStepOut.model_validate(result.step),
        request_status=result.request_status,
        is_chain_complete=result.is_chain_complete,
        next_step=ApprovalStepOut.model_validate(result.next_step) if result.next_step else None,
    )


# ─── Chain ───

@router.get(
    "/{entity_type}/{entity_id}",
    response_model=ApprovalChainOut,
    summary="Get the approval chain and its summary for a request",
)
def get_approval_chain(
    entity_type: str,
    entity_id: uuid.UUID,
    db: Annotated[Session, Depends(get_sync_session)],
    current_user: Annotated[User, Depends(get_current_user)],
):
    steps = [s for s in get_chain(db, entity_type, entity_id) if s.tenant_id == current_user.tenant_id]
    return ApprovalChainOut(
        entity_type=entity_type,
        entity_id=entity_id,
        steps=[ApprovalStepOut.model_validate(s) for s in steps],
        summary=ChainSummaryOut(**asdict(summarize_chain(steps))),
    )


# ─── Admin bypass ───

@router.post(
    "/{entity_type}/{entity_id}/bypass",
    response_model=BypassResponse,
    summary="Approve every pending step at once (ADMIN)",
)
def bypass_chain(
    entity_type: str,
    entity_id: uuid.UUID,
    body: BypassRequest,
    db: Annotated[Session, Depends(get_sync_session)],
    current_user: Annotated[User, Depends(require_permission("is_admin"))],
):
    result = approval_svc.admin_bypass(
        db,
        tenant_id=current_user.tenant_id,
        entity_type=entity_type,
        entity_id=entity_id,
        admin=current_user,
        notes=body.notes,
    )
    return BypassResponse(
        approved_count=result.approved_count,
        request_status=result.request_status,
        steps=[ApprovalStepOut.model_validate(s) for s in result.steps],
    )
