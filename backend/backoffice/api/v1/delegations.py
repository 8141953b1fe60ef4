"""Approver delegation API endpoints."""
import uuid
from typing import Annotated

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from backoffice.core.deps import get_current_user
from backoffice.core.exceptions import Forbidden
from backoffice.core.permissions import permissions_for
from backoffice.db.session import get_sync_session
from backoffice.models.user import User
from backoffice.schemas.delegation import DelegationIn, DelegationListResponse, DelegationOut
from backoffice.services import delegation as delegation_svc

router = APIRouter()


@router.get(
    "",
    response_model=DelegationListResponse,
    summary="Delegations given and received by the current user",
)
def list_delegations(
    db: Annotated[Session, Depends(get_sync_session)],
    current_user: Annotated[User, Depends(get_current_user)],
):
    given, received = delegation_svc.list_delegations(db, current_user.id)
    return DelegationListResponse(
        given=[DelegationOut.model_validate(d) for d in given],
        received=[DelegationOut.model_validate(d) for d in received],
    )


@router.post(
    "",
    response_model=DelegationOut,
    status_code=status.HTTP_201_CREATED,
    summary="Delegate approval authority for a period",
)
def create_delegation(
    body: DelegationIn,
    db: Annotated[Session, Depends(get_sync_session)],
    current_user: Annotated[User, Depends(get_current_user)],
):
    # Approvers delegate for themselves; admins may act for anyone in the tenant
    delegator_id = body.delegator_id or current_user.id
    perms = permissions_for(current_user.role)
    if str(delegator_id) != str(current_user.id) and not perms.is_admin:
        raise Forbidden("You can only delegate your own approval authority.")

    delegation = delegation_svc.create_delegation(
        db,
        tenant_id=current_user.tenant_id,
        delegator_id=delegator_id,
        delegatee_id=body.delegatee_id,
        start_date=body.start_date,
        end_date=body.end_date,
        reason=body.reason,
        actor_id=current_user.id,
    )
    return DelegationOut.model_validate(delegation)


@router.delete(
    "/{delegation_id}",
    response_model=DelegationOut,
    summary="Deactivate a delegation early",
)
def deactivate_delegation(
    delegation_id: uuid.UUID,
    db: Annotated[Session, Depends(get_sync_session)],
    current_user: Annotated[User, Depends(get_current_user)],
):
    delegation = delegation_svc.deactivate_delegation(db, delegation_id, current_user)
    return DelegationOut.model_validate(delegation)
