from fastapi import APIRouter

from backoffice.api.v1 import actions, approval_policies, approvals, delegations, webhooks

api_router = APIRouter()

api_router.include_router(approval_policies.router, prefix="/approval-policies", tags=["approval-policies"])
api_router.include_router(approvals.router, prefix="/approvals", tags=["approvals"])
api_router.include_router(delegations.router, prefix="/delegations", tags=["delegations"])
api_router.include_router(actions.router, prefix="/actions", tags=["actions"])
api_router.include_router(webhooks.router, prefix="/webhooks", tags=["webhooks"])
