from backoffice.models.user import User
from backoffice.models.approval import (
    ApprovalLevel,
    ApprovalModule,
    ApprovalPolicy,
    ApprovalStep,
    StepStatus,
)
from backoffice.models.delegation import ApproverDelegation
from backoffice.models.action_token import RemoteActionToken
from backoffice.models.audit import AuditLog

__all__ = [
    "User",
    "ApprovalPolicy", "ApprovalLevel", "ApprovalStep", "ApprovalModule", "StepStatus",
    "ApproverDelegation",
    "RemoteActionToken",
    "AuditLog",
]
