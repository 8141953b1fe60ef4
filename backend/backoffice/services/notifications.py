"""Approver notifications for the active approval step.

Fire-and-forget: failures are logged and never undo or fail the approval
transition that triggered them.
"""
import logging

from sqlalchemy import select
from sqlalchemy.orm import Session

from backoffice.core.config import settings
from backoffice.models.approval import ApprovalStep
from backoffice.models.user import User
from backoffice.services import action_tokens
from backoffice.services import email as email_svc
from backoffice.services.approvers import effective_approvers
from backoffice.services.whatsapp import WhatsAppClient

logger = logging.getLogger(__name__)


def action_url(token: str) -> str:
    base_url = settings.APP_BASE_URL.rstrip("/")
    return f"{base_url}/api/v1/actions/email?token={token}"


def _template_params(db: Session, step: ApprovalStep) -> list[str]:
    requester = db.execute(select(User).where(User.id == step.requester_id)).scalars().first()
    requester_name = requester.name if requester else "Employee"
    label = email_svc.MODULE_LABELS.get(step.entity_type, step.entity_type)
    return [requester_name, label, f"Level {step.level_order} ({step.approver_role})"]


def notify_step_approvers(
    db: Session,
    step: ApprovalStep,
    client: WhatsAppClient | None = None,
) -> int:
    """Send a token pair to every effective approver of ``step``.

    Returns the number of approvers notified on at least one channel.
    """
    try:
        approvers = effective_approvers(db, step)
    except Exception:
        logger.exception("Could not resolve approvers for step %s", step.id)
        return 0

    if not approvers:
        logger.warning(
            "No approvers for %s/%s level %s (%s)",
            step.entity_type, step.entity_id, step.level_order, step.approver_role,
        )
        return 0

    try:
        client = client or WhatsAppClient()
        params = _template_params(db, step)
    except Exception:
        logger.exception("Could not prepare notifications for step %s", step.id)
        return 0

    notified = 0

    for approver in approvers:
        try:
            pair = action_tokens.issue_pair(
                db,
                tenant_id=step.tenant_id,
                entity_type=step.entity_type,
                entity_id=step.entity_id,
                approver_id=approver.id,
            )
            db.commit()
        except Exception:
            db.rollback()
            logger.exception("Could not issue action tokens for approver %s", approver.id)
            continue

        sent = False
        if approver.whatsapp_phone:
            try:
                client.send_template(approver.whatsapp_phone, params, pair.approve_token, pair.reject_token)
                sent = True
            except Exception:
                logger.exception("WhatsApp notification to approver %s failed", approver.id)

        try:
            email_svc.send_approval_request_email(
                approver=approver,
                step=step,
                approve_url=action_url(pair.approve_token),
                reject_url=action_url(pair.reject_token),
            )
            sent = True
        except Exception:
            logger.exception("Email notification to approver %s failed", approver.id)

        if sent:
            notified += 1

    logger.info(
        "Notified %d/%d approvers for %s/%s level %s",
        notified, len(approvers), step.entity_type, step.entity_id, step.level_order,
    )
    return notified
