"""Email notification service. Console mock while MAIL_ENABLED=False.

When MAIL_ENABLED is False, email content is written to the log instead of
being sent. Set MAIL_ENABLED=True once a real transport is wired.
"""
import logging

from backoffice.core.config import settings

logger = logging.getLogger(__name__)

MODULE_LABELS = {
    "LEAVE_REQUEST": "Leave request",
    "PURCHASE_REQUEST": "Purchase request",
    "ASSET_REQUEST": "Asset request",
}


# ─── Approval request email ───

def send_approval_request_email(
    approver,
    step,
    approve_url: str,
    reject_url: str,
) -> None:
    """Send (or mock-log) an approval request email to one approver.

    Args:
        approver: User ORM object (email, name).
        step: ApprovalStep ORM object being decided.
        approve_url: Full URL for one-click approval via action token.
        reject_url: Full URL for one-click rejection via action token.
    """
    label = MODULE_LABELS.get(step.entity_type, step.entity_type)
    subject = f"Action Required: {label} {step.entity_id} (level {step.level_order})"

    if not settings.MAIL_ENABLED:
        logger.info(
            "\n"
            "=== APPROVAL REQUEST EMAIL ===\n"
            "To: %s\n"
            "Subject: %s\n"
            "Approve: %s\n"
            "Reject:  %s\n"
            "==============================",
            approver.email,
            subject,
            approve_url,
            reject_url,
        )
        return

    logger.warning(
        "MAIL_ENABLED=True but no mail transport is configured. "
        "Falling back to console log for %s.",
        approver.email,
    )
    logger.info(
        "APPROVAL EMAIL (unsent): to=%s subject=%s approve=%s reject=%s",
        approver.email, subject, approve_url, reject_url,
    )
