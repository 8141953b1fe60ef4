"""Celery task for remote action token housekeeping."""
import logging

from backoffice.workers.celery_app import celery_app

logger = logging.getLogger(__name__)


@celery_app.task(name="backoffice.workers.token_tasks.cleanup_action_tokens")
def cleanup_action_tokens() -> dict:
    """Delete expired tokens and tokens used more than the retention window ago.

    Runs daily at 02:00 UTC.
    """
    from backoffice.db.session import SyncSessionLocal
    from backoffice.services.action_tokens import cleanup_expired

    logger.info("cleanup_action_tokens: starting")
    try:
        with SyncSessionLocal() as db:
            deleted = cleanup_expired(db)
    except Exception as exc:
        logger.exception("cleanup_action_tokens: failed: %s", exc)
        raise
    logger.info("cleanup_action_tokens: deleted %d tokens", deleted)
    return {"deleted": deleted}
