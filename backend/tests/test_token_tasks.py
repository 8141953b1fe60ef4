"""Tests for the action token cleanup task."""
import uuid
from datetime import timedelta

import pytest
from sqlalchemy import select

from backoffice.models.action_token import RemoteActionToken
from backoffice.services import action_tokens
from backoffice.workers.celery_app import celery_app
from backoffice.workers.token_tasks import cleanup_action_tokens


def test_cleanup_task_is_scheduled_daily_at_two():
    entry = celery_app.conf.beat_schedule["cleanup-action-tokens-daily"]
    assert entry["task"] == cleanup_action_tokens.name
    assert entry["schedule"].hour == {2}
    assert entry["schedule"].minute == {0}


def test_cleanup_deletes_expired(db, session_factory, team, monkeypatch):
    monkeypatch.setattr("backoffice.db.session.SyncSessionLocal", session_factory)
    entity_id = uuid.uuid4()
    live = action_tokens.issue(db, team.tenant_id, "LEAVE_REQUEST", entity_id, "approve", team.manager.id)
    action_tokens.issue(
        db, team.tenant_id, "LEAVE_REQUEST", entity_id, "reject", team.manager.id, ttl=timedelta(seconds=-5)
    )
    db.commit()

    assert cleanup_action_tokens() == {"deleted": 1}
    remaining = db.execute(select(RemoteActionToken.token_id)).scalars().all()
    assert remaining == [live.split(":")[0]]


def test_cleanup_failure_propagates(monkeypatch):
    def broken():
        raise RuntimeError("database unavailable")

    monkeypatch.setattr("backoffice.db.session.SyncSessionLocal", broken)
    with pytest.raises(RuntimeError):
        cleanup_action_tokens()
