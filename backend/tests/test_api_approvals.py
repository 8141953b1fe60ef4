"""API tests for approvals, delegations and action links."""
import uuid
from datetime import timedelta

import pytest
from httpx import ASGITransport, AsyncClient

from backoffice.db.base import utcnow
from backoffice.services import action_tokens
from conftest import login_as


def _client(app):
    return AsyncClient(transport=ASGITransport(app=app), base_url="http://test")


async def _start(client, days=10, entity_id=None):
    return await client.post(
        "/api/v1/approvals/workflows",
        json={"entity_type": "LEAVE_REQUEST", "entity_id": str(entity_id or uuid.uuid4()), "metric": days},
    )


# ─── Workflows and decisions ──────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_start_workflow_and_view_chain(api, team, leave_policy):
    login_as(api, team.employee)
    entity_id = uuid.uuid4()
    async with _client(api) as client:
        started = await _start(client, entity_id=entity_id)
        chain = await client.get(f"/api/v1/approvals/LEAVE_REQUEST/{entity_id}")

    assert started.status_code == 201
    data = started.json()
    assert data["approval_required"] is True
    assert data["policy_id"] == str(leave_policy.id)
    assert [s["approver_role"] for s in data["steps"]] == ["MANAGER", "HR_MANAGER"]

    summary = chain.json()["summary"]
    assert summary == {"total_steps": 2, "completed_steps": 0, "current_level": 1, "status": "PENDING"}


@pytest.mark.asyncio
async def test_no_policy_means_no_approval(api, team, leave_policy):
    login_as(api, team.employee)
    async with _client(api) as client:
        response = await _start(client, days=1)
    assert response.status_code == 201
    assert response.json() == {"approval_required": False, "policy_id": None, "steps": []}


@pytest.mark.asyncio
async def test_start_for_someone_else_requires_admin(api, team, leave_policy):
    login_as(api, team.manager)
    async with _client(api) as client:
        response = await client.post(
            "/api/v1/approvals/workflows",
            json={
                "entity_type": "LEAVE_REQUEST",
                "entity_id": str(uuid.uuid4()),
                "metric": 10,
                "requester_id": str(team.employee.id),
            },
        )
    assert response.status_code == 403
    assert response.json()["error_code"] == "forbidden"


@pytest.mark.asyncio
async def test_unknown_entity_type_is_422(api, team):
    login_as(api, team.employee)
    async with _client(api) as client:
        response = await client.post(
            "/api/v1/approvals/workflows",
            json={"entity_type": "TRAVEL_REQUEST", "entity_id": str(uuid.uuid4()), "metric": 3},
        )
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_manager_inbox_and_decision(api, team, leave_policy):
    login_as(api, team.employee)
    async with _client(api) as client:
        await _start(client)

        login_as(api, team.manager)
        inbox = await client.get("/api/v1/approvals")
        step_id = inbox.json()["items"][0]["id"]
        decided = await client.post(
            f"/api/v1/approvals/steps/{step_id}/decision",
            json={"action": "approve", "notes": "OK"},
        )

    assert inbox.json()["total"] == 1
    assert decided.status_code == 200
    body = decided.json()
    assert body["request_status"] == "PENDING"
    assert body["step"]["status"] == "APPROVED"
    assert body["step"]["decision_channel"] == "web"
    assert body["next_step"]["approver_role"] == "HR_MANAGER"


@pytest.mark.asyncio
async def test_deciding_twice_is_conflict(api, team, leave_policy):
    login_as(api, team.employee)
    async with _client(api) as client:
        step_id = (await _start(client)).json()["steps"][0]["id"]
        login_as(api, team.manager)
        url = f"/api/v1/approvals/steps/{step_id}/decision"
        first = await client.post(url, json={"action": "reject"})
        second = await client.post(url, json={"action": "approve"})

    assert first.json()["request_status"] == "REJECTED"
    assert second.status_code == 409
    assert second.json()["error_code"] == "invalid_state"


@pytest.mark.asyncio
async def test_wrong_approver_is_forbidden(api, team, leave_policy):
    login_as(api, team.employee)
    async with _client(api) as client:
        step_id = (await _start(client)).json()["steps"][0]["id"]
        login_as(api, team.finance)
        response = await client.post(f"/api/v1/approvals/steps/{step_id}/decision", json={"action": "approve"})
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_decision_rejects_unknown_action(api, team):
    login_as(api, team.manager)
    async with _client(api) as client:
        response = await client.post(
            f"/api/v1/approvals/steps/{uuid.uuid4()}/decision", json={"action": "escalate"}
        )
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_unknown_step_is_404(api, team):
    login_as(api, team.manager)
    async with _client(api) as client:
        response = await client.post(
            f"/api/v1/approvals/steps/{uuid.uuid4()}/decision", json={"action": "approve"}
        )
    assert response.status_code == 404
    assert response.json()["error_code"] == "not_found"


@pytest.mark.asyncio
async def test_bypass_requires_admin_role(api, team, leave_policy):
    entity_id = uuid.uuid4()
    login_as(api, team.employee)
    async with _client(api) as client:
        await _start(client, entity_id=entity_id)
        url = f"/api/v1/approvals/LEAVE_REQUEST/{entity_id}/bypass"

        login_as(api, team.manager)
        denied = await client.post(url, json={})
        login_as(api, team.admin)
        allowed = await client.post(url, json={"notes": "CEO signed off"})

    assert denied.status_code == 403
    assert allowed.status_code == 200
    assert allowed.json()["approved_count"] == 2
    assert allowed.json()["request_status"] == "APPROVED"


# ─── Delegations ──────────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_delegation_lifecycle(api, team):
    login_as(api, team.manager)
    now = utcnow()
    async with _client(api) as client:
        created = await client.post(
            "/api/v1/delegations",
            json={
                "delegatee_id": str(team.deputy.id),
                "start_date": now.isoformat(),
                "end_date": (now + timedelta(days=7)).isoformat(),
                "reason": "Annual leave",
            },
        )
        listed = await client.get("/api/v1/delegations")
        removed = await client.delete(f"/api/v1/delegations/{created.json()['id']}")

    assert created.status_code == 201
    assert created.json()["is_active"] is True
    assert [d["id"] for d in listed.json()["given"]] == [created.json()["id"]]
    assert listed.json()["received"] == []
    assert removed.json()["is_active"] is False


@pytest.mark.asyncio
async def test_delegation_bad_window_is_422(api, team):
    login_as(api, team.manager)
    now = utcnow()
    async with _client(api) as client:
        response = await client.post(
            "/api/v1/delegations",
            json={
                "delegatee_id": str(team.deputy.id),
                "start_date": now.isoformat(),
                "end_date": (now - timedelta(days=1)).isoformat(),
            },
        )
    assert response.status_code == 422
    assert response.json()["errors"][0]["field"] == "end_date"


@pytest.mark.asyncio
async def test_non_admin_cannot_delegate_for_others(api, team):
    login_as(api, team.deputy)
    now = utcnow()
    async with _client(api) as client:
        response = await client.post(
            "/api/v1/delegations",
            json={
                "delegator_id": str(team.manager.id),
                "delegatee_id": str(team.deputy.id),
                "start_date": now.isoformat(),
                "end_date": (now + timedelta(days=1)).isoformat(),
            },
        )
    assert response.status_code == 403


# ─── Action links (no auth) ───────────────────────────────────────────────────

@pytest.fixture
def manager_tokens(db, team, leave_policy):
    from backoffice.services.approval import start_workflow

    steps = start_workflow(
        db, team.tenant_id, "LEAVE_REQUEST", uuid.uuid4(), 10, team.employee.id, notify=False
    ).steps
    pair = action_tokens.issue_pair(db, team.tenant_id, "LEAVE_REQUEST", steps[0].entity_id, team.manager.id)
    db.commit()
    return pair


@pytest.mark.asyncio
async def test_validate_then_redeem(api, manager_tokens):
    async with _client(api) as client:
        checked = await client.get("/api/v1/actions/validate", params={"token": manager_tokens.approve_token})
        redeemed = await client.post("/api/v1/actions/redeem", json={"token": manager_tokens.approve_token})
        again = await client.post("/api/v1/actions/redeem", json={"token": manager_tokens.approve_token})

    assert checked.json()["valid"] is True
    assert checked.json()["token"]["action"] == "approve"
    assert redeemed.json()["valid"] is True
    assert redeemed.json()["request_status"] == "PENDING"
    assert again.json() == {
        "valid": False,
        "error": "Token has already been used",
        "error_code": "ALREADY_USED",
        "token": None,
        "request_status": None,
    }


@pytest.mark.asyncio
async def test_email_link_renders_confirmation(api, manager_tokens):
    async with _client(api) as client:
        done = await client.get("/api/v1/actions/email", params={"token": manager_tokens.reject_token})
        stale = await client.get("/api/v1/actions/email", params={"token": manager_tokens.approve_token})

    assert done.status_code == 200
    assert "Request Rejected" in done.text
    assert stale.status_code == 400
    assert "Action Failed" in stale.text


@pytest.mark.asyncio
async def test_redeem_is_rate_limited(api):
    async with _client(api) as client:
        statuses = [
            (await client.get("/api/v1/actions/validate", params={"token": "x"})).status_code
            for _ in range(21)
        ]
    assert statuses[:20] == [200] * 20
    assert statuses[20] == 429


@pytest.mark.asyncio
async def test_rate_limit_ignores_forwarded_for(api):
    """Rotating X-Forwarded-For does not open a fresh bucket."""
    async with _client(api) as client:
        statuses = [
            (
                await client.post(
                    "/api/v1/actions/redeem",
                    json={"token": "x"},
                    headers={"X-Forwarded-For": f"10.0.0.{i}", "X-Real-IP": f"10.0.1.{i}"},
                )
            ).status_code
            for i in range(30)
        ]
    assert 429 not in statuses[:20]
    assert statuses[20:] == [429] * 10
