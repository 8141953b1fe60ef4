"""Tests for policy matching and policy config validation."""
import uuid
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest

from backoffice.core.exceptions import ConfigurationError
from backoffice.services.approval_policy import match_policy, select_policy, validate_policy_config

T0 = datetime(2026, 1, 1, tzinfo=timezone.utc)


def _make_policy(
    module="LEAVE_REQUEST",
    priority=0,
    min_days=None,
    max_days=None,
    min_amount=None,
    max_amount=None,
    is_active=True,
    created_at=T0,
    levels=1,
    name="p",
):
    return SimpleNamespace(
        id=uuid.uuid4(),
        name=name,
        module=module,
        priority=priority,
        min_days=min_days,
        max_days=max_days,
        min_amount=min_amount,
        max_amount=max_amount,
        is_active=is_active,
        created_at=created_at,
        levels=[SimpleNamespace(level_order=i + 1, approver_role="MANAGER") for i in range(levels)],
    )


# ─── select_policy ────────────────────────────────────────────────────────────

def test_leave_policy_matches_days_inclusive():
    policy = _make_policy(min_days=5, max_days=30)
    assert select_policy([policy], "LEAVE_REQUEST", 5) is policy
    assert select_policy([policy], "LEAVE_REQUEST", 30) is policy
    assert select_policy([policy], "LEAVE_REQUEST", 4) is None
    assert select_policy([policy], "LEAVE_REQUEST", 31) is None


def test_missing_bounds_are_unbounded():
    open_ended = _make_policy(min_days=31)
    assert select_policy([open_ended], "LEAVE_REQUEST", 365) is open_ended
    catch_all = _make_policy(module="PURCHASE_REQUEST")
    assert select_policy([catch_all], "PURCHASE_REQUEST", Decimal("0.01")) is catch_all


def test_purchase_policy_matches_amount():
    small = _make_policy(module="PURCHASE_REQUEST", min_amount=Decimal("0"), max_amount=Decimal("1000"))
    large = _make_policy(module="PURCHASE_REQUEST", min_amount=Decimal("1000.01"))
    assert select_policy([small, large], "PURCHASE_REQUEST", Decimal("999.99")) is small
    assert select_policy([small, large], "PURCHASE_REQUEST", 5000) is large


def test_highest_priority_wins():
    low = _make_policy(priority=1, min_days=1, max_days=30)
    high = _make_policy(priority=10, min_days=5, max_days=10)
    assert select_policy([low, high], "LEAVE_REQUEST", 7) is high
    # Outside the high-priority range the other one still applies
    assert select_policy([low, high], "LEAVE_REQUEST", 20) is low


def test_catch_all_is_not_forced_to_lowest_priority():
    catch_all = _make_policy(priority=50)
    specific = _make_policy(priority=5, min_days=1, max_days=3)
    assert select_policy([specific, catch_all], "LEAVE_REQUEST", 2) is catch_all


def test_priority_tie_goes_to_earliest_created():
    older = _make_policy(priority=3, created_at=T0)
    newer = _make_policy(priority=3, created_at=T0 + timedelta(days=1))
    assert select_policy([newer, older], "LEAVE_REQUEST", 2) is older


def test_full_tie_is_deterministic_by_id():
    a = _make_policy(priority=3)
    b = _make_policy(priority=3)
    expected = min([a, b], key=lambda p: str(p.id))
    assert select_policy([a, b], "LEAVE_REQUEST", 2) is expected
    assert select_policy([b, a], "LEAVE_REQUEST", 2) is expected


def test_inactive_and_other_module_policies_ignored():
    inactive = _make_policy(is_active=False)
    purchase = _make_policy(module="PURCHASE_REQUEST")
    assert select_policy([inactive, purchase], "LEAVE_REQUEST", 3) is None


def test_inconsistent_policy_skipped():
    # Leave policy configured with amount bounds
    broken = _make_policy(priority=100, min_amount=Decimal("1"))
    inverted = _make_policy(priority=90, min_days=10, max_days=5)
    no_levels = _make_policy(priority=80, levels=0)
    fine = _make_policy(priority=1)
    assert select_policy([broken, inverted, no_levels, fine], "LEAVE_REQUEST", 7) is fine


def test_never_returns_lower_priority_than_an_overlapping_match():
    policies = [
        _make_policy(priority=p, min_days=lo, max_days=hi)
        for p, lo, hi in [(1, 0, 100), (4, 10, 20), (7, 15, 40), (2, None, 12)]
    ]
    for metric in range(0, 60):
        chosen = select_policy(policies, "LEAVE_REQUEST", metric)
        matching = [
            p for p in policies
            if (p.min_days is None or metric >= p.min_days) and (p.max_days is None or metric <= p.max_days)
        ]
        if not matching:
            assert chosen is None
        else:
            assert chosen.priority == max(p.priority for p in matching)


def test_unknown_module_rejected():
    with pytest.raises(ValueError):
        select_policy([], "TRAVEL_REQUEST", 1)


# ─── match_policy ─────────────────────────────────────────────────────────────

def test_match_policy_queries_tenant_candidates():
    policy = _make_policy(min_days=5, max_days=30)
    db = MagicMock()
    db.execute.return_value.scalars.return_value.all.return_value = [policy]

    assert match_policy(db, uuid.uuid4(), "LEAVE_REQUEST", 10) is policy
    db.execute.assert_called_once()


def test_match_policy_returns_none_when_nothing_applies():
    db = MagicMock()
    db.execute.return_value.scalars.return_value.all.return_value = []
    assert match_policy(db, uuid.uuid4(), "ASSET_REQUEST", 10) is None


# ─── validate_policy_config ───────────────────────────────────────────────────

def _levels(*orders):
    return [{"level_order": o, "approver_role": "MANAGER"} for o in orders]


def test_valid_config_passes():
    validate_policy_config("LEAVE_REQUEST", min_days=5, max_days=30, levels=_levels(1, 2))
    validate_policy_config("PURCHASE_REQUEST", min_amount=0, max_amount=100, levels=_levels(1))


def test_wrong_range_fields_for_module():
    with pytest.raises(ConfigurationError) as exc_info:
        validate_policy_config("LEAVE_REQUEST", min_amount=10, levels=_levels(1))
    assert exc_info.value.errors[0]["field"] == "min_amount"

    with pytest.raises(ConfigurationError):
        validate_policy_config("ASSET_REQUEST", max_days=10, levels=_levels(1))


def test_min_greater_than_max_rejected():
    with pytest.raises(ConfigurationError):
        validate_policy_config("PURCHASE_REQUEST", min_amount=500, max_amount=100, levels=_levels(1))


def test_negative_bound_rejected():
    with pytest.raises(ConfigurationError):
        validate_policy_config("LEAVE_REQUEST", min_days=-1, levels=_levels(1))


@pytest.mark.parametrize(
    "levels",
    [[], _levels(1, 2, 3, 4, 5, 5), _levels(1, 1), _levels(0), _levels(6)],
    ids=["none", "too-many", "duplicate", "zero", "six"],
)
def test_bad_levels_rejected(levels):
    with pytest.raises(ConfigurationError):
        validate_policy_config("LEAVE_REQUEST", levels=levels)


def test_unknown_approver_role_rejected():
    with pytest.raises(ConfigurationError):
        validate_policy_config("LEAVE_REQUEST", levels=[{"level_order": 1, "approver_role": "CEO"}])


def test_unknown_module_is_configuration_error():
    with pytest.raises(ConfigurationError):
        validate_policy_config("TRAVEL_REQUEST", levels=_levels(1))
