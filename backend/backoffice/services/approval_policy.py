"""Policy matching: which approval chain applies to a request.

``select_policy`` is pure and works on any iterable of policy-like objects;
``match_policy`` loads the tenant's candidates and delegates to it.
"""
import logging
import uuid
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Iterable

from sqlalchemy import select
from sqlalchemy.orm import Session

from backoffice.core.config import settings
from backoffice.core.exceptions import ConfigurationError
from backoffice.core.permissions import ApproverRole
from backoffice.db.base import as_utc
from backoffice.models.approval import ApprovalModule, ApprovalPolicy

logger = logging.getLogger(__name__)

_DAY_FIELDS = ("min_days", "max_days")
_AMOUNT_FIELDS = ("min_amount", "max_amount")
_FAR_FUTURE = datetime.max.replace(tzinfo=timezone.utc)


def range_fields(module: str) -> tuple[str, str]:
    """Leave requests are matched on days, everything else on amount."""
    return _DAY_FIELDS if module == ApprovalModule.LEAVE_REQUEST.value else _AMOUNT_FIELDS


def _other_fields(module: str) -> tuple[str, str]:
    return _AMOUNT_FIELDS if module == ApprovalModule.LEAVE_REQUEST.value else _DAY_FIELDS


def _to_decimal(value: Any) -> Decimal | None:
    if value is None:
        return None
    try:
        return Decimal(str(value))
    except InvalidOperation:
        return None


def _is_consistent(policy) -> bool:
    """Range fields match the module and the bounds are ordered."""
    other_lo, other_hi = (getattr(policy, f) for f in _other_fields(policy.module))
    if other_lo is not None or other_hi is not None:
        return False
    lo, hi = (_to_decimal(getattr(policy, f)) for f in range_fields(policy.module))
    if lo is not None and hi is not None and lo > hi:
        return False
    return bool(policy.levels)


def _in_range(metric: Decimal, lo: Any, hi: Any) -> bool:
    # Missing bound = unbounded; both ends inclusive
    lo_d, hi_d = _to_decimal(lo), _to_decimal(hi)
    if lo_d is not None and metric < lo_d:
        return False
    if hi_d is not None and metric > hi_d:
        return False
    return True


def _tie_break_key(policy) -> tuple:
    created = as_utc(policy.created_at) or _FAR_FUTURE
    return (-(policy.priority or 0), created, str(policy.id))


def select_policy(policies: Iterable, module: str, metric: Any):
    """Pick the best-matching active policy for ``module`` and ``metric``.

    Highest priority wins; ties go to the earliest created policy, then the
    lowest id. Returns None when nothing matches (no approval required).
    """
    module = ApprovalModule(module).value
    value = _to_decimal(metric)
    if value is None:
        raise ConfigurationError(f"Cannot match a policy on metric {metric!r}.")

    matched = []
    for policy in policies:
        if not policy.is_active or policy.module != module:
            continue
        if not _is_consistent(policy):
            logger.warning(
                "Skipping inconsistent approval policy %s (%s) for module %s",
                policy.id, policy.name, policy.module,
            )
            continue
        lo, hi = (getattr(policy, f) for f in range_fields(module))
        if _in_range(value, lo, hi):
            matched.append(policy)

    if not matched:
        return None
    return min(matched, key=_tie_break_key)


def match_policy(
    db: Session,
    tenant_id: uuid.UUID,
    module: str,
    metric: Any,
) -> ApprovalPolicy | None:
    """Find the applicable active policy of a tenant, or None."""
    module = ApprovalModule(module).value
    candidates = db.execute(
        select(ApprovalPolicy).where(
            ApprovalPolicy.tenant_id == tenant_id,
            ApprovalPolicy.module == module,
            ApprovalPolicy.is_active.is_(True),
        )
    ).scalars().all()

    policy = select_policy(candidates, module, metric)
    if policy is None:
        logger.info("No approval policy for tenant=%s module=%s metric=%s", tenant_id, module, metric)
    else:
        logger.info(
            "Matched approval policy %s (%s, priority=%s) for tenant=%s module=%s metric=%s",
            policy.id, policy.name, policy.priority, tenant_id, module, metric,
        )
    return policy


# ─── Config validation ───

def _level_attr(level: Any, name: str) -> Any:
    if isinstance(level, dict):
        return level.get(name)
    return getattr(level, name, None)


def validate_policy_config(
    module: str,
    min_amount: Any = None,
    max_amount: Any = None,
    min_days: Any = None,
    max_days: Any = None,
    levels: Iterable | None = None,
) -> None:
    """Raise ConfigurationError listing every problem with a policy definition."""
    errors: list[dict[str, str]] = []

    try:
        module = ApprovalModule(module).value
    except ValueError:
        raise ConfigurationError(
            f"Unknown module '{module}'.",
            errors=[{"field": "module", "message": f"must be one of {[m.value for m in ApprovalModule]}"}],
        )

    values = {
        "min_amount": min_amount,
        "max_amount": max_amount,
        "min_days": min_days,
        "max_days": max_days,
    }
    for field in _other_fields(module):
        if values[field] is not None:
            errors.append({"field": field, "message": f"not allowed for {module} policies"})

    lo_field, hi_field = range_fields(module)
    lo, hi = _to_decimal(values[lo_field]), _to_decimal(values[hi_field])
    for field, value in ((lo_field, lo), (hi_field, hi)):
        if value is not None and value < 0:
            errors.append({"field": field, "message": "must not be negative"})
    if lo is not None and hi is not None and lo > hi:
        errors.append({"field": lo_field, "message": f"must not exceed {hi_field}"})

    levels = list(levels or [])
    if not levels:
        errors.append({"field": "levels", "message": "at least one approval level is required"})
    elif len(levels) > settings.MAX_APPROVAL_LEVELS:
        errors.append(
            {"field": "levels", "message": f"at most {settings.MAX_APPROVAL_LEVELS} approval levels are allowed"}
        )

    seen: set[int] = set()
    valid_roles = {r.value for r in ApproverRole}
    for level in levels:
        order = _level_attr(level, "level_order")
        role = _level_attr(level, "approver_role")
        role = getattr(role, "value", role)
        if not isinstance(order, int) or not 1 <= order <= settings.MAX_APPROVAL_LEVELS:
            errors.append(
                {"field": "levels", "message": f"level_order {order!r} must be between 1 and {settings.MAX_APPROVAL_LEVELS}"}
            )
        elif order in seen:
            errors.append({"field": "levels", "message": f"duplicate level_order {order}"})
        else:
            seen.add(order)
        if role not in valid_roles:
            errors.append({"field": "levels", "message": f"unknown approver_role {role!r}"})

    if errors:
        raise ConfigurationError("Invalid approval policy configuration.", errors=errors)
