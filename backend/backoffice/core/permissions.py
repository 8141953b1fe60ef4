"""Team roles, approver roles, and the role → permission table."""
import enum
from dataclasses import dataclass


class TeamRole(str, enum.Enum):
    OWNER = "OWNER"
    ADMIN = "ADMIN"
    MANAGER = "MANAGER"
    HR = "HR"
    FINANCE = "FINANCE"
    OPERATIONS = "OPERATIONS"
    EMPLOYEE = "EMPLOYEE"


class ApproverRole(str, enum.Enum):
    """Role bound to an approval level."""

    MANAGER = "MANAGER"
    HR_MANAGER = "HR_MANAGER"
    FINANCE_MANAGER = "FINANCE_MANAGER"
    DIRECTOR = "DIRECTOR"


@dataclass(frozen=True)
class RolePermissions:
    is_admin: bool = False
    can_approve: bool = False
    has_hr_access: bool = False
    has_finance_access: bool = False
    has_operations_access: bool = False


_ALL = RolePermissions(
    is_admin=True,
    can_approve=True,
    has_hr_access=True,
    has_finance_access=True,
    has_operations_access=True,
)

ROLE_PERMISSIONS: dict[TeamRole, RolePermissions] = {
    TeamRole.OWNER: _ALL,
    TeamRole.ADMIN: _ALL,
    TeamRole.MANAGER: RolePermissions(can_approve=True),
    TeamRole.HR: RolePermissions(has_hr_access=True),
    TeamRole.FINANCE: RolePermissions(has_finance_access=True),
    TeamRole.OPERATIONS: RolePermissions(has_operations_access=True),
    TeamRole.EMPLOYEE: RolePermissions(),
}

_missing = set(TeamRole) - set(ROLE_PERMISSIONS)
if _missing:
    raise RuntimeError(f"ROLE_PERMISSIONS is missing entries for: {sorted(r.value for r in _missing)}")


def permissions_for(role: str | TeamRole) -> RolePermissions:
    """Look up the permission flags for a role; unknown roles get none."""
    try:
        return ROLE_PERMISSIONS[TeamRole(role)]
    except ValueError:
        return RolePermissions()


def roles_with(flag: str) -> list[TeamRole]:
    """Return every team role whose permissions have ``flag`` set."""
    return [role for role, perms in ROLE_PERMISSIONS.items() if getattr(perms, flag)]


# Permission flag that makes a team member a nominal approver for a role.
# MANAGER is resolved through the requester's reporting line instead.
APPROVER_ROLE_FLAGS: dict[ApproverRole, str | None] = {
    ApproverRole.MANAGER: None,
    ApproverRole.HR_MANAGER: "has_hr_access",
    ApproverRole.FINANCE_MANAGER: "has_finance_access",
    ApproverRole.DIRECTOR: "is_admin",
}
