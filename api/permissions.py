"""Role-based permissions.

Policy lives in one table, ``ROLE_PERMISSIONS``, mapping each role to
the set of capabilities it holds. Code asks for a permission, never for
a role.
"""

from enum import StrEnum

from api.exceptions import AuthorizationError


class Role(StrEnum):
    """User roles."""

    ADMIN = "ADMIN"
    SUPERVISOR = "SUPERVISOR"
    WIS = "WIS"  # Developer
    QC = "QC"  # QC Engineer
    PC = "PC"  # Project Coordinator


class Permission(StrEnum):
    """Capabilities that can be granted to a role."""

    RATINGS_CREATE = "ratings:create"
    RATINGS_APPROVE = "ratings:approve"
    RATINGS_REQUEST_CHANGE = "ratings:request_change"
    CHANGE_REQUESTS_READ = "change_requests:read"
    CHANGE_REQUESTS_REVIEW = "change_requests:review"
    SCORES_READ_ANY = "scores:read_any"
    LEADERBOARD_READ = "leaderboard:read"


_CONTRIBUTOR_PERMISSIONS = frozenset({Permission.LEADERBOARD_READ})

ROLE_PERMISSIONS: dict[Role, frozenset[Permission]] = {
    Role.ADMIN: frozenset(
        {
            Permission.RATINGS_CREATE,
            Permission.CHANGE_REQUESTS_READ,
            Permission.CHANGE_REQUESTS_REVIEW,
            Permission.SCORES_READ_ANY,
            Permission.LEADERBOARD_READ,
        }
    ),
    Role.SUPERVISOR: frozenset(
        {
            Permission.RATINGS_CREATE,
            Permission.RATINGS_APPROVE,
            Permission.RATINGS_REQUEST_CHANGE,
            Permission.CHANGE_REQUESTS_READ,
            Permission.SCORES_READ_ANY,
            Permission.LEADERBOARD_READ,
        }
    ),
    Role.WIS: _CONTRIBUTOR_PERMISSIONS,
    Role.QC: _CONTRIBUTOR_PERMISSIONS,
    Role.PC: _CONTRIBUTOR_PERMISSIONS,
}


def _as_role(role: Role | str) -> Role | None:
    try:
        return Role(role)
    except ValueError:
        return None


def has_permission(role: Role | str, permission: Permission) -> bool:
    """Check a role against the permission table. Unknown roles hold nothing."""
    resolved = _as_role(role)
    if resolved is None:
        return False
    return permission in ROLE_PERMISSIONS[resolved]


def require_permission(
    role: Role | str,
    permission: Permission,
    message: str | None = None,
) -> None:
    """Raise AuthorizationError unless the role holds the permission."""
    if not has_permission(role, permission):
        raise AuthorizationError(
            message or f"Role '{role}' is not allowed to perform '{permission.value}'",
            permission=permission.value,
        )
