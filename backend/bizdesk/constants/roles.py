"""
Tenant member roles.

Role Hierarchy: OWNER > ADMIN > MEMBER

Every user belongs to exactly one tenant and holds exactly one role in it.
Platform administration is not a role; it uses the admin key (see
bizdesk.platform.rbac.require_admin_key).
"""

from enum import Enum


class Role(str, Enum):
    """Roles a user can hold within their tenant."""
    OWNER = "owner"
    ADMIN = "admin"
    MEMBER = "member"

    @property
    def level(self) -> int:
        return _ROLE_LEVELS[self]

    def at_least(self, required: "Role") -> bool:
        """True if this role is equal to or above required in the hierarchy."""
        return self.level >= Role(required).level


_ROLE_LEVELS = {
    Role.MEMBER: 1,
    Role.ADMIN: 2,
    Role.OWNER: 3,
}
