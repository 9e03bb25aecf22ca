from __future__ import annotations

from typing import Optional

from fincontrol.enums import UserRole

ALL_ROLES = frozenset(UserRole.values)
MANAGERS = frozenset({UserRole.SUPER_ADMIN, UserRole.ADMIN})
SUPER_ADMIN_ONLY = frozenset({UserRole.SUPER_ADMIN})

POLICY_TABLE: dict[str, dict[str, frozenset[str]]] = {
    "transaction": {
        "view": ALL_ROLES,
        "create": ALL_ROLES,
        "update": ALL_ROLES,
        "delete": MANAGERS,
        "restore": SUPER_ADMIN_ONLY,
        "force_delete": SUPER_ADMIN_ONLY,
    },
    "wallet": {
        "view": ALL_ROLES,
        "create": MANAGERS,
        "update": MANAGERS,
        "delete": MANAGERS,
        "restore": SUPER_ADMIN_ONLY,
        "force_delete": SUPER_ADMIN_ONLY,
    },
    "company": {
        "view": MANAGERS,
        "create": SUPER_ADMIN_ONLY,
        "update": MANAGERS,
        "delete": SUPER_ADMIN_ONLY,
        "restore": SUPER_ADMIN_ONLY,
        "force_delete": SUPER_ADMIN_ONLY,
    },
    "user": {
        "view": SUPER_ADMIN_ONLY,
        "create": SUPER_ADMIN_ONLY,
        "update": SUPER_ADMIN_ONLY,
        "delete": SUPER_ADMIN_ONLY,
        "restore": SUPER_ADMIN_ONLY,
        "force_delete": SUPER_ADMIN_ONLY,
    },
}

# Nobody may remove their own account, super admins included.
SELF_PROTECTED = {("user", "delete"), ("user", "force_delete")}


def can(
    role: Optional[str],
    resource: str,
    action: str,
    actor_id: Optional[int] = None,
    target_id: Optional[int] = None,
) -> bool:
    if not role:
        return False
    allowed = POLICY_TABLE.get(resource, {}).get(action)
    if allowed is None or role.strip().lower() not in allowed:
        return False
    if (resource, action) in SELF_PROTECTED:
        if actor_id is None or target_id is None or actor_id == target_id:
            return False
    return True
