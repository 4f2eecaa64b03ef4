"""FastAPI dependency providers for settings, the acting user and role checks.

Identity is owned by an upstream gateway; this service trusts the
``X-Actor-Id`` and ``X-Actor-Role`` headers it forwards.
"""

from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache

from fastapi import Depends, Header, HTTPException

from resumeops.config import Settings, get_settings
from resumeops.states import ActorRole

STAFF_ROLES = (ActorRole.ADMIN.value, ActorRole.SUPER_ADMIN.value)


@dataclass(frozen=True)
class ActorContext:
    actor_id: str
    role: str

    @property
    def is_staff(self) -> bool:
        return self.role in STAFF_ROLES

    @property
    def is_super_admin(self) -> bool:
        return self.role == ActorRole.SUPER_ADMIN.value


@lru_cache
def get_settings_dep() -> Settings:
    return get_settings()


async def require_actor(
    x_actor_id: str | None = Header(default=None),
    x_actor_role: str | None = Header(default=None),
) -> ActorContext:
    """Require identity headers. Returns ActorContext."""
    if not x_actor_id:
        raise HTTPException(401, "Authentication required")
    try:
        role = ActorRole(x_actor_role or "")
    except ValueError:
        raise HTTPException(401, "Unknown actor role")
    return ActorContext(actor_id=x_actor_id, role=role.value)


def require_role(*allowed_roles: str):
    """Factory: returns a dependency that enforces role membership."""
    async def _check(actor: ActorContext = Depends(require_actor)) -> ActorContext:
        if actor.role not in allowed_roles:
            raise HTTPException(403, "Insufficient permissions")
        return actor
    return _check


require_staff = require_role(*STAFF_ROLES)
