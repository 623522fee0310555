"""
Identity supplied by the upstream auth layer.

Sessions and tokens are issued elsewhere; the gateway forwards the
authenticated user as X-User-Id / X-User-Role / X-User-Name headers.
"""

from typing import Optional

from fastapi import Depends, Header
from pydantic import BaseModel

from errors import AuthenticationError, ForbiddenError

ROLES = ("owner", "renter", "driver", "admin")


class Actor(BaseModel):
    id: str
    role: str
    name: Optional[str] = None


def get_actor(
    x_user_id: Optional[str] = Header(None),
    x_user_role: Optional[str] = Header(None),
    x_user_name: Optional[str] = Header(None),
) -> Actor:
    if not x_user_id or not x_user_role:
        raise AuthenticationError()
    return Actor(id=x_user_id, role=x_user_role.lower(), name=x_user_name)


def require_role(*roles: str):
    def dependency(actor: Actor = Depends(get_actor)) -> Actor:
        if actor.role not in roles:
            raise ForbiddenError(f"User role {actor.role} is not authorized to access this route")
        return actor

    return dependency
