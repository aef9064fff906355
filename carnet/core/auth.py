# carnet/core/auth.py
"""Acting user resolution; the identity handshake itself happens upstream."""
from typing import Optional
from uuid import UUID
from fastapi import Header

from .exceptions import MissingActor


def parse_actor_id(value: Optional[str]) -> UUID:
    if not value:
        raise MissingActor("X-User-Id header is required")
    try:
        return UUID(value)
    except ValueError:
        raise MissingActor("X-User-Id header is not a valid id")


async def get_actor_id(x_user_id: Optional[str] = Header(default=None)) -> UUID:
    """Dependency returning the acting user's id."""
    return parse_actor_id(x_user_id)
