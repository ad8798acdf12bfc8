"""
Caller identity resolved from the bearer token and the ``users`` table.
"""

from __future__ import annotations

from dataclasses import dataclass

from database.models import User  # noqa: F401

__all__ = ["CallerIdentity", "User"]


@dataclass(frozen=True)
class CallerIdentity:
    """The authenticated caller; ``team_id`` never comes from client input."""

    user_id: str
    team_id: int
    role: str = "member"

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"
