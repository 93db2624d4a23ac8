from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class Principal:
    """Authenticated identity extracted from a validated JWT.

    Carried through the request via FastAPI's dependency system.  The
    progress ledger only ever receives `user_id` from here, never an id
    taken from a request body.

        user_id: subject from JWT
        roles: platform roles (admin, user)
    """

    user_id: str
    roles: frozenset[str]

    def has_role(self, role: str) -> bool:
        return role in self.roles
