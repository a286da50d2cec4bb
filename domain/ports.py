from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional, Protocol

from .models import LookupResult


class PlayerDirectory(Protocol):
    """
    Resolves PlayFab player IDs to account metadata.

    Session handling, timeouts and retries belong to the implementation;
    callers only ever see a `LookupResult`.
    """

    async def lookup(self, external_id: str) -> LookupResult:
        ...


class AuthorizationGuard(Protocol):
    """Decides whether an actor may run administrative operations."""

    async def is_admin(self, actor_id: str) -> bool:
        ...


@dataclass
class RoleGrantOutcome:
    ok: bool
    reason: Optional[str] = None
    granted_role_ids: List[str] = field(default_factory=list)


class RoleGrantNotifier(Protocol):
    """
    Grants platform roles after a successful claim.

    Best effort: implementations report problems in the returned outcome
    instead of raising, and a failed grant never undoes a binding.
    """

    async def grant(self, requester_id: str, is_allow_listed: bool) -> RoleGrantOutcome:
        ...
