from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Type, TypeVar

from domain.errors import DuplicateExternalIdError
from domain.models import AllowListEntry, IdentityBinding, LookupResult, PlayerInfo
from domain.ports import AuthorizationGuard, PlayerDirectory
from domain.repositories import AllowListRepository, IdentityBindingRepository


log = logging.getLogger(__name__)

# Upper-case hex, 16 to 32 digits.
EXTERNAL_ID_RE = re.compile(r"[A-F0-9]{16,32}")


@dataclass
class RequesterContext:
    """
    The authenticated account asking to bind a player ID.

    Built by the interface layer from whatever the chat SDK exposes; the
    application layer never sees SDK types.
    """

    requester_id: str
    label: str


class ClaimStatus(str, Enum):
    BOUND = "bound"
    FOUND = "found"
    REVOKED = "revoked"
    INVALID_FORMAT = "invalid_format"
    UNKNOWN_EXTERNAL_ID = "unknown_external_id"
    LOOKUP_UNAVAILABLE = "lookup_unavailable"
    CONFLICT = "conflict"
    NOT_FOUND = "not_found"
    FORBIDDEN = "forbidden"


class AllowListStatus(str, Enum):
    ADDED = "added"
    REMOVED = "removed"
    LISTED = "listed"
    INVALID_FORMAT = "invalid_format"
    UNKNOWN_EXTERNAL_ID = "unknown_external_id"
    LOOKUP_UNAVAILABLE = "lookup_unavailable"
    NOT_FOUND = "not_found"
    FORBIDDEN = "forbidden"


@dataclass
class ClaimResult:
    """
    Result of a claim, reassignment, revocation or inspection.

    `allow_listed` is only meaningful for `BOUND` results and tells the
    caller whether to grant the clan role on top of the default roles.
    """

    status: ClaimStatus
    external_id: Optional[str] = None
    binding: Optional[IdentityBinding] = None
    allow_listed: bool = False
    allow_list_label: Optional[str] = None
    player: Optional[PlayerInfo] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status in (ClaimStatus.BOUND, ClaimStatus.FOUND, ClaimStatus.REVOKED)


@dataclass
class AllowListResult:
    status: AllowListStatus
    external_id: Optional[str] = None
    entry: Optional[AllowListEntry] = None
    entries: List[AllowListEntry] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status in (
            AllowListStatus.ADDED,
            AllowListStatus.REMOVED,
            AllowListStatus.LISTED,
        )


_S = TypeVar("_S", ClaimStatus, AllowListStatus)


def normalize_external_id(raw: Optional[str]) -> Optional[str]:
    """
    Trim and upper-case a user supplied player ID.

    Returns None when the result is not 16-32 hexadecimal characters.
    """

    if raw is None:
        return None
    candidate = str(raw).strip().upper()
    if not EXTERNAL_ID_RE.fullmatch(candidate):
        return None
    return candidate


def _lookup_failure_status(lookup: LookupResult, status_cls: Type[_S]) -> Optional[_S]:
    if lookup.found:
        return None
    if lookup.transient:
        return status_cls.LOOKUP_UNAVAILABLE
    return status_cls.UNKNOWN_EXTERNAL_ID


class ClaimReconciler:
    """
    The only writer of identity bindings.

    Every mutation goes through the repository's conditional write, so
    uniqueness of requester and external IDs holds even when two claims
    for the same player ID overlap across an awaited lookup.
    """

    def __init__(
        self,
        bindings: IdentityBindingRepository,
        allow_list: AllowListRepository,
        directory: PlayerDirectory,
        guard: AuthorizationGuard,
    ) -> None:
        self._bindings = bindings
        self._allow_list = allow_list
        self._directory = directory
        self._guard = guard

    async def submit_claim(
        self,
        requester: RequesterContext,
        raw_external_id: str,
    ) -> ClaimResult:
        """
        Bind the requester to a PlayFab player ID.

        Re-submitting an ID the requester already holds runs the full
        lookup again and refreshes the cached player name.
        """

        if not requester.requester_id:
            raise ValueError("requester_id must not be empty")

        external_id = normalize_external_id(raw_external_id)
        if external_id is None:
            return ClaimResult(status=ClaimStatus.INVALID_FORMAT)

        owner = self._bindings.find_by_external_id(external_id)
        if owner is not None and owner.requester_id != requester.requester_id:
            return ClaimResult(status=ClaimStatus.CONFLICT, external_id=external_id)

        lookup = await self._directory.lookup(external_id)
        failure = _lookup_failure_status(lookup, ClaimStatus)
        if failure is not None:
            self._log_lookup_failure(external_id, lookup)
            return ClaimResult(status=failure, external_id=external_id, error=lookup.error)

        try:
            binding = self._bindings.upsert_binding(
                requester.requester_id,
                requester.label,
                external_id,
                lookup.player.label if lookup.player else None,
            )
        except DuplicateExternalIdError:
            log.info(
                "Claim of %s by %s rejected at write time: bound concurrently by another requester",
                external_id,
                requester.requester_id,
            )
            return ClaimResult(status=ClaimStatus.CONFLICT, external_id=external_id)

        entry = self._allow_list_entry(external_id)
        return ClaimResult(
            status=ClaimStatus.BOUND,
            external_id=external_id,
            binding=binding,
            allow_listed=entry is not None,
            allow_list_label=entry.external_label if entry else None,
            player=lookup.player,
        )

    async def reassign_claim(
        self,
        admin_actor_id: str,
        target_requester_id: str,
        raw_external_id: str,
    ) -> ClaimResult:
        """
        Admin override: point another requester's binding at a new player ID.

        The target must already hold a binding; this path never creates
        one on somebody's behalf.
        """

        if not await self._guard.is_admin(admin_actor_id):
            return ClaimResult(status=ClaimStatus.FORBIDDEN)

        external_id = normalize_external_id(raw_external_id)
        if external_id is None:
            return ClaimResult(status=ClaimStatus.INVALID_FORMAT)

        target = self._bindings.find_by_requester_id(target_requester_id)
        if target is None:
            return ClaimResult(status=ClaimStatus.NOT_FOUND, external_id=external_id)

        owner = self._bindings.find_by_external_id(external_id)
        if owner is not None and owner.requester_id != target_requester_id:
            return ClaimResult(status=ClaimStatus.CONFLICT, external_id=external_id)

        lookup = await self._directory.lookup(external_id)
        failure = _lookup_failure_status(lookup, ClaimStatus)
        if failure is not None:
            self._log_lookup_failure(external_id, lookup)
            return ClaimResult(status=failure, external_id=external_id, error=lookup.error)

        try:
            binding = self._bindings.replace_external_id(
                target_requester_id,
                external_id,
                lookup.player.label if lookup.player else None,
            )
        except DuplicateExternalIdError:
            log.info(
                "Reassignment of %s to %s rejected at write time: bound concurrently by another requester",
                external_id,
                target_requester_id,
            )
            return ClaimResult(status=ClaimStatus.CONFLICT, external_id=external_id)

        if binding is None:
            # Revoked between the read above and the write.
            return ClaimResult(status=ClaimStatus.NOT_FOUND, external_id=external_id)

        log.info(
            "Admin %s reassigned %s to %s",
            admin_actor_id,
            external_id,
            target_requester_id,
        )
        entry = self._allow_list_entry(external_id)
        return ClaimResult(
            status=ClaimStatus.BOUND,
            external_id=external_id,
            binding=binding,
            allow_listed=entry is not None,
            allow_list_label=entry.external_label if entry else None,
            player=lookup.player,
        )

    async def revoke_claim(self, admin_actor_id: str, raw_external_id: str) -> ClaimResult:
        if not await self._guard.is_admin(admin_actor_id):
            return ClaimResult(status=ClaimStatus.FORBIDDEN)

        external_id = normalize_external_id(raw_external_id)
        if external_id is None:
            return ClaimResult(status=ClaimStatus.INVALID_FORMAT)

        if not self._bindings.delete_by_external_id(external_id):
            return ClaimResult(status=ClaimStatus.NOT_FOUND, external_id=external_id)

        log.info("Admin %s revoked binding of %s", admin_actor_id, external_id)
        return ClaimResult(status=ClaimStatus.REVOKED, external_id=external_id)

    async def describe_player(self, admin_actor_id: str, raw_external_id: str) -> ClaimResult:
        """Resolve a player ID for an admin without touching any binding."""

        if not await self._guard.is_admin(admin_actor_id):
            return ClaimResult(status=ClaimStatus.FORBIDDEN)

        external_id = normalize_external_id(raw_external_id)
        if external_id is None:
            return ClaimResult(status=ClaimStatus.INVALID_FORMAT)

        lookup = await self._directory.lookup(external_id)
        failure = _lookup_failure_status(lookup, ClaimStatus)
        if failure is not None:
            self._log_lookup_failure(external_id, lookup)
            return ClaimResult(status=failure, external_id=external_id, error=lookup.error)

        return ClaimResult(
            status=ClaimStatus.FOUND,
            external_id=external_id,
            binding=self._bindings.find_by_external_id(external_id),
            player=lookup.player,
        )

    async def find_binding_by_label(self, admin_actor_id: str, requester_label: str) -> ClaimResult:
        if not await self._guard.is_admin(admin_actor_id):
            return ClaimResult(status=ClaimStatus.FORBIDDEN)

        binding = self._bindings.find_by_requester_label(requester_label)
        if binding is None:
            return ClaimResult(status=ClaimStatus.NOT_FOUND)
        return ClaimResult(
            status=ClaimStatus.FOUND,
            external_id=binding.external_id,
            binding=binding,
        )

    def binding_for(self, requester_id: str) -> Optional[IdentityBinding]:
        return self._bindings.find_by_requester_id(requester_id)

    def resolve_requester_id(self, requester_label: str) -> Optional[str]:
        """Map a display label (e.g. `name#1234`) to the requester holding it."""

        binding = self._bindings.find_by_requester_label(requester_label)
        return binding.requester_id if binding else None

    def _allow_list_entry(self, external_id: str) -> Optional[AllowListEntry]:
        try:
            return self._allow_list.get(external_id)
        except Exception:
            log.exception("Allow list check for %s failed; treating as not listed", external_id)
            return None

    @staticmethod
    def _log_lookup_failure(external_id: str, lookup: LookupResult) -> None:
        if lookup.transient:
            log.warning("Player lookup for %s unavailable: %s", external_id, lookup.error)
        else:
            log.info("Player %s not found: %s", external_id, lookup.error)


class AllowListManager:
    """Admin operations on the clan allow list."""

    def __init__(
        self,
        allow_list: AllowListRepository,
        directory: PlayerDirectory,
        guard: AuthorizationGuard,
    ) -> None:
        self._allow_list = allow_list
        self._directory = directory
        self._guard = guard

    async def add(self, admin_actor_id: str, raw_external_id: str) -> AllowListResult:
        """
        Add a player ID to the allow list.

        The ID must resolve in the player directory; its current name is
        cached alongside the entry.
        """

        if not await self._guard.is_admin(admin_actor_id):
            return AllowListResult(status=AllowListStatus.FORBIDDEN)

        external_id = normalize_external_id(raw_external_id)
        if external_id is None:
            return AllowListResult(status=AllowListStatus.INVALID_FORMAT)

        lookup = await self._directory.lookup(external_id)
        failure = _lookup_failure_status(lookup, AllowListStatus)
        if failure is not None:
            return AllowListResult(status=failure, external_id=external_id, error=lookup.error)

        entry = self._allow_list.add(
            external_id,
            lookup.player.label if lookup.player else None,
        )
        log.info("Admin %s added %s to the allow list", admin_actor_id, external_id)
        return AllowListResult(status=AllowListStatus.ADDED, external_id=external_id, entry=entry)

    async def remove(self, admin_actor_id: str, raw_external_id: str) -> AllowListResult:
        if not await self._guard.is_admin(admin_actor_id):
            return AllowListResult(status=AllowListStatus.FORBIDDEN)

        external_id = normalize_external_id(raw_external_id)
        if external_id is None:
            return AllowListResult(status=AllowListStatus.INVALID_FORMAT)

        if not self._allow_list.remove(external_id):
            return AllowListResult(status=AllowListStatus.NOT_FOUND, external_id=external_id)

        log.info("Admin %s removed %s from the allow list", admin_actor_id, external_id)
        return AllowListResult(status=AllowListStatus.REMOVED, external_id=external_id)

    async def list_entries(self, admin_actor_id: str) -> AllowListResult:
        if not await self._guard.is_admin(admin_actor_id):
            return AllowListResult(status=AllowListStatus.FORBIDDEN)

        return AllowListResult(
            status=AllowListStatus.LISTED,
            entries=self._allow_list.list_entries(),
        )
