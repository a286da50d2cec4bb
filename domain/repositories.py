from __future__ import annotations

from typing import List, Optional, Protocol

from .models import AllowListEntry, IdentityBinding


class IdentityBindingRepository(Protocol):
    """
    Persistence for requester <-> PlayFab player bindings.

    Implementations must enforce uniqueness of both `requester_id` and
    `external_id` inside the store itself. A write that would hand an
    external ID to a second requester raises `DuplicateExternalIdError`;
    any other driver failure propagates unchanged.
    """

    def find_by_requester_id(self, requester_id: str) -> Optional[IdentityBinding]:
        """Return the binding held by the given requester, if any."""

        ...

    def find_by_external_id(self, external_id: str) -> Optional[IdentityBinding]:
        """Return the binding that owns the given external ID, if any."""

        ...

    def find_by_requester_label(self, requester_label: str) -> Optional[IdentityBinding]:
        """Return the most recently updated binding with this display label."""

        ...

    def upsert_binding(
        self,
        requester_id: str,
        requester_label: str,
        external_id: str,
        external_label: Optional[str],
    ) -> IdentityBinding:
        """
        Create or replace the binding for `requester_id` in one atomic write.

        Raises `DuplicateExternalIdError` when `external_id` already belongs
        to a different requester at the time of the write.
        """

        ...

    def replace_external_id(
        self,
        requester_id: str,
        external_id: str,
        external_label: Optional[str],
    ) -> Optional[IdentityBinding]:
        """
        Point an existing binding at a new external ID.

        Returns None when the requester has no binding. Raises
        `DuplicateExternalIdError` like `upsert_binding`.
        """

        ...

    def delete_by_external_id(self, external_id: str) -> bool:
        """Delete the binding owning `external_id`; return whether one existed."""

        ...


class AllowListRepository(Protocol):
    """
    The clan allow list: external IDs that earn the clan role.

    Independent of bindings; an external ID may be in either, both or
    neither.
    """

    def add(self, external_id: str, external_label: Optional[str]) -> AllowListEntry:
        """Upsert an entry. Re-adding keeps the original list position."""

        ...

    def remove(self, external_id: str) -> bool:
        ...

    def get(self, external_id: str) -> Optional[AllowListEntry]:
        ...

    def contains(self, external_id: str) -> bool:
        ...

    def list_entries(self) -> List[AllowListEntry]:
        """Return every entry in insertion order."""

        ...
