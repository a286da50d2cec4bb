from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional


@dataclass
class IdentityBinding:
    """
    Association between a chat-platform account and a PlayFab player.

    Both `requester_id` and `external_id` are unique across all bindings.
    `external_label` is the player name resolved at the last successful
    claim and is not re-validated in between.
    """

    requester_id: str
    requester_label: str
    external_id: str
    external_label: Optional[str]
    created_at: datetime
    updated_at: datetime


@dataclass
class AllowListEntry:
    """A PlayFab player that earns the clan role once verified."""

    external_id: str
    external_label: Optional[str]
    created_at: datetime
    updated_at: datetime


@dataclass
class PlayerInfo:
    """Canonical account metadata returned by the player directory."""

    player_id: str
    display_name: Optional[str] = None
    username: Optional[str] = None

    @property
    def label(self) -> Optional[str]:
        return self.display_name or self.username or None


@dataclass
class LookupResult:
    """
    Outcome of a player directory lookup.

    `transient` separates "could not confirm" from "confirmed absent";
    callers must never treat a transient failure as a validated player.
    """

    found: bool
    transient: bool = False
    player: Optional[PlayerInfo] = None
    error: Optional[str] = None

    @classmethod
    def ok(cls, player: PlayerInfo) -> "LookupResult":
        return cls(found=True, player=player)

    @classmethod
    def not_found(cls, error: Optional[str] = None) -> "LookupResult":
        return cls(found=False, transient=False, error=error)

    @classmethod
    def unavailable(cls, error: Optional[str] = None) -> "LookupResult":
        return cls(found=False, transient=True, error=error)
