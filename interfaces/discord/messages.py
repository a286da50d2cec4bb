from __future__ import annotations

from typing import Optional

from application.services import AllowListResult, AllowListStatus, ClaimResult, ClaimStatus
from domain.models import IdentityBinding
from domain.ports import RoleGrantOutcome


HELP_TEXT = (
    "!verify <player_id>                - link your PlayFab player ID\n"
    "!edit <player_id>                  - change your linked player ID\n"
    "!show                              - show your linked player ID\n"
    "Admin:\n"
    "!admin-show <discord_name>         - show a user's binding\n"
    "!admin-edit <user> <player_id>     - change a user's player ID\n"
    "!admin-revoke <player_id>          - remove a binding\n"
    "!py-info <player_id>               - look up a player\n"
    "!add <player_id>                   - add a player to the clan list\n"
    "!delete <player_id>                - remove a player from the clan list\n"
    "!list                              - show the clan list\n"
)

_FAILURES = {
    "invalid_format": "❌ Invalid player ID format (expected 16-32 hexadecimal characters).",
    "unknown_external_id": "❌ We could not find {external_id}. Please check your player ID and try again.",
    "lookup_unavailable": "⚠️ Verification is temporarily unavailable. Please try again in a moment.",
    "conflict": "❌ Player ID {external_id} is already linked to another user.",
    "forbidden": "❌ This command requires the admin role in the main server.",
}


def _failure_text(status_value: str, external_id: Optional[str]) -> Optional[str]:
    template = _FAILURES.get(status_value)
    if template is None:
        return None
    return template.format(external_id=external_id or "this ID")


def _dash(value: Optional[str]) -> str:
    return value or "—"


def describe_binding(binding: IdentityBinding, include_player_name: bool) -> str:
    lines = [f"Player ID: {binding.external_id}"]
    if include_player_name:
        lines.append(f"Player name: {_dash(binding.external_label)}")
    lines.append(f"Discord: {_dash(binding.requester_label)} ({binding.requester_id})")
    return "\n".join(lines)


def claim_reply(result: ClaimResult) -> str:
    """
    Text shown to the person who submitted a claim.

    The player name stays out of this message; only admins see it.
    """

    if result.status is ClaimStatus.BOUND and result.binding is not None:
        clan = "clan member ✅" if result.allow_listed else "not on the clan list"
        return (
            "✅ Verified.\n"
            f"{describe_binding(result.binding, include_player_name=False)}\n"
            f"Clan status: {clan}"
        )
    return _failure_text(result.status.value, result.external_id) or "❌ Verification failed."


def admin_claim_reply(result: ClaimResult) -> str:
    if result.status is ClaimStatus.BOUND and result.binding is not None:
        return "✅ Binding updated.\n" + describe_binding(result.binding, include_player_name=True)
    if result.status is ClaimStatus.FOUND and result.binding is not None:
        return describe_binding(result.binding, include_player_name=True)
    if result.status is ClaimStatus.REVOKED:
        return f"✅ Removed the binding for {result.external_id}."
    if result.status is ClaimStatus.NOT_FOUND:
        return "ℹ️ No matching binding."
    return _failure_text(result.status.value, result.external_id) or "❌ Operation failed."


def player_info_reply(result: ClaimResult) -> str:
    if result.status is ClaimStatus.FOUND and result.player is not None:
        lines = [
            f"Player ID: {result.external_id}",
            f"Player name: {_dash(result.player.label)}",
        ]
        if result.binding is not None:
            lines.append(
                f"Linked to: {_dash(result.binding.requester_label)} ({result.binding.requester_id})"
            )
        return "\n".join(lines)
    return _failure_text(result.status.value, result.external_id) or "❌ Lookup failed."


def allow_list_reply(result: AllowListResult) -> str:
    if result.status is AllowListStatus.ADDED:
        return f"✅ Added {result.external_id} to the clan list."
    if result.status is AllowListStatus.REMOVED:
        return f"✅ Removed {result.external_id} from the clan list."
    if result.status is AllowListStatus.NOT_FOUND:
        return "ℹ️ That ID is not on the clan list."
    if result.status is AllowListStatus.LISTED:
        if not result.entries:
            return "(empty) The clan list has no entries."
        return "\n".join(f"{e.external_id} {e.external_label or '-'}" for e in result.entries)
    return _failure_text(result.status.value, result.external_id) or "❌ Operation failed."


def grant_warning(outcome: RoleGrantOutcome) -> str:
    if outcome.ok:
        return ""
    return (
        "\n\n⚠️ Verified, but roles could not be added in the target server "
        "(you may not have joined it yet, or the bot lacks permission). Please contact an admin."
    )


def verification_log(result: ClaimResult) -> str:
    binding = result.binding
    if binding is None:
        return ""
    return (
        "LOG: player verified\n"
        f"{describe_binding(binding, include_player_name=True)}\n"
        f"Clan: {'yes' if result.allow_listed else 'no'}"
    )
