from __future__ import annotations

import logging
from typing import List, Optional

import discord
from discord.ext import commands

from domain.ports import AuthorizationGuard, RoleGrantNotifier, RoleGrantOutcome


log = logging.getLogger(__name__)


async def _fetch_guild(bot: commands.Bot, guild_id: int) -> discord.Guild:
    return bot.get_guild(guild_id) or await bot.fetch_guild(guild_id)


async def _fetch_member(guild: discord.Guild, user_id: int) -> discord.Member:
    return guild.get_member(user_id) or await guild.fetch_member(user_id)


class DiscordAdminGuard(AuthorizationGuard):
    """Admins are members of the primary guild holding the admin role."""

    def __init__(self, bot: commands.Bot, primary_guild_id: str, admin_role_id: str) -> None:
        self._bot = bot
        self._guild_id = int(primary_guild_id)
        self._role_id = int(admin_role_id)

    async def is_admin(self, actor_id: str) -> bool:
        try:
            guild = await _fetch_guild(self._bot, self._guild_id)
            member = await _fetch_member(guild, int(actor_id))
        except discord.HTTPException as exc:
            log.warning("Admin check for %s failed: %s", actor_id, exc)
            return False
        return any(role.id == self._role_id for role in member.roles)


class DiscordRoleGrantNotifier(RoleGrantNotifier):
    """
    Adds the always-granted roles, plus the clan role for allow-listed
    players, in the grant guild.

    Each role is added on its own so one missing permission does not block
    the others. Problems are logged and reported, never raised.
    """

    def __init__(
        self,
        bot: commands.Bot,
        grant_guild_id: str,
        always_role_ids: List[str],
        clan_role_id: Optional[str] = None,
    ) -> None:
        self._bot = bot
        self._guild_id = int(grant_guild_id)
        self._always_role_ids = list(always_role_ids)
        self._clan_role_id = clan_role_id

    async def grant(self, requester_id: str, is_allow_listed: bool) -> RoleGrantOutcome:
        try:
            guild = await _fetch_guild(self._bot, self._guild_id)
        except discord.HTTPException as exc:
            log.warning("Could not fetch grant guild %s: %s", self._guild_id, exc)
            return RoleGrantOutcome(ok=False, reason="fetch_guild_failed")

        try:
            member = await _fetch_member(guild, int(requester_id))
        except discord.HTTPException:
            log.info("User %s is not in grant guild %s", requester_id, self._guild_id)
            return RoleGrantOutcome(ok=False, reason="not_in_guild")

        role_ids = list(self._always_role_ids)
        if is_allow_listed and self._clan_role_id:
            role_ids.append(self._clan_role_id)

        outcome = RoleGrantOutcome(ok=True)
        for role_id in role_ids:
            try:
                await member.add_roles(discord.Object(id=int(role_id)), reason="PlayFab verification")
            except discord.HTTPException as exc:
                log.warning("Adding role %s to %s failed: %s", role_id, requester_id, exc)
                outcome.ok = False
                outcome.reason = outcome.reason or f"role {role_id}: {exc}"
                continue
            outcome.granted_role_ids.append(role_id)
        return outcome
