import unittest
from types import SimpleNamespace
from typing import Dict, Iterable, List, Optional

import discord

from interfaces.discord.roles import DiscordAdminGuard, DiscordRoleGrantNotifier


GUILD_ID = "1127540917667119125"
ADMIN_ROLE_ID = "1139181683300634664"
MEMBER_ROLE_ID = "200"
VETERAN_ROLE_ID = "201"
CLAN_ROLE_ID = "300"


def _http_error(cls, status: int, reason: str):
    return cls(SimpleNamespace(status=status, reason=reason), reason)


class FakeMember:
    def __init__(self, user_id: int, role_ids: Iterable[str] = (), failing_role_ids: Iterable[str] = ()):
        self.id = user_id
        self.roles = [SimpleNamespace(id=int(role_id)) for role_id in role_ids]
        self.failing_role_ids = {int(role_id) for role_id in failing_role_ids}
        self.added: List[int] = []

    async def add_roles(self, *roles, reason: Optional[str] = None):
        for role in roles:
            if role.id in self.failing_role_ids:
                raise _http_error(discord.Forbidden, 403, "Missing Permissions")
            self.added.append(role.id)


class FakeGuild:
    """Only answers `fetch_member`, so every lookup goes through the API path."""

    def __init__(self, guild_id: str, members: Iterable[FakeMember] = ()):
        self.id = int(guild_id)
        self.members: Dict[int, FakeMember] = {m.id: m for m in members}

    def get_member(self, user_id: int):
        return None

    async def fetch_member(self, user_id: int):
        member = self.members.get(user_id)
        if member is None:
            raise _http_error(discord.NotFound, 404, "Unknown Member")
        return member


class FakeBot:
    def __init__(self, guilds: Iterable[FakeGuild] = ()):
        self.guilds: Dict[int, FakeGuild] = {g.id: g for g in guilds}
        self.fetched: List[int] = []

    def get_guild(self, guild_id: int):
        return None

    async def fetch_guild(self, guild_id: int):
        self.fetched.append(guild_id)
        guild = self.guilds.get(guild_id)
        if guild is None:
            raise _http_error(discord.NotFound, 404, "Unknown Guild")
        return guild


class DiscordRoleGrantNotifierTests(unittest.IsolatedAsyncioTestCase):
    def make_notifier(self, member: Optional[FakeMember], clan_role_id: Optional[str] = CLAN_ROLE_ID):
        guild = FakeGuild(GUILD_ID, [member] if member else [])
        bot = FakeBot([guild])
        return DiscordRoleGrantNotifier(
            bot, GUILD_ID, [MEMBER_ROLE_ID, VETERAN_ROLE_ID], clan_role_id
        )

    async def test_clan_role_only_for_allow_listed_players(self):
        member = FakeMember(111)
        notifier = self.make_notifier(member)

        outcome = await notifier.grant("111", False)

        self.assertTrue(outcome.ok)
        self.assertEqual(outcome.granted_role_ids, [MEMBER_ROLE_ID, VETERAN_ROLE_ID])
        self.assertNotIn(int(CLAN_ROLE_ID), member.added)

        outcome = await notifier.grant("111", True)

        self.assertTrue(outcome.ok)
        self.assertEqual(outcome.granted_role_ids, [MEMBER_ROLE_ID, VETERAN_ROLE_ID, CLAN_ROLE_ID])
        self.assertIn(int(CLAN_ROLE_ID), member.added)

    async def test_no_clan_role_configured(self):
        member = FakeMember(111)
        notifier = self.make_notifier(member, clan_role_id=None)

        outcome = await notifier.grant("111", True)

        self.assertTrue(outcome.ok)
        self.assertEqual(outcome.granted_role_ids, [MEMBER_ROLE_ID, VETERAN_ROLE_ID])

    async def test_failing_role_does_not_stop_the_others(self):
        member = FakeMember(111, failing_role_ids=[MEMBER_ROLE_ID])
        notifier = self.make_notifier(member)

        with self.assertLogs("interfaces.discord.roles", level="WARNING"):
            outcome = await notifier.grant("111", True)

        self.assertFalse(outcome.ok)
        self.assertIn(MEMBER_ROLE_ID, outcome.reason)
        self.assertEqual(outcome.granted_role_ids, [VETERAN_ROLE_ID, CLAN_ROLE_ID])
        self.assertEqual(member.added, [int(VETERAN_ROLE_ID), int(CLAN_ROLE_ID)])

    async def test_requester_outside_grant_guild(self):
        notifier = self.make_notifier(None)

        outcome = await notifier.grant("111", True)

        self.assertFalse(outcome.ok)
        self.assertEqual(outcome.reason, "not_in_guild")
        self.assertEqual(outcome.granted_role_ids, [])

    async def test_unreachable_grant_guild(self):
        bot = FakeBot()
        notifier = DiscordRoleGrantNotifier(bot, GUILD_ID, [MEMBER_ROLE_ID], CLAN_ROLE_ID)

        with self.assertLogs("interfaces.discord.roles", level="WARNING"):
            outcome = await notifier.grant("111", True)

        self.assertFalse(outcome.ok)
        self.assertEqual(outcome.reason, "fetch_guild_failed")
        self.assertEqual(bot.fetched, [int(GUILD_ID)])


class DiscordAdminGuardTests(unittest.IsolatedAsyncioTestCase):
    def make_guard(self, *members: FakeMember) -> DiscordAdminGuard:
        bot = FakeBot([FakeGuild(GUILD_ID, members)])
        return DiscordAdminGuard(bot, GUILD_ID, ADMIN_ROLE_ID)

    async def test_member_with_admin_role(self):
        guard = self.make_guard(FakeMember(1, role_ids=[MEMBER_ROLE_ID, ADMIN_ROLE_ID]))

        self.assertTrue(await guard.is_admin("1"))

    async def test_member_without_admin_role(self):
        guard = self.make_guard(FakeMember(1, role_ids=[MEMBER_ROLE_ID]))

        self.assertFalse(await guard.is_admin("1"))

    async def test_unknown_member_is_not_admin(self):
        guard = self.make_guard()

        with self.assertLogs("interfaces.discord.roles", level="WARNING"):
            self.assertFalse(await guard.is_admin("1"))

    async def test_unreachable_primary_guild_is_not_admin(self):
        guard = DiscordAdminGuard(FakeBot(), GUILD_ID, ADMIN_ROLE_ID)

        with self.assertLogs("interfaces.discord.roles", level="WARNING"):
            self.assertFalse(await guard.is_admin("1"))


if __name__ == "__main__":
    unittest.main()
