import unittest

import aiohttp
from aiohttp import web
from aiohttp.test_utils import TestServer

from infrastructure.playfab.client import PlayFabDirectory, SessionState


HERO_ID = "25CDF5286DC38DAD"


def _error(status: int, error: str, message: str, code: int):
    return web.json_response(
        {"code": status, "status": "Error", "error": error, "errorCode": code, "errorMessage": message},
        status=status,
    )


class FakePlayFab:
    """Minimal stand-in for the two PlayFab Client API calls the bot uses."""

    def __init__(self):
        self.players = {HERO_ID: {"DisplayName": "Hero", "Username": "hero01"}}
        self.logins = 0
        self.valid_tickets = set()
        self.fail_login = False
        self.server_error = False
        self.reject_all_tickets = False

    async def login(self, request: web.Request) -> web.Response:
        body = await request.json()
        if self.fail_login:
            return _error(400, "InvalidTitleId", "Invalid title", 1004)
        assert body["CreateAccount"] is True
        assert body["CustomId"].startswith("bot-")
        self.logins += 1
        ticket = f"ticket-{self.logins}"
        self.valid_tickets.add(ticket)
        return web.json_response({"code": 200, "status": "OK", "data": {"SessionTicket": ticket}})

    async def account_info(self, request: web.Request) -> web.Response:
        if self.server_error:
            return web.Response(status=503, text="upstream unavailable")
        if self.reject_all_tickets or request.headers.get("X-Authorization") not in self.valid_tickets:
            return _error(401, "NotAuthenticated", "This API method requires authentication", 1074)
        body = await request.json()
        player = self.players.get(body["PlayFabId"])
        if player is None:
            return _error(400, "AccountNotFound", "User not found", 1001)
        return web.json_response(
            {
                "code": 200,
                "status": "OK",
                "data": {
                    "AccountInfo": {
                        "PlayFabId": body["PlayFabId"],
                        "Username": player["Username"],
                        "TitleInfo": {"DisplayName": player["DisplayName"]},
                    }
                },
            }
        )

    def app(self) -> web.Application:
        app = web.Application()
        app.router.add_post("/Client/LoginWithCustomID", self.login)
        app.router.add_post("/Client/GetAccountInfo", self.account_info)
        return app


class PlayFabDirectoryTests(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self) -> None:
        self.playfab = FakePlayFab()
        self.server = TestServer(self.playfab.app())
        await self.server.start_server()
        self.http = aiohttp.ClientSession()
        self.now = 0.0
        self.directory = PlayFabDirectory(
            "ABCD",
            http_session=self.http,
            base_url=str(self.server.make_url("/")),
            session_ttl_seconds=60,
            clock=lambda: self.now,
        )

    async def asyncTearDown(self) -> None:
        await self.directory.close()
        await self.http.close()
        await self.server.close()

    async def test_lookup_logs_in_and_resolves_player(self):
        self.assertIs(self.directory.state, SessionState.UNINITIALIZED)

        result = await self.directory.lookup(HERO_ID)

        self.assertTrue(result.found)
        self.assertEqual(result.player.player_id, HERO_ID)
        self.assertEqual(result.player.label, "Hero")
        self.assertEqual(result.player.username, "hero01")
        self.assertIs(self.directory.state, SessionState.READY)
        self.assertEqual(self.playfab.logins, 1)

    async def test_session_is_reused_until_ttl(self):
        await self.directory.lookup(HERO_ID)
        await self.directory.lookup(HERO_ID)
        self.assertEqual(self.playfab.logins, 1)

        self.now = 61.0
        self.assertIs(self.directory.state, SessionState.EXPIRED)
        result = await self.directory.lookup(HERO_ID)

        self.assertTrue(result.found)
        self.assertEqual(self.playfab.logins, 2)
        self.assertIs(self.directory.state, SessionState.READY)

    async def test_unknown_player_is_not_transient(self):
        result = await self.directory.lookup("FFFFFFFFFFFFFFFF")

        self.assertFalse(result.found)
        self.assertFalse(result.transient)
        self.assertIn("AccountNotFound", result.error)

    async def test_rejected_ticket_triggers_one_relogin(self):
        await self.directory.lookup(HERO_ID)
        self.playfab.valid_tickets.clear()

        with self.assertLogs("infrastructure.playfab.client", level="WARNING"):
            result = await self.directory.lookup(HERO_ID)

        self.assertTrue(result.found)
        self.assertEqual(self.playfab.logins, 2)

    async def test_persistent_session_errors_are_transient(self):
        self.playfab.reject_all_tickets = True

        with self.assertLogs("infrastructure.playfab.client", level="WARNING"):
            result = await self.directory.lookup(HERO_ID)

        self.assertFalse(result.found)
        self.assertTrue(result.transient)
        self.assertEqual(self.playfab.logins, 2)
        self.assertIsNot(self.directory.state, SessionState.READY)

    async def test_failed_login_is_transient(self):
        self.playfab.fail_login = True

        with self.assertLogs("infrastructure.playfab.client", level="ERROR"):
            result = await self.directory.lookup(HERO_ID)

        self.assertFalse(result.found)
        self.assertTrue(result.transient)
        self.assertIsNot(self.directory.state, SessionState.READY)

    async def test_server_errors_are_transient(self):
        self.playfab.server_error = True

        result = await self.directory.lookup(HERO_ID)

        self.assertFalse(result.found)
        self.assertTrue(result.transient)

    async def test_unreachable_service_is_transient(self):
        await self.directory.lookup(HERO_ID)
        await self.server.close()

        with self.assertLogs("infrastructure.playfab.client", level="WARNING"):
            result = await self.directory.lookup(HERO_ID)

        self.assertFalse(result.found)
        self.assertTrue(result.transient)
