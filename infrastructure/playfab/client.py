from __future__ import annotations

import asyncio
import logging
import re
import secrets
import time
from enum import Enum
from typing import Any, Callable, Dict, Optional

import aiohttp

from domain.models import LookupResult, PlayerInfo
from domain.ports import PlayerDirectory


log = logging.getLogger(__name__)

SESSION_ERROR_RE = re.compile(r"NotAuthenticated|InvalidSession|Session|Auth", re.IGNORECASE)
DEFAULT_SESSION_TTL_SECONDS = 50 * 60


class SessionState(str, Enum):
    UNINITIALIZED = "uninitialized"
    READY = "ready"
    EXPIRED = "expired"


class PlayFabApiError(Exception):
    """A PlayFab call that returned an error envelope or an unusable body."""

    def __init__(
        self,
        http_status: int,
        error: str,
        message: Optional[str] = None,
        error_code: Optional[int] = None,
    ) -> None:
        super().__init__(f"{error}: {message}" if message else error)
        self.http_status = http_status
        self.error = error
        self.message = message
        self.error_code = error_code

    @property
    def is_session_error(self) -> bool:
        return bool(SESSION_ERROR_RE.search(f"{self.error} {self.message or ''}"))

    @property
    def is_transient(self) -> bool:
        return (
            self.http_status >= 500
            or self.http_status == 429
            or self.error == "InvalidResponse"
        )


class PlayFabDirectory(PlayerDirectory):
    """
    Player lookups through the PlayFab Client API.

    The client logs in with a throwaway custom ID and keeps the session
    ticket for `session_ttl_seconds`. An expired ticket, or a session error
    reported by PlayFab, triggers one fresh login before the lookup is
    retried. Every failure that does not prove the player is absent comes
    back as a transient `LookupResult`.
    """

    def __init__(
        self,
        title_id: str,
        *,
        http_session: Optional[aiohttp.ClientSession] = None,
        base_url: Optional[str] = None,
        session_ttl_seconds: float = DEFAULT_SESSION_TTL_SECONDS,
        timeout_seconds: float = 10.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._title_id = title_id
        self._base_url = (base_url or f"https://{title_id}.playfabapi.com").rstrip("/")
        self._http = http_session
        self._owns_http = http_session is None
        self._session_ttl = session_ttl_seconds
        self._timeout = aiohttp.ClientTimeout(total=timeout_seconds)
        self._clock = clock

        self._ticket: Optional[str] = None
        self._state = SessionState.UNINITIALIZED
        self._logged_in_at = 0.0
        self._login_lock = asyncio.Lock()

    @property
    def state(self) -> SessionState:
        if (
            self._state is SessionState.READY
            and self._clock() - self._logged_in_at >= self._session_ttl
        ):
            self._state = SessionState.EXPIRED
        return self._state

    async def close(self) -> None:
        if self._owns_http and self._http is not None and not self._http.closed:
            await self._http.close()

    async def lookup(self, external_id: str) -> LookupResult:
        return await self._get_account_info(external_id, retries=1)

    async def login(self) -> bool:
        """Ensure a usable session ticket; return False if PlayFab refused."""

        async with self._login_lock:
            if self.state is SessionState.READY:
                return True

            custom_id = "bot-" + secrets.token_hex(8)
            try:
                data = await self._post(
                    "/Client/LoginWithCustomID",
                    {"TitleId": self._title_id, "CustomId": custom_id, "CreateAccount": True},
                )
            except (PlayFabApiError, aiohttp.ClientError, asyncio.TimeoutError) as exc:
                log.error("PlayFab login failed: %s", exc)
                return False

            ticket = data.get("SessionTicket")
            if not ticket:
                log.error("PlayFab login returned no session ticket")
                return False

            refreshed = self._state is SessionState.EXPIRED
            self._ticket = ticket
            self._state = SessionState.READY
            self._logged_in_at = self._clock()
            log.info("PlayFab session %s", "refreshed" if refreshed else "ready")
            return True

    def _expire(self) -> None:
        if self._state is SessionState.READY:
            self._state = SessionState.EXPIRED
        self._ticket = None

    async def _get_account_info(self, external_id: str, retries: int) -> LookupResult:
        if not await self.login():
            return LookupResult.unavailable("PlayFab session not ready")

        try:
            data = await self._post(
                "/Client/GetAccountInfo",
                {"PlayFabId": external_id},
                headers={"X-Authorization": self._ticket or ""},
            )
        except PlayFabApiError as exc:
            if exc.is_session_error:
                log.warning("PlayFab session error, logging in again: %s", exc)
                self._expire()
                if retries > 0:
                    return await self._get_account_info(external_id, retries - 1)
                return LookupResult.unavailable(str(exc))
            if exc.is_transient:
                return LookupResult.unavailable(str(exc))
            return LookupResult.not_found(str(exc))
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            log.warning("PlayFab request for %s failed: %r", external_id, exc)
            return LookupResult.unavailable(str(exc) or exc.__class__.__name__)

        account = data.get("AccountInfo") or {}
        title_info = account.get("TitleInfo") or {}
        return LookupResult.ok(
            PlayerInfo(
                player_id=account.get("PlayFabId") or external_id,
                display_name=title_info.get("DisplayName"),
                username=account.get("Username"),
            )
        )

    async def _post(
        self,
        path: str,
        payload: Dict[str, Any],
        headers: Optional[Dict[str, str]] = None,
    ) -> Dict[str, Any]:
        if self._http is None:
            self._http = aiohttp.ClientSession()
            self._owns_http = True

        async with self._http.post(
            self._base_url + path,
            json=payload,
            headers=headers,
            timeout=self._timeout,
        ) as resp:
            try:
                body = await resp.json(content_type=None)
            except ValueError:
                raise PlayFabApiError(resp.status, "InvalidResponse", "response body is not JSON")

        if not isinstance(body, dict):
            raise PlayFabApiError(resp.status, "InvalidResponse", "unexpected response shape")
        if resp.status >= 400 or body.get("error"):
            raise PlayFabApiError(
                resp.status,
                str(body.get("error") or body.get("status") or "HTTPError"),
                body.get("errorMessage"),
                body.get("errorCode"),
            )
        return body.get("data") or {}
