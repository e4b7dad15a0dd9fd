"""Process-wide bearer credential for the Qinglong open API.

The token is refreshed proactively: once its remaining validity drops inside
the refresh buffer, the next caller starts a refresh. Only one refresh runs at
a time; callers that arrive while it is in flight and still hold an unexpired
token keep using it, everyone else awaits the shared refresh.
"""

import asyncio
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

import httpx

from qlbot.logging_config import get_logger
from qlbot.services.errors import TokenRefreshFailed, TokenTimeout

logger = get_logger("token_service")

TOKEN_ENDPOINT = "/open/auth/token"


@dataclass(frozen=True)
class Credential:
    token: str
    valid_until: float


class CredentialCache:
    def __init__(
        self,
        base_url: str,
        client_id: str,
        client_secret: str,
        refresh_buffer: float = 300.0,
        early_expiry: float = 120.0,
        timeout: float = 5.0,
        clock: Callable[[], float] = time.time,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        on_failure: Optional[Callable[[Exception], Awaitable[None]]] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.client_id = client_id
        self.client_secret = client_secret
        self.refresh_buffer = refresh_buffer
        self.early_expiry = early_expiry
        self.timeout = timeout
        self._clock = clock
        self._transport = transport
        self._on_failure = on_failure
        self._credential: Optional[Credential] = None
        self._inflight: Optional[asyncio.Task] = None
        self.refresh_count = 0

    @property
    def credential(self) -> Optional[Credential]:
        return self._credential

    def invalidate(self) -> None:
        """Forget the cached token, e.g. after the panel answered 401."""
        self._credential = None

    async def get_token(self) -> str:
        now = self._clock()
        credential = self._credential
        if credential and credential.valid_until > now + self.refresh_buffer:
            return credential.token

        if self._inflight is None:
            self._inflight = asyncio.ensure_future(self._refresh())
            return await asyncio.shield(self._inflight)

        if credential and credential.valid_until > now:
            return credential.token
        return await asyncio.shield(self._inflight)

    async def _refresh(self) -> str:
        try:
            return await self._fetch()
        except Exception as e:
            if self._on_failure is not None:
                try:
                    await self._on_failure(e)
                except Exception as alert_error:
                    logger.error(f"Token failure hook raised: {alert_error}")
            raise
        finally:
            self._inflight = None

    async def _fetch(self) -> str:
        logger.info("Refreshing panel token")
        self.refresh_count += 1
        started = time.monotonic()
        params = {"client_id": self.client_id, "client_secret": self.client_secret}

        try:
            async with httpx.AsyncClient(
                base_url=self.base_url, timeout=self.timeout, transport=self._transport
            ) as client:
                response = await client.get(TOKEN_ENDPOINT, params=params)
        except httpx.TimeoutException as e:
            logger.error(f"Token request timed out after {self.timeout:g}s")
            raise TokenTimeout(self.timeout) from e
        except httpx.HTTPError as e:
            logger.error(f"Token request failed: {e}")
            raise TokenRefreshFailed(str(e) or e.__class__.__name__) from e

        elapsed_ms = int((time.monotonic() - started) * 1000)
        logger.info(f"Token fetch time: {elapsed_ms} ms")

        try:
            data = response.json()
        except ValueError:
            raise TokenRefreshFailed(f"HTTP {response.status_code}") from None

        if not isinstance(data, dict) or data.get("code") != 200:
            message = data.get("message") if isinstance(data, dict) else None
            raise TokenRefreshFailed(message or str(data))

        payload = data.get("data") or {}
        token = payload.get("token")
        if not token:
            raise TokenRefreshFailed("issuer returned no token")

        lifetime = float(payload.get("expiration") or 0)
        now = self._clock()
        self._credential = Credential(token=token, valid_until=now + lifetime - self.early_expiry)
        logger.info(
            "Token cached",
            extra={"context": {"valid_for_seconds": round(self._credential.valid_until - now)}},
        )
        return token
