import time
from typing import Any, Optional

import httpx

from qlbot.logging_config import get_logger
from qlbot.services.errors import DownstreamRejected, GatewayTimeout, GatewayUnavailable
from qlbot.services.token_service import CredentialCache

logger = get_logger("qinglong_client")


class QinglongClient:
    """Bearer-authenticated calls against the panel's /open API."""

    def __init__(
        self,
        base_url: str,
        credentials: CredentialCache,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.credentials = credentials
        self.timeout = timeout
        self._transport = transport

    async def request(self, method: str, endpoint: str, body: Any = None) -> dict:
        started = time.monotonic()
        token = await self.credentials.get_token()
        headers = {
            "Authorization": f"Bearer {token}",
            "Content-Type": "application/json",
            "Accept": "application/json",
        }

        try:
            async with httpx.AsyncClient(
                base_url=self.base_url, timeout=self.timeout, transport=self._transport
            ) as client:
                if body is None:
                    response = await client.request(method, endpoint, headers=headers)
                else:
                    response = await client.request(method, endpoint, headers=headers, json=body)
        except httpx.TimeoutException as e:
            logger.warning(f"API {method} {endpoint} timed out after {self.timeout:g}s")
            raise GatewayTimeout(method, endpoint, self.timeout) from e
        except httpx.HTTPError as e:
            logger.warning(f"API {method} {endpoint} failed: {e}")
            raise GatewayUnavailable(method, endpoint, str(e) or e.__class__.__name__) from e

        elapsed_ms = int((time.monotonic() - started) * 1000)
        logger.info(f"API {method} {endpoint} took {elapsed_ms} ms")

        if response.status_code == 401:
            self.credentials.invalidate()
        if not response.is_success:
            raise DownstreamRejected(_error_message(response), status=response.status_code)

        try:
            return response.json()
        except ValueError as e:
            raise DownstreamRejected("Panel returned a non-JSON body", status=response.status_code) from e


def _error_message(response: httpx.Response) -> str:
    try:
        data = response.json()
    except ValueError:
        return f"HTTP {response.status_code}"
    if isinstance(data, dict) and data.get("message"):
        return f"HTTP {response.status_code}: {data['message']}"
    return f"HTTP {response.status_code}"
