import asyncio

import httpx
import pytest

from qlbot.services.errors import TokenRefreshFailed, TokenTimeout
from qlbot.services.token_service import CredentialCache


def _issuer(lifetime: float = 86400, token: str = "tok"):
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(dict(request.url.params))
        data = {"token": f"{token}-{len(calls)}", "expiration": lifetime}
        return httpx.Response(200, json={"code": 200, "data": data})

    return handler, calls


def _cache(handler, clock, **kwargs) -> CredentialCache:
    return CredentialCache(
        "http://panel.test/",
        "client-id",
        "client-secret",
        clock=clock,
        transport=httpx.MockTransport(handler),
        **kwargs,
    )


class TestGetToken:
    def test_fetches_once_and_reuses(self, clock):
        handler, calls = _issuer()
        cache = _cache(handler, clock)

        async def scenario():
            return await cache.get_token(), await cache.get_token()

        assert asyncio.run(scenario()) == ("tok-1", "tok-1")
        assert len(calls) == 1
        assert calls[0] == {"client_id": "client-id", "client_secret": "client-secret"}

    def test_validity_is_shortened_by_early_expiry(self, clock):
        handler, _ = _issuer(lifetime=1000)
        cache = _cache(handler, clock)

        asyncio.run(cache.get_token())

        assert cache.credential.valid_until == clock() + 1000 - 120

    def test_refreshes_inside_buffer(self, clock):
        handler, calls = _issuer(lifetime=1000)
        cache = _cache(handler, clock)

        async def scenario():
            first = await cache.get_token()
            clock.advance(1000 - 120 - 300 + 1)
            return first, await cache.get_token()

        assert asyncio.run(scenario()) == ("tok-1", "tok-2")
        assert len(calls) == 2
        assert cache.refresh_count == 2

    def test_concurrent_callers_share_one_refresh(self, clock):
        calls = []

        async def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request.url.path)
            await asyncio.sleep(0.01)
            return httpx.Response(200, json={"code": 200, "data": {"token": "shared", "expiration": 86400}})

        cache = _cache(handler, clock)

        async def scenario():
            return await asyncio.gather(*(cache.get_token() for _ in range(10)))

        assert asyncio.run(scenario()) == ["shared"] * 10
        assert len(calls) == 1

    def test_stale_but_valid_token_is_served_during_refresh(self, clock):
        release = None
        calls = []

        async def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request.url.path)
            if len(calls) > 1:
                await release.wait()
            return httpx.Response(200, json={"code": 200, "data": {"token": f"t{len(calls)}", "expiration": 1000}})

        cache = _cache(handler, clock)

        async def scenario():
            nonlocal release
            release = asyncio.Event()
            await cache.get_token()
            clock.advance(700)  # 180s left: inside the buffer, still valid

            refresher = asyncio.ensure_future(cache.get_token())
            await asyncio.sleep(0)
            stale = await cache.get_token()
            release.set()
            return stale, await refresher

        stale, fresh = asyncio.run(scenario())
        assert stale == "t1"
        assert fresh == "t2"
        assert len(calls) == 2

    def test_invalidate_forces_refresh(self, clock):
        handler, calls = _issuer()
        cache = _cache(handler, clock)

        async def scenario():
            await cache.get_token()
            cache.invalidate()
            return await cache.get_token()

        assert asyncio.run(scenario()) == "tok-2"
        assert len(calls) == 2


class TestRefreshFailures:
    def test_timeout(self, clock):
        def handler(request):
            raise httpx.ReadTimeout("slow", request=request)

        cache = _cache(handler, clock, timeout=5.0)

        with pytest.raises(TokenTimeout) as exc:
            asyncio.run(cache.get_token())
        assert exc.value.timeout_seconds == 5.0
        assert cache.credential is None

    def test_issuer_rejection_carries_message(self, clock):
        def handler(request):
            return httpx.Response(200, json={"code": 400, "message": "invalid client"})

        cache = _cache(handler, clock)

        with pytest.raises(TokenRefreshFailed) as exc:
            asyncio.run(cache.get_token())
        assert exc.value.issuer_message == "invalid client"

    def test_missing_token(self, clock):
        def handler(request):
            return httpx.Response(200, json={"code": 200, "data": {}})

        cache = _cache(handler, clock)

        with pytest.raises(TokenRefreshFailed):
            asyncio.run(cache.get_token())

    def test_failure_hook_is_called_and_next_call_retries(self, clock):
        failures = []
        attempts = []

        def handler(request):
            attempts.append(1)
            if len(attempts) == 1:
                raise httpx.ConnectError("refused", request=request)
            return httpx.Response(200, json={"code": 200, "data": {"token": "ok", "expiration": 86400}})

        async def on_failure(error):
            failures.append(error)

        cache = _cache(handler, clock, on_failure=on_failure)

        async def scenario():
            with pytest.raises(TokenRefreshFailed):
                await cache.get_token()
            return await cache.get_token()

        assert asyncio.run(scenario()) == "ok"
        assert len(failures) == 1
        assert isinstance(failures[0], TokenRefreshFailed)

    def test_failing_hook_does_not_mask_error(self, clock):
        def handler(request):
            return httpx.Response(500, text="oops")

        async def on_failure(error):
            raise RuntimeError("alert channel down")

        cache = _cache(handler, clock, on_failure=on_failure)

        with pytest.raises(TokenRefreshFailed):
            asyncio.run(cache.get_token())
