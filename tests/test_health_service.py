import asyncio

from qlbot.services.health_service import get_system_health, purge_expired_entries
from qlbot.services.result import Result
from tests.conftest import ok


class TestPurgeExpiredEntries:
    def test_purges_expired_cache_rows(self, bot, panel, clock):
        panel.on("GET", "/open/envs", ok([]))

        async def scenario():
            await bot.panel_for(42).list_envs()
            clock.advance(bot.settings.cache_ttl_envs)
            return await purge_expired_entries(bot)

        assert asyncio.run(scenario()) == {"purged": 1, "ok": True}

    def test_nothing_to_purge(self, bot):
        assert asyncio.run(purge_expired_entries(bot)) == {"purged": 0, "ok": True}

    def test_store_failure(self, bot):
        async def failing(now):
            return Result.failure("locked")

        bot.cache_store.purge_expired = failing

        assert asyncio.run(purge_expired_entries(bot)) == {"purged": 0, "ok": False, "error": "locked"}


class TestSystemHealth:
    def test_without_token(self, bot):
        health = get_system_health(bot)

        assert health["token"] == {"cached": False, "refresh_count": 0}
        assert health["cache"]["backend"] == "memory"
        assert "checked_at" in health

    def test_with_token(self, bot, clock):
        asyncio.run(bot.credentials.get_token())

        token = get_system_health(bot)["token"]
        assert token["cached"] is True
        assert token["valid_for_seconds"] == 86400 - 120
        assert token["needs_refresh"] is False
        assert token["refresh_count"] == 1

    def test_token_near_expiry(self, bot, clock):
        asyncio.run(bot.credentials.get_token())
        clock.advance(86400 - 120 - 200)

        token = get_system_health(bot)["token"]
        assert token["needs_refresh"] is True
        assert token["valid_for_seconds"] == 200
