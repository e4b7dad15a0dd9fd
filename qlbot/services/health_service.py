from datetime import datetime, timezone

from qlbot.logging_config import get_logger
from qlbot.services.bot_context import BotContext

logger = get_logger("health_service")


async def purge_expired_entries(context: BotContext) -> dict:
    """Drop cache rows and abandoned prompts whose deadline has passed."""
    result = await context.cache_store.purge_expired(context.clock())
    if not result.ok:
        logger.warning("Cache sweep failed", extra={"context": {"error": result.error}})
        return {"purged": 0, "ok": False, "error": result.error}
    if result.value:
        logger.info(f"Cache sweep removed {result.value} expired entries")
    return {"purged": result.value or 0, "ok": True}


def get_system_health(context: BotContext) -> dict:
    """Credential and cache status; never calls the panel."""
    credential = context.credentials.credential
    now = context.clock()
    if credential is None:
        token_status = {"cached": False}
    else:
        token_status = {
            "cached": True,
            "valid_for_seconds": max(0, round(credential.valid_until - now)),
            "needs_refresh": credential.valid_until <= now + context.credentials.refresh_buffer,
        }
    token_status["refresh_count"] = context.credentials.refresh_count

    return {
        "cache": {"backend": context.settings.cache_backend},
        "token": token_status,
        "panel": context.settings.ql_base_url,
        "checked_at": datetime.now(timezone.utc).isoformat(),
    }
