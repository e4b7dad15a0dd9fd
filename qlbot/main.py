import asyncio
import os

from fastapi import FastAPI

from qlbot import __version__
from qlbot.config import settings
from qlbot.logging_config import get_logger, setup_logging
from qlbot.routers import admin, telegram_webhook
from qlbot.services.bot_context import build_context
from qlbot.services.health_service import purge_expired_entries

setup_logging(settings.log_level)

app = FastAPI(
    title="Qinglong Bot",
    description="Telegram webhook front end for a Qinglong panel",
    version=__version__,
)

app.include_router(telegram_webhook.router)
app.include_router(admin.router)

app.state.bot = build_context(settings)

sweeper_logger = get_logger("cache_sweeper")
_sweeper_task: asyncio.Task | None = None


def _is_sweeper_enabled() -> bool:
    if os.environ.get("PYTEST_CURRENT_TEST"):
        return False
    return settings.cache_sweep_enabled


async def _cache_sweeper_loop() -> None:
    interval_seconds = max(settings.cache_sweep_interval_seconds, 1.0)
    while True:
        try:
            await asyncio.sleep(interval_seconds)
            results = await purge_expired_entries(app.state.bot)
            if results["purged"]:
                sweeper_logger.info("Cache sweeper purged", extra={"context": results})
        except asyncio.CancelledError:
            break
        except Exception as exc:
            sweeper_logger.error(
                "Cache sweeper loop failed",
                extra={"context": {"error": str(exc)}},
            )


@app.on_event("startup")
async def start_cache_sweeper() -> None:
    global _sweeper_task
    if not _is_sweeper_enabled():
        return
    if _sweeper_task is None or _sweeper_task.done():
        _sweeper_task = asyncio.create_task(_cache_sweeper_loop())
        sweeper_logger.info("Cache sweeper started")


@app.on_event("shutdown")
async def stop_cache_sweeper() -> None:
    global _sweeper_task
    if _sweeper_task is None:
        return
    _sweeper_task.cancel()
    try:
        await _sweeper_task
    except asyncio.CancelledError:
        pass
    _sweeper_task = None


@app.get("/health")
async def health():
    return {"status": "ok", "version": __version__}
