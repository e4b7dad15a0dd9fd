"""Webhook administration and diagnostics."""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request

from qlbot.routers.telegram_webhook import get_bot_context
from qlbot.services.bot_context import BotContext
from qlbot.services.health_service import get_system_health

router = APIRouter(tags=["admin"])


def _require_secret(bot: BotContext, provided: Optional[str]) -> None:
    expected = bot.settings.webhook_secret
    if not expected or not provided or provided != expected:
        raise HTTPException(status_code=401, detail="Unauthorized")


@router.get("/set-webhook")
async def set_webhook(request: Request, secret: Optional[str] = None, bot: BotContext = Depends(get_bot_context)):
    """Point Telegram at this deployment's /webhook."""
    _require_secret(bot, secret)
    webhook_url = str(request.url_for("handle_telegram_webhook"))
    result = await bot.telegram.set_webhook(webhook_url)
    return {"webhookUrl": webhook_url, "result": result}


@router.get("/delete-webhook")
async def delete_webhook(secret: Optional[str] = None, bot: BotContext = Depends(get_bot_context)):
    _require_secret(bot, secret)
    return await bot.telegram.delete_webhook()


@router.get("/set-commands")
async def set_commands(secret: Optional[str] = None, bot: BotContext = Depends(get_bot_context)):
    _require_secret(bot, secret)
    return await bot.telegram.set_my_commands()


@router.get("/admin/health")
async def system_health(secret: Optional[str] = None, bot: BotContext = Depends(get_bot_context)):
    """Credential and cache status."""
    _require_secret(bot, secret)
    return get_system_health(bot)
