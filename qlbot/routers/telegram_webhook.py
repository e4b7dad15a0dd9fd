import json
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Request
from pydantic import ValidationError

from qlbot.logging_config import get_logger
from qlbot.schemas.events import event_from_update
from qlbot.schemas.telegram import TelegramUpdate, TelegramWebhookResponse
from qlbot.services.bot_context import BotContext
from qlbot.services.update_service import process_update

logger = get_logger("telegram_webhook")

router = APIRouter()


def get_bot_context(request: Request) -> BotContext:
    return request.app.state.bot


async def parse_telegram_update(request: Request) -> Optional[dict]:
    """
    Parse Telegram update with tolerant decoding to avoid utf-8 crashes.
    Returns dict or None.
    """
    try:
        return await request.json()
    except Exception as e:
        logger.warning(f"Standard request.json() failed: {e}, fallback decoding")

    raw = await request.body()
    for enc in ("utf-8", "latin-1"):
        try:
            return json.loads(raw.decode(enc, errors="replace"))
        except ValueError:
            continue

    logger.error("Failed to decode Telegram webhook payload after fallbacks")
    return None


@router.post("/webhook", response_model=TelegramWebhookResponse)
async def handle_telegram_webhook(
    request: Request,
    background_tasks: BackgroundTasks,
    bot: BotContext = Depends(get_bot_context),
):
    """
    Accept a Telegram update and process it after the response is sent:
    - Button presses -> acknowledged, then dispatched by callback data
    - Messages -> pending input, uploads, menu buttons, commands
    """
    body = await parse_telegram_update(request)
    if not isinstance(body, dict):
        return TelegramWebhookResponse(success=False, message="Invalid telegram payload")

    logger.debug(f"Telegram webhook received: {str(body)[:500]}")

    try:
        update = TelegramUpdate(**body)
    except ValidationError as e:
        logger.warning(f"Unsupported Telegram update: {e.error_count()} validation errors")
        return TelegramWebhookResponse(success=False, message="Unsupported update")

    event = event_from_update(update)
    if event is None:
        return TelegramWebhookResponse(success=True, message="No actionable content")

    background_tasks.add_task(process_update, bot, event)
    return TelegramWebhookResponse(success=True, message="Accepted")
