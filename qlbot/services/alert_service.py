"""Alert service for sending operational notifications to Telegram."""

import html
from typing import Optional

from qlbot.logging_config import get_logger
from qlbot.services.telegram_service import TelegramService

logger = get_logger("alert_service")


async def send_alert(
    telegram: TelegramService,
    chat_id: Optional[str],
    level: str,
    message: str,
    context: Optional[dict] = None,
) -> bool:
    """Send alert to the operator chat.

    Args:
        telegram: Bot transport used for delivery
        chat_id: Operator chat; alerts are only logged when empty
        level: INFO, WARNING, ERROR, CRITICAL
        message: Alert message
        context: Optional context dict

    Returns:
        True if sent successfully
    """
    if not chat_id:
        logger.warning(f"Alert not configured: {level} - {message}")
        return False

    emoji = {"INFO": "ℹ️", "WARNING": "⚠️", "ERROR": "❌", "CRITICAL": "🔥"}

    text = f"{emoji.get(level, '📢')} <b>{level}</b>\n\n{html.escape(message)}"

    if context:
        context_str = "\n".join(f"  {k}: {v}" for k, v in context.items())
        text += f"\n\n<pre>{html.escape(context_str)}</pre>"

    result = await telegram.send_message(chat_id, text)
    if not result.get("ok"):
        logger.error(f"Failed to send alert: {result.get('error') or result.get('description')}")
        return False
    return True


async def alert_error(
    telegram: TelegramService, chat_id: Optional[str], message: str, context: Optional[dict] = None
) -> bool:
    """Shortcut for ERROR level alert."""
    return await send_alert(telegram, chat_id, "ERROR", message, context)

