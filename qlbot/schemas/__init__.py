from qlbot.schemas.events import CallbackEvent, MessageEvent
from qlbot.schemas.telegram import TelegramUpdate, TelegramWebhookResponse

__all__ = ["CallbackEvent", "MessageEvent", "TelegramUpdate", "TelegramWebhookResponse"]
