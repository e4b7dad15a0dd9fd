from typing import Optional

import httpx

from qlbot.logging_config import get_logger

logger = get_logger("telegram_service")

BOT_COMMANDS = [
    {"command": "start", "description": "Start"},
    {"command": "tasks", "description": "Scheduled tasks"},
    {"command": "envs", "description": "Environment variables"},
    {"command": "subs", "description": "Subscriptions"},
    {"command": "deps", "description": "Dependencies"},
    {"command": "scripts", "description": "Scripts"},
    {"command": "help", "description": "Help"},
]


class TelegramService:
    """Service for talking to the Telegram Bot API.

    Delivery is best effort: transport errors are logged and returned as
    {"ok": False, ...} rather than raised.
    """

    BASE_URL = "https://api.telegram.org/bot{token}"
    FILE_URL = "https://api.telegram.org/file/bot{token}/{path}"

    def __init__(self, bot_token: str, timeout: float = 30.0, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.bot_token = bot_token
        self.base_url = self.BASE_URL.format(token=bot_token)
        self.timeout = timeout
        self._transport = transport

    async def _make_request(self, method: str, data: Optional[dict] = None) -> dict:
        """Make request to Telegram API."""
        url = f"{self.base_url}/{method}"
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(url, json=data or {})
                result = response.json()
        except Exception as e:
            logger.error(f"Telegram API error: {method}: {e}")
            return {"ok": False, "error": str(e)}

        if not result.get("ok"):
            logger.warning(
                f"Telegram API rejected {method}",
                extra={"context": {"description": result.get("description")}},
            )
        return result

    async def send_message(
        self,
        chat_id: int | str,
        text: str,
        reply_markup: Optional[dict] = None,
        parse_mode: str = "HTML",
    ) -> dict:
        """Send message to Telegram chat."""
        data = {
            "chat_id": chat_id,
            "text": text,
            "parse_mode": parse_mode,
        }
        if reply_markup:
            data["reply_markup"] = reply_markup

        return await self._make_request("sendMessage", data)

    async def edit_message(
        self,
        chat_id: int | str,
        message_id: int,
        text: str,
        reply_markup: Optional[dict] = None,
        parse_mode: str = "HTML",
    ) -> dict:
        """Edit existing message."""
        data = {
            "chat_id": chat_id,
            "message_id": message_id,
            "text": text,
            "parse_mode": parse_mode,
        }
        if reply_markup:
            data["reply_markup"] = reply_markup

        return await self._make_request("editMessageText", data)

    async def answer_callback_query(self, callback_query_id: str, text: Optional[str] = None) -> dict:
        """Acknowledge a button press; stops the client-side spinner."""
        return await self._make_request(
            "answerCallbackQuery", {"callback_query_id": callback_query_id, "text": text or ""}
        )

    async def get_file_url(self, file_id: str) -> Optional[str]:
        result = await self._make_request("getFile", {"file_id": file_id})
        if not result.get("ok"):
            return None
        return self.FILE_URL.format(token=self.bot_token, path=result["result"]["file_path"])

    async def set_webhook(self, url: str) -> dict:
        return await self._make_request(
            "setWebhook", {"url": url, "allowed_updates": ["message", "callback_query"]}
        )

    async def delete_webhook(self) -> dict:
        return await self._make_request("deleteWebhook")

    async def set_my_commands(self, commands: Optional[list[dict]] = None) -> dict:
        return await self._make_request("setMyCommands", {"commands": commands or BOT_COMMANDS})
