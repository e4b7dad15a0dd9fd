"""Transport-neutral inbound events consumed by the bot core."""

from typing import Optional, Union

from pydantic import BaseModel

from qlbot.schemas.telegram import TelegramDocument, TelegramUpdate


class MessageEvent(BaseModel):
    user_id: int
    chat_id: int
    message_id: int
    text: str = ""
    document: Optional[TelegramDocument] = None


class CallbackEvent(BaseModel):
    user_id: int
    chat_id: int
    message_id: int
    data: str
    interaction_id: str


InboundEvent = Union[MessageEvent, CallbackEvent]


def event_from_update(update: TelegramUpdate) -> Optional[InboundEvent]:
    """None for updates the bot does not act on (channel posts, callbacks without message...)."""
    callback = update.callback_query
    if callback is not None:
        if callback.message is None:
            return None
        return CallbackEvent(
            user_id=callback.from_user.id,
            chat_id=callback.message.chat.id,
            message_id=callback.message.message_id,
            data=callback.data or "",
            interaction_id=callback.id,
        )

    message = update.message
    if message is not None and message.from_user is not None:
        return MessageEvent(
            user_id=message.from_user.id,
            chat_id=message.chat.id,
            message_id=message.message_id,
            text=(message.text or "").strip(),
            document=message.document,
        )
    return None
