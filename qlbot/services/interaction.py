from dataclasses import dataclass
from typing import Optional

from qlbot.services.action_codec import Action
from qlbot.services.bot_context import BotContext
from qlbot.services.conversation_state import ConversationState, PendingAction
from qlbot.services.keyboards import cancel_to
from qlbot.services.panel_api import PanelApi
from qlbot.services.resource_views import Screen, show


@dataclass
class Interaction:
    """One user's request against one chat: where to render and which cache partition to use.

    message_id is the bot message a button lives on; None for typed input,
    in which case screens are sent as new messages.
    """

    bot: BotContext
    user_id: int
    chat_id: int
    message_id: Optional[int] = None

    @property
    def panel(self) -> PanelApi:
        return self.bot.panel_for(self.chat_id)

    async def render(self, screen: Screen, message_id: Optional[int] = None) -> dict:
        return await show(self.bot.telegram, self.chat_id, message_id or self.message_id, screen)

    async def reply(self, text: str, markup: Optional[dict] = None) -> dict:
        return await self.bot.telegram.send_message(self.chat_id, text, reply_markup=markup)

    async def prompt(
        self,
        pending_action: PendingAction,
        text: str,
        cancel_action: Optional[Action] = None,
        as_new_message: bool = False,
        **fields,
    ) -> None:
        """Ask for follow-up text; the next message from this user is routed to pending_action."""
        await self.bot.states.begin(
            ConversationState(
                user_id=self.user_id,
                pending_action=pending_action,
                chat_id=self.chat_id,
                message_id=self.message_id,
                **fields,
            )
        )
        markup = cancel_to(cancel_action) if cancel_action is not None else None
        if as_new_message:
            await self.reply(text, markup)
        else:
            await self.render(Screen(text, markup))
