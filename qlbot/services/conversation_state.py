"""Per-user pending actions awaiting free-text input.

States live in a PartitionedCache partition, so they share the cache's TTL
semantics: an abandoned prompt expires instead of trapping the user forever.
"""

import time
from enum import Enum
from typing import Callable, Optional

from pydantic import BaseModel, ValidationError

from qlbot.logging_config import get_logger
from qlbot.services.cache_store import CacheStore
from qlbot.services.partitioned_cache import PartitionedCache
from qlbot.services.state_machine import ConversationPhase, await_input, complete

logger = get_logger("conversation_state")

STATE_PARTITION = "conversation-state"
CANCEL_KEYWORD = "/cancel"


class PendingAction(str, Enum):
    EDIT_TASK_SCHEDULE = "edit_cron"
    CREATE_TASK = "new_cron"
    SCHEDULE_UPLOADED_FILE = "create_cron"
    SCHEDULE_SCRIPT = "add_script_cron"
    ADD_ENV = "add_env"
    EDIT_ENV = "edit_env"
    ADD_SUBSCRIPTION = "add_sub"
    EDIT_SUBSCRIPTION = "edit_sub"
    ADD_DEPENDENCY = "add_dep"


class ConversationState(BaseModel):
    user_id: int
    pending_action: PendingAction
    chat_id: int
    resource_id: Optional[str] = None
    message_id: Optional[int] = None
    file_name: Optional[str] = None
    path: Optional[str] = None
    dep_type: Optional[str] = None


def is_cancel(text: str) -> bool:
    return text.strip().split("@")[0] == CANCEL_KEYWORD


class ConversationStateStore:
    def __init__(self, store: CacheStore, ttl: float = 600.0, clock: Callable[[], float] = time.time):
        self.ttl = ttl
        self._cache = PartitionedCache(store, STATE_PARTITION, clock=clock)

    async def get(self, user_id: int) -> Optional[ConversationState]:
        raw = await self._cache.get(str(user_id))
        if raw is None:
            return None
        try:
            return ConversationState.model_validate(raw)
        except ValidationError as e:
            logger.warning(f"Dropping unreadable state for user {user_id}: {e}")
            await self._cache.delete(str(user_id))
            return None

    async def phase(self, user_id: int) -> ConversationPhase:
        state = await self.get(user_id)
        return ConversationPhase.AWAITING_INPUT if state else ConversationPhase.IDLE

    async def begin(self, state: ConversationState) -> None:
        """Idle or awaiting -> awaiting; any previous pending action is replaced."""
        await_input(await self.phase(state.user_id))
        await self._cache.set(str(state.user_id), state.model_dump(mode="json"), self.ttl)
        logger.info(
            "Awaiting input",
            extra={"context": {"user_id": state.user_id, "pending_action": state.pending_action.value}},
        )

    async def clear(self, user_id: int) -> bool:
        """Return to idle. False when there was nothing pending."""
        current = await self.phase(user_id)
        if current is ConversationPhase.IDLE:
            return False
        complete(current)
        await self._cache.delete(str(user_id))
        return True
