import asyncio

from qlbot.services.cache_store import InMemoryCacheStore
from qlbot.services.conversation_state import (
    STATE_PARTITION,
    ConversationState,
    ConversationStateStore,
    PendingAction,
    is_cancel,
)
from qlbot.services.state_machine import ConversationPhase


def _state(**overrides) -> ConversationState:
    values = {"user_id": 1, "pending_action": PendingAction.ADD_ENV, "chat_id": 10, "message_id": 5}
    values.update(overrides)
    return ConversationState(**values)


class TestConversationStateStore:
    def test_begin_then_get(self, clock):
        store = ConversationStateStore(InMemoryCacheStore(), ttl=600, clock=clock)

        async def scenario():
            await store.begin(_state(resource_id="3"))
            return await store.get(1), await store.phase(1)

        state, phase = asyncio.run(scenario())
        assert state.pending_action == PendingAction.ADD_ENV
        assert state.resource_id == "3"
        assert phase == ConversationPhase.AWAITING_INPUT

    def test_new_prompt_replaces_previous(self, clock):
        store = ConversationStateStore(InMemoryCacheStore(), clock=clock)

        async def scenario():
            await store.begin(_state())
            await store.begin(_state(pending_action=PendingAction.ADD_DEPENDENCY, dep_type="nodejs"))
            return await store.get(1)

        state = asyncio.run(scenario())
        assert state.pending_action == PendingAction.ADD_DEPENDENCY
        assert state.dep_type == "nodejs"

    def test_clear_returns_to_idle(self, clock):
        store = ConversationStateStore(InMemoryCacheStore(), clock=clock)

        async def scenario():
            await store.begin(_state())
            cleared = await store.clear(1)
            return cleared, await store.get(1), await store.clear(1)

        cleared, state, cleared_again = asyncio.run(scenario())
        assert cleared is True
        assert state is None
        assert cleared_again is False

    def test_state_expires_after_ttl(self, clock):
        store = ConversationStateStore(InMemoryCacheStore(), ttl=600, clock=clock)

        async def scenario():
            await store.begin(_state())
            clock.advance(599)
            alive = await store.get(1)
            clock.advance(1)
            return alive, await store.get(1)

        alive, expired = asyncio.run(scenario())
        assert alive is not None
        assert expired is None

    def test_states_are_per_user(self, clock):
        store = ConversationStateStore(InMemoryCacheStore(), clock=clock)

        async def scenario():
            await store.begin(_state(user_id=1))
            return await store.get(2)

        assert asyncio.run(scenario()) is None

    def test_unreadable_state_is_dropped(self, clock):
        cache_store = InMemoryCacheStore()
        store = ConversationStateStore(cache_store, clock=clock)

        async def scenario():
            await cache_store.set(STATE_PARTITION, "1", {"pending_action": "unknown"}, clock() + 60)
            state = await store.get(1)
            raw = await cache_store.get(STATE_PARTITION, "1")
            return state, raw.value

        state, raw = asyncio.run(scenario())
        assert state is None
        assert raw is None


class TestIsCancel:
    def test_plain_keyword(self):
        assert is_cancel("/cancel") is True

    def test_with_bot_suffix_and_spaces(self):
        assert is_cancel("  /cancel@ql_bot ") is True

    def test_other_text(self):
        assert is_cancel("cancel") is False
        assert is_cancel("/cancelled") is False
