"""Process-wide collaborators shared by every update handler.

The credential cache and the state store are the only state that outlives a
single update; everything chat-scoped is derived per call via panel_for().
"""

import time
from dataclasses import dataclass, field
from typing import Callable, Optional

import httpx
from sqlalchemy.orm import sessionmaker

from qlbot.config import Settings
from qlbot.logging_config import get_logger
from qlbot.services.alert_service import alert_error
from qlbot.services.cache_store import CacheStore, InMemoryCacheStore, SqlCacheStore
from qlbot.services.conversation_state import ConversationStateStore
from qlbot.services.gateway import CachedGateway
from qlbot.services.panel_api import PanelApi
from qlbot.services.partitioned_cache import PartitionedCache, chat_partition
from qlbot.services.qinglong_client import QinglongClient
from qlbot.services.telegram_service import TelegramService
from qlbot.services.token_service import CredentialCache

logger = get_logger("bot_context")


@dataclass
class BotContext:
    settings: Settings
    telegram: TelegramService
    credentials: CredentialCache
    client: QinglongClient
    cache_store: CacheStore
    states: ConversationStateStore
    clock: Callable[[], float] = field(default=time.time)
    download_transport: Optional[httpx.AsyncBaseTransport] = None

    def panel_for(self, chat_id: int | str) -> PanelApi:
        cache = PartitionedCache(self.cache_store, chat_partition(chat_id), clock=self.clock)
        return PanelApi(CachedGateway(self.client, cache), ttls=self.settings.cache_ttls())


def build_cache_store(settings: Settings, session_factory: Optional[sessionmaker] = None) -> CacheStore:
    if settings.cache_backend == "database":
        from qlbot.database import SessionLocal, init_db

        if session_factory is None:
            init_db()
            session_factory = SessionLocal
        logger.info("Using SQL cache backend")
        return SqlCacheStore(session_factory)
    return InMemoryCacheStore()


def build_context(
    settings: Settings,
    panel_transport: Optional[httpx.AsyncBaseTransport] = None,
    telegram_transport: Optional[httpx.AsyncBaseTransport] = None,
    cache_store: Optional[CacheStore] = None,
    clock: Callable[[], float] = time.time,
    download_transport: Optional[httpx.AsyncBaseTransport] = None,
) -> BotContext:
    telegram = TelegramService(settings.tg_bot_token, transport=telegram_transport)

    async def report_token_failure(error: Exception) -> None:
        await alert_error(
            telegram,
            settings.alert_chat_id,
            "Panel token refresh failed",
            {"panel": settings.ql_base_url, "error": str(error)},
        )

    credentials = CredentialCache(
        settings.ql_base_url,
        settings.ql_client_id,
        settings.ql_client_secret,
        refresh_buffer=settings.token_refresh_buffer_seconds,
        early_expiry=settings.token_early_expiry_seconds,
        timeout=settings.token_timeout_seconds,
        clock=clock,
        transport=panel_transport,
        on_failure=report_token_failure,
    )
    client = QinglongClient(
        settings.ql_base_url,
        credentials,
        timeout=settings.request_timeout_seconds,
        transport=panel_transport,
    )
    store = cache_store if cache_store is not None else build_cache_store(settings)
    states = ConversationStateStore(store, ttl=settings.conversation_state_ttl_seconds, clock=clock)
    return BotContext(
        settings=settings,
        telegram=telegram,
        credentials=credentials,
        client=client,
        cache_store=store,
        states=states,
        clock=clock,
        download_transport=download_transport,
    )
