import json
from typing import Any, Callable, Optional, Union

import httpx
import pytest

from qlbot.config import Settings
from qlbot.schemas.events import CallbackEvent, MessageEvent
from qlbot.services.action_codec import Action, encode
from qlbot.services.bot_context import build_context
from qlbot.services.cache_store import InMemoryCacheStore

PANEL_URL = "http://panel.test"
BOT_TOKEN = "test-token"

Reply = Union[dict, Callable[[httpx.Request], httpx.Response]]


def ok(data: Any = None) -> dict:
    return {"code": 200, "data": data}


class FakeClock:
    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def _respond(reply: Reply, request: httpx.Request) -> httpx.Response:
    if callable(reply):
        return reply(request)
    return httpx.Response(200, json=reply)


class FakePanel:
    """Qinglong /open API double. Routes are keyed by (method, path?query)."""

    def __init__(self, token_lifetime: float = 86400):
        self.routes: dict[tuple[str, str], Reply] = {}
        self.requests: list[tuple[str, str, Any]] = []
        self.token_calls = 0
        self.token_lifetime = token_lifetime
        self.token_reply: Optional[Reply] = None

    def on(self, method: str, path: str, reply: Reply) -> None:
        self.routes[(method, path)] = reply

    def calls(self, method: Optional[str] = None, path: Optional[str] = None) -> list[tuple[str, str, Any]]:
        return [
            call
            for call in self.requests
            if (method is None or call[0] == method) and (path is None or call[1] == path)
        ]

    @property
    def writes(self) -> list[tuple[str, str, Any]]:
        return [call for call in self.requests if call[0] != "GET"]

    def handler(self, request: httpx.Request) -> httpx.Response:
        target = request.url.raw_path.decode()
        if request.url.path == "/open/auth/token":
            self.token_calls += 1
            if self.token_reply is not None:
                return _respond(self.token_reply, request)
            return httpx.Response(200, json=ok({"token": "panel-token", "expiration": self.token_lifetime}))

        body = json.loads(request.content) if request.content else None
        self.requests.append((request.method, target, body))
        reply = self.routes.get((request.method, target))
        if reply is None:
            return httpx.Response(404, json={"code": 404, "message": f"no route {request.method} {target}"})
        return _respond(reply, request)


class FakeTelegram:
    """Bot API double recording every method call."""

    def __init__(self):
        self.calls: list[tuple[str, dict]] = []

    def methods(self) -> list[str]:
        return [method for method, _ in self.calls]

    def payloads(self, method: str) -> list[dict]:
        return [payload for name, payload in self.calls if name == method]

    def texts(self) -> list[str]:
        return [payload["text"] for name, payload in self.calls if name in ("sendMessage", "editMessageText")]

    def last_text(self) -> str:
        return self.texts()[-1]

    def handler(self, request: httpx.Request) -> httpx.Response:
        method = request.url.path.rsplit("/", 1)[-1]
        payload = json.loads(request.content) if request.content else {}
        self.calls.append((method, payload))
        if method == "getFile":
            return httpx.Response(200, json={"ok": True, "result": {"file_path": f"documents/{payload['file_id']}"}})
        return httpx.Response(200, json={"ok": True, "result": {"message_id": 999}})


class FakeDownloads:
    def __init__(self):
        self.files: dict[str, httpx.Response] = {}
        self.requested: list[str] = []

    def serve(self, url: str, content: str, status: int = 200) -> None:
        self.files[url] = httpx.Response(status, text=content)

    def handler(self, request: httpx.Request) -> httpx.Response:
        url = str(request.url)
        self.requested.append(url)
        return self.files.get(url, httpx.Response(404, text="not found"))


def make_settings(**overrides) -> Settings:
    values = {
        "tg_bot_token": BOT_TOKEN,
        "ql_base_url": PANEL_URL,
        "ql_client_id": "client-id",
        "ql_client_secret": "client-secret",
        "admin_user_ids": "",
        "webhook_secret": "s3cret",
        "alert_chat_id": "",
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


def callback(data: Union[str, Action], user_id: int = 42, chat_id: int = 42, message_id: int = 7) -> CallbackEvent:
    raw = data if isinstance(data, str) else encode(data)
    return CallbackEvent(user_id=user_id, chat_id=chat_id, message_id=message_id, data=raw, interaction_id="cb-1")


def message(text: str = "", user_id: int = 42, chat_id: int = 42, document: Optional[dict] = None) -> MessageEvent:
    return MessageEvent(user_id=user_id, chat_id=chat_id, message_id=100, text=text, document=document)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def panel():
    return FakePanel()


@pytest.fixture
def telegram():
    return FakeTelegram()


@pytest.fixture
def downloads():
    return FakeDownloads()


@pytest.fixture
def make_bot(panel, telegram, downloads, clock):
    def _make(**settings_overrides):
        return build_context(
            make_settings(**settings_overrides),
            panel_transport=httpx.MockTransport(panel.handler),
            telegram_transport=httpx.MockTransport(telegram.handler),
            cache_store=InMemoryCacheStore(),
            clock=clock,
            download_transport=httpx.MockTransport(downloads.handler),
        )

    return _make


@pytest.fixture
def bot(make_bot):
    return make_bot()
