from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

from qlbot import __version__
from qlbot.main import app
from qlbot.routers.telegram_webhook import get_bot_context
from qlbot.schemas.events import CallbackEvent, MessageEvent, event_from_update
from qlbot.schemas.telegram import TelegramUpdate

MESSAGE_UPDATE = {
    "update_id": 1,
    "message": {
        "message_id": 10,
        "date": 1700000000,
        "chat": {"id": 42, "type": "private"},
        "from": {"id": 42, "is_bot": False, "first_name": "Ann"},
        "text": "  /tasks  ",
    },
}

CALLBACK_UPDATE = {
    "update_id": 2,
    "callback_query": {
        "id": "cb-9",
        "from": {"id": 42, "first_name": "Ann"},
        "message": {"message_id": 11, "date": 1700000000, "chat": {"id": 42, "type": "private"}},
        "data": "tasks_0",
    },
}


@pytest.fixture
def client(bot):
    app.dependency_overrides[get_bot_context] = lambda: bot
    try:
        with TestClient(app) as test_client:
            yield test_client
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def processed():
    events = []

    async def record(bot, event):
        events.append(event)

    with patch("qlbot.routers.telegram_webhook.process_update", new=record):
        yield events


class TestEventFromUpdate:
    def test_message(self):
        event = event_from_update(TelegramUpdate(**MESSAGE_UPDATE))
        assert isinstance(event, MessageEvent)
        assert (event.user_id, event.chat_id, event.text) == (42, 42, "/tasks")

    def test_callback(self):
        event = event_from_update(TelegramUpdate(**CALLBACK_UPDATE))
        assert isinstance(event, CallbackEvent)
        assert event.message_id == 11
        assert event.data == "tasks_0"
        assert event.interaction_id == "cb-9"

    def test_callback_without_message(self):
        update = {"update_id": 3, "callback_query": {"id": "x", "from": {"id": 1}, "data": "tasks_0"}}
        assert event_from_update(TelegramUpdate(**update)) is None

    def test_document_message(self):
        update = {
            "update_id": 4,
            "message": {
                **MESSAGE_UPDATE["message"],
                "text": None,
                "document": {"file_id": "F", "file_unique_id": "U", "file_name": "a.js"},
            },
        }
        event = event_from_update(TelegramUpdate(**update))
        assert event.text == ""
        assert event.document.file_name == "a.js"

    def test_message_without_sender(self):
        update = {"update_id": 5, "message": {"message_id": 1, "date": 1, "chat": {"id": -100, "type": "channel"}}}
        assert event_from_update(TelegramUpdate(**update)) is None


class TestWebhookEndpoint:
    def test_accepts_message(self, client, processed):
        response = client.post("/webhook", json=MESSAGE_UPDATE)

        assert response.status_code == 200
        assert response.json() == {"success": True, "message": "Accepted"}
        assert len(processed) == 1
        assert processed[0].text == "/tasks"

    def test_accepts_callback(self, client, processed):
        response = client.post("/webhook", json=CALLBACK_UPDATE)

        assert response.json()["success"] is True
        assert isinstance(processed[0], CallbackEvent)

    def test_invalid_json(self, client, processed):
        response = client.post("/webhook", content=b"not json", headers={"Content-Type": "application/json"})

        assert response.status_code == 200
        assert response.json() == {"success": False, "message": "Invalid telegram payload"}
        assert processed == []

    def test_unsupported_update(self, client, processed):
        response = client.post("/webhook", json={"update_id": "x", "message": {"chat": 1}})

        assert response.json() == {"success": False, "message": "Unsupported update"}

    def test_nothing_to_act_on(self, client, processed):
        response = client.post("/webhook", json={"update_id": 7})

        assert response.json() == {"success": True, "message": "No actionable content"}
        assert processed == []


class TestAdminEndpoints:
    @pytest.mark.parametrize("path", ["/set-webhook", "/delete-webhook", "/set-commands", "/admin/health"])
    def test_requires_secret(self, client, telegram, path):
        assert client.get(path).status_code == 401
        assert client.get(path, params={"secret": "wrong"}).status_code == 401
        assert telegram.calls == []

    def test_set_webhook(self, client, telegram):
        response = client.get("/set-webhook", params={"secret": "s3cret"})

        assert response.status_code == 200
        assert response.json()["webhookUrl"] == "http://testserver/webhook"
        assert telegram.payloads("setWebhook")[0]["url"] == "http://testserver/webhook"

    def test_set_commands(self, client, telegram):
        response = client.get("/set-commands", params={"secret": "s3cret"})

        assert response.status_code == 200
        commands = telegram.payloads("setMyCommands")[0]["commands"]
        assert {"command": "tasks", "description": "Scheduled tasks"} in commands

    def test_delete_webhook(self, client, telegram):
        client.get("/delete-webhook", params={"secret": "s3cret"})

        assert telegram.methods() == ["deleteWebhook"]

    def test_admin_health(self, client):
        response = client.get("/admin/health", params={"secret": "s3cret"})

        body = response.json()
        assert body["token"] == {"cached": False, "refresh_count": 0}
        assert body["cache"] == {"backend": "memory"}
        assert body["panel"] == "http://panel.test"

    def test_secret_unset_locks_admin(self, make_bot):
        app.dependency_overrides[get_bot_context] = lambda: make_bot(webhook_secret="")
        try:
            with TestClient(app) as client:
                assert client.get("/set-webhook", params={"secret": ""}).status_code == 401
        finally:
            app.dependency_overrides.clear()


class TestHealth:
    def test_health(self, client):
        response = client.get("/health")

        assert response.json() == {"status": "ok", "version": __version__}
