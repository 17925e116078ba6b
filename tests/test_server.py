from unittest.mock import MagicMock, patch

import pytest
from fastapi.testclient import TestClient

from cloudtrack_agent.llm_client import AIRequestError
from cloudtrack_agent.models import ChannelResult
from cloudtrack_agent.notifier import NotificationResult
from cloudtrack_agent.server import create_app

from tests.factories import TODAY

RESOURCE = {"name": "web-01", "type": "VPS", "provider": "Hetzner", "expiryDate": "2030-01-01", "cost": 5}


@pytest.fixture
def notifier():
    mock = MagicMock()
    sent = NotificationResult(channels_sent=["Telegram"], results=[ChannelResult("Telegram", True)])
    mock.notify.return_value = sent
    mock.notify_change.return_value = sent
    return mock


@pytest.fixture
def ai_client():
    client = MagicMock()
    client.complete.return_value = "## Report"
    return client


@pytest.fixture
def client(app_config, notifier, ai_client):
    app_config.ai.openai_api_key = "sk-test"
    app = create_app(app_config, notifier=notifier, client_factory=MagicMock(return_value=ai_client))
    return TestClient(app)


def test_health(client):
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json()["ok"] is True


def test_api_key_required_when_secret_set(app_config, notifier):
    app_config.server.api_secret = "s3cret"
    client = TestClient(create_app(app_config, notifier=notifier))

    assert client.get("/api/v1/settings").status_code == 401
    assert client.get("/api/v1/settings", headers={"x-api-key": "wrong"}).status_code == 401
    assert client.get("/api/v1/settings", headers={"x-api-key": "s3cret"}).status_code == 200
    assert client.get("/health").status_code == 200


def test_resource_crud_dispatches_change_notifications(client, notifier):
    created = client.post("/api/v1/resources", json=RESOURCE)
    assert created.status_code == 201
    body = created.json()
    resource_id = body["data"]["id"]
    assert body["notification"] == {"success": True, "channels": ["Telegram"], "failures": []}
    assert notifier.notify_change.call_args[0][0] == "created"

    fetched = client.get(f"/api/v1/resources/{resource_id}")
    assert fetched.json()["data"]["name"] == "web-01"

    updated = client.put(f"/api/v1/resources/{resource_id}", json={"expiryDate": "2031-01-01"})
    assert updated.status_code == 200
    assert updated.json()["data"]["expiryDate"] == "2031-01-01"
    action, _, _, changes = notifier.notify_change.call_args[0]
    assert action == "updated"
    assert changes == ["Expiry date: 2030-01-01 → 2031-01-01"]

    deleted = client.delete(f"/api/v1/resources/{resource_id}")
    assert deleted.status_code == 200
    assert notifier.notify_change.call_args[0][0] == "deleted"
    assert client.get(f"/api/v1/resources/{resource_id}").status_code == 404


def test_create_invalid_resource(client, notifier):
    response = client.post("/api/v1/resources", json={"type": "VPS"})

    assert response.status_code == 400
    assert response.json()["success"] is False
    notifier.notify_change.assert_not_called()


def test_update_missing_resource(client):
    assert client.put("/api/v1/resources/nope", json={"name": "x"}).status_code == 404


def test_settings_round_trip(client):
    assert client.get("/api/v1/settings").json()["reminderDays"] == 7

    client.post("/api/v1/settings", json={"reminderDays": 3, "email": {"enabled": True, "email": "ops@example.com"}})

    settings = client.get("/api/v1/settings").json()
    assert settings["reminderDays"] == 3
    assert settings["email"] == {"enabled": True, "email": "ops@example.com"}
    assert settings["telegram"] == {"enabled": False, "chatId": ""}


def test_bulk_import_and_export(client):
    items = [
        dict(RESOURCE, id="a", notificationSettings={"enabled": True, "useGlobal": False, "reminderDays": 30}),
        {"name": "missing type"},
    ]

    response = client.post("/api/v1/resources/bulk", json={"resources": items, "mode": "overwrite"})

    assert response.json()["count"] == 1
    exported = client.get("/api/v1/resources/export").json()["resources"]
    assert exported[0]["notificationSettings"] == items[0]["notificationSettings"]


def test_bulk_import_rejects_unknown_mode(client):
    response = client.post("/api/v1/resources/bulk", json={"resources": [], "mode": "replace"})

    assert response.status_code == 422


def test_cron_trigger(client, notifier):
    client.post("/api/v1/resources", json=dict(RESOURCE, expiryDate="2000-01-01"))

    response = client.post("/api/cron/trigger")

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["processed"] == 1
    assert body["notifications_sent"] == 0


def test_analyze(client, ai_client):
    client.post("/api/v1/resources", json=RESOURCE)

    response = client.post("/api/ai/analyze", json={})

    assert response.status_code == 200
    assert response.json() == {"success": True, "analysis": "## Report", "provider": "openai", "model": "gpt-4o-mini"}
    assert "web-01" in ai_client.complete.call_args[0][0]


def test_analyze_falls_back_from_uncredentialed_provider(client):
    response = client.post("/api/ai/analyze", json={"resources": [], "provider": "deepseek"})

    assert response.status_code == 200
    assert response.json()["provider"] == "openai"


def test_analyze_missing_provider_key(app_config, notifier):
    client = TestClient(create_app(app_config, notifier=notifier))

    response = client.post("/api/ai/analyze", json={"resources": [], "provider": "deepseek"})

    assert response.status_code == 400
    assert response.json()["error_code"] == "MISSING_DEEPSEEK_KEY"


def test_analyze_upstream_failure(client, ai_client):
    ai_client.complete.side_effect = AIRequestError("AI request failed (429): slow down", status=429)

    response = client.post("/api/ai/analyze", json={"resources": []})

    assert response.status_code == 502
    assert response.json()["error_code"] == "AI_RATE_LIMIT"


def test_chat(client, ai_client):
    ai_client.complete.return_value = " Renew soon. "

    response = client.post("/api/ai/chat", json={"question": "Anything expiring?"})

    assert response.json()["reply"] == "Renew soon."


@patch("cloudtrack_agent.server.list_custom_models")
def test_models_are_cached(mock_list, client):
    mock_list.return_value = ["llama3"]

    first = client.post("/api/ai/models", json={"provider": "custom"})
    second = client.post("/api/ai/models", json={"provider": "custom"})
    forced = client.post("/api/ai/models", json={"provider": "custom", "force": True})

    assert first.json()["models"] == ["llama3"]
    assert first.json()["cached"] is False
    assert second.json()["cached"] is True
    assert forced.json()["cached"] is False
    assert mock_list.call_count == 2


def test_models_without_custom_endpoint(client):
    response = client.post("/api/ai/models", json={"provider": "custom"})

    assert response.status_code == 400
    assert response.json()["error_code"] == "MISSING_CUSTOM_BASE"


def test_telegram_test_endpoint(client, notifier):
    notifier.telegram.configured = True
    notifier.telegram.send_text.return_value = ChannelResult("Telegram", True)

    response = client.post("/api/telegram", json={"chatId": "42"})

    assert response.status_code == 200
    assert response.json()["ok"] is True
    assert notifier.telegram.send_text.call_args[0][0] == "42"


def test_email_test_endpoint_not_configured(client, notifier):
    notifier.email.configured = False

    response = client.post("/api/email", json={"to": "ops@example.com"})

    assert response.status_code == 500
    notifier.email.send.assert_not_called()


def test_webhook_test_uses_saved_url(client, notifier):
    notifier.webhook.send.return_value = ChannelResult("Webhook", False, "Webhook returned HTTP 500")
    client.post("/api/v1/settings", json={"webhook": {"enabled": True, "url": "https://hooks.example.com/ct"}})

    response = client.post("/api/webhook/test", json={})

    assert response.status_code == 502
    assert notifier.webhook.send.call_args[0][0] == "https://hooks.example.com/ct"


def test_webhook_test_without_url(client):
    assert client.post("/api/webhook/test", json={}).status_code == 400


def test_analyze_rejects_malformed_dates(client, ai_client):
    response = client.post(
        "/api/ai/analyze", json={"resources": [{"id": "1", "name": "x", "expiryDate": "2024-13-45"}]}
    )

    assert response.status_code == 400
    assert response.json()["error"].startswith("Invalid resources")
    ai_client.complete.assert_not_called()


@patch("cloudtrack_agent.server.today_in", return_value=TODAY)
def test_analyze_counts_days_in_configured_timezone(mock_today, client, ai_client, app_config):
    app_config.sweep.timezone = "Asia/Tokyo"

    client.post("/api/ai/analyze", json={"resources": [dict(RESOURCE, id="r1", expiryDate="2024-06-17")]})

    mock_today.assert_called_with("Asia/Tokyo")
    assert '"daysRemaining": 7' in ai_client.complete.call_args[0][0]


@patch("cloudtrack_agent.server.today_in", return_value=TODAY)
def test_chat_counts_days_in_configured_timezone(mock_today, client, ai_client):
    client.post("/api/v1/resources", json=dict(RESOURCE, expiryDate="2024-06-11"))

    client.post("/api/ai/chat", json={"question": "What expires?"})

    assert '"daysRemaining": 1' in ai_client.complete.call_args[0][0]
