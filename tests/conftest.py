import pytest

from cloudtrack_agent.config import (
    AIConfig,
    AppConfig,
    ResendConfig,
    ServerConfig,
    SweepConfig,
    TelegramConfig,
)
from cloudtrack_agent.db import init_db
from cloudtrack_agent.models import GlobalSettings


@pytest.fixture
def app_config(tmp_path):
    return AppConfig(
        db_path=str(tmp_path / "cloudtrack.db"),
        telegram=TelegramConfig(bot_token="123456:test-token"),
        resend=ResendConfig(api_key="re_test_key", from_email="alerts@example.com"),
        ai=AIConfig(),
        server=ServerConfig(),
        sweep=SweepConfig(),
    )


@pytest.fixture
def conn(app_config):
    connection = init_db(app_config.db_path)
    yield connection
    connection.close()


@pytest.fixture
def all_channels_settings():
    return GlobalSettings.from_dict({
        "reminderDays": 7,
        "telegram": {"enabled": True, "chatId": "42"},
        "email": {"enabled": True, "email": "ops@example.com"},
        "webhook": {"enabled": True, "url": "https://hooks.example.com/ct"},
    })

