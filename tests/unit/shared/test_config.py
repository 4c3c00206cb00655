import pytest

from conftest import FIFO_TOPIC_ARN, TOPIC_ARN, make_settings
from src.shared.config import BrokerSettings, OutboxWorkerSettings, WebNotificationSettings, load_settings


def test_defaults():
    settings = make_settings()
    assert settings.outbox.batch_size == 100
    assert settings.outbox.poll_interval_seconds == 0.8
    assert settings.outbox.max_retry_attempts == 10
    assert settings.web.hub_path == "/hubs/notifications"
    assert settings.web.broadcast_method == "notificationReceived"
    assert settings.web.user_group_prefix == "user-"
    assert settings.web.channel_tag == "web"
    assert settings.web.require_channel_tag is True
    assert not settings.broker.is_enabled
    assert not settings.has_delivery_channel


def test_load_settings_reads_environment(monkeypatch):
    monkeypatch.setenv("DATABASE_URL", "postgresql://u:p@db:5432/app")
    monkeypatch.setenv("OUTBOX_BATCH_SIZE", "25")
    monkeypatch.setenv("OUTBOX_POLL_INTERVAL_MS", "250")
    monkeypatch.setenv("AWS_SNS_TOPIC_ARN", FIFO_TOPIC_ARN)
    monkeypatch.setenv("AWS_SNS_FIFO", "true")
    monkeypatch.setenv("WEB_NOTIFICATIONS_ENABLED", "true")
    monkeypatch.setenv("WEB_NOTIFICATIONS_CHANNEL_TAG", "browser")
    monkeypatch.setenv("JWT_SECRET", "secret-for-hub-auth-0123456789")

    settings = load_settings()

    assert settings.outbox.batch_size == 25
    assert settings.outbox.poll_interval_ms == 250
    assert settings.broker.fifo
    assert settings.broker.is_enabled
    assert settings.web.enabled
    assert settings.web.channel_tag == "browser"
    assert settings.has_delivery_channel


def test_database_url_is_required(monkeypatch):
    monkeypatch.delenv("DATABASE_URL", raising=False)
    with pytest.raises(ValueError):
        load_settings()


@pytest.mark.parametrize(
    "kwargs",
    [
        {"hub_path": "hubs/notifications"},
        {"hub_path": "/" + "h" * 200},
        {"broadcast_method": ""},
        {"user_group_prefix": " "},
        {"channel_tag": "t" * 51},
        {"max_batch_size": 0},
        {"max_batch_size": 501},
    ],
)
def test_web_settings_validation(kwargs):
    with pytest.raises(ValueError):
        WebNotificationSettings(**kwargs)


@pytest.mark.parametrize(
    "kwargs",
    [
        {"batch_size": 0},
        {"poll_interval_ms": 0},
        {"max_retry_attempts": -1},
        {"base_retry_seconds": -1},
        {"base_retry_seconds": 10, "max_backoff_seconds": 5},
    ],
)
def test_outbox_settings_validation(kwargs):
    with pytest.raises(ValueError):
        OutboxWorkerSettings(**kwargs)


def test_broker_settings_validation():
    assert BrokerSettings(topic_arn=TOPIC_ARN).is_enabled
    with pytest.raises(ValueError):
        BrokerSettings(topic_arn="notifications")
    with pytest.raises(ValueError):
        BrokerSettings(topic_arn=TOPIC_ARN, fifo=True)


def test_web_requires_jwt_key():
    with pytest.raises(ValueError):
        make_settings(jwt_secret="", web=WebNotificationSettings(enabled=True))


def test_safe_dict_masks_secrets():
    data = make_settings(redis_url="redis://:pw@localhost:6379/0").safe_dict()
    assert data["database_url"] == "<masked>"
    assert data["redis_url"] == "<masked>"
    assert "0123456789" not in data["jwt_secret"]
