"""Settings validation tests."""

import pytest
from pydantic import ValidationError

from brandshot.core.config import Settings
from brandshot.models.user import User


def make_settings(**overrides) -> Settings:
    return Settings(_env_file=None, **overrides)  # type: ignore[call-arg]


def test_defaults():
    settings = make_settings()

    assert settings.poll_interval_seconds == 2.0
    assert settings.worker_concurrency == 1
    assert settings.max_quantity == 2
    assert settings.default_image_provider == "qwen-image-plus"
    assert settings.refund_quota_on_failure is False
    assert settings.persist_partial_results is False


def test_values_read_from_environment(monkeypatch):
    monkeypatch.setenv("WORKER_CONCURRENCY", "4")
    monkeypatch.setenv("REFUND_QUOTA_ON_FAILURE", "true")
    monkeypatch.setenv("MAX_CONCURRENT_GENERATIONS", "0")

    settings = make_settings()

    assert settings.worker_concurrency == 4
    assert settings.refund_quota_on_failure is True
    assert settings.max_concurrent_generations == 0


@pytest.mark.parametrize(
    "overrides,message",
    [
        ({"POLL_INTERVAL_SECONDS": 0}, "POLL_INTERVAL_SECONDS must be positive"),
        ({"CLAIM_ERROR_BACKOFF_SECONDS": -1}, "CLAIM_ERROR_BACKOFF_SECONDS must be positive"),
        ({"GENERATION_TIMEOUT_SECONDS": 0}, "GENERATION_TIMEOUT_SECONDS must be positive"),
        ({"WORKER_CONCURRENCY": 0}, "WORKER_CONCURRENCY must be at least 1"),
        ({"MAX_CONCURRENT_GENERATIONS": -2}, "MAX_CONCURRENT_GENERATIONS"),
        ({"MAX_QUANTITY": 0}, "MAX_QUANTITY must be at least 1"),
    ],
)
def test_invalid_values_rejected(overrides, message):
    with pytest.raises(ValidationError, match=message):
        make_settings(**overrides)


def test_missing_credentials_are_not_fatal():
    settings = make_settings(QWEN_API_KEY="", GEMINI_API_KEY="", REPLICATE_API_TOKEN="")

    settings.warn_missing_credentials()


def test_daily_quota_comes_from_user_row():
    """Quota limits are stored per user; unknown variables are ignored."""
    make_settings(DEFAULT_QUOTA_DAILY=10, STORAGE_BASE_URL="https://cdn.example.test")

    assert "default_quota_daily" not in Settings.model_fields
    assert "storage_base_url" not in Settings.model_fields
    assert User().quota_daily == 2
