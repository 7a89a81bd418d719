from __future__ import annotations

from datetime import timedelta
from pathlib import Path

import pytest

from exchange_reconciler.config import (
    ConfigurationError,
    MissingConfigurationError,
    PassConfig,
    get_pass_config,
    get_storage_config,
    get_store_config,
)
from exchange_reconciler.config.store import INSTANT_BASE_URL


def test_store_config_reads_credentials(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("INSTANT_APP_ID", "app-123")
    monkeypatch.setenv("INSTANT_ADMIN_TOKEN", "secret-token")

    config = get_store_config()

    assert config.app_id == "app-123"
    assert config.admin_token == "secret-token"
    assert config.resilience.base_url == INSTANT_BASE_URL
    assert config.resilience.ratelimit is not None
    assert "secret-token" not in repr(config)


def test_store_config_falls_back_to_public_app_id(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("NEXT_PUBLIC_INSTANT_APP_ID", "public-app")
    monkeypatch.setenv("INSTANT_ADMIN_TOKEN", "secret-token")
    monkeypatch.setenv("INSTANT_API_URI", "https://instant.example.test")

    config = get_store_config()

    assert config.app_id == "public-app"
    assert config.resilience.base_url == "https://instant.example.test"


def test_store_config_reports_missing_values() -> None:
    with pytest.raises(MissingConfigurationError) as exc:
        get_store_config()

    message = str(exc.value)
    assert "INSTANT_APP_ID" in message
    assert "INSTANT_ADMIN_TOKEN" in message


def test_pass_config_defaults() -> None:
    config = get_pass_config()

    assert config.chunk_size == 20
    assert config.chunk_delay_seconds == 0.5
    assert config.sample_size == 5
    assert config.recent_window == timedelta(days=180)


def test_pass_config_overrides() -> None:
    config = get_pass_config(chunk_size=50, chunk_delay_seconds=0)

    assert config.chunk_size == 50
    assert config.chunk_delay_seconds == 0


@pytest.mark.parametrize("chunk_size", [0, 101])
def test_pass_config_rejects_out_of_range_chunk_size(chunk_size: int) -> None:
    with pytest.raises(ConfigurationError):
        PassConfig(chunk_size=chunk_size)


def test_pass_config_rejects_negative_delay() -> None:
    with pytest.raises(ConfigurationError):
        get_pass_config(chunk_delay_seconds=-1)


def test_storage_config_uses_env_dir(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("EXCHANGE_RECONCILER_DATA_DIR", str(tmp_path / "data"))

    storage = get_storage_config()
    backups = storage.backup_dir()

    assert backups == (tmp_path / "data" / "backups").resolve()
    assert backups.is_dir()


def test_storage_config_backup_dir_without_creating(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> None:
    monkeypatch.setenv("EXCHANGE_RECONCILER_DATA_DIR", str(tmp_path / "lazy"))

    backups = get_storage_config().backup_dir(ensure=False)

    assert not backups.exists()
