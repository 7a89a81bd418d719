from __future__ import annotations

from datetime import UTC, datetime

import pytest

from tests.support.store import InMemoryStore


@pytest.fixture
def now() -> datetime:
    return datetime(2025, 6, 1, 12, 0, tzinfo=UTC)


@pytest.fixture
def store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture(autouse=True)
def _isolated_environment(
    monkeypatch: pytest.MonkeyPatch,
    tmp_path_factory: pytest.TempPathFactory,
) -> None:
    for name in (
        "INSTANT_APP_ID",
        "NEXT_PUBLIC_INSTANT_APP_ID",
        "INSTANT_ADMIN_TOKEN",
        "INSTANT_API_URI",
    ):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("EXCHANGE_RECONCILER_DATA_DIR", str(tmp_path_factory.mktemp("data")))
