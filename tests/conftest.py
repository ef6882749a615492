from __future__ import annotations

import pytest

from b2media.app.services.bundle import MediaStorage, get_media_storage
from b2media.common.config import MIB, Settings, get_settings
from tests.services.mock_b2 import MockB2Api


def make_settings(**overrides) -> Settings:
    values = {
        "B2_ACCOUNT_ID": "account-1",
        "B2_APPLICATION_KEY": "secret-key",
        "B2_BUCKET_NAME": "media-bucket",
        "B2_LARGE_UPLOAD_THRESHOLD_BYTES": 50 * MIB,
        "B2_PART_SIZE_BYTES": 10 * MIB,
    }
    values.update(overrides)
    return Settings(**values)


@pytest.fixture(autouse=True)
def clear_cached_singletons(monkeypatch, tmp_path):
    # Keep a developer's .env out of the tests.
    monkeypatch.chdir(tmp_path)
    get_settings.cache_clear()  # type: ignore[attr-defined]
    get_media_storage.cache_clear()  # type: ignore[attr-defined]
    yield
    get_settings.cache_clear()  # type: ignore[attr-defined]
    get_media_storage.cache_clear()  # type: ignore[attr-defined]


@pytest.fixture()
def api() -> MockB2Api:
    return MockB2Api()


@pytest.fixture()
def settings_factory():
    return make_settings


@pytest.fixture()
def settings() -> Settings:
    return make_settings()


@pytest.fixture()
def sleeps() -> list[float]:
    return []


@pytest.fixture()
def storage(settings, api, sleeps) -> MediaStorage:
    return MediaStorage(settings, api=api, sleep=sleeps.append)
