import os
from collections.abc import Iterator
from pathlib import Path

import pytest

from apexcov.config import Credentials, get_settings


@pytest.fixture(autouse=True)
def test_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    for key in list(os.environ):
        if key.startswith("APEXCOV_"):
            monkeypatch.delenv(key, raising=False)
    monkeypatch.chdir(tmp_path)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def credentials() -> Credentials:
    return Credentials(
        api_version="60.0",
        base_url="https://org.example.com",
        client_id="client-id",
        client_secret="client-secret",
    )
