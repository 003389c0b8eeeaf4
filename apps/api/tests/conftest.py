from collections.abc import Iterator
from pathlib import Path

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine

from postline.config import get_settings
from postline.db import create_schema, get_engine
from postline.main import app


@pytest.fixture(autouse=True)
def reset_api_caches() -> Iterator[None]:
    get_settings.cache_clear()
    get_engine.cache_clear()
    yield
    get_settings.cache_clear()
    get_engine.cache_clear()


@pytest.fixture
def engine(tmp_path: Path) -> Iterator[Engine]:
    store_engine = create_engine(f"sqlite+pysqlite:///{tmp_path / 'postline-store.db'}")
    create_schema(store_engine)
    yield store_engine
    store_engine.dispose()


@pytest.fixture
def client(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> Iterator[TestClient]:
    sqlite_db_path = tmp_path / "api-tests.db"
    monkeypatch.setenv("API_DATABASE_URL", f"sqlite+pysqlite:///{sqlite_db_path}")
    monkeypatch.setenv("API_DB_ECHO", "false")
    monkeypatch.setenv("RETRY_WORKER_ENABLED", "false")
    monkeypatch.setenv("DELIVERY_DELAY_SECONDS", "0")

    api_engine = get_engine()
    create_schema(api_engine)

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()
    api_engine.dispose()
