from collections.abc import Generator
from pathlib import Path

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import Engine
from sqlalchemy.orm import Session

from friends_api.core.config import Settings
from friends_api.db.migrate import load_migrations, run_pending_migrations
from friends_api.db.session import create_db_engine
from friends_api.main import create_app


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    assets_dir = tmp_path / "assets"
    assets_dir.mkdir()
    (assets_dir / "hello.txt").write_text("hello friends")
    return Settings(
        database_url=str(tmp_path / "friends.db"),
        pool_size=2,
        pool_acquire_timeout=1.0,
        assets_dir=assets_dir,
    )


@pytest.fixture
def engine(settings: Settings) -> Generator[Engine, None, None]:
    engine = create_db_engine(settings)
    with Session(engine) as session:
        run_pending_migrations(session, load_migrations())
    yield engine
    engine.dispose()


@pytest.fixture
def client(settings: Settings) -> Generator[TestClient, None, None]:
    with TestClient(create_app(settings)) as test_client:
        yield test_client
