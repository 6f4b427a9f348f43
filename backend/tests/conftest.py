import pytest
from fastapi.testclient import TestClient

from earlbox.config import Settings
from earlbox.main import create_app


@pytest.fixture()
def settings(tmp_path):
    return Settings(
        DATABASE_URL=f"sqlite+aiosqlite:///{tmp_path / 'earlbox.db'}",
        FILE_STORAGE_PATH=str(tmp_path / "uploads"),
        ORPHAN_SWEEP_ON_STARTUP=False,
        LOG_LEVEL="DEBUG",
    )


@pytest.fixture()
def app(settings):
    return create_app(settings)


@pytest.fixture()
def client(app):
    with TestClient(app) as test_client:
        yield test_client
