"""Shared fixtures: isolated settings and a throwaway SQLite database."""

import pytest

from whalewatch.storage.database import Database
from whalewatch.utils.config import load_config


@pytest.fixture(autouse=True)
def test_config(monkeypatch, tmp_path):
    """Load settings pointing at temporary paths with alerts and delays off."""
    monkeypatch.setenv("DATABASE_PATH", str(tmp_path / "whalewatch.db"))
    monkeypatch.setenv("LOG_FILE", str(tmp_path / "whalewatch.log"))
    monkeypatch.setenv("TELEGRAM_ENABLED", "false")
    monkeypatch.setenv("WEBHOOK_ENABLED", "false")
    monkeypatch.setenv("SCHEDULER_ENABLED", "false")
    monkeypatch.setenv("PROMETHEUS_ENABLED", "false")
    monkeypatch.setenv("REVIEWER_REQUEST_DELAY_MS", "0")
    monkeypatch.setenv("BACKCHECK_REQUEST_DELAY_MS", "0")
    monkeypatch.delenv("TELEGRAM_CHAT_ID", raising=False)
    return load_config()


@pytest.fixture
async def db(tmp_path):
    """Connected database in a temp directory."""
    database = Database(str(tmp_path / "test.db"))
    await database.connect()
    yield database
    await database.close()
