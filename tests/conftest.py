from pathlib import Path

import pytest


@pytest.fixture(autouse=True)
def isolated_db(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> str:
    """Point DB_PATH at a fresh SQLite file and clear auth env for every test."""
    path = str(tmp_path / "onyxgpt.db")
    monkeypatch.setenv("DB_PATH", path)
    for key in ("AUTH_TOKEN", "SUPABASE_JWT_SECRET", "SUPABASE_URL", "SUPABASE_ANON_KEY"):
        monkeypatch.delenv(key, raising=False)
    monkeypatch.setenv("AI_PROVIDER", "stub")
    return path
