from __future__ import annotations

import sys
from pathlib import Path

import pytest


def _ensure_project_root_on_path() -> None:
    """Guarantee the repository root is discoverable for absolute imports."""

    root = Path(__file__).resolve().parent.parent
    root_str = str(root)
    if root_str not in sys.path:
        sys.path.insert(0, root_str)


_ensure_project_root_on_path()


@pytest.fixture(autouse=True)
def _engine_environment(monkeypatch: pytest.MonkeyPatch, tmp_path_factory: pytest.TempPathFactory):
    """Keep log files and configuration overrides away from real user data."""

    from app.config import reset_engine_config_cache

    log_dir = tmp_path_factory.mktemp("logs")
    monkeypatch.setenv("PATCH_ENGINE_LOG_DIR", str(log_dir))
    monkeypatch.delenv("PATCH_ENGINE_LOG_FILE", raising=False)
    monkeypatch.delenv("PATCH_ENGINE_CONFIG", raising=False)
    reset_engine_config_cache()

    yield

    reset_engine_config_cache()
