"""Integration test fixtures.

Environment fixtures isolate settings loading from the developer's machine:
no STORYAUTHOR__ variables leak in and no user-level storyauthor.yaml is read.
"""

from __future__ import annotations

import os
from typing import TYPE_CHECKING

import pytest

if TYPE_CHECKING:
    from pathlib import Path

BASE_URL = "https://api.test/v1"


@pytest.fixture()
def isolated_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Point settings at a temporary cache database and a mocked endpoint."""
    for name in list(os.environ):
        if name.startswith("STORYAUTHOR__"):
            monkeypatch.delenv(name)
    monkeypatch.chdir(tmp_path)
    db_path = tmp_path / "data" / "cache.db"
    monkeypatch.setenv("STORYAUTHOR__CACHE__DB_PATH", str(db_path))
    monkeypatch.setenv("STORYAUTHOR__PROVIDER__BASE_URL", BASE_URL)
    monkeypatch.setenv("STORYAUTHOR__PROVIDER__API_KEY", "sk-test")
    monkeypatch.setenv("STORYAUTHOR__PROVIDER__MODEL", "test-model")
    return db_path


@pytest.fixture()
def subprocess_env(tmp_path: Path) -> dict[str, str]:
    """Environment for running ``python -m storyauthor`` in a child process."""
    env = {k: v for k, v in os.environ.items() if not k.startswith("STORYAUTHOR__")}
    env["XDG_CONFIG_HOME"] = str(tmp_path / "config")
    env["XDG_DATA_HOME"] = str(tmp_path / "share")
    env["STORYAUTHOR__CACHE__DB_PATH"] = str(tmp_path / "data" / "cache.db")
    return env
