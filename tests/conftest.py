from __future__ import annotations

import os
from pathlib import Path

import pytest

XDG_DIRS = (
    ("XDG_CONFIG_HOME", ".config"),
    ("XDG_STATE_HOME", ".local/state"),
    ("XDG_DATA_HOME", ".local/share"),
    ("XDG_CACHE_HOME", ".cache"),
)


@pytest.fixture(autouse=True)
def _isolate_home(tmp_path_factory, monkeypatch):
    """Keep config, .env and log lookups inside a temporary HOME, free of the caller's CODE_CLI_* settings."""
    base = tmp_path_factory.mktemp("home")
    monkeypatch.setenv("HOME", str(base))
    for name, relative in XDG_DIRS:
        monkeypatch.setenv(name, str(base / relative))
    monkeypatch.setattr(Path, "home", lambda: base)
    for key in list(os.environ):
        if key.startswith("CODE_CLI_"):
            monkeypatch.delenv(key)
