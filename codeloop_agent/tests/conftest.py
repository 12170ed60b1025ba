"""Shared pytest fixtures."""

import os
import sys

import pytest

# Add project root to path so we can import codeloop_agent
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", ".."))
sys.path.insert(0, os.path.dirname(__file__))

from agent_helpers import make_config  # noqa: E402


@pytest.fixture
def workspace(tmp_path):
    ws = tmp_path / "workspace"
    ws.mkdir()
    return ws


@pytest.fixture
def config(tmp_path, workspace):
    return make_config(tmp_path, workspace)


@pytest.fixture(autouse=True)
def isolated_dirs(tmp_path, monkeypatch):
    """Keep config/data lookups away from the real home directory."""
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "xdg_config"))
    monkeypatch.setenv("CODELOOP_DATA_DIR", str(tmp_path / "data"))
    for name in ("CODELOOP_PROVIDER", "CODELOOP_MODEL", "CODELOOP_APPROVAL", "CODELOOP_MAX_TURNS"):
        monkeypatch.delenv(name, raising=False)
