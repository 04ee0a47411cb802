"""Pytest configuration for scene-pilot tests."""
import sys
from pathlib import Path

import pytest

# Add src directory to Python path so tests can import core, knowledge, etc.
src_path = Path(__file__).parent.parent / "src"
if str(src_path) not in sys.path:
    sys.path.insert(0, str(src_path))


@pytest.fixture(autouse=True)
def isolated_home(tmp_path, monkeypatch):
    """Keep knowledge files, session identities and logs out of the real home."""
    home = tmp_path / "scene-pilot-home"
    monkeypatch.setenv("SCENE_PILOT_HOME", str(home))
    monkeypatch.setenv("SCENE_PILOT_EMBEDDINGS", "hash")
    monkeypatch.setenv("SETTLE_DELAY_S", "0")
    monkeypatch.setenv("MUTATION_INTERVAL_S", "0")
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    yield home


@pytest.fixture(autouse=True)
def reset_session_registry():
    yield
    from transport.session_registry import set_session_registry
    set_session_registry(None)
