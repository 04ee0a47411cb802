"""Centralized configuration for scene-pilot.

Loads settings from a .env file (if present) in the working directory or
next to this package, then falls back to environment variables, then to
hardcoded defaults.

Usage in other modules:
    from core.config import cfg

    api_key = cfg.openai_api_key
    model   = cfg.planning_model
"""
from __future__ import annotations

import os
import sys
from pathlib import Path

# ---------------------------------------------------------------------------
# .env loader (no dependency on python-dotenv)
# ---------------------------------------------------------------------------

_ENV_DIRS = (Path.cwd(), Path(__file__).resolve().parent.parent)


def _load_dotenv(directory: Path) -> None:
    """Parse a .env file and inject values into os.environ.

    Only sets a variable if it is NOT already present in the environment,
    so real env vars always win.
    """
    env_file = directory / ".env"
    if not env_file.is_file():
        return
    for line in env_file.read_text(encoding="utf-8").splitlines():
        line = line.strip()
        if not line or line.startswith("#"):
            continue
        if "=" not in line:
            continue
        key, _, value = line.partition("=")
        key = key.strip()
        value = value.strip().strip("'\"")
        if key and key not in os.environ:
            os.environ[key] = value


for _dir in _ENV_DIRS:
    _load_dotenv(_dir)


def _env_float(name: str, default: float) -> float:
    val = os.environ.get(name)
    if val is None or not val.strip():
        return default
    try:
        return float(val)
    except ValueError:
        return default


def _env_bool(name: str, default: bool) -> bool:
    val = os.environ.get(name)
    if val is None:
        return default
    return val.strip().lower() in ("1", "true", "yes", "on")


# ---------------------------------------------------------------------------
# Config class
# ---------------------------------------------------------------------------

_DEFAULT_PLANNING_MODEL = "gpt-4o-mini"
_DEFAULT_VISION_MODEL = "gpt-4o"
_DEFAULT_EMBEDDING_MODEL = "text-embedding-3-small"


class _Config:
    """Read-only configuration object. All values resolve at access time so
    they pick up any later changes to os.environ."""

    # ── API key ──────────────────────────────────────────────────────

    @property
    def openai_api_key(self) -> str | None:
        """Resolve OpenAI API key (first match wins)."""
        for var in ("OPENAI_API_KEY", "SCENE_PILOT_OPENAI_API_KEY"):
            val = os.environ.get(var)
            if val:
                return val
        return None

    # ── Model names ──────────────────────────────────────────────────

    @property
    def planning_model(self) -> str:
        return os.environ.get("PLANNING_MODEL", _DEFAULT_PLANNING_MODEL)

    @property
    def vision_model(self) -> str:
        return os.environ.get("VISION_MODEL", _DEFAULT_VISION_MODEL)

    @property
    def embedding_model(self) -> str:
        return os.environ.get("EMBEDDING_MODEL", _DEFAULT_EMBEDDING_MODEL)

    @property
    def planning_temperature(self) -> float:
        return _env_float("PLANNING_TEMPERATURE", 0.2)

    @property
    def vision_temperature(self) -> float:
        return _env_float("VISION_TEMPERATURE", 0.1)

    @property
    def max_output_tokens(self) -> int:
        """Maximum output tokens per completion call."""
        val = os.environ.get("MAX_OUTPUT_TOKENS", "2000")
        try:
            return int(val)
        except ValueError:
            return 2000

    @property
    def embedding_provider(self) -> str:
        """``openai`` for the hosted embedding model, ``hash`` for offline use."""
        return os.environ.get("SCENE_PILOT_EMBEDDINGS", "openai").strip().lower()

    # ── Storage ──────────────────────────────────────────────────────

    @property
    def home_dir(self) -> Path:
        """Root directory for the knowledge base, session identities and logs."""
        if home := os.environ.get("SCENE_PILOT_HOME"):
            return Path(home).expanduser()
        if sys.platform == "win32":
            base = Path(os.environ.get("LOCALAPPDATA", Path.home() / "AppData/Local"))
            return base / "ScenePilot"
        if sys.platform == "darwin":
            return Path.home() / "Library" / "Application Support" / "ScenePilot"
        return Path.home() / ".local" / "share" / "ScenePilot"

    @property
    def knowledge_dir(self) -> Path:
        return self.home_dir / "knowledge"

    @property
    def sessions_file(self) -> Path:
        return self.home_dir / "sessions.json"

    @property
    def execution_log_file(self) -> Path:
        return self.home_dir / "executions.jsonl"

    # ── Timing ───────────────────────────────────────────────────────

    @property
    def scene_ready_timeout(self) -> float:
        """Seconds to wait for the scene canvas and runtime to report ready."""
        return _env_float("SCENE_READY_TIMEOUT_S", 30.0)

    @property
    def settle_delay(self) -> float:
        """Pause between executing a step and capturing the validation screenshot."""
        return _env_float("SETTLE_DELAY_S", 0.5)

    @property
    def mutation_interval(self) -> float:
        return _env_float("MUTATION_INTERVAL_S", 0.1)

    @property
    def service_timeout(self) -> float:
        return _env_float("SERVICE_TIMEOUT_S", 60.0)

    @property
    def bridge_timeout(self) -> float:
        """Timeout for a single round-trip to the in-page scene bridge."""
        return _env_float("BRIDGE_TIMEOUT_S", 10.0)

    # ── Browser ──────────────────────────────────────────────────────

    @property
    def headless(self) -> bool:
        return _env_bool("SCENE_PILOT_HEADLESS", False)

    @property
    def default_page(self) -> str:
        return os.environ.get("SCENE_PILOT_DEFAULT_PAGE", "scene-editor")


cfg = _Config()
