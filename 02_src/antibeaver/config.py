"""Project-level configuration and path helpers."""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Union

PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
DATA_DIR = PROJECT_ROOT / "03_data"
LOGS_DIR = PROJECT_ROOT / "04_logs"
DEFAULT_DB_PATH = DATA_DIR / "governance.db"
DEFAULT_LOG_PATH = LOGS_DIR / "antibeaver.log"

DATA_DIR.mkdir(parents=True, exist_ok=True)
LOGS_DIR.mkdir(parents=True, exist_ok=True)


PathLike = Union[str, Path]


def resolve_db_path(env_value: PathLike | None = None) -> PathLike:
    """Resolve DATABASE_URL to an absolute path."""
    if not env_value:
        return DEFAULT_DB_PATH

    if str(env_value) == ":memory:":
        return ":memory:"

    candidate = Path(env_value).expanduser()
    return candidate if candidate.is_absolute() else PROJECT_ROOT / candidate


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError:
        return default


@dataclass(frozen=True)
class GovernanceSettings:
    """Tunables for the governance engine."""

    latency_threshold_ms: int = 5000
    max_buffer_size: int = 50
    max_thought_chars: int = 50_000
    window_samples: int = 100
    store_timeout_s: float = 2.0
    recovery_interval_s: float = 5.0
    db_path: PathLike = DEFAULT_DB_PATH

    @classmethod
    def from_env(cls, db_path: PathLike | None = None) -> "GovernanceSettings":
        """Build settings from environment variables, falling back to defaults."""
        env_db_path = os.getenv("DATABASE_URL") if db_path is None else db_path
        return cls(
            latency_threshold_ms=_env_int("LATENCY_THRESHOLD_MS", 5000),
            max_buffer_size=_env_int("MAX_BUFFER_SIZE", 50),
            max_thought_chars=_env_int("MAX_THOUGHT_CHARS", 50_000),
            window_samples=_env_int("LATENCY_WINDOW_SAMPLES", 100),
            store_timeout_s=_env_float("STORE_TIMEOUT_S", 2.0),
            recovery_interval_s=_env_float("RECOVERY_INTERVAL_S", 5.0),
            db_path=resolve_db_path(env_db_path),
        )
