"""Runtime configuration.

Settings are read from the process environment after loading an optional
``.env`` file at the repository root (same convention as temporal_client.py).

Recognised variables:
- PLANT_DB_PATH: SQLite database file (default: plant_ops.db at repo root)
- PLANT_DB_TIMEOUT_S: SQLite busy timeout in seconds
- PLANT_LOG_LEVEL: DEBUG / INFO / WARNING / ERROR
- PLANT_LOG_JSON: "1"/"true" for JSON log lines
- TEMPORAL_ENDPOINT / TEMPORAL_NAMESPACE / TEMPORAL_API_KEY
- TEMPORAL_TASK_QUEUE: queue polled by the reconciliation worker
"""

import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field


REPO_ROOT = Path(__file__).resolve().parents[1]
ENV_PATH = REPO_ROOT / ".env"
DEFAULT_DB_PATH = REPO_ROOT / "plant_ops.db"
DEFAULT_TASK_QUEUE = "plant-reconciliation"


def _as_bool(value: Optional[str]) -> bool:
    return (value or "").strip().lower() in {"1", "true", "yes", "on"}


class Settings(BaseModel):
    """Process-wide settings."""
    db_path: Path = Field(default=DEFAULT_DB_PATH, description="SQLite database file")
    db_timeout_s: float = Field(default=5.0, ge=0, description="SQLite busy timeout")
    log_level: str = Field(default="INFO", description="Root log level")
    json_logs: bool = Field(default=False, description="Emit JSON log lines")
    temporal_endpoint: Optional[str] = Field(default=None, description="Temporal frontend host:port")
    temporal_namespace: str = Field(default="default")
    temporal_api_key: Optional[str] = Field(default=None)
    task_queue: str = Field(default=DEFAULT_TASK_QUEUE)

    @classmethod
    def from_env(cls, env_path: Path = ENV_PATH) -> "Settings":
        """Build settings from the environment, loading ``env_path`` first if present."""
        if env_path.exists():
            load_dotenv(env_path)

        return cls(
            db_path=Path(os.getenv("PLANT_DB_PATH", str(DEFAULT_DB_PATH))),
            db_timeout_s=float(os.getenv("PLANT_DB_TIMEOUT_S", "5.0")),
            log_level=os.getenv("PLANT_LOG_LEVEL", "INFO").upper(),
            json_logs=_as_bool(os.getenv("PLANT_LOG_JSON")),
            temporal_endpoint=os.getenv("TEMPORAL_ENDPOINT"),
            temporal_namespace=os.getenv("TEMPORAL_NAMESPACE", "default"),
            temporal_api_key=os.getenv("TEMPORAL_API_KEY"),
            task_queue=os.getenv("TEMPORAL_TASK_QUEUE", DEFAULT_TASK_QUEUE),
        )


_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Return the cached process settings."""
    global _settings
    if _settings is None:
        _settings = Settings.from_env()
    return _settings
