"""Engine configuration.

Settings are read from environment variables, after loading a ``.env`` file
from the repository root if one exists.

    from core.config import get_settings
    settings = get_settings()
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

REPO_ROOT = Path(__file__).resolve().parents[1]
env_path = REPO_ROOT / ".env"
if env_path.exists():
    load_dotenv(env_path)


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    return int(value)


@dataclass
class OdooSettings:
    """Connection settings for the Odoo JSON-RPC endpoint."""
    url: str = "http://localhost:8069"
    database: str = "odoo"
    username: str = "admin"
    password: str = ""
    timeout_seconds: int = 30
    lang: str = "es_AR"
    tz: str = "America/Argentina/Buenos_Aires"
    create_stock_moves: bool = False
    create_invoices: bool = False


@dataclass
class TemporalSettings:
    """Connection settings for Temporal (production task queue backend)."""
    endpoint: Optional[str] = None
    namespace: str = "default"
    api_key: Optional[str] = None
    cert_path: Optional[str] = None
    task_queue: str = "pos-sync"


@dataclass
class Settings:
    """Top-level engine settings."""
    db_path: Path = REPO_ROOT / "pos_sync.db"
    log_level: str = "INFO"
    json_logs: bool = False

    # Engine limits
    log_window: int = 1000
    circuit_failure_threshold: int = 3
    retry_max_attempts: int = 3
    retry_retention_hours: int = 24
    retry_cleanup_interval_seconds: int = 60
    task_retention_hours: int = 24

    # "memory" runs production syncs in-process, "temporal" starts workflows
    task_queue_backend: str = "memory"
    fixtures_dir: Optional[Path] = None

    odoo: OdooSettings = field(default_factory=OdooSettings)
    temporal: TemporalSettings = field(default_factory=TemporalSettings)

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from environment variables.

        Recognized variables:
        - POS_SYNC_DB_PATH, POS_SYNC_LOG_LEVEL, POS_SYNC_JSON_LOGS
        - POS_SYNC_LOG_WINDOW, POS_SYNC_CIRCUIT_THRESHOLD
        - POS_SYNC_RETRY_MAX_ATTEMPTS, POS_SYNC_RETRY_RETENTION_HOURS
        - POS_SYNC_TASK_RETENTION_HOURS
        - POS_SYNC_TASK_QUEUE (memory | temporal), POS_SYNC_FIXTURES_DIR
        - ODOO_URL, ODOO_DB, ODOO_USERNAME, ODOO_PASSWORD, ODOO_TIMEOUT,
          ODOO_LANG, ODOO_TZ, ODOO_CREATE_STOCK_MOVES, ODOO_CREATE_INVOICES
        - TEMPORAL_ENDPOINT, TEMPORAL_NAMESPACE, TEMPORAL_API_KEY,
          TEMPORAL_CERT_PATH, TEMPORAL_TASK_QUEUE
        """
        fixtures_dir = os.getenv("POS_SYNC_FIXTURES_DIR")
        odoo = OdooSettings(
            url=os.getenv("ODOO_URL", OdooSettings.url),
            database=os.getenv("ODOO_DB", OdooSettings.database),
            username=os.getenv("ODOO_USERNAME", OdooSettings.username),
            password=os.getenv("ODOO_PASSWORD", ""),
            timeout_seconds=_env_int("ODOO_TIMEOUT", OdooSettings.timeout_seconds),
            lang=os.getenv("ODOO_LANG", OdooSettings.lang),
            tz=os.getenv("ODOO_TZ", OdooSettings.tz),
            create_stock_moves=_env_bool("ODOO_CREATE_STOCK_MOVES", False),
            create_invoices=_env_bool("ODOO_CREATE_INVOICES", False),
        )
        temporal = TemporalSettings(
            endpoint=os.getenv("TEMPORAL_ENDPOINT"),
            namespace=os.getenv("TEMPORAL_NAMESPACE", "default"),
            api_key=os.getenv("TEMPORAL_API_KEY"),
            cert_path=os.getenv("TEMPORAL_CERT_PATH"),
            task_queue=os.getenv("TEMPORAL_TASK_QUEUE", TemporalSettings.task_queue),
        )
        return cls(
            db_path=Path(os.getenv("POS_SYNC_DB_PATH", str(cls.db_path))),
            log_level=os.getenv("POS_SYNC_LOG_LEVEL", "INFO").upper(),
            json_logs=_env_bool("POS_SYNC_JSON_LOGS", False),
            log_window=_env_int("POS_SYNC_LOG_WINDOW", 1000),
            circuit_failure_threshold=_env_int("POS_SYNC_CIRCUIT_THRESHOLD", 3),
            retry_max_attempts=_env_int("POS_SYNC_RETRY_MAX_ATTEMPTS", 3),
            retry_retention_hours=_env_int("POS_SYNC_RETRY_RETENTION_HOURS", 24),
            task_retention_hours=_env_int("POS_SYNC_TASK_RETENTION_HOURS", 24),
            task_queue_backend=os.getenv("POS_SYNC_TASK_QUEUE", "memory").lower(),
            fixtures_dir=Path(fixtures_dir) if fixtures_dir else None,
            odoo=odoo,
            temporal=temporal,
        )


_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Return the process-wide settings, built from env on first use."""
    global _settings
    if _settings is None:
        _settings = Settings.from_env()
    return _settings
