import os
from functools import lru_cache
from pathlib import Path


class Settings:
    def __init__(
        self,
        database_url: str,
        timezone: str,
        reconcile_hour: int,
        reconcile_minute: int,
        scheduler_enabled: bool,
    ) -> None:
        self.database_url = database_url
        self.timezone = timezone
        self.reconcile_hour = reconcile_hour
        self.reconcile_minute = reconcile_minute
        self.scheduler_enabled = scheduler_enabled


def _ensure_data_dir() -> Path:
    root = Path(os.getenv("FINANCE_DATA_DIR", "./data")).resolve()
    root.mkdir(parents=True, exist_ok=True)
    return root


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes", "on"}


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    data_dir = _ensure_data_dir()
    default_db = data_dir / "finance.db"
    database_url = os.getenv("FINANCE_DATABASE_URL", f"sqlite:///{default_db}")
    timezone = os.getenv("FINANCE_TIMEZONE", "America/Sao_Paulo")
    reconcile_hour = int(os.getenv("FINANCE_RECONCILE_HOUR", "3"))
    reconcile_minute = int(os.getenv("FINANCE_RECONCILE_MINUTE", "30"))
    scheduler_enabled = _env_flag("FINANCE_SCHEDULER_ENABLED", "true")
    return Settings(
        database_url=database_url,
        timezone=timezone,
        reconcile_hour=reconcile_hour,
        reconcile_minute=reconcile_minute,
        scheduler_enabled=scheduler_enabled,
    )
