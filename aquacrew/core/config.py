import logging

from pydantic_settings import BaseSettings
from pydantic import ConfigDict
from typing import Optional

class Settings(BaseSettings):
    # Environment
    ENV: str = "development"
    CONFIG_STRICT: bool = False

    # Document store backend
    DOCUMENT_STORE: str = "memory"  # memory | firestore
    FIRESTORE_PROJECT: Optional[str] = None

    # Local key-value storage (usage counters); empty = in-memory
    DATABASE_URL: Optional[str] = "sqlite:///./aquacrew_local.db"

    # Hydration defaults
    DEFAULT_HYDRATION_GOAL: int = 2000
    DEFAULT_WATER_AMOUNT_ML: int = 250

    # Usage quota: 75% of the free tier daily budget
    QUOTA_READS_LIMIT: int = 30000
    QUOTA_WRITES_LIMIT: int = 11250
    QUOTA_FUNCTIONS_LIMIT: int = 750
    QUOTA_WARNING_RATIO: float = 0.7
    QUOTA_DANGER_RATIO: float = 0.9
    USAGE_STORAGE_KEY: str = "@aquacrew_usage_data"

    # Trigger delivery (at-least-once)
    TRIGGER_MAX_ATTEMPTS: int = 3
    TRIGGER_RETRY_DELAY_SECONDS: float = 0.0

    # Subscribed milestone notifiers kept by the HTTP layer (LRU)
    MILESTONE_NOTIFIER_CACHE_SIZE: int = 1000

    # Admin access (migrations)
    ADMIN_KEY: Optional[str] = None

    model_config = ConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )
settings = Settings()


def validate_config(strict: Optional[bool] = None, settings_obj: Optional[Settings] = None, logger: Optional[logging.Logger] = None) -> bool:
    """Validate configuration.

    In strict mode raise RuntimeError; otherwise emit warnings only.
    Secrets are not logged, only the names of the offending keys.
    """
    cfg = settings_obj or settings
    log = logger or logging.getLogger("aquacrew")
    strict_mode = strict if strict is not None else getattr(cfg, "CONFIG_STRICT", False)

    problems = []
    store = (cfg.DOCUMENT_STORE or "").lower()
    if store not in {"memory", "firestore"}:
        problems.append(f"DOCUMENT_STORE must be 'memory' or 'firestore', got {cfg.DOCUMENT_STORE!r}")
    if store == "firestore" and not cfg.FIRESTORE_PROJECT:
        problems.append("FIRESTORE_PROJECT is required when DOCUMENT_STORE=firestore")
    for key in ("QUOTA_READS_LIMIT", "QUOTA_WRITES_LIMIT", "QUOTA_FUNCTIONS_LIMIT", "DEFAULT_HYDRATION_GOAL", "TRIGGER_MAX_ATTEMPTS", "MILESTONE_NOTIFIER_CACHE_SIZE"):
        if getattr(cfg, key) <= 0:
            problems.append(f"{key} must be positive")
    if not 0 < cfg.QUOTA_WARNING_RATIO < cfg.QUOTA_DANGER_RATIO <= 1:
        problems.append("QUOTA_WARNING_RATIO must be below QUOTA_DANGER_RATIO (both in (0, 1])")
    if cfg.ENV.lower() == "production" and not cfg.ADMIN_KEY:
        problems.append("ADMIN_KEY")

    if problems:
        message = f"Invalid configuration: {'; '.join(problems)}"
        if strict_mode:
            raise RuntimeError(message)
        log.warning(message)

    return True
