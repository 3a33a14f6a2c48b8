import os
from dataclasses import dataclass


@dataclass(frozen=True)
class Settings:
    database_url: str
    redis_url: str | None
    redis_prefix: str
    log_level: str
    db_pool_min: int
    db_pool_max: int
    db_pool_timeout: float
    db_pool_max_waiting: int
    db_statement_timeout_ms: int
    rate_limit: int
    rate_limit_window: int


def load_settings() -> Settings:
    database_url = os.getenv("DATABASE_URL", "")
    if not database_url:
        raise RuntimeError("DATABASE_URL is required")

    db_pool_min = max(1, int(os.getenv("DB_POOL_MIN", "1")))
    db_pool_max = max(db_pool_min, int(os.getenv("DB_POOL_MAX", "10")))

    return Settings(
        database_url=database_url,
        redis_url=(os.getenv("REDIS_URL") or "").strip() or None,
        redis_prefix=(os.getenv("REDIS_PREFIX") or "pocketledger").strip() or "pocketledger",
        log_level=(os.getenv("LOG_LEVEL") or "INFO").strip().upper() or "INFO",
        db_pool_min=db_pool_min,
        db_pool_max=db_pool_max,
        db_pool_timeout=float(os.getenv("DB_POOL_TIMEOUT", "30")),
        db_pool_max_waiting=int(os.getenv("DB_POOL_MAX_WAITING", "100")),
        db_statement_timeout_ms=max(0, int(os.getenv("DB_STATEMENT_TIMEOUT_MS", "15000"))),
        rate_limit=max(1, int(os.getenv("RATE_LIMIT", "500"))),
        rate_limit_window=max(1, int(os.getenv("RATE_LIMIT_WINDOW", "60"))),
    )
