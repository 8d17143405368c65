import os

from sqlalchemy import create_engine, event, text
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import NullPool

from carbon_ledger.config import settings

db_url = str(settings.database_url)
is_postgres = db_url.startswith("postgresql")
is_sqlite = db_url.startswith("sqlite")


def _env_int(key: str, default: int) -> int:
    return int(os.getenv(key, str(default)))


def _env_bool(key: str, default: str = "false") -> bool:
    return str(os.getenv(key, default)).strip().lower() in {"1", "true", "yes", "y", "on"}


def _build_engine_kwargs() -> tuple[dict, dict]:
    """Engine options plus the pool settings reported in the startup log."""

    pool_config: dict[str, int | str | None] = {
        "pool_size": None,
        "max_overflow": None,
        "pool_timeout": None,
        "pool_recycle": None,
        "use_null_pool": None,
    }
    kwargs: dict = {"future": True}

    if is_sqlite:
        # Request threads and the sweep threads share one engine; writers wait on
        # each other's row updates instead of failing straight away.
        kwargs["connect_args"] = {
            "check_same_thread": False,
            "timeout": _env_int("SQLITE_BUSY_TIMEOUT_SECONDS", 15),
        }
        return kwargs, pool_config

    if not is_postgres:
        return kwargs, pool_config

    kwargs["connect_args"] = {"connect_timeout": _env_int("DB_CONNECT_TIMEOUT_SECONDS", 10)}
    kwargs["pool_pre_ping"] = True

    # Transaction poolers (pgbouncer and friends) want NullPool.
    if _env_bool("DB_USE_NULL_POOL"):
        kwargs["poolclass"] = NullPool
        pool_config["use_null_pool"] = "true"
        return kwargs, pool_config

    tuned = {
        "pool_size": _env_int("DB_POOL_SIZE", 5),
        "max_overflow": _env_int("DB_MAX_OVERFLOW", 10),
        "pool_timeout": _env_int("DB_POOL_TIMEOUT_SECONDS", 30),
        "pool_recycle": _env_int("DB_POOL_RECYCLE_SECONDS", 1800),
    }
    kwargs.update(tuned)
    pool_config.update(tuned)
    pool_config["use_null_pool"] = "false"
    return kwargs, pool_config


_engine_kwargs, POOL_CONFIG = _build_engine_kwargs()
engine = create_engine(db_url, **_engine_kwargs)

if is_sqlite:

    @event.listens_for(engine, "connect")
    def _sqlite_enforce_foreign_keys(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine, future=True)
Base = declarative_base()


def get_db():
    db = SessionLocal()
    try:
        if is_postgres:
            # Keeps a stuck balance update from pinning a pooled connection.
            timeout_ms = _env_int("DB_STATEMENT_TIMEOUT_MS", 5000)
            if timeout_ms > 0:
                db.execute(text(f"SET statement_timeout = {timeout_ms}"))
        yield db
    finally:
        db.close()
