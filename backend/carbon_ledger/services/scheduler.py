from __future__ import annotations

import logging
import threading
from datetime import datetime, timedelta, timezone
from typing import Callable

from sqlalchemy import text
from sqlalchemy.engine import Connection
from sqlalchemy.orm import Session, sessionmaker

from carbon_ledger.config import settings
from carbon_ledger.database import SessionLocal
from carbon_ledger.services.expiration_sweeper import (
    SweepResult,
    run_expire_pass,
    run_statement_retry_pass,
    run_warn_pass,
)

logger = logging.getLogger("carbon_ledger.scheduler")

# Stable advisory lock keys, one per sweep.
EXPIRE_LOCK_KEY = 731001
WARN_LOCK_KEY = 731002
STATEMENTS_LOCK_KEY = 731003


def _try_pg_advisory_lock(conn: Connection, key: int) -> bool:
    """
    Best-effort distributed lock for Postgres. On other DBs, returns True (no-op).

    The lock is session-level: it belongs to ``conn`` until released on that
    same connection, whatever the job commits in between.
    """
    if conn.dialect.name != "postgresql":
        return True
    try:
        locked = conn.execute(text("SELECT pg_try_advisory_lock(:k)"), {"k": int(key)}).scalar()
        conn.commit()
        return bool(locked)
    except Exception as exc:
        # If lock fails, don't block the job forever; just proceed.
        conn.rollback()
        logger.warning("sweep_lock_unavailable", extra={"lock_key": key, "error": str(exc)})
        return True


def _unlock_pg_advisory_lock(conn: Connection, key: int) -> None:
    if conn.dialect.name != "postgresql":
        return
    try:
        conn.execute(text("SELECT pg_advisory_unlock(:k)"), {"k": int(key)})
        conn.commit()
    except Exception as exc:
        conn.rollback()
        logger.warning("sweep_unlock_failed", extra={"lock_key": key, "error": str(exc)})


def run_locked(
    name: str,
    lock_key: int,
    job: Callable[[Session], SweepResult],
    session_factory: sessionmaker = SessionLocal,
) -> SweepResult | None:
    """Run one sweep, skipping when another worker holds the lock.

    The lock, the job's session and the unlock all share one dedicated
    connection checked out of the factory's engine, so the unlock reaches the
    backend that took the lock even after the job's commits.
    """

    conn = session_factory.kw["bind"].connect()
    try:
        if not _try_pg_advisory_lock(conn, lock_key):
            logger.info("sweep_skipped_locked", extra={"sweep": name})
            return None
        try:
            db = session_factory(bind=conn)
            try:
                return job(db)
            finally:
                db.close()
        finally:
            _unlock_pg_advisory_lock(conn, lock_key)
    finally:
        conn.close()


class DailyJobRunner:
    """
    Minimal dependency-free daily scheduler running one job at a UTC hour.
    NOTE: In multi-worker setups, each worker will start this thread.
    We mitigate duplicates via a Postgres advisory lock.
    """

    def __init__(self, name: str, hour_utc: int, job: Callable[[], object]) -> None:
        self.name = name
        self.hour_utc = int(hour_utc)
        self.job = job
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def running(self) -> bool:
        return bool(self._thread and self._thread.is_alive())

    def start(self) -> None:
        if self.running:
            return
        self._stop.clear()
        self._thread = threading.Thread(
            target=self._loop, name=f"sweep-{self.name}", daemon=True
        )
        self._thread.start()

    def stop(self, timeout: float = 5.0) -> None:
        self._stop.set()
        if self._thread:
            self._thread.join(timeout=timeout)

    def next_run_after(self, now: datetime) -> datetime:
        next_run = now.replace(hour=self.hour_utc, minute=0, second=0, microsecond=0)
        if next_run <= now:
            next_run = next_run + timedelta(days=1)
        return next_run

    def run_once(self) -> None:
        try:
            res = self.job()
            logger.info("sweep_ok", extra={"sweep": self.name, "result": str(res)})
        except Exception as exc:
            logger.exception("sweep_failed", extra={"sweep": self.name, "error": str(exc)})

    def _loop(self) -> None:
        while not self._stop.is_set():
            now = datetime.now(timezone.utc)
            next_run = self.next_run_after(now)
            wait_s = max(0.0, (next_run - now).total_seconds())
            logger.info(
                "scheduler_wait",
                extra={
                    "sweep": self.name,
                    "next_run_utc": next_run.isoformat(),
                    "wait_seconds": int(wait_s),
                },
            )
            if self._stop.wait(wait_s):
                break
            self.run_once()


class SweepScheduler:
    """Owns one daily runner per sweep (expire, warn, statement retry)."""

    def __init__(
        self,
        *,
        expire_hour_utc: int | None = None,
        warn_hour_utc: int | None = None,
        statements_hour_utc: int | None = None,
        session_factory: sessionmaker = SessionLocal,
    ) -> None:
        self.session_factory = session_factory
        self.runners = [
            DailyJobRunner(
                "expire",
                settings.expire_sweep_utc_hour if expire_hour_utc is None else expire_hour_utc,
                lambda: run_locked("expire", EXPIRE_LOCK_KEY, run_expire_pass, self.session_factory),
            ),
            DailyJobRunner(
                "warn",
                settings.warn_sweep_utc_hour if warn_hour_utc is None else warn_hour_utc,
                lambda: run_locked("warn", WARN_LOCK_KEY, run_warn_pass, self.session_factory),
            ),
            DailyJobRunner(
                "statements",
                settings.statement_retry_utc_hour
                if statements_hour_utc is None
                else statements_hour_utc,
                lambda: run_locked(
                    "statements",
                    STATEMENTS_LOCK_KEY,
                    run_statement_retry_pass,
                    self.session_factory,
                ),
            ),
        ]

    @property
    def running(self) -> bool:
        return any(r.running for r in self.runners)

    def start(self) -> None:
        for r in self.runners:
            r.start()
        logger.info(
            "scheduler_started",
            extra={"sweeps": {r.name: r.hour_utc for r in self.runners}},
        )

    def stop(self, timeout: float = 5.0) -> None:
        for r in self.runners:
            r.stop(timeout=timeout)
        logger.info("scheduler_stopped")


SWEEPS: dict[str, tuple[int, Callable[[Session], SweepResult]]] = {
    "expire": (EXPIRE_LOCK_KEY, run_expire_pass),
    "warn": (WARN_LOCK_KEY, run_warn_pass),
    "statements": (STATEMENTS_LOCK_KEY, run_statement_retry_pass),
}


# Singleton scheduler for FastAPI lifecycle
scheduler = SweepScheduler()
