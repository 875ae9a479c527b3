"""
ScanTrack — Production Scan Reconciliation
Scheduler Service.

Runs the background jobs on lightweight daemon-thread tickers and keeps
their run history in the ScheduledJob table.

Architecture:
    - register_job: decorator registry of job functions
    - SchedulerService: persistence, execution, enable/disable, start/stop
    - IntervalTicker / DailyTicker: the default tickers; start() accepts a
      ticker_factory so tests can drive ticks by hand
"""

from __future__ import annotations

import logging
import threading
import time
from datetime import datetime, timedelta
from typing import Callable

from flask import Flask

from scantrack.models import db
from scantrack.models.scheduling import ScheduledJob

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════
#  Job Registry
# ═══════════════════════════════════════════════════════════════════════════

_job_registry: dict[str, Callable] = {}


def register_job(name: str):
    """Decorator to register a job function.

    Usage:
        @register_job("production_sync")
        def sync_production(app, trigger="manual"):
            ...
    """
    def decorator(fn: Callable) -> Callable:
        _job_registry[name] = fn
        return fn
    return decorator


def get_registered_jobs() -> dict[str, Callable]:
    """Return all registered job functions."""
    return dict(_job_registry)


# ═══════════════════════════════════════════════════════════════════════════
#  Tickers
# ═══════════════════════════════════════════════════════════════════════════


class _Ticker:
    """Calls ``callback`` on a daemon thread until stopped."""

    def __init__(self, name: str, callback: Callable[[], object]) -> None:
        self.name = name
        self.callback = callback
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

    def next_delay(self) -> float:
        raise NotImplementedError

    def fire(self) -> None:
        try:
            self.callback()
        except Exception:
            logger.critical("Unhandled error in background job %s", self.name,
                            exc_info=True, extra={"job_name": self.name})

    def _loop(self) -> None:
        while not self._stop_event.wait(self.next_delay()):
            self.fire()

    def start(self) -> None:
        if self._thread and self._thread.is_alive():
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._loop, name=f"ticker-{self.name}", daemon=True)
        self._thread.start()

    def stop(self, timeout: float | None = 5.0) -> None:
        self._stop_event.set()
        if self._thread:
            self._thread.join(timeout)
            self._thread = None


class IntervalTicker(_Ticker):
    def __init__(self, name: str, callback: Callable[[], object], interval_seconds: float) -> None:
        super().__init__(name, callback)
        self.interval_seconds = interval_seconds

    def next_delay(self) -> float:
        return self.interval_seconds


class DailyTicker(_Ticker):
    """Fires once a day at ``hour:minute`` server local time."""

    def __init__(self, name: str, callback: Callable[[], object], hour: int, minute: int = 0) -> None:
        super().__init__(name, callback)
        self.hour = hour
        self.minute = minute

    def next_delay(self, now: datetime | None = None) -> float:
        now = now or datetime.now()
        run_at = now.replace(hour=self.hour, minute=self.minute, second=0, microsecond=0)
        if run_at <= now:
            run_at += timedelta(days=1)
        return (run_at - now).total_seconds()


def default_ticker_factory(name: str, schedule: dict, callback: Callable[[], object]) -> _Ticker:
    if schedule.get("type") == "daily":
        return DailyTicker(name, callback, hour=int(schedule.get("hour", 0)),
                           minute=int(schedule.get("minute", 0)))
    return IntervalTicker(name, callback, interval_seconds=float(schedule.get("seconds", 60)))



# ═══════════════════════════════════════════════════════════════════════════
#  Scheduler
# ═══════════════════════════════════════════════════════════════════════════


def _job_schedule(job_name: str, app_config) -> dict:
    """Schedule for ``job_name`` derived from the app settings."""
    if job_name == "production_sync":
        seconds = int(app_config.get("SYNC_INTERVAL_SECONDS", 120))
        return {"type": "interval", "seconds": seconds,
                "description": f"Every {seconds} seconds"}
    if job_name == "tracking_retention":
        hour = int(app_config.get("TRACKING_RETENTION_HOUR", 2))
        return {"type": "daily", "hour": hour, "minute": 0,
                "description": f"Daily at {hour:02d}:00"}
    return {"type": "daily", "hour": 0, "minute": 0, "description": "Daily at midnight"}


def _job_record(job_name: str) -> ScheduledJob | None:
    return ScheduledJob.query.filter_by(job_name=job_name).first()


def _summary_line(fn: Callable, job_name: str) -> str:
    doc = (fn.__doc__ or "").strip()
    return doc.splitlines()[0] if doc else f"Background job {job_name}"


class SchedulerService:
    """Class-level facade over the job registry, its DB records and tickers.

    Jobs always execute inside an app context of the app passed to
    ``init_app``; run outcomes land on the job's ScheduledJob row.
    """

    _app: Flask | None = None
    _running: bool = False
    _tickers: dict = {}

    @classmethod
    def init_app(cls, app: Flask) -> None:
        cls._app = app
        app.extensions["scheduler"] = cls
        logger.info("Scheduler bound to app, %d jobs registered", len(_job_registry))

    @classmethod
    def schedule_for(cls, job_name: str) -> dict:
        return _job_schedule(job_name, cls._app.config if cls._app else {})

    @classmethod
    def ensure_jobs_registered(cls) -> list[str]:
        """Create a ScheduledJob row for every new job; re-sync changed schedules.

        Returns the names of the jobs whose rows this call created.
        """
        if cls._app is None:
            return []

        new_names = []
        with cls._app.app_context():
            for name, fn in _job_registry.items():
                schedule = cls.schedule_for(name)
                row = _job_record(name)
                if row is None:
                    row = ScheduledJob(
                        job_name=name,
                        description=_summary_line(fn, name),
                        schedule_type=schedule["type"],
                        schedule_config=schedule,
                        is_enabled=True,
                        run_count=0,
                        error_count=0,
                        skipped_count=0,
                    )
                    db.session.add(row)
                    new_names.append(name)
                elif row.schedule_config != schedule:
                    logger.info("Schedule of %s changed to %s", name, schedule.get("description"),
                                extra={"job_name": name})
                    row.schedule_type = schedule["type"]
                    row.schedule_config = schedule
            db.session.commit()
        if new_names:
            logger.info("Registered new scheduled jobs: %s", ", ".join(new_names))
        return new_names

    @classmethod
    def _disabled(cls, job_name: str) -> bool:
        with cls._app.app_context():
            row = _job_record(job_name)
            return row is not None and not row.is_enabled

    @classmethod
    def _book_run(cls, job_name: str, outcome: dict) -> None:
        result = outcome["result"]
        try:
            with cls._app.app_context():
                row = _job_record(job_name)
                if row is None:
                    return
                row.record_run(
                    status=outcome["status"],
                    duration_ms=outcome["duration_ms"],
                    result=result if isinstance(result, dict) else {"output": str(result)},
                    error=outcome["error"],
                )
                db.session.commit()
        except Exception:
            logger.exception("Could not book run of %s", job_name, extra={"job_name": job_name})

    @classmethod
    def run_job(cls, job_name: str, trigger: str = "manual") -> dict:
        """Execute ``job_name`` now and book the outcome.

        ``status`` in the returned dict is one of success, failed, skipped
        (the job reported ``{"status": "skipped"}``), disabled (a scheduled
        run of a disabled job; nothing executes) or error (unknown job or
        scheduler not initialised).
        """
        fn = _job_registry.get(job_name)
        if fn is None:
            return {"status": "error", "error": f"Unknown job: {job_name}"}
        if cls._app is None:
            return {"status": "error", "error": "Scheduler not initialized"}

        if trigger == "scheduled" and cls._disabled(job_name):
            logger.debug("Skipping disabled job %s", job_name, extra={"job_name": job_name})
            return {"job_name": job_name, "trigger": trigger, "status": "disabled"}

        outcome = {"job_name": job_name, "trigger": trigger, "status": "success",
                   "result": None, "error": None}
        started = time.monotonic()
        try:
            with cls._app.app_context():
                outcome["result"] = fn(cls._app, trigger=trigger)
        except Exception as exc:
            outcome.update(status="failed", error=str(exc))
            logger.exception("Job %s failed: %s", job_name, exc, extra={"job_name": job_name})
        else:
            if isinstance(outcome["result"], dict) and outcome["result"].get("status") == "skipped":
                outcome["status"] = "skipped"
        outcome["duration_ms"] = int((time.monotonic() - started) * 1000)

        cls._book_run(job_name, outcome)
        return outcome

    @classmethod
    def list_jobs(cls) -> list[dict]:
        """Registered jobs, each with its ticker state and DB row."""
        listing = []
        for name in _job_registry:
            row = _job_record(name)
            listing.append({
                "job_name": name,
                "registered": True,
                "running": name in cls._tickers,
                "db_record": row.to_dict() if row else None,
            })
        return listing

    @classmethod
    def get_job_status(cls, job_name: str) -> dict | None:
        row = _job_record(job_name)
        return row.to_dict() if row else None

    @classmethod
    def toggle_job(cls, job_name: str, enabled: bool) -> dict | None:
        """Set ``is_enabled``; None when the job has no row."""
        row = _job_record(job_name)
        if row is None:
            return None
        row.is_enabled = enabled
        db.session.commit()
        logger.info("Job %s %s", job_name, "enabled" if enabled else "disabled",
                    extra={"job_name": job_name})
        return row.to_dict()

    # ── Background tickers ──────────────────────────────────────────────────

    @classmethod
    def start(cls, ticker_factory: Callable | None = None) -> dict:
        """Start one ticker per registered job; returns them by job name.

        ``ticker_factory(name, schedule, callback)`` defaults to
        default_ticker_factory. Calling start() again while running is a no-op.
        """
        if cls._running:
            return dict(cls._tickers)
        if cls._app is None:
            raise RuntimeError("Scheduler not initialized")

        make_ticker = ticker_factory or default_ticker_factory
        cls.ensure_jobs_registered()
        for name in _job_registry:
            schedule = cls.schedule_for(name)
            ticker = make_ticker(name, schedule, _scheduled_callback(cls, name))
            ticker.start()
            cls._tickers[name] = ticker
            logger.info("Background job %s started (%s)", name, schedule.get("description", ""),
                        extra={"job_name": name})
        cls._running = True
        return dict(cls._tickers)

    @classmethod
    def stop(cls) -> None:
        tickers, cls._tickers = cls._tickers, {}
        for ticker in tickers.values():
            ticker.stop()
        cls._running = False

    @classmethod
    def is_running(cls) -> bool:
        return cls._running


def _scheduled_callback(scheduler: type[SchedulerService], job_name: str) -> Callable[[], dict]:
    def callback() -> dict:
        return scheduler.run_job(job_name, trigger="scheduled")
    return callback
