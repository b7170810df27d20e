"""HTTP front door: starts migrations in the background and reports whether one is running."""

from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING, Any, Final

from fastapi import BackgroundTasks, FastAPI, HTTPException

from .exceptions import MigrationError
from .runner import load_task_file, run_migration

if TYPE_CHECKING:
    from collections.abc import Callable

    from .config import Settings
    from .migrator import MigrationStats

    MigrationRunner = Callable[[Settings, list[dict[str, Any]]], MigrationStats]

logger: logging.Logger = logging.getLogger(__name__)

SAMPLE_SIZE: Final[int] = 5


class MigrationJobs:
    """Runs at most one migration at a time.

    The ledger is not safe for overlapping runs, so a second submission while
    a run is active is refused instead of queued.
    """

    def __init__(self, settings: Settings, runner: MigrationRunner) -> None:
        self._settings = settings
        self._runner = runner
        self._lock = threading.Lock()

    @property
    def running(self) -> bool:
        return self._lock.locked()

    def try_acquire(self) -> bool:
        return self._lock.acquire(blocking=False)

    def release(self) -> None:
        self._lock.release()

    def run(self, tasks: list[dict[str, Any]], label: str) -> None:
        """Run a migration previously reserved with ``try_acquire``."""
        try:
            stats = self._runner(self._settings, tasks)
            logger.info(f"{label} finished: {stats.summary()}")
        except Exception:
            logger.exception(f"{label} failed")
        finally:
            self.release()


def create_app(
    settings: Settings,
    runner: MigrationRunner | None = None,
) -> FastAPI:
    """Create the front door application.

    Args:
        settings: Loaded configuration; ``settings.task_file`` is read on each request
        runner: Function running a migration (defaults to ``runner.run_migration``)
    """
    jobs = MigrationJobs(settings, runner or run_migration)
    app = FastAPI(title="Bitrix24 task migrator")
    app.state.jobs = jobs

    def submit(background_tasks: BackgroundTasks, limit: int | None, label: str) -> dict[str, Any]:
        if not jobs.try_acquire():
            raise HTTPException(status_code=409, detail="A migration is already running")
        try:
            tasks = load_task_file(settings.task_file, limit)
        except (OSError, MigrationError) as e:
            jobs.release()
            raise HTTPException(status_code=500, detail=str(e)) from e

        background_tasks.add_task(jobs.run, tasks, label)
        logger.info(f"{label} of {len(tasks)} tasks started")
        return {"status": "accepted", "tasks": len(tasks), "message": f"{label} started, see the log"}

    @app.get("/")
    def status() -> dict[str, Any]:
        return {
            "status": "running" if jobs.running else "ready",
            "profile": settings.profile.name,
            "routes": ["/migrate-sample", "/migrate"],
        }

    @app.get("/migrate-sample", status_code=202)
    def migrate_sample(background_tasks: BackgroundTasks) -> dict[str, Any]:
        return submit(background_tasks, SAMPLE_SIZE, f"Sample migration ({SAMPLE_SIZE} tasks)")

    @app.get("/migrate", status_code=202)
    def migrate_all(background_tasks: BackgroundTasks) -> dict[str, Any]:
        return submit(background_tasks, None, "Full migration")

    return app
