"""Wiring of clients, ledger and migrator for the command line and the HTTP front door."""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any

from .attachments import AttachmentCopier
from .client import RateLimiter, get_client
from .enrichment import AttachmentEnrichment, TagsAndMarkEnrichment
from .exceptions import MigrationError
from .ledger import CheckpointLedger
from .migrator import MigrationStats, TaskMigrator

if TYPE_CHECKING:
    from pathlib import Path

    from .client import BitrixClient
    from .config import Settings
    from .protocols import TaskEnrichment

logger: logging.Logger = logging.getLogger(__name__)


def load_task_file(path: Path, limit: int | None = None) -> list[dict[str, Any]]:
    """Read exported tasks, keeping only the first ``limit`` when given.

    Raises:
        OSError: If the file cannot be read
        MigrationError: If it does not hold a JSON array
    """
    try:
        tasks = json.loads(path.read_text(encoding="utf-8"))
    except ValueError as e:
        msg = f"Invalid task file {path}: {e}"
        raise MigrationError(msg) from e
    if not isinstance(tasks, list):
        msg = f"Task file {path} must contain a JSON array"
        raise MigrationError(msg)
    return tasks[:limit] if limit is not None else tasks


def build_source_client(settings: Settings, limiter: RateLimiter) -> BitrixClient:
    src = settings.source
    return get_client(src.domain, src.user_id, src.token, limiter, name="source")


def build_migrator(settings: Settings) -> TaskMigrator:
    """Create a migrator whose source and destination share one rate limiter."""
    limiter = RateLimiter()
    source = build_source_client(settings, limiter)
    dst = settings.require_destination()
    destination = get_client(dst.domain, dst.user_id, dst.token, limiter, name="destination")
    ledger = CheckpointLedger.load(settings.done_file, settings.map_file)

    enrichment: TaskEnrichment
    if settings.profile.enrichment == "attachments":
        copier = AttachmentCopier(source, destination, settings.destination_folder_id)
        enrichment = AttachmentEnrichment(source, copier)
    else:
        enrichment = TagsAndMarkEnrichment(source)

    return TaskMigrator(
        source,
        destination,
        ledger,
        stage_mapping=settings.profile.stage_mapping,
        group_id=settings.require_destination_group(),
        operator_id=settings.operator_id,
        enrichment=enrichment,
    )


def run_migration(settings: Settings, tasks: list[dict[str, Any]]) -> MigrationStats:
    """Migrate ``tasks`` and return the run's counters."""
    migrator = build_migrator(settings)
    logger.info(f"Starting migration of {len(tasks)} tasks with profile '{settings.profile.name}'")
    migrator.migrate(tasks)
    return migrator.stats
