"""Migration orchestrator for Bitrix24 workgroup tasks.

Each source task goes through the same pipeline, strictly one task at a time
and in input order:

    skip if already in the ledger
      -> enrich (tags and mark, or copy attachments)
      -> build destination fields
      -> create the destination task
      -> copy comments
      -> checkpoint in the ledger

A failing task is logged with its id and left out of the ledger, so the next
run retries it; the remaining tasks are still processed. Re-running over
tasks already in the ledger creates nothing.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

import requests

from .client import get_result
from .comments import copy_comments
from .exceptions import MigrationError, RemoteApiError
from .models import SourceRecord
from .task_builder import build_task_fields
from .utils import describe_error, redact

if TYPE_CHECKING:
    from collections.abc import Iterable

    from .ledger import CheckpointLedger
    from .models import StageMapping
    from .protocols import ApiClient, TaskEnrichment

logger: logging.Logger = logging.getLogger(__name__)

# Malformed responses or export rows surface as lookup errors
_TASK_ERRORS = (requests.RequestException, MigrationError, OSError, KeyError, TypeError, AttributeError)


@dataclass
class MigrationStats:
    """Counters collected during a migration run."""

    migrated: int = 0
    skipped: int = 0
    failed: int = 0
    comments_copied: int = 0
    errors: list[str] = field(default_factory=list)

    def summary(self) -> str:
        return (
            f"{self.migrated} migrated, {self.skipped} already migrated, "
            f"{self.failed} failed, {self.comments_copied} comments copied"
        )


def create_task(destination: ApiClient, fields: dict[str, Any]) -> str:
    """Create a task on the destination portal and return its id."""
    logger.info(f"Creating task: {fields.get('TITLE')}")
    data = destination.post("tasks.task.add.json", {"fields": fields})
    result = get_result(data, "tasks.task.add.json")
    try:
        return str(result["task"]["id"])
    except (KeyError, TypeError) as e:
        msg = f"tasks.task.add.json returned no task id: {data!r}"
        raise RemoteApiError(msg) from e


class TaskMigrator:
    """Migrates exported tasks from a source workgroup to a destination workgroup.

    Usage:
        limiter = RateLimiter()
        source = get_client(src_domain, src_user, src_token, limiter, name="source")
        destination = get_client(dst_domain, dst_user, dst_token, limiter, name="destination")
        ledger = CheckpointLedger.load("migrated.json", "idmap.json")
        migrator = TaskMigrator(
            source, destination, ledger,
            stage_mapping=profile.stage_mapping, group_id=5, operator_id=1,
            enrichment=TagsAndMarkEnrichment(source),
        )
        migrator.migrate(tasks)
    """

    _source: ApiClient
    _destination: ApiClient
    _ledger: CheckpointLedger
    _enrichment: TaskEnrichment
    stats: MigrationStats

    def __init__(
        self,
        source: ApiClient,
        destination: ApiClient,
        ledger: CheckpointLedger,
        *,
        stage_mapping: StageMapping,
        group_id: int,
        operator_id: int,
        enrichment: TaskEnrichment,
    ) -> None:
        self._source = source
        self._destination = destination
        self._ledger = ledger
        self._enrichment = enrichment
        self.stage_mapping = stage_mapping
        self.group_id = group_id
        self.operator_id = operator_id
        self.stats = MigrationStats()

    def migrate(self, tasks: Iterable[SourceRecord | dict[str, Any]]) -> None:
        """Migrate ``tasks`` in order. Outcomes are reported through the log and the ledger."""
        for task in tasks:
            try:
                record = task if isinstance(task, SourceRecord) else SourceRecord.from_dict(task)
            except ValueError as e:
                self._record_failure("?", e)
                continue

            if self._ledger.is_done(record.id):
                self.stats.skipped += 1
                logger.info(f"Already migrated: {record.id}")
                continue

            try:
                new_id = self.migrate_task(record)
            except _TASK_ERRORS as e:
                self._record_failure(record.id, e)
                continue

            self.stats.migrated += 1
            logger.info(f"Migrated {record.id} -> {new_id}")

        logger.info(f"Migration finished: {self.stats.summary()}")

    def migrate_task(self, record: SourceRecord) -> str:
        """Run the full pipeline for one task and return the destination id.

        Raises:
            requests.RequestException: On transport or HTTP errors
            MigrationError: On responses without the expected payload
            OSError: When the ledger cannot be written
            KeyError, TypeError, AttributeError: On malformed responses
        """
        extra_fields = self._enrichment.enrich(record)
        fields = build_task_fields(
            record,
            stage_mapping=self.stage_mapping,
            group_id=self.group_id,
            operator_id=self.operator_id,
            extra_fields=extra_fields,
        )
        new_id = create_task(self._destination, fields)
        self.stats.comments_copied += copy_comments(self._source, self._destination, record.id, new_id)
        self._ledger.mark_done(record.id, new_id)
        return new_id

    def _record_failure(self, task_id: str, error: BaseException) -> None:
        detail = redact(describe_error(error), [self._source.token, self._destination.token])
        self.stats.failed += 1
        self.stats.errors.append(f"{task_id}: {detail}")
        logger.error(f"Failed to migrate task {task_id}: {detail}")
