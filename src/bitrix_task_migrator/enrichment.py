"""Per-task enrichment steps run before the destination task is created."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Final

from .attachments import AttachmentCopier, get_source_file_ids
from .client import get_result
from .exceptions import RemoteApiError
from .models import TaskMetadata
from .tags import normalize_tags

if TYPE_CHECKING:
    from .models import SourceRecord
    from .protocols import ApiClient

logger: logging.Logger = logging.getLogger(__name__)

TAG_SELECT: Final[list[str]] = ["TAGS", "SE_TAG", "tags", "MARK"]


def get_tags_and_mark(client: ApiClient, task_id: str) -> TaskMetadata:
    """Fetch the tags and mark of a source task with one ``tasks.task.get`` call."""
    data = client.call("tasks.task.get", {"taskId": task_id, "select[]": TAG_SELECT})
    result = get_result(data, "tasks.task.get")
    task = result.get("task") if isinstance(result, dict) else None
    if not isinstance(task, dict):
        msg = f"tasks.task.get returned no task for {task_id}: {data!r}"
        raise RemoteApiError(msg)
    return TaskMetadata(tags=normalize_tags(task), mark=task.get("MARK"))


class TagsAndMarkEnrichment:
    """Carries tags and the mark flag over to the destination task."""

    def __init__(self, source: ApiClient) -> None:
        self._source = source

    def enrich(self, record: SourceRecord) -> dict[str, Any]:
        metadata = get_tags_and_mark(self._source, record.id)
        return {"TAGS": metadata.tags, "MARK": metadata.mark}


class AttachmentEnrichment:
    """Copies attachments first, so the destination task is created with the new file ids.

    Attachments that cannot be copied are dropped; the task is still created.
    """

    def __init__(self, source: ApiClient, copier: AttachmentCopier) -> None:
        self._source = source
        self.copier = copier

    def enrich(self, record: SourceRecord) -> dict[str, Any]:
        file_ids = get_source_file_ids(self._source, record.id)
        new_ids = self.copier.copy_all(file_ids)
        if file_ids:
            logger.info(f"Copied {len(new_ids)}/{len(file_ids)} attachments of task {record.id}")
        return {"ATTACHMENT": new_ids}
