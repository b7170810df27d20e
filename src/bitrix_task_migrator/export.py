"""Export every task of a source workgroup to a JSON file."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import TYPE_CHECKING, Any, Final

from .exceptions import RemoteApiError

if TYPE_CHECKING:
    from .protocols import ApiClient

logger: logging.Logger = logging.getLogger(__name__)

PAGE_SIZE: Final[int] = 50


def fetch_all_tasks(client: ApiClient, group_id: int | str, page_size: int = PAGE_SIZE) -> list[dict[str, Any]]:
    """Page through ``tasks.task.list`` for one workgroup.

    Bitrix24 returns pages of ``page_size`` tasks; a shorter page (possibly
    empty) is the last one. Always starts from the first page.

    Args:
        client: Source portal client
        group_id: Workgroup whose tasks are listed
        page_size: Page size used by the portal

    Returns:
        All task dicts, in the order the portal returned them
    """
    tasks: list[dict[str, Any]] = []
    start = 0

    while True:
        logger.info(f"Fetching tasks of group {group_id} from start={start}")
        data = client.call("tasks.task.list", {"filter[GROUP_ID]": group_id, "start": start})
        result = data.get("result")
        if not isinstance(result, dict):
            msg = f"tasks.task.list returned no result: {data!r}"
            raise RemoteApiError(msg)

        page: list[dict[str, Any]] = result.get("tasks") or []
        tasks.extend(page)

        if len(page) < page_size:
            break
        start += page_size

    return tasks


def export_file_name(group_id: int | str) -> str:
    return f"tasks_full_{group_id}.json"


def export_group_tasks(client: ApiClient, group_id: int | str, output_dir: Path | str = ".") -> Path:
    """Write all tasks of ``group_id`` to ``tasks_full_<group_id>.json`` and return the path."""
    tasks = fetch_all_tasks(client, group_id)
    out_path = Path(output_dir) / export_file_name(group_id)
    out_path.write_text(json.dumps(tasks, indent=2, ensure_ascii=False), encoding="utf-8")
    logger.info(f"Wrote {len(tasks)} tasks to {out_path}")
    return out_path
