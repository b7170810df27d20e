"""Copy task comments from the source portal to the destination portal."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from .models import Comment

if TYPE_CHECKING:
    from .protocols import ApiClient

logger: logging.Logger = logging.getLogger(__name__)


def get_comments(client: ApiClient, task_id: str) -> list[Comment]:
    """Return all comments of a task in source order (single call, no paging)."""
    data = client.call("task.commentitem.getlist.json", {"taskId": task_id})
    return [Comment(message=item.get("POST_MESSAGE") or "") for item in data.get("result") or []]


def copy_comments(source: ApiClient, destination: ApiClient, old_id: str, new_id: str) -> int:
    """Replicate the comments of ``old_id`` onto ``new_id`` and return how many were written.

    Only the message body is carried over. A failure partway through leaves
    the comments written so far on the destination task.
    """
    comments = get_comments(source, old_id)
    for comment in comments:
        destination.post(
            "task.commentitem.add.json",
            {"taskId": new_id, "fields": {"POST_MESSAGE": comment.message}},
        )
    logger.debug(f"Copied {len(comments)} comments from task {old_id} to {new_id}")
    return len(comments)
