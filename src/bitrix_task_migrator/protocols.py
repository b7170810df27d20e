"""Protocols defining the contracts between the migrator and its collaborators.

The migration pipeline is the same for every pair of workgroups; what differs
is which extra data is carried over with each task. That step is pluggable:

1. ApiClient: a rate-limited Bitrix24 portal (``client.BitrixClient``)
2. TaskEnrichment: produces extra destination fields for one source task
   (tags and mark, or copied attachments)

Tests provide their own implementations of both.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol

if TYPE_CHECKING:
    from .models import SourceRecord


class ApiClient(Protocol):
    """Protocol for a Bitrix24 portal reachable through a webhook."""

    name: str
    token: str | None

    def call(self, method: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
        """Issue a rate-limited read and return the decoded response."""
        ...

    def post(
        self,
        method: str,
        payload: dict[str, Any] | None = None,
        *,
        data: dict[str, Any] | None = None,
        files: dict[str, tuple[str, bytes]] | None = None,
    ) -> dict[str, Any]:
        """Issue a rate-limited write and return the decoded response."""
        ...

    def download(self, url: str) -> bytes:
        """Fetch raw bytes from a download URL, outside the rate limiter."""
        ...


class TaskEnrichment(Protocol):
    """Protocol for the per-task step run before the destination task is created.

    Implementations may call the source and destination portals. The returned
    mapping is merged into the ``fields`` of ``tasks.task.add``.

    Raising aborts the migration of that task only; the migrator logs the
    error and leaves the checkpoint unset.
    """

    def enrich(self, record: SourceRecord) -> dict[str, Any]:
        """Return extra destination fields for ``record``."""
        ...
