"""Data models exchanged between the source portal, the destination portal and the migrator.

Source tasks come from ``tasks.task.list`` (camelCase keys), while everything
sent to the destination uses the upper-case field names of ``tasks.task.add``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class SourceRecord:
    """A task exported from the source workgroup.

    Identifiers are normalized to ``str`` so that ids read back from the
    checkpoint files compare equal to ids read from the export file.
    """

    id: str
    title: str = ""
    description: str = ""
    status: Any = None
    stage_id: Any = None
    deadline: str | None = None
    start_date_plan: str | None = None
    end_date_plan: str | None = None
    time_estimate: Any = None
    raw: dict[str, Any] = field(default_factory=dict, compare=False, repr=False)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SourceRecord:
        """Build a record from one ``tasks.task.list`` item."""
        if not isinstance(data, dict):
            msg = f"Task entry is not an object: {data!r}"
            raise ValueError(msg)
        if data.get("id") is None:
            msg = f"Task without id: {data!r}"
            raise ValueError(msg)
        return cls(
            id=str(data["id"]),
            title=data.get("title") or "",
            description=data.get("description") or "",
            status=data.get("status"),
            stage_id=data.get("stageId"),
            deadline=data.get("deadline"),
            start_date_plan=data.get("startDatePlan"),
            end_date_plan=data.get("endDatePlan"),
            time_estimate=data.get("timeEstimate"),
            raw=dict(data),
        )


@dataclass(frozen=True)
class StageMapping:
    """Source stage id -> destination stage id for one pair of workgroups."""

    stages: dict[int, int]
    default: int

    def resolve(self, stage_id: Any) -> int:
        """Return the destination stage, falling back to ``default`` on any miss."""
        try:
            number = float(stage_id)
        except (TypeError, ValueError):
            return self.default
        if not number.is_integer():
            return self.default
        return self.stages.get(int(number), self.default)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> StageMapping:
        """Build a mapping from ``{"default": 178, "stages": {"615": 178}}``."""
        try:
            stages = {int(k): int(v) for k, v in data.get("stages", {}).items()}
            default = int(data["default"])
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            msg = f"Invalid stage mapping: {e}"
            raise ValueError(msg) from e
        return cls(stages=stages, default=default)


@dataclass(frozen=True)
class TaskMetadata:
    """Extended task fields that ``tasks.task.list`` does not return."""

    tags: list[str] = field(default_factory=list)
    mark: str | None = None


@dataclass(frozen=True)
class Comment:
    """A task comment. Only the message body is migrated."""

    message: str


@dataclass(frozen=True)
class DownloadedFile:
    """A disk file fetched from the source portal."""

    file_id: str
    name: str
    content: bytes
