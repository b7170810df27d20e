"""Build destination task fields from an exported source task."""

from __future__ import annotations

import math
from typing import TYPE_CHECKING, Any, Final

if TYPE_CHECKING:
    from .models import SourceRecord, StageMapping

DEFAULT_STATUS: Final[int] = 1
DEFAULT_TIME_ESTIMATE: Final[int] = 0


def coerce_number(value: Any, default: int) -> int | float:
    """Convert ``value`` to a number, or return ``default`` when it is not a usable one.

    Zero counts as unusable, as do NaN and infinities.
    """
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    if not math.isfinite(number) or number == 0:
        return default
    return int(number) if number.is_integer() else number


def build_task_fields(
    record: SourceRecord,
    *,
    stage_mapping: StageMapping,
    group_id: int,
    operator_id: int,
    extra_fields: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """Map a source task to the ``fields`` of ``tasks.task.add``.

    Every migrated task is owned by ``operator_id``: it becomes the
    responsible person, creator, auditor and accomplice.

    Args:
        record: Source task
        stage_mapping: Source -> destination stage ids with default
        group_id: Destination workgroup
        operator_id: Destination user owning migrated tasks
        extra_fields: Fields produced by the enrichment step (tags, attachments)

    Returns:
        Field dict ready to be sent to the destination portal
    """
    fields: dict[str, Any] = {
        "TITLE": record.title,
        "DESCRIPTION": record.description,
        "STATUS": coerce_number(record.status, DEFAULT_STATUS),
        "GROUP_ID": group_id,
        "STAGE_ID": stage_mapping.resolve(record.stage_id),
        "RESPONSIBLE_ID": operator_id,
        "CREATED_BY": operator_id,
        "AUDITORS": [operator_id],
        "ACCOMPLICES": [operator_id],
        "DEADLINE": record.deadline,
        "START_DATE_PLAN": record.start_date_plan,
        "END_DATE_PLAN": record.end_date_plan,
        "TIME_ESTIMATE": coerce_number(record.time_estimate, DEFAULT_TIME_ESTIMATE),
    }
    if extra_fields:
        fields.update(extra_fields)
    return fields
