"""
Tag normalization for Bitrix24 tasks.

Depending on portal version and the ``select`` used, ``tasks.task.get`` reports
tags in one of three shapes:

- ``TAGS``: a flat list of tag names
- ``SE_TAG``: a list of objects with a ``NAME`` property
- ``tags``: a dict of objects with a ``title`` property, keyed by tag id
"""

from __future__ import annotations

from typing import Any


def _flat_names(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    return [str(name) for name in value if name]


def _se_tag_names(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    return [str(item["NAME"]) for item in value if isinstance(item, dict) and item.get("NAME")]


def _tag_titles(value: Any) -> list[str]:
    if not isinstance(value, dict):
        return []
    return [str(item["title"]) for item in value.values() if isinstance(item, dict) and item.get("title")]


def normalize_tags(task: dict[str, Any]) -> list[str]:
    """Return the tag names of a task, trying ``TAGS``, then ``SE_TAG``, then ``tags``.

    The first shape yielding at least one name wins; the others are ignored.
    """
    for names in (
        _flat_names(task.get("TAGS")),
        _se_tag_names(task.get("SE_TAG")),
        _tag_titles(task.get("tags")),
    ):
        if names:
            return names
    return []
