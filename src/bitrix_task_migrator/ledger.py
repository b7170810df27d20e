"""Durable record of which source tasks were migrated, and to which destination ids.

Two files make up the ledger:

- the checkpoint file: a JSON array of migrated source task ids
- the id map: a JSON object ``{source_id: destination_id}``

Every id in the map is also in the checkpoint set. The legacy pipeline keeps
only the checkpoint file (``map_path=None``).

Both files are rewritten after every migrated task, before ``mark_done``
returns, so a crash loses at most the task in progress. The ledger is not
safe for concurrent runs; callers serialize them.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any

logger: logging.Logger = logging.getLogger(__name__)


def _read_json(path: Path) -> Any:
    """Return the decoded content of ``path``, or ``None`` when it is missing or unreadable."""
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError:
        return None
    except (OSError, ValueError) as e:
        logger.warning(f"Ignoring unreadable ledger file {path}: {e}")
        return None


def _write_json_atomic(path: Path, data: Any, indent: int | None = None) -> None:
    """Replace ``path`` with ``data`` and flush it to disk before returning."""
    fd, temp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=indent, ensure_ascii=False)
            f.flush()
            os.fsync(f.fileno())
        os.replace(temp_name, path)
    except BaseException:
        Path(temp_name).unlink(missing_ok=True)
        raise


class CheckpointLedger:
    """Checkpoint set plus source -> destination id map, persisted as JSON."""

    done_path: Path
    map_path: Path | None
    _migrated: set[str]
    _id_map: dict[str, str]

    def __init__(
        self,
        done_path: Path | str,
        map_path: Path | str | None = None,
        *,
        migrated: set[str] | None = None,
        id_map: dict[str, str] | None = None,
    ) -> None:
        self.done_path = Path(done_path)
        self.map_path = Path(map_path) if map_path is not None else None
        self._migrated = set(migrated or ())
        self._id_map = dict(id_map or {})

    @classmethod
    def load(cls, done_path: Path | str, map_path: Path | str | None = None) -> CheckpointLedger:
        """Load the ledger. Missing or corrupt files count as empty state."""
        done_path = Path(done_path)
        raw_done = _read_json(done_path)
        migrated: set[str] = set()
        if isinstance(raw_done, list):
            migrated = {str(task_id) for task_id in raw_done}
        elif raw_done is not None:
            logger.warning(f"Ignoring {done_path}: expected a JSON array")

        id_map: dict[str, str] = {}
        if map_path is not None:
            map_path = Path(map_path)
            raw_map = _read_json(map_path)
            if isinstance(raw_map, dict):
                id_map = {str(k): str(v) for k, v in raw_map.items()}
            elif raw_map is not None:
                logger.warning(f"Ignoring {map_path}: expected a JSON object")

        orphans = id_map.keys() - migrated
        if orphans:
            # A mapped task already exists on the destination
            logger.warning(f"{len(orphans)} mapped task(s) missing from {done_path}; treating them as migrated")
            migrated |= orphans

        logger.info(f"Loaded ledger: {len(migrated)} migrated tasks, {len(id_map)} mapped ids")
        return cls(done_path, map_path, migrated=migrated, id_map=id_map)

    def __len__(self) -> int:
        return len(self._migrated)

    @property
    def migrated_ids(self) -> frozenset[str]:
        return frozenset(self._migrated)

    @property
    def id_map(self) -> dict[str, str]:
        return dict(self._id_map)

    def is_done(self, task_id: str | int) -> bool:
        return str(task_id) in self._migrated

    def destination_id(self, task_id: str | int) -> str | None:
        return self._id_map.get(str(task_id))

    def mark_done(self, task_id: str | int, new_id: str | int) -> None:
        """Record a migrated task and persist the ledger before returning.

        The in-memory state only changes once both files are written, so a
        failed write leaves the task pending.
        """
        key = str(task_id)
        migrated = self._migrated | {key}
        id_map = self._id_map
        if self.map_path is not None:
            id_map = {**self._id_map, key: str(new_id)}
        self._persist(migrated, id_map)
        self._migrated = migrated
        self._id_map = id_map

    def _persist(self, migrated: set[str], id_map: dict[str, str]) -> None:
        if self.map_path is not None:
            _write_json_atomic(self.map_path, id_map, indent=2)
        _write_json_atomic(self.done_path, sorted(migrated, key=_id_sort_key))


def _id_sort_key(task_id: str) -> tuple[int, int | str]:
    # Numeric ids first, in numeric order
    return (0, int(task_id)) if task_id.isdigit() else (1, task_id)
