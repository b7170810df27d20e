"""Tests for the task migration pipeline."""

from __future__ import annotations

import json
import logging
from itertools import count
from typing import TYPE_CHECKING, Any
from unittest.mock import Mock, patch

import pytest
import requests

from bitrix_task_migrator.attachments import AttachmentCopier
from bitrix_task_migrator.enrichment import AttachmentEnrichment, TagsAndMarkEnrichment
from bitrix_task_migrator.exceptions import RemoteApiError
from bitrix_task_migrator.ledger import CheckpointLedger
from bitrix_task_migrator.migrator import MigrationStats, TaskMigrator, create_task
from bitrix_task_migrator.models import SourceRecord, StageMapping

if TYPE_CHECKING:
    from pathlib import Path

STAGES = StageMapping(stages={615: 178, 517: 180}, default=178)


def _make_client(name: str, token: str | None = None) -> Mock:
    client = Mock()
    client.name = name
    client.token = token
    return client


def _tasks(*ids: str) -> list[dict[str, Any]]:
    return [{"id": task_id, "title": f"Task {task_id}", "status": "2", "stageId": "517"} for task_id in ids]


@pytest.mark.unit
class TestCreateTask:
    def test_returns_new_id(self) -> None:
        destination = _make_client("destination")
        destination.post.return_value = {"result": {"task": {"id": 321}}}

        assert create_task(destination, {"TITLE": "t"}) == "321"
        destination.post.assert_called_once_with("tasks.task.add.json", {"fields": {"TITLE": "t"}})

    def test_error_body_raises(self) -> None:
        destination = _make_client("destination")
        destination.post.return_value = {"error": "ERROR_CORE", "error_description": "Bad stage"}

        with pytest.raises(RemoteApiError, match="Bad stage"):
            create_task(destination, {"TITLE": "t"})

    def test_result_without_task_raises(self) -> None:
        destination = _make_client("destination")
        destination.post.return_value = {"result": {"unexpected": True}}

        with pytest.raises(RemoteApiError):
            create_task(destination, {"TITLE": "t"})


class _PortalPair:
    """Source and destination doubles recording every write."""

    def __init__(self) -> None:
        self.source: Mock = _make_client("source", token="src-secret")
        self.destination: Mock = _make_client("destination", token="dst-secret")
        self.created: list[dict[str, Any]] = []
        self.comments: list[tuple[str, str]] = []
        self.failing_create: set[str] = set()
        self._new_ids = count(1000)

        self.source.call.side_effect = self._source_call
        self.destination.post.side_effect = self._destination_post

    def _source_call(self, method: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
        params = params or {}
        if method == "tasks.task.get":
            return {"result": {"task": {"TAGS": [f"tag-{params['taskId']}"], "MARK": "P"}}}
        if method == "task.commentitem.getlist.json":
            task_id = params["taskId"]
            return {"result": [{"POST_MESSAGE": f"{task_id}-c1"}, {"POST_MESSAGE": f"{task_id}-c2"}]}
        raise AssertionError(f"Unexpected source call {method}")

    def _destination_post(self, method: str, payload: dict[str, Any] | None = None, **_: Any) -> dict[str, Any]:
        assert payload is not None
        if method == "tasks.task.add.json":
            if payload["fields"]["TITLE"] in self.failing_create:
                return {"error": "ERROR_CORE", "error_description": "rejected"}
            self.created.append(payload["fields"])
            return {"result": {"task": {"id": next(self._new_ids)}}}
        if method == "task.commentitem.add.json":
            self.comments.append((payload["taskId"], payload["fields"]["POST_MESSAGE"]))
            return {"result": 1}
        raise AssertionError(f"Unexpected destination call {method}")


@pytest.mark.unit
class TestTaskMigrator:
    def setup_method(self) -> None:
        self.portals = _PortalPair()

    def _migrator(self, tmp_path: Path, ledger: CheckpointLedger | None = None) -> TaskMigrator:
        ledger = ledger or CheckpointLedger.load(tmp_path / "migrated.json", tmp_path / "idmap.json")
        return TaskMigrator(
            self.portals.source,
            self.portals.destination,
            ledger,
            stage_mapping=STAGES,
            group_id=5,
            operator_id=1,
            enrichment=TagsAndMarkEnrichment(self.portals.source),
        )

    def test_migrates_tasks_in_order_with_comments(self, tmp_path: Path) -> None:
        migrator = self._migrator(tmp_path)

        assert migrator.migrate(_tasks("1", "2")) is None

        assert [f["TITLE"] for f in self.portals.created] == ["Task 1", "Task 2"]
        assert self.portals.created[0]["TAGS"] == ["tag-1"]
        assert self.portals.created[0]["MARK"] == "P"
        assert self.portals.created[0]["STAGE_ID"] == 180
        assert self.portals.comments == [("1000", "1-c1"), ("1000", "1-c2"), ("1001", "2-c1"), ("1001", "2-c2")]
        assert migrator.stats == MigrationStats(migrated=2, comments_copied=4)

    def test_checkpoints_each_task(self, tmp_path: Path) -> None:
        self._migrator(tmp_path).migrate(_tasks("1", "2"))

        assert json.loads((tmp_path / "migrated.json").read_text(encoding="utf-8")) == ["1", "2"]
        assert json.loads((tmp_path / "idmap.json").read_text(encoding="utf-8")) == {"1": "1000", "2": "1001"}

    def test_rerun_creates_nothing(self, tmp_path: Path) -> None:
        self._migrator(tmp_path).migrate(_tasks("1", "2"))
        ledger_before = (tmp_path / "idmap.json").read_text(encoding="utf-8")
        writes_before = self.portals.destination.post.call_count
        reads_before = self.portals.source.call.call_count

        migrator = self._migrator(tmp_path)
        migrator.migrate(_tasks("1", "2"))

        assert self.portals.destination.post.call_count == writes_before
        assert self.portals.source.call.call_count == reads_before
        assert (tmp_path / "idmap.json").read_text(encoding="utf-8") == ledger_before
        assert migrator.stats.skipped == 2

    def test_failed_task_does_not_stop_the_batch(self, tmp_path: Path, caplog: pytest.LogCaptureFixture) -> None:
        self.portals.failing_create.add("Task 2")
        migrator = self._migrator(tmp_path)

        with caplog.at_level(logging.ERROR, logger="bitrix_task_migrator.migrator"):
            migrator.migrate(_tasks("1", "2", "3"))

        assert [f["TITLE"] for f in self.portals.created] == ["Task 1", "Task 3"]
        ledger = CheckpointLedger.load(tmp_path / "migrated.json", tmp_path / "idmap.json")
        assert ledger.migrated_ids == {"1", "3"}
        assert migrator.stats.failed == 1
        assert "Failed to migrate task 2" in caplog.text
        assert "rejected" in caplog.text

    def test_resumes_with_remaining_tasks(self, tmp_path: Path) -> None:
        self.portals.failing_create.update({"Task 3", "Task 4"})
        self._migrator(tmp_path).migrate(_tasks("1", "2", "3", "4"))

        self.portals.failing_create.clear()
        self.portals.created.clear()
        migrator = self._migrator(tmp_path)
        migrator.migrate(_tasks("1", "2", "3", "4"))

        assert [f["TITLE"] for f in self.portals.created] == ["Task 3", "Task 4"]
        assert migrator.stats.skipped == 2
        assert migrator.stats.migrated == 2

    def test_enrichment_failure_skips_create(self, tmp_path: Path) -> None:
        self.portals.source.call.side_effect = requests.Timeout("timed out")
        migrator = self._migrator(tmp_path)

        migrator.migrate(_tasks("1"))

        self.portals.destination.post.assert_not_called()
        assert migrator.stats.failed == 1
        assert not (tmp_path / "migrated.json").exists()

    def test_comment_failure_leaves_task_unchecked(self, tmp_path: Path) -> None:
        original = self.portals.destination.post.side_effect

        def fail_comments(method: str, payload: dict[str, Any] | None = None, **kwargs: Any) -> dict[str, Any]:
            if method == "task.commentitem.add.json":
                raise requests.ConnectionError("reset")
            return original(method, payload, **kwargs)

        self.portals.destination.post.side_effect = fail_comments
        migrator = self._migrator(tmp_path)

        migrator.migrate(_tasks("1"))

        assert len(self.portals.created) == 1
        assert not CheckpointLedger.load(tmp_path / "migrated.json").is_done("1")

    def test_ledger_write_failure_is_isolated(self, tmp_path: Path) -> None:
        ledger = Mock()
        ledger.is_done.return_value = False
        ledger.mark_done.side_effect = [OSError("disk full"), None]
        migrator = self._migrator(tmp_path, ledger=ledger)

        migrator.migrate(_tasks("1", "2"))

        assert migrator.stats.failed == 1
        assert migrator.stats.migrated == 1

    def test_malformed_comment_list_does_not_stop_the_batch(self, tmp_path: Path) -> None:
        route = self.portals.source.call.side_effect

        def malformed_comments(method: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
            if method == "task.commentitem.getlist.json" and params and params["taskId"] == "1":
                return {"result": {"5": {"POST_MESSAGE": "keyed by id"}}}
            return route(method, params)

        self.portals.source.call.side_effect = malformed_comments
        migrator = self._migrator(tmp_path)

        migrator.migrate(_tasks("1", "2"))

        assert migrator.stats.failed == 1
        assert migrator.stats.migrated == 1
        ledger = CheckpointLedger.load(tmp_path / "migrated.json", tmp_path / "idmap.json")
        assert ledger.migrated_ids == {"2"}

    def test_non_object_task_entry_is_reported(self, tmp_path: Path) -> None:
        migrator = self._migrator(tmp_path)

        migrator.migrate([42, *_tasks("2")])  # type: ignore[list-item]

        assert migrator.stats.failed == 1
        assert migrator.stats.migrated == 1
        assert [f["TITLE"] for f in self.portals.created] == ["Task 2"]

    def test_failed_checkpoint_write_is_retried_later_in_the_run(self, tmp_path: Path) -> None:
        ledger = CheckpointLedger.load(tmp_path / "migrated.json", tmp_path / "idmap.json")
        migrator = self._migrator(tmp_path, ledger=ledger)

        with patch("bitrix_task_migrator.ledger.os.fsync", side_effect=OSError("disk full")):
            migrator.migrate(_tasks("1"))

        assert migrator.stats.failed == 1
        assert not ledger.is_done("1")
        assert ledger.destination_id("1") is None

        migrator.migrate(_tasks("2"))

        reloaded = CheckpointLedger.load(tmp_path / "migrated.json", tmp_path / "idmap.json")
        assert reloaded.migrated_ids == {"2"}
        assert reloaded.id_map == {"2": "1001"}

    def test_error_detail_hides_webhook_tokens(self, tmp_path: Path, caplog: pytest.LogCaptureFixture) -> None:
        self.portals.source.call.side_effect = requests.ConnectionError(
            "Max retries exceeded with url: /rest/1/src-secret/tasks.task.get"
        )
        migrator = self._migrator(tmp_path)

        with caplog.at_level(logging.ERROR):
            migrator.migrate(_tasks("1"))

        assert "src-secret" not in caplog.text
        assert "***TOKEN***" in caplog.text

    def test_accepts_source_records(self, tmp_path: Path) -> None:
        migrator = self._migrator(tmp_path)

        migrator.migrate([SourceRecord(id="8", title="Prepared")])

        assert [f["TITLE"] for f in self.portals.created] == ["Prepared"]

    def test_task_without_id_is_reported(self, tmp_path: Path) -> None:
        migrator = self._migrator(tmp_path)

        migrator.migrate([{"title": "no id"}, *_tasks("1")])

        assert migrator.stats.failed == 1
        assert migrator.stats.migrated == 1


@pytest.mark.unit
class TestAttachmentPipeline:
    def test_attachments_are_copied_before_create(self, tmp_path: Path) -> None:
        source = _make_client("source")
        destination = _make_client("destination")
        order: list[str] = []

        def source_call(method: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
            order.append(method)
            if method == "tasks.task.get":
                return {"result": {"task": {"ATTACHMENT": ["1"], "UF_TASK_WEBDAV_FILES": ["disk:2"]}}}
            if method == "disk.file.get":
                return {"result": {"file": {"NAME": f"f{params['id']}.txt", "DOWNLOAD_URL": "https://cdn/x"}}}
            return {"result": []}

        def destination_post(method: str, payload: dict[str, Any] | None = None, **_: Any) -> dict[str, Any]:
            order.append(method)
            if method == "disk.folder.uploadfile":
                return {"result": {"file": {"id": 70 + len([m for m in order if m == method])}}}
            return {"result": {"task": {"id": 900}}}

        source.call.side_effect = source_call
        source.download.return_value = b"data"
        destination.post.side_effect = destination_post

        ledger = CheckpointLedger.load(tmp_path / "migrated.json")
        migrator = TaskMigrator(
            source,
            destination,
            ledger,
            stage_mapping=STAGES,
            group_id=5,
            operator_id=1,
            enrichment=AttachmentEnrichment(source, AttachmentCopier(source, destination, folder_id=3)),
        )

        migrator.migrate(_tasks("1"))

        assert order == [
            "tasks.task.get",
            "disk.file.get",
            "disk.folder.uploadfile",
            "disk.file.get",
            "disk.folder.uploadfile",
            "tasks.task.add.json",
            "task.commentitem.getlist.json",
        ]
        create_call = destination.post.call_args_list[2]
        create_payload = create_call.args[1]
        assert create_payload["fields"]["ATTACHMENT"] == ["71", "72"]
        assert ledger.is_done("1")
        assert not (tmp_path / "idmap.json").exists()
