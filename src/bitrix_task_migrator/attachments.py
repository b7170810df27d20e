"""Attachment migration between Bitrix24 portals."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

import requests

from .client import get_result
from .exceptions import MigrationError, RemoteApiError
from .models import DownloadedFile
from .utils import describe_error, redact

if TYPE_CHECKING:
    from .protocols import ApiClient

logger: logging.Logger = logging.getLogger(__name__)

# Malformed responses surface as lookup errors on the decoded JSON
_COPY_ERRORS = (requests.RequestException, MigrationError, KeyError, TypeError, AttributeError)


def merge_file_ids(task: dict[str, Any]) -> list[str]:
    """Collect disk file ids from ``ATTACHMENT`` and the legacy ``UF_TASK_WEBDAV_FILES``.

    Legacy entries look like ``"n123"`` or ``"disk:123"``; the id is whatever
    follows the last colon. Modern ids come first.
    """
    file_ids = [str(fid) for fid in task.get("ATTACHMENT") or [] if fid]

    for entry in task.get("UF_TASK_WEBDAV_FILES") or []:
        file_id = str(entry).split(":")[-1]
        if file_id:
            file_ids.append(file_id)

    return file_ids


def get_source_file_ids(client: ApiClient, task_id: str) -> list[str]:
    """Return the attachment file ids of a source task, or ``[]`` when they cannot be read."""
    try:
        data = client.call("tasks.task.get", {"taskId": task_id})
        task = get_result(data, "tasks.task.get")["task"]
    except _COPY_ERRORS as e:
        logger.error(f"Failed to read attachments of task {task_id}: {redact(describe_error(e), [client.token])}")
        return []
    return merge_file_ids(task)


class AttachmentCopier:
    """Downloads disk files from the source portal and uploads them to a destination folder."""

    _source: ApiClient
    _destination: ApiClient
    _folder_id: int

    def __init__(self, source: ApiClient, destination: ApiClient, folder_id: int) -> None:
        self._source = source
        self._destination = destination
        self._folder_id = folder_id
        self.uploaded_files_count = 0
        self.failed_files_count = 0

    def copy_all(self, file_ids: list[str]) -> list[str]:
        """Copy files one after the other and return the new destination ids.

        A file that fails at any step is logged and left out of the result;
        the remaining files are still copied.
        """
        new_ids: list[str] = []
        for file_id in file_ids:
            try:
                downloaded = self._download_file(file_id)
                new_ids.append(self._upload_file(downloaded))
            except _COPY_ERRORS as e:
                self.failed_files_count += 1
                detail = redact(describe_error(e), [self._source.token, self._destination.token])
                logger.error(f"Failed to copy file {file_id}: {detail}")
        return new_ids

    def _download_file(self, file_id: str) -> DownloadedFile:
        data = self._source.call("disk.file.get", {"id": file_id})
        result = get_result(data, "disk.file.get")
        file_info = result.get("file", result)

        download_url = file_info.get("DOWNLOAD_URL")
        if not download_url:
            msg = f"disk.file.get returned no download URL for file {file_id}"
            raise RemoteApiError(msg)

        content = self._source.download(download_url)
        logger.debug(f"Downloaded {file_info.get('NAME')}: {len(content)} bytes")
        return DownloadedFile(file_id=file_id, name=str(file_info.get("NAME") or file_id), content=content)

    def _upload_file(self, downloaded: DownloadedFile) -> str:
        data = self._destination.post(
            "disk.folder.uploadfile",
            data={"id": self._folder_id, "data[NAME]": downloaded.name},
            files={"file": (downloaded.name, downloaded.content)},
        )
        result = get_result(data, "disk.folder.uploadfile")
        uploaded = result.get("file", result)
        new_id = str(uploaded["id"] if "id" in uploaded else uploaded["ID"])
        self.uploaded_files_count += 1
        logger.debug(f"Uploaded {downloaded.name} as file {new_id}")
        return new_id
