"""
Utility functions for the Bitrix24 task migration tool.
"""

from __future__ import annotations

import logging
import re
import subprocess
from subprocess import CompletedProcess
from typing import TYPE_CHECKING

import requests

if TYPE_CHECKING:
    from collections.abc import Mapping

logger: logging.Logger = logging.getLogger(__name__)

LOG_FILE = "migration.log"
LOG_FORMAT = "%(asctime)s - %(levelname)s - %(message)s"


class PassError(Exception):
    """Base class for pass-related errors."""


class InvalidPassPathError(PassError):
    """Raised when the pass path is malformed or not in the password store."""


def setup_logging(*, verbosity: int = 0) -> None:
    """Configure logging for the migration process.

    The console shows warnings by default, INFO with ``-v`` and DEBUG with
    ``-vv``. ``migration.log`` always receives per-task outcomes.
    """
    if verbosity >= 2:
        console_level = logging.DEBUG
    elif verbosity == 1:
        console_level = logging.INFO
    else:
        console_level = logging.WARNING
    file_level = logging.DEBUG if verbosity >= 2 else logging.INFO

    console_handler = logging.StreamHandler()
    console_handler.setLevel(console_level)
    file_handler = logging.FileHandler(LOG_FILE, mode="a", encoding="utf-8")
    file_handler.setLevel(file_level)

    logging.basicConfig(
        level=min(console_level, file_level),
        format=LOG_FORMAT,
        handlers=[console_handler, file_handler],
    )


def _validate_pass_path(pass_path: str) -> None:
    if not re.fullmatch(r"(?:[A-Za-z0-9_-]+)(?:/[A-Za-z0-9_-]+)*", pass_path):
        msg = f"Invalid pass path: {pass_path}"
        raise InvalidPassPathError(msg)


def get_pass_value(pass_path: str) -> str:
    """Get value from pass utility at specified path."""
    _validate_pass_path(pass_path)

    try:
        result: CompletedProcess[str] = subprocess.run(  # noqa: S603
            ["pass", pass_path], capture_output=True, text=True, check=True
        )
    except FileNotFoundError as e:
        msg = "The 'pass' utility is not installed"
        raise PassError(msg) from e
    except subprocess.CalledProcessError as e:
        if e.returncode == 1 and "not in the password store" in e.stderr.lower():
            msg = f"Pass path '{pass_path}' not found or invalid."
            raise InvalidPassPathError(msg) from e
        msg = (
            f"Failed to get value from pass at '{pass_path}'.\n"
            f"Error: {e.stderr.strip()}\n"
            f"Return code: {e.returncode}"
        )
        raise PassError(msg) from e

    return result.stdout.strip()


def get_env_or_pass(environ: Mapping[str, str], env_var: str, pass_path: str) -> str | None:
    """Read a secret from ``env_var``, falling back to the pass store."""
    value = environ.get(env_var)
    if value:
        return value
    try:
        return get_pass_value(pass_path)
    except PassError:
        logger.debug(f"No value in {env_var} nor in pass at {pass_path}")
        return None


def describe_error(exc: BaseException) -> str:
    """Return the most useful detail of an error: the HTTP response body when there is one."""
    if isinstance(exc, requests.RequestException) and exc.response is not None:
        body = exc.response.text
        if body:
            return f"{exc} - {body}"
    return str(exc)


def redact(text: str, secrets: list[str | None]) -> str:
    """Remove webhook tokens from a message before it is logged."""
    result = text
    for secret in secrets:
        if secret:
            result = result.replace(secret, "***TOKEN***")
    return result
