"""
Bitrix24 Task Migration Tool

Migrates tasks of a Bitrix24 workgroup to a workgroup of another portal,
together with comments, tags, marks and attachments, resuming safely after
interruptions.
"""

from __future__ import annotations

from .cli import main
from .client import BitrixClient, RateLimiter
from .exceptions import ConfigurationError, MigrationError, RemoteApiError
from .ledger import CheckpointLedger
from .migrator import MigrationStats, TaskMigrator
from .utils import setup_logging

# Package version
__version__ = "0.1.0"

__all__ = [
    "BitrixClient",
    "CheckpointLedger",
    "ConfigurationError",
    "MigrationError",
    "MigrationStats",
    "RateLimiter",
    "RemoteApiError",
    "TaskMigrator",
    "main",
    "setup_logging",
]
