"""
Custom exception classes for the Bitrix24 task migration tool.
"""

from __future__ import annotations


class MigrationError(Exception):
    """Base exception for migration errors."""


class RemoteApiError(MigrationError):
    """Raised when a Bitrix24 response lacks the expected ``result`` payload."""


class ConfigurationError(MigrationError):
    """Raised when required settings are missing or invalid."""
