"""
Configuration loading from environment variables and the pass password store.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Final

from . import utils
from .exceptions import ConfigurationError
from .profiles import get_profile

if TYPE_CHECKING:
    from collections.abc import Mapping

    from .profiles import MigrationProfile

logger: logging.Logger = logging.getLogger(__name__)

_DEFAULT_SOURCE_TOKEN_PASS_PATH: Final[str] = "bitrix/source/token"  # noqa: S105
_DEFAULT_DESTINATION_TOKEN_PASS_PATH: Final[str] = "bitrix/destination/token"  # noqa: S105
_DEFAULT_DONE_FILE: Final[str] = "migrated.json"
_DEFAULT_MAP_FILE: Final[str] = "idmap.json"
_DEFAULT_PORT: Final[int] = 3000


@dataclass(frozen=True)
class PortalCredentials:
    """Inbound webhook of one Bitrix24 portal."""

    domain: str
    user_id: str
    token: str

    def __repr__(self) -> str:
        return f"PortalCredentials(domain={self.domain!r}, user_id={self.user_id!r}, token='***')"


@dataclass(frozen=True)
class Settings:
    """Everything a migration or export run needs."""

    source: PortalCredentials
    destination: PortalCredentials | None
    profile: MigrationProfile
    destination_group_id: int | None
    destination_folder_id: int
    operator_id: int
    task_file: Path
    done_file: Path
    map_file: Path | None
    export_group_id: str | None
    port: int

    def require_destination(self) -> PortalCredentials:
        if self.destination is None:
            msg = "Destination portal is not configured (DST_DOMAIN, DST_USER, DST_TOKEN)"
            raise ConfigurationError(msg)
        return self.destination

    def require_destination_group(self) -> int:
        if self.destination_group_id is None:
            msg = "DST_GROUP_ID must be set to migrate tasks"
            raise ConfigurationError(msg)
        return self.destination_group_id


def _int_setting(environ: Mapping[str, str], name: str, default: int | None) -> int | None:
    value = environ.get(name)
    if not value:
        return default
    try:
        return int(value)
    except ValueError:
        msg = f"{name} must be an integer, got {value!r}"
        raise ConfigurationError(msg) from None


def _load_credentials(
    environ: Mapping[str, str], prefix: str, default_pass_path: str, *, required: bool
) -> PortalCredentials | None:
    domain = environ.get(f"{prefix}_DOMAIN")
    user_id = environ.get(f"{prefix}_USER")
    if not domain or not user_id:
        if required:
            msg = f"{prefix}_DOMAIN and {prefix}_USER must be set"
            raise ConfigurationError(msg)
        return None

    pass_path = environ.get(f"{prefix}_TOKEN_PASS_PATH") or default_pass_path
    token = utils.get_env_or_pass(environ, f"{prefix}_TOKEN", pass_path)
    if not token:
        msg = f"No webhook token in {prefix}_TOKEN nor in pass at '{pass_path}'"
        raise ConfigurationError(msg)
    return PortalCredentials(domain=domain, user_id=user_id, token=token)


def load_settings(
    environ: Mapping[str, str] | None = None,
    *,
    profile_name: str | None = None,
    require_destination: bool = True,
) -> Settings:
    """Build settings from the environment.

    Args:
        environ: Variables to read (defaults to ``os.environ``)
        profile_name: Overrides ``MIGRATION_PROFILE``
        require_destination: Whether the destination portal must be configured

    Raises:
        ConfigurationError: If a required setting is missing or malformed
    """
    env: Mapping[str, str] = os.environ if environ is None else environ

    profile = get_profile(profile_name or env.get("MIGRATION_PROFILE"), env.get("STAGE_MAP_FILE"))

    source = _load_credentials(env, "SRC", _DEFAULT_SOURCE_TOKEN_PASS_PATH, required=True)
    assert source is not None  # required=True never returns None
    destination = _load_credentials(
        env, "DST", _DEFAULT_DESTINATION_TOKEN_PASS_PATH, required=require_destination
    )

    map_file: Path | None = None
    if profile.track_id_map:
        map_file = Path(env.get("MAP_FILE") or _DEFAULT_MAP_FILE)

    settings = Settings(
        source=source,
        destination=destination,
        profile=profile,
        destination_group_id=_int_setting(env, "DST_GROUP_ID", None),
        destination_folder_id=_int_setting(env, "DST_FOLDER_ID", 1) or 1,
        operator_id=_int_setting(env, "OPERATOR_ID", 1) or 1,
        task_file=Path(env.get("TASK_FILE") or profile.task_file),
        done_file=Path(env.get("DONE_FILE") or _DEFAULT_DONE_FILE),
        map_file=map_file,
        export_group_id=env.get("EXPORT_GROUP_ID") or None,
        port=_int_setting(env, "PORT", _DEFAULT_PORT) or _DEFAULT_PORT,
    )
    logger.debug(f"Loaded settings for profile '{profile.name}'")
    return settings
