"""
Built-in migration profiles, one per pair of source/destination workgroups.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Final, Literal

from .exceptions import ConfigurationError
from .models import StageMapping

logger: logging.Logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MigrationProfile:
    """What to carry over and how stages translate for one pair of workgroups."""

    name: str
    stage_mapping: StageMapping
    enrichment: Literal["tags", "attachments"]
    track_id_map: bool
    task_file: str


# Source group 27 -> destination group 5
TAGS_STAGE_MAPPING: Final[StageMapping] = StageMapping(
    stages={
        615: 178,  # Received
        517: 180,  # Rejected
        529: 182,  # Approved
        519: 188,  # Items defined
        533: 190,  # Documentation
        609: 192,  # Clarification / challenge
        663: 194,  # Bidding
        521: 196,  # Won
        607: 198,  # Annulment / appeals
        539: 200,  # Ratified
        531: 202,  # Commitment
        537: 218,  # Invoiced
        523: 216,  # Cancelled / suspended / revoked
        527: 214,  # Withdrawn
        525: 212,  # Lost
        543: 210,  # Catalogue / certificates
        949: 206,  # Portal access
        589: 208,  # Clearance certificate (Douradina)
        591: 204,  # Clearance certificate (Ipameri)
    },
    default=178,
)

ATTACHMENTS_STAGE_MAPPING: Final[StageMapping] = StageMapping(
    stages={
        337: 101,
        339: 106,
        389: 103,
        341: 105,
        499: 108,
        501: 110,
        621: 112,
        373: 114,
        653: 116,
        371: 118,
        375: 120,
        377: 122,
        593: 124,
    },
    default=101,
)

PROFILES: Final[dict[str, MigrationProfile]] = {
    "tags": MigrationProfile(
        name="tags",
        stage_mapping=TAGS_STAGE_MAPPING,
        enrichment="tags",
        track_id_map=True,
        task_file="tasks_full_27.json",
    ),
    "attachments": MigrationProfile(
        name="attachments",
        stage_mapping=ATTACHMENTS_STAGE_MAPPING,
        enrichment="attachments",
        track_id_map=False,
        task_file="tasks_unified.json",
    ),
}

DEFAULT_PROFILE: Final[str] = "tags"


def get_profile(name: str | None = None, stage_map_file: str | None = None) -> MigrationProfile:
    """Return a built-in profile, optionally with its stage mapping read from a JSON file."""
    profile_name = name or DEFAULT_PROFILE
    try:
        profile = PROFILES[profile_name]
    except KeyError:
        msg = f"Unknown migration profile '{profile_name}'. Choose from: {', '.join(sorted(PROFILES))}"
        raise ConfigurationError(msg) from None

    if stage_map_file:
        profile = replace(profile, stage_mapping=load_stage_mapping(stage_map_file))
    return profile


def load_stage_mapping(path: str | Path) -> StageMapping:
    """Read a stage mapping file: ``{"default": 178, "stages": {"615": 178}}``."""
    try:
        data = json.loads(Path(path).read_text(encoding="utf-8"))
        mapping = StageMapping.from_dict(data)
    except (OSError, ValueError) as e:
        msg = f"Cannot load stage mapping from {path}: {e}"
        raise ConfigurationError(msg) from e
    logger.info(f"Loaded {len(mapping.stages)} stage mappings from {path}")
    return mapping
