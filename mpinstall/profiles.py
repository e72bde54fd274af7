from __future__ import annotations

import json
import logging
import os
import sys
import uuid
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_serializer
from pydantic.alias_generators import to_camel

from .manifest import ProfileSpec

logger = logging.getLogger(__name__)

LAUNCHER_PROFILES_FILENAME = "launcher_profiles.json"
BACKUP_SUFFIX = ".bak"
PROFILE_TYPE_CUSTOM = "custom"


class AppendOutcome(str, Enum):
    APPENDED = "appended"
    SKIPPED_UNSUPPORTED_PLATFORM = "skipped-unsupported-platform"
    SKIPPED_NO_REGISTRY_FILE = "skipped-no-registry-file"
    SKIPPED_NAME_COLLISION = "skipped-name-collision"
    SKIPPED_BACKUP_FAILED = "skipped-backup-failed"
    SKIPPED_WRITE_FAILED = "skipped-write-failed"

    @property
    def appended(self) -> bool:
        return self is AppendOutcome.APPENDED


def format_timestamp(moment: datetime) -> str:
    """Render ``moment`` the way the launcher does: ``YYYY-MM-DDTHH:mm:ss.SSSZ``."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    moment = moment.astimezone(timezone.utc)
    return moment.strftime("%Y-%m-%dT%H:%M:%S.") + f"{moment.microsecond // 1000:03d}Z"


class LauncherProfile(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    created: datetime
    game_dir: Optional[str] = None
    icon: Optional[str] = None
    java_args: Optional[str] = None
    java_dir: Optional[str] = None
    last_used: datetime
    last_version_id: str
    name: str
    resolution: Optional[Dict[str, int]] = None
    skip_jre_version_check: bool = False
    type: str = PROFILE_TYPE_CUSTOM

    @field_serializer("created", "last_used")
    def _serialize_timestamp(self, value: datetime) -> str:
        return format_timestamp(value)

    @classmethod
    def from_spec(cls, spec: ProfileSpec, game_dir: Path, now: datetime) -> LauncherProfile:
        return cls(
            created=now,
            last_used=now,
            game_dir=str(game_dir),
            icon=spec.icon,
            java_args=spec.java_args,
            last_version_id=spec.version_id,
            name=spec.name,
            resolution=None,
            skip_jre_version_check=False,
            type=PROFILE_TYPE_CUSTOM,
        )

    def to_registry_dict(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class ProfileRegistry(BaseModel):
    """The launcher's ``launcher_profiles.json``.

    Existing profiles are kept as raw mappings and unknown top-level keys are
    carried as extras, so everything not touched here is written back as read.
    """

    model_config = ConfigDict(extra="allow")

    profiles: Dict[str, Dict[str, Any]] = Field(default_factory=dict)
    settings: Dict[str, Any] = Field(default_factory=dict)
    version: Optional[int] = None

    def has_profile_named(self, name: str) -> bool:
        return any(profile.get("name") == name for profile in self.profiles.values())

    def insert(self, profile_id: str, profile: LauncherProfile) -> None:
        profiles = dict(self.profiles)
        profiles[profile_id] = profile.to_registry_dict()
        self.profiles = profiles

    def to_json(self) -> str:
        data = self.model_dump(mode="json")
        for key in ("settings", "version"):
            if key not in self.model_fields_set:
                data.pop(key)
        return json.dumps(data, indent=2, ensure_ascii=False)


def default_registry_path(
    platform: str = sys.platform,
    environ: Mapping[str, str] = os.environ,
) -> Optional[Path]:
    """Locate the launcher registry; only the Windows ``%APPDATA%`` layout is known."""
    if not platform.startswith("win"):
        return None
    appdata = environ.get("APPDATA")
    if not appdata:
        return None
    return Path(appdata) / ".minecraft" / LAUNCHER_PROFILES_FILENAME


def backup_path_for(path: Path) -> Path:
    candidate = path.with_name(f"{path.name}{BACKUP_SUFFIX}")
    index = 1
    while candidate.exists():
        candidate = path.with_name(f"{path.name}{BACKUP_SUFFIX}{index}")
        index += 1
    return candidate


def new_profile_id(existing: Mapping[str, Any], factory: Callable[[], str] = lambda: uuid.uuid4().hex) -> str:
    while True:
        profile_id = factory()
        if profile_id not in existing:
            return profile_id


def load_registry(path: Path) -> ProfileRegistry:
    data = json.loads(path.read_text(encoding="utf-8-sig"))
    return ProfileRegistry.model_validate(data)


class ProfileLedger:
    """Adds the modpack's profile to the launcher registry, best effort.

    Nothing here raises for expected problems; every early exit is reported
    as a ``Skipped*`` :class:`AppendOutcome` and logged as a warning.
    """

    def __init__(
        self,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
        id_factory: Callable[[], str] = lambda: uuid.uuid4().hex,
    ) -> None:
        self.clock = clock
        self.id_factory = id_factory

    def append_profile(
        self,
        registry_path: Optional[Path],
        spec: ProfileSpec,
        install_dir: Path,
    ) -> AppendOutcome:
        if registry_path is None:
            logger.warning("'%s' is not supported. Skip adding profile.", sys.platform)
            return AppendOutcome.SKIPPED_UNSUPPORTED_PLATFORM

        if not registry_path.exists():
            logger.warning("No profile file found at %s. Skip adding profile.", registry_path)
            return AppendOutcome.SKIPPED_NO_REGISTRY_FILE

        try:
            registry = load_registry(registry_path)
        except (OSError, ValueError, ValidationError) as exc:
            logger.warning("Failed to load profile file %s. Skip adding profile. (%s)", registry_path, exc)
            return AppendOutcome.SKIPPED_NO_REGISTRY_FILE

        if registry.has_profile_named(spec.name):
            logger.warning("Profile '%s' already exists. Skip adding profile.", spec.name)
            return AppendOutcome.SKIPPED_NAME_COLLISION

        profile_id = new_profile_id(registry.profiles, self.id_factory)
        profile = LauncherProfile.from_spec(spec, install_dir.resolve(), self.clock())
        registry.insert(profile_id, profile)
        payload = registry.to_json()

        backup = backup_path_for(registry_path)
        try:
            registry_path.rename(backup)
        except OSError as exc:
            logger.warning("Failed to backup profile file to %s. Skip adding profile. (%s)", backup, exc)
            return AppendOutcome.SKIPPED_BACKUP_FAILED
        logger.info("Backed up %s to %s", registry_path.name, backup)

        try:
            registry_path.write_text(payload, encoding="utf-8")
        except OSError as exc:
            logger.warning("Failed to save profile file. Skip adding profile. (%s)", exc)
            _restore_backup(backup, registry_path)
            return AppendOutcome.SKIPPED_WRITE_FAILED

        logger.info("Added profile: %s", spec.name)
        return AppendOutcome.APPENDED


def _restore_backup(backup: Path, original: Path) -> None:
    try:
        if original.exists():
            original.unlink()
        backup.rename(original)
    except OSError as exc:
        logger.error("Could not restore %s from %s: %s", original, backup, exc)
        return
    logger.info("Restored %s from %s", original, backup)
