from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path, PurePosixPath, PureWindowsPath
from typing import Any, Callable, List, Optional

import yaml
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, PositiveInt, ValidationError, field_validator

from .exceptions import ManifestMissingError, ManifestParseError

CURSEFORGE_DOWNLOAD_URL = "https://www.curseforge.com/api/v1/mods/{project_id}/files/{file_id}/download"
MOD_LOADER_DIR = Path(".")
MODS_DIR = Path("mods")
DEFAULT_RESOURCE_DIR = "."

_CONTROL_CHARS = re.compile(r"[\x00-\x1f\x7f]")
_FLOAT_TAG = "tag:yaml.org,2002:float"


class _ManifestLoader(yaml.SafeLoader):
    """Safe loader that keeps float-looking scalars such as ``1.21`` as text."""


_ManifestLoader.yaml_implicit_resolvers = {
    first: [(tag, regexp) for tag, regexp in resolvers if tag != _FLOAT_TAG]
    for first, resolvers in yaml.SafeLoader.yaml_implicit_resolvers.items()
}


class EntryKind(str, Enum):
    MOD_LOADER = "mod-loader"
    MOD = "mod"
    CURSEFORGE_MOD = "curseforge-mod"
    RESOURCE = "resource"
    CURSEFORGE_RESOURCE = "curseforge-resource"


def curseforge_download_url(project_id: int, file_id: int) -> str:
    return CURSEFORGE_DOWNLOAD_URL.format(project_id=project_id, file_id=file_id)


@dataclass(slots=True)
class DownloadEntry:
    """One downloadable artifact.

    ``cached_file_name`` is a write-once cell: it is either supplied by the
    manifest or filled by the first :meth:`resolve_name` call, and never
    changes afterwards.
    """

    kind: EntryKind
    name: str
    source_url: str
    target_directory: Path
    cached_file_name: Optional[str] = None
    auto_launch: bool = False

    def resolve_name(self, resolve: Callable[[str], str]) -> str:
        if self.cached_file_name is None:
            self.cached_file_name = resolve(self.source_url)
        return self.cached_file_name

    @classmethod
    def mod_loader(cls, name: str, url: str, *, auto_launch: bool = False) -> DownloadEntry:
        return cls(EntryKind.MOD_LOADER, name, url, MOD_LOADER_DIR, auto_launch=auto_launch)

    @classmethod
    def mod(cls, name: str, url: str, *, file_name: Optional[str] = None) -> DownloadEntry:
        return cls(EntryKind.MOD, name, url, MODS_DIR, cached_file_name=file_name)

    @classmethod
    def curseforge_mod(cls, name: str, project_id: int, file_id: int) -> DownloadEntry:
        return cls(EntryKind.CURSEFORGE_MOD, name, curseforge_download_url(project_id, file_id), MODS_DIR)

    @classmethod
    def resource(
        cls,
        name: str,
        url: str,
        *,
        directory: str = DEFAULT_RESOURCE_DIR,
        file_name: Optional[str] = None,
    ) -> DownloadEntry:
        return cls(EntryKind.RESOURCE, name, url, Path(directory), cached_file_name=file_name)

    @classmethod
    def curseforge_resource(
        cls,
        name: str,
        project_id: int,
        file_id: int,
        *,
        directory: str = DEFAULT_RESOURCE_DIR,
    ) -> DownloadEntry:
        return cls(
            EntryKind.CURSEFORGE_RESOURCE,
            name,
            curseforge_download_url(project_id, file_id),
            Path(directory),
        )


def safe_file_name(value: Optional[str]) -> Optional[str]:
    """Reduce ``value`` to a bare file name, or None when nothing usable is left.

    Directory parts (POSIX or Windows) are dropped; ``.``, ``..`` and names
    carrying control characters are rejected.
    """

    if not value:
        return None
    name = PureWindowsPath(PurePosixPath(value).name).name
    if name in ("", ".", "..") or _CONTROL_CHARS.search(name):
        return None
    return name


def _validate_file_name(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    if safe_file_name(value) != value:
        raise ValueError("filename must be a plain file name without directory parts")
    return value


def _validate_relative_dir(value: str) -> str:
    if not value or not value.strip():
        return DEFAULT_RESOURCE_DIR
    if value.startswith(("/", "\\")) or re.match(r"^[A-Za-z]:", value):
        raise ValueError("directory must be a relative path")
    for segment in re.split(r"[\\/]", value):
        if segment == "..":
            raise ValueError("directory must not contain '..' segments")
        if ":" in segment:
            raise ValueError("directory contains invalid characters")
    return value


class _ManifestModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class ProfileSpec(_ManifestModel):
    name: str
    version_id: str = Field(alias="versionId")
    icon: Optional[str] = None
    java_args: Optional[str] = Field(default=None, alias="javaArgs")

    @field_validator("name", "version_id", mode="before")
    @classmethod
    def _scalar_text(cls, value: Any) -> Any:
        if isinstance(value, int) and not isinstance(value, bool):
            return str(value)
        return value

    @field_validator("name", "version_id")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("must not be empty")
        return value


class ModLoaderSpec(_ManifestModel):
    name: str
    url: str
    auto_open: bool = Field(default=False, alias="autoOpen")

    def to_entry(self) -> DownloadEntry:
        return DownloadEntry.mod_loader(self.name, self.url, auto_launch=self.auto_open)


class CurseForgeModSpec(_ManifestModel):
    name: str
    project_id: PositiveInt = Field(validation_alias=AliasChoices("projectId", "modId", "project_id"))
    file_id: PositiveInt = Field(validation_alias=AliasChoices("fileId", "file_id"))

    def to_entry(self) -> DownloadEntry:
        return DownloadEntry.curseforge_mod(self.name, self.project_id, self.file_id)


class CurseForgeResourceSpec(CurseForgeModSpec):
    directory: str = DEFAULT_RESOURCE_DIR

    check_directory = field_validator("directory")(_validate_relative_dir)

    def to_entry(self) -> DownloadEntry:
        return DownloadEntry.curseforge_resource(
            self.name, self.project_id, self.file_id, directory=self.directory
        )


class OtherModSpec(_ManifestModel):
    name: str
    url: str
    filename: Optional[str] = None

    check_filename = field_validator("filename")(_validate_file_name)

    def to_entry(self) -> DownloadEntry:
        return DownloadEntry.mod(self.name, self.url, file_name=self.filename)


class OtherResourceSpec(OtherModSpec):
    directory: str = DEFAULT_RESOURCE_DIR

    check_directory = field_validator("directory")(_validate_relative_dir)

    def to_entry(self) -> DownloadEntry:
        return DownloadEntry.resource(
            self.name, self.url, directory=self.directory, file_name=self.filename
        )


class Manifest(_ManifestModel):
    profile: ProfileSpec = Field(alias="Profile")
    mod_loader: Optional[ModLoaderSpec] = Field(default=None, alias="ModLoader")
    curseforge_mods: List[CurseForgeModSpec] = Field(default_factory=list, alias="CurseForgeMods")
    other_mods: List[OtherModSpec] = Field(default_factory=list, alias="OtherMods")
    curseforge_resources: List[CurseForgeResourceSpec] = Field(
        default_factory=list, alias="CurseForgeResources"
    )
    other_resources: List[OtherResourceSpec] = Field(default_factory=list, alias="OtherResources")

    @field_validator(
        "curseforge_mods", "other_mods", "curseforge_resources", "other_resources", mode="before"
    )
    @classmethod
    def _absent_is_empty(cls, value: Any) -> Any:
        return [] if value is None else value


@dataclass
class Configuration:
    """The parsed manifest as the installer sees it; read-only once built."""

    profile: ProfileSpec
    mod_loader: Optional[DownloadEntry] = None
    curseforge_mods: List[DownloadEntry] = field(default_factory=list)
    other_mods: List[DownloadEntry] = field(default_factory=list)
    curseforge_resources: List[DownloadEntry] = field(default_factory=list)
    other_resources: List[DownloadEntry] = field(default_factory=list)

    @classmethod
    def from_manifest(cls, manifest: Manifest) -> Configuration:
        return cls(
            profile=manifest.profile,
            mod_loader=manifest.mod_loader.to_entry() if manifest.mod_loader else None,
            curseforge_mods=[spec.to_entry() for spec in manifest.curseforge_mods],
            other_mods=[spec.to_entry() for spec in manifest.other_mods],
            curseforge_resources=[spec.to_entry() for spec in manifest.curseforge_resources],
            other_resources=[spec.to_entry() for spec in manifest.other_resources],
        )

    def mod_loader_batch(self) -> List[DownloadEntry]:
        return [self.mod_loader] if self.mod_loader else []

    def mod_batch(self) -> List[DownloadEntry]:
        return [*self.curseforge_mods, *self.other_mods]

    def resource_batch(self) -> List[DownloadEntry]:
        return [*self.curseforge_resources, *self.other_resources]

    def download_batches(self) -> List[List[DownloadEntry]]:
        return [self.mod_loader_batch(), self.mod_batch(), self.resource_batch()]

    def all_entries(self) -> List[DownloadEntry]:
        return [entry for batch in self.download_batches() for entry in batch]


def parse_manifest(text: str, source: str = "<manifest>") -> Configuration:
    try:
        data = yaml.load(text, Loader=_ManifestLoader)
    except yaml.YAMLError as exc:
        raise ManifestParseError(f"Invalid YAML in {source}: {exc}") from exc
    if not isinstance(data, dict):
        raise ManifestParseError(f"{source} must contain a mapping at the top level.")
    try:
        manifest = Manifest.model_validate(data)
    except ValidationError as exc:
        raise ManifestParseError(f"Invalid manifest {source}: {exc}") from exc
    return Configuration.from_manifest(manifest)


def load_manifest(path: Path) -> Configuration:
    if not path.exists():
        raise ManifestMissingError(f"No config file found: {path}")
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ManifestParseError(f"Unable to read {path}: {exc}") from exc
    return parse_manifest(text, source=str(path))
