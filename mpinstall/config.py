from __future__ import annotations

from pathlib import Path
from typing import Any, Optional

from pydantic import BaseModel, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from . import __version__

DEFAULT_MANIFEST_FILENAME = "config.yaml"
DEFAULT_LOG_FILENAME = "installer.log"
DEFAULT_ENV_FILENAME = ".env"
DEFAULT_TIMEOUT_SECONDS = 30.0
DEFAULT_MAX_REDIRECTS = 20
DEFAULT_USER_AGENT = f"mpinstall/{__version__}"


class ConfigError(RuntimeError):
    """Raised when configuration cannot be loaded."""


class EnvSettings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="MPINSTALL_", extra="ignore")

    install_root: Optional[Path] = None
    manifest_file: Optional[Path] = None
    log_file: Optional[Path] = None
    timeout_seconds: Optional[float] = None
    max_redirects: Optional[int] = None
    user_agent: Optional[str] = None
    launcher_profiles: Optional[Path] = None
    java_path: Optional[str] = None
    add_profile: Optional[bool] = None
    launch_mod_loader: Optional[bool] = None


class InstallerSettings(BaseModel):
    install_root: Path
    manifest_file: Path
    log_file: Path
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS
    max_redirects: int = DEFAULT_MAX_REDIRECTS
    user_agent: str = DEFAULT_USER_AGENT
    launcher_profiles: Optional[Path] = None
    java_path: Optional[str] = None
    add_profile: bool = True
    launch_mod_loader: bool = True

    @field_validator("timeout_seconds")
    @classmethod
    def _positive_timeout(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("timeout must be positive")
        return value

    @field_validator("max_redirects")
    @classmethod
    def _non_negative_redirects(cls, value: int) -> int:
        if value < 0:
            raise ValueError("redirect limit must not be negative")
        return value


def _coerce_path(base: Path, value: Path | str) -> Path:
    path = value if isinstance(value, Path) else Path(value)
    path = path.expanduser()
    return path if path.is_absolute() else (base / path).resolve()


def _resolve_initial_root(root: Path | None) -> Path:
    if root is not None:
        return Path(root).expanduser().resolve()
    return Path.cwd().resolve()


def load_settings(root: Path | None = None, **overrides: Any) -> InstallerSettings:
    """Load installer settings from env + ``.env`` in the install root.

    Keyword overrides (usually CLI options) win over the environment; ``None``
    values are ignored so callers can pass unset options straight through.
    """

    install_root = _resolve_initial_root(root)
    env_file = install_root / DEFAULT_ENV_FILENAME
    try:
        env_settings = EnvSettings(
            _env_file=env_file if env_file.exists() else None,
        )
    except ValidationError as exc:
        raise ConfigError(f"Invalid MPINSTALL_* environment settings: {exc}") from exc

    if root is None and env_settings.install_root:
        install_root = _coerce_path(install_root, env_settings.install_root)

    values: dict[str, Any] = {
        key: value
        for key, value in env_settings.model_dump().items()
        if value is not None and key != "install_root"
    }
    values.update({key: value for key, value in overrides.items() if value is not None})

    manifest_file = values.pop("manifest_file", None) or DEFAULT_MANIFEST_FILENAME
    log_file = values.pop("log_file", None) or DEFAULT_LOG_FILENAME
    launcher_profiles = values.pop("launcher_profiles", None)

    try:
        return InstallerSettings(
            install_root=install_root,
            manifest_file=_coerce_path(install_root, manifest_file),
            log_file=_coerce_path(install_root, log_file),
            launcher_profiles=_coerce_path(install_root, launcher_profiles) if launcher_profiles else None,
            **values,
        )
    except ValidationError as exc:
        raise ConfigError(f"Invalid installer settings: {exc}") from exc
