from __future__ import annotations

from pathlib import Path
from typing import Optional


class InstallerError(RuntimeError):
    """Base exception for mpinstall."""


class ManifestError(InstallerError):
    """Raised when the modpack manifest cannot be loaded or used."""


class ManifestMissingError(ManifestError):
    """Raised when the manifest file does not exist."""


class ManifestParseError(ManifestError):
    """Raised when the manifest is not valid YAML or does not match the schema."""


class DownloadError(InstallerError):
    """Raised when an artifact cannot be resolved, fetched or stored."""


class RemoteFetchError(DownloadError):
    """Raised when a remote request fails.

    ``status`` holds the HTTP status code of the offending response, or
    ``None`` when the request failed at the transport level (the transport
    error is chained as ``__cause__``).
    """

    def __init__(self, message: str, *, url: str, status: Optional[int] = None) -> None:
        super().__init__(message)
        self.url = url
        self.status = status


class TooManyRedirectsError(RemoteFetchError):
    """Raised when a redirect chain exceeds the configured hop limit."""

    def __init__(self, url: str, hops: int) -> None:
        super().__init__(f"Too many redirects ({hops}) while resolving {url}", url=url)
        self.hops = hops


class LocalIOError(DownloadError):
    """Raised when a downloaded artifact cannot be written to disk."""

    def __init__(self, message: str, *, path: Path) -> None:
        super().__init__(message)
        self.path = path


class ArtifactError(DownloadError):
    """Raised by a download batch; names the artifact that failed."""

    def __init__(self, entry_name: str, cause: DownloadError) -> None:
        super().__init__(f"Failed to download {entry_name}: {cause}")
        self.entry_name = entry_name
        self.cause = cause

    @property
    def status(self) -> Optional[int]:
        return getattr(self.cause, "status", None)


class LaunchError(InstallerError):
    """Raised when the mod loader installer cannot be started."""
