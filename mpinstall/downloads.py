from __future__ import annotations

import logging
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, List, Optional, Sequence

from .exceptions import ArtifactError, DownloadError, LocalIOError, RemoteFetchError
from .http import HttpClient
from .manifest import DownloadEntry, safe_file_name
from .resolver import RemoteReferenceResolver

logger = logging.getLogger(__name__)

ItemCallback = Callable[[int, int, str], None]
ProgressCallback = Callable[[int, int], None]


class ArtifactDownloader:
    """Fetch one artifact into its target directory unless it is already there."""

    def __init__(
        self,
        client: HttpClient,
        resolver: RemoteReferenceResolver,
        install_root: Path = Path("."),
    ) -> None:
        self.client = client
        self.resolver = resolver
        self.install_root = install_root

    def target_path(self, entry: DownloadEntry) -> Path:
        file_name = entry.resolve_name(self.resolver.resolve)
        directory = self.install_root / entry.target_directory
        path = directory / file_name
        if safe_file_name(file_name) != file_name or path.parent != directory:
            raise LocalIOError(f"Refusing to write {file_name!r} outside {directory}", path=path)
        return path

    def download(self, entry: DownloadEntry) -> bool:
        """Return True when the file was fetched now, False when it already existed."""

        path = self.target_path(entry)
        if path.exists():
            return False

        try:
            path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise LocalIOError(f"Unable to create directory {path.parent}: {exc}", path=path.parent) from exc

        response = self.client.get(entry.source_url)
        if response.status != 200:
            raise RemoteFetchError(
                f"Error response from {entry.source_url}. code: {response.status}",
                url=entry.source_url,
                status=response.status,
            )
        _write_atomic(path, response.body)
        return True


def _write_atomic(path: Path, payload: bytes) -> None:
    tmp_path: Optional[Path] = None
    try:
        with tempfile.NamedTemporaryFile(
            "wb",
            delete=False,
            dir=str(path.parent),
            prefix=f".{path.name}.",
            suffix=".part",
        ) as tmp:
            tmp_path = Path(tmp.name)
            tmp.write(payload)
        tmp_path.replace(path)
    except (OSError, ValueError) as exc:
        raise LocalIOError(f"Unable to write {path}: {exc}", path=path) from exc
    finally:
        if tmp_path and tmp_path.exists():
            try:
                tmp_path.unlink()
            except OSError:
                logger.warning("Could not remove temporary file %s", tmp_path)


@dataclass
class BatchResult:
    downloaded: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.downloaded) + len(self.skipped)


class DownloadBatchRunner:
    def __init__(self, downloader: ArtifactDownloader) -> None:
        self.downloader = downloader

    def run(
        self,
        entries: Sequence[DownloadEntry],
        on_item: Optional[ItemCallback] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> BatchResult:
        """Download ``entries`` one after another, stopping at the first failure.

        ``on_item(index, total, name)`` fires before each attempt and
        ``on_progress(done, total)`` after each success. A failure is
        re-raised as :class:`ArtifactError` naming the entry; later entries
        are never attempted.
        """

        result = BatchResult()
        total = len(entries)
        for index, entry in enumerate(entries):
            if on_item is not None:
                on_item(index, total, entry.name)
            try:
                fetched = self.downloader.download(entry)
            except DownloadError as exc:
                logger.error("Failed to download %s: %s", entry.name, exc)
                raise ArtifactError(entry.name, exc) from exc
            if fetched:
                logger.info("\tDownloaded: %s", entry.name)
                result.downloaded.append(entry.name)
            else:
                logger.info("\tSkipping download: %s", entry.name)
                result.skipped.append(entry.name)
            if on_progress is not None:
                on_progress(index + 1, total)
        return result
