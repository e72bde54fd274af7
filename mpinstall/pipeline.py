from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Callable, Dict, List, Optional

from .config import InstallerSettings
from .downloads import ArtifactDownloader, BatchResult, DownloadBatchRunner
from .exceptions import DownloadError, LaunchError, ManifestError
from .http import HttpClient
from .launcher import launch_installer
from .manifest import Configuration, DownloadEntry, load_manifest
from .profiles import AppendOutcome, ProfileLedger, default_registry_path
from .resolver import RemoteReferenceResolver

logger = logging.getLogger(__name__)


class Stage(str, Enum):
    LOAD_CONFIG = "load-config"
    DOWNLOAD_MOD_LOADER = "download-mod-loader"
    DOWNLOAD_MODS = "download-mods"
    DOWNLOAD_RESOURCES = "download-resources"
    APPEND_PROFILE = "append-profile"
    LAUNCH_MOD_LOADER_INSTALLER = "launch-mod-loader-installer"
    DONE = "done"
    FAILED = "failed"


DOWNLOAD_STAGES = (Stage.DOWNLOAD_MOD_LOADER, Stage.DOWNLOAD_MODS, Stage.DOWNLOAD_RESOURCES)

STAGE_LABELS = {
    Stage.LOAD_CONFIG: "config file",
    Stage.DOWNLOAD_MOD_LOADER: "Mod Loader",
    Stage.DOWNLOAD_MODS: "mods",
    Stage.DOWNLOAD_RESOURCES: "resources",
    Stage.APPEND_PROFILE: "launcher profile",
    Stage.LAUNCH_MOD_LOADER_INSTALLER: "Mod Loader installer",
}


class PipelineObserver:
    """Receives pipeline events; override only what you need."""

    def stage_started(self, stage: Stage) -> None:
        pass

    def item_started(self, stage: Stage, index: int, total: int, name: str) -> None:
        pass

    def item_finished(self, stage: Stage, done: int, total: int) -> None:
        pass

    def stage_failed(self, stage: Stage, error: Exception) -> None:
        pass

    def finished(self, result: PipelineResult) -> None:
        pass


@dataclass
class PipelineResult:
    state: Stage
    failed_stage: Optional[Stage] = None
    error: Optional[Exception] = None
    profile_outcome: Optional[AppendOutcome] = None
    batches: Dict[Stage, BatchResult] = field(default_factory=dict)
    launched: bool = False

    @property
    def ok(self) -> bool:
        return self.state is Stage.DONE


@dataclass
class InstallContext:
    """Everything one pipeline run needs; built at start, dropped at the end."""

    settings: InstallerSettings
    downloader: ArtifactDownloader
    ledger: ProfileLedger = field(default_factory=ProfileLedger)
    observer: PipelineObserver = field(default_factory=PipelineObserver)
    configuration: Optional[Configuration] = None

    @classmethod
    def from_settings(
        cls,
        settings: InstallerSettings,
        *,
        observer: Optional[PipelineObserver] = None,
        client: Optional[HttpClient] = None,
    ) -> InstallContext:
        client = client or HttpClient.from_settings(settings)
        resolver = RemoteReferenceResolver(client, max_redirects=settings.max_redirects)
        downloader = ArtifactDownloader(client, resolver, install_root=settings.install_root)
        return cls(
            settings=settings,
            downloader=downloader,
            observer=observer or PipelineObserver(),
        )

    def registry_path(self) -> Optional[Path]:
        return self.settings.launcher_profiles or default_registry_path()


Launcher = Callable[..., object]


class InstallationPipeline:
    """Runs the install stages strictly one after another.

    The first fatal failure moves the pipeline to ``Stage.FAILED`` and no
    later stage runs; files downloaded so far stay on disk. Profile and
    launch problems are logged and never fail the run.
    """

    def __init__(self, context: InstallContext, launcher: Launcher = launch_installer) -> None:
        self.context = context
        self.launcher = launcher

    def run(self) -> PipelineResult:
        result = PipelineResult(state=Stage.LOAD_CONFIG)
        try:
            configuration = self._load_config(result)
            for stage, entries in zip(DOWNLOAD_STAGES, configuration.download_batches()):
                self._enter(result, stage)
                logger.info("Start downloading %s...", STAGE_LABELS[stage])
                result.batches[stage] = self._run_batch(stage, entries)
        except (ManifestError, DownloadError) as exc:
            return self._fail(result, exc)

        self._append_profile(result, configuration)
        result.state = Stage.DONE
        self._launch_mod_loader(result, configuration)
        logger.info("Installation completed.")
        self.context.observer.finished(result)
        return result

    def _enter(self, result: PipelineResult, stage: Stage) -> None:
        result.state = stage
        self.context.observer.stage_started(stage)

    def _load_config(self, result: PipelineResult) -> Configuration:
        self._enter(result, Stage.LOAD_CONFIG)
        if self.context.configuration is None:
            self.context.configuration = load_manifest(self.context.settings.manifest_file)
        return self.context.configuration

    def _run_batch(self, stage: Stage, entries: List[DownloadEntry]) -> BatchResult:
        observer = self.context.observer
        runner = DownloadBatchRunner(self.context.downloader)
        return runner.run(
            entries,
            on_item=lambda index, total, name: observer.item_started(stage, index, total, name),
            on_progress=lambda done, total: observer.item_finished(stage, done, total),
        )

    def _fail(self, result: PipelineResult, error: Exception) -> PipelineResult:
        stage = result.state
        action = "load" if stage is Stage.LOAD_CONFIG else "download"
        logger.error("Failed to %s %s.", action, STAGE_LABELS[stage], exc_info=error)
        result.failed_stage = stage
        result.error = error
        result.state = Stage.FAILED
        self.context.observer.stage_failed(stage, error)
        self.context.observer.finished(result)
        return result

    def _append_profile(self, result: PipelineResult, configuration: Configuration) -> None:
        if not self.context.settings.add_profile:
            logger.info("Adding the launcher profile is disabled.")
            return
        self._enter(result, Stage.APPEND_PROFILE)
        result.profile_outcome = self.context.ledger.append_profile(
            self.context.registry_path(),
            configuration.profile,
            self.context.settings.install_root,
        )

    def _launch_mod_loader(self, result: PipelineResult, configuration: Configuration) -> None:
        entry = configuration.mod_loader
        if entry is None or not entry.auto_launch or not self.context.settings.launch_mod_loader:
            return
        self.context.observer.stage_started(Stage.LAUNCH_MOD_LOADER_INSTALLER)
        jar_path = self.context.downloader.target_path(entry)
        try:
            self.launcher(jar_path, self.context.settings.install_root, java=self.context.settings.java_path)
        except LaunchError as exc:
            logger.warning("Failed to start Mod Loader installer: %s", exc)
            return
        result.launched = True
