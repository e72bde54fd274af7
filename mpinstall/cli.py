from __future__ import annotations

from pathlib import Path

import typer
from rich import box
from rich.console import Console
from rich.progress import BarColumn, MofNCompleteColumn, Progress, SpinnerColumn, TaskID, TextColumn
from rich.table import Table
from rich.text import Text

from . import __version__
from .config import ConfigError, InstallerSettings, load_settings
from .exceptions import ManifestError, RemoteFetchError
from .http import HttpClient
from .logs import setup_logging
from .manifest import Configuration, load_manifest
from .pipeline import STAGE_LABELS, InstallContext, InstallationPipeline, PipelineObserver, PipelineResult, Stage
from .profiles import AppendOutcome
from .resolver import RemoteReferenceResolver

app = typer.Typer(help="Minecraft modpack installer (mpinstall)")
manifest_app = typer.Typer(help="Inspect the modpack manifest")
profile_app = typer.Typer(help="Manage the launcher profile for the modpack")

app.add_typer(manifest_app, name="manifest")
app.add_typer(profile_app, name="profile")

_rich_console = Console()

_OUTCOME_MESSAGES = {
    AppendOutcome.APPENDED: "Added launcher profile '{name}'.",
    AppendOutcome.SKIPPED_UNSUPPORTED_PLATFORM: "This platform is not supported; the launcher profile was not added.",
    AppendOutcome.SKIPPED_NO_REGISTRY_FILE: "No usable launcher_profiles.json found; the launcher profile was not added.",
    AppendOutcome.SKIPPED_NAME_COLLISION: "A launcher profile named '{name}' already exists; left it untouched.",
    AppendOutcome.SKIPPED_BACKUP_FAILED: "Could not back up launcher_profiles.json; the launcher profile was not added.",
    AppendOutcome.SKIPPED_WRITE_FAILED: "Could not save launcher_profiles.json; the launcher profile was not added.",
}


def _fail(message: str, code: int = 1) -> None:
    typer.secho(message, err=True, fg="red")
    raise typer.Exit(code=code)


def _get_settings(ctx: typer.Context, **overrides) -> InstallerSettings:
    options = dict((ctx.obj or {}).get("options", {}))
    root = options.pop("root", None)
    options.update(overrides)
    try:
        return load_settings(root=root, **options)
    except ConfigError as exc:
        _fail(str(exc), code=2)


def _load_manifest_or_exit(settings: InstallerSettings) -> Configuration:
    try:
        return load_manifest(settings.manifest_file)
    except ManifestError as exc:
        _fail(str(exc), code=2)


def _outcome_message(outcome: AppendOutcome, profile_name: str) -> str:
    return _OUTCOME_MESSAGES[outcome].format(name=profile_name)


@app.callback()
def main(
    ctx: typer.Context,
    root: Path = typer.Option(None, "--root", help="Install root (defaults to the current directory)"),
    manifest: Path = typer.Option(None, "--manifest", help="Manifest file (defaults to config.yaml in the install root)"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug output on the console"),
):
    ctx.obj = ctx.obj or {}
    ctx.obj["options"] = {"root": root, "manifest_file": manifest}
    ctx.obj["verbose"] = verbose


class _ProgressObserver(PipelineObserver):
    def __init__(self, progress: Progress) -> None:
        self.progress = progress
        self._tasks: dict[Stage, TaskID] = {}

    def item_started(self, stage: Stage, index: int, total: int, name: str) -> None:
        task = self._tasks.get(stage)
        if task is None:
            task = self.progress.add_task(STAGE_LABELS[stage], total=total)
            self._tasks[stage] = task
        self.progress.update(task, description=f"{STAGE_LABELS[stage]}: {name}")

    def item_finished(self, stage: Stage, done: int, total: int) -> None:
        task = self._tasks.get(stage)
        if task is not None:
            self.progress.update(task, completed=done, description=STAGE_LABELS[stage])

    def stage_failed(self, stage: Stage, error: Exception) -> None:
        task = self._tasks.get(stage)
        if task is not None:
            self.progress.update(task, description=f"[red]{STAGE_LABELS[stage]}: failed")


def _summarize(result: PipelineResult, profile_name: str) -> None:
    table = Table(title="Installation summary", box=box.SIMPLE_HEAVY)
    table.add_column("Stage")
    table.add_column("Downloaded", justify="right")
    table.add_column("Already present", justify="right")
    for stage, batch in result.batches.items():
        table.add_row(STAGE_LABELS[stage], str(len(batch.downloaded)), str(len(batch.skipped)))
    _rich_console.print(table)

    typer.secho("Installation completed.", fg="green")
    if result.profile_outcome is not None:
        colour = "green" if result.profile_outcome.appended else "yellow"
        typer.secho(_outcome_message(result.profile_outcome, profile_name), fg=colour)
    if result.launched:
        typer.secho("The Mod Loader installer has been started.", fg="cyan")


@app.command("install")
def install_command(
    ctx: typer.Context,
    no_profile: bool = typer.Option(False, "--no-profile", help="Do not add a launcher profile"),
    no_launch: bool = typer.Option(False, "--no-launch", help="Never start the Mod Loader installer"),
):
    """Download the mod loader, mods and resources, then add the launcher profile."""
    settings = _get_settings(
        ctx,
        add_profile=False if no_profile else None,
        launch_mod_loader=False if no_launch else None,
    )
    setup_logging(settings.log_file, verbose=ctx.obj.get("verbose", False), console=_rich_console)

    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        MofNCompleteColumn(),
        console=_rich_console,
    ) as progress:
        context = InstallContext.from_settings(settings, observer=_ProgressObserver(progress))
        result = InstallationPipeline(context).run()

    if not result.ok:
        stage = result.failed_stage or Stage.LOAD_CONFIG
        code = 2 if stage is Stage.LOAD_CONFIG else 1
        action = "load" if stage is Stage.LOAD_CONFIG else "download"
        _fail(f"Failed to {action} {STAGE_LABELS[stage]}: {result.error}", code=code)

    _summarize(result, context.configuration.profile.name)


@app.command("resolve")
def resolve_command(
    ctx: typer.Context,
    url: str = typer.Argument(..., help="Download URL to resolve"),
):
    """Print the file name a download URL resolves to."""
    settings = _get_settings(ctx)
    client = HttpClient.from_settings(settings)
    resolver = RemoteReferenceResolver(client, max_redirects=settings.max_redirects)
    try:
        name = resolver.resolve(url)
    except RemoteFetchError as exc:
        _fail(str(exc))
    typer.echo(name)


@manifest_app.command("show")
def manifest_show(ctx: typer.Context):
    """List the artifacts the manifest would install."""
    settings = _get_settings(ctx)
    configuration = _load_manifest_or_exit(settings)

    profile = configuration.profile
    typer.secho(f"Profile: {profile.name} ({profile.version_id})", fg="cyan")

    table = Table(title="Artifacts", box=box.MINIMAL_DOUBLE_HEAD)
    table.add_column("Kind", style="magenta")
    table.add_column("Name", style="bold")
    table.add_column("Directory")
    table.add_column("File name")
    table.add_column("Source", style="dim")
    for entry in configuration.all_entries():
        table.add_row(
            entry.kind.value,
            entry.name,
            str(entry.target_directory),
            entry.cached_file_name or Text("(resolved at download)", style="bright_black"),
            entry.source_url,
        )
    _rich_console.print(table)


@profile_app.command("add")
def profile_add(ctx: typer.Context):
    """Add the manifest's profile to the launcher without downloading anything."""
    settings = _get_settings(ctx)
    setup_logging(settings.log_file, verbose=ctx.obj.get("verbose", False), console=_rich_console)
    configuration = _load_manifest_or_exit(settings)
    context = InstallContext.from_settings(settings)
    context.configuration = configuration
    outcome = context.ledger.append_profile(
        context.registry_path(), configuration.profile, settings.install_root
    )
    colour = "green" if outcome.appended else "yellow"
    typer.secho(_outcome_message(outcome, configuration.profile.name), fg=colour)


@app.command("version")
def version_command():
    """Show the installer version."""
    typer.echo(f"mpinstall {__version__}")
