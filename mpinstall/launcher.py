from __future__ import annotations

import logging
import os
import shutil
import subprocess
import sys
from pathlib import Path
from typing import List, Mapping, Optional

from .exceptions import LaunchError

logger = logging.getLogger(__name__)

MINECRAFT_STORE_PACKAGE = "Microsoft.4297127D64EC6_8wekyb3d8bbwe"


def _is_windows(platform: str) -> bool:
    return platform.startswith("win")


def search_runtime_dir(runtime_dir: Path, platform: str = sys.platform) -> Optional[Path]:
    if not runtime_dir.is_dir():
        return None
    dirs = [entry for entry in runtime_dir.iterdir() if entry.is_dir()]
    # java-runtime-* before legacy jre-*; newest name first within each group.
    newer = sorted((d for d in dirs if d.name.startswith("java-runtime-")), key=lambda d: d.name, reverse=True)
    legacy = sorted((d for d in dirs if not d.name.startswith("java-runtime-")), key=lambda d: d.name, reverse=True)
    executable = "javaw.exe" if _is_windows(platform) else "java"
    for candidate in [*newer, *legacy]:
        java = candidate / "bin" / executable
        if java.exists():
            return java
    return None


def find_java(
    explicit: Optional[str] = None,
    *,
    platform: str = sys.platform,
    environ: Mapping[str, str] = os.environ,
) -> Optional[Path]:
    """Locate a Java executable able to run the mod loader installer."""

    if explicit:
        resolved = shutil.which(explicit)
        if resolved:
            return Path(resolved)
        path = Path(explicit).expanduser()
        return path if path.exists() else None

    logger.info("Searching for system java...")
    system_java = shutil.which("java")
    if system_java:
        return Path(system_java)

    if _is_windows(platform):
        logger.info("Searching for java from minecraft...")
        local_appdata = environ.get("LOCALAPPDATA")
        if not local_appdata:
            logger.warning("LOCALAPPDATA environment variable not found")
            return None
        runtimes = (
            Path(local_appdata)
            / "Packages"
            / MINECRAFT_STORE_PACKAGE
            / "LocalCache"
            / "Local"
            / "runtime"
        )
        return search_runtime_dir(runtimes, platform=platform)
    return None


def build_launch_command(java: Path, jar_path: Path) -> List[str]:
    return [str(java), "-jar", str(jar_path)]


def launch_installer(jar_path: Path, cwd: Path, java: Optional[str] = None) -> subprocess.Popen:
    """Start the downloaded mod loader installer as a detached process."""

    if not jar_path.exists():
        raise LaunchError(f"Mod loader installer not found: {jar_path}")
    java_exe = find_java(java)
    if java_exe is None:
        raise LaunchError("Java executable not found")
    logger.info("Using Java: %s", java_exe)

    kwargs = {}
    if _is_windows(sys.platform):
        kwargs["creationflags"] = getattr(subprocess, "CREATE_NO_WINDOW", 0)
    else:
        kwargs["start_new_session"] = True
    try:
        process = subprocess.Popen(
            build_launch_command(java_exe, jar_path),
            cwd=cwd,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
            **kwargs,
        )
    except OSError as exc:
        raise LaunchError(f"Failed to launch mod loader installer: {exc}") from exc
    logger.info("Launched mod loader installer: %s", jar_path.name)
    return process
