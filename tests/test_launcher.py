import subprocess
import sys
from pathlib import Path

import pytest

from mpinstall import launcher
from mpinstall.exceptions import LaunchError
from mpinstall.launcher import (
    MINECRAFT_STORE_PACKAGE,
    build_launch_command,
    find_java,
    launch_installer,
    search_runtime_dir,
)


def _make_java(root: Path, runtime: str, executable: str) -> Path:
    java = root / runtime / "bin" / executable
    java.parent.mkdir(parents=True)
    java.write_text("")
    return java


def test_runtime_search_prefers_newest_java_runtime(tmp_path):
    _make_java(tmp_path, "jre-legacy", "javaw.exe")
    _make_java(tmp_path, "java-runtime-alpha", "javaw.exe")
    newest = _make_java(tmp_path, "java-runtime-gamma", "javaw.exe")

    assert search_runtime_dir(tmp_path, platform="win32") == newest


def test_runtime_search_falls_back_to_legacy(tmp_path):
    legacy = _make_java(tmp_path, "jre-x64", "java")
    (tmp_path / "java-runtime-beta").mkdir()

    assert search_runtime_dir(tmp_path, platform="linux") == legacy
    assert search_runtime_dir(tmp_path / "missing", platform="linux") is None


def test_find_java_uses_path_first(monkeypatch):
    monkeypatch.setattr(launcher.shutil, "which", lambda name: "/usr/bin/java" if name == "java" else None)
    assert find_java(platform="linux", environ={}) == Path("/usr/bin/java")


def test_find_java_searches_minecraft_runtime_on_windows(tmp_path, monkeypatch):
    monkeypatch.setattr(launcher.shutil, "which", lambda name: None)
    runtime = tmp_path / "Packages" / MINECRAFT_STORE_PACKAGE / "LocalCache" / "Local" / "runtime"
    java = _make_java(runtime, "java-runtime-gamma", "javaw.exe")

    assert find_java(platform="win32", environ={"LOCALAPPDATA": str(tmp_path)}) == java
    assert find_java(platform="win32", environ={}) is None
    assert find_java(platform="linux", environ={"LOCALAPPDATA": str(tmp_path)}) is None


def test_explicit_java_path(tmp_path, monkeypatch):
    monkeypatch.setattr(launcher.shutil, "which", lambda name: None)
    java = tmp_path / "java"
    java.write_text("")

    assert find_java(str(java)) == java
    assert find_java(str(tmp_path / "nope")) is None


def test_launch_requires_the_jar(tmp_path):
    with pytest.raises(LaunchError):
        launch_installer(tmp_path / "forge-installer.jar", tmp_path)


def test_launch_requires_java(tmp_path, monkeypatch):
    jar = tmp_path / "forge-installer.jar"
    jar.write_bytes(b"jar")
    monkeypatch.setattr(launcher, "find_java", lambda explicit=None: None)

    with pytest.raises(LaunchError):
        launch_installer(jar, tmp_path)


@pytest.mark.skipif(sys.platform.startswith("win"), reason="POSIX session handling")
def test_launch_starts_detached_process(tmp_path, monkeypatch):
    jar = tmp_path / "forge-installer.jar"
    jar.write_bytes(b"jar")
    calls = []
    monkeypatch.setattr(launcher, "find_java", lambda explicit=None: Path("/opt/java/bin/java"))
    monkeypatch.setattr(launcher.subprocess, "Popen", lambda args, **kwargs: calls.append((args, kwargs)) or "proc")

    assert launch_installer(jar, tmp_path) == "proc"

    args, kwargs = calls[0]
    assert args == build_launch_command(Path("/opt/java/bin/java"), jar)
    assert args[1:] == ["-jar", str(jar)]
    assert kwargs["cwd"] == tmp_path
    assert kwargs["stdout"] is subprocess.DEVNULL
    assert kwargs["start_new_session"] is True


def test_popen_failure_becomes_launch_error(tmp_path, monkeypatch):
    jar = tmp_path / "forge-installer.jar"
    jar.write_bytes(b"jar")
    monkeypatch.setattr(launcher, "find_java", lambda explicit=None: Path("/opt/java/bin/java"))

    def boom(*args, **kwargs):
        raise FileNotFoundError("java")

    monkeypatch.setattr(launcher.subprocess, "Popen", boom)

    with pytest.raises(LaunchError):
        launch_installer(jar, tmp_path)
