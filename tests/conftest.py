from __future__ import annotations

from typing import Dict, List, Optional

import pytest

from mpinstall.config import InstallerSettings
from mpinstall.http import HttpResponse


class FakeClient:
    """In-memory stand-in for HttpClient; unknown URLs answer 404."""

    def __init__(self) -> None:
        self._probes: Dict[str, HttpResponse] = {}
        self._gets: Dict[str, HttpResponse] = {}
        self.probed: List[str] = []
        self.fetched: List[str] = []

    def redirect(self, url: str, location: str, status: int = 302) -> None:
        self._probes[url] = HttpResponse(url=url, status=status, headers={"location": location})

    def serve(
        self,
        url: str,
        body: bytes = b"payload",
        *,
        status: int = 200,
        filename: Optional[str] = None,
        get_url: Optional[str] = None,
    ) -> None:
        headers = {}
        if filename is not None:
            headers["content-disposition"] = f'attachment; filename="{filename}"'
        self._probes[url] = HttpResponse(url=url, status=status, headers=headers)
        self._gets[get_url or url] = HttpResponse(url=url, status=status, headers=headers, body=body)

    def probe(self, url: str) -> HttpResponse:
        self.probed.append(url)
        return self._probes.get(url, HttpResponse(url=url, status=404))

    def get(self, url: str) -> HttpResponse:
        self.fetched.append(url)
        return self._gets.get(url, HttpResponse(url=url, status=404))


@pytest.fixture
def fake_client() -> FakeClient:
    return FakeClient()


@pytest.fixture
def settings(tmp_path) -> InstallerSettings:
    return InstallerSettings(
        install_root=tmp_path,
        manifest_file=tmp_path / "config.yaml",
        log_file=tmp_path / "installer.log",
        launcher_profiles=tmp_path / "launcher_profiles.json",
    )
