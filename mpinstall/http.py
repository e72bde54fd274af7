from __future__ import annotations

import http.client
import urllib.error
import urllib.request
from dataclasses import dataclass, field
from typing import Dict, Mapping, Optional

from .config import DEFAULT_MAX_REDIRECTS, DEFAULT_TIMEOUT_SECONDS, DEFAULT_USER_AGENT, InstallerSettings
from .exceptions import RemoteFetchError


@dataclass(slots=True)
class HttpResponse:
    url: str
    status: int
    headers: Dict[str, str] = field(default_factory=dict)
    body: bytes = b""

    def header(self, name: str) -> Optional[str]:
        return self.headers.get(name.lower())


class _NoRedirectHandler(urllib.request.HTTPRedirectHandler):
    # Returning None makes urllib surface the 3xx as an HTTPError we can inspect.
    def redirect_request(self, req, fp, code, msg, headers, newurl):  # noqa: ANN001
        return None


class _LimitedRedirectHandler(urllib.request.HTTPRedirectHandler):
    def __init__(self, max_redirections: int) -> None:
        self.max_redirections = max_redirections


def _normalize_headers(headers: Optional[Mapping[str, str]]) -> Dict[str, str]:
    if not headers:
        return {}
    return {key.lower(): value for key, value in headers.items()}


class HttpClient:
    """Minimal blocking HTTP client on top of ``urllib``.

    Non-2xx answers are returned as :class:`HttpResponse` objects so callers
    decide what a bad status means; only transport failures raise
    :class:`RemoteFetchError`. Every connection is closed before a method
    returns.
    """

    def __init__(
        self,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        user_agent: str = DEFAULT_USER_AGENT,
        max_redirects: int = DEFAULT_MAX_REDIRECTS,
    ) -> None:
        self.timeout_seconds = timeout_seconds
        self.user_agent = user_agent
        self.max_redirects = max_redirects
        self._opener = urllib.request.build_opener(_LimitedRedirectHandler(max_redirects))
        self._probe_opener = urllib.request.build_opener(_NoRedirectHandler)

    @classmethod
    def from_settings(cls, settings: InstallerSettings) -> HttpClient:
        return cls(
            timeout_seconds=settings.timeout_seconds,
            user_agent=settings.user_agent,
            max_redirects=settings.max_redirects,
        )

    def probe(self, url: str) -> HttpResponse:
        """Request ``url`` without following redirects and without reading the body."""
        return self._open(self._probe_opener, url, read_body=False)

    def get(self, url: str) -> HttpResponse:
        """Request ``url`` following up to ``max_redirects`` redirects and buffer the whole body."""
        return self._open(self._opener, url, read_body=True)

    def _request(self, url: str) -> urllib.request.Request:
        return urllib.request.Request(url, headers={"User-Agent": self.user_agent})

    def _open(self, opener: urllib.request.OpenerDirector, url: str, *, read_body: bool) -> HttpResponse:
        try:
            with opener.open(self._request(url), timeout=self.timeout_seconds) as response:
                body = response.read() if read_body else b""
                return HttpResponse(
                    url=response.geturl() or url,
                    status=response.status,
                    headers=_normalize_headers(response.headers),
                    body=body,
                )
        except urllib.error.HTTPError as exc:
            try:
                return HttpResponse(url=url, status=exc.code, headers=_normalize_headers(exc.headers))
            finally:
                exc.close()
        except (urllib.error.URLError, http.client.HTTPException, OSError, ValueError) as exc:
            raise RemoteFetchError(f"Request failed for {url}: {exc}", url=url) from exc
