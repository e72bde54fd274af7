from __future__ import annotations

import logging
from email.message import Message
from typing import Optional
from urllib.parse import unquote, urljoin, urlsplit

from .config import DEFAULT_MAX_REDIRECTS
from .exceptions import RemoteFetchError, TooManyRedirectsError
from .http import HttpClient, HttpResponse
from .manifest import safe_file_name

logger = logging.getLogger(__name__)


def _is_redirect(status: int) -> bool:
    return 300 <= status < 400


def filename_from_content_disposition(value: Optional[str]) -> Optional[str]:
    """Return the ``filename`` parameter of a Content-Disposition header.

    Directory components are dropped so a hostile header cannot point outside
    the target directory.
    """

    if not value:
        return None
    message = Message()
    message["Content-Disposition"] = value
    return safe_file_name(message.get_filename())


def filename_from_url(url: str) -> Optional[str]:
    segment = urlsplit(url).path.rsplit("/", 1)[-1]
    return safe_file_name(unquote(segment, encoding="utf-8"))


class RemoteReferenceResolver:
    """Turn a download URL into the file name it will produce.

    Redirects are followed by hand, one probe per hop, so the final URL is
    known even when the server never sends a Content-Disposition header.
    """

    def __init__(self, client: HttpClient, max_redirects: int = DEFAULT_MAX_REDIRECTS) -> None:
        self.client = client
        self.max_redirects = max_redirects

    def resolve(self, url: str) -> str:
        current = url
        for _ in range(self.max_redirects + 1):
            response = self.client.probe(current)
            location = response.header("Location")
            if _is_redirect(response.status) and location:
                target = urljoin(current, location)
                logger.debug("Redirect %s: %s -> %s", response.status, current, target)
                current = target
                continue
            if response.status != 200:
                raise RemoteFetchError(
                    f"Error response from {current}. code: {response.status}",
                    url=current,
                    status=response.status,
                )
            return self._file_name(response, current)
        raise TooManyRedirectsError(url, self.max_redirects)

    def _file_name(self, response: HttpResponse, final_url: str) -> str:
        name = filename_from_content_disposition(response.header("Content-Disposition"))
        if name is None:
            name = filename_from_url(final_url)
        if name is None:
            raise RemoteFetchError(
                f"Could not determine a file name from {final_url} or its response headers",
                url=final_url,
                status=response.status,
            )
        return name
