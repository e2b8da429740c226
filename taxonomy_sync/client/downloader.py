"""Download remote swatch images so they can be materialised as local assets."""

import mimetypes
import posixpath
from dataclasses import dataclass
from typing import Optional
from urllib.parse import unquote, urlparse

import requests
import structlog

from taxonomy_sync.errors import AssetError

log = structlog.stdlib.get_logger()

DEFAULT_FILENAME = "swatch"


@dataclass(frozen=True)
class DownloadedImage:
    content: bytes
    filename: str
    content_type: str


def filename_from_url(url: str) -> str:
    """Last path segment of ``url``, or a generic name if the path has none."""
    path = unquote(urlparse(url).path)
    name = posixpath.basename(path.rstrip("/"))
    return name or DEFAULT_FILENAME


class ImageDownloader:
    """Fetches image bytes over HTTP with a fixed timeout."""

    def __init__(self, session: Optional[requests.Session] = None, timeout: float = 30.0):
        self._session = session or requests.Session()
        self._timeout = timeout

    def download(self, url: str) -> DownloadedImage:
        """
        Download an image.

        Args:
            url: Absolute image URL

        Returns:
            DownloadedImage with the body, a filename and the content type

        Raises:
            AssetError: On network failure, non-2xx status, empty body or a
                        response that is not an image
        """
        if not url:
            raise AssetError("Image URL is empty", source_url=url)

        log.debug("image_download_started", url=url)

        try:
            response = self._session.get(url, timeout=self._timeout)
        except requests.RequestException as e:
            raise AssetError(f"Failed to download image {url}: {e}", source_url=url) from e

        if response.status_code < 200 or response.status_code >= 300:
            raise AssetError(
                f"Failed to download image {url}: status code {response.status_code}",
                source_url=url,
            )

        content = response.content
        if not content:
            raise AssetError(f"Image download returned an empty body: {url}", source_url=url)

        filename = filename_from_url(url)
        content_type = self._content_type(response, filename)
        if not content_type.startswith("image/"):
            raise AssetError(
                f"Downloaded resource is not an image ({content_type}): {url}",
                source_url=url,
            )

        log.debug(
            "image_download_completed",
            url=url,
            size=len(content),
            content_type=content_type,
        )
        return DownloadedImage(content=content, filename=filename, content_type=content_type)

    def _content_type(self, response: requests.Response, filename: str) -> str:
        header = response.headers.get("Content-Type", "")
        content_type = header.split(";", 1)[0].strip().lower()
        if content_type and content_type != "application/octet-stream":
            return content_type
        guessed, _ = mimetypes.guess_type(filename)
        return guessed or content_type or "application/octet-stream"
