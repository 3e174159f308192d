import io
import logging
from typing import Optional

import httpx

from ..utils import RemoteFetchError
from .provider import ContentFetcher, Download

logger = logging.getLogger(__name__)


class HttpContentFetcher(ContentFetcher):
    """Downloads raw files, release assets, and tarballs in full."""

    def __init__(self, client: Optional[httpx.Client] = None) -> None:
        self.client = client if client is not None else httpx.Client(follow_redirects=True)

    def fetch(self, url: str) -> Download:
        logger.debug("GET %s", url)
        try:
            # Tarball and release asset locations redirect to a storage host.
            response = self.client.get(url, follow_redirects=True)
        except (httpx.HTTPError, httpx.InvalidURL) as exception:
            raise RemoteFetchError(f"Download of {url} failed: {exception}") from exception

        if response.status_code != 200:
            raise RemoteFetchError(f"Download of {url} failed with HTTP status {response.status_code}")

        return Download(io.BytesIO(response.content), response.headers.get('Content-Type', ''))
