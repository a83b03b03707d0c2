"""Shared HTTP plumbing for package sources."""

import logging
from typing import Optional

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from package_indexer.exceptions import RegistryError

logger = logging.getLogger(__name__)

USER_AGENT = "contao-package-indexer (+https://github.com/contao/package-metadata)"


def get_session(retries: int = 3) -> requests.Session:
    """Create a requests session with retry logic."""
    session = requests.Session()
    retry = Retry(
        total=retries,
        backoff_factor=0.5,
        status_forcelist=[429, 500, 502, 503, 504],
        allowed_methods=None,
    )
    adapter = HTTPAdapter(max_retries=retry)
    session.mount("http://", adapter)
    session.mount("https://", adapter)
    session.headers["User-Agent"] = USER_AGENT
    return session


class HttpSource:
    """Base class for sources reading JSON or text over HTTP."""

    timeout: int = 30

    def __init__(self, session: Optional[requests.Session] = None):
        self.session = session or get_session()

    def _get(self, url: str, **kwargs) -> requests.Response:
        """GET a URL and raise RegistryError for anything but a 2xx response."""
        try:
            response = self.session.get(url, timeout=self.timeout, **kwargs)
        except requests.RequestException as e:
            raise RegistryError(f"Failed to fetch {url}: {e}", url) from e

        if not response.ok:
            raise RegistryError(
                f"Failed to fetch {url}: HTTP {response.status_code}", url, response.status_code
            )

        cache_status = response.headers.get("x-cache")
        if cache_status:
            logger.debug(f"{url}: {cache_status}")

        return response

    def get_json(self, url: str, **kwargs) -> dict:
        response = self._get(url, **kwargs)
        try:
            data = response.json()
        except ValueError as e:
            raise RegistryError(f"Invalid JSON from {url}: {e}", url, response.status_code) from e
        if not isinstance(data, dict):
            raise RegistryError(f"Unexpected payload from {url}", url, response.status_code)
        return data

    def get_text(self, url: str, **kwargs) -> str:
        return self._get(url, **kwargs).text
