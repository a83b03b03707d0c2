"""Minimal Algolia REST client for one index."""

import logging
from typing import Iterator, Optional
from urllib.parse import quote

import requests

from package_indexer.exceptions import SearchIndexError
from package_indexer.sources.base import get_session

logger = logging.getLogger(__name__)


class SearchIndex:
    """Browse, write and clear an Algolia index.

    Writes go to ``{app_id}.algolia.net``, reads to the DSN host
    ``{app_id}-dsn.algolia.net``.
    """

    timeout: int = 30
    hits_per_page: int = 1000

    def __init__(
        self,
        app_id: str,
        api_key: str,
        index_name: str,
        session: Optional[requests.Session] = None,
    ):
        self.index_name = index_name
        self.session = session or get_session()
        self.write_host = f"https://{app_id}.algolia.net"
        self.read_host = f"https://{app_id}-dsn.algolia.net"
        self.headers = {
            "X-Algolia-Application-Id": app_id,
            "X-Algolia-API-Key": api_key,
            "Content-Type": "application/json",
        }

    def _url(self, host: str, action: str) -> str:
        return f"{host}/1/indexes/{quote(self.index_name, safe='')}/{action}"

    def _post(self, url: str, body: dict) -> dict:
        try:
            response = self.session.post(url, json=body, headers=self.headers, timeout=self.timeout)
        except requests.RequestException as e:
            raise SearchIndexError(f"Request to {url} failed: {e}") from e

        if not response.ok:
            raise SearchIndexError(
                f"Request to {url} failed: HTTP {response.status_code} {response.text[:200]}",
                response.status_code,
            )

        try:
            return response.json()
        except ValueError as e:
            raise SearchIndexError(f"Invalid JSON from {url}: {e}", response.status_code) from e

    def browse(self) -> Iterator[dict]:
        """Iterate over every object in the index, following the cursor."""
        url = self._url(self.read_host, "browse")
        body: dict = {"params": f"hitsPerPage={self.hits_per_page}"}

        while True:
            data = self._post(url, body)
            yield from data.get("hits", [])

            cursor = data.get("cursor")
            if not cursor:
                break
            body = {"cursor": cursor}

    def _batch(self, requests_: list[dict]) -> dict:
        return self._post(self._url(self.write_host, "batch"), {"requests": requests_})

    def save_objects(self, objects: list[dict]) -> dict:
        """Create or replace objects by objectID."""
        return self._batch([{"action": "updateObject", "body": obj} for obj in objects])

    def delete_objects(self, object_ids: list[str]) -> dict:
        return self._batch(
            [{"action": "deleteObject", "body": {"objectID": oid}} for oid in object_ids]
        )

    def clear(self) -> dict:
        logger.info(f"Clearing index {self.index_name}")
        return self._post(self._url(self.write_host, "clear"), {})
