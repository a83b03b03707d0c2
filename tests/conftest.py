"""Shared test doubles: a stub HTTP session, an in-memory search index and a
stub registry."""

import copy
import json
from typing import Any, Callable, Optional, Union
from urllib.parse import urlencode

import pytest
import requests

from package_indexer.contao import ContaoVersionResolver
from package_indexer.exceptions import RegistryError, SearchIndexError
from package_indexer.factory import PackageFactory
from package_indexer.models import RegistryPackage
from package_indexer.sources.metadata import MetaDataRepository

LANGUAGES = ["en", "de", "fr", "it"]

CORE_VERSIONS = ["4.4.0", "4.4.56", "4.9.0", "4.9.40", "4.13.0", "4.13.30", "dev-main", "4.13.x-dev"]


class StubResponse:
    """Just enough of requests.Response for the sources."""

    def __init__(self, status_code: int = 200, json_data: Any = None, text: Optional[str] = None, headers=None):
        self.status_code = status_code
        self._json = json_data
        self.text = text if text is not None else (json.dumps(json_data) if json_data is not None else "")
        self.headers = headers or {}

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300

    def json(self):
        if self._json is None:
            return json.loads(self.text)
        return self._json


Route = Union[StubResponse, Exception, Callable[[Any], StubResponse]]


class StubSession:
    """Serve canned responses by URL; unknown URLs answer 404."""

    def __init__(self, routes: Optional[dict[str, Route]] = None):
        self.routes: dict[str, Route] = dict(routes or {})
        self.requests: list[tuple[str, str, Any]] = []
        self.headers: dict[str, str] = {}

    def _respond(self, method: str, url: str, body: Any = None) -> StubResponse:
        self.requests.append((method, url, body))
        route = self.routes.get(url)
        if route is None:
            return StubResponse(404, {"status": "error", "message": "Not Found"})
        if isinstance(route, Exception):
            raise route
        if callable(route):
            return route(body)
        return route

    def get(self, url: str, params: Optional[dict] = None, timeout=None, **kwargs) -> StubResponse:
        if params:
            url = f"{url}?{urlencode(params)}"
        return self._respond("GET", url)

    def post(self, url: str, json=None, headers=None, timeout=None, **kwargs) -> StubResponse:
        return self._respond("POST", url, json)

    def urls(self, method: str = "GET") -> list[str]:
        return [url for m, url, _ in self.requests if m == method]


class FakeSearchIndex:
    """In-memory stand-in for SearchIndex."""

    def __init__(self, records: Optional[list[dict]] = None):
        self.records: dict[str, dict] = {r["objectID"]: copy.deepcopy(r) for r in records or []}
        self.browse_calls = 0
        self.save_calls: list[list[dict]] = []
        self.delete_calls: list[list[str]] = []
        self.clear_calls = 0
        self.fail_saves = False

    def browse(self):
        self.browse_calls += 1
        for record in list(self.records.values()):
            yield copy.deepcopy(record)

    def save_objects(self, objects: list[dict]) -> dict:
        if self.fail_saves:
            raise SearchIndexError("HTTP 503", 503)
        self.save_calls.append(objects)
        for obj in objects:
            # Round trip through JSON like the real service
            self.records[obj["objectID"]] = json.loads(json.dumps(obj))
        return {"taskID": len(self.save_calls)}

    def delete_objects(self, object_ids: list[str]) -> dict:
        self.delete_calls.append(list(object_ids))
        for oid in object_ids:
            self.records.pop(oid, None)
        return {"taskID": 1}

    def clear(self) -> dict:
        self.clear_calls += 1
        self.records = {}
        return {"taskID": 1}


class StubPackagist:
    """Registry double returning prepared RegistryPackage objects."""

    def __init__(self, packages: Optional[dict[str, Any]] = None, core_versions=None):
        self.packages = packages or {}
        self.core_versions = CORE_VERSIONS if core_versions is None else core_versions
        self.data_calls: list[str] = []
        self.version_calls: list[str] = []

    def get_package_data(self, name: str) -> Optional[RegistryPackage]:
        self.data_calls.append(name)
        value = self.packages.get(name)
        if isinstance(value, Exception):
            raise value
        return value

    def get_versions(self, name: str) -> dict[str, dict]:
        self.version_calls.append(name)
        if isinstance(self.core_versions, Exception):
            raise self.core_versions
        return {v: {"version": v} for v in self.core_versions}


def registry_package(name: str, versions: dict[str, dict], **summary) -> RegistryPackage:
    """Build registry data where summary and feed carry the same manifests."""
    manifests = {v: {"version": v, **m} for v, m in versions.items()}
    summary.setdefault("versions", copy.deepcopy(manifests))
    return RegistryPackage(name=name, summary=summary, versions=manifests)


def write_file(path, content: Union[str, bytes]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    if isinstance(content, bytes):
        path.write_bytes(content)
    else:
        path.write_text(content, encoding="utf-8")


@pytest.fixture
def meta_dir(tmp_path):
    root = tmp_path / "meta"
    root.mkdir()
    return root


@pytest.fixture
def metadata(meta_dir):
    return MetaDataRepository(meta_dir)


@pytest.fixture
def packagist():
    return StubPackagist()


@pytest.fixture
def resolver(packagist):
    return ContaoVersionResolver(packagist)


@pytest.fixture
def factory(metadata, packagist, resolver):
    return PackageFactory(metadata, packagist, resolver, LANGUAGES)


@pytest.fixture
def transport_error():
    return RegistryError("Failed to fetch: HTTP 503", "https://packagist.org/x.json", 503)


@pytest.fixture
def connection_error():
    return requests.ConnectionError("connection refused")
