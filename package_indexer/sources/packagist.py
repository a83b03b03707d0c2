"""Packagist registry source."""

import logging
import re
from typing import Optional

from package_indexer.exceptions import RegistryError
from package_indexer.models import RegistryPackage
from package_indexer.sources.base import HttpSource

logger = logging.getLogger(__name__)

PLATFORM_PACKAGE_RE = re.compile(
    r"^(?:php(?:-64bit|-ipv6|-zts|-debug)?|hhvm|(?:ext|lib)-[^/ ]+)$", re.IGNORECASE
)

# Packages that show up in the type listings but must never be indexed
EXCLUDED_PACKAGES = frozenset(
    {
        "contao/installation-bundle",
        "contao/module-devtools",
        "contao/module-repository",
        "contao/contao",
    }
)

UNSET = "__unset"


def expand_versions(entries: list[dict]) -> list[dict]:
    """Expand a minified Composer v2 version feed.

    Every entry only lists the keys that differ from the entry before it;
    the value ``"__unset"`` removes a key.
    """
    expanded: list[dict] = []
    current: Optional[dict] = None

    for entry in entries:
        if current is None:
            current = dict(entry)
        else:
            current = dict(current)
            for key, value in entry.items():
                if value == UNSET:
                    current.pop(key, None)
                else:
                    current[key] = value
        expanded.append(current)

    return expanded


class Packagist(HttpSource):
    """Read package lists and metadata from packagist.org."""

    LIST_URL = "https://packagist.org/packages/list.json"
    PACKAGE_URL = "https://packagist.org/packages/{name}.json"
    FEED_URL = "https://repo.packagist.org/p2/{name}.json"
    DEV_FEED_URL = "https://repo.packagist.org/p2/{name}~dev.json"

    @staticmethod
    def is_indexable(name: str) -> bool:
        return not PLATFORM_PACKAGE_RE.match(name) and name not in EXCLUDED_PACKAGES

    def get_package_names(self, package_type: str) -> set[str]:
        """All package names of a Composer type, minus excluded packages.

        Raises:
            RegistryError: If the list cannot be fetched.
        """
        data = self.get_json(self.LIST_URL, params={"type": package_type})
        names = {name.lower() for name in data.get("packageNames", [])}
        return names - EXCLUDED_PACKAGES

    def get_package_data(self, name: str) -> Optional[RegistryPackage]:
        """Combine the package summary and the expanded version feed.

        Returns:
            RegistryPackage, or None if the package is not indexable or unknown
            to the registry.

        Raises:
            RegistryError: On transport failures other than 404.
        """
        name = name.lower()
        if not self.is_indexable(name):
            return None

        summary = self._get_optional_json(self.PACKAGE_URL.format(name=name))
        if not summary or not isinstance(summary.get("package"), dict):
            return None

        versions = self._get_feed(name)
        if versions is None:
            return None

        return RegistryPackage(name=name, summary=summary["package"], versions=versions)

    def get_versions(self, name: str) -> dict[str, dict]:
        """Expanded tagged and dev version manifests of a package.

        Raises:
            RegistryError: If the package is unknown or cannot be fetched.
        """
        name = name.lower()
        versions = self._read_feed(self.FEED_URL.format(name=name), name)
        if versions is None:
            raise RegistryError(
                f"Package {name} not found", self.FEED_URL.format(name=name), 404
            )
        versions.update(self._read_feed(self.DEV_FEED_URL.format(name=name), name) or {})
        return versions

    def _get_feed(self, name: str) -> Optional[dict[str, dict]]:
        versions = self._read_feed(self.FEED_URL.format(name=name), name)
        if versions is None:
            return None

        # Packages without tags only have a dev feed
        if not versions:
            versions = self._read_feed(self.DEV_FEED_URL.format(name=name), name) or {}

        return versions

    def _read_feed(self, url: str, name: str) -> Optional[dict[str, dict]]:
        data = self._get_optional_json(url)
        if data is None:
            return None

        packages = data.get("packages")
        if not isinstance(packages, dict) or packages.get(name) is None:
            return None

        entries = packages[name]

        return {entry["version"]: entry for entry in expand_versions(entries) if "version" in entry}

    def _get_optional_json(self, url: str) -> Optional[dict]:
        try:
            return self.get_json(url)
        except RegistryError as e:
            if e.status_code == 404:
                logger.debug(f"Not found: {url}")
                return None
            raise
