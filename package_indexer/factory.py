"""Assemble Package objects from the registry, the metadata repository and
the Contao version resolver."""

import logging
from datetime import datetime, timezone
from typing import Any, Optional, Union

from package_indexer.constraints import is_dev_version
from package_indexer.contao import CORE_REQUIREMENTS, ContaoVersionResolver
from package_indexer.models import Package, RegistryPackage
from package_indexer.sources.metadata import MetaDataRepository
from package_indexer.sources.packagist import Packagist

logger = logging.getLogger(__name__)

DEFAULT_TYPE = "contao-bundle"


def parse_time(value: Any) -> Optional[datetime]:
    if not isinstance(value, str) or not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _is_later(a: Optional[datetime], b: Optional[datetime]) -> bool:
    if a is None:
        return False
    return b is None or a > b


def latest_version(versions: dict[str, dict]) -> Optional[str]:
    """Pick the most recent version.

    A dev version never beats a non-dev one. Otherwise the later release time
    wins; on a tie the version seen later wins.
    """
    latest = None

    for version in versions:
        if latest is None:
            latest = version
            continue

        latest_dev = is_dev_version(latest)
        current_dev = is_dev_version(version)

        if not latest_dev and current_dev:
            continue
        if latest_dev and not current_dev:
            latest = version
            continue

        if not _is_later(parse_time(versions[latest].get("time")), parse_time(versions[version].get("time"))):
            latest = version

    return latest


def is_supported(versions: dict[str, dict]) -> bool:
    """Whether any non-dev release is a Contao component or a Contao extension.

    A ``contao-bundle`` only counts when it ships a Contao Manager plugin,
    bundles without one cannot be installed through the Manager.
    """
    for version, manifest in versions.items():
        if is_dev_version(version):
            continue

        if manifest.get("type") == "contao-component":
            return True

        requires = manifest.get("require")
        if not isinstance(requires, dict) or not any(p in requires for p in CORE_REQUIREMENTS):
            continue

        extra = manifest.get("extra")
        has_plugin = isinstance(extra, dict) and extra.get("contao-manager-plugin") is not None

        if manifest.get("type") != DEFAULT_TYPE or has_plugin:
            return True

    return False


def _str(value: Any) -> Optional[str]:
    return value if isinstance(value, str) and value else None


def _str_list(value: Any) -> Optional[list[str]]:
    if isinstance(value, str):
        return [value]
    if isinstance(value, list):
        return [v for v in value if isinstance(v, str)]
    return None


def _dict(value: Any) -> Optional[dict]:
    return value if isinstance(value, dict) and value else None


def _suggest(value: Any) -> Optional[dict[str, str]]:
    if not isinstance(value, dict) or not value:
        return None
    return {str(k): str(v) for k, v in value.items()}


def _abandoned(value: Any) -> Union[bool, str]:
    if isinstance(value, str):
        return value or True
    return bool(value)


def _int(value: Any) -> int:
    try:
        return max(int(value), 0)
    except (TypeError, ValueError):
        return 0


class PackageFactory:
    """Create packages, memoized per factory instance.

    One factory serves one indexing run: a package name is fetched and
    assembled at most once.
    """

    def __init__(
        self,
        metadata: MetaDataRepository,
        packagist: Packagist,
        resolver: ContaoVersionResolver,
        languages: list[str],
    ):
        self.metadata = metadata
        self.packagist = packagist
        self.resolver = resolver
        self.languages = list(languages)
        self._cache: dict[str, Package] = {}

    def create(self, name: str) -> Package:
        """Assemble a package.

        Raises:
            RegistryError: If the registry could not be reached; the package
                must be skipped, not treated as private.
            BootstrapError: If the Contao release history is unavailable.
        """
        name = name.lower()
        if name in self._cache:
            return self._cache[name]

        package = Package(name=name)
        data = self.packagist.get_package_data(name)

        if data is None:
            self._set_data_for_private(package)
        else:
            self._set_data_from_registry(data, package)

        package.logo = self.metadata.get_logo_for_package(package)
        self._add_meta(package)

        if not package.supported:
            if package.meta:
                package.supported = True
            elif package.logo is not None:
                package.supported = True
                package.dependency = True

        self._cache[name] = package
        return package

    def _set_data_for_private(self, package: Package) -> None:
        package.supported = True
        package.private = True

        data = self.metadata.get_composer_json_for_package(package)
        if data is None:
            return

        package.type = _str(data.get("type")) or DEFAULT_TYPE
        package.description = _str(data.get("description"))
        package.keywords = _str_list(data.get("keywords"))
        package.homepage = _str(data.get("homepage"))
        package.support = _dict(data.get("support"))
        package.versions = [data["version"]] if _str(data.get("version")) else []
        package.license = _str_list(data.get("license"))
        package.released = _str(data.get("time"))
        package.updated = _str(data.get("time"))
        package.suggest = _suggest(data.get("suggest"))
        self._set_contao_versions(package, [data])

    def _set_data_from_registry(self, data: RegistryPackage, package: Package) -> None:
        summary_versions = data.summary.get("versions")
        if not isinstance(summary_versions, dict):
            summary_versions = {}

        # The feed holds the current release data, only the summary has full support blocks
        latest_key = latest_version(data.versions)
        latest = data.versions[latest_key] if latest_key else {}
        latest_summary_key = latest_version(summary_versions)
        latest_summary = summary_versions[latest_summary_key] if latest_summary_key else {}

        downloads = data.summary.get("downloads")

        package.type = _str(latest.get("type")) or DEFAULT_TYPE
        package.title = package.name
        package.description = _str(latest.get("description"))
        package.keywords = _str_list(latest.get("keywords"))
        package.homepage = _str(latest.get("homepage"))
        package.support = _dict(latest_summary.get("support"))
        package.versions = list(summary_versions) or list(data.versions)
        package.license = _str_list(latest.get("license"))
        package.downloads = _int(downloads.get("total") if isinstance(downloads, dict) else 0)
        package.favers = _int(data.summary.get("favers"))
        package.released = _str(data.summary.get("time"))
        package.updated = _str(latest.get("time"))
        package.supported = is_supported(summary_versions or data.versions)
        package.abandoned = _abandoned(data.summary.get("abandoned", False))
        package.suggest = _suggest(latest.get("suggest"))
        package.private = False
        self._set_contao_versions(package, list(data.versions.values()))

    def _set_contao_versions(self, package: Package, manifests: list[dict]) -> None:
        constraint = self.resolver.build_constraint(manifests)
        package.contao_constraint = constraint
        package.contao_versions = self.resolver.build_version_range(constraint)
        if constraint:
            logger.debug(f"{package.name} requires Contao {constraint}")

    def _add_meta(self, package: Package) -> None:
        meta = {}
        for language in self.languages:
            data = self.metadata.get_metadata_for_package(package, language)
            if data is not None:
                meta[language] = data
        package.meta = meta
