"""Contao compatibility of packages.

The compatibility of a package is derived from what its stable releases
require of ``contao/core-bundle``. The merged constraint is then matched
against the release history of the core bundle to produce human readable
ranges such as ``4.9 - 4.13`` or ``5.3+``.
"""

import logging
from collections import defaultdict
from typing import Iterable, Optional

from package_indexer.constraints import (
    STABLE,
    format_minor_constraint,
    is_dev_version,
    minor_interval,
    parse_constraint,
    parse_version,
    union_all,
)
from package_indexer.exceptions import BootstrapError, ConstraintError, RegistryError
from package_indexer.sources.packagist import Packagist

logger = logging.getLogger(__name__)

CORE_PACKAGE = "contao/core-bundle"
# Checked in order, the manager bundle shares the version numbers of the core
CORE_REQUIREMENTS = (CORE_PACKAGE, "contao/manager-bundle")


def core_requirement(manifest: dict) -> Optional[str]:
    requires = manifest.get("require")
    if not isinstance(requires, dict):
        return None
    for package in CORE_REQUIREMENTS:
        if isinstance(requires.get(package), str):
            return requires[package]
    return None


class ContaoVersionResolver:
    """Resolve Contao constraints and version ranges.

    The core bundle history is fetched on first use and kept for the lifetime
    of the resolver.
    """

    def __init__(self, packagist: Packagist, core_package: str = CORE_PACKAGE):
        self.packagist = packagist
        self.core_package = core_package
        self._core_minors: Optional[dict[int, list[int]]] = None

    def build_constraint(self, manifests: Iterable[dict]) -> Optional[str]:
        """Union of the core requirements of all stable manifests.

        Args:
            manifests: Version manifests; dev versions are skipped.

        Returns:
            Compact constraint at minor granularity, or None if no stable
            version requires Contao.
        """
        constraints = []

        for manifest in manifests:
            version = str(manifest.get("version") or "")
            if is_dev_version(version):
                continue

            requirement = core_requirement(manifest)
            if requirement is None:
                continue

            if requirement.strip() == "self.version":
                if not version:
                    continue
                requirement = version

            try:
                constraints.append(parse_constraint(requirement))
            except ConstraintError as e:
                logger.debug(f"Skipping constraint of version {version or '?'}: {e}")

        if not constraints:
            return None

        return format_minor_constraint(union_all(constraints))

    def core_minors(self) -> dict[int, list[int]]:
        """Released minor versions of the core package, grouped by major.

        Raises:
            BootstrapError: If the core package history cannot be fetched.
        """
        if self._core_minors is None:
            try:
                versions = self.packagist.get_versions(self.core_package)
            except RegistryError as e:
                raise BootstrapError(f"Unable to load versions of {self.core_package}: {e}") from e

            minors: dict[int, set[int]] = defaultdict(set)
            for version in versions:
                if is_dev_version(version):
                    continue
                try:
                    parsed = parse_version(version)
                except ConstraintError:
                    continue
                if parsed.stability >= STABLE:
                    minors[parsed.major].add(parsed.minor)

            if not minors:
                raise BootstrapError(f"No releases found for {self.core_package}")

            self._core_minors = {major: sorted(values) for major, values in minors.items()}

        return self._core_minors

    def build_version_range(self, constraint: Optional[str]) -> list[str]:
        """Human readable Contao ranges matching a constraint.

        Within each major version, consecutive known minors that match form a
        run. A run renders as ``4.9``, ``4.9 - 4.13``, or ``5.3+`` when it ends
        at the newest known release and the constraint also allows the next
        minor.
        """
        if not constraint:
            return []

        try:
            allowed = parse_constraint(constraint)
        except ConstraintError as e:
            logger.debug(f"Cannot build version range for {constraint!r}: {e}")
            return []

        minors = self.core_minors()
        newest_major = max(minors)
        ranges = []

        for major in sorted(minors):
            known = minors[major]
            run: list[int] = []

            for minor in known:
                if allowed.intersects(minor_interval(major, minor)):
                    run.append(minor)
                elif run:
                    ranges.append(self._format_run(major, run, False))
                    run = []

            if run:
                is_open = (
                    major == newest_major
                    and run[-1] == known[-1]
                    and allowed.intersects(minor_interval(major, run[-1] + 1))
                )
                ranges.append(self._format_run(major, run, is_open))

        return ranges

    @staticmethod
    def _format_run(major: int, run: list[int], is_open: bool) -> str:
        if is_open:
            return f"{major}.{run[0]}+"
        if len(run) == 1:
            return f"{major}.{run[0]}"
        return f"{major}.{run[0]} - {major}.{run[-1]}"
