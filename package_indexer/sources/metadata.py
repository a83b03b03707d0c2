"""Curated package metadata read from a local checkout of the metadata repository.

Layout::

    {root}/{vendor}/logo.svg
    {root}/{vendor}/{project}/logo.svg
    {root}/{vendor}/{project}/composer.json
    {root}/{vendor}/{project}/{language}.yml
"""

import base64
import json
import logging
from pathlib import Path
from typing import Optional

import yaml

from package_indexer.models import METADATA_KEYS, Package

logger = logging.getLogger(__name__)

# Logos above this size are linked instead of inlined
MAX_INLINE_LOGO_SIZE = 5 * 1024


class MetaDataRepository:
    """Read logos, private composer manifests and localized overrides."""

    LOGO_URL = "https://contao.github.io/package-metadata/meta/{path}"
    METADATA_URL = "https://github.com/contao/package-metadata/blob/master/meta/{name}/{language}.yml"

    def __init__(self, root: Path):
        self.root = Path(root)
        self._names: Optional[set[str]] = None

    def get_package_names(self) -> set[str]:
        """All ``vendor/project`` directories in the repository."""
        if self._names is None:
            self._names = set()
            if self.root.is_dir():
                for vendor in self.root.iterdir():
                    if not vendor.is_dir() or vendor.name.startswith("."):
                        continue
                    for project in vendor.iterdir():
                        if project.is_dir() and not project.name.startswith("."):
                            self._names.add(f"{vendor.name}/{project.name}")
        return self._names

    def get_logo_for_package(self, package: Package) -> Optional[str]:
        """Package logo, falling back to the vendor logo.

        Returns:
            A hosted URL for large files, an inline data URI for small ones,
            or None if there is no logo.
        """
        vendor, project = package.name.split("/", 1)
        image = f"{vendor}/{project}/logo.svg"

        if not (self.root / image).is_file():
            image = f"{vendor}/logo.svg"
            if not (self.root / image).is_file():
                return None

        path = self.root / image
        if path.stat().st_size > MAX_INLINE_LOGO_SIZE:
            return self.LOGO_URL.format(path=image)

        encoded = base64.b64encode(path.read_bytes()).decode("ascii")
        return f"data:image/svg+xml;base64,{encoded}"

    def get_composer_json_for_package(self, package: Package) -> Optional[dict]:
        path = self.root / package.name / "composer.json"
        if not path.is_file():
            return None

        try:
            with open(path, encoding="utf-8") as f:
                data = json.load(f)
        except (json.JSONDecodeError, OSError, UnicodeDecodeError) as e:
            logger.debug(f"Ignoring invalid {path}: {e}")
            return None

        return data if isinstance(data, dict) else None

    def get_metadata_for_package(self, package: Package, language: str) -> Optional[dict]:
        """Localized override record for one language.

        The file must have the language as its only top-level key. Unknown
        keys are dropped and a ``metadata`` link to the source file is added.

        Returns:
            Filtered record, or None if the file is missing or invalid.
        """
        path = self.root / package.name / f"{language}.yml"
        if not path.is_file():
            return None

        try:
            with open(path, encoding="utf-8") as f:
                content = yaml.safe_load(f)
        except (yaml.YAMLError, OSError, UnicodeDecodeError) as e:
            logger.debug(f"Ignoring invalid {path}: {e}")
            return None

        if not isinstance(content, dict) or not isinstance(content.get(language), dict):
            logger.debug(f"Ignoring {path}: top-level key is not {language!r}")
            return None

        data = {k: v for k, v in content[language].items() if k in METADATA_KEYS}
        data["metadata"] = self.METADATA_URL.format(name=package.name, language=language)
        return data
