"""Locale list of the Contao Manager, the language set of the search index."""

import logging
import re
from typing import Optional

import requests

from package_indexer.exceptions import BootstrapError, RegistryError
from package_indexer.models import BASE_LANGUAGE
from package_indexer.sources.base import HttpSource

logger = logging.getLogger(__name__)

LOCALES_URL = "https://raw.githubusercontent.com/contao/contao-manager/main/src/i18n/locales.js"

# Indented keys of the exported object, e.g. "    de: 'Deutsch',"
LOCALE_RE = re.compile(r"^\s+([a-z]{2}(?:_[A-Z]{2})?)\s*:", re.MULTILINE)


def parse_locales(content: str) -> list[str]:
    """Extract locale codes, base language first, duplicates removed."""
    locales = [BASE_LANGUAGE]
    for code in LOCALE_RE.findall(content):
        if code not in locales:
            locales.append(code)
    return locales


class LocaleSource(HttpSource):
    def __init__(self, session: Optional[requests.Session] = None, url: str = LOCALES_URL):
        super().__init__(session)
        self.url = url

    def fetch(self) -> list[str]:
        """Fetch the locale list.

        Raises:
            BootstrapError: If the manifest cannot be fetched or lists no locales.
        """
        try:
            content = self.get_text(self.url)
        except RegistryError as e:
            raise BootstrapError(f"Unable to load locale list: {e}") from e

        locales = parse_locales(content)
        if len(locales) < 2:
            raise BootstrapError(f"No locales found in {self.url}")

        logger.info(f"Loaded {len(locales)} locales: {', '.join(locales)}")
        return locales
