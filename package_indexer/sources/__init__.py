"""Sources of package metadata."""

from package_indexer.sources.base import HttpSource, get_session
from package_indexer.sources.locales import LocaleSource
from package_indexer.sources.metadata import MetaDataRepository
from package_indexer.sources.packagist import Packagist

__all__ = [
    "HttpSource",
    "LocaleSource",
    "MetaDataRepository",
    "Packagist",
    "get_session",
]
