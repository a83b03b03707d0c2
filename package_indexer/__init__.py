"""Index Contao extension packages from Packagist and the curated metadata repository."""

from package_indexer.models import Package

__version__ = "1.0.0"

__all__ = ["Package", "__version__"]
