"""Runtime configuration read from the environment."""

import os
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field

from package_indexer.exceptions import ConfigError
from package_indexer.sources.locales import LOCALES_URL

# Package types whose packages make up the index universe
PACKAGE_TYPES = ("contao-bundle", "contao-module", "contao-component")


class IndexerConfig(BaseModel):
    """Settings of one indexing run."""

    algolia_app_id: Optional[str] = Field(default=None, description="Algolia application ID")
    algolia_api_key: Optional[str] = Field(default=None, description="Algolia admin API key")
    algolia_index: Optional[str] = Field(default=None, description="Name of the search index")
    metadata_dir: Path = Field(default=Path("meta"), description="Checkout of the metadata repository")
    locales_url: str = Field(default=LOCALES_URL, description="Contao Manager locale manifest")
    cache_file: Path = Field(
        default=Path("var") / "package-hashes.json", description="Package hash cache"
    )
    package_types: tuple[str, ...] = PACKAGE_TYPES

    @classmethod
    def from_env(cls, environ: Optional[dict] = None) -> "IndexerConfig":
        environ = os.environ if environ is None else environ
        values = {
            "algolia_app_id": environ.get("ALGOLIA_APP_ID"),
            "algolia_api_key": environ.get("ALGOLIA_API_KEY"),
            "algolia_index": environ.get("ALGOLIA_INDEX"),
            "metadata_dir": environ.get("PACKAGE_METADATA_DIR"),
            "locales_url": environ.get("PACKAGE_INDEXER_LOCALES_URL"),
            "cache_file": environ.get("PACKAGE_INDEXER_CACHE_FILE"),
        }
        return cls(**{k: v for k, v in values.items() if v})

    def require_algolia(self) -> tuple[str, str, str]:
        """Algolia credentials, raising ConfigError if any is missing."""
        missing = [
            name
            for name, value in (
                ("ALGOLIA_APP_ID", self.algolia_app_id),
                ("ALGOLIA_API_KEY", self.algolia_api_key),
                ("ALGOLIA_INDEX", self.algolia_index),
            )
            if not value
        ]
        if missing:
            raise ConfigError(f"Missing environment variable(s): {', '.join(missing)}")
        return self.algolia_app_id, self.algolia_api_key, self.algolia_index
