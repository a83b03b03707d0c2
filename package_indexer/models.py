"""Data models for package indexing."""

from typing import Any, Optional, Union

from pydantic import BaseModel, Field, field_validator

from package_indexer.constraints import version_sort_key

BASE_LANGUAGE = "en"

# Keys a curated metadata file may override
METADATA_KEYS = ("title", "description", "keywords", "homepage", "support", "suggest", "dependency")


def object_id(name: str, language: str) -> str:
    """Search index identity of one package/language record."""
    return f"{name}/{language}"


def package_name_from_object_id(value: str) -> str:
    return value.rsplit("/", 1)[0]


def merge_recursive(base: dict, override: dict) -> dict:
    """Merge override into base; nested mappings merge, anything else is replaced."""
    merged = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = merge_recursive(merged[key], value)
        else:
            merged[key] = value
    return merged


def strip_nulls(value: Any) -> Any:
    """Drop None values from mappings, recursively."""
    if isinstance(value, dict):
        return {k: strip_nulls(v) for k, v in value.items() if v is not None}
    if isinstance(value, list):
        return [strip_nulls(v) for v in value if v is not None]
    return value


class RegistryPackage(BaseModel):
    """Raw registry data of one public package."""

    name: str = Field(description="Lowercase package name")
    summary: dict = Field(description="Package summary (downloads, favers, abandoned, versions)")
    versions: dict[str, dict] = Field(
        description="Expanded version feed, version string -> manifest"
    )


class Package(BaseModel):
    """Canonical representation of one Contao extension package."""

    name: str = Field(frozen=True, description="Normalized lowercase vendor/project name")
    type: str = Field(default="contao-bundle", description="Composer package type")

    title: Optional[str] = Field(default=None, description="Display title, falls back to name")
    description: Optional[str] = None
    keywords: Optional[list[str]] = None
    homepage: Optional[str] = None
    support: Optional[dict] = Field(default=None, description="Support links (issues, docs, ...)")
    license: Optional[list[str]] = None
    logo: Optional[str] = Field(default=None, description="Logo URL or inline data URI")
    suggest: Optional[dict[str, str]] = None

    # Popularity metrics
    downloads: int = Field(default=0, ge=0)
    favers: int = Field(default=0, ge=0)
    released: Optional[str] = None
    updated: Optional[str] = None

    supported: bool = False
    dependency: bool = False
    private: bool = False
    abandoned: Union[bool, str] = Field(
        default=False, description="False, True or the name of the replacement package"
    )

    versions: list[str] = Field(default_factory=list, description="Known versions, ascending")
    contao_constraint: Optional[str] = Field(
        default=None, description="Merged contao/core-bundle constraint, minor granularity"
    )
    contao_versions: list[str] = Field(
        default_factory=list, description="Matching Contao ranges, e.g. '4.9 - 4.13'"
    )

    meta: dict[str, dict] = Field(
        default_factory=dict, description="Language code -> curated override record"
    )

    model_config = {"validate_assignment": True}

    @field_validator("name")
    @classmethod
    def _lowercase_name(cls, value: str) -> str:
        return value.lower()

    @field_validator("versions")
    @classmethod
    def _sort_versions(cls, value: list[str]) -> list[str]:
        return sorted(set(value), key=version_sort_key)

    @property
    def discoverable(self) -> bool:
        return not self.dependency

    def get_title(self) -> str:
        return self.title or self.name

    def get_meta_for_language(self, language: str) -> dict:
        return dict(self.meta.get(language) or {})

    def languages(self) -> list[str]:
        """Languages that get their own record: the base language plus every override."""
        return [BASE_LANGUAGE] + [k for k in self.meta if k != BASE_LANGUAGE]

    def to_index_record(self, languages: list[str]) -> dict:
        """Build the search index record for the first of ``languages``.

        Args:
            languages: Record language first, followed by any further locales
                this record serves.

        Returns:
            JSON-ready dict without None values.
        """
        language = languages[0]
        data = {
            "objectID": object_id(self.name, language),
            "name": self.name,
            "title": self.get_title(),
            "description": self.description,
            "keywords": self.keywords,
            "homepage": self.homepage,
            "support": self.support,
            "license": self.license,
            "type": self.type,
            "downloads": self.downloads,
            "favers": self.favers,
            "released": self.released,
            "updated": self.updated,
            "dependency": self.dependency,
            "discoverable": self.discoverable,
            "abandoned": self.abandoned,
            "private": self.private,
            "suggest": self.suggest,
            "logo": self.logo,
            "contaoConstraint": self.contao_constraint,
            "contaoVersions": list(self.contao_versions) or None,
            "languages": list(languages),
        }

        data = merge_recursive(data, self.get_meta_for_language(language))
        data["discoverable"] = bool(data.get("discoverable", True)) and not data.get("dependency")

        return strip_nulls(data)
