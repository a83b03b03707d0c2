"""Tests for the package model and index record derivation."""

import pydantic
import pytest

from package_indexer.models import (
    Package,
    merge_recursive,
    object_id,
    package_name_from_object_id,
    strip_nulls,
)


def test_object_id_round_trip():
    assert object_id("contao/news-bundle", "de") == "contao/news-bundle/de"
    assert package_name_from_object_id("contao/news-bundle/de") == "contao/news-bundle"


def test_merge_recursive():
    base = {"support": {"issues": "a", "docs": "b"}, "keywords": ["x", "y"]}
    merged = merge_recursive(base, {"support": {"docs": "c"}, "keywords": ["z"]})
    assert merged == {"support": {"issues": "a", "docs": "c"}, "keywords": ["z"]}
    assert base["support"]["docs"] == "b"


def test_strip_nulls():
    assert strip_nulls({"a": None, "b": {"c": None, "d": 1}, "e": [None, 2]}) == {"b": {"d": 1}, "e": [2]}


class TestPackage:
    def test_name_is_lowercased(self):
        assert Package(name="Contao/News-Bundle").name == "contao/news-bundle"

    def test_name_is_frozen(self):
        package = Package(name="acme/foo")
        with pytest.raises(pydantic.ValidationError):
            package.name = "acme/bar"

    def test_versions_are_sorted_and_unique(self):
        package = Package(name="acme/foo", versions=["1.10.0", "dev-main", "1.2.0", "1.2.0"])
        assert package.versions == ["1.2.0", "1.10.0", "dev-main"]

        package.versions = ["2.0.0", "1.0.0"]
        assert package.versions == ["1.0.0", "2.0.0"]

    def test_metrics_cannot_be_negative(self):
        with pytest.raises(pydantic.ValidationError):
            Package(name="acme/foo", downloads=-1)

    def test_title_falls_back_to_name(self):
        assert Package(name="acme/foo").get_title() == "acme/foo"
        assert Package(name="acme/foo", title="Foo").get_title() == "Foo"

    def test_languages(self):
        package = Package(name="acme/foo", meta={"de": {}, "en": {}, "fr": {}})
        assert package.languages() == ["en", "de", "fr"]


class TestIndexRecord:
    def test_base_record(self):
        package = Package(
            name="acme/foo",
            description="Foo",
            downloads=10,
            contao_constraint=">=4.9 <5.0",
            contao_versions=["4.9+"],
        )
        record = package.to_index_record(["en", "de"])

        assert record == {
            "objectID": "acme/foo/en",
            "name": "acme/foo",
            "title": "acme/foo",
            "description": "Foo",
            "type": "contao-bundle",
            "downloads": 10,
            "favers": 0,
            "dependency": False,
            "discoverable": True,
            "abandoned": False,
            "private": False,
            "contaoConstraint": ">=4.9 <5.0",
            "contaoVersions": ["4.9+"],
            "languages": ["en", "de"],
        }

    def test_no_contao_versions_are_omitted(self):
        record = Package(name="acme/foo").to_index_record(["en"])
        assert "contaoVersions" not in record
        assert "contaoConstraint" not in record

    def test_language_override(self):
        package = Package(
            name="acme/foo",
            title="Foo",
            support={"issues": "https://example.com/issues"},
            meta={"de": {"title": "Foo (de)", "support": {"docs": "https://example.com/de"}}},
        )
        record = package.to_index_record(["de"])

        assert record["objectID"] == "acme/foo/de"
        assert record["title"] == "Foo (de)"
        assert record["support"] == {"issues": "https://example.com/issues", "docs": "https://example.com/de"}
        assert record["languages"] == ["de"]

    def test_dependency_override_hides_package(self):
        package = Package(name="acme/foo", meta={"en": {"dependency": True}})
        record = package.to_index_record(["en"])
        assert record["dependency"] is True
        assert record["discoverable"] is False

    def test_dependency_package(self):
        record = Package(name="acme/foo", dependency=True).to_index_record(["en"])
        assert record["discoverable"] is False

    def test_abandoned_replacement(self):
        record = Package(name="acme/foo", abandoned="acme/bar").to_index_record(["en"])
        assert record["abandoned"] == "acme/bar"
