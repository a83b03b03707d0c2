"""Tests for package assembly."""

import pytest

from package_indexer.contao import ContaoVersionResolver
from package_indexer.exceptions import BootstrapError, RegistryError
from package_indexer.factory import PackageFactory, is_supported, latest_version, parse_time
from package_indexer.sync import IndexSync

from conftest import LANGUAGES, FakeSearchIndex, StubPackagist, registry_package, write_file

SVG = b'<svg xmlns="http://www.w3.org/2000/svg"/>'

BUNDLE = {
    "type": "contao-bundle",
    "require": {"contao/core-bundle": "^4.9"},
    "extra": {"contao-manager-plugin": "Acme\\FooBundle\\ContaoManager\\Plugin"},
}


class TestLatestVersion:
    def test_later_release_wins(self):
        versions = {
            "1.0.0": {"time": "2020-01-01T00:00:00+00:00"},
            "1.1.0": {"time": "2021-01-01T00:00:00+00:00"},
            "1.0.1": {"time": "2020-06-01T00:00:00+00:00"},
        }
        assert latest_version(versions) == "1.1.0"

    def test_dev_never_beats_release(self):
        versions = {
            "dev-main": {"time": "2024-01-01T00:00:00+00:00"},
            "1.0.0": {"time": "2020-01-01T00:00:00+00:00"},
            "2.x-dev": {"time": "2024-02-01T00:00:00+00:00"},
        }
        assert latest_version(versions) == "1.0.0"

    def test_only_dev_versions(self):
        versions = {
            "dev-main": {"time": "2024-01-01T00:00:00+00:00"},
            "dev-feature": {"time": "2023-01-01T00:00:00+00:00"},
        }
        assert latest_version(versions) == "dev-main"

    def test_tie_goes_to_later_entry(self):
        versions = {"1.0.0": {"time": "2020-01-01T00:00:00Z"}, "1.0.1": {"time": "2020-01-01T00:00:00Z"}}
        assert latest_version(versions) == "1.0.1"

    def test_empty(self):
        assert latest_version({}) is None


def test_parse_time():
    assert parse_time("2020-01-01T00:00:00Z") == parse_time("2020-01-01T00:00:00+00:00")
    assert parse_time("2020-01-01T00:00:00").tzinfo is not None
    assert parse_time("yesterday") is None
    assert parse_time(None) is None


class TestIsSupported:
    def test_bundle_with_manager_plugin(self):
        assert is_supported({"1.0.0": BUNDLE})

    def test_bundle_without_plugin(self):
        manifest = {"type": "contao-bundle", "require": {"contao/core-bundle": "^4.9"}}
        assert not is_supported({"1.0.0": manifest})

    def test_module_requiring_core(self):
        manifest = {"type": "contao-module", "require": {"contao/core-bundle": "^4.9"}}
        assert is_supported({"1.0.0": manifest})

    def test_component(self):
        assert is_supported({"1.0.0": {"type": "contao-component"}})

    def test_dev_versions_are_ignored(self):
        assert not is_supported({"dev-main": BUNDLE})

    def test_library_without_contao(self):
        assert not is_supported({"1.0.0": {"type": "library", "require": {"php": "^8.1"}}})


@pytest.fixture
def public_package():
    return registry_package(
        "acme/foo",
        {
            "1.0.0": {**BUNDLE, "time": "2020-01-01T00:00:00+00:00", "description": "Old"},
            "1.1.0": {
                **BUNDLE,
                "time": "2021-01-01T00:00:00+00:00",
                "description": "Foo bundle",
                "keywords": ["foo", "contao"],
                "license": "LGPL-3.0-or-later",
                "suggest": {"acme/bar": "Adds bar"},
                "support": {"issues": "https://github.com/acme/foo/issues"},
            },
            "dev-main": {**BUNDLE, "time": "2022-01-01T00:00:00+00:00", "description": "Next"},
        },
        downloads={"total": 4321, "monthly": 10},
        favers=12,
        time="2019-12-01T00:00:00+00:00",
        abandoned="acme/bar",
    )


class TestPackageFactory:
    def test_public_package(self, factory, packagist, public_package):
        packagist.packages["acme/foo"] = public_package

        package = factory.create("Acme/Foo")

        assert package.name == "acme/foo"
        assert package.title == "acme/foo"
        assert package.description == "Foo bundle"
        assert package.keywords == ["foo", "contao"]
        assert package.license == ["LGPL-3.0-or-later"]
        assert package.support == {"issues": "https://github.com/acme/foo/issues"}
        assert package.suggest == {"acme/bar": "Adds bar"}
        assert package.downloads == 4321
        assert package.favers == 12
        assert package.released == "2019-12-01T00:00:00+00:00"
        assert package.updated == "2021-01-01T00:00:00+00:00"
        assert package.abandoned == "acme/bar"
        assert package.versions == ["1.0.0", "1.1.0", "dev-main"]
        assert package.supported
        assert not package.private
        assert not package.dependency
        assert package.contao_constraint == ">=4.9 <5.0"
        assert package.contao_versions == ["4.9+"]

    def test_create_is_memoized(self, factory, packagist, public_package):
        packagist.packages["acme/foo"] = public_package

        assert factory.create("acme/foo") is factory.create("ACME/FOO")
        assert packagist.data_calls == ["acme/foo"]

    def test_unsupported_package(self, factory, packagist):
        packagist.packages["acme/lib"] = registry_package(
            "acme/lib", {"1.0.0": {"type": "library", "require": {"php": "^8.1"}}}
        )
        assert not factory.create("acme/lib").supported

    def test_logo_marks_unsupported_package_as_dependency(self, factory, packagist, meta_dir):
        packagist.packages["acme/lib"] = registry_package(
            "acme/lib", {"1.0.0": {"type": "library", "require": {"php": "^8.1"}}}
        )
        write_file(meta_dir / "acme" / "lib" / "logo.svg", SVG)

        package = factory.create("acme/lib")

        assert package.supported
        assert package.dependency
        assert not package.discoverable
        assert package.logo.startswith("data:image/svg+xml;base64,")

    def test_metadata_makes_package_supported(self, factory, packagist, meta_dir):
        packagist.packages["acme/lib"] = registry_package("acme/lib", {"1.0.0": {"type": "library"}})
        write_file(meta_dir / "acme" / "lib" / "de.yml", "de:\n  title: Bibliothek\n")

        package = factory.create("acme/lib")

        assert package.supported
        assert not package.dependency
        assert package.meta["de"]["title"] == "Bibliothek"

    def test_transport_error_propagates(self, factory, packagist, transport_error):
        packagist.packages["acme/foo"] = transport_error

        with pytest.raises(RegistryError):
            factory.create("acme/foo")

    def test_unavailable_core_history(self, metadata, public_package):
        packagist = StubPackagist({"acme/foo": public_package}, core_versions=RegistryError("x", "y", 503))
        factory = PackageFactory(metadata, packagist, ContaoVersionResolver(packagist), LANGUAGES)
        with pytest.raises(BootstrapError):
            factory.create("acme/foo")


class TestPrivatePackage:
    def test_private_package_from_composer_json(self, factory, meta_dir):
        write_file(
            meta_dir / "acme" / "foo" / "composer.json",
            '{"name": "acme/foo", "description": "X", "version": "1.0.0",'
            ' "require": {"contao/core-bundle": "^4.9"}}',
        )

        package = factory.create("acme/foo")

        assert package.private
        assert package.supported
        assert package.description == "X"
        assert package.versions == ["1.0.0"]
        assert package.contao_versions == ["4.9+"]

    def test_private_package_without_manifest(self, factory):
        package = factory.create("acme/secret")
        assert package.private
        assert package.supported
        assert package.contao_versions == []

    def test_end_to_end_record(self, meta_dir, metadata, resolver, packagist):
        write_file(
            meta_dir / "acme" / "foo" / "composer.json",
            '{"name": "acme/foo", "description": "X", "require": {"contao/core-bundle": "^4.9"}}',
        )
        factory = PackageFactory(metadata, packagist, resolver, ["en", "de", "fr"])
        sync = IndexSync(FakeSearchIndex(), ["en", "de", "fr"])

        records = sync.records_for(factory.create("acme/foo"))

        assert len(records) == 1
        record = records[0]
        assert record["objectID"] == "acme/foo/en"
        assert record["private"] is True
        assert record["description"] == "X"
        assert record["contaoVersions"] == ["4.9+"]
        assert record["languages"] == ["en", "de", "fr"]
