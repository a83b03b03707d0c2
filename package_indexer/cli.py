#!/usr/bin/env python3
"""Index Contao package metadata into the search index.

Usage:
    package-indexer                          # Index all packages
    package-indexer contao/news-bundle       # Only index given packages
    package-indexer --dry-run -vv            # Show what would change
    package-indexer --clear-index            # Full re-index
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import Optional

from tabulate import tabulate

from package_indexer.algolia import SearchIndex
from package_indexer.cache import HashCache
from package_indexer.config import IndexerConfig
from package_indexer.contao import ContaoVersionResolver
from package_indexer.exceptions import BootstrapError, ConfigError, RegistryError, SearchIndexError
from package_indexer.factory import PackageFactory
from package_indexer.models import Package
from package_indexer.sources import LocaleSource, MetaDataRepository, Packagist, get_session
from package_indexer.sync import IndexSync, SyncReport

logger = logging.getLogger("package_indexer")


def configure_logging(verbosity: int) -> None:
    level = {0: logging.WARNING, 1: logging.INFO}.get(verbosity, logging.DEBUG)
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)-8s %(name)s: %(message)s",
        stream=sys.stderr,
    )


def collect_package_names(
    packagist: Packagist, metadata: MetaDataRepository, package_types
) -> tuple[list[str], bool]:
    """The package universe: registry listings plus curated-only packages.

    Returns:
        Sorted names and whether every registry listing could be read.
    """
    names: set[str] = set()
    complete = True

    for package_type in package_types:
        try:
            found = packagist.get_package_names(package_type)
        except RegistryError as e:
            logger.error(f'Error fetching package names of type "{package_type}": {e}')
            complete = False
            continue
        logger.info(f"Found {len(found)} packages of type {package_type}")
        names |= found

    additional = metadata.get_package_names() - names
    if additional:
        logger.info(f"Found {len(additional)} additional packages in the metadata repository")
    names |= additional

    return sorted(names), complete


def collect_packages(factory: PackageFactory, names: list[str]) -> tuple[list[Package], set[str]]:
    """Assemble all supported packages.

    Returns:
        Supported packages and the names that failed to load.
    """
    packages: dict[str, Package] = {}
    failed: set[str] = set()

    for i, name in enumerate(names, 1):
        if i % 100 == 0:
            logger.info(f"Progress: {i}/{len(names)} packages...")

        try:
            package = factory.create(name)
        except RegistryError as e:
            logger.warning(f"Skipping {name}: {e}")
            failed.add(name.lower())
            continue

        if not package.supported:
            logger.debug(f"{name} is not supported.")
            continue

        packages[package.name] = package
        logger.debug(f"Added {name}")

    return list(packages.values()), failed


def print_summary(packages: list[Package], failed: set[str], report: SyncReport) -> None:
    plan = report.plan
    rows = [
        ["Packages", len(packages)],
        ["Skipped (fetch errors)", len(failed)],
        ["Records to upsert", len(plan.to_upsert)],
        ["Records to delete", len(plan.to_delete)],
        ["Unchanged records", plan.unchanged],
        ["Cached records", plan.cached],
        ["Failed batches", report.failed_batches],
    ]
    title = "DRY RUN" if report.dry_run else "SUMMARY"
    print(f"\n{'=' * 40}\n{title}\n{'=' * 40}")
    print(tabulate(rows, headers=["", "Count"], tablefmt="grid"))


def run(args: argparse.Namespace, config: IndexerConfig) -> int:
    session = get_session()

    languages = LocaleSource(session, config.locales_url).fetch()
    packagist = Packagist(session)
    metadata = MetaDataRepository(config.metadata_dir)
    resolver = ContaoVersionResolver(packagist)
    factory = PackageFactory(metadata, packagist, resolver, languages)

    index = SearchIndex(*config.require_algolia(), session=session)
    cache = None if args.no_cache else HashCache(config.cache_file)
    sync = IndexSync(index, languages, cache=cache)

    if args.packages:
        names = sorted({name.lower() for name in args.packages})
        complete = False
    else:
        names, complete = collect_package_names(packagist, metadata, config.package_types)
        if not complete:
            logger.warning("Package listing incomplete, removed packages will not be deleted")

    packages, failed = collect_packages(factory, names)

    report = sync.reconcile(
        packages,
        include_stats=args.with_stats,
        full_clear=args.clear_index,
        prune=complete,
        dry_run=args.dry_run,
        protected=failed,
    )

    print_summary(packages, failed, report)
    return 0 if report.ok else 1


def main(argv: Optional[list[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        description="Index Contao package metadata",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Environment:
    ALGOLIA_APP_ID, ALGOLIA_API_KEY, ALGOLIA_INDEX   Search index credentials
    PACKAGE_METADATA_DIR                             Metadata checkout (default: ./meta)
        """,
    )
    parser.add_argument(
        "packages",
        nargs="*",
        metavar="PACKAGE",
        help="Restrict indexing to the given package names",
    )
    parser.add_argument(
        "--with-stats",
        action="store_true",
        help="Also update statistics (should run less often, generates more API calls)",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Do not index any data. Very useful together with -vv",
    )
    parser.add_argument(
        "--no-cache",
        action="store_true",
        help="Do not consider the local hash cache",
    )
    parser.add_argument(
        "--clear-index",
        action="store_true",
        help="Clear the search index completely (full re-index)",
    )
    parser.add_argument(
        "--metadata-dir",
        type=Path,
        default=None,
        help="Checkout of the metadata repository (overrides PACKAGE_METADATA_DIR)",
    )
    parser.add_argument(
        "--cache-file",
        type=Path,
        default=None,
        help="Package hash cache file (overrides PACKAGE_INDEXER_CACHE_FILE)",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="count",
        default=0,
        help="Increase verbosity (-v info, -vv debug)",
    )

    args = parser.parse_args(argv)
    configure_logging(args.verbose)

    config = IndexerConfig.from_env()
    if args.metadata_dir is not None:
        config.metadata_dir = args.metadata_dir
    if args.cache_file is not None:
        config.cache_file = args.cache_file

    try:
        config.require_algolia()
    except ConfigError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2

    try:
        return run(args, config)
    except (BootstrapError, SearchIndexError) as e:
        logger.error(f"Indexing aborted: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
