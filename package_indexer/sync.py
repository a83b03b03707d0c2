"""Synchronize assembled packages with the search index.

The live index is read once per run and every derived record is compared
against its stored counterpart, so only changed records are written and
a second run without data changes is a no-op.
"""

import hashlib
import json
import logging
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Iterable, Optional

from package_indexer.cache import CacheBatch, HashCache
from package_indexer.exceptions import SearchIndexError
from package_indexer.models import BASE_LANGUAGE, Package, package_name_from_object_id

logger = logging.getLogger(__name__)

BATCH_SIZE = 100
STATS_FIELDS = ("downloads", "favers")


def strip_stats(record: dict) -> dict:
    return {k: v for k, v in record.items() if k not in STATS_FIELDS}


def needs_update(record: dict, stored: Optional[dict], include_stats: bool = False) -> bool:
    """Whether a stored record differs from a freshly derived one.

    Missing keys on either side count as a difference. Statistics are only
    compared when ``include_stats`` is set.
    """
    if stored is None:
        return True
    if not include_stats:
        record, stored = strip_stats(record), strip_stats(stored)
    return record != stored


def cache_key(name: str, include_stats: bool = False) -> str:
    """Hash cache entry of a package; hashes with and without stats are kept apart."""
    return f"{name}:{'stats' if include_stats else 'content'}"


def package_hash(records: list[dict], include_stats: bool = False) -> str:
    if not include_stats:
        records = [strip_stats(r) for r in records]
    payload = json.dumps(records, sort_keys=True, separators=(",", ":"))
    return hashlib.sha1(payload.encode("utf-8")).hexdigest()


def chunks(items: list, size: int) -> Iterable[list]:
    for start in range(0, len(items), size):
        yield items[start : start + size]


@dataclass
class SyncPlan:
    """Index operations needed to publish a package set."""

    to_upsert: list[dict] = field(default_factory=list)
    to_delete: list[str] = field(default_factory=list)
    unchanged: int = 0
    cached: int = 0
    cache_batch: Optional[CacheBatch] = None

    def is_empty(self) -> bool:
        return not self.to_upsert and not self.to_delete


@dataclass
class SyncReport:
    """Outcome of applying a SyncPlan."""

    plan: SyncPlan
    dry_run: bool = False
    cleared: bool = False
    upserted: int = 0
    deleted: int = 0
    failed_batches: int = 0

    @property
    def ok(self) -> bool:
        return self.failed_batches == 0


class IndexSync:
    """Derive index records and reconcile them with the live index."""

    def __init__(
        self,
        index,
        languages: list[str],
        batch_size: int = BATCH_SIZE,
        cache: Optional[HashCache] = None,
    ):
        self.index = index
        self.languages = list(languages)
        self.batch_size = batch_size
        self.cache = cache

    def records_for(self, package: Package) -> list[dict]:
        """One record per language with an override, plus the base record.

        The base record also serves every locale that has no override of its own.
        """
        record_languages = package.languages()
        records = []

        for language in record_languages:
            if language == BASE_LANGUAGE:
                languages = [BASE_LANGUAGE] + [
                    code for code in self.languages if code not in record_languages
                ]
            else:
                languages = [language]
            records.append(package.to_index_record(languages))

        return records

    def snapshot(self) -> dict[str, dict]:
        """Stored records by objectID, without Algolia's internal ``_`` keys."""
        snapshot = {}
        for hit in self.index.browse():
            oid = hit.get("objectID")
            if oid:
                snapshot[oid] = {k: v for k, v in hit.items() if not k.startswith("_")}
        logger.info(f"Index snapshot holds {len(snapshot)} record(s)")
        return snapshot

    def plan(
        self,
        packages: Iterable[Package],
        include_stats: bool = False,
        full_clear: bool = False,
        prune: bool = True,
        protected: Iterable[str] = (),
    ) -> SyncPlan:
        """Compute upserts and deletes.

        Args:
            packages: Every package that should be in the index.
            include_stats: Compare download and faver counts too.
            full_clear: The index will be emptied, so everything is an upsert.
            prune: Delete records of packages missing from ``packages``. Only
                valid when ``packages`` is the complete universe.
            protected: Package names whose records must survive pruning, e.g.
                packages that failed to load in this run.

        Stored language records of an assembled package that it no longer
        produces are always deleted, pruning or not. A cache hit only counts
        when every record of the package is still in the index.
        """
        packages = sorted(packages, key=lambda p: p.name)
        snapshot = {} if full_clear else self.snapshot()
        plan = SyncPlan(cache_batch=self.cache.batch() if self.cache is not None else None)

        stored_ids: dict[str, list[str]] = defaultdict(list)
        for oid in snapshot:
            stored_ids[package_name_from_object_id(oid)].append(oid)

        for package in packages:
            records = self.records_for(package)
            fresh_ids = {record["objectID"] for record in records}

            # Language records the package no longer produces
            plan.to_delete.extend(oid for oid in stored_ids[package.name] if oid not in fresh_ids)

            if plan.cache_batch is not None:
                key = cache_key(package.name, include_stats)
                digest = package_hash(records, include_stats)
                if (
                    not full_clear
                    and self.cache.is_fresh(key, digest)
                    and fresh_ids.issubset(snapshot)
                ):
                    logger.debug(f"Cache hit for {package.name} ({digest})")
                    plan.cached += len(records)
                    continue
                plan.cache_batch.add(key, digest)

            for record in records:
                if full_clear or needs_update(record, snapshot.get(record["objectID"]), include_stats):
                    plan.to_upsert.append(record)
                else:
                    plan.unchanged += 1

        if prune and not full_clear:
            keep = {p.name for p in packages} | set(protected)
            pruned = {name for name in stored_ids if name not in keep}
            for name in sorted(pruned):
                plan.to_delete.extend(stored_ids[name])
                if plan.cache_batch is not None:
                    for include in (False, True):
                        plan.cache_batch.remove(cache_key(name, include))

        plan.to_delete.sort()
        return plan

    def apply(self, plan: SyncPlan, dry_run: bool = False, full_clear: bool = False) -> SyncReport:
        """Write a plan to the index.

        Failed batches are logged and counted; the remaining batches still run.

        Raises:
            SearchIndexError: If clearing the index fails.
        """
        report = SyncReport(plan=plan, dry_run=dry_run)

        if full_clear:
            if dry_run:
                logger.info("Dry run: index would be cleared")
            else:
                self.index.clear()
                report.cleared = True

        for batch in chunks(plan.to_upsert, self.batch_size):
            if dry_run:
                logger.debug(f"Objects to index: {json.dumps(batch)}")
                continue
            try:
                self.index.save_objects(batch)
                report.upserted += len(batch)
            except SearchIndexError as e:
                logger.error(f"Failed to index {len(batch)} object(s): {e}")
                report.failed_batches += 1

        if plan.to_delete:
            if dry_run:
                logger.debug(f"Objects to delete from index: {json.dumps(plan.to_delete)}")
            else:
                try:
                    self.index.delete_objects(plan.to_delete)
                    report.deleted = len(plan.to_delete)
                except SearchIndexError as e:
                    logger.error(f"Failed to delete {len(plan.to_delete)} object(s): {e}")
                    report.failed_batches += 1

        return report

    def reconcile(
        self,
        packages: Iterable[Package],
        include_stats: bool = False,
        full_clear: bool = False,
        prune: bool = True,
        dry_run: bool = False,
        protected: Iterable[str] = (),
    ) -> SyncReport:
        """Plan and apply; cache hashes are committed only after a clean, real run."""
        plan = self.plan(packages, include_stats, full_clear, prune, protected)
        report = self.apply(plan, dry_run=dry_run, full_clear=full_clear)

        if plan.cache_batch is not None:
            if report.ok and not dry_run:
                plan.cache_batch.flush()
            else:
                plan.cache_batch.discard()

        logger.info(
            f"{len(plan.to_upsert)} record(s) to upsert, {len(plan.to_delete)} to delete, "
            f"{plan.unchanged} unchanged, {plan.cached} cached"
        )
        return report
