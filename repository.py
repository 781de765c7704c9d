"""
YNAB cache repository with differential sync.

Keeps a persistent local mirror of payees and categories per budget, updated
from YNAB's delta endpoints using server knowledge.
"""

import logging
import threading
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from datetime import UTC, datetime
from typing import Protocol

import ynab

from cache import CacheStore
from models import (
    CachedCategory,
    CachedCategoryGroup,
    CachedPayee,
    CategoriesCache,
    CategorySyncResult,
    CategorySyncStats,
    PayeesCache,
    PayeeSyncResult,
    SyncStats,
)

logger = logging.getLogger(__name__)

PAYEES_CACHE_FILE = "payees.json"
CATEGORIES_CACHE_FILE = "categories.json"


class BudgetRemote(Protocol):
    """What the repository needs from YNAB.

    ``last_knowledge`` of None asks for the full collection; otherwise only
    records changed since that server knowledge are returned.
    """

    def list_payees(
        self, budget_id: str, last_knowledge: int | None
    ) -> tuple[list[ynab.Payee], int]: ...

    def list_category_groups(
        self, budget_id: str, last_knowledge: int | None
    ) -> tuple[list[ynab.CategoryGroupWithCategories], int]: ...

    def update_payee(self, budget_id: str, payee_id: str, name: str) -> ynab.Payee: ...


class _Cached(Protocol):
    id: str
    deleted: bool


def _full[T: _Cached](incoming: Iterable[T]) -> list[T]:
    """Records for a cache built from scratch: last copy of each id, no tombstones."""
    by_id = {record.id: record for record in incoming}
    return [record for record in by_id.values() if not record.deleted]


def _merge[T: _Cached](
    existing: list[T], incoming: Iterable[T], stats: SyncStats
) -> None:
    """Merge delta records into ``existing`` in place, counting changes.

    Records are matched by id and replaced whole. A record only counts as
    deleted on its transition from active to deleted; a record we have never
    seen counts as new even if it arrives already deleted.
    """
    index = {record.id: i for i, record in enumerate(existing)}

    for record in incoming:
        i = index.get(record.id)
        if i is None:
            index[record.id] = len(existing)
            existing.append(record)
            stats.new += 1
        elif record.deleted and not existing[i].deleted:
            existing[i] = record
            stats.deleted += 1
        else:
            existing[i] = record
            stats.updated += 1


class CacheRepository:
    """Local cache of YNAB payees and categories with differential sync.

    Syncs for the same budget are serialized; syncs for different budgets
    don't block each other.
    """

    def __init__(self, store: CacheStore, remote: BudgetRemote):
        self.store = store
        self.remote = remote

        self._locks: dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    @contextmanager
    def _budget_lock(self, budget_id: str) -> Iterator[None]:
        if not budget_id:
            raise ValueError("budget_id is required")

        with self._locks_guard:
            lock = self._locks.setdefault(budget_id, threading.Lock())
        with lock:
            yield

    def load_payees(self, budget_id: str) -> PayeesCache | None:
        """Get cached payees without contacting YNAB."""
        return self.store.load(budget_id, PAYEES_CACHE_FILE, PayeesCache)

    def load_categories(self, budget_id: str) -> CategoriesCache | None:
        """Get cached categories without contacting YNAB."""
        return self.store.load(budget_id, CATEGORIES_CACHE_FILE, CategoriesCache)

    def clear(self, budget_id: str) -> None:
        """Drop every cached file for a budget; the next sync is a full fetch."""
        with self._budget_lock(budget_id):
            self.store.clear(budget_id)

    def sync_payees(self, budget_id: str) -> PayeeSyncResult:
        """Sync payees with YNAB using differential sync."""
        with self._budget_lock(budget_id):
            existing = self.load_payees(budget_id)
            last_knowledge = existing.server_knowledge if existing else None

            payees, server_knowledge = self.remote.list_payees(
                budget_id, last_knowledge
            )
            incoming = [CachedPayee.from_ynab(payee) for payee in payees]

            stats = SyncStats()
            if existing is None:
                logger.info(f"No payees cache for {budget_id} - full sync")
                cached = _full(incoming)
                stats.new = len(cached)
            else:
                cached = list(existing.payees)
                _merge(cached, incoming, stats)

            cache = PayeesCache(
                server_knowledge=server_knowledge,
                last_synced=datetime.now(UTC),
                payees=cached,
            )
            self.store.save(budget_id, PAYEES_CACHE_FILE, cache)

            stats.total = len(cache.active_payees())
            logger.info(
                f"Synced payees for {budget_id}: {stats.new} new, "
                f"{stats.updated} updated, {stats.deleted} deleted, "
                f"{stats.total} active"
            )
            return PayeeSyncResult(cache=cache, stats=stats)

    def sync_categories(self, budget_id: str) -> CategorySyncResult:
        """Sync category groups and categories with YNAB using differential sync."""
        with self._budget_lock(budget_id):
            existing = self.load_categories(budget_id)
            last_knowledge = existing.server_knowledge if existing else None

            category_groups, server_knowledge = self.remote.list_category_groups(
                budget_id, last_knowledge
            )

            stats = CategorySyncStats()
            if existing is None:
                logger.info(f"No categories cache for {budget_id} - full sync")
                groups, categories = self._full_categories(category_groups)
                stats.groups.new = len(groups)
                stats.categories.new = len(categories)
            else:
                groups, categories = self._merge_categories(
                    existing, category_groups, stats
                )

            cache = CategoriesCache(
                server_knowledge=server_knowledge,
                last_synced=datetime.now(UTC),
                category_groups=groups,
                categories=categories,
            )
            self.store.save(budget_id, CATEGORIES_CACHE_FILE, cache)

            stats.groups.total = len(cache.active_groups())
            stats.categories.total = len(cache.active_categories())
            logger.info(
                f"Synced categories for {budget_id}: "
                f"{stats.categories.total} active categories in "
                f"{stats.groups.total} active groups"
            )
            return CategorySyncResult(cache=cache, stats=stats)

    def _full_categories(
        self, category_groups: list[ynab.CategoryGroupWithCategories]
    ) -> tuple[list[CachedCategoryGroup], list[CachedCategory]]:
        group_names = {group.id: group.name for group in category_groups}

        groups = _full(
            CachedCategoryGroup.from_ynab(group) for group in category_groups
        )
        categories = _full(
            CachedCategory.from_ynab(
                category,
                group_names.get(category.category_group_id, category_group.name),
            )
            for category_group in category_groups
            for category in category_group.categories
        )
        return groups, categories

    def _merge_categories(
        self,
        existing: CategoriesCache,
        category_groups: list[ynab.CategoryGroupWithCategories],
        stats: CategorySyncStats,
    ) -> tuple[list[CachedCategoryGroup], list[CachedCategory]]:
        groups = list(existing.category_groups)
        _merge(
            groups,
            (CachedCategoryGroup.from_ynab(group) for group in category_groups),
            stats.groups,
        )
        group_names = {group.id: group.name for group in groups}

        categories = list(existing.categories)
        _merge(
            categories,
            (
                CachedCategory.from_ynab(
                    category,
                    group_names.get(category.category_group_id, category_group.name),
                )
                for category_group in category_groups
                for category in category_group.categories
            ),
            stats.categories,
        )

        # Renamed groups often arrive without their unchanged categories
        touched_groups = {group.id for group in category_groups}
        for i, category in enumerate(categories):
            if category.category_group_id not in touched_groups:
                continue
            group_name = group_names[category.category_group_id]
            if category.category_group_name != group_name:
                categories[i] = category.model_copy(
                    update={"category_group_name": group_name}
                )

        return groups, categories
