"""
Pydantic models for the YNAB delta-sync cache.

Cache records are persisted as JSON exactly as these models dump them. Amounts
stay in YNAB milliunits inside the cache and are only converted to currency
units when building tool responses.
"""

from __future__ import annotations

import datetime
from decimal import Decimal
from typing import Literal

import ynab
from pydantic import BaseModel, Field


def milliunits_to_currency(milliunits: int, decimal_digits: int = 2) -> Decimal:
    """Convert YNAB milliunits to currency amount.

    YNAB uses milliunits where 1000 milliunits = 1 currency unit.
    """
    return Decimal(milliunits) / Decimal("1000")


class PaginationInfo(BaseModel):
    """Pagination metadata for listing endpoints."""

    total_count: int = Field(..., description="Total number of items available")
    limit: int = Field(..., description="Maximum items per page")
    offset: int = Field(..., description="Number of items skipped")
    has_more: bool = Field(..., description="Whether more items are available")


class CachedPayee(BaseModel):
    """A payee as stored in the local cache."""

    id: str = Field(..., description="Unique payee identifier")
    name: str = Field(..., description="Payee name")
    deleted: bool = Field(False, description="Whether the payee has been deleted")
    transfer_account_id: str | None = Field(
        None, description="Account ID if this is a transfer payee"
    )

    @classmethod
    def from_ynab(cls, payee: ynab.Payee) -> CachedPayee:
        return cls(
            id=payee.id,
            name=payee.name,
            deleted=payee.deleted,
            transfer_account_id=payee.transfer_account_id or None,
        )


class CachedCategoryGroup(BaseModel):
    """A category group as stored in the local cache."""

    id: str = Field(..., description="Unique category group identifier")
    name: str = Field(..., description="Category group name")
    hidden: bool = Field(False, description="Whether hidden from budget view")
    deleted: bool = Field(False, description="Whether the group has been deleted")

    @classmethod
    def from_ynab(
        cls, category_group: ynab.CategoryGroupWithCategories
    ) -> CachedCategoryGroup:
        return cls(
            id=category_group.id,
            name=category_group.name,
            hidden=category_group.hidden,
            deleted=category_group.deleted,
        )


class CachedCategory(BaseModel):
    """A category as stored in the local cache.

    ``category_group_name`` is copied from the owning group at merge time so
    searches can match on it without a join.
    """

    id: str = Field(..., description="Unique category identifier")
    name: str = Field(..., description="Category name")
    category_group_id: str = Field(..., description="Category group ID")
    category_group_name: str = Field(..., description="Category group name")
    hidden: bool = Field(False, description="Whether hidden from budget view")
    deleted: bool = Field(False, description="Whether the category has been deleted")
    note: str | None = Field(None, description="Category notes")
    budgeted: int = Field(0, description="Amount budgeted in milliunits")
    activity: int = Field(0, description="Spending activity in milliunits")
    balance: int = Field(0, description="Available balance in milliunits")
    goal_type: str | None = Field(None, description="Goal type")
    goal_percentage_complete: int | None = Field(
        None, description="Goal percentage complete"
    )

    @classmethod
    def from_ynab(
        cls, category: ynab.Category, category_group_name: str
    ) -> CachedCategory:
        return cls(
            id=category.id,
            name=category.name,
            category_group_id=category.category_group_id,
            category_group_name=category_group_name,
            hidden=category.hidden,
            deleted=category.deleted,
            note=category.note or None,
            budgeted=category.budgeted,
            activity=category.activity,
            balance=category.balance,
            goal_type=category.goal_type or None,
            goal_percentage_complete=category.goal_percentage_complete,
        )


class PayeesCache(BaseModel):
    """Cached payees for one budget, with the server knowledge they reflect."""

    server_knowledge: int
    last_synced: datetime.datetime
    payees: list[CachedPayee] = Field(default_factory=list)

    def active_payees(self) -> list[CachedPayee]:
        """Payees that have not been deleted."""
        return [payee for payee in self.payees if not payee.deleted]

    def find_by_id(self, payee_id: str) -> CachedPayee | None:
        """Look up a payee by ID, including deleted ones."""
        return next((p for p in self.payees if p.id == payee_id), None)

    def search(self, query: str) -> list[CachedPayee]:
        """Case-insensitive substring search over active payee names."""
        search_term = query.lower()
        return [
            payee
            for payee in self.active_payees()
            if search_term in payee.name.lower()
        ]


class CategoryGroupView(BaseModel):
    """An active category group together with its active categories."""

    group: CachedCategoryGroup
    categories: list[CachedCategory]


class CategoriesCache(BaseModel):
    """Cached category groups and categories for one budget.

    Both lists share a single server knowledge value since YNAB returns them
    from the same endpoint.
    """

    server_knowledge: int
    last_synced: datetime.datetime
    category_groups: list[CachedCategoryGroup] = Field(default_factory=list)
    categories: list[CachedCategory] = Field(default_factory=list)

    def active_groups(self) -> list[CachedCategoryGroup]:
        return [g for g in self.category_groups if not g.deleted and not g.hidden]

    def active_categories(self) -> list[CachedCategory]:
        return [c for c in self.categories if not c.deleted and not c.hidden]

    def find_by_id(self, category_id: str) -> CachedCategory | None:
        """Look up a category by ID, including deleted and hidden ones."""
        return next((c for c in self.categories if c.id == category_id), None)

    def search(self, query: str) -> list[CachedCategory]:
        """Case-insensitive substring search over category and group names."""
        search_term = query.lower()
        return [
            category
            for category in self.active_categories()
            if search_term in category.name.lower()
            or search_term in category.category_group_name.lower()
        ]

    def grouped(self) -> list[CategoryGroupView]:
        active_categories = self.active_categories()
        return [
            CategoryGroupView(
                group=group,
                categories=[
                    c for c in active_categories if c.category_group_id == group.id
                ],
            )
            for group in self.active_groups()
        ]


class SyncStats(BaseModel):
    """Change counts from one sync plus the active total afterwards."""

    new: int = Field(0, description="Records seen for the first time")
    updated: int = Field(0, description="Existing records overwritten")
    deleted: int = Field(0, description="Records that became deleted")
    total: int = Field(0, description="Active records in the cache after sync")


class CategorySyncStats(BaseModel):
    groups: SyncStats = Field(default_factory=SyncStats)
    categories: SyncStats = Field(default_factory=SyncStats)


class PayeeSyncResult(BaseModel):
    cache: PayeesCache
    stats: SyncStats


class CategorySyncResult(BaseModel):
    cache: CategoriesCache
    stats: CategorySyncStats


# Tool response models


class Payee(BaseModel):
    """A YNAB payee (person, company, or entity that receives payments)."""

    id: str = Field(..., description="Unique payee identifier")
    name: str = Field(..., description="Payee name")
    transfer_account_id: str | None = Field(
        None, description="Account ID if this payee represents a transfer"
    )

    @classmethod
    def from_cache(cls, payee: CachedPayee) -> Payee:
        return cls(
            id=payee.id,
            name=payee.name,
            transfer_account_id=payee.transfer_account_id,
        )


class PayeesResponse(BaseModel):
    """Response for list_payees tool."""

    payees: list[Payee] = Field(..., description="List of payees")
    pagination: PaginationInfo = Field(..., description="Pagination information")


class PayeeSearchResponse(BaseModel):
    """Response for search_payees tool."""

    query: str = Field(..., description="The search term used")
    payees: list[Payee] = Field(..., description="Matching payees, sorted by name")
    match_count: int = Field(..., description="Total number of matches")
    truncated: bool = Field(..., description="Whether matches were cut off by limit")


class ChangeCounts(BaseModel):
    new: int
    updated: int
    deleted: int

    @classmethod
    def from_stats(cls, stats: SyncStats) -> ChangeCounts:
        return cls(new=stats.new, updated=stats.updated, deleted=stats.deleted)


class PayeeSyncResponse(BaseModel):
    """Response for sync_payees tool."""

    payee_count: int = Field(..., description="Active payees after sync")
    server_knowledge: int = Field(..., description="Server knowledge after sync")
    changes: ChangeCounts


class RenamedPayee(BaseModel):
    """Response for rename_payee tool."""

    id: str
    old_name: str | None = Field(None, description="Name before the rename, if known")
    new_name: str


class Category(BaseModel):
    """A YNAB category with budget and goal information."""

    id: str = Field(..., description="Unique category identifier")
    name: str = Field(..., description="Category name")
    category_group_id: str = Field(..., description="Category group ID")
    category_group_name: str = Field(..., description="Category group name")
    note: str | None = Field(None, description="Category notes")
    budgeted: Decimal = Field(..., description="Amount budgeted")
    activity: Decimal = Field(
        ...,
        description="Spending activity (negative = spending)",
    )
    balance: Decimal = Field(..., description="Available balance")
    goal_type: str | None = Field(
        None,
        description="Goal type: NEED (refill up to X monthly - budget full target), "
        "TB (target balance by date), TBD (target by specific date), MF (funding)",
    )
    goal_percentage_complete: int | None = Field(
        None, description="Goal percentage complete"
    )
    hidden: bool = Field(False, description="Whether hidden from budget view")
    deleted: bool = Field(False, description="Whether the category has been deleted")

    @classmethod
    def from_cache(cls, category: CachedCategory) -> Category:
        return cls(
            id=category.id,
            name=category.name,
            category_group_id=category.category_group_id,
            category_group_name=category.category_group_name,
            note=category.note,
            budgeted=milliunits_to_currency(category.budgeted),
            activity=milliunits_to_currency(category.activity),
            balance=milliunits_to_currency(category.balance),
            goal_type=category.goal_type,
            goal_percentage_complete=category.goal_percentage_complete,
            hidden=category.hidden,
            deleted=category.deleted,
        )


class CategoryGroup(BaseModel):
    """A YNAB category group with its active categories."""

    id: str = Field(..., description="Unique category group identifier")
    name: str = Field(..., description="Category group name")
    categories: list[Category] = Field(..., description="Active categories")


class CategoriesResponse(BaseModel):
    """Response for list_categories tool."""

    category_groups: list[CategoryGroup] = Field(
        ..., description="Active category groups with their categories"
    )
    group_count: int
    category_count: int


class CategorySearchResponse(BaseModel):
    """Response for search_categories tool."""

    query: str
    categories: list[Category]
    match_count: int
    auto_synced: bool = Field(
        ..., description="Whether the cache was empty and had to be synced"
    )


class CategoryResponse(BaseModel):
    """Response for get_category tool."""

    category: Category
    auto_synced: bool


class CategorySyncResponse(BaseModel):
    """Response for sync_categories tool."""

    group_count: int = Field(..., description="Active category groups after sync")
    category_count: int = Field(..., description="Active categories after sync")
    server_knowledge: int = Field(..., description="Server knowledge after sync")
    group_changes: ChangeCounts
    category_changes: ChangeCounts


class Account(BaseModel):
    """A YNAB account with balance information.

    Accounts are read straight from YNAB rather than cached. All amounts are in
    currency units with Decimal precision.
    """

    id: str = Field(..., description="Unique account identifier")
    name: str = Field(..., description="User-defined account name")
    type: str = Field(
        ...,
        description="Account type. Common values: 'checking', 'savings', 'creditCard', "
        "'cash', 'lineOfCredit', 'otherAsset', 'otherLiability'",
    )
    on_budget: bool = Field(
        ..., description="Whether this account is included in budget calculations"
    )
    closed: bool = Field(..., description="Whether this account has been closed")
    deleted: bool = Field(False, description="Whether the account has been deleted")
    note: str | None = Field(None, description="User-defined account notes")
    balance: Decimal = Field(..., description="Current account balance")
    cleared_balance: Decimal = Field(
        ..., description="Balance of cleared transactions"
    )
    uncleared_balance: Decimal = Field(
        ..., description="Balance of uncleared transactions"
    )
    transfer_payee_id: str | None = Field(
        None, description="Payee ID used when transferring to this account"
    )

    @classmethod
    def from_ynab(cls, account: ynab.Account) -> Account:
        return cls(
            id=account.id,
            name=account.name,
            type=account.type,
            on_budget=account.on_budget,
            closed=account.closed,
            deleted=account.deleted,
            note=account.note,
            balance=milliunits_to_currency(account.balance),
            cleared_balance=milliunits_to_currency(account.cleared_balance),
            uncleared_balance=milliunits_to_currency(account.uncleared_balance),
            transfer_payee_id=account.transfer_payee_id,
        )


class AccountsResponse(BaseModel):
    """Response for list_accounts tool."""

    accounts: list[Account] = Field(..., description="Open accounts")
    pagination: PaginationInfo = Field(..., description="Pagination information")


class ClearCacheResponse(BaseModel):
    budget_id: str
    cleared: bool


RateLimitLevel = Literal["ok", "warning", "critical", "exceeded"]


class RateLimitStatus(BaseModel):
    """Response for get_rate_limit_status tool."""

    requests_used: int
    requests_remaining: int
    limit: int
    percent_used: int
    last_updated: datetime.datetime | None = None
    last_updated_ago: str | None = None
    warning_level: RateLimitLevel
    is_stale: bool
    message: str = ""
