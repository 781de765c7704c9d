import logging
import os

from fastmcp import FastMCP

from cache import DEFAULT_CACHE_DIR, CacheStore
from models import (
    Account,
    AccountsResponse,
    CategoriesCache,
    CategoriesResponse,
    Category,
    CategoryGroup,
    CategoryResponse,
    CategorySearchResponse,
    CategorySyncResponse,
    ChangeCounts,
    ClearCacheResponse,
    PaginationInfo,
    Payee,
    PayeeSearchResponse,
    PayeesResponse,
    PayeeSyncResponse,
    RateLimitStatus,
    RenamedPayee,
)
from rate_limit import RateLimitTracker
from remote import YNABRemote
from repository import CacheRepository

logger = logging.getLogger(__name__)

MAX_PAYEE_NAME_LENGTH = 500

mcp = FastMCP[None](
    name="YNAB Cache",
    instructions="""
    Gives you access to the payees and categories of a user's YNAB budget through
    a local cache that is kept in sync with YNAB using delta sync. Sync tools
    report what changed since the last sync; search and get tools work against
    the cache so they are cheap to call repeatedly.
    Account tools read straight from YNAB and are not cached.

    Budget categories are grouped into category groups, which are important
    groupings to the user and should be displayed in a hierarchical manner.

    Every tool works on the budget configured via the YNAB_BUDGET environment
    variable unless a budget_id is passed explicitly. YNAB allows 200 API requests
    per hour; use get_rate_limit_status if you are making many calls.
    """,
)

_store: CacheStore | None = None
_rate_limit: RateLimitTracker | None = None
_remote: YNABRemote | None = None
_repository: CacheRepository | None = None


def get_store() -> CacheStore:
    global _store
    if _store is None:
        _store = CacheStore(os.getenv("YNAB_MCP_CACHE_DIR") or DEFAULT_CACHE_DIR)
    return _store


def get_rate_limit() -> RateLimitTracker:
    global _rate_limit
    if _rate_limit is None:
        _rate_limit = RateLimitTracker(get_store())
    return _rate_limit


def get_remote() -> YNABRemote:
    """Get the YNAB API adapter, reading the access token on first use."""
    global _remote
    if _remote is None:
        access_token = os.getenv("YNAB_ACCESS_TOKEN")
        if not access_token:
            raise ValueError("YNAB_ACCESS_TOKEN environment variable is required")
        _remote = YNABRemote(access_token, rate_limit=get_rate_limit())
    return _remote


def get_repository() -> CacheRepository:
    global _repository
    if _repository is None:
        _repository = CacheRepository(get_store(), get_remote())
    return _repository


def get_budget_id(budget_id: str | None = None) -> str:
    """Resolve the budget to operate on, falling back to YNAB_BUDGET."""
    resolved = budget_id or os.getenv("YNAB_BUDGET")
    if not resolved:
        raise ValueError(
            "budget_id is required. Pass a budget_id or set the YNAB_BUDGET "
            "environment variable."
        )
    return resolved


def _paginate_items[T](
    items: list[T], limit: int, offset: int
) -> tuple[list[T], PaginationInfo]:
    """Apply pagination to a list of items and return the page with pagination info."""
    total_count = len(items)
    start_index = offset
    end_index = min(offset + limit, total_count)
    items_page = items[start_index:end_index]

    has_more = end_index < total_count

    pagination = PaginationInfo(
        total_count=total_count,
        limit=limit,
        offset=offset,
        has_more=has_more,
    )

    return items_page, pagination


def _load_or_sync_categories(budget_id: str) -> tuple[CategoriesCache, bool]:
    """Use cached categories, syncing only when there is no cache yet."""
    repository = get_repository()
    cache = repository.load_categories(budget_id)
    if cache is not None:
        return cache, False

    logger.info(f"No categories cache for {budget_id} - auto-syncing")
    return repository.sync_categories(budget_id).cache, True


@mcp.tool()
def sync_payees(budget_id: str | None = None) -> PayeeSyncResponse:
    """Sync payees from YNAB into the local cache.

    Only changes since the last sync are fetched. Use search_payees to find payees
    by name, or get_payee to look one up by ID.

    Args:
        budget_id: Budget to sync (default: the YNAB_BUDGET budget)

    Returns:
        PayeeSyncResponse with the active payee count and what changed
    """
    budget_id = get_budget_id(budget_id)
    result = get_repository().sync_payees(budget_id)

    return PayeeSyncResponse(
        payee_count=result.stats.total,
        server_knowledge=result.cache.server_knowledge,
        changes=ChangeCounts.from_stats(result.stats),
    )


@mcp.tool()
def list_payees(
    limit: int = 50,
    offset: int = 0,
    budget_id: str | None = None,
) -> PayeesResponse:
    """List payees with pagination.

    Payees are the entities you pay money to (merchants, people, companies, etc.).
    Only returns active payees, sorted by name. Deleted payees are excluded
    automatically. Syncs the payee cache first.

    Args:
        limit: Maximum number of payees to return per page (default: 50)
        offset: Number of payees to skip for pagination (default: 0)
        budget_id: Budget to read (default: the YNAB_BUDGET budget)

    Returns:
        PayeesResponse with payees list and pagination information
    """
    budget_id = get_budget_id(budget_id)
    cache = get_repository().sync_payees(budget_id).cache

    all_payees = [Payee.from_cache(payee) for payee in cache.active_payees()]
    all_payees.sort(key=lambda p: p.name.lower())

    payees_page, pagination = _paginate_items(all_payees, limit, offset)

    return PayeesResponse(payees=payees_page, pagination=pagination)


@mcp.tool()
def search_payees(
    query: str,
    limit: int = 50,
    budget_id: str | None = None,
) -> PayeeSearchResponse:
    """Find payees by searching for name substrings (case-insensitive).

    Much more efficient than paginating through all payees with list_payees.
    Only returns active payees. Syncs the payee cache first.

    Example queries this tool can answer:
    - "Find Amazon payee ID" (use query="amazon")
    - "Find payees with 'grocery' in the name" (use query="grocery")

    Args:
        query: Search term to match against payee names
        limit: Maximum number of matching payees to return (default: 50)
        budget_id: Budget to search (default: the YNAB_BUDGET budget)

    Returns:
        PayeeSearchResponse with matching payees
    """
    if not query.strip():
        raise ValueError("Search query is required")

    budget_id = get_budget_id(budget_id)
    cache = get_repository().sync_payees(budget_id).cache

    matching_payees = [Payee.from_cache(payee) for payee in cache.search(query)]
    matching_payees.sort(key=lambda p: p.name.lower())

    return PayeeSearchResponse(
        query=query,
        payees=matching_payees[:limit],
        match_count=len(matching_payees),
        truncated=len(matching_payees) > limit,
    )


@mcp.tool()
def get_payee(payee_id: str, budget_id: str | None = None) -> Payee:
    """Get a single payee by ID. Syncs the payee cache first.

    Args:
        payee_id: Unique identifier for the payee (required)
        budget_id: Budget to read (default: the YNAB_BUDGET budget)

    Returns:
        The payee
    """
    budget_id = get_budget_id(budget_id)
    cache = get_repository().sync_payees(budget_id).cache

    payee = cache.find_by_id(payee_id)
    if payee is None:
        raise ValueError(f"Payee not found: {payee_id}. The ID may be incorrect.")
    if payee.deleted:
        raise ValueError(f"Payee {payee_id} ({payee.name}) has been deleted.")

    return Payee.from_cache(payee)


@mcp.tool()
def rename_payee(
    payee_id: str,
    new_name: str,
    budget_id: str | None = None,
) -> RenamedPayee:
    """Rename a payee in YNAB and refresh the local payee cache.

    Args:
        payee_id: Unique identifier for the payee to rename (required)
        new_name: The new name, up to 500 characters (required)
        budget_id: Budget the payee belongs to (default: the YNAB_BUDGET budget)

    Returns:
        RenamedPayee with the old and new names
    """
    new_name = new_name.strip()
    if not new_name:
        raise ValueError("New name is required and cannot be empty.")
    if len(new_name) > MAX_PAYEE_NAME_LENGTH:
        raise ValueError(f"New name cannot exceed {MAX_PAYEE_NAME_LENGTH} characters.")

    budget_id = get_budget_id(budget_id)
    repository = get_repository()

    cache = repository.load_payees(budget_id)
    existing = cache.find_by_id(payee_id) if cache else None
    if existing and existing.deleted:
        raise ValueError(
            f"Cannot rename payee: {payee_id} ({existing.name}) has been deleted."
        )

    updated = repository.remote.update_payee(budget_id, payee_id, new_name)
    repository.sync_payees(budget_id)

    return RenamedPayee(
        id=updated.id,
        old_name=existing.name if existing else None,
        new_name=updated.name,
    )


@mcp.tool()
def sync_categories(budget_id: str | None = None) -> CategorySyncResponse:
    """Sync category groups and categories from YNAB into the local cache.

    Only changes since the last sync are fetched. Use search_categories to find
    categories by name, or get_category to look one up by ID.

    Args:
        budget_id: Budget to sync (default: the YNAB_BUDGET budget)

    Returns:
        CategorySyncResponse with active counts and what changed
    """
    budget_id = get_budget_id(budget_id)
    result = get_repository().sync_categories(budget_id)
    stats = result.stats

    return CategorySyncResponse(
        group_count=stats.groups.total,
        category_count=stats.categories.total,
        server_knowledge=result.cache.server_knowledge,
        group_changes=ChangeCounts.from_stats(stats.groups),
        category_changes=ChangeCounts.from_stats(stats.categories),
    )


@mcp.tool()
def list_categories(budget_id: str | None = None) -> CategoriesResponse:
    """List categories organized by category group.

    Only returns active/visible categories and groups. Hidden and deleted ones are
    excluded automatically. Syncs the category cache first, so budgeted, activity
    and balance amounts reflect the current month.

    Args:
        budget_id: Budget to read (default: the YNAB_BUDGET budget)

    Returns:
        CategoriesResponse with category groups and their categories
    """
    budget_id = get_budget_id(budget_id)
    cache = get_repository().sync_categories(budget_id).cache

    category_groups = [
        CategoryGroup(
            id=view.group.id,
            name=view.group.name,
            categories=[Category.from_cache(c) for c in view.categories],
        )
        for view in cache.grouped()
    ]

    return CategoriesResponse(
        category_groups=category_groups,
        group_count=len(category_groups),
        category_count=sum(len(group.categories) for group in category_groups),
    )


@mcp.tool()
def search_categories(
    query: str, budget_id: str | None = None
) -> CategorySearchResponse:
    """Find categories by name or category group name (case-insensitive).

    Searches the local cache, syncing only if no cache exists yet. Run
    sync_categories first if the budget may have changed. Hidden and deleted
    categories are never returned.

    Args:
        query: Search term to match against category and group names
        budget_id: Budget to search (default: the YNAB_BUDGET budget)

    Returns:
        CategorySearchResponse with matching categories
    """
    if not query.strip():
        raise ValueError("Search query is required")

    budget_id = get_budget_id(budget_id)
    cache, auto_synced = _load_or_sync_categories(budget_id)

    matches = [Category.from_cache(c) for c in cache.search(query)]

    return CategorySearchResponse(
        query=query,
        categories=matches,
        match_count=len(matches),
        auto_synced=auto_synced,
    )


@mcp.tool()
def get_category(category_id: str, budget_id: str | None = None) -> CategoryResponse:
    """Get a single category by ID from the local cache.

    Syncs only if no cache exists yet. Deleted and hidden categories are still
    returned, with their deleted and hidden flags set.

    Args:
        category_id: Unique identifier for the category (required)
        budget_id: Budget to read (default: the YNAB_BUDGET budget)

    Returns:
        CategoryResponse with the category in currency units
    """
    budget_id = get_budget_id(budget_id)
    cache, auto_synced = _load_or_sync_categories(budget_id)

    category = cache.find_by_id(category_id)
    if category is None:
        raise ValueError(
            f"Category not found: {category_id}. Use search_categories to find "
            "categories by name, or sync_categories to refresh the cache."
        )

    return CategoryResponse(
        category=Category.from_cache(category), auto_synced=auto_synced
    )


@mcp.tool()
def list_accounts(
    limit: int = 100,
    offset: int = 0,
    budget_id: str | None = None,
) -> AccountsResponse:
    """List accounts with pagination.

    Only returns open accounts. Closed and deleted accounts are excluded
    automatically. Accounts are read directly from YNAB, not from the cache.

    Args:
        limit: Maximum number of accounts to return per page (default: 100)
        offset: Number of accounts to skip for pagination (default: 0)
        budget_id: Budget to read (default: the YNAB_BUDGET budget)

    Returns:
        AccountsResponse with accounts list and pagination information
    """
    budget_id = get_budget_id(budget_id)
    accounts = get_remote().list_accounts(budget_id)

    all_accounts = [
        Account.from_ynab(account)
        for account in accounts
        if not account.deleted and not account.closed
    ]
    accounts_page, pagination = _paginate_items(all_accounts, limit, offset)

    return AccountsResponse(accounts=accounts_page, pagination=pagination)


@mcp.tool()
def get_account(account_id: str, budget_id: str | None = None) -> Account:
    """Get a single account by ID, including closed and deleted accounts.

    Args:
        account_id: Unique identifier for the account (required)
        budget_id: Budget to read (default: the YNAB_BUDGET budget)

    Returns:
        The account with balance, type and status
    """
    if not account_id.strip():
        raise ValueError("Account ID is required.")

    budget_id = get_budget_id(budget_id)
    return Account.from_ynab(get_remote().get_account(budget_id, account_id))


@mcp.tool()
def clear_cache(budget_id: str | None = None) -> ClearCacheResponse:
    """Delete all cached payees and categories for a budget.

    The next sync will fetch everything from YNAB again.

    Args:
        budget_id: Budget to clear (default: the YNAB_BUDGET budget)
    """
    budget_id = get_budget_id(budget_id)
    get_repository().clear(budget_id)
    return ClearCacheResponse(budget_id=budget_id, cleared=True)


@mcp.tool()
def get_rate_limit_status() -> RateLimitStatus:
    """Get the current YNAB API rate limit status.

    YNAB allows 200 requests per hour in a rolling window. The count is updated
    from the X-Rate-Limit response header after each API call. If the data is
    stale (more than an hour old), any API call will refresh it.
    """
    return get_rate_limit().status()


def main() -> None:
    mcp.run()


if __name__ == "__main__":
    main()
