"""
Test fixtures for the YNAB cache MCP server tests.

This module contains pytest fixtures for testing without calling the actual YNAB API.
"""

import sys
from collections.abc import AsyncGenerator, Generator
from pathlib import Path
from typing import Any
from unittest.mock import MagicMock

import fastmcp
import pytest
import ynab
from fastmcp.client import Client, FastMCPTransport

# Add parent directory to path to import server module
sys.path.insert(0, str(Path(__file__).parent.parent))
import server
from cache import CacheStore
from rate_limit import RateLimitTracker
from remote import YNABRemote
from repository import CacheRepository


@pytest.fixture
def mock_environment_variables(monkeypatch: pytest.MonkeyPatch) -> None:
    """Mock environment variables for testing."""
    monkeypatch.setenv("YNAB_ACCESS_TOKEN", "test_token_123")
    monkeypatch.setenv("YNAB_BUDGET", "test_budget_id")


@pytest.fixture
def store(tmp_path: Path) -> CacheStore:
    return CacheStore(tmp_path / "cache")


@pytest.fixture
def remote() -> MagicMock:
    """Mock YNAB remote; tests set list_payees/list_category_groups results."""
    return MagicMock(spec=YNABRemote)


@pytest.fixture
def repository(store: CacheStore, remote: MagicMock) -> CacheRepository:
    return CacheRepository(store, remote)


@pytest.fixture
def server_repository(
    mock_environment_variables: None,
    monkeypatch: pytest.MonkeyPatch,
    store: CacheStore,
    repository: CacheRepository,
) -> Generator[CacheRepository, None, None]:
    """Wire the server module to a temp-dir repository with a mocked remote."""
    monkeypatch.setattr(server, "_store", store)
    monkeypatch.setattr(server, "_rate_limit", RateLimitTracker(store))
    monkeypatch.setattr(server, "_remote", repository.remote)
    monkeypatch.setattr(server, "_repository", repository)
    yield repository


@pytest.fixture
async def mcp_client() -> AsyncGenerator[Client[FastMCPTransport], None]:
    async with fastmcp.Client(server.mcp) as client:
        yield client


# Test data factories
def create_ynab_account(
    *,
    id: str = "acc-1",
    name: str = "Test Account",
    account_type: ynab.AccountType = ynab.AccountType.CHECKING,
    on_budget: bool = True,
    closed: bool = False,
    balance: int = 100_000,
    deleted: bool = False,
    **kwargs: Any,
) -> ynab.Account:
    """Create a YNAB Account for testing with sensible defaults."""
    return ynab.Account(
        id=id,
        name=name,
        type=account_type,
        on_budget=on_budget,
        closed=closed,
        note=kwargs.get("note"),
        balance=balance,
        cleared_balance=kwargs.get("cleared_balance", balance - 5_000),
        uncleared_balance=kwargs.get("uncleared_balance", 5_000),
        transfer_payee_id=kwargs.get("transfer_payee_id"),
        direct_import_linked=kwargs.get("direct_import_linked", False),
        direct_import_in_error=kwargs.get("direct_import_in_error", False),
        deleted=deleted,
    )


def create_ynab_payee(
    *,
    id: str = "payee-1",
    name: str = "Test Payee",
    deleted: bool = False,
    **kwargs: Any,
) -> ynab.Payee:
    """Create a YNAB Payee for testing with sensible defaults."""
    return ynab.Payee(
        id=id,
        name=name,
        transfer_account_id=kwargs.get("transfer_account_id"),
        deleted=deleted,
    )


def create_ynab_category(
    *,
    id: str = "cat-1",
    name: str = "Test Category",
    category_group_id: str = "group-1",
    hidden: bool = False,
    deleted: bool = False,
    budgeted: int = 50_000,
    activity: int = -30_000,
    balance: int = 20_000,
    **kwargs: Any,
) -> ynab.Category:
    """Create a YNAB Category for testing with sensible defaults."""
    return ynab.Category(
        id=id,
        category_group_id=category_group_id,
        category_group_name=kwargs.get("category_group_name"),
        name=name,
        hidden=hidden,
        original_category_group_id=kwargs.get("original_category_group_id"),
        note=kwargs.get("note"),
        budgeted=budgeted,
        activity=activity,
        balance=balance,
        goal_type=kwargs.get("goal_type"),
        goal_needs_whole_amount=kwargs.get("goal_needs_whole_amount"),
        goal_day=kwargs.get("goal_day"),
        goal_cadence=kwargs.get("goal_cadence"),
        goal_cadence_frequency=kwargs.get("goal_cadence_frequency"),
        goal_creation_month=kwargs.get("goal_creation_month"),
        goal_target=kwargs.get("goal_target"),
        goal_target_month=kwargs.get("goal_target_month"),
        goal_percentage_complete=kwargs.get("goal_percentage_complete"),
        goal_months_to_budget=kwargs.get("goal_months_to_budget"),
        goal_under_funded=kwargs.get("goal_under_funded"),
        goal_overall_funded=kwargs.get("goal_overall_funded"),
        goal_overall_left=kwargs.get("goal_overall_left"),
        deleted=deleted,
    )


def create_ynab_category_group(
    *,
    id: str = "group-1",
    name: str = "Test Group",
    hidden: bool = False,
    deleted: bool = False,
    categories: list[ynab.Category] | None = None,
) -> ynab.CategoryGroupWithCategories:
    """Create a YNAB CategoryGroupWithCategories for testing."""
    return ynab.CategoryGroupWithCategories(
        id=id,
        name=name,
        hidden=hidden,
        deleted=deleted,
        categories=categories or [],
    )
