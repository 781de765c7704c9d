"""
YNAB API access for the delta-sync cache.

Wraps the ynab SDK behind the few calls the cache and the account tools need,
with server knowledge handling, 429 backoff and rate limit accounting.
"""

import logging
import time
from collections.abc import Callable
from typing import Any

import ynab
from ynab.exceptions import ApiException, ConflictException

from rate_limit import RateLimitTracker, parse_rate_limit_header

logger = logging.getLogger(__name__)


class YNABRemote:
    """The slice of the YNAB API used by CacheRepository."""

    def __init__(self, access_token: str, rate_limit: RateLimitTracker | None = None):
        self.configuration = ynab.Configuration(access_token=access_token)
        self.rate_limit = rate_limit

    def list_payees(
        self, budget_id: str, last_knowledge: int | None
    ) -> tuple[list[ynab.Payee], int]:
        """Fetch payees changed since ``last_knowledge``, or all of them."""
        with ynab.ApiClient(self.configuration) as api_client:
            payees_api = ynab.PayeesApi(api_client)
            response = self._fetch_since(
                "payees",
                payees_api.get_payees_with_http_info,
                budget_id,
                last_knowledge,
            )
            return list(response.data.payees), response.data.server_knowledge

    def list_category_groups(
        self, budget_id: str, last_knowledge: int | None
    ) -> tuple[list[ynab.CategoryGroupWithCategories], int]:
        """Fetch category groups (with categories) changed since ``last_knowledge``."""
        with ynab.ApiClient(self.configuration) as api_client:
            categories_api = ynab.CategoriesApi(api_client)
            response = self._fetch_since(
                "categories",
                categories_api.get_categories_with_http_info,
                budget_id,
                last_knowledge,
            )
            return list(response.data.category_groups), response.data.server_knowledge

    def update_payee(self, budget_id: str, payee_id: str, name: str) -> ynab.Payee:
        """Rename a payee in YNAB."""
        with ynab.ApiClient(self.configuration) as api_client:
            payees_api = ynab.PayeesApi(api_client)
            wrapper = ynab.PatchPayeeWrapper(payee=ynab.SavePayee(name=name))
            response = self._handle_api_call_with_retry(
                lambda: payees_api.update_payee_with_http_info(
                    budget_id, payee_id, wrapper
                )
            )
            return response.data.payee

    def list_accounts(self, budget_id: str) -> list[ynab.Account]:
        """Fetch every account in a budget. Accounts are not cached."""
        with ynab.ApiClient(self.configuration) as api_client:
            accounts_api = ynab.AccountsApi(api_client)
            response = self._handle_api_call_with_retry(
                lambda: accounts_api.get_accounts_with_http_info(budget_id)
            )
            return list(response.data.accounts)

    def get_account(self, budget_id: str, account_id: str) -> ynab.Account:
        with ynab.ApiClient(self.configuration) as api_client:
            accounts_api = ynab.AccountsApi(api_client)
            response = self._handle_api_call_with_retry(
                lambda: accounts_api.get_account_by_id_with_http_info(
                    budget_id, account_id
                )
            )
            return response.data.account

    def _fetch_since(
        self,
        entity_type: str,
        api_method: Callable[..., Any],
        budget_id: str,
        last_knowledge: int | None,
    ) -> Any:
        if last_knowledge is None:
            return self._handle_api_call_with_retry(lambda: api_method(budget_id))

        try:
            return self._handle_api_call_with_retry(
                lambda: api_method(budget_id, last_knowledge_of_server=last_knowledge)
            )
        except ConflictException as e:
            # Stale server knowledge, YNAB wants a full fetch
            logger.info(f"Falling back to full {entity_type} sync due to conflict: {e}")
            return self._handle_api_call_with_retry(lambda: api_method(budget_id))

    def _handle_api_call_with_retry(
        self, api_call: Callable[[], Any], max_retries: int = 3
    ) -> Any:
        """Handle API call with exponential backoff for rate limiting.

        Returns the response payload; ``api_call`` must return an SDK
        ``ApiResponse`` so the rate limit header can be recorded.
        """
        for attempt in range(max_retries):
            try:
                response = api_call()
            except ConflictException as e:
                self._record_rate_limit(e.headers, count_request=False)
                # Let the calling method handle ConflictException for fallback logic
                raise
            except ApiException as e:
                self._record_rate_limit(e.headers, count_request=False)
                if e.status == 429:
                    # Rate limited - YNAB allows 200 requests/hour
                    wait_time = 2**attempt
                    logger.warning(
                        f"Rate limited - waiting {wait_time}s (retry {attempt + 1})"
                    )
                    if attempt < max_retries - 1:
                        time.sleep(wait_time)
                        continue
                    else:
                        logger.error("Max retries exceeded for rate limiting")
                        raise
                else:
                    logger.error(f"API error {e.status}: {e}")
                    raise

            self._record_rate_limit(response.headers)
            return response.data

        raise AssertionError("unreachable")  # pragma: no cover

    def _record_rate_limit(self, headers: Any, count_request: bool = True) -> None:
        """Feed the tracker from a response's X-Rate-Limit header.

        Error responses only count when YNAB reports usage on them.
        """
        if self.rate_limit is None:
            return

        header = next(
            (v for k, v in (headers or {}).items() if k.lower() == "x-rate-limit"),
            None,
        )
        used = parse_rate_limit_header(header) if header else None
        if used is not None:
            self.rate_limit.update_from_header(used)
        elif count_request:
            self.rate_limit.increment()
