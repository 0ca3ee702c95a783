"""
Remote REST store.

Talks to a review API over HTTP with bearer-token auth:

    GET  /items/{id}            GET  /items          GET /items/due
    PUT  /items/{id}            POST /attempts       GET /attempts
    GET  /metrics/{user_id}     PUT  /metrics/{user_id}

HTTP and transport failures surface as PersistenceError; 404 on an item
is NotFoundError and 409 on an item write is ConcurrencyError.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

import httpx
from loguru import logger

from spaced_review.core.errors import ConcurrencyError, NotFoundError, PersistenceError
from spaced_review.core.models import ReviewableItem, ReviewAttempt, UserMetrics, to_utc
from spaced_review.stores.base import AttemptFilter


class RestStore:
    """Implements ItemStore, AttemptStore and MetricsStore against a remote API."""

    def __init__(
        self,
        base_url: str,
        api_key: str = "",
        timeout: float = 10.0,
        transport: httpx.BaseTransport | None = None,
    ):
        headers = {"Authorization": f"Bearer {api_key}"} if api_key else {}
        self.client = httpx.Client(
            base_url=base_url, headers=headers, timeout=timeout, transport=transport
        )

    def _request(
        self, method: str, path: str, *, allow_404: bool = False, **kwargs: Any
    ) -> httpx.Response | None:
        try:
            response = self.client.request(method, path, **kwargs)
            if allow_404 and response.status_code == 404:
                return None
            if response.status_code == 409:
                raise ConcurrencyError(f"{method} {path} rejected as a stale write")
            response.raise_for_status()
            return response
        except httpx.HTTPError as e:
            logger.warning(f"Remote store call failed: {method} {path}: {e}")
            raise PersistenceError(f"{method} {path} failed: {e}") from e

    @staticmethod
    def _json(response: httpx.Response) -> Any:
        try:
            return response.json()
        except ValueError as e:
            raise PersistenceError(f"Invalid JSON from {response.request.url}: {e}") from e

    # =========================================================================
    # ItemStore
    # =========================================================================

    def get_item(self, item_id: str) -> ReviewableItem:
        response = self._request("GET", f"/items/{item_id}", allow_404=True)
        if response is None:
            raise NotFoundError(f"Item not found: {item_id}")
        return ReviewableItem.from_dict(self._json(response))

    def all_items(self) -> list[ReviewableItem]:
        response = self._request("GET", "/items")
        return [ReviewableItem.from_dict(r) for r in self._json(response)]

    def list_due_items(
        self, before: datetime, limit: int, category_filter: str | None = None
    ) -> list[ReviewableItem]:
        params: dict[str, Any] = {"before": to_utc(before).isoformat(), "limit": limit}
        if category_filter is not None:
            params["category"] = category_filter
        response = self._request("GET", "/items/due", params=params)
        return [ReviewableItem.from_dict(r) for r in self._json(response)]

    def upsert_item(self, item: ReviewableItem) -> None:
        self._request("PUT", f"/items/{item.id}", json=item.to_dict())

    # =========================================================================
    # AttemptStore
    # =========================================================================

    def append_attempt(self, attempt: ReviewAttempt) -> None:
        self._request("POST", "/attempts", json=attempt.to_dict())

    def list_attempts(
        self, user_id: str, filters: AttemptFilter | None = None
    ) -> list[ReviewAttempt]:
        filters = filters or AttemptFilter()
        params: dict[str, Any] = {"user_id": user_id}
        if filters.category is not None:
            params["category"] = filters.category
        if filters.item_id is not None:
            params["item_id"] = filters.item_id
        if filters.since is not None:
            params["since"] = to_utc(filters.since).isoformat()
        if filters.until is not None:
            params["until"] = to_utc(filters.until).isoformat()
        response = self._request("GET", "/attempts", params=params)
        attempts = [ReviewAttempt.from_dict(r) for r in self._json(response)]
        return filters.apply(attempts)

    # =========================================================================
    # MetricsStore
    # =========================================================================

    def get_user_metrics(self, user_id: str) -> UserMetrics:
        response = self._request("GET", f"/metrics/{user_id}", allow_404=True)
        if response is None:
            return UserMetrics(user_id=user_id)
        return UserMetrics.from_dict(self._json(response))

    def upsert_user_metrics(self, user_id: str, metrics: UserMetrics) -> None:
        self._request("PUT", f"/metrics/{user_id}", json=metrics.to_dict())

    def close(self) -> None:
        self.client.close()
