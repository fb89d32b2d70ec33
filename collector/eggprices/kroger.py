"""Kroger product search client.

Per store:
  1. search every term in SEARCH_TERMS, 50 products per page, up to start=250
  2. merge and de-duplicate the pages
  3. classify into regular/organic dozen-egg buckets

Retry policy per request:
  - 401: refresh the token once and re-send; a second 401 fails the store
  - 429: sleep Retry-After (or 2**attempt) seconds, up to MAX_ATTEMPTS
    requests (no sleep after the last one)
  - other non-2xx: ProductAPIError, which ends the current term
"""

from __future__ import annotations

import logging
import time
from typing import Callable

import requests

from eggprices.auth import TokenProvider
from eggprices.classifier import classify_products, dedupe_products, fingerprint
from eggprices.config import (
    MAX_ATTEMPTS,
    MAX_START,
    PAGE_LIMIT,
    PRICE_FIELD_PRIORITY,
    PRODUCTS_URL,
    REQUEST_DELAY,
    REQUEST_TIMEOUT,
    SEARCH_TERMS,
)
from eggprices.errors import AuthenticationError, ProductAPIError, RateLimitError
from eggprices.models import StoreBuckets

logger = logging.getLogger(__name__)


def retry_after_seconds(resp: requests.Response, attempt: int) -> float:
    """Seconds to wait after a 429.

    Uses the Retry-After header when it is a positive integer, otherwise
    falls back to 2 ** attempt seconds.
    """
    header = resp.headers.get("Retry-After")
    try:
        wait = int(header) if header is not None else 0
    except ValueError:
        wait = 0
    return float(wait) if wait > 0 else float(2 ** attempt)


class KrogerClient:
    """Product search against one Kroger API account."""

    def __init__(
        self,
        tokens: TokenProvider,
        session: requests.Session | None = None,
        search_terms: tuple[str, ...] = SEARCH_TERMS,
        price_fields: tuple[str, ...] = PRICE_FIELD_PRIORITY,
        request_delay: float = REQUEST_DELAY,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.tokens = tokens
        self.session = session or requests.Session()
        self.search_terms = search_terms
        self.price_fields = price_fields
        self.request_delay = request_delay
        self._sleep = sleep

    def _send(self, params: dict, token: str) -> requests.Response:
        return self.session.get(
            PRODUCTS_URL,
            params=params,
            headers={"Authorization": f"Bearer {token}", "Accept": "application/json"},
            timeout=REQUEST_TIMEOUT,
        )

    def _get_json(self, params: dict) -> dict:
        """GET one product page, applying the 401/429 retry policy.

        Raises:
            AuthenticationError: 401 again right after a refresh.
            RateLimitError: still 429 after MAX_ATTEMPTS.
            ProductAPIError: any other non-2xx status.
        """
        refreshed = False
        resp = None
        for attempt in range(1, MAX_ATTEMPTS + 1):
            token = self.tokens.get_valid()
            resp = self._send(params, token)

            if resp.status_code == 401:
                if refreshed:
                    raise AuthenticationError(401, resp.text, resp.url)
                logger.info("Token rejected (401), refreshing")
                token = self.tokens.refresh(stale_token=token)
                refreshed = True
                resp = self._send(params, token)
                if resp.status_code == 401:
                    raise AuthenticationError(401, resp.text, resp.url)

            if resp.status_code == 429:
                if attempt == MAX_ATTEMPTS:
                    break
                wait = retry_after_seconds(resp, attempt)
                logger.warning(
                    "Rate limited (429), waiting %.0f s then retrying (attempt %d/%d)",
                    wait, attempt, MAX_ATTEMPTS,
                )
                self._sleep(wait)
                continue

            if not resp.ok:
                raise ProductAPIError(resp.status_code, resp.text, resp.url)
            return resp.json()

        raise RateLimitError(429, "max retries", resp.url if resp is not None else "")

    def search_products(self, location_id: str) -> list[dict]:
        """Collect products for every search term, de-duplicated.

        A failing term is logged and skipped; the remaining terms still run.
        """
        products: list[dict] = []
        first_request = True
        for term in self.search_terms:
            for start in range(1, MAX_START + 1, PAGE_LIMIT):
                if not first_request:
                    self._sleep(self.request_delay)
                first_request = False
                params = {
                    "filter.locationId": location_id,
                    "filter.term": term,
                    "filter.limit": PAGE_LIMIT,
                    "filter.start": start,
                    "filter.fulfillment": "inStore",
                }
                try:
                    payload = self._get_json(params)
                except AuthenticationError:
                    raise
                except ProductAPIError as e:
                    logger.warning(
                        "Store %s: products request failed (term=%r, start=%d): %s",
                        location_id, term, start, e,
                    )
                    break

                page = payload.get("data") or []
                products.extend(page)
                if len(page) < PAGE_LIMIT:
                    break

        unique = dedupe_products(products)
        logger.debug(
            "Store %s products hash: %s (%d products)",
            location_id, fingerprint(unique), len(unique),
        )
        return unique

    def fetch_and_classify(self, location_id: str) -> StoreBuckets:
        """Search and classify one store's egg products."""
        products = self.search_products(location_id)
        buckets = classify_products(products, self.price_fields)
        logger.info(
            "Store %s: raw=%d, matched=%d, regular=%d, organic=%d",
            location_id, len(products), len(buckets.matched_products),
            len(buckets.regular_prices), len(buckets.organic_prices),
        )
        return buckets
