"""Supabase database access.

Tables live in the SUPABASE_SCHEMA schema (public by default):
  - STORES_TABLE: one row per Kroger store, column location_id
  - SUMMARY_TABLE: one egg-price summary per store per day
"""

from __future__ import annotations

import logging
import time
from typing import Callable

from postgrest.exceptions import APIError
from supabase import Client, create_client

from eggprices import config
from eggprices.config import LOCATION_ID_LENGTH, STORE_PAGE_DELAY, STORE_PAGE_SIZE, SUMMARY_CONFLICT_KEY

logger = logging.getLogger(__name__)

_client: Client | None = None


def _get_client() -> Client:
    """Create the client on first use so importing this module needs no credentials."""
    global _client
    if _client is None:
        _client = create_client(config.SUPABASE_URL, config.SUPABASE_SERVICE_KEY)
    return _client


def _table(name: str):
    """Reference a table in the configured schema."""
    return _get_client().schema(config.SUPABASE_SCHEMA).table(name)


def normalize_location_id(raw) -> str:
    """Kroger wants an 8-character locationId.

    Shorter ids are left-padded with zeros, longer ones keep their last 8
    characters.
    """
    value = str(raw if raw is not None else "").strip()
    if len(value) < LOCATION_ID_LENGTH:
        return value.zfill(LOCATION_ID_LENGTH)
    return value[-LOCATION_ID_LENGTH:]


def fetch_store_location_ids(
    page_size: int = STORE_PAGE_SIZE,
    sleep: Callable[[float], None] = time.sleep,
) -> list[str]:
    """Read every store id in ascending order.

    Pages of page_size rows are requested until a short or empty page.
    The first page asks for an exact count so a truncated read shows up in
    the logs.

    Returns:
        Normalized location ids, de-duplicated, in table order.
    """
    ids: list[str] = []
    seen: set[str] = set()
    total: int | None = None
    start = 0

    while True:
        query = _table(config.STORES_TABLE)
        if total is None:
            query = query.select("location_id", count="exact")
        else:
            query = query.select("location_id")
        resp = query.order("location_id").range(start, start + page_size - 1).execute()

        if total is None and resp.count is not None:
            total = resp.count
            logger.info("Stores in %s: %d", config.STORES_TABLE, total)
        rows = resp.data or []
        logger.info("Fetched %d stores (rows %d-%d)", len(rows), start, start + page_size - 1)

        for row in rows:
            location_id = normalize_location_id(row.get("location_id"))
            if location_id not in seen:
                seen.add(location_id)
                ids.append(location_id)

        if len(rows) < page_size:
            break
        start += page_size
        sleep(STORE_PAGE_DELAY)

    if total is not None and len(ids) < total:
        logger.warning("Read %d store ids but the table reports %d rows", len(ids), total)
    return ids


def upsert_summaries(records: list[dict]) -> bool:
    """Upsert summary rows keyed on (location_id, captured_date).

    Args:
        records: [{"location_id", "captured_date", "captured_at", "status",
                   "regular_min", ..., "organic_max"}, ...]

    Returns:
        True on success. Errors are logged, not raised.
    """
    if not records:
        return True
    try:
        _table(config.SUMMARY_TABLE).upsert(records, on_conflict=SUMMARY_CONFLICT_KEY).execute()
    except APIError as e:
        logger.error(
            "Summary upsert failed (%d rows): message=%s, code=%s, details=%s, hint=%s",
            len(records), e.message, e.code, e.details, e.hint,
        )
        return False
    except Exception:
        logger.exception("Summary upsert failed (%d rows)", len(records))
        return False
    logger.info("%s: upserted %d rows", config.SUMMARY_TABLE, len(records))
    return True
