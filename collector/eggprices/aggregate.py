"""Per-store summary statistics and batched upserts."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable

from eggprices.classifier import is_out_of_stock
from eggprices.config import BATCH_SIZE
from eggprices.models import StoreBuckets, StoreStatus, StoreSummary

logger = logging.getLogger(__name__)


def price_stats(prices: list[float | None]) -> tuple[float | None, float | None, float | None]:
    """min / avg / max over positive prices; (None, None, None) when there are none.

    The average is rounded to cents.
    """
    values = [p for p in prices if p is not None and p > 0]
    if not values:
        return None, None, None
    return min(values), round(sum(values) / len(values), 2), max(values)


def derive_status(buckets: StoreBuckets) -> StoreStatus:
    """OK if any price was found.

    Without prices: OUT_OF_STOCK when every matched product reports an
    out-of-stock level, NO_DATA_FOUND when nothing matched or the matched
    products are simply unpriced.
    """
    if buckets.regular_prices or buckets.organic_prices:
        return StoreStatus.OK
    matched = buckets.matched_products
    if matched and all(is_out_of_stock(p) for p in matched):
        return StoreStatus.OUT_OF_STOCK
    return StoreStatus.NO_DATA_FOUND


def summarize(location_id: str, buckets: StoreBuckets, captured_at: datetime) -> StoreSummary:
    """Build the summary row for one store.

    Args:
        location_id: normalized store id
        buckets: result of KrogerClient.fetch_and_classify
        captured_at: run timestamp (UTC); its date is the upsert key
    """
    reg_min, reg_avg, reg_max = price_stats(buckets.regular_prices)
    org_min, org_avg, org_max = price_stats(buckets.organic_prices)
    return StoreSummary(
        location_id=location_id,
        captured_date=captured_at.date().isoformat(),
        captured_at=captured_at.isoformat(),
        status=derive_status(buckets),
        regular_min=reg_min,
        regular_avg=reg_avg,
        regular_max=reg_max,
        organic_min=org_min,
        organic_avg=org_avg,
        organic_max=org_max,
    )


class SummaryBatch:
    """Accumulates summaries and writes them in batches.

    The writer receives JSON-ready records and returns False on failure; a
    failed batch is dropped, not retried.
    """

    def __init__(self, writer: Callable[[list[dict]], bool], size: int = BATCH_SIZE):
        self._writer = writer
        self.size = size
        self._pending: list[StoreSummary] = []
        self.written = 0
        self.failed = 0

    def __len__(self) -> int:
        return len(self._pending)

    def add(self, summary: StoreSummary) -> None:
        self._pending.append(summary)
        self.flush_if_full()

    def flush_if_full(self) -> None:
        if len(self._pending) >= self.size:
            self._flush()

    def flush_remaining(self) -> None:
        if self._pending:
            self._flush()

    def _flush(self) -> None:
        # one row per (location_id, captured_date); a later summary wins
        by_key: dict[tuple[str, str], StoreSummary] = {}
        for summary in self._pending:
            by_key[summary.key] = summary
        self._pending = []

        records = [s.to_record() for s in by_key.values()]
        logger.info("Upserting batch of %d rows", len(records))
        if self._writer(records):
            self.written += len(records)
        else:
            self.failed += len(records)
