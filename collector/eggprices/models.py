"""Data model definitions."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import Enum

REGULAR = "regular"
ORGANIC = "organic"


class StoreStatus(str, Enum):
    """Outcome of one store's fetch, stored in the summary row."""

    OK = "OK"
    OUT_OF_STOCK = "OUT_OF_STOCK"
    NO_DATA_FOUND = "NO_DATA_FOUND"


@dataclass
class ClassifiedPrice:
    """A retained dozen-egg product reduced to its bucket and price."""

    bucket: str  # "regular" or "organic"
    price: float | None  # None = matched but no usable price


@dataclass
class StoreBuckets:
    """Classification result for one store."""

    regular_prices: list[float] = field(default_factory=list)
    organic_prices: list[float] = field(default_factory=list)
    matched_products: list[dict] = field(default_factory=list)  # raw API products

    def add(self, product: dict, classified: ClassifiedPrice) -> None:
        self.matched_products.append(product)
        if classified.price is None:
            return
        if classified.bucket == ORGANIC:
            self.organic_prices.append(classified.price)
        else:
            self.regular_prices.append(classified.price)


@dataclass
class StoreSummary:
    """Daily summary row written to the summary table."""

    location_id: str
    captured_date: str  # YYYY-MM-DD (UTC)
    captured_at: str  # ISO 8601
    status: StoreStatus
    regular_min: float | None = None
    regular_avg: float | None = None
    regular_max: float | None = None
    organic_min: float | None = None
    organic_avg: float | None = None
    organic_max: float | None = None

    @property
    def key(self) -> tuple[str, str]:
        return self.location_id, self.captured_date

    def to_record(self) -> dict:
        record = asdict(self)
        record["status"] = self.status.value
        return record
