"""Heuristic classification of Kroger products into dozen-egg price buckets.

Kroger's product search is fuzzy: a query for "eggs" also returns egg
sandwiches, 18-count cartons, egg noodles and Easter decorations. A product
is kept only when its text looks like shell eggs AND like a 12-count pack.

The predicates take already lower-cased text so they can be tested without
any API payload.
"""

from __future__ import annotations

import hashlib
import logging
import re
from collections.abc import Iterable, Sequence

from eggprices.config import MIN_PRICE, PRICE_FIELD_PRIORITY
from eggprices.models import ORGANIC, REGULAR, ClassifiedPrice, StoreBuckets

logger = logging.getLogger(__name__)

_EGG_PATTERN = re.compile(r"\b(?:eggs?|shell)\b")

_EXCLUSION_PATTERN = re.compile(
    r"\b(?:"
    r"sandwich(?:es)?|croissants?|bites?|yogurt|cookies?|cheese|sausage|patt(?:y|ies)|"
    r"wraps?|burritos?|scrambles?|omelets?|omelettes?|drinks?|nog|substitute|milk|"
    r"dogs?|cats?|jerky|food|smoothies?|meals?|kits?|dough|bake|candy|chocolate|"
    r"liquid|mix|easter|holiday|plastic|decorations?|fill(?:able)? eggs|"
    r"noodles?|salad|dye|peeled|beaters|"
    r"masks?|shampoo|conditioner|lotion|serum|cleanser|soap|moisturi[sz]er"
    r")\b"
)

# 18/24/30/36/48/60 count packs, multi-dozen and half-dozen cartons
_NOT_DOZEN_PATTERN = re.compile(
    r"\b(?:18|24|30|36|48|60)\s*-?\s*(?:ct|count|pk|pack|pc|eggs?)\b"
    r"|\b(?:pack|case|box|carton|tray)\s+of\s+(?:18|24|30|36|48|60)\b"
    r"|\b(?:18|24|30|36|48|60)\s+(?:per|in|to)\b"
    r"|\bx\s*(?:18|24|30|36|48|60)\b"
    r"|\b(?:1\.5|[2-9](?:\.5)?)\s*-?\s*(?:dozen|doz|dz)\b"
    r"|\bhalf\s*-?\s*(?:a\s+)?dozen\b"
    r"|\b6\s*-?\s*(?:ct|count|pk|pack|pc)\b"
)

_DOZEN_PATTERN = re.compile(
    r"\b12\s*-?\s*(?:ct|count|pk|pack|pc|dz|doz|dozen)\b"
    r"|\b(?:1|one)\s*-?\s*(?:dozen|doz|dz)\b"
)

_BARE_DOZEN_PATTERN = re.compile(r"\b(?:dozen|doz)\b")

# any large-pack number that is not a weight such as "24 oz"
_LARGE_NUMBER_PATTERN = re.compile(r"\b(?:18|24|30|36|48|60)\b(?!\s*-?\s*(?:oz|ounces?|fl|g|lbs?)\b)")

_ORGANIC_PATTERN = re.compile(r"\b(?:organic|orgnc|org)\b|\bo[.\s]r[.\s]g\b")

_OUT_OF_STOCK_LEVELS = {"OUT_OF_STOCK", "NONE"}


def is_egg_product(text: str) -> bool:
    """Return True if the text names eggs (or shell eggs) and nothing egg-flavoured."""
    if not _EGG_PATTERN.search(text):
        return False
    return not _EXCLUSION_PATTERN.search(text)


def is_dozen_packaging(text: str) -> bool:
    """Return True for 12-count packaging.

    Larger multi-packs are rejected even if "dozen" appears elsewhere in the
    text (e.g. "Large Eggs 18 ct, 1.5 dozen").
    """
    if _NOT_DOZEN_PATTERN.search(text):
        return False
    if _DOZEN_PATTERN.search(text):
        return True
    # a bare "dozen" only counts when no large-pack number appears anywhere
    return bool(_BARE_DOZEN_PATTERN.search(text)) and not _LARGE_NUMBER_PATTERN.search(text)


def is_organic(text: str) -> bool:
    return bool(_ORGANIC_PATTERN.search(text))


def product_name(product: dict) -> str:
    """Description, falling back to the brand when the description is empty."""
    for key in ("description", "brand"):
        value = product.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return ""


def product_size(product: dict) -> str:
    items = product.get("items") or []
    if not items or not isinstance(items[0], dict):
        return ""
    size = items[0].get("size")
    return size.strip().lower() if isinstance(size, str) else ""


def product_text(product: dict) -> str:
    """Lower-cased name and size, the text every predicate runs on."""
    return f"{product_name(product).lower()} {product_size(product)}".strip()


def is_out_of_stock(product: dict) -> bool:
    items = product.get("items") or []
    if not items or not isinstance(items[0], dict):
        return False
    level = (items[0].get("inventory") or {}).get("stockLevel")
    return isinstance(level, str) and level.upper() in _OUT_OF_STOCK_LEVELS


def _is_in_store(item: dict) -> bool:
    fulfillment = item.get("fulfillment")
    if isinstance(fulfillment, dict):
        return bool(fulfillment.get("inStore"))
    if isinstance(fulfillment, (list, tuple, str)):
        return "inStore" in fulfillment
    return False


def _in_store_items(product: dict) -> list[dict]:
    """Items flagged for in-store pickup; all items if none carries fulfillment info."""
    items = [it for it in (product.get("items") or []) if isinstance(it, dict)]
    if not any("fulfillment" in it for it in items):
        return items
    return [it for it in items if _is_in_store(it)]


def _as_price(value) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        price = float(value)
    except (TypeError, ValueError):
        return None
    return price if price > MIN_PRICE else None


def extract_price(product: dict, fields: Sequence[str] = PRICE_FIELD_PRIORITY) -> float | None:
    """Pick the first usable price from the product's in-store items.

    Args:
        product: raw product from the API
        fields: price keys in priority order (promo before regular by default)

    Returns:
        Price in dollars, or None when no field on any in-store item is
        greater than MIN_PRICE.
    """
    for item in _in_store_items(product):
        price_record = item.get("price") or {}
        for key in fields:
            price = _as_price(price_record.get(key))
            if price is not None:
                return price
    return None


def classify_product(product: dict, fields: Sequence[str] = PRICE_FIELD_PRIORITY) -> ClassifiedPrice | None:
    """Return the product's bucket and price, or None if it is not a dozen of eggs."""
    text = product_text(product)
    if not is_egg_product(text) or not is_dozen_packaging(text):
        return None
    bucket = ORGANIC if is_organic(text) else REGULAR
    return ClassifiedPrice(bucket=bucket, price=extract_price(product, fields))


def product_key(product: dict) -> str:
    return str(product.get("productId") or product.get("upc") or product.get("description") or "")


def dedupe_products(products: Iterable[dict]) -> list[dict]:
    """Drop repeats by productId, then UPC, then description, keeping the first."""
    seen: set[str] = set()
    unique: list[dict] = []
    for p in products:
        key = product_key(p)
        if key in seen:
            continue
        seen.add(key)
        unique.append(p)
    return unique


def fingerprint(products: Iterable[dict]) -> str:
    """Short stable hash of the product ids, for comparing runs in the logs."""
    ids = ",".join(sorted(product_key(p) for p in products))
    return hashlib.sha1(ids.encode("utf-8")).hexdigest()[:12]


def classify_products(products: Iterable[dict], fields: Sequence[str] = PRICE_FIELD_PRIORITY) -> StoreBuckets:
    """Split products into regular/organic price buckets.

    Every retained product lands in matched_products, priced or not, so the
    caller can tell "nothing matched" from "matched but out of stock".
    """
    buckets = StoreBuckets()
    for p in products:
        classified = classify_product(p, fields)
        if classified is None:
            continue
        buckets.add(p, classified)
        logger.debug(
            "  matched %s: bucket=%s, price=%s, size=%s",
            product_name(p) or product_key(p), classified.bucket,
            classified.price if classified.price is not None else "n/a", product_size(p),
        )
    return buckets
