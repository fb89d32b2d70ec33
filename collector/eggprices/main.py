"""Kroger egg price collection: main entry point.

Flow:
  1. check configuration and obtain an API token
  2. read every store id from Supabase
  3. narrow to --only ids and the START_AT/END_AT range
  4. search, classify and summarize each store
  5. upsert summaries in batches of BATCH_SIZE
"""

from __future__ import annotations

import argparse
import logging
import sys
import time
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone

from eggprices import config
from eggprices.aggregate import SummaryBatch, summarize
from eggprices.auth import TokenProvider
from eggprices.db import fetch_store_location_ids, normalize_location_id, upsert_summaries
from eggprices.errors import ConfigError, TokenError
from eggprices.kroger import KrogerClient
from eggprices.models import StoreSummary

logger = logging.getLogger(__name__)


def setup_logging(verbose: bool = False) -> None:
    """Initial logging setup."""
    config.LOG_DIR.mkdir(exist_ok=True)
    log_file = config.LOG_DIR / f"collector_{datetime.now().strftime('%Y%m%d')}.log"
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        handlers=[
            logging.StreamHandler(sys.stdout),
            logging.FileHandler(log_file, encoding="utf-8"),
        ],
    )
    # keep HTTP client chatter out of -v output
    for name in ("httpx", "httpcore", "urllib3", "hpack"):
        logging.getLogger(name).setLevel(logging.WARNING)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Collect Kroger dozen-egg prices into Supabase")
    parser.add_argument(
        "--only",
        help="comma-separated store ids to process (others are skipped)",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="debug logging")
    return parser.parse_args(argv)


def select_stores(
    store_ids: list[str],
    only: list[str] | None = None,
    start_at: int = 0,
    end_at: int | None = None,
) -> list[str]:
    """Apply the --only filter, then the [start_at, end_at) index range."""
    if only:
        wanted = {normalize_location_id(s) for s in only if s.strip()}
        store_ids = [s for s in store_ids if s in wanted]
    return store_ids[start_at:end_at]


def process_store(client: KrogerClient, location_id: str, captured_at: datetime) -> StoreSummary | None:
    """Fetch and summarize one store.

    Returns:
        The summary, or None if the store failed. A TokenError is re-raised
        because it means the credentials no longer work.
    """
    try:
        buckets = client.fetch_and_classify(location_id)
        return summarize(location_id, buckets, captured_at)
    except TokenError:
        raise
    except Exception as e:
        logger.warning("Store %s failed: %s", location_id, e)
        return None
    finally:
        time.sleep(config.STORE_DELAY)


def run(argv: list[str] | None = None) -> int:
    """Main process. Returns the exit code."""
    args = parse_args(argv)
    setup_logging(args.verbose)
    logger.info("=== Egg price collection started ===")
    start_time = time.time()

    # 1. configuration and token
    try:
        config.check_required_env()
        start_at, end_at = config.shard_bounds()
    except ConfigError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 1

    tokens = TokenProvider(config.KROGER_CLIENT_ID, config.KROGER_CLIENT_SECRET)
    tokens.get_valid()
    client = KrogerClient(tokens)

    # 2. store ids
    all_ids = fetch_store_location_ids()
    only = args.only.split(",") if args.only else None
    if only:
        logger.info("Running only for stores: %s", ", ".join(only))
    stores = select_stores(all_ids, only, start_at, end_at)
    logger.info(
        "Processing stores %d to %s (count: %d of %d)",
        start_at, end_at if end_at is not None else len(all_ids), len(stores), len(all_ids),
    )
    if not stores:
        logger.warning("No stores to process. Exiting.")
        return 0

    # 3. per-store work; results are batched on this thread in store order
    captured_at = datetime.now(timezone.utc)
    batch = SummaryBatch(upsert_summaries)
    failed = 0
    done = 0

    with ThreadPoolExecutor(max_workers=max(1, config.STORE_CONCURRENCY)) as pool:
        futures = [(s, pool.submit(process_store, client, s, captured_at)) for s in stores]
        try:
            for location_id, future in futures:
                summary = future.result()
                done += 1
                if summary is None:
                    failed += 1
                    continue
                logger.info(
                    "Store %s: status=%s, regular=%s-%s, organic=%s-%s (%d/%d)",
                    location_id, summary.status.value,
                    summary.regular_min, summary.regular_max,
                    summary.organic_min, summary.organic_max,
                    done, len(stores),
                )
                batch.add(summary)
        except TokenError:
            pool.shutdown(wait=False, cancel_futures=True)
            batch.flush_remaining()
            raise

    batch.flush_remaining()

    elapsed = time.time() - start_time
    logger.info("=== Egg price collection finished ===")
    logger.info(
        "Stores: %d, failed: %d, rows written: %d, rows failed: %d, elapsed: %.1f s",
        len(stores), failed, batch.written, batch.failed, elapsed,
    )
    return 0


def main(argv: list[str] | None = None) -> int:
    try:
        return run(argv)
    except (ConfigError, TokenError) as e:
        logger.error("Aborting: %s", e)
        return 1
    except Exception:
        logger.exception("Unhandled error, aborting")
        return 1


if __name__ == "__main__":
    sys.exit(main())
