"""
Main Orchestration Script for stocktemp.

Each polling cycle:
1. Load watchlists from the database (seeded from config.yaml)
2. For every unique symbol: load stored message bodies, run the ingestion
   coordinator, insert the new messages and upsert the temperature profile
3. Log a diagnostics summary

A failing symbol is logged and skipped; the rest of the cycle continues.

SETUP:
1. Copy config.yaml.example to config.yaml and list your watchlists
2. Optionally set STOCKTEMP_DB_PATH / STOCKTWITS_USER_AGENT in .env
3. Run: stocktemp
"""

import asyncio
import logging
import sqlite3
import sys
from datetime import datetime

from .config import config, symbol_context
from .diagnostics import DiagnosticsCollector, RunDiagnostics, rotate_logs
from .feed import DecodeError, FeedError, StocktwitsClient
from .ingest import IngestionCoordinator
from .store import StocktwitsStore, unique_symbols

logger = logging.getLogger("stocktemp.main")


async def process_symbol(
    symbol: str,
    coordinator: IngestionCoordinator,
    store: StocktwitsStore,
    diagnostics: RunDiagnostics,
) -> bool:
    """
    Run one fetch cycle for a symbol and persist its results.

    Returns:
        True if the messages and profile were stored.
    """
    symbol_context.set(symbol)
    diagnostics.symbols_attempted += 1
    logger.info(f"Searching Stocktwits for {symbol}")

    try:
        known_bodies = store.known_bodies(symbol)
    except sqlite3.Error as e:
        diagnostics.storage_failures += 1
        diagnostics.add_error(f"Failed to load stored messages for {symbol}: {e}")
        return False

    logger.debug(f"Current messages stored: {len(known_bodies)}")

    try:
        result = await coordinator.run(symbol, known_bodies)
    except DecodeError as e:
        diagnostics.decode_failures += 1
        diagnostics.add_warning(f"Skipping {symbol}, bad response: {e}")
        return False
    except FeedError as e:
        diagnostics.fetch_failures += 1
        diagnostics.add_warning(f"Skipping {symbol}, fetch failed: {e}")
        return False

    try:
        stored = store.insert_messages(symbol, result.to_persist)
        store.upsert_profile(result.snapshot)
    except sqlite3.Error as e:
        diagnostics.storage_failures += 1
        diagnostics.add_error(f"Failed to store results for {symbol}: {e}")
        return False

    diagnostics.messages_fetched += result.fetched
    diagnostics.messages_stored += stored
    diagnostics.duplicates_skipped += result.duplicates
    diagnostics.snapshots_upserted += 1
    diagnostics.symbols_completed += 1

    logger.info(f"Stored {stored} new messages, profile updated")
    return True


async def run_cycle(
    symbols: list[str],
    coordinator: IngestionCoordinator,
    store: StocktwitsStore,
    concurrency: int = 1,
    run_id: str | None = None,
) -> RunDiagnostics:
    """
    Process every symbol once using a small pool of workers.

    Each symbol is queued once, so no two workers ever handle the same symbol
    in a cycle.

    Args:
        symbols: Unique symbols to process.
        coordinator: Ingestion coordinator shared by the workers.
        store: Storage backend.
        concurrency: Number of concurrent workers.
        run_id: Identifier for the diagnostics record.

    Returns:
        Finalized diagnostics for the cycle.
    """
    collector = DiagnosticsCollector(run_id=run_id or datetime.now().strftime("%Y%m%d_%H%M%S"))
    diagnostics = collector.diagnostics

    if not symbols:
        diagnostics.add_warning("No symbols configured - add watchlists to config.yaml")
        return collector.finalize()

    queue: asyncio.Queue[str] = asyncio.Queue()
    for symbol in symbols:
        queue.put_nowait(symbol)

    workers_count = max(1, min(concurrency, len(symbols)))
    logger.info(f"Processing {len(symbols)} symbols with {workers_count} workers")

    async def worker(worker_id: int):
        while not queue.empty():
            try:
                symbol = queue.get_nowait()
            except asyncio.QueueEmpty:
                break

            try:
                await process_symbol(symbol, coordinator, store, diagnostics)
            except Exception as e:
                logger.exception(f"[Worker {worker_id}] Unexpected failure processing {symbol}")
                diagnostics.unexpected_failures += 1
                diagnostics.add_error(f"Unexpected failure processing {symbol}: {e!r}")
            finally:
                queue.task_done()

        logger.debug(f"Worker {worker_id} finished")

    workers = [asyncio.create_task(worker(i)) for i in range(workers_count)]
    await asyncio.gather(*workers)

    return collector.finalize()


async def run_pipeline() -> bool:
    """
    Run polling cycles until done.

    With polling.interval_seconds = 0 a single cycle runs; otherwise cycles
    repeat forever with that pause between them.

    Returns:
        True if the last cycle completed at least one symbol (or had none).
    """
    try:
        rotate_logs(log_file=config.log.log_file, keep_count=config.log.log_retention_count)
    except OSError as e:
        print(f"Failed to rotate logs: {e}", file=sys.stderr)

    logger = config.setup_logging()
    logger.info("=" * 60)
    logger.info("Stocktwits Temperature Pipeline")
    logger.info("=" * 60)

    errors = config.validate()
    if errors:
        for error in errors:
            logger.error(f"Configuration error: {error}")
        return False

    store = StocktwitsStore(db_path=config.storage.db_path)
    store.sync_watchlists(config.watchlists)

    async with StocktwitsClient(
        base_url=config.stocktwits.base_url,
        user_agent=config.stocktwits.user_agent,
        timeout=config.stocktwits.timeout_seconds,
    ) as client:
        coordinator = IngestionCoordinator(client)

        while True:
            watchlists = store.get_watchlists()
            symbols = unique_symbols(watchlists)
            logger.info(f"Loaded {len(watchlists)} watchlists ({len(symbols)} unique symbols)")

            diagnostics = await run_cycle(
                symbols,
                coordinator,
                store,
                concurrency=config.polling.concurrency,
            )

            if config.polling.interval_seconds <= 0:
                break

            logger.info(f"Next cycle in {config.polling.interval_seconds}s")
            await asyncio.sleep(config.polling.interval_seconds)

    return not diagnostics.has_critical_errors


def main():
    """Entry point for the application."""
    try:
        success = asyncio.run(run_pipeline())
        sys.exit(0 if success else 1)
    except KeyboardInterrupt:
        print("\nOperation cancelled by user")
        sys.exit(130)
    except Exception as e:
        print(f"\nFatal error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
