"""
Ingestion Coordinator.

Runs one fetch cycle for one symbol:
1. Fetch the symbol stream
2. Compute the temperature over the whole batch
3. Keep the messages whose body is not already stored

The coordinator performs no storage I/O. It returns the messages to insert
and the snapshot to upsert; the caller executes both.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import AbstractSet

from .dedup import filter_new
from .feed import Cursor, Message, StocktwitsClient, SymbolInfo
from .temperature import Temperature, classify

logger = logging.getLogger("stocktemp.ingest")


@dataclass(frozen=True)
class ActivitySnapshot:
    """Latest temperature profile for a symbol, replaced on every cycle."""
    symbol: str
    temperature: Temperature
    cursor: Cursor = field(default_factory=Cursor)
    symbol_info: SymbolInfo | None = None
    response_status: int = 200
    computed_at: datetime | None = None


@dataclass(frozen=True)
class IngestResult:
    """Outcome of one fetch cycle."""
    to_persist: list[Message]
    snapshot: ActivitySnapshot
    fetched: int = 0

    @property
    def duplicates(self) -> int:
        return self.fetched - len(self.to_persist)


class IngestionCoordinator:
    """Fetches, windows and deduplicates the stream for one symbol at a time."""

    def __init__(self, client: StocktwitsClient, timeout: float | None = None):
        """
        Args:
            client: Feed client used for the single fetch per cycle.
            timeout: Per-request timeout override; the client default if None.
        """
        self.client = client
        self.timeout = timeout

    async def run(
        self,
        symbol: str,
        known_bodies: AbstractSet[str],
        now: datetime | None = None,
    ) -> IngestResult:
        """
        Run one fetch cycle.

        Args:
            symbol: Ticker to fetch.
            known_bodies: Bodies already stored for this symbol. Not modified.
            now: Reference time for the temperature; current UTC time if None.
                A naive value is taken as UTC.

        Returns:
            IngestResult with the new messages (feed order) and the snapshot.

        Raises:
            FeedError: Propagated unchanged from the feed client.
        """
        batch = await self.client.fetch(symbol, timeout=self.timeout)

        if now is None:
            now = datetime.now(timezone.utc)
        elif now.tzinfo is None:
            now = now.replace(tzinfo=timezone.utc)

        temperature = classify(now, batch.messages)
        to_persist = filter_new(batch.messages, known_bodies)

        snapshot = ActivitySnapshot(
            symbol=batch.symbol,
            temperature=temperature,
            cursor=batch.cursor,
            symbol_info=batch.symbol_info,
            response_status=batch.status,
            computed_at=now,
        )

        logger.info(
            f"{batch.symbol}: {len(batch.messages)} fetched, {len(to_persist)} new, "
            f"temperature {temperature.recent}/{temperature.short_term}/{temperature.mid_term}"
        )
        return IngestResult(to_persist=to_persist, snapshot=snapshot, fetched=len(batch.messages))
