# /gaswatch/core/history.py
# History shaping (window, grouping, downsampling) and the throttled background writer.

import asyncio
import math
import time
from typing import Callable, Dict, Iterable, List, Sequence, Set, TypeVar

from gaswatch.core.config import settings
from gaswatch.core.decorators import retriable_persistence
from gaswatch.core.fee_estimator import band_tiers
from gaswatch.core.logger import get_logger, HISTORY_WRITES
from gaswatch.core.models import (
    ChainHistoryPoint,
    CrossChainHistoryPoint,
    GasSnapshot,
    HistoryRow,
    now_ms,
)

log = get_logger(__name__)

ALL_CHAINS = "all"
MIN_WINDOW_HOURS = 0.1

P = TypeVar("P")


def clamp_hours(hours: float) -> float:
    hours = float(hours)
    if math.isnan(hours):
        return MIN_WINDOW_HOURS
    return min(max(hours, MIN_WINDOW_HOURS), settings.HISTORY_MAX_HOURS)


def window_start(hours: float, now: int | None = None) -> int:
    """Epoch ms of the oldest timestamp inside the window (exclusive)."""
    now = now if now is not None else now_ms()
    return now - int(clamp_hours(hours) * 3600 * 1000)


def downsample(points: Sequence[P], max_points: int | None = None) -> List[P]:
    """Uniform stride selection; keeps order and never returns more than ``max_points``."""
    max_points = max_points or settings.HISTORY_MAX_POINTS
    if len(points) <= max_points:
        return list(points)
    step = math.ceil(len(points) / max_points)
    return list(points[::step])


def cross_chain_points(rows: Iterable[HistoryRow]) -> List[CrossChainHistoryPoint]:
    """One point per collection timestamp, mapping chain -> swap cost in USD."""
    grouped: Dict[int, Dict[str, float]] = {}
    for row in rows:
        grouped.setdefault(row.timestamp, {})[row.chain] = row.swap_cost_usd
    return [CrossChainHistoryPoint(timestamp=ts, chains=chains) for ts, chains in sorted(grouped.items())]


def chain_points(rows: Iterable[HistoryRow], chain: str) -> List[ChainHistoryPoint]:
    """
    Per-chain tiers rebuilt from the stored average.
    Only the average is persisted, so low/high are the fixed band around it.
    """
    latest: Dict[int, float] = {}
    for row in rows:
        if row.chain == chain:
            latest[row.timestamp] = row.avg_fee_value
    points = []
    for ts, average in sorted(latest.items()):
        low, avg, high = band_tiers(average)
        points.append(ChainHistoryPoint(timestamp=ts, low=low, average=avg, high=high))
    return points


def shape_window(rows: Iterable[HistoryRow], chain: str, hours: float, now: int | None = None, max_points: int | None = None):
    """Filter rows to the window, group them for ``chain`` (or ``"all"``) and downsample."""
    since = window_start(hours, now)
    in_window = [row for row in rows if row.timestamp > since]
    if chain == ALL_CHAINS:
        points = cross_chain_points(in_window)
    else:
        points = chain_points(in_window, chain)
    return downsample(points, max_points)


class HistoryRecorder:
    """
    Hands snapshots to a HistoryStore in the background.

    ``submit`` never waits on the store and never raises on a store failure.
    At most one snapshot is written per ``min_interval`` seconds; a failed write
    releases the slot so the next pass can try again.
    """

    def __init__(self, store, min_interval: float | None = None, clock: Callable[[], float] = time.monotonic):
        self.store = store
        self.min_interval = min_interval if min_interval is not None else settings.HISTORY_MIN_INTERVAL_SECONDS
        self._clock = clock
        self._last_write: float | None = None
        self._tasks: Set[asyncio.Task] = set()

    def _due(self, now: float) -> bool:
        return self._last_write is None or now - self._last_write >= self.min_interval

    def submit(self, snapshot: GasSnapshot) -> asyncio.Task | None:
        if not snapshot.results:
            log.debug("HISTORY_SKIPPED_EMPTY_SNAPSHOT", timestamp=snapshot.timestamp)
            return None
        now = self._clock()
        if not self._due(now):
            HISTORY_WRITES.labels("throttled").inc()
            log.debug("HISTORY_WRITE_THROTTLED", timestamp=snapshot.timestamp)
            return None

        self._last_write = now
        task = asyncio.create_task(self._persist(snapshot, now))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    @retriable_persistence
    async def _append(self, rows: List[HistoryRow]):
        await self.store.append(rows)

    async def _persist(self, snapshot: GasSnapshot, slot: float):
        rows = snapshot.to_history_rows()
        try:
            await self._append(rows)
        except Exception as e:
            HISTORY_WRITES.labels("failed").inc()
            log.error("HISTORY_WRITE_FAILED", timestamp=snapshot.timestamp, rows=len(rows), error=str(e), exc_info=True)
            if self._last_write == slot:
                self._last_write = None
            return
        HISTORY_WRITES.labels("ok").inc()
        log.info("HISTORY_SNAPSHOT_WRITTEN", timestamp=snapshot.timestamp, rows=len(rows))

    async def drain(self):
        """Wait for every outstanding write."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks))
