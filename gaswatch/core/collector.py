# /gaswatch/core/collector.py
# Periodic driver for aggregation passes.
import asyncio

from gaswatch.core.aggregator import GasAggregator
from gaswatch.core.chains import ConfigurationError
from gaswatch.core.config import settings
from gaswatch.core.logger import get_logger, set_cycle_counter

log = get_logger(__name__)


class Collector:
    def __init__(self, aggregator: GasAggregator, interval: float | None = None):
        self.aggregator = aggregator
        self.interval = interval if interval is not None else settings.COLLECT_INTERVAL_SECONDS
        self.cycle_counter = 0
        self._stopped = asyncio.Event()

    def stop(self):
        self._stopped.set()

    async def run_once(self):
        self.cycle_counter += 1
        set_cycle_counter(self.cycle_counter)
        return await self.aggregator.collect_all()

    async def run_loop(self):
        """Collect every ``interval`` seconds until ``stop()`` is called."""
        log.info("COLLECTOR_STARTING_LOOP", interval=self.interval, chains=len(self.aggregator.chains))
        while not self._stopped.is_set():
            try:
                await self.run_once()
            except ConfigurationError as e:
                log.critical("COLLECTOR_HALTED_BAD_CONFIGURATION", error=str(e))
                raise
            except Exception as e:
                log.error("COLLECTOR_CYCLE_FAILED", error=str(e), exc_info=True)

            try:
                await asyncio.wait_for(self._stopped.wait(), timeout=self.interval)
            except asyncio.TimeoutError:
                pass
        log.warning("COLLECTOR_STOPPED", cycles=self.cycle_counter)
