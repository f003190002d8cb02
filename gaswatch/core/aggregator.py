# /gaswatch/core/aggregator.py
# Fans out fee resolution and the price refresh, then joins them into one snapshot.
import asyncio
from typing import List

from gaswatch.core.chains import ChainConfig, ConfigurationError
from gaswatch.core.fee_resolver import FeeResolver
from gaswatch.core.history import HistoryRecorder
from gaswatch.core.logger import get_logger, COLLECTIONS
from gaswatch.core.models import ChainGasResult, FeeSample, GasSnapshot, now_ms
from gaswatch.core.price_oracle import PriceOracle

log = get_logger(__name__)


class GasAggregator:
    """
    One aggregation pass per ``collect_all()`` call.

    Chains whose every endpoint failed are left out of the snapshot. The only error
    raised to the caller is a ConfigurationError for an empty chain table.
    """

    def __init__(
        self,
        chains: List[ChainConfig],
        resolver: FeeResolver,
        oracle: PriceOracle,
        recorder: HistoryRecorder | None = None,
    ):
        self.chains = list(chains)
        self.resolver = resolver
        self.oracle = oracle
        self.recorder = recorder

    def _result(self, chain: ChainConfig, sample: FeeSample, price: float) -> ChainGasResult:
        swap_cost_usd = self.resolver.swap_cost_native(chain, sample.value) * price
        return ChainGasResult(
            chain_id=chain.id,
            name=chain.name,
            color=chain.color,
            native_token_symbol=chain.native_token_symbol,
            family=chain.family,
            representative_fee=sample.value,
            swap_cost_usd=max(swap_cost_usd, 0.0),
            token_price_usd=price,
            block_or_slot=sample.block_or_slot,
        )

    async def collect_all(self, record: bool = True) -> GasSnapshot:
        if not self.chains:
            raise ConfigurationError("No chains configured.")

        prices, *outcomes = await asyncio.gather(
            self.oracle.get_prices(),
            *(self.resolver.resolve(chain) for chain in self.chains),
            return_exceptions=True,
        )
        if isinstance(prices, BaseException):
            raise prices

        results = []
        for chain, outcome in zip(self.chains, outcomes):
            if isinstance(outcome, BaseException):
                log.error("CHAIN_RESOLUTION_CRASHED", chain=chain.id, error=str(outcome), exc_info=outcome)
                continue
            if outcome is None:
                continue
            price = prices.get(chain.native_token) or chain.fallback_price_usd
            results.append(self._result(chain, outcome, price))

        snapshot = GasSnapshot(timestamp=now_ms(), results=results)
        COLLECTIONS.inc()
        log.info("GAS_COLLECTION_COMPLETE", chains=len(results), configured=len(self.chains),
                 dropped=[c.id for c in self.chains if c.id not in {r.chain_id for r in results}])

        if record and self.recorder is not None:
            self.recorder.submit(snapshot)
        return snapshot
