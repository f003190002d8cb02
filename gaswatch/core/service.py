# /gaswatch/core/service.py
# Wires the engine's components around one shared HTTP session.
from typing import List

import aiohttp

from gaswatch.adapters.history_store import HistoryStore, JsonlHistoryStore
from gaswatch.core.aggregator import GasAggregator
from gaswatch.core.chains import ChainConfig, get_chain, load_chains
from gaswatch.core.fee_resolver import FeeResolver
from gaswatch.core.history import HistoryRecorder
from gaswatch.core.logger import get_logger
from gaswatch.core.price_oracle import PriceOracle
from gaswatch.core.rpc import RpcClient

log = get_logger(__name__)


class GasWatchService:
    def __init__(
        self,
        chains: List[ChainConfig],
        rpc: RpcClient,
        oracle: PriceOracle,
        store: HistoryStore,
        recorder: HistoryRecorder | None = None,
        session: aiohttp.ClientSession | None = None,
    ):
        self.chains = chains
        self.rpc = rpc
        self.oracle = oracle
        self.store = store
        self.recorder = recorder or HistoryRecorder(store)
        self.resolver = FeeResolver(rpc)
        self.aggregator = GasAggregator(chains, self.resolver, oracle, recorder=self.recorder)
        self._session = session

    def chain(self, chain_id: str) -> ChainConfig | None:
        return get_chain(self.chains, chain_id)

    async def close(self):
        await self.recorder.drain()
        await self.rpc.close()
        await self.oracle.close()
        if self._session is not None and not self._session.closed:
            await self._session.close()
        log.info("GASWATCH_SERVICE_CLOSED")


def build_service(chains: List[ChainConfig] | None = None, store: HistoryStore | None = None) -> GasWatchService:
    """Production wiring. Must be called from inside a running event loop."""
    chains = chains if chains is not None else load_chains()
    session = aiohttp.ClientSession()
    service = GasWatchService(
        chains=chains,
        rpc=RpcClient(session=session),
        oracle=PriceOracle(chains, session=session),
        store=store or JsonlHistoryStore(),
        session=session,
    )
    log.info("GASWATCH_SERVICE_INITIALIZED", chains=[c.id for c in chains])
    return service
