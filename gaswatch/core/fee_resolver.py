# /gaswatch/core/fee_resolver.py
# Per-chain fee resolution with endpoint fallback.
# Each chain family is a FeeStrategy; the resolver only walks endpoints.

import asyncio
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Dict, List, TypeVar

from gaswatch.core.chains import ChainConfig, ChainFamily
from gaswatch.core.config import settings
from gaswatch.core.fee_estimator import (
    band_tiers,
    estimate_tiers,
    evm_network_stats,
    median_priority_fee,
    parse_fee_history,
    prioritization_fees,
    representative_evm_fee,
    solana_network_stats,
    wei_to_gwei,
    hex_to_int,
    REWARD_PERCENTILES,
)
from gaswatch.core.logger import get_logger, ENDPOINT_FAILURES, CHAIN_FAILURES
from gaswatch.core.models import FeeHistory, FeeSample, NetworkStats, TieredEstimate
from gaswatch.core.rpc import RpcClient, RpcError, ProtocolError

log = get_logger(__name__)

T = TypeVar("T")

SAMPLE_FEE_HISTORY_BLOCKS = 10
ESTIMATE_FEE_HISTORY_BLOCKS = 20


class TotalChainFailure(Exception):
    """Every endpoint configured for a chain failed."""

    def __init__(self, chain_id: str, errors: List[RpcError]):
        super().__init__(f"All {len(errors)} endpoint(s) failed for chain {chain_id}")
        self.chain_id = chain_id
        self.errors = errors


def _decode(parse: Callable[[Any], T], raw: Any, endpoint: str, method: str) -> T:
    """Run a payload parser, turning malformed results into a ProtocolError."""
    try:
        return parse(raw)
    except (ValueError, TypeError) as e:
        raise ProtocolError(f"malformed {method} result: {e}", endpoint, method) from e


async def _gather_or_raise(*calls: Awaitable[Any]) -> List[Any]:
    results = await asyncio.gather(*calls, return_exceptions=True)
    for result in results:
        if isinstance(result, BaseException):
            raise result
    return results


class FeeStrategy(ABC):
    """
    Fee logic for one chain family, always against a single endpoint.
    Implementations raise RpcError on any endpoint failure so the resolver can fall back.
    """
    family: ChainFamily

    def __init__(self, rpc: RpcClient):
        self.rpc = rpc

    @abstractmethod
    async def sample(self, chain: ChainConfig, endpoint: str) -> FeeSample:
        """Representative fee for the aggregation pass."""

    @abstractmethod
    async def estimate(self, chain: ChainConfig, endpoint: str) -> TieredEstimate:
        """Low/average/high tiers plus network statistics."""

    @abstractmethod
    def swap_cost_native(self, chain: ChainConfig, fee: float) -> float:
        """Cost of a representative swap in whole native tokens."""


class EvmFeeStrategy(FeeStrategy):
    family = ChainFamily.EVM

    def __init__(self, rpc: RpcClient, swap_gas_limit: int | None = None):
        super().__init__(rpc)
        self.swap_gas_limit = swap_gas_limit or settings.SWAP_GAS_LIMIT

    async def _gas_price(self, endpoint: str) -> float:
        raw = await self.rpc.call(endpoint, "eth_gasPrice")
        return _decode(wei_to_gwei, raw, endpoint, "eth_gasPrice")

    async def _fee_history(self, chain: ChainConfig, endpoint: str, blocks: int, percentiles: List[int]) -> FeeHistory | None:
        if not chain.is_eip1559:
            return None
        try:
            raw = await self.rpc.call(endpoint, "eth_feeHistory", [hex(blocks), "latest", percentiles])
            return parse_fee_history(raw)
        except (RpcError, ValueError) as e:
            # Legacy gas price alone is still a valid answer.
            log.info("FEE_HISTORY_UNAVAILABLE", chain=chain.id, endpoint=endpoint, error=str(e))
            return None

    async def sample(self, chain: ChainConfig, endpoint: str) -> FeeSample:
        gas_price = await self._gas_price(endpoint)
        history = await self._fee_history(chain, endpoint, SAMPLE_FEE_HISTORY_BLOCKS, [50])
        return FeeSample(
            chain_id=chain.id,
            value=representative_evm_fee(gas_price, history),
            block_or_slot=history.latest_block if history else None,
        )

    async def estimate(self, chain: ChainConfig, endpoint: str) -> TieredEstimate:
        block_hex, gas_price = await _gather_or_raise(
            self.rpc.call(endpoint, "eth_blockNumber"),
            self._gas_price(endpoint),
        )
        block_number = _decode(hex_to_int, block_hex, endpoint, "eth_blockNumber")
        history = await self._fee_history(chain, endpoint, ESTIMATE_FEE_HISTORY_BLOCKS, list(REWARD_PERCENTILES))
        low, average, high = estimate_tiers(gas_price, history)

        try:
            block = await self.rpc.call(endpoint, "eth_getBlockByNumber", ["latest", False])
            stats = evm_network_stats(block if isinstance(block, dict) else None, history)
        except (RpcError, ValueError) as e:
            log.info("BLOCK_STATS_UNAVAILABLE", chain=chain.id, endpoint=endpoint, error=str(e))
            stats = evm_network_stats(None, history)

        return TieredEstimate(
            chain_id=chain.id,
            low=low,
            average=average,
            high=high,
            base_fee=history.latest_base_fee if history else None,
            block_or_slot=block_number,
            network_stats=stats,
        )

    def swap_cost_native(self, chain: ChainConfig, fee: float) -> float:
        return fee * self.swap_gas_limit / 1e9


class SolanaFeeStrategy(FeeStrategy):
    family = ChainFamily.SOLANA

    def __init__(self, rpc: RpcClient, base_fee_lamports: int | None = None):
        super().__init__(rpc)
        self.base_fee_lamports = base_fee_lamports if base_fee_lamports is not None else settings.SOLANA_BASE_FEE_LAMPORTS

    async def _prioritization_fees(self, endpoint: str):
        # Empty account list: fees across the whole cluster.
        raw = await self.rpc.call(endpoint, "getRecentPrioritizationFees", [[]])
        return _decode(prioritization_fees, raw, endpoint, "getRecentPrioritizationFees")

    async def _network_stats(self, chain: ChainConfig, endpoint: str) -> NetworkStats:
        try:
            samples = await self.rpc.call(endpoint, "getRecentPerformanceSamples", [1])
        except RpcError as e:
            log.info("PERFORMANCE_SAMPLES_UNAVAILABLE", chain=chain.id, endpoint=endpoint, error=str(e))
            return NetworkStats()
        return solana_network_stats(samples)

    async def sample(self, chain: ChainConfig, endpoint: str) -> FeeSample:
        fees, slot = await self._prioritization_fees(endpoint)
        return FeeSample(chain_id=chain.id, value=median_priority_fee(fees), block_or_slot=slot)

    async def estimate(self, chain: ChainConfig, endpoint: str) -> TieredEstimate:
        (fees, _), slot = await _gather_or_raise(
            self._prioritization_fees(endpoint),
            self.rpc.call(endpoint, "getSlot"),
        )
        low, average, high = band_tiers(median_priority_fee(fees))
        return TieredEstimate(
            chain_id=chain.id,
            low=low,
            average=average,
            high=high,
            block_or_slot=_decode(hex_to_int, slot, endpoint, "getSlot"),
            network_stats=await self._network_stats(chain, endpoint),
        )

    def swap_cost_native(self, chain: ChainConfig, fee: float) -> float:
        # fee is micro-lamports per compute unit
        lamports = self.base_fee_lamports * chain.solana_signatures + fee * chain.solana_compute_units / 1e6
        return lamports / 1e9


def default_strategies(rpc: RpcClient) -> Dict[ChainFamily, FeeStrategy]:
    return {strategy.family: strategy for strategy in (EvmFeeStrategy(rpc), SolanaFeeStrategy(rpc))}


class FeeResolver:
    """Resolves one chain at a time, trying the primary endpoint and then each fallback in order."""

    def __init__(self, rpc: RpcClient, strategies: Dict[ChainFamily, FeeStrategy] | None = None):
        self.rpc = rpc
        self.strategies = strategies or default_strategies(rpc)

    def strategy_for(self, chain: ChainConfig) -> FeeStrategy:
        return self.strategies[chain.family]

    async def _first_success(self, chain: ChainConfig, attempt: Callable[[str], Awaitable[T]]) -> T:
        errors: List[RpcError] = []
        for endpoint in chain.endpoints:
            try:
                return await attempt(endpoint)
            except RpcError as e:
                errors.append(e)
                ENDPOINT_FAILURES.labels(chain.id).inc()
                log.warning("CHAIN_ENDPOINT_FAILED", chain=chain.id, endpoint=endpoint,
                            method=e.method, error=str(e), error_type=type(e).__name__)
        raise TotalChainFailure(chain.id, errors)

    async def resolve(self, chain: ChainConfig) -> FeeSample | None:
        """Representative fee, or ``None`` when every endpoint failed."""
        strategy = self.strategy_for(chain)
        try:
            sample = await self._first_success(chain, lambda endpoint: strategy.sample(chain, endpoint))
        except TotalChainFailure as e:
            CHAIN_FAILURES.labels(chain.id).inc()
            log.error("CHAIN_RESOLUTION_FAILED", chain=chain.id, endpoints=len(e.errors), error=str(e))
            return None
        log.debug("CHAIN_FEE_RESOLVED", chain=chain.id, value=sample.value, block_or_slot=sample.block_or_slot)
        return sample

    async def estimate(self, chain: ChainConfig) -> TieredEstimate:
        """
        Tiered estimate for one chain.

        Raises:
            TotalChainFailure: every endpoint failed.
        """
        strategy = self.strategy_for(chain)
        return await self._first_success(chain, lambda endpoint: strategy.estimate(chain, endpoint))

    def swap_cost_native(self, chain: ChainConfig, fee: float) -> float:
        return self.strategy_for(chain).swap_cost_native(chain, fee)
