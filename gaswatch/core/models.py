# /gaswatch/core/models.py
import time
from typing import Dict, List

from pydantic import BaseModel, ConfigDict, Field

from gaswatch.core.chains import ChainFamily


def now_ms() -> int:
    return int(time.time() * 1000)


class FeeSample(BaseModel):
    """
    One representative fee observation for a chain.
    ``value`` is gwei for EVM chains and micro-lamports per compute unit for Solana.
    """
    model_config = ConfigDict(frozen=True)

    chain_id: str
    value: float = Field(ge=0)
    timestamp: int = Field(default_factory=now_ms)
    block_or_slot: int | None = None


class FeeHistory(BaseModel):
    """Parsed ``eth_feeHistory`` response, fees in gwei."""
    model_config = ConfigDict(frozen=True)

    oldest_block: int | None = None
    base_fees: List[float]
    rewards: List[List[float]] = Field(default_factory=list)
    gas_used_ratio: List[float] = Field(default_factory=list)

    @property
    def latest_base_fee(self) -> float:
        return self.base_fees[-1]

    @property
    def latest_block(self) -> int | None:
        if self.oldest_block is None or not self.gas_used_ratio:
            return None
        return self.oldest_block + len(self.gas_used_ratio) - 1


class NetworkStats(BaseModel):
    model_config = ConfigDict(frozen=True)

    tx_count: int = 0
    resource_used: int = 0
    resource_limit: int = 0
    utilization: float = 0.0


class TieredEstimate(BaseModel):
    model_config = ConfigDict(frozen=True)

    chain_id: str
    low: float
    average: float
    high: float
    base_fee: float | None = None
    block_or_slot: int | None = None
    timestamp: int = Field(default_factory=now_ms)
    network_stats: NetworkStats = Field(default_factory=NetworkStats)


class ChainGasResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    chain_id: str
    name: str
    color: str
    native_token_symbol: str
    family: ChainFamily
    representative_fee: float
    swap_cost_usd: float = Field(ge=0)
    token_price_usd: float
    block_or_slot: int | None = None


class GasSnapshot(BaseModel):
    model_config = ConfigDict(frozen=True)

    timestamp: int
    results: List[ChainGasResult]

    def to_history_rows(self) -> List["HistoryRow"]:
        return [
            HistoryRow(
                chain=r.chain_id,
                avg_fee_value=r.representative_fee,
                swap_cost_usd=r.swap_cost_usd,
                token_price_usd=r.token_price_usd,
                block_or_slot=r.block_or_slot,
                timestamp=self.timestamp,
            )
            for r in self.results
        ]


class HistoryRow(BaseModel):
    model_config = ConfigDict(frozen=True)

    chain: str
    avg_fee_value: float
    swap_cost_usd: float
    token_price_usd: float
    block_or_slot: int | None = None
    timestamp: int


class ChainHistoryPoint(BaseModel):
    timestamp: int
    low: float
    average: float
    high: float


class CrossChainHistoryPoint(BaseModel):
    timestamp: int
    chains: Dict[str, float]
