# /gaswatch/core/fee_estimator.py
# Numeric reconciliation of heterogeneous fee signals.
# Everything here is pure: RPC payloads in, gwei / micro-lamport floats out.

import statistics
from typing import Any, Iterable, List, Sequence, Tuple

from web3 import Web3

from gaswatch.core.models import FeeHistory, NetworkStats

# Multipliers applied to the representative value when no percentile data exists.
TIER_BAND: Tuple[float, float, float] = (0.85, 1.0, 1.15)
REWARD_PERCENTILES: Tuple[int, int, int] = (10, 50, 90)

Tiers = Tuple[float, float, float]


def hex_to_int(value: Any) -> int:
    """Decode a JSON-RPC quantity. Some nodes return plain integers instead of hex strings."""
    if isinstance(value, bool):
        raise ValueError(f"Not a quantity: {value!r}")
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        return Web3.to_int(hexstr=value)
    raise ValueError(f"Not a quantity: {value!r}")


def wei_to_gwei(value: Any) -> float:
    return float(Web3.from_wei(hex_to_int(value), "gwei"))


def _mean(values: Sequence[float]) -> float:
    return sum(values) / len(values) if values else 0.0


def parse_fee_history(raw: Any) -> FeeHistory:
    """
    Convert an ``eth_feeHistory`` result into gwei floats.

    Raises:
        ValueError: the payload is not a well-formed fee history.
    """
    if not isinstance(raw, dict):
        raise ValueError("feeHistory result is not an object")
    try:
        base_fees = [wei_to_gwei(f) for f in raw["baseFeePerGas"]]
        rewards = [[wei_to_gwei(r) for r in row] for row in raw.get("reward") or []]
        ratios = [float(r) for r in raw.get("gasUsedRatio") or []]
        oldest = raw.get("oldestBlock")
        oldest_block = hex_to_int(oldest) if oldest is not None else None
    except (KeyError, TypeError) as e:
        raise ValueError(f"malformed feeHistory: {e}") from e
    if not base_fees:
        raise ValueError("feeHistory has no base fees")
    return FeeHistory(oldest_block=oldest_block, base_fees=base_fees, rewards=rewards, gas_used_ratio=ratios)


def mean_tip(history: FeeHistory, column: int = 0) -> float:
    """Mean of one reward-percentile column across the window."""
    tips = [row[column] for row in history.rewards if len(row) > column]
    if not tips:
        raise ValueError(f"feeHistory has no reward column {column}")
    return _mean(tips)


def representative_evm_fee(gas_price_gwei: float, history: FeeHistory | None) -> float:
    """
    Single comparable EVM fee in gwei.

    Takes the higher of the legacy gas price and ``latest base fee + mean tip``.
    Some rollups report a near-zero base fee in fee history while ``eth_gasPrice``
    carries the real floor.
    """
    if history is None:
        return gas_price_gwei
    try:
        fee_history_gwei = history.latest_base_fee + mean_tip(history, 0)
    except ValueError:
        return gas_price_gwei
    return max(fee_history_gwei, gas_price_gwei)


def median_priority_fee(fees: Iterable[float]) -> float:
    """Median of the strictly positive prioritization fees, ``0`` when there are none."""
    positive = sorted(f for f in fees if f > 0)
    if not positive:
        return 0.0
    return float(statistics.median(positive))


def band_tiers(average: float) -> Tiers:
    low_m, avg_m, high_m = TIER_BAND
    return average * low_m, average * avg_m, average * high_m


def _has_percentiles(history: FeeHistory | None) -> bool:
    if history is None or not history.rewards:
        return False
    return all(len(row) >= len(REWARD_PERCENTILES) for row in history.rewards)


def estimate_tiers(current_gas_price: float, history: FeeHistory | None = None) -> Tiers:
    """
    Low/average/high in gwei.

    With 10/50/90 reward percentiles each tier is ``base fee + mean tip``, floored by
    the banded legacy gas price. Without them the tiers are the band around the gas price.
    """
    if not _has_percentiles(history):
        return band_tiers(current_gas_price)

    base_fee = history.latest_base_fee
    floors = band_tiers(current_gas_price)
    return tuple(
        max(base_fee + mean_tip(history, column), floor)
        for column, floor in enumerate(floors)
    )


def evm_network_stats(block: dict | None, history: FeeHistory | None = None) -> NetworkStats:
    block = block or {}
    tx_count = len(block.get("transactions") or [])
    gas_used = hex_to_int(block.get("gasUsed") or 0)
    gas_limit = hex_to_int(block.get("gasLimit") or 0)

    if history is not None and history.gas_used_ratio:
        utilization = _mean(history.gas_used_ratio) * 100
    elif gas_limit > 0:
        utilization = gas_used / gas_limit * 100
    else:
        utilization = 0.0

    return NetworkStats(tx_count=tx_count, resource_used=gas_used, resource_limit=gas_limit, utilization=utilization)


def solana_tps(samples: Any) -> int:
    """Transactions per second from the most recent performance sample, ``0`` if unusable."""
    if not isinstance(samples, list) or not samples:
        return 0
    sample = samples[0]
    if not isinstance(sample, dict):
        return 0
    try:
        period = float(sample.get("samplePeriodSecs") or 0)
        count = float(sample.get("numTransactions") or 0)
    except (TypeError, ValueError):
        return 0
    if period <= 0:
        return 0
    return round(count / period)


def solana_network_stats(samples: Any) -> NetworkStats:
    return NetworkStats(tx_count=solana_tps(samples))


def prioritization_fees(raw: Any) -> Tuple[List[float], int | None]:
    """
    Extract fee values and the newest slot from ``getRecentPrioritizationFees``.

    Raises:
        ValueError: the payload is not a list of fee entries.
    """
    if not isinstance(raw, list):
        raise ValueError("getRecentPrioritizationFees result is not a list")
    try:
        fees = [float(entry["prioritizationFee"]) for entry in raw]
        slots = [int(entry["slot"]) for entry in raw if entry.get("slot") is not None]
    except (KeyError, TypeError, AttributeError) as e:
        raise ValueError(f"malformed prioritization fee entry: {e}") from e
    return fees, (max(slots) if slots else None)
