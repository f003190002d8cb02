import pytest

from gaswatch.core.fee_estimator import (
    band_tiers,
    estimate_tiers,
    evm_network_stats,
    hex_to_int,
    median_priority_fee,
    parse_fee_history,
    prioritization_fees,
    representative_evm_fee,
    solana_network_stats,
    wei_to_gwei,
)

from conftest import fee_history, gwei_hex


def test_legacy_chain_tiers_are_fixed_band():
    low, average, high = estimate_tiers(30.0, None)
    assert low == pytest.approx(25.5)
    assert average == pytest.approx(30.0)
    assert high == pytest.approx(34.5)


def test_eip1559_tiers_take_max_of_fee_history_and_floor():
    history = parse_fee_history(fee_history([20, 20], [[1, 2, 5], [1, 2, 5]]))
    low, average, high = estimate_tiers(22.0, history)
    assert low == pytest.approx(21.0)
    assert average == pytest.approx(22.0)
    assert high == pytest.approx(25.3)


@pytest.mark.parametrize(
    "base_fees,rewards,gas_price",
    [
        ([0.001], [[0, 0, 0]], 0.1),          # rollup reporting near-zero base fee
        ([50, 10], [[0.5, 1, 2]], 40),        # base fee dropped since the window started
        ([5], [[100, 200, 300]], 1),          # tips dominate
        ([1, 2, 3], [[0, 0, 0], [0, 0, 0], [9, 9, 9]], 7),
    ],
)
def test_eip1559_floor_policy_holds_for_any_history(base_fees, rewards, gas_price):
    history = parse_fee_history(fee_history(base_fees, rewards))
    low, average, high = estimate_tiers(gas_price, history)
    assert average >= gas_price
    assert low >= gas_price * 0.85
    assert high >= gas_price * 1.15


def test_incomplete_percentiles_fall_back_to_band():
    history = parse_fee_history(fee_history([20], [[1]]))
    assert estimate_tiers(10.0, history) == pytest.approx(band_tiers(10.0))


def test_representative_fee_prefers_higher_of_legacy_and_history():
    low_base = parse_fee_history(fee_history([0.001, 0.001], [[0.0005], [0.0015]]))
    assert representative_evm_fee(0.05, low_base) == pytest.approx(0.05)

    busy = parse_fee_history(fee_history([20, 30], [[1], [3]]))
    assert representative_evm_fee(25, busy) == pytest.approx(32)


def test_representative_fee_without_history_is_gas_price():
    assert representative_evm_fee(12.5, None) == 12.5


def test_representative_fee_ignores_history_without_rewards():
    history = parse_fee_history({"baseFeePerGas": [gwei_hex(40)], "gasUsedRatio": []})
    assert representative_evm_fee(12.5, history) == 12.5


def test_solana_median_of_positive_fees():
    assert median_priority_fee([0, 0, 5, 10, 15]) == 10


@pytest.mark.parametrize("fees", [[], [0, 0, 0]])
def test_solana_median_is_zero_without_positive_fees(fees):
    assert median_priority_fee(fees) == 0


def test_solana_median_is_never_negative():
    assert median_priority_fee([-5, 0, 3]) == 3


def test_parse_fee_history_converts_to_gwei_and_latest_block():
    history = parse_fee_history(fee_history([10, 12], [[1], [2]], ratios=[0.4, 0.6], oldest_block=0x10))
    assert history.base_fees == pytest.approx([10, 12])
    assert history.latest_base_fee == pytest.approx(12)
    assert history.latest_block == 0x11


@pytest.mark.parametrize("raw", [None, [], {"reward": []}, {"baseFeePerGas": []}, {"baseFeePerGas": ["zz"]}])
def test_parse_fee_history_rejects_malformed(raw):
    with pytest.raises(ValueError):
        parse_fee_history(raw)


def test_quantity_decoding():
    assert hex_to_int("0x1a") == 26
    assert hex_to_int(26) == 26
    assert wei_to_gwei(gwei_hex(3.5)) == pytest.approx(3.5)
    with pytest.raises(ValueError):
        hex_to_int(None)


def test_evm_stats_from_block():
    block = {"transactions": ["0x1", "0x2", "0x3"], "gasUsed": hex(15_000_000), "gasLimit": hex(30_000_000)}
    stats = evm_network_stats(block)
    assert stats.tx_count == 3
    assert stats.resource_used == 15_000_000
    assert stats.resource_limit == 30_000_000
    assert stats.utilization == pytest.approx(50.0)


def test_evm_stats_prefer_fee_history_utilization():
    history = parse_fee_history(fee_history([1, 1], [[1], [1]], ratios=[0.2, 0.4]))
    block = {"transactions": [], "gasUsed": hex(1), "gasLimit": hex(100)}
    assert evm_network_stats(block, history).utilization == pytest.approx(30.0)


def test_evm_stats_without_block_or_limit():
    stats = evm_network_stats(None)
    assert stats.tx_count == 0
    assert stats.utilization == 0


def test_solana_tps_from_latest_sample():
    samples = [{"numTransactions": 120_000, "samplePeriodSecs": 60, "slot": 1}]
    assert solana_network_stats(samples).tx_count == 2000


@pytest.mark.parametrize("samples", [None, [], [{"numTransactions": 10, "samplePeriodSecs": 0}], ["junk"]])
def test_solana_tps_defaults_to_zero(samples):
    assert solana_network_stats(samples).tx_count == 0


def test_prioritization_fees_extracts_values_and_newest_slot():
    fees, slot = prioritization_fees([
        {"slot": 10, "prioritizationFee": 0},
        {"slot": 12, "prioritizationFee": 500},
        {"slot": 11, "prioritizationFee": 100},
    ])
    assert fees == [0, 500, 100]
    assert slot == 12


def test_prioritization_fees_rejects_non_list():
    with pytest.raises(ValueError):
        prioritization_fees({"error": "nope"})
