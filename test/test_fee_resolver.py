import pytest

from gaswatch.adapters.mock import MockRpcClient
from gaswatch.core.fee_resolver import FeeResolver, TotalChainFailure
from gaswatch.core.rpc import ProtocolError, TransportError

from conftest import PRIMARY, FALLBACK_1, FALLBACK_2, fee_history, gwei_hex


def script_evm(rpc, endpoint, gas_price, history=None, block_number=0x100, block=None):
    rpc.set_response(endpoint, "eth_gasPrice", gwei_hex(gas_price))
    rpc.set_response(endpoint, "eth_blockNumber", hex(block_number))
    if history is not None:
        rpc.set_response(endpoint, "eth_feeHistory", history)
    if block is not None:
        rpc.set_response(endpoint, "eth_getBlockByNumber", block)


def solana_fees(values, first_slot=1000):
    return [{"slot": first_slot + i, "prioritizationFee": v} for i, v in enumerate(values)]


@pytest.mark.asyncio
async def test_legacy_chain_uses_gas_price_only(legacy_chain):
    rpc = MockRpcClient()
    script_evm(rpc, legacy_chain.rpc_url, 3)
    sample = await FeeResolver(rpc).resolve(legacy_chain)
    assert sample.value == pytest.approx(3)
    assert "eth_feeHistory" not in rpc.calls_to(legacy_chain.rpc_url)


@pytest.mark.asyncio
async def test_eip1559_takes_max_of_legacy_and_fee_history(eip1559_chain):
    rpc = MockRpcClient()
    script_evm(rpc, PRIMARY, 20, history=fee_history([18, 25], [[1], [3]]))
    sample = await FeeResolver(rpc).resolve(eip1559_chain)
    assert sample.value == pytest.approx(27)
    assert sample.block_or_slot == 101

    _, method, params = rpc.calls[-1]
    assert method == "eth_feeHistory"
    assert params == ["0xa", "latest", [50]]


@pytest.mark.asyncio
async def test_rollup_near_zero_base_fee_does_not_under_report(eip1559_chain):
    rpc = MockRpcClient()
    script_evm(rpc, PRIMARY, 0.01, history=fee_history([0.000001], [[0]]))
    sample = await FeeResolver(rpc).resolve(eip1559_chain)
    assert sample.value == pytest.approx(0.01)


@pytest.mark.asyncio
async def test_fee_history_failure_keeps_legacy_price(eip1559_chain):
    rpc = MockRpcClient()
    script_evm(rpc, PRIMARY, 15)
    rpc.set_response(PRIMARY, "eth_feeHistory", ProtocolError("method not found", PRIMARY, "eth_feeHistory", code=-32601))
    sample = await FeeResolver(rpc).resolve(eip1559_chain)
    assert sample.value == pytest.approx(15)
    assert sample.block_or_slot is None
    assert rpc.calls_to(FALLBACK_1) == []


@pytest.mark.asyncio
async def test_fallback_result_equals_direct_fallback_resolution(eip1559_chain):
    history = fee_history([30, 31], [[2], [4]])

    rpc = MockRpcClient()
    rpc.fail_endpoint(PRIMARY)
    script_evm(rpc, FALLBACK_1, 28, history=history)
    via_fallback = await FeeResolver(rpc).resolve(eip1559_chain)

    direct_chain = eip1559_chain.model_copy(update={"rpc_url": FALLBACK_1, "fallback_rpc_urls": ()})
    direct_rpc = MockRpcClient()
    script_evm(direct_rpc, FALLBACK_1, 28, history=history)
    direct = await FeeResolver(direct_rpc).resolve(direct_chain)

    assert via_fallback.value == direct.value
    assert via_fallback.block_or_slot == direct.block_or_slot
    assert rpc.calls_to(FALLBACK_2) == []


@pytest.mark.asyncio
async def test_endpoints_tried_in_configured_order(eip1559_chain):
    rpc = MockRpcClient()
    rpc.fail_endpoint(PRIMARY)
    rpc.fail_endpoint(FALLBACK_1, ProtocolError("RPC returned non-JSON response: <html>", FALLBACK_1))
    script_evm(rpc, FALLBACK_2, 9)
    rpc.set_response(FALLBACK_2, "eth_feeHistory", fee_history([5], [[1]]))

    sample = await FeeResolver(rpc).resolve(eip1559_chain)
    assert sample.value == pytest.approx(9)
    assert [ep for ep, _, _ in rpc.calls][:2] == [PRIMARY, FALLBACK_1]


@pytest.mark.asyncio
async def test_malformed_result_triggers_fallback(eip1559_chain):
    rpc = MockRpcClient()
    rpc.set_response(PRIMARY, "eth_gasPrice", {"not": "a quantity"})
    script_evm(rpc, FALLBACK_1, 11)
    rpc.set_response(FALLBACK_1, "eth_feeHistory", TransportError("timed out", FALLBACK_1))
    sample = await FeeResolver(rpc).resolve(eip1559_chain)
    assert sample.value == pytest.approx(11)


@pytest.mark.asyncio
async def test_all_endpoints_down_resolves_to_none(eip1559_chain):
    rpc = MockRpcClient()
    for endpoint in eip1559_chain.endpoints:
        rpc.fail_endpoint(endpoint)
    assert await FeeResolver(rpc).resolve(eip1559_chain) is None
    assert [ep for ep, _, _ in rpc.calls] == list(eip1559_chain.endpoints)


@pytest.mark.asyncio
async def test_solana_median_of_positive_prioritization_fees(solana_chain):
    rpc = MockRpcClient()
    rpc.set_response(solana_chain.rpc_url, "getRecentPrioritizationFees", solana_fees([0, 0, 5, 10, 15]))
    sample = await FeeResolver(rpc).resolve(solana_chain)
    assert sample.value == 10
    assert sample.block_or_slot == 1004

    _, method, params = rpc.calls[0]
    assert method == "getRecentPrioritizationFees"
    assert params == [[]]


@pytest.mark.asyncio
async def test_solana_all_zero_fees_resolve_to_zero_not_none(solana_chain):
    rpc = MockRpcClient()
    rpc.set_response(solana_chain.rpc_url, "getRecentPrioritizationFees", solana_fees([0, 0, 0]))
    sample = await FeeResolver(rpc).resolve(solana_chain)
    assert sample is not None
    assert sample.value == 0


@pytest.mark.asyncio
async def test_solana_empty_fee_list_resolves_to_zero(solana_chain):
    rpc = MockRpcClient()
    rpc.set_response(solana_chain.rpc_url, "getRecentPrioritizationFees", [])
    sample = await FeeResolver(rpc).resolve(solana_chain)
    assert sample.value == 0
    assert sample.block_or_slot is None


@pytest.mark.asyncio
async def test_evm_estimate_with_percentiles(eip1559_chain):
    rpc = MockRpcClient()
    block = {"transactions": ["0x1"] * 150, "gasUsed": hex(12_000_000), "gasLimit": hex(30_000_000)}
    script_evm(rpc, PRIMARY, 22, history=fee_history([20], [[1, 2, 5]], ratios=[0.45]), block_number=0x1234, block=block)

    estimate = await FeeResolver(rpc).estimate(eip1559_chain)
    assert estimate.low == pytest.approx(21)
    assert estimate.average == pytest.approx(22)
    assert estimate.high == pytest.approx(25.3)
    assert estimate.base_fee == pytest.approx(20)
    assert estimate.block_or_slot == 0x1234
    assert estimate.network_stats.tx_count == 150
    assert estimate.network_stats.utilization == pytest.approx(45.0)

    history_params = [params for _, method, params in rpc.calls if method == "eth_feeHistory"]
    assert history_params == [["0x14", "latest", [10, 50, 90]]]


@pytest.mark.asyncio
async def test_evm_estimate_legacy_without_block_stats(legacy_chain):
    rpc = MockRpcClient()
    script_evm(rpc, legacy_chain.rpc_url, 30)
    rpc.set_response(legacy_chain.rpc_url, "eth_getBlockByNumber", TransportError("timed out"))

    estimate = await FeeResolver(rpc).estimate(legacy_chain)
    assert (estimate.low, estimate.average, estimate.high) == pytest.approx((25.5, 30, 34.5))
    assert estimate.base_fee is None
    assert estimate.network_stats.utilization == 0


@pytest.mark.asyncio
async def test_solana_estimate_survives_missing_performance_samples(solana_chain):
    rpc = MockRpcClient()
    rpc.set_response(solana_chain.rpc_url, "getRecentPrioritizationFees", solana_fees([0, 100, 200, 300]))
    rpc.set_response(solana_chain.rpc_url, "getSlot", 250_000_000)
    rpc.set_response(solana_chain.rpc_url, "getRecentPerformanceSamples", ProtocolError("unsupported"))

    estimate = await FeeResolver(rpc).estimate(solana_chain)
    assert estimate.average == pytest.approx(200)
    assert estimate.low == pytest.approx(170)
    assert estimate.high == pytest.approx(230)
    assert estimate.base_fee is None
    assert estimate.block_or_slot == 250_000_000
    assert estimate.network_stats.tx_count == 0


@pytest.mark.asyncio
async def test_solana_estimate_reports_tps(solana_chain):
    rpc = MockRpcClient()
    rpc.set_response(solana_chain.rpc_url, "getRecentPrioritizationFees", solana_fees([10]))
    rpc.set_response(solana_chain.rpc_url, "getSlot", 1)
    rpc.set_response(solana_chain.rpc_url, "getRecentPerformanceSamples",
                     [{"numTransactions": 180_000, "samplePeriodSecs": 60, "numSlots": 150, "slot": 1}])
    estimate = await FeeResolver(rpc).estimate(solana_chain)
    assert estimate.network_stats.tx_count == 3000


@pytest.mark.asyncio
async def test_estimate_raises_total_failure(solana_chain):
    rpc = MockRpcClient()
    for endpoint in solana_chain.endpoints:
        rpc.fail_endpoint(endpoint)
    with pytest.raises(TotalChainFailure) as excinfo:
        await FeeResolver(rpc).estimate(solana_chain)
    assert excinfo.value.chain_id == "solana"
    assert len(excinfo.value.errors) == 2


def test_swap_cost_native_per_family(eip1559_chain, solana_chain):
    resolver = FeeResolver(MockRpcClient())
    # 20 gwei * 150k gas = 0.003 ETH
    assert resolver.swap_cost_native(eip1559_chain, 20) == pytest.approx(0.003)
    # 5000 lamports + 1000 micro-lamports/CU * 200k CU = 5000 + 200 lamports
    assert resolver.swap_cost_native(solana_chain, 1000) == pytest.approx(5200 / 1e9)
