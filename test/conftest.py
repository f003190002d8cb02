import pytest

from gaswatch.core.chains import ChainConfig, ChainFamily

PRIMARY = "https://primary.rpc"
FALLBACK_1 = "https://fallback-1.rpc"
FALLBACK_2 = "https://fallback-2.rpc"


def gwei_hex(gwei: float) -> str:
    """Encode a gwei amount as a JSON-RPC wei quantity."""
    return hex(round(gwei * 10**9))


def fee_history(base_fees, rewards, ratios=None, oldest_block=100):
    return {
        "oldestBlock": hex(oldest_block),
        "baseFeePerGas": [gwei_hex(b) for b in base_fees],
        "reward": [[gwei_hex(t) for t in row] for row in rewards],
        "gasUsedRatio": ratios if ratios is not None else [0.5] * len(rewards),
    }


@pytest.fixture
def eip1559_chain():
    return ChainConfig(
        id="ethereum", name="Ethereum", native_token="ethereum", native_token_symbol="ETH",
        rpc_url=PRIMARY, fallback_rpc_urls=(FALLBACK_1, FALLBACK_2),
        is_eip1559=True, fallback_price_usd=2500,
    )


@pytest.fixture
def legacy_chain():
    return ChainConfig(
        id="bsc", name="BNB Chain", native_token="binancecoin", native_token_symbol="BNB",
        rpc_url="https://bsc.rpc", is_eip1559=False, fallback_price_usd=600,
    )


@pytest.fixture
def solana_chain():
    return ChainConfig(
        id="solana", name="Solana", native_token="solana", native_token_symbol="SOL",
        rpc_url="https://solana.rpc", fallback_rpc_urls=("https://solana-backup.rpc",),
        family=ChainFamily.SOLANA, solana_signatures=1, solana_compute_units=200_000,
        fallback_price_usd=150,
    )
