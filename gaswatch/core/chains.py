# /gaswatch/core/chains.py
# Static chain table. Loaded once at startup and never mutated.
import json
from enum import Enum
from pathlib import Path
from typing import List, Tuple

from pydantic import BaseModel, ConfigDict, Field

from gaswatch.core.config import settings
from gaswatch.core.logger import get_logger

log = get_logger(__name__)


class ConfigurationError(Exception):
    """Raised when the chain table cannot be used for aggregation."""


class ChainFamily(str, Enum):
    EVM = "evm"
    SOLANA = "solana"


class ChainConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    color: str = "#888888"
    native_token: str
    native_token_symbol: str
    rpc_url: str
    fallback_rpc_urls: Tuple[str, ...] = ()
    family: ChainFamily = ChainFamily.EVM
    is_eip1559: bool = False
    solana_signatures: int = Field(default=1, ge=1)
    solana_compute_units: int = Field(default=200_000, ge=0)
    fallback_price_usd: float = Field(gt=0)

    @property
    def endpoints(self) -> Tuple[str, ...]:
        """Primary endpoint followed by the fallbacks, in the order they are tried."""
        return (self.rpc_url, *self.fallback_rpc_urls)


DEFAULT_CHAINS: List[ChainConfig] = [
    ChainConfig(
        id="ethereum", name="Ethereum", color="#627EEA",
        native_token="ethereum", native_token_symbol="ETH",
        rpc_url="https://ethereum-rpc.publicnode.com",
        fallback_rpc_urls=("https://eth.llamarpc.com", "https://rpc.ankr.com/eth"),
        is_eip1559=True, fallback_price_usd=2500,
    ),
    ChainConfig(
        id="base", name="Base", color="#0052FF",
        native_token="ethereum", native_token_symbol="ETH",
        rpc_url="https://mainnet.base.org",
        fallback_rpc_urls=("https://base.llamarpc.com", "https://base.drpc.org"),
        is_eip1559=True, fallback_price_usd=2500,
    ),
    ChainConfig(
        id="arbitrum", name="Arbitrum", color="#28A0F0",
        native_token="ethereum", native_token_symbol="ETH",
        rpc_url="https://arb1.arbitrum.io/rpc",
        fallback_rpc_urls=("https://arbitrum-one.publicnode.com",),
        is_eip1559=True, fallback_price_usd=2500,
    ),
    ChainConfig(
        id="optimism", name="Optimism", color="#FF0420",
        native_token="ethereum", native_token_symbol="ETH",
        rpc_url="https://mainnet.optimism.io",
        fallback_rpc_urls=("https://optimism.publicnode.com",),
        is_eip1559=True, fallback_price_usd=2500,
    ),
    ChainConfig(
        id="polygon", name="Polygon", color="#8247E5",
        native_token="matic-network", native_token_symbol="POL",
        rpc_url="https://polygon-bor-rpc.publicnode.com",
        fallback_rpc_urls=("https://1rpc.io/matic",),
        is_eip1559=True, fallback_price_usd=0.35,
    ),
    ChainConfig(
        id="bsc", name="BNB Chain", color="#F0B90B",
        native_token="binancecoin", native_token_symbol="BNB",
        rpc_url="https://bsc-dataseed.bnbchain.org",
        fallback_rpc_urls=("https://bsc-rpc.publicnode.com",),
        is_eip1559=False, fallback_price_usd=600,
    ),
    ChainConfig(
        id="avalanche", name="Avalanche", color="#E84142",
        native_token="avalanche-2", native_token_symbol="AVAX",
        rpc_url="https://api.avax.network/ext/bc/C/rpc",
        fallback_rpc_urls=("https://avalanche-c-chain-rpc.publicnode.com",),
        is_eip1559=True, fallback_price_usd=25,
    ),
    ChainConfig(
        id="berachain", name="Berachain", color="#814625",
        native_token="berachain-bera", native_token_symbol="BERA",
        rpc_url="https://rpc.berachain.com",
        fallback_rpc_urls=("https://berachain-rpc.publicnode.com",),
        is_eip1559=True, fallback_price_usd=4,
    ),
    ChainConfig(
        id="gnosis", name="Gnosis", color="#04795B",
        native_token="xdai", native_token_symbol="xDAI",
        rpc_url="https://rpc.gnosischain.com",
        fallback_rpc_urls=("https://gnosis-rpc.publicnode.com",),
        is_eip1559=True, fallback_price_usd=1.0,
    ),
    ChainConfig(
        id="mantle", name="Mantle", color="#65B3AE",
        native_token="mantle", native_token_symbol="MNT",
        rpc_url="https://rpc.mantle.xyz",
        fallback_rpc_urls=("https://mantle-rpc.publicnode.com",),
        is_eip1559=True, fallback_price_usd=0.75,
    ),
    ChainConfig(
        id="celo", name="Celo", color="#FCFF52",
        native_token="celo", native_token_symbol="CELO",
        rpc_url="https://forno.celo.org",
        fallback_rpc_urls=("https://celo-rpc.publicnode.com",),
        is_eip1559=True, fallback_price_usd=0.5,
    ),
    ChainConfig(
        id="solana", name="Solana", color="#14F195",
        native_token="solana", native_token_symbol="SOL",
        rpc_url="https://api.mainnet-beta.solana.com",
        fallback_rpc_urls=("https://solana-rpc.publicnode.com",),
        family=ChainFamily.SOLANA,
        solana_signatures=1, solana_compute_units=200_000,
        fallback_price_usd=150,
    ),
]


def validate_chains(chains: List[ChainConfig]) -> List[ChainConfig]:
    if not chains:
        raise ConfigurationError("No chains configured.")
    seen = set()
    for chain in chains:
        if chain.id in seen:
            raise ConfigurationError(f"Duplicate chain id: {chain.id}")
        seen.add(chain.id)
    return chains


def load_chains(path: str | None = None) -> List[ChainConfig]:
    """Load the chain table from a JSON file, or return the built-in table.

    The file must hold a JSON list of objects with the ``ChainConfig`` fields.
    """
    path = path if path is not None else settings.CHAINS_FILE
    if not path:
        return validate_chains(list(DEFAULT_CHAINS))

    try:
        raw = json.loads(Path(path).read_text(encoding="utf-8"))
        if not isinstance(raw, list):
            raise ConfigurationError(f"{path} must contain a JSON list of chains")
        chains = [ChainConfig.model_validate(item) for item in raw]
    except (OSError, ValueError) as e:
        log.critical("CHAINS_FILE_INVALID", path=path, error=str(e))
        raise ConfigurationError(f"Could not load chains from {path}: {e}") from e

    log.info("CHAINS_LOADED", path=path, count=len(chains))
    return validate_chains(chains)


def get_chain(chains: List[ChainConfig], chain_id: str) -> ChainConfig | None:
    return next((c for c in chains if c.id == chain_id), None)
