# /gaswatch/core/config_validator.py
# Run at startup to validate the settings and the chain table.
from typing import List

from gaswatch.core.chains import ChainConfig, ChainFamily, load_chains
from gaswatch.core.config import settings
from gaswatch.core.logger import log


def validate() -> List[ChainConfig]:
    log.info("--- CONFIG VALIDATION START ---")
    errors = []
    chains = load_chains()

    for chain in chains:
        for endpoint in chain.endpoints:
            if not endpoint.startswith(("http://", "https://")):
                errors.append(f"Chain {chain.id}: endpoint is not an HTTP(S) URL: {endpoint}")
        if chain.family == ChainFamily.SOLANA and chain.is_eip1559:
            errors.append(f"Chain {chain.id}: EIP-1559 flag set on a Solana chain")

    if settings.RPC_TIMEOUT_SECONDS <= 0:
        errors.append("RPC_TIMEOUT_SECONDS must be positive")
    if settings.HISTORY_MAX_POINTS <= 0:
        errors.append("HISTORY_MAX_POINTS must be positive")
    if not settings.COLLECT_API_TOKEN:
        log.warning("COLLECT_API_TOKEN_NOT_SET", detail="/collect will reject every request")

    if errors:
        for error in errors:
            log.critical(error)
        raise ValueError("System configuration is incomplete. Halting.")

    log.info("--- CONFIG VALIDATION PASSED ---", chains=len(chains))
    return chains


if __name__ == "__main__":
    validate()
