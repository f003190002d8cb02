# /gaswatch/core/config.py
from pydantic_settings import BaseSettings
from pydantic import SecretStr


class Settings(BaseSettings):
    # Chain table
    # JSON file with a list of chain objects; the built-in table is used when unset.
    CHAINS_FILE: str | None = None

    # RPC
    RPC_TIMEOUT_SECONDS: float = 10.0

    # Price API
    PRICE_API_URL: str = "https://api.coingecko.com/api/v3/simple/price"
    PRICE_API_KEY: SecretStr | None = None
    PRICE_CACHE_TTL_SECONDS: float = 120.0
    PRICE_TIMEOUT_SECONDS: float = 10.0

    # Swap cost model
    SWAP_GAS_LIMIT: int = 150_000
    SOLANA_BASE_FEE_LAMPORTS: int = 5_000

    # History
    DATA_DIR: str = "/tmp/gaswatch"
    HISTORY_MIN_INTERVAL_SECONDS: float = 300.0
    HISTORY_MAX_HOURS: float = 168.0
    HISTORY_MAX_POINTS: int = 200

    # Operational Settings
    LOG_LEVEL: str = "INFO"
    SENTRY_DSN: str | None = None
    COLLECT_INTERVAL_SECONDS: float = 60.0
    COLLECT_API_TOKEN: str | None = None
    API_HOST: str = "0.0.0.0"
    API_PORT: int = 8080

    @property
    def HISTORY_FILE(self) -> str:  # noqa: N802
        return f"{self.DATA_DIR.rstrip('/')}/gas_history.jsonl"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


try:
    settings = Settings()
except Exception as e:
    # Late import to avoid circular dependency only for logging the failure
    try:
        from gaswatch.core.logger import get_logger, configure_logging
        configure_logging()
        log = get_logger("GasWatch.Config")
        log.critical("FAILED_TO_LOAD_SETTINGS", error=str(e))
    except Exception:
        print("FAILED_TO_LOAD_SETTINGS", e)
    raise SystemExit(1)
