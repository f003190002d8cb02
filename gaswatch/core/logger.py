# /gaswatch/core/logger.py
import logging
import structlog
from structlog.contextvars import bind_contextvars
import sentry_sdk
from prometheus_client import Counter
from gaswatch.core.config import settings

# --- Prometheus Metrics ---
RPC_REQUESTS = Counter("gaswatch_rpc_requests_total", "JSON-RPC requests issued", ["method", "outcome"])
ENDPOINT_FAILURES = Counter("gaswatch_endpoint_failures_total", "Per-endpoint failures during fee resolution", ["chain"])
CHAIN_FAILURES = Counter("gaswatch_chain_failures_total", "Chains dropped because every endpoint failed", ["chain"])
PRICE_REFRESHES = Counter("gaswatch_price_refreshes_total", "Price table refresh attempts", ["outcome"])
COLLECTIONS = Counter("gaswatch_collections_total", "Aggregation passes completed")
HISTORY_WRITES = Counter("gaswatch_history_writes_total", "History snapshot writes", ["outcome"])


def configure_logging():
    if settings.SENTRY_DSN:
        sentry_sdk.init(dsn=settings.SENTRY_DSN, traces_sample_rate=1.0)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            structlog.processors.format_exc_info,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(logging.getLevelName(settings.LOG_LEVEL.upper())),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str):
    return structlog.get_logger(name)


def set_cycle_counter(counter: int):
    bind_contextvars(cycle_counter=counter)


configure_logging()
log = get_logger("GasWatch.System")
