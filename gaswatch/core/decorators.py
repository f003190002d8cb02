# /gaswatch/core/decorators.py
# Reusable decorators for operational resilience.
from tenacity import retry, stop_after_attempt, wait_exponential, before_sleep_log
from gaswatch.core.logger import get_logger
import logging

log = get_logger(__name__)

# History writes are retried; RPC and price calls are not (fallback handles those).
retriable_persistence = retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=0.5, min=0.5, max=4),
    before_sleep=before_sleep_log(log, logging.WARNING),
    reraise=True,
)
