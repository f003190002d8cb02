# /gaswatch/adapters/mock.py
# In-process stand-ins for the network and the history store, used by tests
# and for running the engine offline.

import asyncio
from typing import Any, Dict, List, Sequence, Tuple

from gaswatch.adapters.history_store import HistoryStore
from gaswatch.core.logger import get_logger
from gaswatch.core.models import HistoryRow
from gaswatch.core.price_oracle import PriceOracle, PriceUnavailable
from gaswatch.core.rpc import RpcClient, TransportError

log = get_logger(__name__)


class MockRpcClient(RpcClient):
    """
    Scripted JSON-RPC client.
    Responses are keyed by (endpoint, method). A value that is an exception instance
    is raised instead of returned; a callable is called with the params.
    Unscripted calls fail like an unreachable endpoint.
    """

    def __init__(self, responses: Dict[Tuple[str, str], Any] | None = None):
        self.responses: Dict[Tuple[str, str], Any] = dict(responses or {})
        self.calls: List[Tuple[str, str, list]] = []

    def set_response(self, endpoint: str, method: str, value: Any):
        self.responses[(endpoint, method)] = value

    def fail_endpoint(self, endpoint: str, error: Exception | None = None):
        """Make every method on ``endpoint`` fail."""
        self.responses[(endpoint, "*")] = error or TransportError("timed out", endpoint)

    async def call(self, endpoint: str, method: str, params: list | None = None) -> Any:
        params = params or []
        self.calls.append((endpoint, method, params))
        key = (endpoint, method)
        if (endpoint, "*") in self.responses:
            key = (endpoint, "*")
        if key not in self.responses:
            raise TransportError(f"no scripted response for {method}", endpoint, method)
        value = self.responses[key]
        if isinstance(value, Exception):
            raise value
        if callable(value):
            return value(params)
        return value

    def calls_to(self, endpoint: str) -> List[str]:
        return [method for ep, method, _ in self.calls if ep == endpoint]

    async def close(self):
        pass


class InMemoryHistoryStore(HistoryStore):
    def __init__(self, rows: Sequence[HistoryRow] = (), fail_times: int = 0):
        self._rows: List[HistoryRow] = list(rows)
        self.fail_times = fail_times
        self.append_calls = 0

    async def append(self, rows: Sequence[HistoryRow]) -> None:
        self.append_calls += 1
        if self.fail_times > 0:
            self.fail_times -= 1
            log.error("MOCK_HISTORY_FORCED_FAILURE", rows=len(rows))
            raise OSError("Forced failure for testing.")
        self._rows.extend(rows)

    async def rows(self) -> List[HistoryRow]:
        return list(self._rows)


class MockPriceOracle(PriceOracle):
    """
    PriceOracle whose price API is scripted. ``responses`` are consumed in order;
    an exception instance is raised from the fetch. ``fetch_calls`` counts requests.
    """

    def __init__(self, chains, responses: Sequence[Any] = (), delay: float = 0.0, **kwargs):
        super().__init__(chains, **kwargs)
        self.responses = list(responses)
        self.delay = delay
        self.fetch_calls = 0

    async def _fetch(self) -> dict:
        self.fetch_calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if not self.responses:
            raise PriceUnavailable("no scripted price response")
        value = self.responses.pop(0)
        if isinstance(value, Exception):
            raise value
        if "status" in value:
            raise PriceUnavailable(f"price API error status: {value['status']}")
        return value
