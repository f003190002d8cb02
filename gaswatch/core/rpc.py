# /gaswatch/core/rpc.py
# Minimal async JSON-RPC client. One request per call, no retries;
# endpoint fallback is the resolver's job.
import asyncio
import itertools
import json
from typing import Any

import aiohttp

from gaswatch.core.config import settings
from gaswatch.core.logger import get_logger, RPC_REQUESTS

log = get_logger(__name__)


class RpcError(Exception):
    """Base class for a failed JSON-RPC call against a single endpoint."""

    def __init__(self, message: str, endpoint: str | None = None, method: str | None = None):
        super().__init__(message)
        self.endpoint = endpoint
        self.method = method


class TransportError(RpcError):
    """Timeout or connection failure."""


class ProtocolError(RpcError):
    """Malformed response or a JSON-RPC error envelope."""

    def __init__(self, message: str, endpoint: str | None = None, method: str | None = None, code: int | None = None):
        super().__init__(message, endpoint=endpoint, method=method)
        self.code = code


class RpcClient:
    def __init__(self, session: aiohttp.ClientSession | None = None, timeout: float | None = None):
        self._session = session
        self._owns_session = session is None
        self.timeout = aiohttp.ClientTimeout(total=timeout or settings.RPC_TIMEOUT_SECONDS)
        self._ids = itertools.count(1)

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
            self._owns_session = True
        return self._session

    async def call(self, endpoint: str, method: str, params: list | None = None) -> Any:
        payload = {"jsonrpc": "2.0", "id": next(self._ids), "method": method, "params": params or []}
        try:
            async with self._get_session().post(endpoint, json=payload, timeout=self.timeout) as resp:
                body = await resp.read()
        except asyncio.TimeoutError as e:
            RPC_REQUESTS.labels(method, "timeout").inc()
            raise TransportError(f"timed out after {self.timeout.total}s", endpoint, method) from e
        except aiohttp.ClientError as e:
            RPC_REQUESTS.labels(method, "transport_error").inc()
            raise TransportError(str(e) or type(e).__name__, endpoint, method) from e

        try:
            envelope = json.loads(body)
        except ValueError as e:
            RPC_REQUESTS.labels(method, "protocol_error").inc()
            raise ProtocolError(f"RPC returned non-JSON response: {body[:100].decode('utf-8', 'replace')}", endpoint, method) from e

        if not isinstance(envelope, dict):
            RPC_REQUESTS.labels(method, "protocol_error").inc()
            raise ProtocolError("RPC returned a non-object envelope", endpoint, method)

        error = envelope.get("error")
        if error:
            RPC_REQUESTS.labels(method, "rpc_error").inc()
            if isinstance(error, dict):
                raise ProtocolError(str(error.get("message", error)), endpoint, method, code=error.get("code"))
            raise ProtocolError(str(error), endpoint, method)

        if "result" not in envelope:
            RPC_REQUESTS.labels(method, "protocol_error").inc()
            raise ProtocolError("RPC envelope has no result", endpoint, method)

        RPC_REQUESTS.labels(method, "ok").inc()
        return envelope["result"]

    async def close(self):
        if self._owns_session and self._session is not None and not self._session.closed:
            await self._session.close()
