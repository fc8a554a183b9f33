"""Async JSON-RPC transport for Solana ledger endpoints."""

from __future__ import annotations

import asyncio
import itertools
import json
import logging
import random
from typing import Any, Sequence

import aiohttp

from engine.errors import NetworkError
from utils.rate_limiter import AsyncRateLimiter

LOGGER = logging.getLogger("amm_fleet.ledger.rpc")

# Node-side JSON-RPC codes that are worth retrying.
_TRANSIENT_RPC_CODES = {-32004, -32005, -32014, -32016}


class RpcRateLimitError(NetworkError):
    """Raised when the endpoint answers HTTP 429."""

    def __init__(self, message: str, retry_after: float | None = None) -> None:
        super().__init__(message)
        self.retry_after = retry_after


class RpcTransientError(NetworkError):
    """Raised for failures that may succeed on retry."""


class RpcResponseError(NetworkError):
    """Raised when the endpoint returns a JSON-RPC error object."""

    def __init__(self, code: int | None, message: str) -> None:
        super().__init__(f"RPC error {code}: {message}")
        self.code = code
        self.rpc_message = message


class AsyncRpcClient:
    """JSON-RPC client with retry, backoff and optional rate limiting."""

    def __init__(
        self,
        endpoint: str,
        *,
        timeout: float = 15.0,
        max_retries: int = 3,
        backoff_factor: float = 0.5,
        session: aiohttp.ClientSession | None = None,
        rate_limiter: AsyncRateLimiter | None = None,
    ) -> None:
        self.endpoint = endpoint
        self.timeout = timeout
        self.max_retries = max_retries
        self.backoff_factor = backoff_factor
        self._rate_limiter = rate_limiter
        self._session = session
        self._owns_session = session is None
        self._ids = itertools.count(1)

    async def call(self, method: str, params: Sequence[Any] | None = None) -> Any:
        attempts = 0
        while True:
            if self._rate_limiter is not None:
                await self._rate_limiter.acquire()
            try:
                return await self._call_once(method, list(params or []))
            except RpcRateLimitError as exc:
                attempts += 1
                if attempts > self.max_retries:
                    raise
                delay = exc.retry_after or self._compute_backoff(attempts)
                LOGGER.debug("Rate limited on %s, retrying in %.2fs", method, delay)
                await asyncio.sleep(delay)
            except RpcTransientError as exc:
                attempts += 1
                if attempts > self.max_retries:
                    raise
                LOGGER.debug("Transient error on %s: %s", method, exc)
                await asyncio.sleep(self._compute_backoff(attempts))

    async def _call_once(self, method: str, params: list[Any]) -> Any:
        body = {
            "jsonrpc": "2.0",
            "id": next(self._ids),
            "method": method,
            "params": params,
        }
        headers = {"Content-Type": "application/json", "Accept": "application/json"}
        session = await self._ensure_session()
        timeout = aiohttp.ClientTimeout(total=self.timeout)
        try:
            async with session.request(
                "POST",
                self.endpoint,
                headers=headers,
                data=json.dumps(body).encode("utf8"),
                timeout=timeout,
            ) as response:
                payload = await response.text()
                if response.status == 429:
                    raise RpcRateLimitError(
                        "Rate limit exceeded",
                        retry_after=self._parse_retry_after(
                            response.headers.get("Retry-After")
                        ),
                    )
                if response.status in {500, 502, 503, 504}:
                    raise RpcTransientError(f"Transient HTTP error {response.status}")
                if response.status >= 400:
                    raise NetworkError(
                        f"HTTP error {response.status}: {payload}"
                        if payload
                        else f"HTTP error {response.status}"
                    )
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            raise RpcTransientError(f"Network error calling {method}") from exc

        try:
            decoded = json.loads(payload)
        except json.JSONDecodeError as exc:
            raise NetworkError(f"Invalid JSON from {method}: {payload[:200]}") from exc
        error = decoded.get("error")
        if error:
            code = error.get("code") if isinstance(error, dict) else None
            message = (
                str(error.get("message", error)) if isinstance(error, dict) else str(error)
            )
            if code in _TRANSIENT_RPC_CODES:
                raise RpcTransientError(f"RPC error {code}: {message}")
            raise RpcResponseError(code, message)
        return decoded.get("result")

    async def close(self) -> None:
        if self._session is not None and self._owns_session:
            await self._session.close()
            self._session = None

    async def _ensure_session(self) -> aiohttp.ClientSession:
        if self._session is None:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout)
            )
            self._owns_session = True
        return self._session

    def _compute_backoff(self, attempt: int) -> float:
        base = self.backoff_factor * (2 ** (attempt - 1))
        return base + random.uniform(0, base)

    def _parse_retry_after(self, header_value: str | None) -> float | None:
        if header_value is None:
            return None
        try:
            return float(header_value)
        except ValueError:
            return None
