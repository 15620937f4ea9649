"""
Async HTTP client wrapper for the upstream score feed.
Includes limited retries, timeout management, and metrics collection.
"""
from __future__ import annotations

import asyncio
import time
from typing import Any, Optional

import httpx

from shared.config import get_settings
from shared.utils.logging import get_logger
from shared.utils.metrics import EngineMetrics, get_metrics

logger = get_logger(__name__)


class ProviderHTTPClient:
    """
    Async HTTP client tailored for a JSON scoreboard API.
    Retries 429/5xx/timeouts up to ``max_retries`` attempts in total and records
    request counters and latency per attempt.
    """

    def __init__(
        self,
        provider_name: str,
        base_url: str,
        headers: dict[str, str] | None = None,
        timeout_s: float | None = None,
        max_retries: int | None = None,
        metrics: EngineMetrics | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        settings = get_settings()
        self._provider = provider_name
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout_s or settings.fetch_timeout_s
        self._max_retries = max(1, max_retries or settings.feed_max_retries)
        self._default_headers = headers or {}
        self._metrics = metrics or get_metrics()
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def start(self) -> None:
        """Initialize the underlying httpx client."""
        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            headers=self._default_headers,
            timeout=httpx.Timeout(self._timeout, connect=min(self._timeout, 5.0)),
            follow_redirects=True,
            transport=self._transport,
        )

    async def close(self) -> None:
        """Close the underlying httpx client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def get(self, path: str, params: dict[str, Any] | None = None) -> httpx.Response:
        """
        Perform a GET request with retry, metrics, and structured logging.

        Raises:
            httpx.HTTPStatusError: On a non-success status once retries are exhausted.
            httpx.TimeoutException: If every attempt timed out.
            httpx.TransportError: On connection-level failures.
        """
        if not self._client:
            raise RuntimeError("ProviderHTTPClient not started. Call start() first.")

        last_exc: Optional[Exception] = None

        for attempt in range(1, self._max_retries + 1):
            start_time = time.perf_counter()
            status = "unknown"
            try:
                resp = await self._client.get(path, params=params)
                status = str(resp.status_code)
                retryable = resp.status_code == 429 or resp.status_code >= 500

                if retryable and attempt < self._max_retries:
                    logger.warning(
                        "provider_retryable_status",
                        provider=self._provider,
                        path=path,
                        status=resp.status_code,
                        attempt=attempt,
                    )
                    await asyncio.sleep(0.5 * attempt)
                    continue

                resp.raise_for_status()
                logger.debug(
                    "provider_request_success",
                    provider=self._provider,
                    path=path,
                    status=resp.status_code,
                    latency_ms=round((time.perf_counter() - start_time) * 1000, 2),
                )
                return resp

            except httpx.TimeoutException as exc:
                status = "timeout"
                last_exc = exc
                logger.warning("provider_timeout", provider=self._provider, path=path, attempt=attempt)
                if attempt < self._max_retries:
                    continue
                raise

            except httpx.HTTPStatusError as exc:
                logger.error(
                    "provider_http_error",
                    provider=self._provider,
                    path=path,
                    status=exc.response.status_code,
                    attempt=attempt,
                )
                raise

            except httpx.TransportError as exc:
                status = "error"
                last_exc = exc
                logger.error(
                    "provider_request_error",
                    provider=self._provider,
                    path=path,
                    error=str(exc),
                    attempt=attempt,
                )
                if attempt < self._max_retries:
                    await asyncio.sleep(0.5 * attempt)
                    continue
                raise

            finally:
                self._metrics.feed_requests.labels(status=status).inc()
                self._metrics.step_latency.labels(step="fetch_attempt").observe(
                    time.perf_counter() - start_time
                )

        if last_exc:
            raise last_exc
        raise RuntimeError(f"Provider request failed after {self._max_retries} attempts")
