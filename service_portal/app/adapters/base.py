"""
Common plumbing for the Portal's HTTP clients.
"""

from typing import Any, Dict, Optional

import httpx

from shared.logging import get_logger
from shared.errors import ExternalServiceError
from shared.circuit_breaker import get_circuit_breaker
from shared.retry import RetryExhausted, RetryPolicy, retry_async


class DownstreamClient:
    """POSTs JSON to one internal service behind a retry policy and a breaker.

    Transport errors are retried; an unexpected status is not. Transport errors
    and 5xx answers count against the breaker, client errors do not. Every failure
    leaves as ``ExternalServiceError`` (``CircuitOpenError`` when the breaker
    rejected the call).
    """

    service = "downstream"

    def __init__(self, base_url: str, timeout: float = 10.0,
                 retry_policy: Optional[RetryPolicy] = None):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.retry_policy = retry_policy or RetryPolicy()
        self.logger = get_logger(f"portal.{self.service}_client")
        self.circuit_breaker = get_circuit_breaker(
            f"{self.service}_service",
            failure_threshold=3,
            recovery_timeout=30.0
        )

    def _status_error(self, path: str, response: httpx.Response) -> ExternalServiceError:
        return ExternalServiceError(
            self.service,
            f"{path} returned {response.status_code}",
            details={"status_code": response.status_code}
        )

    async def _post(self, path: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        url = f"{self.base_url}{path}"

        @retry_async(self.retry_policy, retry_on=(httpx.TransportError,))
        async def send() -> httpx.Response:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(url, json=payload)

            # Only server-side failures count against the breaker.
            if response.status_code >= 500:
                raise self._status_error(path, response)
            return response

        try:
            response = await self.circuit_breaker.call(send)
        except RetryExhausted as e:
            self.logger.error("Downstream unreachable", url=url, attempts=e.attempts, error=str(e.last_exception))
            raise ExternalServiceError(
                self.service,
                "service unavailable",
                details={"attempts": e.attempts}
            ) from e

        if response.status_code != 200:
            self.logger.warning("Downstream rejected request", url=url, status_code=response.status_code)
            raise self._status_error(path, response)
        return response.json()
