"""
PowerApps Relay
===============
Resilient async client that forwards PageProof webhook events to the
PowerApps flow endpoint.

Network errors, timeouts, HTTP 429 and 5xx responses are retried with
exponential backoff; any other HTTP error fails immediately. Exhausted
retries raise RelayError.
"""

import asyncio
from typing import Any, Awaitable, Callable, Dict, Optional

import httpx
import structlog

from ..errors import RelayError
from ..metrics import MetricNames, SimpleMetrics
from ..retry import RetryExhausted, retry_with_backoff

logger = structlog.get_logger(__name__)


class RetryableStatus(Exception):
    """Downstream answered with a status worth retrying."""

    def __init__(self, status_code: int):
        super().__init__(f"HTTP {status_code}")
        self.status_code = status_code


def is_retryable(exc: BaseException) -> bool:
    if isinstance(exc, RetryableStatus):
        return True
    return isinstance(exc, (httpx.TimeoutException, httpx.NetworkError))


def is_retryable_status(status_code: int) -> bool:
    return status_code == 429 or status_code >= 500


class PowerAppsRelay:
    """
    Posts webhook events to PowerApps.
    
    Example:
        relay = PowerAppsRelay(os.environ.get("POWERAPPS_PAGEPROOF_PAGEAPPROVED"))
        await relay.send("proof_status", {"proof": {...}})
        await relay.aclose()
    """
    
    def __init__(
        self,
        endpoint: Optional[str],
        timeout: float = 30.0,
        max_attempts: int = 3,
        retry_delay: float = 1.0,
        client: Optional[httpx.AsyncClient] = None,
        metrics: Optional[SimpleMetrics] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.endpoint = endpoint
        self.timeout = timeout
        self.max_attempts = max_attempts
        self.retry_delay = retry_delay
        self.metrics = metrics
        self._sleep = sleep
        self._client = client or httpx.AsyncClient(
            timeout=timeout,
            headers={"Content-Type": "application/json", "Accept": "application/json"},
        )
    
    @property
    def configured(self) -> bool:
        return bool(self.endpoint)
    
    def _record(self, outcome: str) -> None:
        if self.metrics is not None:
            self.metrics.increment(MetricNames.RELAY_REQUESTS, labels={"outcome": outcome})
    
    async def _post(self, body: Dict[str, Any]) -> httpx.Response:
        response = await self._client.post(self.endpoint, json=body)
        if is_retryable_status(response.status_code):
            raise RetryableStatus(response.status_code)
        response.raise_for_status()
        return response
    
    async def send(self, event: str, payload: Dict[str, Any]) -> bool:
        """
        Relay one event.
        
        Returns:
            True when delivered, False when no endpoint is configured
            
        Raises:
            RelayError: When delivery failed
        """
        if not self.configured:
            logger.error("powerapps_endpoint_not_configured", relay_event=event)
            self._record("skipped")
            return False
        
        body = {"event": event, **payload}
        try:
            response = await retry_with_backoff(
                lambda: self._post(body),
                max_attempts=self.max_attempts,
                base_delay=self.retry_delay,
                retryable=is_retryable,
                sleep=self._sleep,
                name="powerapps_relay",
            )
        except RetryExhausted as e:
            self._record("failed")
            raise RelayError(f"PowerApps relay failed after {e.attempts} attempts: {e.last_exception}") from e
        except httpx.HTTPStatusError as e:
            self._record("failed")
            logger.error(
                "powerapps_relay_rejected",
                relay_event=event,
                status_code=e.response.status_code,
            )
            raise RelayError(f"PowerApps rejected event with HTTP {e.response.status_code}") from e
        except httpx.HTTPError as e:
            self._record("failed")
            logger.error("powerapps_relay_error", relay_event=event, error=type(e).__name__)
            raise RelayError(f"PowerApps relay error: {type(e).__name__}") from e
        
        self._record("delivered")
        logger.info("powerapps_event_relayed", relay_event=event, status_code=response.status_code)
        return True
    
    async def aclose(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.aclose()
