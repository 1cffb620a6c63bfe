"""
HTTP layer shared by the orderbook, quote, auth and relay clients.

Garden services wrap payloads in an envelope:
    {"status": "Ok", "result": ...}
    {"status": "Error", "error": "..."}

Every call returns a Result; transport problems never raise past this module.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, Optional

import httpx
from tenacity import (
    AsyncRetrying, RetryCallState, retry_if_result, stop_after_attempt, wait_exponential,
)

from .core import Result, ErrorKind

log = logging.getLogger(__name__)


def classify_status(status_code: int) -> ErrorKind:
    """Map an HTTP status code to an error kind."""
    if status_code in (401, 403):
        return ErrorKind.AUTH
    if status_code == 429 or status_code >= 500:
        return ErrorKind.TRANSIENT
    return ErrorKind.VALIDATION


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text or f"HTTP {response.status_code}"
    if isinstance(body, dict):
        return str(body.get("error") or body.get("message") or body)
    return str(body)


def parse_response(response: httpx.Response) -> Result[Any]:
    """Unwrap a Garden envelope into a Result."""
    if response.status_code >= 400:
        return Result.err(classify_status(response.status_code), _error_message(response))

    try:
        body = response.json()
    except ValueError:
        return Result.err(ErrorKind.TRANSIENT, f"Invalid JSON from {response.request.url}")

    if isinstance(body, dict) and "status" in body:
        if str(body["status"]).lower() == "ok":
            return Result.ok(body.get("result"))
        return Result.err(ErrorKind.VALIDATION, str(body.get("error") or "Unknown error"))

    return Result.ok(body)


class ApiClient:
    """
    Thin async client for one service base URL.

    One httpx.AsyncClient per instance, recreated if it was closed.
    """

    def __init__(self, base_url: str, timeout: float = 15.0,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=self.timeout, transport=self._transport)
        return self._client

    async def close(self):
        """Call on shutdown to clean up."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()

    def url(self, path: str) -> str:
        return f"{self.base_url}/{path.lstrip('/')}"

    async def request(self, method: str, path: str, *,
                      params: Optional[Dict[str, Any]] = None,
                      json: Any = None,
                      content: Optional[str] = None,
                      headers: Optional[Dict[str, str]] = None,
                      raw: bool = False) -> Result[Any]:
        """raw=True returns the body text instead of unwrapping JSON."""
        url = self.url(path)
        try:
            response = await self._get_client().request(
                method, url, params=params, json=json, content=content, headers=headers
            )
        except httpx.TimeoutException:
            log.warning(f"Timeout: {method} {url}")
            return Result.err(ErrorKind.TRANSIENT, f"Timeout calling {url}")
        except httpx.TransportError as e:
            log.warning(f"Transport error: {method} {url}: {e}")
            return Result.err(ErrorKind.TRANSIENT, f"Network error calling {url}: {e}")

        if raw and response.status_code < 400:
            return Result.ok(response.text.strip())
        result = parse_response(response)
        if result.error:
            log.debug(f"{method} {url} -> {response.status_code}: {result.error}")
        return result

    async def get(self, path: str, **kwargs) -> Result[Any]:
        return await self.request("GET", path, **kwargs)

    async def post(self, path: str, **kwargs) -> Result[Any]:
        return await self.request("POST", path, **kwargs)


def _is_transient(result: Result) -> bool:
    return bool(result.error and result.error.retryable)


async def retry_transient(fn: Callable[[], Awaitable[Result]],
                          attempts: int = 3,
                          backoff: float = 1.0,
                          sleep: Callable[[float], Awaitable[None]] = asyncio.sleep) -> Result:
    """
    Call fn until it succeeds or fails with a non-transient error.

    Waits backoff, 2 * backoff, 4 * backoff ... between attempts; once the
    attempts are used up the last result is returned as-is so the caller
    still sees the transient error.
    """
    def log_retry(state: RetryCallState):
        error = state.outcome.result().error
        log.warning(
            f"Transient failure ({error.message}), retry {state.attempt_number}/{attempts - 1} "
            f"in {state.next_action.sleep:.1f}s"
        )

    retrying = AsyncRetrying(
        stop=stop_after_attempt(max(1, attempts)),
        wait=wait_exponential(multiplier=backoff),
        retry=retry_if_result(_is_transient),
        before_sleep=log_retry,
        retry_error_callback=lambda state: state.outcome.result(),
        sleep=sleep,
    )
    return await retrying(fn)
