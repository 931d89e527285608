"""Resilient GET client for the upstream catalog API.

Every attempt goes out through the next proxy from the rotator. Outcomes are
classified into the exception hierarchy below and retried with a bounded
tenacity policy:

    400            -> BadRequestError, never retried
    429 / 407      -> ProxyRejectedError, retried immediately on the next proxy
    5xx            -> UpstreamServerError, retried after exponential backoff
    timeout/reset  -> TransientNetworkError, retried after exponential backoff
    anything else  -> UnexpectedStatusError, never retried

When the attempt ceiling is reached a RetriesExhaustedError is raised.
"""

import logging
import threading
import time
from typing import Any, Callable

import httpx
from tenacity import (
    RetryError,
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from partscraper.services.proxy_rotator import ProxyEndpoint, ProxyRotator

logger = logging.getLogger(__name__)

DEFAULT_HEADERS = {
    "Accept": "application/json, text/plain, */*",
    "Accept-Language": "en-US,en;q=0.9",
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "User-Agent": "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/134.0.0.0 Safari/537.36",
}


class FetchError(Exception):
    """Base class for upstream fetch failures."""

    def __init__(self, message: str, url: str | None = None, status_code: int | None = None):
        super().__init__(message)
        self.url = url
        self.status_code = status_code


class BadRequestError(FetchError):
    """Upstream rejected the query (400); retrying is useless."""


class ProxyRejectedError(FetchError):
    """Rate limited or proxy authentication failed (429/407)."""


class UpstreamServerError(FetchError):
    """Upstream returned a 5xx."""


class TransientNetworkError(FetchError):
    """Timeout, connection reset or similar transport failure."""


class UnexpectedStatusError(FetchError):
    """Status code outside the handled set."""


class MalformedPayloadError(FetchError):
    """Successful response whose body cannot be used."""


class RetriesExhaustedError(FetchError):
    def __init__(self, url: str, attempts: int, last_error: BaseException | None):
        super().__init__(f"Retries exhausted after {attempts} attempts: {last_error}", url=url)
        self.attempts = attempts
        self.last_error = last_error


RETRIABLE_ERRORS = (ProxyRejectedError, UpstreamServerError, TransientNetworkError)

TransportFactory = Callable[[ProxyEndpoint | None], httpx.BaseTransport]


def default_transport(proxy: ProxyEndpoint | None) -> httpx.BaseTransport:
    return httpx.HTTPTransport(proxy=proxy.url if proxy else None)


class FetchClient:
    """Issues single GETs through rotated proxies with a bounded retry policy.

    One httpx.Client is kept per proxy endpoint; call close() (or use the
    client as a context manager) on shutdown.
    """

    def __init__(
        self,
        rotator: ProxyRotator | None = None,
        timeout: float = 30.0,
        max_attempts: int = 5,
        backoff_base: float = 1.0,
        backoff_max: float = 30.0,
        headers: dict[str, str] | None = None,
        transport_factory: TransportFactory = default_transport,
        sleep: Callable[[float], None] = time.sleep,
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        self.rotator = rotator
        self.timeout = timeout
        self.max_attempts = max_attempts
        self.headers = {**DEFAULT_HEADERS, **(headers or {})}
        self._transport_factory = transport_factory
        self._sleep = sleep
        self._backoff = wait_exponential(multiplier=backoff_base, max=backoff_max)
        self._clients: dict[str | None, httpx.Client] = {}
        self._clients_lock = threading.Lock()

    def __enter__(self) -> "FetchClient":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def close(self) -> None:
        with self._clients_lock:
            clients = list(self._clients.values())
            self._clients.clear()
        for client in clients:
            client.close()

    def fetch(self, url: str, run_id: str | None = None) -> Any:
        """GET url and return the parsed JSON body."""
        tag = f"[Scraper:{run_id or '-'}]"
        retrying = Retrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=self._wait,
            retry=retry_if_exception_type(RETRIABLE_ERRORS),
            sleep=self._sleep,
            before_sleep=lambda state: self._log_retry(state, tag),
            reraise=False,
        )
        try:
            return retrying(self._attempt, url, tag)
        except RetryError as e:
            last_error = e.last_attempt.exception()
            logger.error(f"{tag} Giving up on {url} after {e.last_attempt.attempt_number} attempts: {last_error}")
            raise RetriesExhaustedError(url, e.last_attempt.attempt_number, last_error) from last_error

    def _wait(self, retry_state) -> float:
        # Rate-limit / proxy-auth failures rotate to the next proxy without waiting
        if isinstance(retry_state.outcome.exception(), ProxyRejectedError):
            return 0.0
        return self._backoff(retry_state)

    @staticmethod
    def _log_retry(retry_state, tag: str) -> None:
        error = retry_state.outcome.exception()
        wait = retry_state.next_action.sleep if retry_state.next_action else 0
        logger.warning(
            f"{tag} Attempt {retry_state.attempt_number} failed ({type(error).__name__}: {error}), "
            f"retrying in {wait:.1f}s"
        )

    def _client_for(self, proxy: ProxyEndpoint | None) -> httpx.Client:
        key = proxy.url if proxy else None
        with self._clients_lock:
            client = self._clients.get(key)
            if client is None:
                client = httpx.Client(
                    transport=self._transport_factory(proxy),
                    timeout=self.timeout,
                    headers=self.headers,
                )
                self._clients[key] = client
            return client

    def _attempt(self, url: str, tag: str) -> Any:
        proxy = self.rotator.next() if self.rotator else None
        client = self._client_for(proxy)

        try:
            response = client.get(url)
        except httpx.ProxyError as e:
            raise ProxyRejectedError(f"Proxy error: {e}", url=url) from e
        except (httpx.TimeoutException, httpx.NetworkError, httpx.RemoteProtocolError) as e:
            raise TransientNetworkError(f"Network error: {type(e).__name__}: {e}", url=url) from e

        status = response.status_code
        logger.info(f"{tag} API response status: {status}")

        if status == 200:
            try:
                return response.json()
            except ValueError as e:
                raise MalformedPayloadError(f"Response body is not valid JSON: {e}", url=url, status_code=status) from e
        if status == 400:
            raise BadRequestError(f"Bad Request (400): {_error_detail(response)}", url=url, status_code=status)
        if status in (429, 407):
            raise ProxyRejectedError(f"Rate limited or proxy auth failed ({status})", url=url, status_code=status)
        if status >= 500:
            raise UpstreamServerError(f"Server error {status}", url=url, status_code=status)
        raise UnexpectedStatusError(f"API returned status {status}", url=url, status_code=status)


def _error_detail(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text[:200] or "Unknown error"
    if isinstance(body, dict) and body.get("message"):
        return str(body["message"])
    return "Unknown error"
