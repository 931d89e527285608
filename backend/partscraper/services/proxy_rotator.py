"""Round-robin rotation over a fixed pool of upstream proxy credentials.

Pure state plus string construction: no network I/O happens here. The
cursor is the only shared mutable state in the scrape engine and is guarded
by a lock so callers may fetch from several threads.
"""

import logging
import threading
from dataclasses import dataclass
from typing import Sequence

logger = logging.getLogger(__name__)

PROXY_METHODS = ("country-code", "country-node", "simple")


@dataclass(frozen=True)
class ProxyCredential:
    username: str
    password: str


@dataclass(frozen=True)
class ProxyEndpoint:
    """Ready-to-use outbound proxy descriptor."""

    index: int
    url: str
    username: str

    def __repr__(self) -> str:
        return f"ProxyEndpoint(index={self.index}, username={self.username!r})"


def build_proxy_url(credential: ProxyCredential, host: str, country: str, method: str = "country-code") -> str:
    """Materialize a credential into a proxy URL.

    country-code:  http://customer-{user}-cc-{COUNTRY}:{pass}@{host}
    country-node:  http://customer-{user}:{pass}@{cc}-pr.oxylabs.io:{port}
    simple:        http://{user}:{pass}@{host}
    """
    if method == "country-code":
        return f"http://customer-{credential.username}-cc-{country.upper()}:{credential.password}@{host}"
    if method == "country-node":
        _, _, port = host.partition(":")
        node = f"{country.lower()}-pr.oxylabs.io:{port or '7777'}"
        return f"http://customer-{credential.username}:{credential.password}@{node}"
    if method == "simple":
        return f"http://{credential.username}:{credential.password}@{host}"
    raise ValueError(f"Unknown proxy method: {method}")


class ProxyRotator:
    """Cycles through proxy credentials, producing a ProxyEndpoint per call.

    Constructed once per process (see partscraper.runtime) and shared by
    every fetch.
    """

    def __init__(
        self,
        credentials: Sequence[ProxyCredential],
        host: str,
        country: str,
        method: str = "country-code",
        start_index: int = 0,
    ):
        if not credentials:
            raise ValueError("ProxyRotator requires at least one credential")
        if method not in PROXY_METHODS:
            raise ValueError(f"Unknown proxy method: {method}")

        self._credentials = tuple(credentials)
        self.host = host
        self.country = country
        self.method = method
        self._start_index = start_index % len(self._credentials)
        self._cursor = self._start_index
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._credentials)

    def next(self) -> ProxyEndpoint:
        """Return the endpoint at the cursor and advance it (wraps forever)."""
        with self._lock:
            index = self._cursor
            self._cursor = (self._cursor + 1) % len(self._credentials)
        return self.by_index(index)

    def by_index(self, index: int) -> ProxyEndpoint:
        """Return a specific endpoint without moving the cursor."""
        if not 0 <= index < len(self._credentials):
            raise IndexError(f"Proxy index {index} out of range (pool size {len(self._credentials)})")
        credential = self._credentials[index]
        return ProxyEndpoint(
            index=index,
            url=build_proxy_url(credential, self.host, self.country, self.method),
            username=credential.username,
        )

    def reset(self) -> None:
        with self._lock:
            self._cursor = self._start_index
        logger.debug("Proxy rotation reset")
