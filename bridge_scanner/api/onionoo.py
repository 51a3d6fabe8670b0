"""Client for the Onionoo relay directory and its public mirrors.

Sources are tried in priority order (caller-preferred URLs first, then the
defaults) and the first one that returns a parseable ``relays`` list wins.
Each source is tried exactly once.
"""

import logging
from typing import Any, Dict, List, Optional, Sequence
from urllib.parse import quote, urlparse

import requests

from bridge_scanner.errors import DirectoryUnavailableError
from bridge_scanner.logging_utils import perf

LOGGER = logging.getLogger(__name__)

BASE_URL = (
    "https://onionoo.torproject.org/details"
    "?type=relay&running=true&fields=fingerprint,or_addresses,country"
)
DEFAULT_URLS = (
    BASE_URL,
    f"https://icors.vercel.app/?{quote(BASE_URL)}",
    "https://github.com/ValdikSS/tor-onionoo-mirror/raw/master/details-running-relays-fingerprint-address-only.json",
    "https://bitbucket.org/ValdikSS/tor-onionoo-mirror/raw/master/details-running-relays-fingerprint-address-only.json",
)
HEADERS = {"user-agent": "bridge-scanner/1.0"}


def build_url_list(preferred_urls: Optional[Sequence[str]] = None) -> List[str]:
    """Return preferred URLs followed by the default mirrors, without duplicates."""
    urls: List[str] = []
    for url in list(preferred_urls or ()) + list(DEFAULT_URLS):
        url = url.strip()
        if url and url not in urls:
            urls.append(url)
    return urls


class OnionooClient:
    """Downloads running relay records from Onionoo or one of its mirrors."""

    def __init__(
        self,
        session: Optional[requests.Session] = None,
        timeout: float = 10.0,
        proxy: Optional[str] = None,
    ) -> None:
        """Initialize the directory client.

        Args:
            session: Optional pre-configured Requests session.
            timeout: Per-request timeout in seconds.
            proxy: Optional proxy URL (``http://host:port``, ``socks5h://...``)
                used for every directory download.
        """
        self._session = session or requests.Session()
        self._timeout = timeout
        self._proxies: Optional[Dict[str, str]] = (
            {"http": proxy, "https": proxy} if proxy else None
        )

    def fetch_source(self, url: str) -> List[Dict[str, Any]]:
        """Fetch one source and return its ``relays`` list.

        Raises:
            requests.RequestException: On transport errors or HTTP error status.
            ValueError: If the body is not JSON or lacks a ``relays`` list.
        """
        response = self._session.get(
            url,
            headers=HEADERS,
            timeout=self._timeout,
            proxies=self._proxies,
        )
        response.raise_for_status()
        payload = response.json()
        relays = payload.get("relays") if isinstance(payload, dict) else None
        if not isinstance(relays, list):
            raise ValueError("response has no 'relays' list")
        return relays

    @perf("onionoo.fetch_relays", tags={"component": "api"})
    def fetch_relays(self, preferred_urls: Optional[Sequence[str]] = None) -> List[Dict[str, Any]]:
        """Return relay records from the first source that answers.

        Raises:
            DirectoryUnavailableError: If every source failed.
        """
        urls = build_url_list(preferred_urls)
        for url in urls:
            try:
                relays = self.fetch_source(url)
            except (requests.RequestException, ValueError) as exc:
                LOGGER.warning(
                    "Can't download Tor relay data from/via %s: %s",
                    urlparse(url).hostname or url,
                    exc,
                )
                continue
            LOGGER.info("Loaded %d relays from %s", len(relays), urlparse(url).hostname or url)
            return relays
        raise DirectoryUnavailableError(urls)

    def close(self) -> None:
        self._session.close()

    def __enter__(self) -> "OnionooClient":
        return self

    def __exit__(self, exc_type, exc, exc_tb) -> None:
        self.close()


__all__ = ["OnionooClient", "BASE_URL", "DEFAULT_URLS", "build_url_list"]
