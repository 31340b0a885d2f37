"""
NSE Option Chain Client.

Fetches raw option-chain data from the NSE website API. The API only
answers clients that look like a browser and carry the session cookies
issued by the option-chain page, so every fetch first obtains fresh cookies.

Endpoints used:
- Session cookies: https://www.nseindia.com/option-chain
- Index chains:    https://www.nseindia.com/api/option-chain-indices?symbol={symbol}
- Equity chains:   https://www.nseindia.com/api/option-chain-equities?symbol={symbol}
"""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence
from urllib.parse import quote, urljoin

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from .config import DEFAULT_USER_AGENTS, NSE_BASE_URL, ServiceConfig
from .normalizer import format_data


logger = logging.getLogger(__name__)


INDEX_SYMBOLS = frozenset({"NIFTY", "BANKNIFTY", "FINNIFTY", "MIDCPNIFTY"})


class UpstreamError(RuntimeError):
    """Terminal failure talking to the upstream market-data source."""


class CookieError(UpstreamError):
    """Could not obtain session cookies from the upstream."""


RETRY_STATUS_CODES = [429, 500, 502, 503, 504]


@dataclass(frozen=True)
class RetryPolicy:
    """
    Capped retry policy.

    One initial attempt plus up to `max_retries` retries. Transport and
    status failures are retried by urllib3 with exponential backoff
    (`backoff` is its backoff_factor); an empty or undecodable body is
    re-fetched up to the same cap.
    """
    max_retries: int = 3
    backoff: float = 0.5

    @property
    def max_attempts(self) -> int:
        return self.max_retries + 1

    def to_retry(self) -> Retry:
        return Retry(
            total=self.max_retries,
            backoff_factor=self.backoff,
            status_forcelist=RETRY_STATUS_CODES,
            allowed_methods=["GET"],
        )


def option_chain_path(identifier: str) -> str:
    """API path (relative to the base URL) for a symbol's option chain."""
    endpoint = "api/option-chain-indices" if identifier in INDEX_SYMBOLS else "api/option-chain-equities"
    return f"{endpoint}?symbol={quote(identifier, safe='')}"


class NSEClient:
    """
    Client for the NSE option-chain API.

    Uses a requests.Session so cookies from the option-chain page are sent
    with the API call.
    """

    def __init__(
        self,
        base_url: str = NSE_BASE_URL,
        timeout: float = 10.0,
        retry_policy: Optional[RetryPolicy] = None,
        user_agents: Optional[Sequence[str]] = None,
        session: Optional[requests.Session] = None,
    ):
        """
        Initialize NSE client.

        Args:
            base_url: Upstream site root (with trailing slash)
            timeout: Per-request timeout in seconds
            retry_policy: Retry policy for the option-chain fetch
            user_agents: Pool of browser User-Agent strings to pick from
            session: Optional pre-built session (tests)
        """
        self.base_url = base_url if base_url.endswith("/") else base_url + "/"
        self.timeout = timeout
        self.retry_policy = retry_policy or RetryPolicy()
        self.user_agents: List[str] = list(user_agents or DEFAULT_USER_AGENTS)
        self.session = session or self._create_session()

    def _create_session(self) -> requests.Session:
        """Create session with retry configuration."""
        session = requests.Session()

        adapter = HTTPAdapter(max_retries=self.retry_policy.to_retry())
        session.mount("http://", adapter)
        session.mount("https://", adapter)

        return session

    def _headers(self) -> Dict[str, str]:
        """Browser-like headers with a randomly chosen User-Agent."""
        return {
            "Accept": "*/*",
            "User-Agent": random.choice(self.user_agents),
            "Connection": "keep-alive",
        }

    def get_cookies(self) -> Dict[str, str]:
        """
        Obtain session cookies from the option-chain page.

        Returns:
            Cookie name -> value mapping

        Raises:
            CookieError: if the page cannot be fetched
        """
        url = urljoin(self.base_url, "option-chain")
        try:
            response = self.session.get(url, headers=self._headers(), timeout=self.timeout)
            response.raise_for_status()
        except requests.RequestException as e:
            logger.error(f"Error fetching cookies: {e}")
            raise CookieError("Failed to fetch cookies") from e

        cookies = response.cookies.get_dict()
        logger.debug(f"Received {len(cookies)} session cookies")
        return cookies

    def _fetch_once(self, identifier: str, cookies: Dict[str, str]) -> Dict[str, Any]:
        url = urljoin(self.base_url, option_chain_path(identifier))
        try:
            response = self.session.get(url, headers=self._headers(), cookies=cookies, timeout=self.timeout)
            response.raise_for_status()
        except requests.RequestException as e:
            # The session adapter has already spent its retries
            logger.error(f"Error fetching option chain for {identifier}: {e}")
            raise UpstreamError("Failed to fetch option chain after multiple retries") from e
        return format_data(response.json(), identifier)

    def get_option_chain(self, identifier: str, cookies: Dict[str, str]) -> Dict[str, Any]:
        """
        Fetch and normalize the option chain for a symbol.

        Connection errors and 429/5xx responses are retried by the session's
        urllib3 Retry. NSE answers rejected cookies with 200 and an empty
        body, which urllib3 cannot see, so such bodies are re-fetched here.

        Args:
            identifier: Upper-cased symbol (e.g., "NIFTY", "RELIANCE")
            cookies: Session cookies from get_cookies()

        Returns:
            Normalized option chain (see normalizer.format_data)

        Raises:
            UpstreamError: on transport failure, or once the retry cap is reached
        """
        for retry_count in range(self.retry_policy.max_attempts):
            try:
                return self._fetch_once(identifier, cookies)
            except ValueError as e:
                # Undecodable JSON or NormalizationError
                logger.error(f"Unusable option chain body for {identifier}. Retry count: {retry_count}: {e}")

        raise UpstreamError("Failed to fetch option chain after multiple retries")

    def fetch_option_chain(self, identifier: str) -> Dict[str, Any]:
        """Get fresh cookies, then fetch the normalized option chain."""
        identifier = identifier.upper().strip()
        cookies = self.get_cookies()
        return self.get_option_chain(identifier, cookies)

    def close(self) -> None:
        self.session.close()


def create_client(config: ServiceConfig) -> NSEClient:
    """Create NSE client from config."""
    return NSEClient(
        base_url=config.base_url,
        timeout=config.timeout_sec,
        retry_policy=RetryPolicy(max_retries=config.max_retries, backoff=config.retry_backoff),
        user_agents=config.user_agents,
    )
