"""
Tests for NSE Option Chain Client

Coverage targets:
- option_chain_path: index vs equity endpoints, URL encoding
- RetryPolicy: attempts and urllib3 Retry construction
- NSEClient.get_cookies: cookie extraction, CookieError
- NSEClient.get_option_chain: body re-fetch, terminal UpstreamError
- Session adapter: Retry mounted from config
- create_client: config wiring
"""

import pytest
import requests
from unittest.mock import MagicMock
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from lib.optionchain.config import ServiceConfig
from lib.optionchain.nse_client import (
    CookieError,
    NSEClient,
    RetryPolicy,
    RETRY_STATUS_CODES,
    UpstreamError,
    create_client,
    option_chain_path,
)


VALID_CHAIN = {
    "records": {
        "expiryDates": ["25-Jan-2024"],
        "underlyingValue": 21453.95,
        "timestamp": "24-Jan-2024 15:30:00",
        "data": [
            {"strikePrice": 21500, "expiryDate": "25-Jan-2024", "CE": {"openInterest": 10}},
        ],
    }
}


def _response(json_data=None, status_code=200, cookies=None):
    response = MagicMock()
    response.status_code = status_code
    response.json.return_value = json_data
    if status_code >= 400:
        response.raise_for_status.side_effect = requests.HTTPError(f"{status_code} Error")
    else:
        response.raise_for_status.return_value = None
    response.cookies.get_dict.return_value = cookies or {}
    return response


def _client(session, max_retries=3):
    return NSEClient(
        base_url="https://example.test/",
        timeout=5,
        retry_policy=RetryPolicy(max_retries=max_retries, backoff=0),
        user_agents=["TestAgent/1.0"],
        session=session,
    )


class TestOptionChainPath:
    """Tests for option_chain_path function."""

    @pytest.mark.parametrize("symbol", ["NIFTY", "BANKNIFTY", "FINNIFTY", "MIDCPNIFTY"])
    def test_index_symbols(self, symbol):
        assert option_chain_path(symbol) == f"api/option-chain-indices?symbol={symbol}"

    def test_equity_symbol(self):
        assert option_chain_path("RELIANCE") == "api/option-chain-equities?symbol=RELIANCE"

    def test_symbol_is_url_encoded(self):
        assert option_chain_path("M&M") == "api/option-chain-equities?symbol=M%26M"


class TestRetryPolicy:
    """Tests for RetryPolicy."""

    def test_defaults(self):
        policy = RetryPolicy()
        assert policy.max_retries == 3
        assert policy.max_attempts == 4

    def test_to_retry(self):
        retry = RetryPolicy(max_retries=2, backoff=0.25).to_retry()

        assert isinstance(retry, Retry)
        assert retry.total == 2
        assert retry.backoff_factor == 0.25
        assert set(retry.status_forcelist) == set(RETRY_STATUS_CODES)
        assert "GET" in retry.allowed_methods


class TestSessionAdapter:
    """Tests for the retrying session built by NSEClient."""

    @pytest.mark.parametrize("prefix", ["http://", "https://"])
    def test_retry_adapter_mounted(self, prefix):
        client = NSEClient(retry_policy=RetryPolicy(max_retries=5, backoff=1.5))

        adapter = client.session.get_adapter(prefix + "www.nseindia.com/")

        assert isinstance(adapter, HTTPAdapter)
        assert adapter.max_retries.total == 5
        assert adapter.max_retries.backoff_factor == 1.5
        assert 503 in adapter.max_retries.status_forcelist
        client.close()

    def test_injected_session_is_used_as_is(self):
        session = MagicMock()
        client = NSEClient(session=session)
        assert client.session is session


class TestGetCookies:
    """Tests for NSEClient.get_cookies."""

    def test_returns_cookies_with_browser_headers(self):
        session = MagicMock()
        session.get.return_value = _response(cookies={"nsit": "abc", "nseappid": "xyz"})

        cookies = _client(session).get_cookies()

        assert cookies == {"nsit": "abc", "nseappid": "xyz"}
        args, kwargs = session.get.call_args
        assert args[0] == "https://example.test/option-chain"
        assert kwargs["headers"]["User-Agent"] == "TestAgent/1.0"
        assert kwargs["headers"]["Accept"] == "*/*"
        assert kwargs["headers"]["Connection"] == "keep-alive"
        assert kwargs["timeout"] == 5

    def test_http_error_raises_cookie_error(self):
        session = MagicMock()
        session.get.return_value = _response(status_code=403)

        with pytest.raises(CookieError, match="Failed to fetch cookies"):
            _client(session).get_cookies()

    def test_connection_error_raises_cookie_error(self):
        session = MagicMock()
        session.get.side_effect = requests.ConnectionError("refused")

        with pytest.raises(CookieError):
            _client(session).get_cookies()

    def test_cookie_error_is_upstream_error(self):
        assert issubclass(CookieError, UpstreamError)


class TestGetOptionChain:
    """Tests for NSEClient.get_option_chain retry behaviour."""

    def test_success_first_attempt(self):
        session = MagicMock()
        session.get.return_value = _response(VALID_CHAIN)

        data = _client(session).get_option_chain("NIFTY", {"nsit": "abc"})

        assert data["identifier"] == "NIFTY"
        assert data["underlyingValue"] == 21453.95
        assert session.get.call_count == 1
        args, kwargs = session.get.call_args
        assert args[0] == "https://example.test/api/option-chain-indices?symbol=NIFTY"
        assert kwargs["cookies"] == {"nsit": "abc"}

    @pytest.mark.parametrize("error", [
        requests.exceptions.RetryError("Max retries exceeded (too many 503 error responses)"),
        requests.ConnectionError("reset"),
        requests.Timeout("timed out"),
    ])
    def test_transport_failure_is_terminal(self, error):
        session = MagicMock()
        session.get.side_effect = error

        with pytest.raises(UpstreamError, match="after multiple retries"):
            _client(session).get_option_chain("NIFTY", {})

        # urllib3 already retried inside the adapter
        assert session.get.call_count == 1

    def test_http_error_status_is_terminal(self):
        session = MagicMock()
        session.get.return_value = _response(status_code=404)

        with pytest.raises(UpstreamError):
            _client(session).get_option_chain("NIFTY", {})

        assert session.get.call_count == 1

    def test_empty_body_counts_as_failure(self):
        session = MagicMock()
        session.get.side_effect = [_response({}), _response(VALID_CHAIN)]

        _client(session).get_option_chain("NIFTY", {})

        assert session.get.call_count == 2

    def test_invalid_json_counts_as_failure(self):
        bad = _response()
        bad.json.side_effect = ValueError("Expecting value")
        session = MagicMock()
        session.get.side_effect = [bad, _response(VALID_CHAIN)]

        _client(session).get_option_chain("NIFTY", {})

        assert session.get.call_count == 2

    def test_empty_bodies_exhaust_retry_cap(self):
        session = MagicMock()
        session.get.return_value = _response({})

        with pytest.raises(UpstreamError, match="after multiple retries"):
            _client(session, max_retries=3).get_option_chain("NIFTY", {})

        # One initial attempt plus three retries
        assert session.get.call_count == 4


class TestFetchOptionChain:
    """Tests for NSEClient.fetch_option_chain."""

    def test_normalizes_identifier_and_uses_cookies(self):
        session = MagicMock()
        session.get.side_effect = [
            _response(cookies={"nsit": "abc"}),
            _response(VALID_CHAIN),
        ]

        data = _client(session).fetch_option_chain("  reliance ")

        assert data["identifier"] == "RELIANCE"
        chain_call = session.get.call_args_list[1]
        assert chain_call.args[0] == "https://example.test/api/option-chain-equities?symbol=RELIANCE"
        assert chain_call.kwargs["cookies"] == {"nsit": "abc"}

    def test_cookie_failure_skips_chain_fetch(self):
        session = MagicMock()
        session.get.side_effect = requests.ConnectionError("down")

        with pytest.raises(CookieError):
            _client(session).fetch_option_chain("NIFTY")

        assert session.get.call_count == 1


class TestCreateClient:
    """Tests for create_client."""

    def test_wires_config(self):
        config = ServiceConfig(
            base_url="https://mirror.test",
            timeout_sec=3,
            max_retries=1,
            retry_backoff=0.0,
            user_agents=["A"],
        )
        client = create_client(config)

        assert client.base_url == "https://mirror.test/"
        assert client.timeout == 3
        assert client.retry_policy == RetryPolicy(max_retries=1, backoff=0.0)
        assert client.user_agents == ["A"]
        adapter = client.session.get_adapter("https://mirror.test/")
        assert adapter.max_retries.total == 1
        assert adapter.max_retries.backoff_factor == 0.0
        client.close()
