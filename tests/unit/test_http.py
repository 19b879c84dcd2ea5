from unittest.mock import Mock, patch

import httpx
import pytest

from cardsync.utils.http import (
    RetryConfig,
    _backoff_delay,
    _should_retry,
    create_client,
    put_with_etag,
    request_with_retries,
)


class TestRetryConfig:
    """Test RetryConfig dataclass."""

    def test_default_values(self):
        config = RetryConfig()

        assert config.max_retries == 5
        assert config.backoff_initial_sec == 1.0
        assert config.backoff_factor == 2.0
        assert config.status_forcelist == (429, 500, 502, 503, 504)
        assert "PROPFIND" in config.methods
        assert "REPORT" in config.methods
        assert "PUT" in config.methods


class TestShouldRetry:
    """Test retry decision logic."""

    def test_should_retry_retryable_status_codes(self):
        config = RetryConfig()

        for status_code in config.status_forcelist:
            assert _should_retry("REPORT", status_code, None, config)

    def test_should_not_retry_non_retryable_status_codes(self):
        config = RetryConfig()

        for status_code in [200, 207, 400, 401, 403, 404, 412]:
            assert not _should_retry("PROPFIND", status_code, None, config)

    def test_should_retry_network_exceptions(self):
        config = RetryConfig()
        exceptions = [
            httpx.ConnectError("Connection failed"),
            httpx.TimeoutException("Timeout"),
            httpx.NetworkError("Network error"),
        ]

        for exc in exceptions:
            assert _should_retry("PUT", None, exc, config)

    def test_should_not_retry_disallowed_methods(self):
        config = RetryConfig(methods=("GET", "PUT"))

        assert not _should_retry("REPORT", 500, None, config)
        assert not _should_retry("POST", None, httpx.ConnectError("Failed"), config)
        assert _should_retry("get", 500, None, config)

    def test_should_not_retry_no_status_or_exception(self):
        assert not _should_retry("GET", None, None, RetryConfig())


class TestBackoffDelay:
    """Test backoff delay calculation."""

    def test_backoff_timing_progression(self):
        config = RetryConfig(backoff_initial_sec=1.0, backoff_factor=2.0, jitter_frac=0.0)

        assert [_backoff_delay(n, config) for n in (1, 2, 3)] == [1.0, 2.0, 4.0]

    def test_backoff_with_jitter(self):
        config = RetryConfig(backoff_initial_sec=1.0, backoff_factor=2.0, jitter_frac=0.5)

        with patch("random.uniform", side_effect=[-0.25, 0.25, 0.0]):
            delays = [_backoff_delay(1, config) for _ in range(3)]

        assert delays == [0.75, 1.25, 1.0]

    def test_no_negative_delay(self):
        config = RetryConfig(backoff_initial_sec=0.1, backoff_factor=1.0, jitter_frac=2.0)

        with patch("random.uniform", return_value=-0.2):
            assert _backoff_delay(1, config) == 0.0


class TestRequestWithRetries:
    """Test HTTP request retry functionality."""

    def test_successful_request_no_retry(self):
        mock_client = Mock()
        mock_response = Mock(status_code=207)
        mock_client.request.return_value = mock_response

        result = request_with_retries(mock_client, "PROPFIND", "/alice/contacts/", data="<xml/>")

        assert result == mock_response
        assert mock_client.request.call_count == 1
        assert mock_client.request.call_args.kwargs["content"] == b"<xml/>"

    def test_retry_on_server_error(self):
        mock_client = Mock()
        responses = [Mock(status_code=503), Mock(status_code=207)]
        mock_client.request.side_effect = responses

        with patch("cardsync.utils.http.sleep") as mock_sleep:
            result = request_with_retries(
                mock_client, "REPORT", "/book/", retry=RetryConfig(max_retries=3)
            )

        assert result == responses[1]
        assert mock_client.request.call_count == 2
        assert mock_sleep.call_count == 1

    def test_retry_exhaustion_returns_last_response(self):
        mock_client = Mock()
        mock_response = Mock(status_code=500)
        mock_client.request.return_value = mock_response

        with patch("cardsync.utils.http.sleep") as mock_sleep:
            result = request_with_retries(
                mock_client, "REPORT", "/book/", retry=RetryConfig(max_retries=2)
            )

        assert result == mock_response
        assert mock_client.request.call_count == 2
        assert mock_sleep.call_count == 1

    def test_zero_retries_still_sends_once(self):
        mock_client = Mock()
        mock_client.request.return_value = Mock(status_code=500)

        with patch("cardsync.utils.http.sleep") as mock_sleep:
            request_with_retries(mock_client, "REPORT", "/book/", retry=RetryConfig(max_retries=0))

        assert mock_client.request.call_count == 1
        assert mock_sleep.call_count == 0

    def test_retry_on_network_error_then_success(self):
        mock_client = Mock()
        mock_response = Mock(status_code=200)
        mock_client.request.side_effect = [httpx.ConnectError("Connection failed"), mock_response]

        with patch("cardsync.utils.http.sleep"):
            result = request_with_retries(
                mock_client, "GET", "/", retry=RetryConfig(max_retries=3)
            )

        assert result == mock_response
        assert mock_client.request.call_count == 2

    def test_retry_exhaustion_raises_exception(self):
        mock_client = Mock()
        mock_client.request.side_effect = httpx.ConnectError("Connection failed")

        with patch("cardsync.utils.http.sleep"):
            with pytest.raises(httpx.ConnectError, match="Connection failed"):
                request_with_retries(mock_client, "GET", "/", retry=RetryConfig(max_retries=2))

        assert mock_client.request.call_count == 2

    def test_non_retryable_status_code_no_retry(self):
        mock_client = Mock()
        mock_response = Mock(status_code=404)
        mock_client.request.return_value = mock_response

        result = request_with_retries(mock_client, "GET", "/", retry=RetryConfig(max_retries=3))

        assert result == mock_response
        assert mock_client.request.call_count == 1

    def test_non_retryable_method_raises_immediately(self):
        mock_client = Mock()
        mock_client.request.side_effect = httpx.ConnectError("Connection failed")

        with pytest.raises(httpx.ConnectError):
            request_with_retries(mock_client, "POST", "/", retry=RetryConfig(max_retries=3))

        assert mock_client.request.call_count == 1


class TestPutWithEtag:
    """Test PUT requests with ETag handling."""

    def test_put_with_etag_if_match(self):
        mock_client = Mock()
        mock_client.request.return_value = Mock(status_code=204)

        put_with_etag(
            mock_client,
            "https://dav.example.com/alice/contacts/john.vcf",
            "BEGIN:VCARD\r\n",
            content_type="text/vcard; charset=utf-8",
            etag='"abc123"',
        )

        headers = mock_client.request.call_args.kwargs["headers"]
        assert headers["Content-Type"] == "text/vcard; charset=utf-8"
        assert headers["If-Match"] == '"abc123"'
        assert "If-None-Match" not in headers

    def test_put_without_etag_conditions(self):
        mock_client = Mock()
        mock_client.request.return_value = Mock(status_code=200)

        put_with_etag(mock_client, "/x.vcf", "body", content_type="text/vcard")

        headers = mock_client.request.call_args.kwargs["headers"]
        assert "If-Match" not in headers
        assert "If-None-Match" not in headers


class TestCreateClient:
    def test_sets_user_agent_and_base_url(self):
        client = create_client("https://dav.example.com")
        try:
            assert client.headers["User-Agent"].startswith("cardsync/")
            assert str(client.base_url).startswith("https://dav.example.com")
        finally:
            client.close()

    def test_insecure_refused_in_production(self, monkeypatch):
        monkeypatch.setenv("CARDSYNC_ENVIRONMENT", "production")
        with pytest.raises(ValueError, match="production"):
            create_client("https://dav.example.com", verify=False)
