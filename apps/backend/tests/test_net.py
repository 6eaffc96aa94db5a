"""
Unit tests for the HTTP fetch client.
"""

import httpx
import pytest
import respx

from core.net import (
    BROWSER_HEADERS, EmptyResponseError, FetchClient, FetchError, HttpStatusError, TransportError,
)

URL = "https://wellfound.com/startups?page=1"


@pytest.fixture
def client(settings):
    with FetchClient(settings) as fetch_client:
        yield fetch_client


class TestFetchClient:

    @respx.mock
    def test_fetch_returns_raw_page(self, client):
        respx.get(URL).mock(return_value=httpx.Response(200, text="<html><body>ok</body></html>"))

        page = client.fetch(URL)

        assert page.url == URL
        assert page.status_code == 200
        assert "ok" in page.html

    @respx.mock
    def test_sends_browser_header_profile(self, client, settings):
        route = respx.get(URL).mock(return_value=httpx.Response(200, text="<html></html>"))

        client.fetch(URL)

        sent = route.calls.last.request.headers
        assert sent["User-Agent"] == settings.user_agent
        assert sent["Accept-Language"] == BROWSER_HEADERS["Accept-Language"]
        assert sent["Sec-Fetch-Mode"] == "navigate"
        assert sent["sec-ch-ua-platform"] == '"macOS"'

    def test_timeouts_come_from_settings(self, client, settings):
        assert client.timeout.connect == settings.connect_timeout
        assert client.timeout.read == settings.read_timeout
        assert client.timeout.write == settings.write_timeout

    @respx.mock
    def test_connection_error_raises_transport_error(self, client):
        respx.get(URL).mock(side_effect=httpx.ConnectError("connection refused"))

        with pytest.raises(TransportError) as exc_info:
            client.fetch(URL)

        assert exc_info.value.url == URL
        assert isinstance(exc_info.value, FetchError)

    @respx.mock
    def test_timeout_raises_transport_error(self, client):
        respx.get(URL).mock(side_effect=httpx.ReadTimeout("read timed out"))

        with pytest.raises(TransportError):
            client.fetch(URL)

    @pytest.mark.parametrize("error", [
        httpx.TooManyRedirects("redirect loop"),
        httpx.DecodingError("invalid brotli stream"),
    ])
    @respx.mock
    def test_other_request_errors_raise_transport_error(self, client, error):
        respx.get(URL).mock(side_effect=error)

        with pytest.raises(TransportError) as exc_info:
            client.fetch(URL)

        assert exc_info.value.url == URL
        assert type(error).__name__ in exc_info.value.message

    @pytest.mark.parametrize("status", [401, 403, 429])
    @respx.mock
    def test_blocking_statuses_are_flagged(self, client, status):
        respx.get(URL).mock(return_value=httpx.Response(status))

        with pytest.raises(HttpStatusError) as exc_info:
            client.fetch(URL)

        assert exc_info.value.status_code == status
        assert exc_info.value.is_blocked

    @respx.mock
    def test_not_found(self, client):
        respx.get(URL).mock(return_value=httpx.Response(404))

        with pytest.raises(HttpStatusError) as exc_info:
            client.fetch(URL)

        assert exc_info.value.is_not_found
        assert not exc_info.value.is_blocked

    @respx.mock
    def test_server_error(self, client):
        respx.get(URL).mock(return_value=httpx.Response(503))

        with pytest.raises(HttpStatusError) as exc_info:
            client.fetch(URL)

        assert exc_info.value.is_server_error

    @respx.mock
    def test_empty_body_raises(self, client):
        respx.get(URL).mock(return_value=httpx.Response(200, text="   \n"))

        with pytest.raises(EmptyResponseError):
            client.fetch(URL)

    @respx.mock
    def test_no_retry_on_failure(self, client):
        route = respx.get(URL).mock(return_value=httpx.Response(500))

        with pytest.raises(HttpStatusError):
            client.fetch(URL)

        assert route.call_count == 1
