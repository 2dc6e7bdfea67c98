"""Tests for the HTTP fetcher with a mocked session."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest
import requests

from src.harvester.common.errors import AbortedError, NetworkError
from src.harvester.common.http_client import Fetcher, parse_content_length
from src.harvester.common.run_context import RunContext


def _response(text: str = "", content: bytes = b"", headers: dict | None = None, status: int = 200):
    resp = MagicMock()
    resp.text = text
    resp.content = content
    resp.headers = headers or {}
    resp.status_code = status
    if status >= 400:
        resp.raise_for_status.side_effect = requests.HTTPError(f"{status} Error")
    return resp


@pytest.fixture
def fetcher(temp_config):
    f = Fetcher(temp_config)
    f._session.request = MagicMock(return_value=_response(text="<html></html>"))
    yield f
    f.close()


class TestFetcher:
    """Single-shot retrieval and error mapping."""

    def test_get_text_uses_timeout_and_user_agent(self, fetcher, temp_config):
        assert fetcher.get_text("https://www.purkuosat.net/lista.htm") == "<html></html>"
        args, kwargs = fetcher._session.request.call_args
        assert args == ("GET", "https://www.purkuosat.net/lista.htm")
        assert kwargs["timeout"] == temp_config.request_timeout
        assert kwargs["headers"]["User-Agent"] == temp_config.user_agent
        assert kwargs["allow_redirects"] is True

    def test_get_bytes(self, fetcher):
        fetcher._session.request.return_value = _response(content=b"\x89PNG")
        assert fetcher.get_bytes("https://www.purkuosat.net/images/a.png") == b"\x89PNG"

    def test_http_error_becomes_network_error(self, fetcher):
        fetcher._session.request.return_value = _response(status=404)
        with pytest.raises(NetworkError) as exc_info:
            fetcher.get_text("https://www.purkuosat.net/missing.htm")
        assert exc_info.value.url == "https://www.purkuosat.net/missing.htm"
        assert "404" in exc_info.value.reason

    def test_timeout_becomes_network_error(self, fetcher):
        fetcher._session.request.side_effect = requests.Timeout("timed out")
        with pytest.raises(NetworkError):
            fetcher.get_text("https://www.purkuosat.net/slow.htm")

    def test_cancelled_before_call(self, fetcher):
        context = RunContext()
        context.cancel()
        with pytest.raises(AbortedError):
            fetcher.get_text("https://www.purkuosat.net/lista.htm", context)
        fetcher._session.request.assert_not_called()

    def test_cancelled_during_failed_call(self, fetcher):
        context = RunContext()

        def cancel_then_fail(*args, **kwargs):
            context.cancel()
            raise requests.ConnectionError("reset")

        fetcher._session.request.side_effect = cancel_then_fail
        with pytest.raises(AbortedError):
            fetcher.get_text("https://www.purkuosat.net/lista.htm", context)


class TestContentProbe:
    """HEAD probe never raises NetworkError."""

    def test_reads_content_length(self, fetcher):
        fetcher._session.request.return_value = _response(headers={"Content-Length": "2048"})
        assert fetcher.probe_content_length("https://www.purkuosat.net/images/a.jpg") == 2048
        assert fetcher._session.request.call_args.args[0] == "HEAD"

    def test_missing_header(self, fetcher):
        fetcher._session.request.return_value = _response(headers={})
        assert fetcher.probe_content_length("https://www.purkuosat.net/images/a.jpg") is None

    def test_failure_returns_none(self, fetcher):
        fetcher._session.request.side_effect = requests.ConnectionError("refused")
        assert fetcher.probe_content_length("https://www.purkuosat.net/images/a.jpg") is None

    def test_parse_content_length(self):
        assert parse_content_length("10") == 10
        assert parse_content_length("abc") is None
        assert parse_content_length("-1") is None
        assert parse_content_length(None) is None


class TestRawHtmlCache:

    def test_writes_audit_copy(self, temp_config):
        temp_config.cache_raw_html = True
        with Fetcher(temp_config) as fetcher:
            fetcher._session.request = MagicMock(return_value=_response(text="<html>cached</html>"))
            fetcher.get_text("https://www.purkuosat.net/lista.htm", cache_key="listing/main")
        files = list(temp_config.raw_html_cache_abs_dir.glob("listing_main_*.html"))
        assert len(files) == 1
        assert files[0].read_text(encoding="utf-8") == "<html>cached</html>"
