"""Tests for HttpActionInvoker."""

from unittest.mock import AsyncMock, MagicMock, patch

import httpx

from cadence.scheduler.action import USER_AGENT, ActionInvoker, HttpActionInvoker

ENDPOINT = "https://analysis.example.com/api/analyze"


def _mock_httpx_client(mock_client_cls: MagicMock, response: httpx.Response) -> AsyncMock:
    """Wire up an AsyncClient context-manager mock that returns *response*."""
    mock_client = AsyncMock()
    mock_client.post.return_value = response
    mock_client.__aenter__ = AsyncMock(return_value=mock_client)
    mock_client.__aexit__ = AsyncMock(return_value=False)
    mock_client_cls.return_value = mock_client
    return mock_client


def _response(status_code: int, **kwargs) -> httpx.Response:
    return httpx.Response(
        status_code=status_code, request=httpx.Request("POST", ENDPOINT), **kwargs
    )


class TestHttpActionInvoker:
    def test_satisfies_protocol(self) -> None:
        assert isinstance(HttpActionInvoker(ENDPOINT), ActionInvoker)

    async def test_success_returns_json(self) -> None:
        with patch("cadence.scheduler.action.httpx.AsyncClient") as mock_cls:
            _mock_httpx_client(mock_cls, _response(200, json={"content": "Markets are up"}))
            result = await HttpActionInvoker(ENDPOINT, timeout=5).invoke("Summarise markets")

        assert result.success
        assert result.data == {"content": "Markets are up"}
        mock_cls.assert_called_once_with(timeout=5)

    async def test_request_body_and_headers(self) -> None:
        with patch("cadence.scheduler.action.httpx.AsyncClient") as mock_cls:
            client = _mock_httpx_client(mock_cls, _response(200, json={}))
            await HttpActionInvoker(ENDPOINT).invoke("What happened today?")

        args, kwargs = client.post.call_args
        assert args[0] == ENDPOINT
        assert kwargs["json"]["prompt"] == "What happened today?"
        assert kwargs["json"]["analysisType"] == "scheduled_analysis"
        assert kwargs["json"]["options"]["maxLength"] == 4000
        assert kwargs["headers"]["User-Agent"] == USER_AGENT

    async def test_non_2xx_is_failure(self) -> None:
        with patch("cadence.scheduler.action.httpx.AsyncClient") as mock_cls:
            _mock_httpx_client(mock_cls, _response(502, text="Bad gateway"))
            result = await HttpActionInvoker(ENDPOINT).invoke("p")

        assert not result.success
        assert result.error == "API request failed: 502 Bad gateway"

    async def test_long_error_body_is_truncated(self) -> None:
        with patch("cadence.scheduler.action.httpx.AsyncClient") as mock_cls:
            _mock_httpx_client(mock_cls, _response(500, text="x" * 1000))
            result = await HttpActionInvoker(ENDPOINT).invoke("p")

        assert result.error == "API request failed: 500 " + "x" * 200

    async def test_timeout(self) -> None:
        with patch("cadence.scheduler.action.httpx.AsyncClient") as mock_cls:
            client = _mock_httpx_client(mock_cls, _response(200))
            client.post.side_effect = httpx.ReadTimeout("timed out")
            result = await HttpActionInvoker(ENDPOINT, timeout=60).invoke("p")

        assert result.error == "API request timed out after 60s"

    async def test_transport_error(self) -> None:
        with patch("cadence.scheduler.action.httpx.AsyncClient") as mock_cls:
            client = _mock_httpx_client(mock_cls, _response(200))
            client.post.side_effect = httpx.ConnectError("connection refused")
            result = await HttpActionInvoker(ENDPOINT).invoke("p")

        assert result.error == "API request failed: connection refused"

    async def test_malformed_body(self) -> None:
        with patch("cadence.scheduler.action.httpx.AsyncClient") as mock_cls:
            _mock_httpx_client(mock_cls, _response(200, text="<html>oops</html>"))
            result = await HttpActionInvoker(ENDPOINT).invoke("p")

        assert result.error == "API returned a malformed response"
