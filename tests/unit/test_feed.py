"""
Unit tests for stocktemp/feed.py

Tests request construction, envelope decoding and the error taxonomy using
httpx.MockTransport in place of the network.
"""

from datetime import datetime, timedelta, timezone

import httpx
import pytest

from stocktemp.feed import (
    Cursor,
    DecodeError,
    FeedBatch,
    FeedError,
    FetchError,
    FetchTimeoutError,
    Message,
    ProviderStatusError,
    StocktwitsClient,
    decode_envelope,
    parse_timestamp,
)
from tests.fixtures import NOW, make_api_message, make_envelope


class TestParseTimestamp:
    """Tests for provider timestamp parsing."""

    def test_parses_zulu_suffix(self):
        """Test that the trailing Z is treated as UTC."""
        parsed = parse_timestamp("2024-05-01T14:55:00Z")

        assert parsed == datetime(2024, 5, 1, 14, 55, tzinfo=timezone.utc)

    def test_naive_timestamp_assumed_utc(self):
        """Test that a timestamp without offset is assumed to be UTC."""
        parsed = parse_timestamp("2024-05-01T14:55:00")

        assert parsed.tzinfo is not None
        assert parsed.utcoffset() == timedelta(0)

    def test_keeps_explicit_offset(self):
        """Test that explicit offsets are preserved."""
        parsed = parse_timestamp("2024-05-01T10:55:00-04:00")

        assert parsed == datetime(2024, 5, 1, 14, 55, tzinfo=timezone.utc)

    @pytest.mark.parametrize("value", ["", "yesterday", None, 12345])
    def test_invalid_timestamp_raises(self, value):
        """Test that unparsable values raise ValueError."""
        with pytest.raises(ValueError):
            parse_timestamp(value)


class TestMessageFromApi:
    """Tests for Message.from_api."""

    def test_full_message(self):
        """Test decoding a complete message entry."""
        message = Message.from_api(
            make_api_message(id=99, body="$TSLA squeeze", symbols=("TSLA", "SPY"))
        )

        assert message.id == 99
        assert message.body == "$TSLA squeeze"
        assert message.created_at == NOW
        assert message.user.username == "trader1"
        assert message.user.classification == ("suggested",)
        assert message.source.title == "Stocktwits"
        assert [s.symbol for s in message.symbols] == ["TSLA", "SPY"]

    def test_optional_sections_default(self):
        """Test that missing user/source/symbols fall back to empty values."""
        message = Message.from_api({
            "id": 1,
            "body": "hello",
            "created_at": "2024-05-01T15:00:00Z",
        })

        assert message.user.username == ""
        assert message.source.id == 0
        assert message.symbols == ()

    def test_missing_body_raises(self):
        """Test that a message without a body is rejected."""
        data = make_api_message()
        del data["body"]

        with pytest.raises(KeyError):
            Message.from_api(data)

    def test_non_string_body_raises(self):
        """Test that a non-string body is rejected."""
        data = make_api_message()
        data["body"] = ["not", "text"]

        with pytest.raises(TypeError):
            Message.from_api(data)


class TestDecodeEnvelope:
    """Tests for decode_envelope."""

    def test_decodes_batch(self, sample_envelope):
        """Test that a valid envelope decodes into a FeedBatch."""
        batch = decode_envelope("AAPL", sample_envelope)

        assert isinstance(batch, FeedBatch)
        assert batch.symbol == "AAPL"
        assert batch.status == 200
        assert batch.symbol_info.symbol == "AAPL"
        assert batch.symbol_info.watchlist_count == 1234567
        assert batch.cursor == Cursor(more=True, since=3, max=1)
        assert [m.body for m in batch.messages] == ["AAPL up", "AAPL flat", "AAPL down"]

    def test_empty_message_list(self):
        """Test that an empty stream decodes to an empty batch."""
        batch = decode_envelope("AAPL", make_envelope(messages=[]))

        assert batch.messages == []

    def test_envelope_status_error(self):
        """Test that a non-success envelope status raises ProviderStatusError."""
        with pytest.raises(ProviderStatusError) as exc_info:
            decode_envelope("AAPL", make_envelope(status=404))

        assert exc_info.value.status == 404
        assert exc_info.value.symbol == "AAPL"

    @pytest.mark.parametrize(
        "payload",
        [
            [],
            "not an object",
            {"messages": []},
            {"response": {"status": "ok"}, "messages": []},
            {"response": {"status": 200}},
            {"response": {"status": 200}, "messages": {"id": 1}},
            {"response": {"status": 200}, "messages": [{"id": 1, "body": "x"}]},
            {"response": {"status": 200}, "messages": [{"id": 1, "body": "x", "created_at": "soon"}]},
            {"response": {"status": 200}, "messages": ["just a string"]},
            {"response": {"status": float("inf")}, "messages": []},
            {"response": {"status": 200}, "messages": [{"id": float("inf"), "body": "x", "created_at": "2024-05-01T15:00:00Z"}]},
            {"response": {"status": 200}, "cursor": {"since": float("-inf")}, "messages": []},
        ],
    )
    def test_malformed_payloads_raise_decode_error(self, payload):
        """Test that shape problems raise DecodeError, not a bare exception."""
        with pytest.raises(DecodeError):
            decode_envelope("AAPL", payload)


class TestStocktwitsClient:
    """Tests for StocktwitsClient.fetch."""

    @pytest.mark.asyncio
    async def test_fetch_builds_request(self, make_client):
        """Test URL, method and User-Agent header of the request."""
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json=make_envelope(symbol="AAPL"))

        client = make_client(handler, base_url="https://api.example.com/api/2/", user_agent="stocktemp-test")
        batch = await client.fetch("aapl")

        assert len(seen) == 1
        request = seen[0]
        assert request.method == "GET"
        assert str(request.url) == "https://api.example.com/api/2/streams/symbol/AAPL.json"
        assert request.headers["User-Agent"] == "stocktemp-test"
        assert batch.symbol == "AAPL"
        assert len(batch.messages) == 1

    @pytest.mark.asyncio
    async def test_default_user_agent_is_not_httpx(self, make_client):
        """Test that the default client identification replaces httpx's own."""
        agents = []

        def handler(request):
            agents.append(request.headers["User-Agent"])
            return httpx.Response(200, json=make_envelope())

        await make_client(handler).fetch("AAPL")

        assert agents == ["Not Firefox"]

    @pytest.mark.asyncio
    async def test_fetch_passes_timeout(self, make_client):
        """Test that the per-request timeout reaches the transport."""
        timeouts = []

        def handler(request):
            timeouts.append(request.extensions["timeout"])
            return httpx.Response(200, json=make_envelope())

        client = make_client(handler)
        await client.fetch("AAPL")
        await client.fetch("AAPL", timeout=0.5)

        assert timeouts[0]["read"] == 2.0
        assert timeouts[1]["read"] == 0.5

    @pytest.mark.asyncio
    async def test_empty_symbol_rejected(self, make_client):
        """Test that an empty symbol never reaches the network."""
        def handler(request):
            raise AssertionError("no request expected")

        client = make_client(handler)
        with pytest.raises(ValueError):
            await client.fetch("   ")

    @pytest.mark.asyncio
    async def test_timeout_raises_fetch_timeout_error(self, make_client):
        """Test that a transport timeout becomes FetchTimeoutError."""
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        client = make_client(handler)
        with pytest.raises(FetchTimeoutError) as exc_info:
            await client.fetch("AAPL")

        assert isinstance(exc_info.value, FetchError)
        assert exc_info.value.symbol == "AAPL"

    @pytest.mark.asyncio
    async def test_connection_error_raises_fetch_error(self, make_client):
        """Test that a transport failure becomes FetchError."""
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        client = make_client(handler)
        with pytest.raises(FetchError) as exc_info:
            await client.fetch("AAPL")

        assert not isinstance(exc_info.value, FetchTimeoutError)

    @pytest.mark.asyncio
    async def test_http_error_status(self, json_client):
        """Test that a non-2xx HTTP status raises ProviderStatusError."""
        client = json_client({"errors": [{"message": "Rate limit exceeded"}]}, status_code=429)

        with pytest.raises(ProviderStatusError) as exc_info:
            await client.fetch("AAPL")

        assert exc_info.value.status == 429

    @pytest.mark.asyncio
    async def test_invalid_json_raises_decode_error(self, make_client):
        """Test that a non-JSON body raises DecodeError."""
        client = make_client(lambda request: httpx.Response(200, text="<html>maintenance</html>"))

        with pytest.raises(DecodeError):
            await client.fetch("AAPL")

    @pytest.mark.asyncio
    async def test_overflowing_number_raises_decode_error(self, make_client):
        """Test that a numeric literal too large for an int raises DecodeError."""
        body = b'{"response": {"status": 200}, "messages": [{"id": 1e400, "body": "x", "created_at": "2024-05-01T15:00:00Z"}]}'
        client = make_client(lambda request: httpx.Response(200, content=body))

        with pytest.raises(DecodeError):
            await client.fetch("AAPL")

    @pytest.mark.asyncio
    async def test_all_errors_share_base_class(self, make_client):
        """Test that callers can catch every failure with FeedError."""
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        with pytest.raises(FeedError):
            await make_client(handler).fetch("AAPL")

    @pytest.mark.asyncio
    async def test_no_retry_on_failure(self, make_client):
        """Test that a failed request is attempted exactly once."""
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(503)

        with pytest.raises(ProviderStatusError):
            await make_client(handler).fetch("AAPL")

        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_aclose_leaves_injected_client_open(self):
        """Test that an injected httpx client is not closed by the feed client."""
        http_client = httpx.AsyncClient(transport=httpx.MockTransport(lambda r: httpx.Response(200)))

        async with StocktwitsClient(http_client=http_client):
            pass

        assert not http_client.is_closed
        await http_client.aclose()

    @pytest.mark.asyncio
    async def test_aclose_closes_owned_client(self):
        """Test that the client closes the httpx client it created."""
        client = StocktwitsClient()
        http_client = client._http

        async with client:
            pass

        assert http_client.is_closed
