"""
Stocktwits Feed Client.

Fetches the public per-symbol message stream from the Stocktwits API and
decodes the response envelope into typed message objects.

One request per symbol, bounded by a short timeout, no retries. Failures are
raised as FeedError subclasses so the caller can log and skip the symbol
without aborting the rest of the run.
"""

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

import httpx

logger = logging.getLogger("stocktemp.feed")

DEFAULT_BASE_URL = "https://api.stocktwits.com/api/2"
# The API rejects requests carrying the default client user agent
DEFAULT_USER_AGENT = "Not Firefox"
DEFAULT_TIMEOUT = 2.0


class FeedError(Exception):
    """Base class for errors raised while fetching a symbol stream."""

    def __init__(self, symbol: str, message: str):
        super().__init__(f"{symbol}: {message}")
        self.symbol = symbol


class FetchError(FeedError):
    """Network failure or unsuccessful provider response."""


class FetchTimeoutError(FetchError):
    """The request did not complete within the configured timeout."""


class ProviderStatusError(FetchError):
    """The provider answered with a non-success status."""

    def __init__(self, symbol: str, status: int, message: str = ""):
        super().__init__(symbol, message or f"provider returned status {status}")
        self.status = status


class DecodeError(FeedError):
    """The response body does not match the expected envelope shape."""


def parse_timestamp(value: str) -> datetime:
    """Parse a provider timestamp (ISO-8601, trailing 'Z') into an aware datetime."""
    if not isinstance(value, str) or not value:
        raise ValueError(f"invalid timestamp: {value!r}")
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _as_int(value: Any, default: int = 0) -> int:
    if value is None:
        return default
    if isinstance(value, bool):
        raise TypeError(f"expected a number, got {value!r}")
    try:
        return int(value)
    except OverflowError as e:
        # json decodes 1e400 and Infinity to float('inf')
        raise ValueError(f"number out of range: {value!r}") from e


@dataclass(frozen=True)
class StocktwitsUser:
    """Author of a message."""
    id: int
    username: str
    name: str = ""
    avatar_url: str = ""
    avatar_url_ssl: str = ""
    identity: str = ""
    classification: tuple[str, ...] = ()

    @classmethod
    def from_api(cls, data: dict) -> "StocktwitsUser":
        return cls(
            id=_as_int(data.get("id")),
            username=data.get("username") or "",
            name=data.get("name") or "",
            avatar_url=data.get("avatar_url") or "",
            avatar_url_ssl=data.get("avatar_url_ssl") or "",
            identity=data.get("identity") or "",
            classification=tuple(data.get("classification") or ()),
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "username": self.username,
            "name": self.name,
            "avatar_url": self.avatar_url,
            "avatar_url_ssl": self.avatar_url_ssl,
            "identity": self.identity,
            "classification": list(self.classification),
        }


@dataclass(frozen=True)
class MessageSource:
    """Application the message was posted from."""
    id: int
    title: str = ""
    url: str = ""

    @classmethod
    def from_api(cls, data: dict) -> "MessageSource":
        return cls(
            id=_as_int(data.get("id")),
            title=data.get("title") or "",
            url=data.get("url") or "",
        )

    def to_dict(self) -> dict:
        return {"id": self.id, "title": self.title, "url": self.url}


@dataclass(frozen=True)
class SymbolInfo:
    """Ticker metadata as returned by the provider."""
    id: int
    symbol: str
    title: str = ""
    aliases: tuple[str, ...] = ()
    is_following: bool = False
    watchlist_count: int = 0

    @classmethod
    def from_api(cls, data: dict) -> "SymbolInfo":
        return cls(
            id=_as_int(data.get("id")),
            symbol=data.get("symbol") or "",
            title=data.get("title") or "",
            aliases=tuple(data.get("aliases") or ()),
            is_following=bool(data.get("is_following", False)),
            watchlist_count=_as_int(data.get("watchlist_count")),
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "symbol": self.symbol,
            "title": self.title,
            "aliases": list(self.aliases),
            "is_following": self.is_following,
            "watchlist_count": self.watchlist_count,
        }


@dataclass(frozen=True)
class Cursor:
    """Pagination cursor passed through from the feed."""
    more: bool = False
    since: int = 0
    max: int = 0

    @classmethod
    def from_api(cls, data: dict) -> "Cursor":
        return cls(
            more=bool(data.get("more", False)),
            since=_as_int(data.get("since")),
            max=_as_int(data.get("max")),
        )

    def to_dict(self) -> dict:
        return {"more": self.more, "since": self.since, "max": self.max}


@dataclass(frozen=True)
class Message:
    """A single Stocktwits post."""
    id: int
    body: str
    created_at: datetime
    user: StocktwitsUser
    source: MessageSource
    symbols: tuple[SymbolInfo, ...] = ()

    @classmethod
    def from_api(cls, data: dict) -> "Message":
        """Create a Message from one entry of the `messages` array."""
        body = data["body"]
        if not isinstance(body, str):
            raise TypeError(f"message body must be a string, got {type(body).__name__}")

        return cls(
            id=_as_int(data["id"]),
            body=body,
            created_at=parse_timestamp(data["created_at"]),
            user=StocktwitsUser.from_api(data.get("user") or {}),
            source=MessageSource.from_api(data.get("source") or {}),
            symbols=tuple(SymbolInfo.from_api(s) for s in data.get("symbols") or ()),
        )


@dataclass(frozen=True)
class FeedBatch:
    """Decoded response for one symbol stream request."""
    symbol: str
    status: int
    symbol_info: SymbolInfo
    cursor: Cursor
    messages: list[Message] = field(default_factory=list)


def decode_envelope(symbol: str, payload: Any) -> FeedBatch:
    """
    Decode a parsed JSON payload into a FeedBatch.

    Raises:
        ProviderStatusError: If the envelope reports a non-success status.
        DecodeError: If the payload does not have the expected shape.
    """
    if not isinstance(payload, dict):
        raise DecodeError(symbol, f"expected a JSON object, got {type(payload).__name__}")

    try:
        status = _as_int(payload["response"]["status"])
    except (KeyError, TypeError, ValueError) as e:
        raise DecodeError(symbol, f"missing or invalid response.status: {e}") from e

    if not 200 <= status < 300:
        raise ProviderStatusError(symbol, status)

    try:
        raw_messages = payload["messages"]
        if not isinstance(raw_messages, list):
            raise TypeError("messages must be a list")

        return FeedBatch(
            symbol=symbol,
            status=status,
            symbol_info=SymbolInfo.from_api(payload.get("symbol") or {}),
            cursor=Cursor.from_api(payload.get("cursor") or {}),
            messages=[Message.from_api(m) for m in raw_messages],
        )
    except (KeyError, TypeError, ValueError, AttributeError) as e:
        raise DecodeError(symbol, f"malformed payload: {e}") from e


class StocktwitsClient:
    """
    Asynchronous client for the Stocktwits symbol stream endpoint.

    The client owns its httpx.AsyncClient unless one is passed in; an injected
    client is left open on aclose() so callers can share it.
    """

    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        user_agent: str = DEFAULT_USER_AGENT,
        timeout: float = DEFAULT_TIMEOUT,
        http_client: httpx.AsyncClient | None = None,
    ):
        """
        Initialize the feed client.

        Args:
            base_url: API root, without trailing slash.
            user_agent: Value sent in the User-Agent header.
            timeout: Default request timeout in seconds.
            http_client: Optional pre-built client (tests pass one with a mock transport).
        """
        self.base_url = base_url.rstrip("/")
        self.user_agent = user_agent
        self.timeout = timeout
        self._owns_client = http_client is None
        self._http = http_client or httpx.AsyncClient()
        logger.debug(f"StocktwitsClient initialized (base_url={self.base_url}, timeout={timeout}s)")

    async def __aenter__(self) -> "StocktwitsClient":
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.aclose()

    def stream_url(self, symbol: str) -> str:
        return f"{self.base_url}/streams/symbol/{symbol}.json"

    async def fetch(self, symbol: str, timeout: float | None = None) -> FeedBatch:
        """
        Fetch the current message stream for a symbol.

        Args:
            symbol: Ticker symbol, e.g. "AAPL".
            timeout: Overrides the client default for this request.

        Returns:
            FeedBatch with the decoded messages and envelope metadata.

        Raises:
            ValueError: If the symbol is empty.
            FetchTimeoutError: If the request timed out.
            ProviderStatusError: On a non-2xx HTTP or envelope status.
            FetchError: On any other transport failure.
            DecodeError: If the body is not a well-formed envelope.
        """
        symbol = (symbol or "").strip().upper()
        if not symbol:
            raise ValueError("symbol must be a non-empty string")

        url = self.stream_url(symbol)
        wait = self.timeout if timeout is None else timeout
        logger.debug(f"GET {url} (timeout: {wait}s)")

        try:
            response = await self._http.get(
                url,
                headers={"User-Agent": self.user_agent},
                timeout=wait,
            )
        except httpx.TimeoutException as e:
            raise FetchTimeoutError(symbol, f"request timed out after {wait}s") from e
        except httpx.HTTPError as e:
            raise FetchError(symbol, f"request failed: {e}") from e

        if not response.is_success:
            raise ProviderStatusError(symbol, response.status_code)

        try:
            payload = response.json()
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise DecodeError(symbol, f"response is not valid JSON: {e}") from e

        batch = decode_envelope(symbol, payload)
        logger.info(f"Fetched {len(batch.messages)} messages for {symbol}")
        return batch

    async def aclose(self) -> None:
        """Close the underlying HTTP client if this instance created it."""
        if self._owns_client:
            await self._http.aclose()
