"""
Test fixtures and sample data for stocktemp tests.
"""

from datetime import datetime, timezone

from stocktemp.feed import Message, MessageSource, StocktwitsUser, SymbolInfo

# Fixed reference time so window boundaries are deterministic
NOW = datetime(2024, 5, 1, 15, 0, 0, tzinfo=timezone.utc)


def format_timestamp(value: datetime) -> str:
    """Format a datetime the way the Stocktwits API does."""
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def make_message(
    id: int = 500000001,
    body: str = "$AAPL looking strong into earnings",
    created_at: datetime = None,
    username: str = "trader1",
    symbols: tuple[str, ...] = ("AAPL",),
) -> Message:
    """Create a sample Message for testing."""
    return Message(
        id=id,
        body=body,
        created_at=created_at or NOW,
        user=StocktwitsUser(id=42, username=username, name=username.title()),
        source=MessageSource(id=1, title="Stocktwits", url="https://stocktwits.com"),
        symbols=tuple(SymbolInfo(id=i, symbol=s) for i, s in enumerate(symbols, 1)),
    )


def make_api_message(
    id: int = 500000001,
    body: str = "$AAPL looking strong into earnings",
    created_at: datetime = None,
    username: str = "trader1",
    symbols: tuple[str, ...] = ("AAPL",),
) -> dict:
    """Create one entry of the API `messages` array."""
    return {
        "id": id,
        "body": body,
        "created_at": format_timestamp(created_at or NOW),
        "user": {
            "id": 42,
            "username": username,
            "name": username.title(),
            "avatar_url": "http://avatars.stocktwits.com/42.png",
            "avatar_url_ssl": "https://avatars.stocktwits.com/42.png",
            "identity": "User",
            "classification": ["suggested"],
        },
        "source": {"id": 1, "title": "Stocktwits", "url": "https://stocktwits.com"},
        "symbols": [
            {
                "id": i,
                "symbol": s,
                "title": f"{s} Inc.",
                "aliases": [],
                "is_following": False,
                "watchlist_count": 1000 * i,
            }
            for i, s in enumerate(symbols, 1)
        ],
    }


def make_envelope(
    symbol: str = "AAPL",
    messages: list[dict] = None,
    status: int = 200,
    more: bool = True,
) -> dict:
    """Create a full symbol stream response envelope."""
    messages = messages if messages is not None else [make_api_message()]
    ids = [m["id"] for m in messages if isinstance(m, dict) and "id" in m] or [0]
    return {
        "response": {"status": status},
        "symbol": {
            "id": 686,
            "symbol": symbol,
            "title": f"{symbol} Inc.",
            "aliases": [],
            "is_following": False,
            "watchlist_count": 1234567,
        },
        "cursor": {"more": more, "since": max(ids), "max": min(ids)},
        "messages": messages,
    }
