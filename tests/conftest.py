"""
Shared pytest fixtures for stocktemp tests.

This module provides:
- Temporary SQLite database paths and stores
- Feed clients backed by httpx.MockTransport
- Sample data fixtures
- Root logger isolation for tests that reconfigure logging
"""

import logging
from datetime import timedelta
from typing import Callable

import httpx
import pytest

from stocktemp.feed import Message, StocktwitsClient
from stocktemp.store import StocktwitsStore
from tests.fixtures import NOW, make_api_message, make_envelope, make_message


# =============================================================================
# Core Fixtures
# =============================================================================


@pytest.fixture
def temp_db_path(tmp_path) -> str:
    """Provide a temporary SQLite database path."""
    return str(tmp_path / "test_stocktwits.db")


@pytest.fixture
def store(temp_db_path) -> StocktwitsStore:
    """Provide an empty store on a temporary database."""
    return StocktwitsStore(db_path=temp_db_path)


@pytest.fixture
def now():
    """Fixed reference time used by the sample data."""
    return NOW


# =============================================================================
# Sample Data Fixtures
# =============================================================================


@pytest.fixture
def sample_message() -> Message:
    """Provide a single sample message."""
    return make_message()


@pytest.fixture
def sample_envelope() -> dict:
    """Provide a stream response with three messages of different ages."""
    return make_envelope(
        symbol="AAPL",
        messages=[
            make_api_message(id=3, body="AAPL up", created_at=NOW - timedelta(minutes=5)),
            make_api_message(id=2, body="AAPL flat", created_at=NOW - timedelta(minutes=45)),
            make_api_message(id=1, body="AAPL down", created_at=NOW - timedelta(hours=2)),
        ],
    )


# =============================================================================
# Mock HTTP
# =============================================================================


@pytest.fixture
def make_client() -> Callable[..., StocktwitsClient]:
    """
    Factory for feed clients whose requests are answered by a handler.

    Usage:
        client = make_client(lambda request: httpx.Response(200, json=...))
    """
    def factory(handler: Callable[[httpx.Request], httpx.Response], **kwargs) -> StocktwitsClient:
        http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        return StocktwitsClient(http_client=http_client, **kwargs)

    return factory


@pytest.fixture
def json_client(make_client):
    """Factory for clients that answer every request with the given JSON payload."""
    def factory(payload: dict, status_code: int = 200, **kwargs) -> StocktwitsClient:
        return make_client(lambda request: httpx.Response(status_code, json=payload), **kwargs)

    return factory


# =============================================================================
# Logging
# =============================================================================


@pytest.fixture
def restore_root_logger():
    """Restore root logger handlers and level after a test reconfigures logging."""
    root = logging.getLogger()
    saved_handlers = list(root.handlers)
    saved_level = root.level
    yield root
    for handler in list(root.handlers):
        if handler not in saved_handlers:
            root.removeHandler(handler)
            handler.close()
    for handler in saved_handlers:
        if handler not in root.handlers:
            root.addHandler(handler)
    root.setLevel(saved_level)
