"""
Configuration module for stocktemp.

Loads application settings from config.yaml and secrets/overrides from
environment variables.
"""

import contextvars
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

import yaml
from dotenv import load_dotenv

from .store import Stock, Watchlist

# Load environment variables from .env file
load_dotenv()

# Context variable for per-symbol logging
symbol_context = contextvars.ContextVar("symbol", default=None)


class SymbolLogFilter(logging.Filter):
    """Filter to inject the symbol being processed into log records."""
    def filter(self, record):
        symbol = symbol_context.get()
        if symbol is not None:
            record.symbol_info = f" [{symbol}]"
        else:
            record.symbol_info = ""
        return True


# Default config file path
CONFIG_FILE = Path(os.getenv("STOCKTEMP_CONFIG", Path(__file__).parent.parent / "config.yaml"))


def _load_yaml_config() -> dict:
    """Load configuration from YAML file."""
    if CONFIG_FILE.exists():
        with open(CONFIG_FILE) as f:
            return yaml.safe_load(f) or {}
    return {}


# Load YAML config once at module import
_yaml_config = _load_yaml_config()


def _get_yaml(section: str, key: str, default=None):
    """Get a value from the YAML config."""
    return (_yaml_config.get(section) or {}).get(key, default)


def _get_yaml_section(section: str, default=None):
    """Get an entire section from the YAML config."""
    return _yaml_config.get(section, default or {})


@dataclass
class StocktwitsConfig:
    """Stocktwits API settings."""
    base_url: str = field(
        default_factory=lambda: _get_yaml("stocktwits", "base_url", "https://api.stocktwits.com/api/2")
    )
    # The API refuses the default httpx user agent
    user_agent: str = field(
        default_factory=lambda: os.getenv("STOCKTWITS_USER_AGENT")
        or _get_yaml("stocktwits", "user_agent", "Not Firefox")
    )
    timeout_seconds: float = field(
        default_factory=lambda: float(_get_yaml("stocktwits", "timeout_seconds", 2.0))
    )


@dataclass
class StorageConfig:
    """SQLite storage settings."""
    # .env wins so deployments can relocate the database without editing YAML
    db_path: str = field(
        default_factory=lambda: os.getenv("STOCKTEMP_DB_PATH")
        or _get_yaml("storage", "db_path", "stocktwits.db")
    )


@dataclass
class PollingConfig:
    """Outer loop settings."""
    # 0 = run a single cycle and exit
    interval_seconds: int = field(
        default_factory=lambda: int(_get_yaml("polling", "interval_seconds", 0))
    )
    concurrency: int = field(
        default_factory=lambda: int(_get_yaml("polling", "concurrency", 1))
    )


@dataclass
class LoggingConfig:
    """Logging settings."""
    level: str = field(default_factory=lambda: _get_yaml("logging", "level", "INFO"))
    log_file: str = field(default_factory=lambda: _get_yaml("logging", "log_file", ".run/stocktemp.log"))
    log_retention_count: int = field(
        default_factory=lambda: int(_get_yaml("logging", "log_retention_count", 10))
    )


def _get_watchlists() -> list[Watchlist]:
    """Build watchlists from the YAML `watchlists` section."""
    watchlists = []
    for entry in _get_yaml_section("watchlists", []) or []:
        stocks = []
        for stock in entry.get("stocks", []) or []:
            # Plain strings are accepted as shorthand for {symbol: ...}
            if isinstance(stock, str):
                stocks.append(Stock(symbol=stock))
            else:
                stocks.append(Stock(symbol=stock["symbol"], company_name=stock.get("company_name", "")))
        watchlists.append(
            Watchlist(
                name=entry["name"],
                description=entry.get("description", ""),
                user=entry.get("user", ""),
                stocks=stocks,
            )
        )
    return watchlists


@dataclass
class Config:
    """Main configuration container."""
    stocktwits: StocktwitsConfig = field(default_factory=StocktwitsConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    polling: PollingConfig = field(default_factory=PollingConfig)
    log: LoggingConfig = field(default_factory=LoggingConfig)
    watchlists: list[Watchlist] = field(default_factory=_get_watchlists)

    def setup_logging(self) -> logging.Logger:
        """Configure and return the application logger."""
        # Reset existing handlers to ensure clean configuration
        root = logging.getLogger()
        if root.handlers:
            for handler in list(root.handlers):
                root.removeHandler(handler)

        handlers: list[logging.Handler] = [logging.StreamHandler()]
        if self.log.log_file:
            log_path = Path(self.log.log_file)
            log_path.parent.mkdir(parents=True, exist_ok=True)
            handlers.append(logging.FileHandler(log_path, encoding="utf-8"))

        logging.basicConfig(
            level=getattr(logging, self.log.level.upper(), logging.INFO),
            format="%(asctime)s - %(name)s - %(levelname)s%(symbol_info)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
            handlers=handlers,
        )

        # Add filter to the handlers created by basicConfig
        for handler in logging.getLogger().handlers:
            handler.addFilter(SymbolLogFilter())

        return logging.getLogger("stocktemp")

    def validate(self) -> list[str]:
        """
        Validate configuration and return list of missing/invalid settings.

        Returns:
            List of validation error messages, empty if all valid.
        """
        errors = []

        if not self.stocktwits.base_url.startswith(("http://", "https://")):
            errors.append(f"stocktwits.base_url must be an http(s) URL: {self.stocktwits.base_url!r}")
        if not self.stocktwits.user_agent:
            errors.append("stocktwits.user_agent must not be empty (the API rejects default clients)")
        if self.stocktwits.timeout_seconds <= 0:
            errors.append("stocktwits.timeout_seconds must be positive")

        if not self.storage.db_path:
            errors.append("storage.db_path is required (or set STOCKTEMP_DB_PATH)")

        if self.polling.interval_seconds < 0:
            errors.append("polling.interval_seconds must be >= 0")
        if self.polling.concurrency < 1:
            errors.append("polling.concurrency must be >= 1")

        if self.log.level.upper() not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            errors.append(f"logging.level is not a valid level: {self.log.level!r}")

        for watchlist in self.watchlists:
            for stock in watchlist.stocks:
                if not stock.symbol.strip():
                    errors.append(f"watchlist '{watchlist.name}' contains an empty symbol")

        return errors


# Global configuration instance
config = Config()
