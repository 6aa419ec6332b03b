"""
Directory configuration management.

This module handles loading and accessing configuration from multiple sources
with a clear priority order:

    1. Environment variables (highest priority) - for containerized deployments
    2. Config file (config/directory.ini) - for static deployments
    3. Built-in defaults (lowest priority) - sensible fallbacks

Command-line flags are applied on top of the loaded configuration by
``ledger_directory.cli``.

Configuration is loaded once at module import time and cached. The
DirectoryConfig dataclass provides typed access to all settings.

Usage:
    from ledger_directory.config import config

    print(config.ledger.rpc_url)
    print(config.ledger.contract_address)
    print(config.sync.recheck_attempts)

Environment Variable Mapping:
    LEDGER_RPC_URL              -> ledger.rpc_url
    LEDGER_CONTRACT_ADDRESS     -> ledger.contract_address
    LEDGER_TIMEOUT              -> ledger.timeout
    LEDGER_CONFIRMATIONS        -> ledger.confirmations
    DIRECTORY_MAX_CONCURRENCY   -> sync.max_concurrency
    DIRECTORY_RECHECK_ATTEMPTS  -> sync.recheck_attempts
    DIRECTORY_RECHECK_DELAY     -> sync.recheck_delay
    DIRECTORY_LOG_LEVEL         -> logging.level
    DIRECTORY_LOG_FORMAT        -> logging.format
    DIRECTORY_CONFIG_FILE       -> alternative INI file path
"""

import configparser
import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Literal

# =============================================================================
# PATH CONFIGURATION
# =============================================================================

# Project root directory (contains src/, config/)
PROJECT_ROOT = Path(__file__).parent.parent.parent

# Config file paths
CONFIG_DIR = PROJECT_ROOT / "config"
CONFIG_FILE = CONFIG_DIR / "directory.ini"
CONFIG_EXAMPLE = CONFIG_DIR / "directory.example.ini"

# 0.001 ether, the listing submission fee charged by the directory contract.
DEFAULT_LISTING_FEE_WEI = 10**15


# =============================================================================
# CONFIGURATION DATACLASSES
# =============================================================================


@dataclass
class LedgerSettings:
    """Remote ledger endpoint configuration."""

    rpc_url: str = "https://mainnet.base.org"
    contract_address: str = ""
    timeout: float = 30.0
    confirmations: int = 1


@dataclass
class SyncSettings:
    """Directory synchronizer configuration."""

    max_concurrency: int = 8
    recheck_attempts: int = 3
    recheck_delay: float = 2.0  # seconds between post-settlement re-reads
    featured_count: int = 2


@dataclass
class TransactionSettings:
    """Write transaction configuration."""

    comment_min_length: int = 10
    listing_fee_wei: int = DEFAULT_LISTING_FEE_WEI


@dataclass
class LoggingSettings:
    """Logging configuration."""

    level: str = "INFO"
    format: Literal["simple", "detailed", "json"] = "detailed"


@dataclass
class DirectoryConfig:
    """
    Complete directory configuration.

    This is the main configuration object that aggregates all settings sections.
    Access via the module-level `config` singleton.
    """

    ledger: LedgerSettings = field(default_factory=LedgerSettings)
    sync: SyncSettings = field(default_factory=SyncSettings)
    transactions: TransactionSettings = field(default_factory=TransactionSettings)
    logging: LoggingSettings = field(default_factory=LoggingSettings)

    @property
    def has_contract(self) -> bool:
        """True when a contract identifier has been configured."""
        return bool(self.ledger.contract_address.strip())


# =============================================================================
# CONFIGURATION LOADING
# =============================================================================


def _parse_int(value: str) -> int:
    """Parse an integer that may be written in decimal or 0x-hex."""
    return int(value.strip(), 0)


def _load_from_ini(parser: configparser.ConfigParser, cfg: DirectoryConfig) -> None:
    """Load configuration from parsed INI file into DirectoryConfig."""
    # Ledger section
    if parser.has_section("ledger"):
        if parser.has_option("ledger", "rpc_url"):
            cfg.ledger.rpc_url = parser.get("ledger", "rpc_url").rstrip("/")
        if parser.has_option("ledger", "contract_address"):
            cfg.ledger.contract_address = parser.get("ledger", "contract_address")
        if parser.has_option("ledger", "timeout"):
            cfg.ledger.timeout = parser.getfloat("ledger", "timeout")
        if parser.has_option("ledger", "confirmations"):
            cfg.ledger.confirmations = parser.getint("ledger", "confirmations")

    # Sync section
    if parser.has_section("sync"):
        if parser.has_option("sync", "max_concurrency"):
            cfg.sync.max_concurrency = parser.getint("sync", "max_concurrency")
        if parser.has_option("sync", "recheck_attempts"):
            cfg.sync.recheck_attempts = parser.getint("sync", "recheck_attempts")
        if parser.has_option("sync", "recheck_delay"):
            cfg.sync.recheck_delay = parser.getfloat("sync", "recheck_delay")
        if parser.has_option("sync", "featured_count"):
            cfg.sync.featured_count = parser.getint("sync", "featured_count")

    # Transactions section
    if parser.has_section("transactions"):
        if parser.has_option("transactions", "comment_min_length"):
            cfg.transactions.comment_min_length = parser.getint(
                "transactions", "comment_min_length"
            )
        if parser.has_option("transactions", "listing_fee_wei"):
            cfg.transactions.listing_fee_wei = _parse_int(
                parser.get("transactions", "listing_fee_wei")
            )

    # Logging section
    if parser.has_section("logging"):
        if parser.has_option("logging", "level"):
            cfg.logging.level = parser.get("logging", "level").upper()
        if parser.has_option("logging", "format"):
            val = parser.get("logging", "format").lower()
            if val in ("simple", "detailed", "json"):
                cfg.logging.format = val  # type: ignore[assignment]


def _apply_env_overrides(cfg: DirectoryConfig) -> None:
    """Apply environment variable overrides to configuration."""
    # Ledger settings
    if env_url := os.getenv("LEDGER_RPC_URL"):
        cfg.ledger.rpc_url = env_url.rstrip("/")
    if env_contract := os.getenv("LEDGER_CONTRACT_ADDRESS"):
        cfg.ledger.contract_address = env_contract
    if env_timeout := os.getenv("LEDGER_TIMEOUT"):
        cfg.ledger.timeout = float(env_timeout)
    if env_confirmations := os.getenv("LEDGER_CONFIRMATIONS"):
        cfg.ledger.confirmations = int(env_confirmations)

    # Sync settings
    if env_concurrency := os.getenv("DIRECTORY_MAX_CONCURRENCY"):
        cfg.sync.max_concurrency = int(env_concurrency)
    if env_attempts := os.getenv("DIRECTORY_RECHECK_ATTEMPTS"):
        cfg.sync.recheck_attempts = int(env_attempts)
    if env_delay := os.getenv("DIRECTORY_RECHECK_DELAY"):
        cfg.sync.recheck_delay = float(env_delay)

    # Logging settings
    if env_log := os.getenv("DIRECTORY_LOG_LEVEL"):
        cfg.logging.level = env_log.upper()
    if env_format := os.getenv("DIRECTORY_LOG_FORMAT"):
        if env_format.lower() in ("simple", "detailed", "json"):
            cfg.logging.format = env_format.lower()  # type: ignore[assignment]


def _resolve_config_file() -> Path | None:
    """Pick the INI file to read, if any."""
    if env_file := os.getenv("DIRECTORY_CONFIG_FILE"):
        return Path(env_file)
    if CONFIG_FILE.exists():
        return CONFIG_FILE
    if CONFIG_EXAMPLE.exists():
        # Use example as fallback for development
        return CONFIG_EXAMPLE
    return None


def load_config() -> DirectoryConfig:
    """
    Load configuration from all sources with proper priority.

    Priority (highest wins):
        1. Environment variables
        2. $DIRECTORY_CONFIG_FILE, config/directory.ini or
           config/directory.example.ini
        3. Built-in defaults

    Returns:
        DirectoryConfig: Fully populated configuration object.
    """
    cfg = DirectoryConfig()

    config_file = _resolve_config_file()
    if config_file is not None and config_file.exists():
        parser = configparser.ConfigParser()
        parser.read(config_file)
        _load_from_ini(parser, cfg)

    _apply_env_overrides(cfg)

    return cfg


def reload_config() -> "DirectoryConfig":
    """
    Reload configuration from disk and environment.

    This updates the module-level `config` singleton.

    Returns:
        DirectoryConfig: The newly loaded configuration.
    """
    global config
    config = load_config()
    return config


# =============================================================================
# MODULE-LEVEL SINGLETON
# =============================================================================

# Load configuration once at module import time
config = load_config()


# =============================================================================
# LOGGING
# =============================================================================


class JsonLineFormatter(logging.Formatter):
    """Render each log record as a single JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "time": self.formatTime(record),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, sort_keys=True)


_LOG_FORMATS = {
    "simple": "%(levelname)s: %(message)s",
    "detailed": "%(asctime)s %(levelname)-8s %(name)s: %(message)s",
}


def configure_logging(settings: LoggingSettings | None = None) -> None:
    """
    Install a root handler according to the logging settings.

    Args:
        settings: Logging section to apply. Defaults to ``config.logging``.
    """
    settings = settings or config.logging
    handler = logging.StreamHandler()
    if settings.format == "json":
        handler.setFormatter(JsonLineFormatter())
    else:
        handler.setFormatter(logging.Formatter(_LOG_FORMATS[settings.format]))

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(settings.level.upper())


# =============================================================================
# UTILITY FUNCTIONS
# =============================================================================


def get_config_status() -> dict:
    """
    Get configuration status for diagnostics.

    Returns a dictionary with configuration source information,
    useful for debugging.
    """
    config_file = _resolve_config_file()
    return {
        "config_file_exists": config_file is not None and config_file.exists(),
        "config_file_path": str(config_file) if config_file else str(CONFIG_FILE),
        "using_example": config_file == CONFIG_EXAMPLE,
        "rpc_url": config.ledger.rpc_url,
        "contract_configured": config.has_contract,
    }


def print_config_summary() -> None:
    """Print a summary of current configuration to stdout."""
    status = get_config_status()
    print("\n" + "=" * 60)
    print("DIRECTORY CONFIGURATION")
    print("=" * 60)
    print(f"Config file:   {status['config_file_path']}")
    print(f"File exists:   {status['config_file_exists']}")
    if status["using_example"]:
        print("WARNING: Using example config (copy to directory.ini for production)")
    print("-" * 60)
    print(f"RPC endpoint:  {config.ledger.rpc_url}")
    print(f"Contract:      {config.ledger.contract_address or '(not set)'}")
    print(f"Timeout:       {config.ledger.timeout}s")
    print(f"Confirmations: {config.ledger.confirmations}")
    print(f"Concurrency:   {config.sync.max_concurrency}")
    print(f"Re-checks:     {config.sync.recheck_attempts} x {config.sync.recheck_delay}s")
    print(f"Log level:     {config.logging.level}")
    print("=" * 60 + "\n")
