"""
Merkle Vesting Distributor Configuration

Supports testnet and mainnet deployments with separate defaults.

All settings are read from environment variables:
- MERKLE_VESTING_NETWORK: "testnet" (default) or "mainnet"
- MERKLE_VESTING_DATA_DIR: directory for ledger state and logs
- MERKLE_VESTING_STATE_DB: SQLite file holding persisted ledger snapshots
- MERKLE_VESTING_LOG_LEVEL / MERKLE_VESTING_LOG_FILE: logging setup
"""

from __future__ import annotations

import logging
import os
from enum import Enum
from typing import Optional

logger = logging.getLogger(__name__)


class NetworkType(Enum):
    TESTNET = "testnet"
    MAINNET = "mainnet"


class ConfigurationError(Exception):
    """Raised when required configuration is missing or invalid."""
    pass


NETWORK = os.getenv("MERKLE_VESTING_NETWORK", "testnet")  # Default to testnet for safety

DATA_DIR = os.getenv("MERKLE_VESTING_DATA_DIR", os.path.join(os.getcwd(), "data"))
STATE_DB_PATH = os.getenv("MERKLE_VESTING_STATE_DB", "").strip()
LOG_LEVEL = os.getenv("MERKLE_VESTING_LOG_LEVEL", "INFO").upper()
LOG_FILE = os.getenv("MERKLE_VESTING_LOG_FILE", "").strip()
STATE_KEY = os.getenv("MERKLE_VESTING_STATE_KEY", "vesting_ledger_state")

# Upper bound on proof length accepted by the verifier (a tree of 2**64 leaves).
MAX_PROOF_LENGTH = int(os.getenv("MERKLE_VESTING_MAX_PROOF_LENGTH", "64"))


class TestnetConfig:
    """Testnet configuration (local testing and staging)."""

    NETWORK_TYPE = NetworkType.TESTNET

    DATA_DIR = os.path.join(DATA_DIR, "testnet")
    STATE_DB_PATH = STATE_DB_PATH or os.path.join(DATA_DIR, "vesting_state.db")
    STATE_KEY = STATE_KEY

    LOG_LEVEL = LOG_LEVEL
    LOG_FILE = LOG_FILE or None
    LOG_ENVIRONMENT = "testnet"

    MAX_PROOF_LENGTH = MAX_PROOF_LENGTH


class MainnetConfig:
    """Mainnet configuration (production)."""

    NETWORK_TYPE = NetworkType.MAINNET

    DATA_DIR = os.path.join(DATA_DIR, "mainnet")
    # Must be set explicitly; checked in get_config()
    STATE_DB_PATH = STATE_DB_PATH
    STATE_KEY = STATE_KEY

    LOG_LEVEL = LOG_LEVEL
    LOG_FILE = LOG_FILE or None
    LOG_ENVIRONMENT = "production"

    MAX_PROOF_LENGTH = MAX_PROOF_LENGTH


def get_config(network: Optional[str] = None) -> type:
    """Return the configuration class for ``network`` (defaults to NETWORK)."""
    selected = (network or NETWORK).strip().lower()
    if selected == NetworkType.MAINNET.value:
        if not MainnetConfig.STATE_DB_PATH:
            raise ConfigurationError(
                "CRITICAL: MERKLE_VESTING_STATE_DB environment variable required for mainnet."
            )
        return MainnetConfig
    if selected != NetworkType.TESTNET.value:
        raise ConfigurationError(f"Unknown network: {selected}")
    return TestnetConfig


if NETWORK.lower() == "mainnet" and not STATE_DB_PATH:
    logger.warning(
        "MERKLE_VESTING_STATE_DB is not set; mainnet ledger state cannot be persisted",
        extra={"event": "config.state_db_missing"},
    )

Config = MainnetConfig if NETWORK.lower() == "mainnet" else TestnetConfig

__all__ = [
    "Config",
    "ConfigurationError",
    "NetworkType",
    "TestnetConfig",
    "MainnetConfig",
    "get_config",
    "MAX_PROOF_LENGTH",
]
