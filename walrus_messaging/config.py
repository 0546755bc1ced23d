"""
Environment configuration.

Values come from the process environment; a `.env` file in the working
directory is loaded first but never overrides variables that are already set.
"""

import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Tuple

from dotenv import load_dotenv

from .errors import ConfigError

DEFAULT_AGGREGATOR_URL = "https://aggregator.walrus-testnet.walrus.space"
DEFAULT_PUBLISHER_URL = "https://publisher.walrus-testnet.walrus.space"
DEFAULT_FULLNODE_URL = "https://fullnode.testnet.sui.io:443"
DEFAULT_NETWORK = "testnet"
DEFAULT_KEYRING_PATH = Path.home() / ".walrus-messaging" / "keyring.json"

ADDRESS_RE = re.compile(r"^0x[0-9a-fA-F]{1,64}$")


def is_valid_address(address: str) -> bool:
    """Check that a string looks like a Sui wallet address."""
    return bool(address) and bool(ADDRESS_RE.match(address))


def _int_env(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigError(f"{name} must be an integer, got {raw!r}")


def _float_env(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        raise ConfigError(f"{name} must be a number, got {raw!r}")


@dataclass
class Config:
    """Runtime settings for the CLI and services."""
    sender_address: Optional[str]
    receiver_address: Optional[str]
    aggregator_url: str = DEFAULT_AGGREGATOR_URL
    publisher_url: str = DEFAULT_PUBLISHER_URL
    network: str = DEFAULT_NETWORK
    fullnode_url: str = DEFAULT_FULLNODE_URL
    epochs: int = 1
    timeout: float = 30.0
    poll_attempts: int = 10
    poll_interval: float = 3.0
    keyring_path: Path = DEFAULT_KEYRING_PATH

    @classmethod
    def from_env(cls, dotenv: bool = True) -> "Config":
        """Build a Config from environment variables (and `.env`)."""
        if dotenv:
            load_dotenv(override=False)

        keyring_path = os.environ.get("WALRUS_KEYRING_PATH")
        return cls(
            sender_address=os.environ.get("SENDER_WALLET_ADDRESS") or None,
            receiver_address=os.environ.get("RECEIVER_WALLET_ADDRESS") or None,
            aggregator_url=os.environ.get("WALRUS_AGGREGATOR_URL", DEFAULT_AGGREGATOR_URL).rstrip("/"),
            publisher_url=os.environ.get("WALRUS_PUBLISHER_URL", DEFAULT_PUBLISHER_URL).rstrip("/"),
            network=os.environ.get("SUI_NETWORK", DEFAULT_NETWORK),
            fullnode_url=os.environ.get("SUI_FULLNODE_URL", DEFAULT_FULLNODE_URL).rstrip("/"),
            epochs=_int_env("WALRUS_EPOCHS", 1),
            timeout=_float_env("WALRUS_TIMEOUT", 30.0),
            poll_attempts=_int_env("WALRUS_POLL_ATTEMPTS", 10),
            poll_interval=_float_env("WALRUS_POLL_INTERVAL", 3.0),
            keyring_path=Path(keyring_path).expanduser() if keyring_path else DEFAULT_KEYRING_PATH,
        )

    def validate(self, require_addresses: bool = True) -> None:
        """
        Check the configuration.

        Raises:
            ConfigError: naming the first missing or malformed setting
        """
        for var, value in (
            ("SENDER_WALLET_ADDRESS", self.sender_address),
            ("RECEIVER_WALLET_ADDRESS", self.receiver_address),
        ):
            if not value:
                if require_addresses:
                    raise ConfigError(f"{var} is required in environment variables")
                continue
            if not is_valid_address(value):
                raise ConfigError(f"{var} is not a valid wallet address: {value}")

        if self.epochs < 1:
            raise ConfigError("WALRUS_EPOCHS must be at least 1")
        if self.poll_attempts < 1:
            raise ConfigError("WALRUS_POLL_ATTEMPTS must be at least 1")

    def describe(self) -> List[Tuple[str, str]]:
        """Rows for displaying the configuration."""
        return [
            ("Sender Address", self.sender_address or "NOT SET"),
            ("Receiver Address", self.receiver_address or "NOT SET"),
            ("Walrus Aggregator", self.aggregator_url),
            ("Walrus Publisher", self.publisher_url),
            ("Sui Fullnode", self.fullnode_url),
            ("Network", self.network),
            ("Storage Epochs", str(self.epochs)),
            ("Keyring", str(self.keyring_path)),
        ]
