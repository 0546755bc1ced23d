"""Shared fixtures for walrus-messaging tests."""

import socket
import threading
import time

import pytest
import requests
import uvicorn

from walrus_messaging.config import Config
from walrus_messaging.keyring import Keyring, WalletKey
from walrus_messaging.storage import WalrusClient


def _free_port():
    with socket.socket() as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]


@pytest.fixture(scope="session")
def walrus_service():
    """Start the fake Walrus publisher/aggregator on a random port."""
    port = _free_port()

    from fake_walrus import app  # tests/fake_walrus.py

    config = uvicorn.Config(app, host="127.0.0.1", port=port, log_level="warning")
    server = uvicorn.Server(config)

    thread = threading.Thread(target=server.run, daemon=True)
    thread.start()

    base_url = f"http://127.0.0.1:{port}"

    # Wait for server to be ready
    for _ in range(50):
        try:
            r = requests.get(f"{base_url}/", timeout=1)
            if r.status_code == 200:
                break
        except requests.ConnectionError:
            pass
        time.sleep(0.1)
    else:
        raise RuntimeError("Fake Walrus service did not start in time")

    yield base_url

    server.should_exit = True
    thread.join(timeout=5)


@pytest.fixture
def sender():
    return WalletKey.generate("sender")


@pytest.fixture
def receiver():
    return WalletKey.generate("receiver")


@pytest.fixture
def keyring(sender, receiver):
    """In-memory keyring holding both wallets."""
    ring = Keyring()
    ring.add(sender)
    ring.add(receiver)
    return ring


@pytest.fixture
def config(walrus_service, sender, receiver, tmp_path):
    return Config(
        sender_address=sender.address,
        receiver_address=receiver.address,
        aggregator_url=walrus_service,
        publisher_url=walrus_service,
        timeout=5.0,
        poll_attempts=3,
        poll_interval=0.0,
        keyring_path=tmp_path / "keyring.json",
    )


@pytest.fixture
def walrus(config):
    return WalrusClient.from_config(config)


@pytest.fixture
def cli_env(monkeypatch, tmp_path, walrus_service, sender, receiver):
    """Environment for CLI commands: both wallets saved to a temp keyring."""
    keyring_path = tmp_path / "keyring.json"
    ring = Keyring(keyring_path)
    ring.add(sender)
    ring.add(receiver)
    ring.save()

    monkeypatch.setenv("SENDER_WALLET_ADDRESS", sender.address)
    monkeypatch.setenv("RECEIVER_WALLET_ADDRESS", receiver.address)
    monkeypatch.setenv("WALRUS_AGGREGATOR_URL", walrus_service)
    monkeypatch.setenv("WALRUS_PUBLISHER_URL", walrus_service)
    monkeypatch.setenv("WALRUS_KEYRING_PATH", str(keyring_path))
    monkeypatch.setenv("WALRUS_POLL_ATTEMPTS", "3")
    monkeypatch.setenv("WALRUS_POLL_INTERVAL", "0")
    monkeypatch.setenv("WALRUS_TIMEOUT", "5")
    return keyring_path
