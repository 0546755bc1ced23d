"""
Wallet keys and the local keyring.

Each wallet is an Ed25519 keypair. Its address is derived like a Sui address:
0x + blake2b-256(scheme flag 0x00 || public key). The same key, converted to
Curve25519, is what message keys are sealed to.
"""

import base64
import hashlib
import json
import logging
import os
import time
from pathlib import Path
from typing import Dict, List, Optional

import nacl.bindings
import nacl.exceptions
import nacl.public
import nacl.signing

from .errors import KeyNotFoundError

logger = logging.getLogger("walrus.keyring")

ED25519_FLAG = b"\x00"


def derive_address(public_key_bytes: bytes) -> str:
    """Sui-style address for an Ed25519 public key."""
    digest = hashlib.blake2b(ED25519_FLAG + public_key_bytes, digest_size=32).hexdigest()
    return f"0x{digest}"


def normalize_address(address: str) -> str:
    return address.strip().lower()


class WalletKey:
    """An Ed25519 wallet key, optionally without its private half (a contact)."""

    def __init__(
        self,
        verify_key: nacl.signing.VerifyKey,
        signing_key: Optional[nacl.signing.SigningKey] = None,
        label: Optional[str] = None,
        created_at: Optional[int] = None
    ):
        self.verify_key = verify_key
        self.signing_key = signing_key
        self.label = label
        self.created_at = created_at or int(time.time())

    @classmethod
    def generate(cls, label: Optional[str] = None) -> "WalletKey":
        """Create a new wallet with a fresh keypair."""
        signing_key = nacl.signing.SigningKey.generate()
        return cls(signing_key.verify_key, signing_key, label)

    @classmethod
    def from_private_key(cls, private_key_b64: str, label: Optional[str] = None) -> "WalletKey":
        """Restore a wallet from its base64 32-byte seed."""
        seed = base64.b64decode(private_key_b64)
        if len(seed) != nacl.bindings.crypto_sign_SEEDBYTES:
            raise ValueError(f"Private key must be a {nacl.bindings.crypto_sign_SEEDBYTES}-byte seed, got {len(seed)} bytes")
        signing_key = nacl.signing.SigningKey(seed)
        return cls(signing_key.verify_key, signing_key, label)

    @classmethod
    def from_public_key(cls, public_key_b64: str, label: Optional[str] = None) -> "WalletKey":
        """A contact: someone we can seal keys to but not sign as."""
        return cls(nacl.signing.VerifyKey(base64.b64decode(public_key_b64)), None, label)

    @property
    def address(self) -> str:
        return derive_address(bytes(self.verify_key))

    @property
    def public_key(self) -> str:
        """Base64-encoded public key."""
        return base64.b64encode(bytes(self.verify_key)).decode()

    @property
    def private_key(self) -> Optional[str]:
        """Base64-encoded private seed. KEEP THIS SECRET."""
        if self.signing_key is None:
            return None
        return base64.b64encode(bytes(self.signing_key)).decode()

    @property
    def has_private_key(self) -> bool:
        return self.signing_key is not None

    def sign(self, message: bytes) -> str:
        """Sign bytes and return a base64 signature."""
        if self.signing_key is None:
            raise KeyNotFoundError(f"No private key for {self.address}")
        return base64.b64encode(self.signing_key.sign(message).signature).decode()

    @staticmethod
    def verify(public_key_b64: str, message: bytes, signature_b64: str) -> bool:
        """Verify a signature against a base64 public key."""
        try:
            verify_key = nacl.signing.VerifyKey(base64.b64decode(public_key_b64))
            verify_key.verify(message, base64.b64decode(signature_b64))
            return True
        except (nacl.exceptions.BadSignatureError, ValueError, TypeError):
            return False

    def curve_public_key(self) -> nacl.public.PublicKey:
        return self.verify_key.to_curve25519_public_key()

    def curve_private_key(self) -> nacl.public.PrivateKey:
        if self.signing_key is None:
            raise KeyNotFoundError(f"No private key for {self.address}")
        return self.signing_key.to_curve25519_private_key()

    def to_dict(self) -> Dict:
        data = {
            "public_key": self.public_key,
            "label": self.label,
            "created_at": self.created_at,
        }
        if self.signing_key is not None:
            data["private_key"] = self.private_key
        return data

    @classmethod
    def from_dict(cls, data: Dict) -> "WalletKey":
        if data.get("private_key"):
            key = cls.from_private_key(data["private_key"], data.get("label"))
        else:
            key = cls.from_public_key(data["public_key"], data.get("label"))
        key.created_at = data.get("created_at", key.created_at)
        return key

    def __repr__(self):
        kind = "wallet" if self.has_private_key else "contact"
        return f"WalletKey({self.address}, {kind}, label={self.label!r})"


class Keyring:
    """
    Wallet keys and contacts, keyed by address.

    With a path, the keyring is a JSON file written owner-only (0600);
    without one it lives in memory.
    """

    def __init__(self, path: Optional[Path] = None):
        self.path = Path(path) if path else None
        self._keys: Dict[str, WalletKey] = {}

    @classmethod
    def open(cls, path: Path) -> "Keyring":
        """Load a keyring file, or start an empty one if it does not exist."""
        keyring = cls(path)
        keyring.load()
        return keyring

    def load(self) -> None:
        if self.path is None or not self.path.exists():
            return
        with open(self.path) as f:
            data = json.load(f)
        if not isinstance(data, dict) or not isinstance(data.get("keys", {}), dict):
            raise ValueError(f"Keyring {self.path} must be a JSON object with a 'keys' object")
        try:
            self._keys = {
                normalize_address(address): WalletKey.from_dict(entry)
                for address, entry in data.get("keys", {}).items()
            }
        except (KeyError, TypeError, AttributeError) as e:
            raise ValueError(f"Malformed keyring entry in {self.path}: {e!r}") from e
        logger.debug(f"Loaded {len(self._keys)} key(s) from {self.path}")

    def save(self) -> None:
        if self.path is None:
            return
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, "w") as f:
            json.dump({"keys": {a: k.to_dict() for a, k in self._keys.items()}}, f, indent=2)
        os.chmod(self.path, 0o600)

    def add(self, key: WalletKey) -> WalletKey:
        """Add a key, never replacing a held private key with a public-only one."""
        address = key.address
        existing = self._keys.get(address)
        if existing is not None and existing.has_private_key and not key.has_private_key:
            if key.label and not existing.label:
                existing.label = key.label
            return existing
        self._keys[address] = key
        return key

    def generate(self, label: Optional[str] = None) -> WalletKey:
        key = self.add(WalletKey.generate(label))
        logger.info(f"Generated wallet {key.address}")
        return key

    def import_public_key(self, public_key_b64: str, label: Optional[str] = None) -> WalletKey:
        try:
            key = WalletKey.from_public_key(public_key_b64, label)
        except (ValueError, TypeError) as e:
            raise KeyNotFoundError(f"Invalid public key: {e}") from e
        return self.add(key)

    def get(self, address: str) -> Optional[WalletKey]:
        return self._keys.get(normalize_address(address))

    def require(self, address: str, private: bool = False) -> WalletKey:
        """
        Look up a key, raising if it is missing.

        Args:
            address: Wallet address
            private: Also require the private half

        Raises:
            KeyNotFoundError: If the keyring cannot serve the request
        """
        key = self.get(address)
        if key is None:
            raise KeyNotFoundError(
                f"No key for {address} in keyring. Run: walrus-msg keys generate "
                f"(own wallet) or walrus-msg keys import (contact)"
            )
        if private and not key.has_private_key:
            raise KeyNotFoundError(f"Only the public key of {address} is in the keyring")
        return key

    def addresses(self) -> List[str]:
        return list(self._keys)

    def keys(self) -> List[WalletKey]:
        return list(self._keys.values())

    def __contains__(self, address: str) -> bool:
        return normalize_address(address) in self._keys

    def __len__(self) -> int:
        return len(self._keys)
