"""
Envelope encryption for Walrus messages.

The message body is encrypted once with a random AES-256-GCM data key. That
key is sealed separately to every addressee (and the sender) with a NaCl
sealed box on their Curve25519 key, so only holders of one of those wallet
keys can open it. The sender signs the whole envelope with their Ed25519 key.
"""

import base64
import json
import os
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional, Union

import nacl.exceptions
import nacl.public
from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from .errors import DecryptionError, EncryptionError, EnvelopeError, SignatureError
from .keyring import Keyring, WalletKey, derive_address, normalize_address

ENVELOPE_VERSION = 1
KEY_SIZE = 32
NONCE_SIZE = 12


def _b64(data: bytes) -> str:
    return base64.b64encode(data).decode()


def _unb64(data: str) -> bytes:
    return base64.b64decode(data, validate=True)


@dataclass
class EncryptedData:
    """An encrypted, signed message envelope."""
    sender: str
    recipients: List[str]
    timestamp: str
    nonce: bytes
    encrypted_message: bytes
    sealed_keys: Dict[str, bytes]
    sender_public_key: str
    signature: str = ""
    version: int = ENVELOPE_VERSION

    @property
    def recipient(self) -> str:
        """Primary recipient."""
        return self.recipients[0]

    @property
    def sealed_key(self) -> bytes:
        """The primary recipient's copy of the data key."""
        return self.sealed_keys[self.recipient]

    def header(self) -> bytes:
        """Canonical header, bound to the ciphertext as associated data."""
        content = {
            "version": self.version,
            "sender": self.sender,
            "recipients": self.recipients,
            "timestamp": self.timestamp,
        }
        return json.dumps(content, sort_keys=True, separators=(',', ':')).encode('utf-8')

    def to_signable(self) -> bytes:
        """Get the canonical bytes to sign."""
        content = self.to_dict()
        content.pop("signature")
        return json.dumps(content, sort_keys=True, separators=(',', ':')).encode('utf-8')

    def to_dict(self) -> Dict:
        return {
            "version": self.version,
            "sender": self.sender,
            "recipients": self.recipients,
            "timestamp": self.timestamp,
            "nonce": _b64(self.nonce),
            "encrypted_message": _b64(self.encrypted_message),
            "sealed_keys": {a: _b64(k) for a, k in self.sealed_keys.items()},
            "sender_public_key": self.sender_public_key,
            "signature": self.signature,
        }

    @classmethod
    def from_dict(cls, data: Dict) -> "EncryptedData":
        """
        Build an envelope from its JSON form.

        Raises:
            EnvelopeError: If a field is missing or has the wrong type
        """
        for name in ("sender", "timestamp", "nonce", "encrypted_message", "sender_public_key"):
            if not isinstance(data.get(name), str):
                raise EnvelopeError(f"Envelope field {name!r} must be a string")
        if not isinstance(data.get("signature", ""), str):
            raise EnvelopeError("Envelope field 'signature' must be a string")
        recipients = data.get("recipients")
        if not isinstance(recipients, list) or not recipients or not all(isinstance(r, str) for r in recipients):
            raise EnvelopeError("Envelope field 'recipients' must be a non-empty list of strings")
        sealed_keys = data.get("sealed_keys")
        if not isinstance(sealed_keys, dict) or not all(
            isinstance(a, str) and isinstance(k, str) for a, k in sealed_keys.items()
        ):
            raise EnvelopeError("Envelope field 'sealed_keys' must map addresses to strings")

        return cls(
            version=data["version"],
            sender=data["sender"],
            recipients=list(data["recipients"]),
            timestamp=data["timestamp"],
            nonce=_unb64(data["nonce"]),
            encrypted_message=_unb64(data["encrypted_message"]),
            sealed_keys={a: _unb64(k) for a, k in data["sealed_keys"].items()},
            sender_public_key=data["sender_public_key"],
            signature=data.get("signature", ""),
        )


class EncryptionService:
    """Encrypts messages for wallet addresses held in a keyring."""

    def __init__(self, keyring: Optional[Keyring] = None):
        self.keyring = keyring if keyring is not None else Keyring()

    # ── Data keys ──

    def generate_key(self) -> bytes:
        """Fresh AES-256 data key."""
        return AESGCM.generate_key(bit_length=KEY_SIZE * 8)

    def export_key(self, key: bytes) -> bytes:
        return bytes(self._check_key(key))

    def import_key(self, key_bytes: bytes) -> bytes:
        return bytes(self._check_key(key_bytes))

    @staticmethod
    def _check_key(key: bytes) -> bytes:
        if not isinstance(key, (bytes, bytearray)) or len(key) != KEY_SIZE:
            raise EncryptionError(f"Data key must be {KEY_SIZE} bytes")
        return key

    # ── Encryption ──

    def encrypt_message(
        self,
        message: Union[str, bytes],
        recipient: str,
        sender: str,
        extra_recipients: Iterable[str] = ()
    ) -> EncryptedData:
        """
        Encrypt a message for a recipient.

        Args:
            message: Plaintext (str is UTF-8 encoded)
            recipient: Recipient wallet address
            sender: Sender wallet address (private key must be in the keyring)
            extra_recipients: Further addressees

        Returns:
            Signed EncryptedData envelope

        Raises:
            KeyNotFoundError: If a required key is missing from the keyring
        """
        return self.encrypt_for(message, sender, [recipient, *extra_recipients])

    def encrypt_for(self, payload: Union[str, bytes], sender: str, recipients: Iterable[str]) -> EncryptedData:
        """Encrypt a payload for several recipients at once."""
        if isinstance(payload, str):
            payload = payload.encode('utf-8')

        sender_key = self.keyring.require(sender, private=True)
        addressees: List[str] = []
        for address in recipients:
            address = normalize_address(address)
            if address not in addressees:
                addressees.append(address)
        if not addressees:
            raise EncryptionError("At least one recipient is required")

        # The sender keeps a copy of the data key so they can reread their own messages
        key_holders = addressees + ([] if sender_key.address in addressees else [sender_key.address])
        holder_keys = {address: self.keyring.require(address) for address in key_holders}

        data_key = self.generate_key()
        envelope = EncryptedData(
            sender=sender_key.address,
            recipients=addressees,
            timestamp=datetime.now(timezone.utc).isoformat(),
            nonce=os.urandom(NONCE_SIZE),
            encrypted_message=b"",
            sealed_keys={},
            sender_public_key=sender_key.public_key,
        )
        envelope.encrypted_message = AESGCM(data_key).encrypt(envelope.nonce, payload, envelope.header())
        envelope.sealed_keys = {
            address: nacl.public.SealedBox(key.curve_public_key()).encrypt(data_key)
            for address, key in holder_keys.items()
        }
        envelope.signature = sender_key.sign(envelope.to_signable())
        return envelope

    # ── Decryption ──

    def verify(self, data: EncryptedData) -> bool:
        """Check the envelope signature and that the signing key belongs to the sender."""
        try:
            signer = derive_address(_unb64(data.sender_public_key))
        except ValueError:
            return False
        if signer != normalize_address(data.sender):
            return False
        return WalletKey.verify(data.sender_public_key, data.to_signable(), data.signature)

    def decrypt_message(self, data: EncryptedData, reader: str) -> bytes:
        """
        Decrypt an envelope as one of its key holders.

        Raises:
            SignatureError: If the envelope is not validly signed by its sender
            DecryptionError: If the reader holds no key copy or decryption fails
        """
        if not self.verify(data):
            raise SignatureError("Envelope signature is invalid")

        reader = normalize_address(reader)
        sealed_key = data.sealed_keys.get(reader)
        if sealed_key is None:
            raise DecryptionError(f"{reader} is not a recipient of this message")

        reader_key = self.keyring.require(reader, private=True)
        try:
            data_key = nacl.public.SealedBox(reader_key.curve_private_key()).decrypt(sealed_key)
            return AESGCM(data_key).decrypt(data.nonce, data.encrypted_message, data.header())
        except nacl.exceptions.CryptoError as e:
            raise DecryptionError(f"Could not unseal message key: {e}") from e
        except InvalidTag:
            raise DecryptionError("Message authentication failed")
        except ValueError as e:
            # Wrong nonce or key length
            raise DecryptionError(f"Malformed envelope: {e}") from e

    # ── Serialization ──

    def serialize_encrypted_data(self, data: EncryptedData) -> bytes:
        return json.dumps(data.to_dict(), sort_keys=True).encode('utf-8')

    def deserialize_encrypted_data(self, raw: bytes) -> EncryptedData:
        """
        Parse a stored envelope.

        Raises:
            EnvelopeError: If the bytes are not a supported envelope
        """
        try:
            content = json.loads(raw)
        except (ValueError, UnicodeDecodeError) as e:
            raise EnvelopeError(f"Envelope is not valid JSON: {e}") from e
        if not isinstance(content, dict):
            raise EnvelopeError("Envelope must be a JSON object")
        if content.get("version") != ENVELOPE_VERSION:
            raise EnvelopeError(f"Unsupported envelope version: {content.get('version')}")
        try:
            return EncryptedData.from_dict(content)
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise EnvelopeError(f"Malformed envelope: {e}") from e
