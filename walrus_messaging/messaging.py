"""
Messaging service: encrypt -> store -> blob ID, and blob ID -> fetch -> decrypt.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from .config import Config
from .encryption import EncryptedData, EncryptionService
from .errors import SignatureError
from .keyring import Keyring, normalize_address
from .storage import WalrusClient

logger = logging.getLogger("walrus.messaging")


@dataclass
class SendResult:
    blob_id: str
    timestamp: str
    size: int
    sender: str
    recipient: str


@dataclass
class RetrievedMessage:
    message: str
    sender: str
    recipient: str
    timestamp: str
    blob_id: str


class MessagingService:
    """Send and receive single encrypted messages through Walrus."""

    def __init__(
        self,
        config: Config,
        keyring: Keyring,
        storage: Optional[WalrusClient] = None,
        encryption: Optional[EncryptionService] = None
    ):
        self.config = config
        self.keyring = keyring
        self.storage = storage or WalrusClient.from_config(config)
        self.encryption = encryption or EncryptionService(keyring)

    def send_message(self, message: str, recipient: str, sender: Optional[str] = None) -> SendResult:
        """
        Encrypt a message for a recipient and store it on Walrus.

        Args:
            message: Plaintext message
            recipient: Recipient wallet address
            sender: Sender wallet address (default: configured sender)

        Returns:
            SendResult with the blob ID of the stored envelope
        """
        if not message or not message.strip():
            raise ValueError("Message cannot be empty")
        sender = sender or self.config.sender_address

        envelope = self.encryption.encrypt_message(message, recipient, sender)
        payload = self.encryption.serialize_encrypted_data(envelope)
        stored = self.storage.store_blob(payload)
        logger.info(f"Sent message {stored.blob_id} from {envelope.sender} to {envelope.recipient}")

        return SendResult(
            blob_id=stored.blob_id,
            timestamp=envelope.timestamp,
            size=len(payload),
            sender=envelope.sender,
            recipient=envelope.recipient,
        )

    def _fetch_envelope(self, blob_id: str, wait: bool = False) -> EncryptedData:
        if wait:
            raw = self.storage.wait_for_blob(
                blob_id,
                max_tries=self.config.poll_attempts,
                delay=self.config.poll_interval,
            )
        else:
            raw = self.storage.read_blob(blob_id)
        return self.encryption.deserialize_encrypted_data(raw)

    def retrieve_message(
        self,
        blob_id: str,
        recipient: str,
        sender: Optional[str] = None,
        wait: bool = True
    ) -> RetrievedMessage:
        """
        Fetch and decrypt a message as its recipient.

        Args:
            blob_id: Walrus blob ID of the envelope
            recipient: Reading wallet address (private key must be in the keyring)
            sender: Expected sender; a mismatch raises SignatureError
            wait: Poll until the blob is available instead of reading once
        """
        envelope = self._fetch_envelope(blob_id, wait=wait)
        if sender and normalize_address(sender) != normalize_address(envelope.sender):
            raise SignatureError(f"Message was sent by {envelope.sender}, not {sender}")

        plaintext = self.encryption.decrypt_message(envelope, recipient)
        logger.info(f"Retrieved message {blob_id} from {envelope.sender}")

        return RetrievedMessage(
            message=plaintext.decode("utf-8"),
            sender=envelope.sender,
            recipient=normalize_address(recipient),
            timestamp=envelope.timestamp,
            blob_id=blob_id,
        )

    def get_message_metadata(self, blob_id: str) -> Dict[str, Any]:
        """Envelope header of a stored message, without decrypting it."""
        raw = self.storage.read_blob(blob_id)
        envelope = self.encryption.deserialize_encrypted_data(raw)
        return {
            "blob_id": blob_id,
            "size": len(raw),
            "version": envelope.version,
            "sender": envelope.sender,
            "recipients": envelope.recipients,
            "timestamp": envelope.timestamp,
            "encrypted_size": len(envelope.encrypted_message),
            "signature_valid": self.encryption.verify(envelope),
        }

    def verify_message(self, blob_id: str, sender: str) -> bool:
        """True if the envelope is validly signed by the expected sender."""
        envelope = self._fetch_envelope(blob_id)
        if normalize_address(sender) != normalize_address(envelope.sender):
            logger.warning(f"Message {blob_id} sender mismatch: expected {sender}, got {envelope.sender}")
            return False
        return self.encryption.verify(envelope)
