"""Walrus Messaging: end-to-end encrypted messages and conversations on Walrus decentralized storage."""

from .config import Config
from .conversations import ConversationService
from .encryption import EncryptedData, EncryptionService
from .errors import WalrusMessagingError
from .keyring import Keyring, WalletKey
from .messaging import MessagingService
from .models import Conversation, Message, MessageType, StorageIndex
from .storage import StoredBlob, WalrusClient

try:
    from importlib.metadata import version as _pkg_version
    __version__ = _pkg_version("walrus-messaging")
except Exception:
    __version__ = "0.0.0"  # fallback for editable/dev installs

__all__ = [
    "Config",
    "Conversation",
    "ConversationService",
    "EncryptedData",
    "EncryptionService",
    "Keyring",
    "Message",
    "MessageType",
    "MessagingService",
    "StorageIndex",
    "StoredBlob",
    "WalletKey",
    "WalrusClient",
    "WalrusMessagingError",
]
