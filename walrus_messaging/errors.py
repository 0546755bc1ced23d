"""Exceptions raised by walrus-messaging."""


class WalrusMessagingError(Exception):
    """Base error for walrus-messaging operations."""
    pass


class ConfigError(WalrusMessagingError):
    """Missing or malformed configuration."""
    pass


class StorageError(WalrusMessagingError):
    """Error talking to a Walrus publisher or aggregator."""
    pass


class BlobNotFoundError(StorageError):
    """The aggregator does not know the blob."""
    pass


class BlobNotAvailableError(StorageError):
    """The blob did not become readable within the poll budget."""
    pass


class KeyNotFoundError(WalrusMessagingError):
    """No (private) key for a wallet address in the keyring."""
    pass


class EncryptionError(WalrusMessagingError):
    """Error sealing or encrypting a message."""
    pass


class DecryptionError(EncryptionError):
    """The reader cannot unseal or decrypt an envelope."""
    pass


class SignatureError(EncryptionError):
    """Envelope signature or sender binding is invalid."""
    pass


class EnvelopeError(EncryptionError):
    """Serialized envelope is malformed or has an unsupported version."""
    pass


class ConversationNotFoundError(WalrusMessagingError):
    """Conversation is neither cached nor in the storage index."""
    pass
