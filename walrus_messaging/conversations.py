"""
Conversation service: typed messages grouped into conversations.

Conversations are stored as JSON blobs, messages as envelopes encrypted for
every participant. The StorageIndex remembers which blob holds what and can
itself be saved to and loaded from Walrus.
"""

import logging
from typing import Any, Dict, List, Optional, Tuple, Union

from .config import Config
from .encryption import EncryptionService
from .errors import ConversationNotFoundError, WalrusMessagingError
from .keyring import Keyring, normalize_address
from .models import Conversation, Message, MessageType, StorageIndex
from .storage import StoredBlob, WalrusClient

logger = logging.getLogger("walrus.conversations")


class ConversationService:
    """Conversations for the configured sender address."""

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
        self.user = config.sender_address
        self.storage_index = StorageIndex(owner=self.user.lower() if self.user else None)
        self._conversations: Dict[str, Conversation] = {}

    # ── Conversations ──

    def create_conversation(self, participants: List[str]) -> Tuple[Conversation, str]:
        """
        Create and store a conversation between the user and others.

        Returns:
            (conversation, blob_id)
        """
        conversation = Conversation.create(self.user, participants)
        stored = self.storage.store_blob(conversation.to_bytes())

        self._conversations[conversation.id] = conversation
        self.storage_index.add_conversation(conversation.id, stored.blob_id)
        logger.info(f"Created conversation {conversation.id} in blob {stored.blob_id}")
        return conversation, stored.blob_id

    def get_conversation(self, conversation_id: str) -> Optional[Conversation]:
        """Cached conversation, or fetched from its blob if only the index knows it."""
        if conversation_id in self._conversations:
            return self._conversations[conversation_id]

        blob_id = self.storage_index.get_conversation_blob_id(conversation_id)
        if not blob_id:
            return None
        try:
            conversation = Conversation.from_bytes(self.storage.read_blob(blob_id))
        except (WalrusMessagingError, ValueError) as e:
            logger.warning(f"Could not load conversation {conversation_id} from {blob_id}: {e}")
            return None

        self._conversations[conversation_id] = conversation
        return conversation

    def get_user_conversations(self) -> List[Conversation]:
        """Indexed conversations the user participates in."""
        conversations = []
        for conversation_id in self.storage_index.conversations:
            conversation = self.get_conversation(conversation_id)
            if conversation is not None and conversation.has_participant(self.user):
                conversations.append(conversation)
        return conversations

    # ── Messages ──

    def send_message(
        self,
        conversation_id: str,
        message_type: Union[MessageType, str],
        content: str,
        metadata: Optional[Dict[str, Any]] = None
    ) -> Tuple[Message, str]:
        """
        Validate, encrypt for all participants and store a message.

        Returns:
            (message, blob_id)

        Raises:
            ConversationNotFoundError: If the conversation is unknown
            ValidationError: If the message or its metadata is invalid
        """
        conversation = self.get_conversation(conversation_id)
        if conversation is None:
            raise ConversationNotFoundError(f"Conversation not found: {conversation_id}")
        if not conversation.has_participant(self.user):
            raise ConversationNotFoundError(f"{self.user} is not a participant of {conversation_id}")

        message = Message(
            conversation_id=conversation_id,
            type=MessageType(message_type),
            content=content,
            sender=self.user,
            metadata=metadata or {},
        )
        envelope = self.encryption.encrypt_for(message.to_bytes(), self.user, conversation.participants)
        stored = self.storage.store_blob(self.encryption.serialize_encrypted_data(envelope))

        self.storage_index.add_message(conversation_id, message.id, stored.blob_id)
        logger.info(f"Sent {message.type.value} message {message.id} to {conversation_id}")
        return message, stored.blob_id

    def get_message(self, message_id: str, blob_id: str) -> Optional[Message]:
        """Fetch and decrypt a message; None if it cannot be read as the user."""
        try:
            envelope = self.encryption.deserialize_encrypted_data(self.storage.read_blob(blob_id))
            message = Message.from_bytes(self.encryption.decrypt_message(envelope, self.user))
        except (WalrusMessagingError, ValueError) as e:
            logger.warning(f"Could not read message {message_id} from {blob_id}: {e}")
            return None

        if message.sender != normalize_address(envelope.sender):
            logger.warning(f"Blob {blob_id} is signed by {envelope.sender} but claims sender {message.sender}")
            return None
        if message.id != message_id:
            logger.warning(f"Blob {blob_id} holds message {message.id}, not {message_id}")
            return None
        return message

    def get_conversation_messages(self, conversation_id: str) -> List[Message]:
        """Readable messages of a conversation, in send order."""
        messages = []
        for message_id in self.storage_index.get_conversation_messages(conversation_id):
            blob_id = self.storage_index.get_message_blob_id(message_id)
            if not blob_id:
                continue
            message = self.get_message(message_id, blob_id)
            if message is not None:
                messages.append(message)
        return messages

    # ── Storage index ──

    def save_storage_index(self) -> StoredBlob:
        """Upload the current index; returns the stored blob."""
        stored = self.storage.store_blob(self.storage_index.to_bytes())
        logger.info(f"Saved storage index to {stored.blob_id}")
        return stored

    def load_storage_index(self, blob_id: str) -> bool:
        """Replace the index with one stored on Walrus. Keeps the current one on failure."""
        try:
            index = StorageIndex.from_bytes(self.storage.read_blob(blob_id))
        except (WalrusMessagingError, ValueError) as e:
            logger.error(f"Failed to load storage index {blob_id}: {e}")
            return False

        self.storage_index = index
        self._conversations.clear()
        logger.info(f"Loaded storage index {blob_id} ({len(index.conversations)} conversation(s))")
        return True
