"""
Conversation data models.

Validation-only records: conversations, typed messages and the storage
index that maps them to Walrus blob IDs.
"""

import json
import secrets
import string
import time
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from .config import is_valid_address
from .keyring import normalize_address

MAX_CONTENT_LENGTH = 10_000

_BASE36 = string.digits + string.ascii_lowercase


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def new_conversation_id() -> str:
    return f"conv_{uuid.uuid4().hex[:16]}"


def new_message_id() -> str:
    return f"msg_{uuid.uuid4().hex[:16]}"


def new_request_id() -> str:
    """Payment request ID: req_<epoch ms>_<9 base36 chars>."""
    suffix = "".join(secrets.choice(_BASE36) for _ in range(9))
    return f"req_{int(time.time() * 1000)}_{suffix}"


def _check_address(value: str) -> str:
    if not isinstance(value, str) or not is_valid_address(value.strip()):
        raise ValueError(f"Invalid wallet address: {value!r}")
    return normalize_address(value)


class MessageType(str, Enum):
    """Kinds of conversation messages."""
    TEXT = "text"
    SEND_PAYMENT = "send_payment"
    REQUEST_PAYMENT = "request_payment"


class PaymentMetadata(BaseModel):
    """Metadata carried by a send_payment message."""
    amount: float = Field(..., gt=0, allow_inf_nan=False, description="Amount sent")
    currency: str = Field(..., description="Currency code, e.g. SUI or USD")
    recipient: str = Field(..., description="Payee wallet address")
    transaction_id: Optional[str] = Field(None, description="On-chain transaction digest")

    @field_validator("currency")
    @classmethod
    def check_currency(cls, value: str) -> str:
        return _check_currency(value)

    @field_validator("recipient")
    @classmethod
    def check_recipient(cls, value: str) -> str:
        return _check_address(value)

    @field_validator("transaction_id")
    @classmethod
    def strip_transaction_id(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        return value.strip() or None


class PaymentRequestMetadata(BaseModel):
    """Metadata carried by a request_payment message."""
    amount: float = Field(..., gt=0, allow_inf_nan=False, description="Amount requested")
    currency: str = Field(..., description="Currency code")
    request_id: str = Field(default_factory=new_request_id)

    @field_validator("currency")
    @classmethod
    def check_currency(cls, value: str) -> str:
        return _check_currency(value)


def _check_currency(value: str) -> str:
    value = value.strip().upper()
    if not (2 <= len(value) <= 10 and value.isalnum()):
        raise ValueError(f"Invalid currency code: {value!r}")
    return value


class Conversation(BaseModel):
    """A conversation between wallet addresses."""
    kind: str = "conversation"
    id: str = Field(default_factory=new_conversation_id)
    participants: List[str]
    created_by: str
    created_at: str = Field(default_factory=_now)

    @field_validator("participants")
    @classmethod
    def check_participants(cls, value: List[str]) -> List[str]:
        participants = []
        for address in value:
            address = _check_address(address)
            if address not in participants:
                participants.append(address)
        if len(participants) < 2:
            raise ValueError("A conversation needs at least two distinct participants")
        return participants

    @field_validator("created_by")
    @classmethod
    def check_created_by(cls, value: str) -> str:
        return _check_address(value)

    @model_validator(mode="after")
    def check_creator_participates(self) -> "Conversation":
        if self.created_by not in self.participants:
            raise ValueError("created_by must be a participant")
        return self

    @classmethod
    def create(cls, creator: str, participants: List[str]) -> "Conversation":
        """New conversation; the creator is always the first participant."""
        return cls(participants=[creator, *participants], created_by=creator)

    def has_participant(self, address: str) -> bool:
        return normalize_address(address) in self.participants

    def to_bytes(self) -> bytes:
        return self.model_dump_json().encode("utf-8")

    @classmethod
    def from_bytes(cls, raw: bytes) -> "Conversation":
        data = json.loads(raw)
        if not isinstance(data, dict) or data.get("kind") != "conversation":
            raise ValueError("Blob is not a conversation")
        return cls.model_validate(data)


class Message(BaseModel):
    """A typed message inside a conversation."""
    id: str = Field(default_factory=new_message_id)
    conversation_id: str
    type: MessageType
    content: str
    sender: str
    timestamp: str = Field(default_factory=_now)
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("content")
    @classmethod
    def check_content(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Message content cannot be empty")
        if len(value) > MAX_CONTENT_LENGTH:
            raise ValueError(f"Message content exceeds {MAX_CONTENT_LENGTH} characters")
        return value

    @field_validator("sender")
    @classmethod
    def check_sender(cls, value: str) -> str:
        return _check_address(value)

    @model_validator(mode="after")
    def check_typed_metadata(self) -> "Message":
        if self.type == MessageType.SEND_PAYMENT:
            self.metadata = PaymentMetadata.model_validate(self.metadata).model_dump()
        elif self.type == MessageType.REQUEST_PAYMENT:
            self.metadata = PaymentRequestMetadata.model_validate(self.metadata).model_dump()
        return self

    def to_bytes(self) -> bytes:
        return self.model_dump_json().encode("utf-8")

    @classmethod
    def from_bytes(cls, raw: bytes) -> "Message":
        return cls.model_validate_json(raw)


class StorageIndex(BaseModel):
    """
    Maps conversation and message IDs to Walrus blob IDs.

    Kept in memory; saved to Walrus as a JSON blob and loaded back by blob ID.
    """
    kind: str = "storage_index"
    owner: Optional[str] = None
    conversations: Dict[str, str] = Field(default_factory=dict)
    messages: Dict[str, str] = Field(default_factory=dict)
    conversation_messages: Dict[str, List[str]] = Field(default_factory=dict)
    updated_at: str = Field(default_factory=_now)

    def _touch(self) -> None:
        self.updated_at = _now()

    def add_conversation(self, conversation_id: str, blob_id: str) -> None:
        self.conversations[conversation_id] = blob_id
        self.conversation_messages.setdefault(conversation_id, [])
        self._touch()

    def add_message(self, conversation_id: str, message_id: str, blob_id: str) -> None:
        self.messages[message_id] = blob_id
        ids = self.conversation_messages.setdefault(conversation_id, [])
        if message_id not in ids:
            ids.append(message_id)
        self._touch()

    def get_conversation_blob_id(self, conversation_id: str) -> Optional[str]:
        return self.conversations.get(conversation_id)

    def get_message_blob_id(self, message_id: str) -> Optional[str]:
        return self.messages.get(message_id)

    def get_conversation_messages(self, conversation_id: str) -> List[str]:
        return list(self.conversation_messages.get(conversation_id, []))

    def to_bytes(self) -> bytes:
        return self.model_dump_json().encode("utf-8")

    @classmethod
    def from_bytes(cls, raw: bytes) -> "StorageIndex":
        data = json.loads(raw)
        if not isinstance(data, dict) or data.get("kind") != "storage_index":
            raise ValueError("Blob is not a storage index")
        return cls.model_validate(data)
