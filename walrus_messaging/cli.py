#!/usr/bin/env python3
"""
walrus-msg: Encrypted messaging on Walrus decentralized storage.

Commands:
  demo          Send an example message, then retrieve and decrypt it
  send          Encrypt and store a message
  read          Retrieve and decrypt a message
  metadata      Show a stored message's envelope header
  verify        Verify a message's sender signature
  interactive   Interactive messaging menu
  conversation  Interactive structured conversation app
  selftest      Offline encryption and configuration check
  config        Show the configuration
  keys          Manage wallet keys and contacts
"""

import argparse
import json
import logging
import sys
import time

from pydantic import ValidationError

from .config import Config
from .conversations import ConversationService
from .encryption import EncryptionService
from .errors import ConfigError, WalrusMessagingError
from .keyring import Keyring, WalletKey
from .messaging import MessagingService
from .models import MessageType

EXAMPLE_MESSAGE = "Hello! This is a secret message stored on Walrus with sealed-key encryption! 🔐"
TEST_MESSAGE = "Hello! This is a test message for Walrus encrypted messaging! 🔐"
MOCK_SENDER_LABEL = "mock-sender"
MOCK_RECEIVER_LABEL = "mock-receiver"

TROUBLESHOOTING = [
    "Make sure you have SUI and WAL tokens in your wallet",
    "Verify your wallet addresses are correct",
    "Make sure both wallets are in your keyring (walrus-msg keys list)",
    "Check your internet connection",
    "Ensure Walrus network is accessible",
]

CLI_ERRORS = (WalrusMessagingError, ValidationError, ValueError)


# ── Helpers ──────────────────────────────────────────────────────────

def load_config(require_addresses=True):
    """Read configuration, or print the problem and exit 1."""
    try:
        config = Config.from_env()
        config.validate(require_addresses=require_addresses)
    except ConfigError as e:
        print(f"❌ {e}")
        if "WALLET_ADDRESS" in str(e):
            print("Please set the wallet address in the .env file")
        sys.exit(1)
    return config


def open_keyring(config):
    try:
        return Keyring.open(config.keyring_path)
    except (OSError, ValueError) as e:
        print(f"❌ Could not read keyring {config.keyring_path}: {e}")
        sys.exit(1)


def print_config_summary(config):
    print("✅ Configuration validated")
    print(f"📤 Sender: {config.sender_address}")
    print(f"📥 Receiver: {config.receiver_address}")


def print_troubleshooting():
    print("\n🔧 Troubleshooting:")
    for tip in TROUBLESHOOTING:
        print(f"- {tip}")


def prompt(text):
    return input(text).strip()


def print_message(message):
    print(f"🆔 Message ID: {message.id}")
    print(f"💬 Type: {message.type.value}")
    print(f"💬 Content: \"{message.content}\"")
    print(f"👤 Sender: {message.sender}")
    print(f"📅 Timestamp: {message.timestamp}")
    if message.metadata:
        print("📊 Metadata:")
        for key, value in message.metadata.items():
            print(f"   {key}: {value}")


# ── Messaging ────────────────────────────────────────────────────────

def send_example_message(service, config, text=EXAMPLE_MESSAGE):
    print("\n📤 Sending Message...")
    result = service.send_message(text, config.receiver_address)
    print("✅ Message sent successfully!")
    print(f"📋 Blob ID: {result.blob_id}")
    print(f"📅 Timestamp: {result.timestamp}")
    print(f"📏 Size: {result.size} bytes")
    return result.blob_id


def retrieve_example_message(service, config, blob_id, reader=None, wait=True):
    print("\n📥 Retrieving Message...")
    result = service.retrieve_message(
        blob_id,
        reader or config.receiver_address,
        config.sender_address,
        wait=wait,
    )
    print("✅ Message retrieved and decrypted successfully!")
    print(f"💬 Message: \"{result.message}\"")
    print(f"📤 From: {result.sender}")
    print(f"📥 To: {result.recipient}")
    print(f"📅 Timestamp: {result.timestamp}")
    return result


def show_message_metadata(service, blob_id):
    print("\n📊 Getting Message Metadata...")
    metadata = service.get_message_metadata(blob_id)
    print("✅ Message metadata retrieved!")
    print(f"📋 Metadata: {json.dumps(metadata, indent=2)}")
    return metadata


def verify_stored_message(service, blob_id, sender):
    print("\n🔍 Verifying Message...")
    is_valid = service.verify_message(blob_id, sender)
    if is_valid:
        print("✅ Message verification passed!")
    else:
        print("❌ Message verification failed!")
    return is_valid


# ── Commands ─────────────────────────────────────────────────────────

def cmd_demo(args):
    """Send an example message, wait for Walrus, then retrieve and decrypt it."""
    print("🚀 Walrus Encrypted Messaging App Example")
    print("==========================================")
    config = load_config()
    print_config_summary(config)
    service = MessagingService(config, open_keyring(config))

    try:
        blob_id = send_example_message(service, config, args.message or EXAMPLE_MESSAGE)

        print("\n⏳ Waiting for blob to be processed and certified on Walrus network...")
        print("   This may take a few seconds as the blob needs to be distributed and certified.")
        time.sleep(args.wait)

        retrieve_example_message(service, config, blob_id)

        print("\n🎉 Example completed successfully!")
        print("\n📚 What happened:")
        print("1. Message was encrypted with a fresh key sealed to the recipient")
        print("2. Encrypted data was stored on Walrus decentralized storage")
        print("3. Message was retrieved and decrypted successfully")
        print("4. Sender signature was verified")
    except CLI_ERRORS as e:
        print(f"\n💥 Example failed: {e}")
        print_troubleshooting()
        sys.exit(1)


def cmd_send(args):
    """Encrypt and store a message."""
    config = load_config(require_addresses=False)
    sender = args.sender or config.sender_address
    recipient = args.recipient or config.receiver_address
    if not sender or not recipient:
        print("❌ Sender and recipient are required (--from/--to or SENDER/RECEIVER_WALLET_ADDRESS)")
        sys.exit(1)

    service = MessagingService(config, open_keyring(config))
    try:
        result = service.send_message(args.content, recipient, sender=sender)
    except CLI_ERRORS as e:
        print(f"❌ Failed to send message: {e}")
        sys.exit(1)
    print(f"✅ Message sent to {result.recipient}")
    print(f"   Blob ID: {result.blob_id}")
    print(f"   Size: {result.size} bytes")


def cmd_read(args):
    """Retrieve and decrypt a message."""
    config = load_config(require_addresses=False)
    reader = args.reader or config.receiver_address
    if not reader:
        print("❌ Reader address is required (--as or RECEIVER_WALLET_ADDRESS)")
        sys.exit(1)

    service = MessagingService(config, open_keyring(config))
    try:
        result = service.retrieve_message(args.blob_id, reader, args.sender, wait=not args.no_wait)
    except CLI_ERRORS as e:
        print(f"❌ Failed to retrieve message: {e}")
        sys.exit(1)
    print(f"💬 Message: \"{result.message}\"")
    print(f"📤 From: {result.sender}")
    print(f"📥 To: {result.recipient}")
    print(f"📅 Timestamp: {result.timestamp}")


def cmd_metadata(args):
    """Show a stored message's envelope header."""
    config = load_config(require_addresses=False)
    service = MessagingService(config, open_keyring(config))
    try:
        metadata = service.get_message_metadata(args.blob_id)
    except CLI_ERRORS as e:
        print(f"❌ Failed to get message metadata: {e}")
        sys.exit(1)
    print(json.dumps(metadata, indent=2))


def cmd_verify(args):
    """Verify a message's sender signature."""
    config = load_config(require_addresses=False)
    sender = args.sender or config.sender_address
    if not sender:
        print("❌ Expected sender is required (--from or SENDER_WALLET_ADDRESS)")
        sys.exit(1)

    service = MessagingService(config, open_keyring(config))
    try:
        is_valid = verify_stored_message(service, args.blob_id, sender)
    except CLI_ERRORS as e:
        print(f"❌ Failed to verify message: {e}")
        sys.exit(1)
    if not is_valid:
        sys.exit(1)


def cmd_config(args):
    """Show the configuration."""
    config = load_config(require_addresses=False)
    print("🔧 Configuration:")
    for label, value in config.describe():
        print(f"   {label}: {value}")


def cmd_keys(args):
    """Manage wallet keys and contacts."""
    config = load_config(require_addresses=False)
    keyring = open_keyring(config)

    if args.keys_command == "generate":
        key = keyring.generate(args.label)
        keyring.save()
        print("✅ Wallet generated!")
        print(f"   Address: {key.address}")
        print(f"   Public key: {key.public_key}")
        print(f"   Saved to {keyring.path}")
    elif args.keys_command == "import":
        try:
            key = keyring.import_public_key(args.public_key, args.label)
        except WalrusMessagingError as e:
            print(f"❌ {e}")
            sys.exit(1)
        keyring.save()
        print(f"✅ Imported contact {key.address}")
    elif args.keys_command == "export":
        key = keyring.get(args.address)
        if key is None:
            print(f"❌ No key for {args.address}")
            sys.exit(1)
        print(key.public_key)
    elif args.keys_command == "list":
        if not len(keyring):
            print("🔑 Keyring is empty. Run: walrus-msg keys generate")
            return
        for key in keyring.keys():
            kind = "wallet " if key.has_private_key else "contact"
            print(f"{key.address}  {kind}  {key.label or ''}")
    else:
        print("Usage: walrus-msg keys {generate,import,export,list}")


# ── Self test ────────────────────────────────────────────────────────

def _selftest_wallet(disk_keyring, test_keyring, address, label):
    """Use a configured wallet when the keyring holds it, else a mock one."""
    if address:
        key = disk_keyring.get(address)
        if key is not None:
            return test_keyring.add(key)
    return test_keyring.add(WalletKey.generate(label))


def selftest_configuration(config):
    print("\n🌐 Testing Walrus Configuration...")
    print("===================================")
    print("📡 Walrus Network Configuration:")
    print(f"   Aggregator URL: {config.aggregator_url}")
    print(f"   Publisher URL: {config.publisher_url}")
    print(f"   Network: {config.network}")
    print(f"   Storage epochs: {config.epochs}")
    print("")
    print("🔗 Sui Network Configuration:")
    print(f"   Fullnode URL: {config.fullnode_url}")
    print(f"   Network: {config.network}")
    print("")
    print("✅ Configuration test completed!")


def selftest_key_generation(encryption):
    print("\n🔑 Testing Key Generation...")
    print("=============================")
    key = encryption.generate_key()
    print("✅ Key generated successfully!")
    key_bytes = encryption.export_key(key)
    print(f"📏 Key size: {len(key_bytes)} bytes")
    imported = encryption.import_key(key_bytes)
    if imported != key:
        raise WalrusMessagingError("Imported key does not match the generated key")
    print("✅ Key imported successfully!")
    print("🎉 Key generation test completed!")


def selftest_encryption(encryption, sender, receiver):
    print("\n🔐 Testing Encryption Service...")
    print("=====================================")
    print(f"📝 Original message: \"{TEST_MESSAGE}\"")
    print(f"📤 Using sender: {sender.address}")
    print(f"📥 Using receiver: {receiver.address}")

    print("\n🔒 Encrypting message...")
    encrypted = encryption.encrypt_message(TEST_MESSAGE, receiver.address, sender.address)
    print("✅ Message encrypted successfully!")
    print(f"📤 Sender: {encrypted.sender}")
    print(f"📥 Recipient: {encrypted.recipient}")
    print(f"📅 Timestamp: {encrypted.timestamp}")
    print(f"🔑 Sealed key length: {len(encrypted.sealed_key)} bytes")
    print(f"📦 Encrypted message length: {len(encrypted.encrypted_message)} bytes")

    print("\n💾 Serializing encrypted data...")
    serialized = encryption.serialize_encrypted_data(encrypted)
    print(f"📏 Serialized size: {len(serialized)} bytes")

    print("\n📖 Deserializing encrypted data...")
    restored = encryption.deserialize_encrypted_data(serialized)
    print("✅ Data deserialized successfully!")

    intact = (
        encrypted.sender == restored.sender
        and encrypted.recipients == restored.recipients
        and encrypted.timestamp == restored.timestamp
        and encrypted.encrypted_message == restored.encrypted_message
        and encrypted.sealed_keys == restored.sealed_keys
        and encryption.verify(restored)
    )
    print(f"🔍 Data integrity check: {'✅ PASSED' if intact else '❌ FAILED'}")
    if not intact:
        raise WalrusMessagingError("Serialized envelope does not match the original")

    if receiver.has_private_key:
        print("\n🔓 Decrypting as the receiver...")
        plaintext = encryption.decrypt_message(restored, receiver.address).decode("utf-8")
        if plaintext != TEST_MESSAGE:
            raise WalrusMessagingError("Decrypted message does not match the original")
        print(f"✅ Decrypted: \"{plaintext}\"")
    else:
        print("\n🔓 Skipping decryption: only the receiver's public key is in the keyring")

    print("\n🎉 Encryption test completed successfully!")


def cmd_selftest(args):
    """Offline check of configuration, key handling and encryption."""
    print("🧪 Walrus Encrypted Messaging - Test Example")
    print("=============================================")
    print("This test demonstrates the encryption functionality and validates")
    print("your configuration from the .env file.")
    print("")

    config = load_config(require_addresses=False)
    print("🔧 Configuration loaded from .env:")
    for label, value in config.describe():
        marker = "❌ " if value == "NOT SET" else ""
        print(f"   {label}: {marker}{value}")
    print("")

    configured = bool(config.sender_address and config.receiver_address)
    if not config.sender_address:
        print("⚠️  SENDER_WALLET_ADDRESS not set in .env file")
    if not config.receiver_address:
        print("⚠️  RECEIVER_WALLET_ADDRESS not set in .env file")
    if not configured:
        print("💡 Tip: Create a .env file with your wallet addresses to test with real data")
        print("   Example:")
        print("   SENDER_WALLET_ADDRESS=0x1234567890abcdef...")
        print("   RECEIVER_WALLET_ADDRESS=0xfedcba0987654321...")
        print("")

    disk_keyring = open_keyring(config)
    test_keyring = Keyring()
    sender = _selftest_wallet(disk_keyring, test_keyring, config.sender_address, MOCK_SENDER_LABEL)
    receiver = _selftest_wallet(disk_keyring, test_keyring, config.receiver_address, MOCK_RECEIVER_LABEL)
    if not sender.has_private_key:
        sender = test_keyring.add(WalletKey.generate(MOCK_SENDER_LABEL))
    encryption = EncryptionService(test_keyring)

    try:
        selftest_configuration(config)
        selftest_key_generation(encryption)
        selftest_encryption(encryption, sender, receiver)
    except CLI_ERRORS as e:
        print(f"\n💥 Test failed: {e}")
        sys.exit(1)

    print("\n🎉 All tests completed successfully!")
    print("\n📖 Next steps:")
    if configured:
        print("✅ Your .env file is properly configured!")
        print("🚀 You can now run the full example: walrus-msg demo")
    else:
        print("⚠️  Please configure your .env file with wallet addresses:")
        print("1. Generate wallets: walrus-msg keys generate --label me")
        print("2. Add SENDER_WALLET_ADDRESS and RECEIVER_WALLET_ADDRESS to .env")
        print("3. Run the full example: walrus-msg demo")


# ── Interactive messaging ────────────────────────────────────────────

INTERACTIVE_MENU = [
    "1. 📤 Send a message",
    "2. 📥 Retrieve a message",
    "3. 📊 Get message metadata",
    "4. 🔍 Verify a message",
    "5. 🔧 Show configuration",
    "6. ❌ Exit",
]


def cmd_interactive(args):
    """Menu-driven send / retrieve / metadata / verify."""
    print("🚀 Walrus Encrypted Messaging - Interactive")
    print("============================================")
    config = load_config()
    print_config_summary(config)
    service = MessagingService(config, open_keyring(config))

    try:
        while True:
            print("\n🔐 Walrus Encrypted Messaging")
            print("=============================")
            for line in INTERACTIVE_MENU:
                print(line)
            choice = prompt("\nSelect an option (1-6): ")

            try:
                if choice == "1":
                    text = prompt("💬 Enter your message: ")
                    if not text:
                        print("❌ Message cannot be empty")
                        continue
                    recipient = prompt(f"📥 Recipient [{config.receiver_address}]: ") or config.receiver_address
                    result = service.send_message(text, recipient)
                    print("✅ Message sent successfully!")
                    print(f"📋 Blob ID: {result.blob_id}")
                    print(f"📏 Size: {result.size} bytes")
                elif choice == "2":
                    blob_id = prompt("📋 Enter the Blob ID: ")
                    if not blob_id:
                        print("❌ Blob ID cannot be empty")
                        continue
                    retrieve_example_message(service, config, blob_id)
                elif choice == "3":
                    blob_id = prompt("📋 Enter the Blob ID: ")
                    if blob_id:
                        show_message_metadata(service, blob_id)
                elif choice == "4":
                    blob_id = prompt("📋 Enter the Blob ID: ")
                    if blob_id:
                        verify_stored_message(service, blob_id, config.sender_address)
                elif choice == "5":
                    for label, value in config.describe():
                        print(f"   {label}: {value}")
                elif choice == "6":
                    print("\n👋 Goodbye!")
                    return
                else:
                    print("❌ Invalid option. Please select 1-6.")
            except CLI_ERRORS as e:
                print(f"❌ Operation failed: {e}")
    except (EOFError, KeyboardInterrupt):
        print("\n👋 Goodbye!")


# ── Conversations ────────────────────────────────────────────────────

CONVERSATION_MENU = [
    "1. 💬 Create a new conversation",
    "2. 📝 Send a text message",
    "3. 💰 Send a payment message",
    "4. 📋 Send a payment request",
    "5. 📥 Retrieve a message",
    "6. 📋 Display conversation messages",
    "7. 💾 Save storage index",
    "8. 📂 Load storage index",
    "9. 🎬 Run full demo",
    "10. ❌ Exit",
]


def create_conversation(service, config):
    print("\n💬 Create a New Conversation")
    print("===========================")
    try:
        print("⏳ Creating conversation...")
        conversation, blob_id = service.create_conversation([config.receiver_address])
    except CLI_ERRORS as e:
        print(f"❌ Failed to create conversation: {e}")
        return None
    print("✅ Conversation created successfully!")
    print(f"🆔 Conversation ID: {conversation.id}")
    print(f"👥 Participants: {', '.join(conversation.participants)}")
    print(f"📋 Blob ID: {blob_id}")
    print(f"📅 Created: {conversation.created_at}")
    return conversation.id


def send_text_message(service, conversation_id):
    print("\n📝 Send a Text Message")
    print("======================")
    content = prompt("💬 Enter your message: ")
    if not content:
        print("❌ Message cannot be empty")
        return None
    try:
        print("⏳ Sending text message...")
        message, blob_id = service.send_message(conversation_id, MessageType.TEXT, content)
    except CLI_ERRORS as e:
        print(f"❌ Failed to send text message: {e}")
        return None
    print("✅ Text message sent successfully!")
    print(f"🆔 Message ID: {message.id}")
    print(f"💬 Content: \"{message.content}\"")
    print(f"📋 Blob ID: {blob_id}")
    print(f"📅 Timestamp: {message.timestamp}")
    return message.id


def send_payment_message(service, config, conversation_id):
    print("\n💰 Send a Payment Message")
    print("=========================")
    amount = prompt("💰 Enter amount: ")
    currency = prompt("💱 Enter currency (e.g., USD, SUI): ")
    description = prompt("📝 Enter payment description: ")
    transaction_id = prompt("🔗 Enter transaction ID (optional): ") or None
    if not amount or not currency or not description:
        print("❌ Amount, currency, and description are required")
        return None

    metadata = {
        "amount": amount,
        "currency": currency,
        "recipient": config.receiver_address,
        "transaction_id": transaction_id,
    }
    try:
        print("⏳ Sending payment message...")
        message, blob_id = service.send_message(conversation_id, MessageType.SEND_PAYMENT, description, metadata)
    except CLI_ERRORS as e:
        print(f"❌ Failed to send payment message: {e}")
        return None
    print("✅ Payment message sent successfully!")
    print(f"🆔 Message ID: {message.id}")
    print(f"💰 Amount: {message.metadata['amount']} {message.metadata['currency']}")
    print(f"📝 Description: \"{message.content}\"")
    print(f"📋 Blob ID: {blob_id}")
    print(f"📅 Timestamp: {message.timestamp}")
    return message.id


def send_payment_request_message(service, conversation_id):
    print("\n📋 Send a Payment Request")
    print("=========================")
    amount = prompt("💰 Enter requested amount: ")
    currency = prompt("💱 Enter currency (e.g., USD, SUI): ")
    description = prompt("📝 Enter request description: ")
    if not amount or not currency or not description:
        print("❌ Amount, currency, and description are required")
        return None

    try:
        print("⏳ Sending payment request...")
        message, blob_id = service.send_message(
            conversation_id,
            MessageType.REQUEST_PAYMENT,
            description,
            {"amount": amount, "currency": currency},
        )
    except CLI_ERRORS as e:
        print(f"❌ Failed to send payment request: {e}")
        return None
    print("✅ Payment request sent successfully!")
    print(f"🆔 Message ID: {message.id}")
    print(f"💰 Requested Amount: {message.metadata['amount']} {message.metadata['currency']}")
    print(f"📝 Description: \"{message.content}\"")
    print(f"🆔 Request ID: {message.metadata['request_id']}")
    print(f"📋 Blob ID: {blob_id}")
    print(f"📅 Timestamp: {message.timestamp}")
    return message.id


def retrieve_message(service):
    print("\n📥 Retrieve a Message")
    print("====================")
    message_id = prompt("🆔 Enter the Message ID: ")
    blob_id = prompt("📋 Enter the Blob ID: ")
    if not message_id or not blob_id:
        print("❌ Message ID and Blob ID are required")
        return None

    print("⏳ Retrieving message...")
    try:
        message = service.get_message(message_id, blob_id)
    except CLI_ERRORS as e:
        print(f"❌ Failed to retrieve message: {e}")
        return None
    if message is None:
        print("❌ Message not found or could not be decrypted")
        return None
    print("✅ Message retrieved successfully!")
    print_message(message)
    return message


def save_storage_index(service):
    print("\n💾 Save Storage Index")
    print("=====================")
    try:
        print("⏳ Saving storage index...")
        stored = service.save_storage_index()
    except CLI_ERRORS as e:
        print(f"❌ Failed to save storage index: {e}")
        return None
    print("✅ Storage index saved successfully!")
    print(f"📋 Blob ID: {stored.blob_id}")
    print(f"📅 Timestamp: {stored.stored_at}")
    print(f"📏 Size: {stored.size} bytes")
    return stored.blob_id


def load_storage_index(service):
    print("\n📂 Load Storage Index")
    print("=====================")
    blob_id = prompt("📋 Enter the Storage Index Blob ID: ")
    if not blob_id:
        print("❌ Blob ID cannot be empty")
        return None

    print("⏳ Loading storage index...")
    if not service.load_storage_index(blob_id):
        print("❌ Failed to load storage index")
        return None
    print("✅ Storage index loaded successfully!")
    print(f"📋 Blob ID: {blob_id}")
    print(f"📊 Loaded {len(service.get_user_conversations())} conversations")
    return blob_id


def display_conversation_messages(service, conversation_id):
    print("\n📋 Displaying All Messages in Conversation")
    print("==========================================")
    print(f"🆔 Conversation ID: {conversation_id}")

    message_ids = service.storage_index.get_conversation_messages(conversation_id)
    if not message_ids:
        print("📭 No messages found in this conversation")
        return

    print(f"📊 Found {len(message_ids)} messages in conversation")
    print("📋 Retrieving and displaying messages...\n")
    for i, message_id in enumerate(message_ids, 1):
        blob_id = service.storage_index.get_message_blob_id(message_id)
        if not blob_id:
            print(f"⚠️  Message {message_id} not found in storage index")
            continue

        print(f"📨 Message {i}/{len(message_ids)}:")
        print("─" * 50)
        message = service.get_message(message_id, blob_id)
        if message is not None:
            print_message(message)
        else:
            print(f"❌ Failed to retrieve message {message_id}")
        print("")

    print("✅ All messages displayed successfully!")


def run_conversation_demo(service, config, pause=2.0):
    print("\n🎬 Conversation Demo")
    print("===================")

    print("Step 1: Creating conversation...")
    conversation_id = create_conversation(service, config)
    if not conversation_id:
        print("❌ Demo failed at conversation creation")
        return None
    time.sleep(pause)

    steps = [
        ("Step 2: Sending text message...", "text message",
         lambda: send_text_message(service, conversation_id)),
        ("Step 3: Sending payment message...", "payment message",
         lambda: send_payment_message(service, config, conversation_id)),
        ("Step 4: Sending payment request...", "payment request",
         lambda: send_payment_request_message(service, conversation_id)),
    ]
    message_ids = []
    for title, name, step in steps:
        print(f"\n{title}")
        message_id = step()
        if not message_id:
            print(f"❌ Demo failed at {name}")
            return None
        message_ids.append(message_id)
        time.sleep(pause)

    print("\nStep 5: Displaying all messages in the conversation...")
    display_conversation_messages(service, conversation_id)

    print("\n🎉 Demo completed successfully!")
    print("📊 Summary:")
    print(f"   Conversation ID: {conversation_id}")
    print(f"   Text Message ID: {message_ids[0]}")
    print(f"   Payment Message ID: {message_ids[1]}")
    print(f"   Payment Request ID: {message_ids[2]}")
    return conversation_id


def cmd_conversation(args):
    """Interactive structured conversation app."""
    print("🚀 Walrus Structured Conversation App Example")
    print("=============================================")
    config = load_config()
    print_config_summary(config)

    # The storage index lives for the whole session
    service = ConversationService(config, open_keyring(config))
    current_conversation_id = None

    try:
        while True:
            print("\n🔐 Walrus Structured Conversation App")
            print("=====================================")
            for line in CONVERSATION_MENU:
                print(line)
            choice = prompt("\nSelect an option (1-10): ")

            if choice == "1":
                current_conversation_id = create_conversation(service, config) or current_conversation_id
            elif choice in ("2", "3", "4"):
                if not current_conversation_id:
                    print("❌ Please create a conversation first (option 1)")
                elif choice == "2":
                    send_text_message(service, current_conversation_id)
                elif choice == "3":
                    send_payment_message(service, config, current_conversation_id)
                else:
                    send_payment_request_message(service, current_conversation_id)
            elif choice == "5":
                retrieve_message(service)
            elif choice == "6":
                conversation_id = prompt("🆔 Enter the Conversation ID: ")
                if not conversation_id:
                    print("❌ Conversation ID cannot be empty")
                else:
                    display_conversation_messages(service, conversation_id)
            elif choice == "7":
                save_storage_index(service)
            elif choice == "8":
                load_storage_index(service)
            elif choice == "9":
                current_conversation_id = run_conversation_demo(service, config, args.pause) or current_conversation_id
            elif choice == "10":
                print("\n👋 Goodbye!")
                return
            else:
                print("❌ Invalid option. Please select 1-10.")

            if prompt('\nPress Enter to continue or type "exit" to quit: ').lower() == "exit":
                print("\n👋 Goodbye!")
                return
    except (EOFError, KeyboardInterrupt):
        print("\n👋 Goodbye!")


# ── Main ─────────────────────────────────────────────────────────────

def build_parser():
    parser = argparse.ArgumentParser(
        prog="walrus-msg",
        description="Encrypted messaging on Walrus decentralized storage",
        epilog=(
            "Environment: SENDER_WALLET_ADDRESS, RECEIVER_WALLET_ADDRESS, WALRUS_AGGREGATOR_URL, "
            "WALRUS_PUBLISHER_URL, SUI_NETWORK, SUI_FULLNODE_URL, WALRUS_EPOCHS, WALRUS_KEYRING_PATH"
        ),
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    sub = parser.add_subparsers(dest="command")

    # demo
    p_demo = sub.add_parser("demo", help="Send an example message, then retrieve and decrypt it")
    p_demo.add_argument("--message", help="Message to send instead of the example text")
    p_demo.add_argument("--wait", type=float, default=5.0, help="Seconds to wait before retrieving (default: 5)")

    # send
    p_send = sub.add_parser("send", help="Encrypt and store a message")
    p_send.add_argument("content", help="Message text")
    p_send.add_argument("--to", dest="recipient", help="Recipient address (default: RECEIVER_WALLET_ADDRESS)")
    p_send.add_argument("--from", dest="sender", help="Sender address (default: SENDER_WALLET_ADDRESS)")

    # read
    p_read = sub.add_parser("read", help="Retrieve and decrypt a message")
    p_read.add_argument("blob_id", help="Walrus blob ID")
    p_read.add_argument("--as", dest="reader", help="Reading address (default: RECEIVER_WALLET_ADDRESS)")
    p_read.add_argument("--from", dest="sender", help="Expected sender address")
    p_read.add_argument("--no-wait", action="store_true", help="Read once instead of polling")

    # metadata
    p_meta = sub.add_parser("metadata", help="Show a stored message's envelope header")
    p_meta.add_argument("blob_id", help="Walrus blob ID")

    # verify
    p_verify = sub.add_parser("verify", help="Verify a message's sender signature")
    p_verify.add_argument("blob_id", help="Walrus blob ID")
    p_verify.add_argument("--from", dest="sender", help="Expected sender (default: SENDER_WALLET_ADDRESS)")

    # interactive / conversation / selftest / config
    sub.add_parser("interactive", help="Interactive messaging menu")
    p_conv = sub.add_parser("conversation", help="Interactive structured conversation app")
    p_conv.add_argument("--pause", type=float, default=2.0, help="Seconds between full demo steps (default: 2)")
    sub.add_parser("selftest", help="Offline encryption and configuration check")
    sub.add_parser("config", help="Show the configuration")

    # keys
    p_keys = sub.add_parser("keys", help="Manage wallet keys and contacts")
    keys_sub = p_keys.add_subparsers(dest="keys_command")
    p_gen = keys_sub.add_parser("generate", help="Generate a wallet keypair")
    p_gen.add_argument("--label", help="Label for the wallet")
    p_imp = keys_sub.add_parser("import", help="Import a contact's public key")
    p_imp.add_argument("public_key", help="Base64 Ed25519 public key")
    p_imp.add_argument("--label", help="Label for the contact")
    p_exp = keys_sub.add_parser("export", help="Print the public key of an address")
    p_exp.add_argument("address", help="Wallet address")
    keys_sub.add_parser("list", help="List keys in the keyring")

    return parser


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    commands = {
        "demo": cmd_demo,
        "send": cmd_send,
        "read": cmd_read,
        "metadata": cmd_metadata,
        "verify": cmd_verify,
        "interactive": cmd_interactive,
        "conversation": cmd_conversation,
        "selftest": cmd_selftest,
        "config": cmd_config,
        "keys": cmd_keys,
    }

    if args.command in commands:
        commands[args.command](args)
    else:
        parser.print_help()


if __name__ == "__main__":
    main()
