"""Tests for wallet keys and the keyring file."""

import base64
import json
import os
import stat

import pytest

from walrus_messaging.config import is_valid_address
from walrus_messaging.errors import KeyNotFoundError
from walrus_messaging.keyring import Keyring, WalletKey, derive_address


class TestWalletKey:
    def test_address_is_sui_style(self):
        key = WalletKey.generate()
        assert key.address.startswith("0x")
        assert len(key.address) == 66
        assert is_valid_address(key.address)
        assert key.address == derive_address(bytes(key.verify_key))

    def test_sign_and_verify(self):
        key = WalletKey.generate()
        signature = key.sign(b"hello walrus")
        assert WalletKey.verify(key.public_key, b"hello walrus", signature)
        assert not WalletKey.verify(key.public_key, b"tampered", signature)

    def test_verify_garbage_returns_false(self):
        assert not WalletKey.verify("not base64!!", b"x", "also not")

    def test_restore_from_private_key(self):
        key = WalletKey.generate("me")
        restored = WalletKey.from_private_key(key.private_key)
        assert restored.address == key.address

    @pytest.mark.parametrize("size", [16, 33, 64])
    def test_private_key_must_be_a_32_byte_seed(self, size):
        with pytest.raises(ValueError, match="32-byte seed"):
            WalletKey.from_private_key(base64.b64encode(b"\x01" * size).decode())

    def test_contact_cannot_sign(self):
        contact = WalletKey.from_public_key(WalletKey.generate().public_key)
        assert not contact.has_private_key
        assert contact.private_key is None
        with pytest.raises(KeyNotFoundError):
            contact.sign(b"data")

    def test_dict_round_trip_keeps_label(self):
        key = WalletKey.generate("alice")
        restored = WalletKey.from_dict(key.to_dict())
        assert restored.label == "alice"
        assert restored.created_at == key.created_at
        assert restored.has_private_key

    def test_contact_dict_has_no_private_key(self):
        contact = WalletKey.from_public_key(WalletKey.generate().public_key)
        assert "private_key" not in contact.to_dict()


class TestKeyring:
    def test_save_and_load(self, tmp_path):
        path = tmp_path / "nested" / "keyring.json"
        ring = Keyring(path)
        wallet = ring.generate("me")
        contact = ring.import_public_key(WalletKey.generate().public_key, "bob")
        ring.save()

        mode = stat.S_IMODE(os.stat(path).st_mode)
        assert mode == 0o600

        loaded = Keyring.open(path)
        assert len(loaded) == 2
        assert loaded.get(wallet.address).has_private_key
        assert not loaded.get(contact.address).has_private_key
        assert loaded.get(contact.address).label == "bob"

    def test_open_missing_file_is_empty(self, tmp_path):
        ring = Keyring.open(tmp_path / "missing.json")
        assert len(ring) == 0

    @pytest.mark.parametrize("content", [
        '["not", "an", "object"]',
        '{"keys": ["0x1"]}',
        '{"keys": {"0x1": {"label": "no public key"}}}',
        '{"keys": {"0x1": "just a string"}}',
    ])
    def test_malformed_file(self, tmp_path, content):
        path = tmp_path / "keyring.json"
        path.write_text(content)
        with pytest.raises(ValueError):
            Keyring.open(path)

    def test_file_format(self, tmp_path):
        path = tmp_path / "keyring.json"
        ring = Keyring(path)
        wallet = ring.generate()
        ring.save()
        data = json.loads(path.read_text())
        assert list(data["keys"]) == [wallet.address]

    def test_memory_keyring_save_is_noop(self):
        ring = Keyring()
        ring.generate()
        ring.save()
        assert ring.path is None

    def test_import_does_not_downgrade_wallet(self):
        ring = Keyring()
        wallet = ring.generate()
        ring.import_public_key(wallet.public_key, "me again")
        assert ring.get(wallet.address).has_private_key
        assert ring.get(wallet.address).label == "me again"

    def test_import_invalid_public_key(self):
        with pytest.raises(KeyNotFoundError, match="Invalid public key"):
            Keyring().import_public_key("AAAA")

    def test_lookup_is_case_insensitive(self):
        ring = Keyring()
        wallet = ring.generate()
        assert wallet.address.upper().replace("0X", "0x") in ring
        assert ring.get(f"  {wallet.address.upper()}  ") is wallet

    def test_require_missing(self):
        with pytest.raises(KeyNotFoundError, match="keys generate"):
            Keyring().require("0x1234")

    def test_require_private(self):
        ring = Keyring()
        contact = ring.import_public_key(WalletKey.generate().public_key)
        assert ring.require(contact.address) is contact
        with pytest.raises(KeyNotFoundError, match="Only the public key"):
            ring.require(contact.address, private=True)
