"""Tests for the walrus-msg CLI.

Smoke tests run `python -m walrus_messaging.cli`; command tests call the
cmd_* functions directly against the fake Walrus service.
"""

import json
import os
import subprocess
import sys
from unittest.mock import patch

import pytest

from walrus_messaging.cli import EXAMPLE_MESSAGE, build_parser, main
from walrus_messaging.keyring import Keyring, WalletKey


def run_cli(*args, expect_rc=0):
    """Run `python -m walrus_messaging.cli` with given args."""
    result = subprocess.run(
        [sys.executable, "-m", "walrus_messaging.cli", *args],
        capture_output=True, text=True, timeout=15,
        env={**os.environ, "WALRUS_PUBLISHER_URL": "http://localhost:1"},  # no real network
    )
    if expect_rc is not None:
        assert result.returncode == expect_rc, (
            f"Expected rc={expect_rc}, got {result.returncode}\n"
            f"stdout: {result.stdout}\nstderr: {result.stderr}"
        )
    return result


def run(*argv, inputs=None):
    """Run main() in-process, feeding `inputs` to prompts."""
    with patch("builtins.input", side_effect=list(inputs or [])):
        main(list(argv))


# ── Help flags parse correctly ──

COMMANDS = [
    "demo", "send", "read", "metadata", "verify", "interactive",
    "conversation", "selftest", "config", "keys",
]


@pytest.mark.parametrize("cmd", COMMANDS)
def test_help_flag(cmd):
    """Every subcommand should accept --help and exit 0."""
    result = run_cli(cmd, "--help")
    assert "usage:" in result.stdout.lower()


def test_main_help():
    result = run_cli("--help")
    assert "walrus" in result.stdout.lower()


def test_parser_defaults():
    args = build_parser().parse_args(["demo"])
    assert args.wait == 5.0
    args = build_parser().parse_args(["conversation"])
    assert args.pause == 2.0


# ── Configuration ──

class TestConfig:
    def test_config_shows_values(self, cli_env, sender, capsys):
        run("config")
        out = capsys.readouterr().out
        assert sender.address in out
        assert "Walrus Aggregator" in out

    def test_demo_requires_receiver(self, cli_env, monkeypatch, capsys):
        monkeypatch.delenv("RECEIVER_WALLET_ADDRESS")
        with pytest.raises(SystemExit) as exc:
            run("demo", "--wait", "0")
        assert exc.value.code == 1
        out = capsys.readouterr().out
        assert "RECEIVER_WALLET_ADDRESS is required in environment variables" in out
        assert "Please set the wallet address in the .env file" in out


# ── Keys ──

class TestKeys:
    def test_generate_and_list(self, monkeypatch, tmp_path, capsys):
        path = tmp_path / "keyring.json"
        monkeypatch.setenv("WALRUS_KEYRING_PATH", str(path))
        run("keys", "generate", "--label", "me")
        assert "Wallet generated" in capsys.readouterr().out

        wallet = Keyring.open(path).keys()[0]
        run("keys", "list")
        out = capsys.readouterr().out
        assert wallet.address in out
        assert "me" in out

    def test_import_and_export(self, monkeypatch, tmp_path, capsys):
        monkeypatch.setenv("WALRUS_KEYRING_PATH", str(tmp_path / "keyring.json"))
        contact = WalletKey.generate()
        run("keys", "import", contact.public_key, "--label", "bob")
        assert contact.address in capsys.readouterr().out

        run("keys", "export", contact.address)
        assert capsys.readouterr().out.strip() == contact.public_key

    def test_import_invalid(self, monkeypatch, tmp_path, capsys):
        monkeypatch.setenv("WALRUS_KEYRING_PATH", str(tmp_path / "keyring.json"))
        with pytest.raises(SystemExit):
            run("keys", "import", "AAAA")
        assert "Invalid public key" in capsys.readouterr().out

    def test_list_empty(self, monkeypatch, tmp_path, capsys):
        monkeypatch.setenv("WALRUS_KEYRING_PATH", str(tmp_path / "keyring.json"))
        run("keys", "list")
        assert "empty" in capsys.readouterr().out

    def test_malformed_keyring(self, monkeypatch, tmp_path, capsys):
        path = tmp_path / "keyring.json"
        path.write_text('{"keys": {"0x1": {"label": "no public key"}}}')
        monkeypatch.setenv("WALRUS_KEYRING_PATH", str(path))
        with pytest.raises(SystemExit) as exc:
            run("keys", "list")
        assert exc.value.code == 1
        assert "Could not read keyring" in capsys.readouterr().out


# ── Messaging ──

class TestMessaging:
    def test_demo(self, cli_env, sender, receiver, capsys):
        run("demo", "--wait", "0")
        out = capsys.readouterr().out
        assert "Message sent successfully" in out
        assert EXAMPLE_MESSAGE in out
        assert f"From: {sender.address}" in out
        assert "Example completed successfully" in out

    def test_demo_failure_prints_troubleshooting(self, cli_env, monkeypatch, capsys):
        monkeypatch.setenv("RECEIVER_WALLET_ADDRESS", "0x" + "1" * 64)
        with pytest.raises(SystemExit) as exc:
            run("demo", "--wait", "0")
        assert exc.value.code == 1
        out = capsys.readouterr().out
        assert "Example failed" in out
        assert "Troubleshooting" in out

    def test_send_read_metadata_verify(self, cli_env, sender, capsys):
        run("send", "hello over the cli")
        out = capsys.readouterr().out
        blob_id = out.split("Blob ID: ")[1].split()[0]

        run("read", blob_id, "--from", sender.address)
        assert "hello over the cli" in capsys.readouterr().out

        run("metadata", blob_id)
        assert '"signature_valid": true' in capsys.readouterr().out

        run("verify", blob_id)
        assert "verification passed" in capsys.readouterr().out

    def test_read_unknown_blob(self, cli_env, capsys):
        with pytest.raises(SystemExit):
            run("read", "does-not-exist", "--no-wait")
        assert "Failed to retrieve message" in capsys.readouterr().out

    def test_interactive(self, cli_env, capsys):
        run("interactive", inputs=["1", "interactive hello", "", "7", "6"])
        out = capsys.readouterr().out
        assert "Message sent successfully" in out
        assert "Invalid option" in out
        assert "Goodbye" in out

    def test_interactive_retrieve(self, cli_env, capsys):
        run("send", "fetch me")
        blob_id = capsys.readouterr().out.split("Blob ID: ")[1].split()[0]
        run("interactive", inputs=["2", blob_id, "6"])
        assert "fetch me" in capsys.readouterr().out


# ── Self test ──

class TestSelftest:
    def test_selftest_without_addresses(self, monkeypatch, tmp_path, capsys):
        monkeypatch.delenv("SENDER_WALLET_ADDRESS", raising=False)
        monkeypatch.delenv("RECEIVER_WALLET_ADDRESS", raising=False)
        monkeypatch.setenv("WALRUS_KEYRING_PATH", str(tmp_path / "keyring.json"))
        run("selftest")
        out = capsys.readouterr().out
        assert "NOT SET" in out
        assert "Data integrity check: ✅ PASSED" in out
        assert "All tests completed successfully" in out
        assert "Please configure your .env file" in out

    def test_selftest_with_wallets(self, cli_env, sender, capsys):
        run("selftest")
        out = capsys.readouterr().out
        assert f"Using sender: {sender.address}" in out
        assert "Decrypted:" in out
        assert "Your .env file is properly configured" in out


# ── Conversations ──

class TestConversation:
    def test_menu_flow(self, cli_env, capsys):
        run("conversation", inputs=["2", "", "1", "", "2", "Hello conversation", "", "7", "", "10"])
        out = capsys.readouterr().out
        assert "Please create a conversation first" in out
        assert "Conversation created successfully" in out
        assert "Text message sent successfully" in out
        assert "Storage index saved successfully" in out
        assert "Goodbye" in out

    def test_exit_at_continue_prompt(self, cli_env, capsys):
        run("conversation", inputs=["1", "exit"])
        assert "Goodbye" in capsys.readouterr().out

    def test_full_demo(self, cli_env, capsys):
        inputs = [
            "9",
            "Hi there",                      # text message
            "2.5", "sui", "Lunch", "",       # payment
            "10", "usd", "Dinner",           # payment request
            "",
            "10",
        ]
        run("conversation", "--pause", "0", inputs=inputs)
        out = capsys.readouterr().out
        assert "Demo completed successfully" in out
        assert "Found 3 messages in conversation" in out
        assert "2.5 SUI" in out
        assert "request_id: req_" in out

    def test_save_then_load_index(self, cli_env, capsys):
        run("conversation", inputs=["1", "", "7", "", "10"])
        out = capsys.readouterr().out
        blob_id = out.split("Storage Index")[1].split("Blob ID: ")[1].split()[0]

        run("conversation", inputs=["8", blob_id, "", "10"])
        out = capsys.readouterr().out
        assert "Storage index loaded successfully" in out
        assert "Loaded 1 conversations" in out

    def test_retrieve_message_menu(self, cli_env, capsys):
        run("conversation", inputs=["1", "", "2", "find me", "", "10"])
        out = capsys.readouterr().out
        message_id = out.split("Message ID: ")[1].split()[0]
        blob_id = out.split("Text message sent successfully")[1].split("Blob ID: ")[1].split()[0]

        run("conversation", inputs=["5", message_id, blob_id, "", "10"])
        out = capsys.readouterr().out
        assert "Message retrieved successfully" in out
        assert "find me" in out

    def test_retrieve_malformed_blob_keeps_session(self, cli_env, walrus, capsys):
        crafted = {"version": 1, "sender": 123, "recipients": ["0x1"]}
        blob_id = walrus.store_blob(json.dumps(crafted).encode()).blob_id

        run("conversation", inputs=["5", "msg_1", blob_id, "", "10"])
        out = capsys.readouterr().out
        assert "could not be decrypted" in out
        assert "Goodbye" in out
