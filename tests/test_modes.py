import base64
import os
import socket

import pytest

from conftest import ENV_KEY_B64
from paperwall.errors import AuthenticationError, DeriveKeyError
from paperwall.wallet.keys import decrypt_key, encrypt_key, generate_private_key
from paperwall.wallet.modes import (
    MACHINE_BINDING_SALT,
    EncryptionModeName,
    EnvInjectedEncryptionMode,
    MachineBindingMode,
    PasswordEncryptionMode,
    decode_key_material,
    get_machine_identity,
    read_key_from_environment,
    validate_password_strength,
)

SALT = b"\x07" * 32


@pytest.fixture
def host_a(monkeypatch):
    monkeypatch.setattr(socket, "gethostname", lambda: "host-a")
    monkeypatch.setattr(os, "getuid", lambda: 1000, raising=False)


class TestMachineBinding:
    def test_identity_format(self, host_a):
        assert get_machine_identity() == f"host-a:1000:{MACHINE_BINDING_SALT}"

    def test_identity_without_getuid(self, monkeypatch):
        monkeypatch.setattr(socket, "gethostname", lambda: "win-box")
        monkeypatch.delattr(os, "getuid", raising=False)
        assert get_machine_identity() == f"win-box:-1:{MACHINE_BINDING_SALT}"

    def test_input_is_ignored(self, host_a):
        mode = MachineBindingMode()
        record = encrypt_key("ab" * 32, mode, "anything")
        assert decrypt_key(record, mode, None) == "ab" * 32
        assert decrypt_key(record, mode, "something else") == "ab" * 32

    def test_other_host_cannot_decrypt(self, host_a, monkeypatch):
        mode = MachineBindingMode()
        record = encrypt_key(generate_private_key(), mode)
        monkeypatch.setattr(socket, "gethostname", lambda: "host-b")
        with pytest.raises(AuthenticationError):
            decrypt_key(record, mode)

    def test_other_user_cannot_decrypt(self, host_a, monkeypatch):
        mode = MachineBindingMode()
        record = encrypt_key(generate_private_key(), mode)
        monkeypatch.setattr(os, "getuid", lambda: 1001, raising=False)
        with pytest.raises(AuthenticationError):
            decrypt_key(record, mode)

    def test_name(self):
        assert MachineBindingMode().name is EncryptionModeName.MACHINE_BOUND


class TestPasswordMode:
    def test_requires_password(self):
        with pytest.raises(DeriveKeyError):
            PasswordEncryptionMode().derive_key(SALT, None)

    def test_rejects_bytes(self):
        with pytest.raises(DeriveKeyError):
            PasswordEncryptionMode().derive_key(SALT, b"password123")

    def test_derivation_does_not_check_strength(self):
        # legacy wallets may use short passwords; they must still open
        key = PasswordEncryptionMode().derive_key(SALT, "short")
        assert not key.wiped

    def test_new_secret_must_be_strong(self):
        with pytest.raises(DeriveKeyError, match="at least 8 characters"):
            PasswordEncryptionMode().check_new_secret("short")

    def test_new_secret_required(self):
        with pytest.raises(DeriveKeyError):
            PasswordEncryptionMode().check_new_secret(None)

    def test_empty_password_fails_authentication(self):
        mode = PasswordEncryptionMode()
        record = encrypt_key(generate_private_key(), mode, "correct-password")
        with pytest.raises(AuthenticationError):
            decrypt_key(record, mode, "")

    def test_wrong_password(self):
        mode = PasswordEncryptionMode()
        record = encrypt_key(generate_private_key(), mode, "correct-password")
        with pytest.raises(AuthenticationError):
            decrypt_key(record, mode, "wrong-password")


class TestPasswordStrength:
    def test_eight_characters_is_enough(self):
        result = validate_password_strength("12345678")
        assert result.valid
        assert result.reason is None

    def test_seven_characters_is_not(self):
        result = validate_password_strength("1234567")
        assert not result.valid
        assert "8" in result.reason

    def test_no_composition_rules(self):
        assert validate_password_strength("aaaaaaaaaaaa").valid


class TestDecodeKeyMaterial:
    def test_valid(self):
        assert decode_key_material(ENV_KEY_B64) == bytes(range(32))

    def test_empty(self):
        with pytest.raises(DeriveKeyError, match="is empty"):
            decode_key_material("")

    @pytest.mark.parametrize("value", [" " + ENV_KEY_B64, ENV_KEY_B64 + "\n", "abcd efgh"])
    def test_whitespace(self, value):
        with pytest.raises(DeriveKeyError, match="contains whitespace"):
            decode_key_material(value)

    def test_non_base64_characters(self):
        with pytest.raises(DeriveKeyError, match="is not valid base64"):
            decode_key_material("not*base64!")

    def test_bad_padding(self):
        with pytest.raises(DeriveKeyError, match="bad padding"):
            decode_key_material("abc")

    def test_wrong_length(self):
        short = base64.b64encode(b"\x01" * 16).decode()
        with pytest.raises(DeriveKeyError, match="exactly 32 bytes, got 16"):
            decode_key_material(short)

    def test_messages_are_distinct(self):
        messages = set()
        for value in ("", "a b", "@@@@", base64.b64encode(b"\x01" * 31).decode()):
            with pytest.raises(DeriveKeyError) as excinfo:
                decode_key_material(value)
            messages.add(str(excinfo.value).split(".")[0])
        assert len(messages) == 4


class TestEnvInjectedMode:
    def test_unset_variable(self):
        with pytest.raises(DeriveKeyError, match="not set"):
            read_key_from_environment({})

    def test_round_trip_from_mapping(self):
        mode = EnvInjectedEncryptionMode(environ={"PAPERWALL_WALLET_KEY": ENV_KEY_B64})
        raw = generate_private_key()
        assert decrypt_key(encrypt_key(raw, mode), mode) == raw

    def test_reads_process_environment(self, env_key):
        mode = EnvInjectedEncryptionMode()
        raw = generate_private_key()
        assert decrypt_key(encrypt_key(raw, mode), mode) == raw

    def test_different_key_cannot_decrypt(self):
        raw = generate_private_key()
        record = encrypt_key(raw, EnvInjectedEncryptionMode(environ={"PAPERWALL_WALLET_KEY": ENV_KEY_B64}))
        other = base64.b64encode(b"\xff" * 32).decode()
        with pytest.raises(AuthenticationError):
            decrypt_key(record, EnvInjectedEncryptionMode(environ={"PAPERWALL_WALLET_KEY": other}))

    def test_check_new_secret_validates_environment(self):
        with pytest.raises(DeriveKeyError, match="not set"):
            EnvInjectedEncryptionMode(environ={}).check_new_secret(None)
        with pytest.raises(DeriveKeyError, match="whitespace"):
            EnvInjectedEncryptionMode(environ={"PAPERWALL_WALLET_KEY": "a b"}).check_new_secret(None)
