import pytest

from paperwall.errors import UnknownEncryptionModeError
from paperwall.wallet.detector import EncryptionModeDetector, WalletMetadata
from paperwall.wallet.modes import (
    EncryptionModeName,
    EnvInjectedEncryptionMode,
    MachineBindingMode,
    PasswordEncryptionMode,
)


@pytest.fixture
def detector():
    return EncryptionModeDetector()


class TestDetectMode:
    def test_missing_field_is_machine_bound(self, detector):
        assert detector.detect_mode(WalletMetadata()) is EncryptionModeName.MACHINE_BOUND

    def test_legacy_wallet_dict(self, detector):
        legacy = {"address": "0xabc", "encryptedKey": "00", "keySalt": "00", "keyIv": "00"}
        assert detector.detect_mode(legacy) is EncryptionModeName.MACHINE_BOUND

    @pytest.mark.parametrize(
        "stored, expected",
        [
            ("password", EncryptionModeName.PASSWORD),
            ("env-injected", EncryptionModeName.ENV_INJECTED),
            ("machine-bound", EncryptionModeName.MACHINE_BOUND),
        ],
    )
    def test_known_modes(self, detector, stored, expected):
        assert detector.detect_mode({"encryptionMode": stored}) is expected

    def test_unknown_mode_names_the_value(self, detector):
        with pytest.raises(UnknownEncryptionModeError) as excinfo:
            detector.detect_mode({"encryptionMode": "aes-cbc"})
        assert excinfo.value.mode == "aes-cbc"
        assert '"aes-cbc"' in str(excinfo.value)
        assert "password, env-injected, machine-bound" in str(excinfo.value)

    def test_empty_string_is_not_legacy(self, detector):
        with pytest.raises(UnknownEncryptionModeError):
            detector.detect_mode({"encryptionMode": ""})

    def test_mode_names_are_case_sensitive(self, detector):
        with pytest.raises(UnknownEncryptionModeError):
            detector.detect_mode({"encryptionMode": "Password"})


class TestResolveMode:
    @pytest.mark.parametrize(
        "name, cls",
        [
            ("machine-bound", MachineBindingMode),
            ("password", PasswordEncryptionMode),
            ("env-injected", EnvInjectedEncryptionMode),
            (EncryptionModeName.PASSWORD, PasswordEncryptionMode),
        ],
    )
    def test_maps_name_to_strategy(self, detector, name, cls):
        assert isinstance(detector.resolve_mode(name), cls)

    def test_fresh_instance_each_call(self, detector):
        assert detector.resolve_mode("password") is not detector.resolve_mode("password")

    def test_unknown_name(self, detector):
        with pytest.raises(UnknownEncryptionModeError) as excinfo:
            detector.resolve_mode("rot13")
        assert excinfo.value.mode == "rot13"

    def test_detect_and_resolve(self, detector):
        assert isinstance(detector.detect_and_resolve({}), MachineBindingMode)
        assert isinstance(
            detector.detect_and_resolve(WalletMetadata(encryption_mode="env-injected")),
            EnvInjectedEncryptionMode,
        )


def test_is_valid_mode():
    assert EncryptionModeDetector.is_valid_mode("password")
    assert not EncryptionModeDetector.is_valid_mode("plaintext")
