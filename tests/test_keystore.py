import json
import os
import stat

import pytest

from conftest import SEPOLIA, TEST_ADDRESS, TEST_PRIVATE_KEY
from paperwall.errors import (
    AuthenticationError,
    DeriveKeyError,
    UnknownEncryptionModeError,
    UnsupportedNetworkError,
    WalletError,
)
from paperwall.wallet.keys import encrypt_key
from paperwall.wallet.keystore import (
    WalletFile,
    create_wallet,
    get_wallet_encryption_mode,
    import_wallet,
    load_address,
    load_wallet,
    normalize_private_key,
    resolve_private_key,
    wallet_path,
)
from paperwall.wallet.modes import EncryptionModeName, MachineBindingMode

PASSWORD = "correct horse battery"


class TestCreate:
    def test_machine_bound_default(self, tmp_path):
        info = create_wallet(tmp_path)
        data = json.loads(wallet_path(tmp_path).read_text())

        assert info.encryption_mode is EncryptionModeName.MACHINE_BOUND
        assert info.network == SEPOLIA
        assert data["address"] == info.address
        assert data["encryptionMode"] == "machine-bound"
        assert data["networkId"] == SEPOLIA
        assert set(data) == {"address", "encryptedKey", "keySalt", "keyIv", "networkId", "encryptionMode"}

    @pytest.mark.skipif(os.name != "posix", reason="POSIX permissions")
    def test_file_is_owner_only(self, tmp_path):
        create_wallet(tmp_path)
        assert stat.S_IMODE(wallet_path(tmp_path).stat().st_mode) == 0o600

    def test_refuses_to_overwrite(self, tmp_path):
        first = create_wallet(tmp_path)
        with pytest.raises(WalletError, match="--force"):
            create_wallet(tmp_path)
        second = create_wallet(tmp_path, force=True)
        assert second.address != first.address

    def test_password_wallet_needs_strong_password(self, tmp_path):
        with pytest.raises(DeriveKeyError):
            create_wallet(tmp_path, mode="password", mode_input="short")
        assert load_wallet(tmp_path) is None

    def test_env_injected_needs_key(self, tmp_path):
        with pytest.raises(DeriveKeyError, match="not set"):
            create_wallet(tmp_path, mode=EncryptionModeName.ENV_INJECTED)

    def test_unknown_mode(self, tmp_path):
        with pytest.raises(UnknownEncryptionModeError):
            create_wallet(tmp_path, mode="plaintext")

    def test_unknown_network(self, tmp_path):
        with pytest.raises(UnsupportedNetworkError):
            create_wallet(tmp_path, network="eip155:1")


class TestImport:
    @pytest.mark.parametrize("key", [TEST_PRIVATE_KEY, TEST_PRIVATE_KEY[2:]])
    def test_address_derived(self, tmp_path, key):
        info = import_wallet(tmp_path, key)
        assert info.address == TEST_ADDRESS
        assert load_address(tmp_path) == TEST_ADDRESS

    @pytest.mark.parametrize("key", ["", "0x1234", "zz" * 32, TEST_PRIVATE_KEY + "00"])
    def test_bad_key(self, tmp_path, key):
        with pytest.raises(WalletError, match="64 hex"):
            import_wallet(tmp_path, key)

    def test_normalize(self):
        assert normalize_private_key(TEST_PRIVATE_KEY) == TEST_PRIVATE_KEY[2:]


class TestResolvePrivateKey:
    def test_machine_bound(self, tmp_path):
        import_wallet(tmp_path, TEST_PRIVATE_KEY)
        assert resolve_private_key(tmp_path) == TEST_PRIVATE_KEY

    def test_password(self, tmp_path):
        import_wallet(tmp_path, TEST_PRIVATE_KEY, mode="password", mode_input=PASSWORD)
        assert resolve_private_key(tmp_path, PASSWORD) == TEST_PRIVATE_KEY
        with pytest.raises(AuthenticationError):
            resolve_private_key(tmp_path, "wrong password!")

    def test_env_injected(self, tmp_path, env_key):
        import_wallet(tmp_path, TEST_PRIVATE_KEY, mode="env-injected")
        assert get_wallet_encryption_mode(tmp_path) is EncryptionModeName.ENV_INJECTED
        assert resolve_private_key(tmp_path) == TEST_PRIVATE_KEY

    def test_env_private_key_wins(self, tmp_path):
        other = "0x" + "11" * 32
        import_wallet(tmp_path, TEST_PRIVATE_KEY)
        assert resolve_private_key(tmp_path, environ={"PAPERWALL_PRIVATE_KEY": other}) == other

    def test_env_private_key_validated(self, tmp_path):
        with pytest.raises(WalletError, match="PAPERWALL_PRIVATE_KEY"):
            resolve_private_key(tmp_path, environ={"PAPERWALL_PRIVATE_KEY": "11" * 32})

    def test_no_wallet(self, tmp_path):
        with pytest.raises(WalletError, match="No wallet configured"):
            resolve_private_key(tmp_path, environ={})


class TestLegacyWallet:
    def test_missing_mode_reads_as_machine_bound(self, tmp_path):
        record = encrypt_key(TEST_PRIVATE_KEY[2:], MachineBindingMode())
        legacy = {"address": TEST_ADDRESS, **record.to_dict(), "networkId": SEPOLIA}
        wallet_path(tmp_path).write_text(json.dumps(legacy))

        wallet = load_wallet(tmp_path)
        assert wallet.encryption_mode is None
        assert get_wallet_encryption_mode(tmp_path) is EncryptionModeName.MACHINE_BOUND
        assert resolve_private_key(tmp_path) == TEST_PRIVATE_KEY

    def test_round_trip_keeps_missing_mode_absent(self, tmp_path):
        record = encrypt_key("ab" * 32, MachineBindingMode())
        wallet = WalletFile(address=TEST_ADDRESS, record=record, network_id=SEPOLIA)
        assert "encryptionMode" not in wallet.to_dict()
        assert WalletFile.from_dict(wallet.to_dict()) == wallet

    def test_missing_address(self, tmp_path):
        with pytest.raises(WalletError, match="address"):
            WalletFile.from_dict({"encryptedKey": "00", "keySalt": "00", "keyIv": "00"})


def test_no_wallet_helpers(tmp_path):
    assert load_wallet(tmp_path) is None
    assert load_address(tmp_path) is None
    assert get_wallet_encryption_mode(tmp_path) is None
