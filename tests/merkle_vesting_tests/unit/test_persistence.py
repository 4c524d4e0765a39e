"""
Tests for ledger snapshots and the SQLite key-value store.
"""

import pytest

from merkle_vesting.blockchain.vesting_ledger import VestingLedger
from merkle_vesting.core.exceptions import AlreadyClaimedError, StorageError
from merkle_vesting.database.storage_manager import StorageManager

ADMIN = "0x" + "ad" * 20
ALICE = "0x" + "a1" * 20
BOB = "0x" + "b0" * 20


@pytest.fixture
def storage(tmp_path):
    manager = StorageManager(tmp_path / "state" / "vesting.db")
    yield manager
    manager.close()


class TestStorageManager:
    def test_set_get_roundtrip(self, storage):
        storage.set("key", {"a": [1, 2, 3]})
        assert storage.get("key") == {"a": [1, 2, 3]}

    def test_missing_key_returns_default(self, storage):
        assert storage.get("missing") is None
        assert storage.get("missing", default={}) == {}

    def test_overwrite_and_delete(self, storage):
        storage.set("key", 1)
        storage.set("key", 2)
        assert storage.get("key") == 2
        storage.delete("key")
        assert storage.get("key") is None

    def test_unserializable_value(self, storage):
        with pytest.raises(StorageError):
            storage.set("key", object())

    def test_independent_databases(self, tmp_path):
        with StorageManager(tmp_path / "a.db") as first, StorageManager(tmp_path / "b.db") as second:
            first.set("key", "first")
            second.set("key", "second")
            assert first.get("key") == "first"
            assert second.get("key") == "second"


class TestLedgerSnapshot:
    def test_snapshot_restores_phases_and_flags(self, ledger, tree, token, authority, clock):
        ledger.claim(ALICE, 30, 0, tree.get_proof(ALICE, 30))
        ledger.add_vesting(ADMIN, "0x" + "22" * 32, clock.now + 100, 400)
        ledger.pause_vesting(ADMIN, 0)

        restored = VestingLedger.from_dict(ledger.to_dict(), token, authority, time_provider=clock)

        assert restored.address == ledger.address
        assert restored.vesting_count == 2
        assert restored.get_vesting(0) == ledger.get_vesting(0)
        assert restored.get_vesting(1) == ledger.get_vesting(1)
        assert restored.is_claimed(ALICE, 0)
        assert not restored.is_claimed(BOB, 0)
        assert restored.events == []

    def test_restored_ledger_keeps_enforcing_claims(self, ledger, tree, token, authority, clock):
        ledger.claim(ALICE, 30, 0, tree.get_proof(ALICE, 30))
        restored = VestingLedger.from_dict(ledger.to_dict(), token, authority, time_provider=clock)

        with pytest.raises(AlreadyClaimedError):
            restored.claim(ALICE, 30, 0, tree.get_proof(ALICE, 30))
        restored.claim(BOB, 20, 0, tree.get_proof(BOB, 20))
        assert restored.get_vesting(0).balance == 950

    def test_save_and_load(self, ledger, tree, token, authority, clock, storage):
        ledger.claim(BOB, 20, 0, tree.get_proof(BOB, 20))
        ledger.save(storage)

        loaded = VestingLedger.load(storage, token, authority, time_provider=clock)
        assert loaded.to_dict() == ledger.to_dict()

    def test_load_without_snapshot(self, storage, token, authority):
        with pytest.raises(StorageError):
            VestingLedger.load(storage, token, authority, key="absent")

    def test_malformed_snapshot(self, ledger, token, authority):
        data = ledger.to_dict()
        del data["vestings"][0]["balance"]
        with pytest.raises(StorageError):
            VestingLedger.from_dict(data, token, authority)

    @pytest.mark.parametrize("field", ["balance", "total_reward"])
    def test_snapshot_with_non_numeric_amount(self, ledger, token, authority, field):
        data = ledger.to_dict()
        data["vestings"][0][field] = "lots"
        with pytest.raises(StorageError):
            VestingLedger.from_dict(data, token, authority)

    def test_snapshot_with_balance_above_total(self, ledger, token, authority):
        data = ledger.to_dict()
        data["vestings"][0]["balance"] = str(10**6)
        with pytest.raises(StorageError):
            VestingLedger.from_dict(data, token, authority)

    def test_snapshot_with_unknown_claimed_phase(self, ledger, token, authority):
        data = ledger.to_dict()
        data["claimed"] = {ALICE: [5]}
        with pytest.raises(StorageError):
            VestingLedger.from_dict(data, token, authority)
