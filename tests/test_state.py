"""Tests for faucet state persistence."""

import json

import pytest

from purple_faucet.faucet.state import FaucetSnapshot, FaucetState, FaucetStats, StateStore

OWNER = "0x1111111111111111111111111111111111111111"
ALICE = "0x3333333333333333333333333333333333333333"


@pytest.fixture
def snapshot():
    return FaucetSnapshot(
        owner=OWNER,
        paused=True,
        state=FaucetState(
            payout_amount=10**16,
            lock_duration=86400,
            pool_balance=10**18,
            locks={ALICE: 1_700_000_000},
            stats=FaucetStats(payout_count=1, total_paid_out=10**16, total_funded=2 * 10**18),
        ),
    )


class TestFaucetState:
    def test_defaults(self):
        state = FaucetState(payout_amount=1, lock_duration=2)

        assert state.pool_balance == 0
        assert state.locks == {}
        assert state.stats == FaucetStats(0, 0, 0)

    def test_locks_not_shared(self):
        a = FaucetState(payout_amount=1, lock_duration=2)
        b = FaucetState(payout_amount=1, lock_duration=2)
        a.locks[ALICE] = 1

        assert b.locks == {}


class TestStateStore:
    """Tests for StateStore."""

    def test_missing_file(self, tmp_path):
        store = StateStore(tmp_path / "state.json")
        assert store.load() is None

    def test_save_and_load(self, tmp_path, snapshot):
        store = StateStore(tmp_path / "state.json")

        store.save(snapshot)
        loaded = store.load()

        assert loaded == snapshot
        assert isinstance(loaded.state.stats, FaucetStats)

    def test_large_amounts_preserved(self, tmp_path, snapshot):
        """Wei amounts beyond 64 bits survive the JSON file."""
        snapshot.state.pool_balance = 2**200
        store = StateStore(tmp_path / "state.json")

        store.save(snapshot)

        assert store.load().state.pool_balance == 2**200

    def test_creates_parent_directories(self, tmp_path, snapshot):
        store = StateStore(tmp_path / "nested" / "dir" / "state.json")

        store.save(snapshot)

        assert store.path.exists()

    def test_file_is_json(self, tmp_path, snapshot):
        store = StateStore(tmp_path / "state.json")
        store.save(snapshot)

        data = json.loads(store.path.read_text())

        assert data["owner"] == OWNER
        assert data["paused"] is True
        assert data["state"]["locks"] == {ALICE: 1_700_000_000}

    def test_no_temp_files_left(self, tmp_path, snapshot):
        store = StateStore(tmp_path / "state.json")
        store.save(snapshot)
        store.save(snapshot)

        assert [p.name for p in tmp_path.iterdir()] == ["state.json"]

    def test_lock_file_beside_state(self, tmp_path, snapshot):
        store = StateStore(tmp_path / "nested" / "state.json")

        with store.locked():
            store.save(snapshot)
        with store.locked():
            assert store.load() == snapshot

        assert store.lock_path == tmp_path / "nested" / "state.json.lock"
        assert store.lock_path.exists()

    def test_corrupt_file(self, tmp_path):
        path = tmp_path / "state.json"
        path.write_text('{"owner": 1}')

        with pytest.raises(ValueError, match="Corrupt faucet state file"):
            StateStore(path).load()
