"""
Shared fixtures for vesting ledger tests.
"""

import pytest

from merkle_vesting.blockchain.merkle import MerkleTree
from merkle_vesting.blockchain.vesting_ledger import VestingLedger
from merkle_vesting.core.access_control import OwnerAuthority
from merkle_vesting.core.contracts.erc20 import ERC20Token

ADMIN = "0x" + "ad" * 20
ALICE = "0x" + "a1" * 20
BOB = "0x" + "b0" * 20
CAROL = "0x" + "c4" * 20

GENESIS_TIME = 1_700_000_000


class FakeClock:
    """Deterministic time provider that tests can move forward."""

    def __init__(self, now: int = GENESIS_TIME):
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, seconds: int) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def token():
    token = ERC20Token(name="Reward", symbol="RWD", owner=ADMIN)
    token.mint(ADMIN, ADMIN, 10**24)
    return token


@pytest.fixture
def authority():
    return OwnerAuthority(ADMIN)


@pytest.fixture
def allocations():
    return [(ALICE, 30), (BOB, 20), (CAROL, 50)]


@pytest.fixture
def tree(allocations):
    return MerkleTree(allocations)


@pytest.fixture
def make_ledger(token, authority, clock):
    """Build a ledger over the given phases and approve it to pull admin funds."""

    def _make(roots, start_times=None, totals=None):
        start_times = start_times or [clock.now] * len(roots)
        totals = totals or [1_000] * len(roots)
        ledger = VestingLedger(
            token,
            authority,
            roots=roots,
            start_times=start_times,
            total_rewards=totals,
            time_provider=clock,
        )
        token.approve(ADMIN, ledger.address, 2**256 - 1)
        return ledger

    return _make


@pytest.fixture
def ledger(make_ledger, tree):
    """Single open phase over ``tree`` with total reward 1000, funded 1000."""
    ledger = make_ledger([tree.get_root()], totals=[1_000])
    ledger.add_reward(ADMIN, 0, 1_000)
    return ledger
