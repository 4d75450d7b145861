"""Unit tests for Ledger."""

from dataclasses import dataclass, field

import pytest

from feedserver.src.errors import (
    FeedServerError,
    InvalidArgumentError,
    ReentrancyError,
    ResourceError,
)
from feedserver.src.Ledger import (
    DEFAULT_CHAIN_ID,
    ZERO_ADDRESS,
    Call,
    Ledger,
    LedgerAccount,
    external,
    non_reentrant,
)

ALICE = "0x00000000000000000000000000000000000A11cE"
BOB = "0x0000000000000000000000000000000000000B0b"


@dataclass
class CounterStorage:
    count: int = 0
    history: list[int] = field(default_factory=list)


class Counter(LedgerAccount):
    def __init__(self, ledger: Ledger) -> None:
        super().__init__(ledger, CounterStorage())

    @external
    def increment(self, *, sender: str) -> int:
        self.storage.count += 1
        self.storage.history.append(self.storage.count)
        self.ledger.emit(("Incremented", self.storage.count))
        return self.storage.count

    @external
    def increment_then_fail(self, *, sender: str) -> None:
        self.increment(sender=sender)
        raise FeedServerError("Failed after increment")

    @external(payable=True)
    def deposit(self, *, sender: str, value: int = 0) -> int:
        return self.balance

    @non_reentrant
    def guarded(self, inner=None) -> str:
        if inner is not None:
            inner()
        return "done"


class Rejecter(LedgerAccount):
    def receive(self, *, sender: str, value: int) -> None:
        raise FeedServerError("Rejected")


class TestLedgerConfig:
    """Test chain ID and time configuration."""

    def test_chain_id_from_env(self, monkeypatch) -> None:
        """The chain ID is read from the environment."""
        monkeypatch.setenv("CHAIN_ID", "4913")
        assert Ledger().chain_id == 4913

    def test_chain_id_default(self, monkeypatch) -> None:
        """The chain ID falls back to the default."""
        monkeypatch.delenv("CHAIN_ID", raising=False)
        assert Ledger().chain_id == DEFAULT_CHAIN_ID

    def test_explicit_chain_id_wins(self, monkeypatch) -> None:
        """An explicit chain ID takes precedence over the environment."""
        monkeypatch.setenv("CHAIN_ID", "4913")
        assert Ledger(chain_id=1).chain_id == 1

    def test_advance_time(self) -> None:
        """Test advancing the block time."""
        ledger = Ledger(timestamp=100)
        assert ledger.advance_time(5) == 105
        with pytest.raises(ValueError, match="Cannot move time backwards"):
            ledger.advance_time(-1)


class TestLedgerBalances:
    """Test native balances and transfers."""

    def test_mint_and_transfer(self) -> None:
        """Test minting and transferring value."""
        ledger = Ledger()
        ledger.mint(ALICE, 10)
        assert ledger.transfer(ALICE, BOB, 4)
        assert ledger.balance_of(ALICE) == 6
        assert ledger.balance_of(BOB.lower()) == 4

    def test_insufficient_balance(self) -> None:
        """A transfer exceeding the balance fails without side effects."""
        ledger = Ledger()
        ledger.mint(ALICE, 1)
        assert not ledger.transfer(ALICE, BOB, 2)
        assert ledger.balance_of(ALICE) == 1
        assert ledger.balance_of(BOB) == 0

    def test_recipient_rejects(self) -> None:
        """A contract recipient can reject a transfer."""
        ledger = Ledger()
        rejecter = Rejecter(ledger)
        ledger.mint(ALICE, 5)
        assert not ledger.transfer(ALICE, rejecter.address, 5)
        assert ledger.balance_of(ALICE) == 5
        assert rejecter.balance == 0


class TestLedgerAccounts:
    """Test account deployment."""

    def test_addresses_are_unique(self) -> None:
        """Deployed accounts get unique addresses."""
        ledger = Ledger()
        first, second = Counter(ledger), Counter(ledger)
        assert first.address != second.address
        assert ledger.account(first.address) is first
        assert ledger.account(first.address.lower()) is first

    def test_externally_owned(self) -> None:
        """Addresses without a deployed account are externally owned."""
        ledger = Ledger()
        assert ledger.account(ALICE) is None
        assert not ledger.is_deployed(ZERO_ADDRESS)


class TestLedgerTransactions:
    """Test all-or-nothing execution."""

    def test_external_call_applies(self) -> None:
        """Writes made by an external call are kept."""
        ledger = Ledger()
        counter = Counter(ledger)
        assert counter.increment(sender=ALICE) == 1
        assert ledger.events == [("Incremented", 1)]

    def test_failed_call_restores_everything(self) -> None:
        """Storage, nested writes and events are rolled back on failure."""
        ledger = Ledger()
        counter = Counter(ledger)
        counter.increment(sender=ALICE)
        with pytest.raises(FeedServerError, match="Failed after increment"):
            counter.increment_then_fail(sender=ALICE)
        assert counter.storage.count == 1
        assert counter.storage.history == [1]
        assert len(ledger.events) == 1

    def test_payable_moves_value(self) -> None:
        """Payable calls move the attached value."""
        ledger = Ledger()
        counter = Counter(ledger)
        ledger.mint(ALICE, 10)
        assert counter.deposit(sender=ALICE, value=3) == 3
        assert ledger.balance_of(ALICE) == 7

    def test_payable_insufficient_balance(self) -> None:
        """Payable calls need the sender to cover the value."""
        ledger = Ledger()
        counter = Counter(ledger)
        with pytest.raises(ResourceError, match="Insufficient balance"):
            counter.deposit(sender=ALICE, value=3)

    def test_non_payable_rejects_value(self) -> None:
        """Non-payable calls reject attached value."""
        ledger = Ledger()
        counter = Counter(ledger)
        ledger.mint(ALICE, 10)
        with pytest.raises(InvalidArgumentError, match="increment is not payable"):
            counter.increment(sender=ALICE, value=1)
        assert ledger.balance_of(ALICE) == 10

    def test_static_call_discards_writes(self) -> None:
        """Static calls discard every write."""
        ledger = Ledger()
        counter = Counter(ledger)
        assert not ledger.is_static
        assert ledger.static_call(counter.increment, sender=ALICE) == 1
        assert counter.storage.count == 0
        assert ledger.events == []
        assert not ledger.is_static

    def test_static_flag_inside_call(self) -> None:
        """The static flag is set during a static call."""
        ledger = Ledger()
        assert ledger.static_call(lambda: ledger.is_static)


class TestCall:
    """Test call payloads."""

    def test_execute_external(self) -> None:
        """Test executing a call payload."""
        ledger = Ledger()
        counter = Counter(ledger)
        assert Call(counter.address, "increment").execute(ledger, ALICE) == 1

    def test_execute_with_value(self) -> None:
        """Test executing a call payload with value."""
        ledger = Ledger()
        counter = Counter(ledger)
        ledger.mint(ALICE, 5)
        assert Call(counter.address, "deposit", value=5).execute(ledger, ALICE) == 5

    def test_value_to_non_payable(self) -> None:
        """A call payload with value to a non-payable method is rejected."""
        ledger = Ledger()
        counter = Counter(ledger)
        with pytest.raises(InvalidArgumentError, match="increment is not payable"):
            Call(counter.address, "increment", value=1).execute(ledger, ALICE)

    def test_no_account(self) -> None:
        """A call payload to an address without an account is rejected."""
        with pytest.raises(InvalidArgumentError, match="No account at"):
            Call(ALICE, "increment").execute(Ledger(), BOB)


class TestNonReentrant:
    """Test the reentrancy guard."""

    def test_reentry_rejected(self) -> None:
        """Reentering a guarded method is rejected."""
        counter = Counter(Ledger())
        with pytest.raises(ReentrancyError, match="ReentrancyGuard: reentrant call"):
            counter.guarded(inner=lambda: counter.guarded())

    def test_guard_released(self) -> None:
        """The guard is released after both success and failure."""
        counter = Counter(Ledger())
        with pytest.raises(ReentrancyError):
            counter.guarded(inner=lambda: counter.guarded())
        assert counter.guarded() == "done"
