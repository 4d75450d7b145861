"""Ledger: In-process execution environment for the feed server contracts.

The ledger provides what the contracts expect from a chain:
    - chain ID and block timestamp
    - native balances and value transfers
    - deployed accounts addressable by checksum address
    - all-or-nothing transactions (storage, balances and events are restored
      if a call raises, including nested calls)
    - static calls whose writes are always discarded
    - an event log

Contracts subclass :class:`LedgerAccount`, keep all mutable state in
``self.storage`` and mark state-changing entry points with :func:`external`.

.. code-block:: python

    >>> ledger = Ledger(chain_id=31337, timestamp=1700000000)
    >>> ledger.mint("0x000000000000000000000000000000000000dEaD", 10)
    >>> ledger.balance_of("0x000000000000000000000000000000000000dEaD")
    10
"""

from __future__ import annotations

import copy
import functools
import logging
import os
import time
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, TypeVar

from web3 import Web3

from .errors import FeedServerError, InvalidArgumentError, ReentrancyError, ResourceError

logger = logging.getLogger(__name__)

DEFAULT_CHAIN_ID = 31337
ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"

T = TypeVar("T")


@dataclass(frozen=True)
class Call:
    """A call to be executed on behalf of an account.

    Used as multicall payloads, bid callback data and simulated external calls.

    :ivar target: Address of the deployed account to call.
    :ivar method: Name of the method to invoke.
    :ivar args: Positional arguments.
    :ivar kwargs: Keyword arguments (excluding sender and value).
    :ivar value: Native value to attach, payable methods only.
    """

    target: str
    method: str
    args: tuple = ()
    kwargs: dict[str, Any] = field(default_factory=dict)
    value: int = 0

    def execute(self, ledger: Ledger, sender: str) -> Any:
        """Execute the call with ``sender`` as the caller.

        :param ledger: Ledger holding the target account.
        :param sender: Address the call is made from.
        :returns: Whatever the target method returns.
        :raises InvalidArgumentError: If there is no account at the target or
            value is attached to a method that cannot accept it.
        """
        account = ledger.account(self.target)
        if account is None:
            raise InvalidArgumentError(f"No account at {self.target}")
        method = getattr(account, self.method)

        if getattr(method, "is_external", False):
            if getattr(method, "is_payable", False):
                return method(*self.args, sender=sender, value=self.value, **self.kwargs)
            if self.value:
                raise InvalidArgumentError(f"{self.method} is not payable")
            return method(*self.args, sender=sender, **self.kwargs)

        if self.value:
            raise InvalidArgumentError(f"{self.method} is not payable")
        return method(*self.args, **self.kwargs)


@dataclass
class _Snapshot:
    balances: dict[str, int]
    accounts: dict[str, LedgerAccount]
    storages: dict[str, Any]
    event_count: int


class Ledger:
    """Single-threaded ledger holding accounts, balances and events.

    :ivar chain_id: Chain ID bound into signatures.
    :ivar timestamp: Current block timestamp.
    :ivar events: Emitted events, oldest first.
    """

    def __init__(self, chain_id: int | None = None, timestamp: int | None = None) -> None:
        """Initialize the ledger.

        :param chain_id: Chain ID. Falls back to the CHAIN_ID environment
            variable, then to DEFAULT_CHAIN_ID.
        :param timestamp: Initial block timestamp (default: current time).
        """
        if chain_id is None:
            chain_id = int(os.environ.get("CHAIN_ID") or DEFAULT_CHAIN_ID)
        self.chain_id = chain_id
        self.timestamp = int(time.time()) if timestamp is None else timestamp
        self.events: list[Any] = []

        self._balances: dict[str, int] = {}
        self._accounts: dict[str, LedgerAccount] = {}
        self._static_depth = 0
        self._deploy_nonce = 0

    # Time

    def advance_time(self, seconds: int) -> int:
        """Move the block timestamp forward.

        :param seconds: Seconds to advance by.
        :returns: The new block timestamp.
        """
        if seconds < 0:
            raise ValueError("Cannot move time backwards")
        self.timestamp += seconds
        return self.timestamp

    # Accounts

    def deploy(self, account: LedgerAccount) -> str:
        """Register an account and assign it a fresh address.

        :param account: Account to register.
        :returns: Checksum address of the account.
        """
        self._deploy_nonce += 1
        digest = Web3.keccak(text=f"{self.chain_id}:{self._deploy_nonce}")
        address = Web3.to_checksum_address("0x" + bytes(digest[-20:]).hex())
        self._accounts[address] = account
        logger.debug(f"Deployed {type(account).__name__} at {address}")
        return address

    def account(self, address: str) -> LedgerAccount | None:
        """Get the deployed account at an address.

        :param address: Address to look up.
        :returns: The account, or None for externally owned addresses.
        """
        return self._accounts.get(Web3.to_checksum_address(address))

    def is_deployed(self, address: str) -> bool:
        """Check if an address belongs to a deployed account."""
        return self.account(address) is not None

    # Balances

    def balance_of(self, address: str) -> int:
        """Get the native balance of an address."""
        return self._balances.get(Web3.to_checksum_address(address), 0)

    def mint(self, address: str, amount: int) -> None:
        """Credit native balance out of thin air.

        :param address: Address to credit.
        :param amount: Amount to credit.
        """
        if amount < 0:
            raise ValueError("amount must be non-negative")
        address = Web3.to_checksum_address(address)
        self._balances[address] = self._balances.get(address, 0) + amount

    def transfer(self, sender: str, recipient: str, amount: int) -> bool:
        """Send native value, letting a deployed recipient accept or reject it.

        A failed transfer leaves no trace, the same way a low-level call that
        reverts does.

        :param sender: Address paying.
        :param recipient: Address receiving.
        :param amount: Amount to send.
        :returns: True if the transfer went through.
        """
        try:
            with self.transaction(sender=sender, target=recipient, value=amount):
                account = self.account(recipient)
                if account is not None:
                    account.receive(sender=Web3.to_checksum_address(sender), value=amount)
        except FeedServerError as exc:
            logger.warning(f"Transfer of {amount} from {sender} to {recipient} failed: {exc}")
            return False
        logger.debug(f"Transferred {amount} from {sender} to {recipient}")
        return True

    def _move(self, sender: str, recipient: str, amount: int) -> None:
        if amount < 0:
            raise InvalidArgumentError("Negative value")
        if self._balances.get(sender, 0) < amount:
            raise ResourceError("Insufficient balance")
        self._balances[sender] -= amount
        self._balances[recipient] = self._balances.get(recipient, 0) + amount

    # Execution

    @property
    def is_static(self) -> bool:
        """Check if a static (state-discarding) call is executing."""
        return self._static_depth > 0

    @contextmanager
    def transaction(self, sender: str, target: str, value: int = 0) -> Iterator[None]:
        """Run a block as one all-or-nothing call from ``sender`` to ``target``.

        Attached value moves from sender to target before the block runs. If
        the block raises, storage, balances, deployed accounts and events are
        restored to their state before the call.

        :param sender: Caller address.
        :param target: Callee address.
        :param value: Native value attached to the call.
        """
        sender = Web3.to_checksum_address(sender)
        target = Web3.to_checksum_address(target)
        snapshot = self._snapshot()
        try:
            if value:
                self._move(sender, target, value)
            yield
        except BaseException:
            self._restore(snapshot)
            raise

    def static_call(self, fn: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        """Run a callable and discard every write it makes.

        :param fn: Callable to run.
        :returns: Whatever the callable returns.
        """
        snapshot = self._snapshot()
        self._static_depth += 1
        try:
            return fn(*args, **kwargs)
        finally:
            self._static_depth -= 1
            self._restore(snapshot)

    def emit(self, event: Any) -> None:
        """Append an event to the log."""
        self.events.append(event)
        logger.debug(f"Event: {event}")

    def _snapshot(self) -> _Snapshot:
        return _Snapshot(
            balances=dict(self._balances),
            accounts=dict(self._accounts),
            storages={
                address: copy.deepcopy(account.storage)
                for address, account in self._accounts.items()
            },
            event_count=len(self.events),
        )

    def _restore(self, snapshot: _Snapshot) -> None:
        self._balances = snapshot.balances
        self._accounts = snapshot.accounts
        for address, storage in snapshot.storages.items():
            self._accounts[address].storage = storage
        del self.events[snapshot.event_count :]


class LedgerAccount:
    """Base class for contracts deployed on a :class:`Ledger`.

    :ivar ledger: Ledger the account is deployed on.
    :ivar address: Checksum address of the account.
    :ivar storage: Mutable state, snapshotted by the ledger.
    """

    def __init__(self, ledger: Ledger, storage: Any = None) -> None:
        self.ledger = ledger
        self.storage = storage
        self.address = ledger.deploy(self)

    @property
    def balance(self) -> int:
        """Native balance of this account."""
        return self.ledger.balance_of(self.address)

    def receive(self, *, sender: str, value: int) -> None:
        """Accept a plain value transfer. Override and raise to reject."""
        pass


def external(fn: Callable[..., T] | None = None, *, payable: bool = False) -> Any:
    """Mark a method as a state-changing entry point.

    The wrapped method must be called with a keyword-only ``sender`` and, if
    payable, an optional ``value``. The call runs inside
    :meth:`Ledger.transaction`, so it either fully applies or fully reverts.

    .. code-block:: python

        class Vault(LedgerAccount):
            @external(payable=True)
            def deposit(self, *, sender: str, value: int = 0) -> None:
                ...
    """

    def decorate(method: Callable[..., T]) -> Callable[..., T]:
        @functools.wraps(method)
        def wrapper(self: LedgerAccount, *args: Any, sender: str, **kwargs: Any) -> T:
            sender = Web3.to_checksum_address(sender)
            value = kwargs.get("value", 0) if payable else 0
            if not payable and kwargs.pop("value", 0):
                raise InvalidArgumentError(f"{method.__name__} is not payable")
            with self.ledger.transaction(sender=sender, target=self.address, value=value):
                return method(self, *args, sender=sender, **kwargs)

        wrapper.is_external = True  # type: ignore[attr-defined]
        wrapper.is_payable = payable  # type: ignore[attr-defined]
        return wrapper

    if fn is not None:
        return decorate(fn)
    return decorate


def non_reentrant(method: Callable[..., T]) -> Callable[..., T]:
    """Forbid re-entering any ``non_reentrant`` method of the same account.

    Methods without the guard stay reachable from nested calls, which is what
    lets a bid payment callback apply its update atomically.
    """

    @functools.wraps(method)
    def wrapper(self: Any, *args: Any, **kwargs: Any) -> T:
        if getattr(self, "_entered", False):
            raise ReentrancyError("ReentrancyGuard: reentrant call")
        self._entered = True
        try:
            return method(self, *args, **kwargs)
        finally:
            self._entered = False

    return wrapper
