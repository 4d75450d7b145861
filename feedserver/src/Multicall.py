"""Multicall: Batch several calls into the same contract under one sender.

``multicall`` applies every call or none of them. ``try_multicall`` applies
each call on its own and reports per-call outcomes, the usual way to submit
many independent feed updates where some may already be stale.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any

from web3 import Web3

from .errors import FeedServerError, InvalidArgumentError
from .Ledger import Call, external

logger = logging.getLogger(__name__)


class SelfMulticall:
    """Mixin for :class:`LedgerAccount` subclasses that accept batched calls to themselves."""

    def _require_self_target(self, calls: Sequence[Call]) -> None:
        for call in calls:
            if Web3.to_checksum_address(call.target) != self.address:
                raise InvalidArgumentError("Multicall target is not this contract")

    @external
    def multicall(self, calls: Sequence[Call], *, sender: str) -> list[Any]:
        """Execute calls in order, reverting all of them if any fails.

        :param calls: Calls targeting this contract.
        :param sender: Caller, forwarded to each call.
        :returns: The result of each call.
        """
        self._require_self_target(calls)
        return [call.execute(self.ledger, sender) for call in calls]

    @external
    def try_multicall(
        self, calls: Sequence[Call], *, sender: str
    ) -> list[tuple[bool, Any]]:
        """Execute calls in order, keeping the ones that succeed.

        :param calls: Calls targeting this contract.
        :param sender: Caller, forwarded to each call.
        :returns: ``(True, result)`` or ``(False, error)`` for each call.
        """
        self._require_self_target(calls)
        outcomes: list[tuple[bool, Any]] = []
        for call in calls:
            try:
                outcomes.append((True, call.execute(self.ledger, sender)))
            except FeedServerError as exc:
                logger.debug(f"Multicall {call.method} failed: {exc}")
                outcomes.append((False, exc))
        return outcomes
