"""OevSearcher: Owner-operated account that wins and settles dApp OEV bids.

The owner funds the account and has it pay a bid with a list of calls as the
callback data. When the extension calls back, the account executes the
calls (typically the overlay update followed by a liquidation) and then pays
the bid amount, all inside the bid payment.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

from web3 import Web3

from .errors import AccessDeniedError, InvalidArgumentError, ResourceError
from .Ledger import Call, Ledger, LedgerAccount, external

logger = logging.getLogger(__name__)


@dataclass
class OevSearcherStorage:
    # Extension expected to call back during an ongoing bid payment
    pending_extension: str | None = None


class OevSearcher(LedgerAccount):
    """Multicall account restricted to its owner.

    :ivar owner: Address allowed to operate the account.
    """

    def __init__(self, ledger: Ledger, owner: str) -> None:
        super().__init__(ledger, OevSearcherStorage())
        self.owner = Web3.to_checksum_address(owner)

    def _require_owner(self, sender: str) -> None:
        if sender != self.owner:
            raise AccessDeniedError("Caller is not the owner")

    def _execute(self, calls: Sequence[Call]) -> list[Any]:
        results = []
        for call in calls:
            if call.value > self.balance:
                raise ResourceError("Multicall: Insufficient balance")
            results.append(call.execute(self.ledger, self.address))
        return results

    @external(payable=True)
    def external_multicall_with_value(
        self, calls: Sequence[Call], *, sender: str, value: int = 0
    ) -> list[Any]:
        """Execute calls from this account, attaching value where given.

        :param calls: Calls to execute in order.
        :param sender: Must be the owner.
        :param value: Funds added to the account before the calls run.
        :returns: The result of each call.
        :raises AccessDeniedError: If the sender is not the owner.
        :raises ResourceError: If a call attaches more value than the account holds.
        """
        self._require_owner(sender)
        return self._execute(calls)

    @external(payable=True)
    def pay_oev_bid(
        self,
        extension: str,
        dapp_id: int,
        bid_amount: int,
        cut_off: int,
        signature: bytes,
        calls: Sequence[Call],
        *,
        sender: str,
        value: int = 0,
    ) -> None:
        """Pay a bid to an OEV extension and run ``calls`` in its callback.

        :param extension: OEV extension address.
        :param dapp_id: dApp the bid is for.
        :param bid_amount: Amount paid to the extension during the callback.
        :param cut_off: Cut-off signed by the auctioneer.
        :param signature: Auctioneer signature naming this account as updater.
        :param calls: Calls executed during the callback.
        :param sender: Must be the owner.
        :param value: Funds added to the account before paying.
        """
        self._require_owner(sender)
        target = self.ledger.account(extension)
        if target is None:
            raise InvalidArgumentError(f"No account at {extension}")
        self.storage.pending_extension = target.address
        target.pay_oev_bid(
            dapp_id, bid_amount, cut_off, signature, list(calls), sender=self.address
        )
        self.storage.pending_extension = None
        logger.info(f"Settled OEV bid of {bid_amount} for dApp {dapp_id} with {len(calls)} calls")

    @external
    def on_oev_bid_payment(self, bid_amount: int, callback_data: Any, *, sender: str) -> None:
        """Run the bid's calls, then pay the bid to the calling extension.

        :param bid_amount: Amount to pay.
        :param callback_data: Calls passed to :meth:`pay_oev_bid`.
        :param sender: Must be the extension the bid is being paid to.
        :raises AccessDeniedError: If no bid payment to the sender is ongoing.
        :raises ResourceError: If the payment fails.
        """
        if self.storage.pending_extension != sender:
            raise AccessDeniedError("Caller is not the bid recipient")
        self._execute(callback_data or [])
        if not self.ledger.transfer(self.address, sender, bid_amount):
            raise ResourceError("OEV bid payment reverted")
        logger.debug(f"Paid {bid_amount} to {sender}")
