"""OevExtension: Per-dApp OEV auctions settled against a data feed server.

The auctioneer signs a bid for a dApp that names the winning updater, the
bid amount and a cut-off. The updater pays the bid with :meth:`pay_oev_bid`
and, in the same call, gets called back to apply fresher signed data to the
dApp's overlay with :meth:`update_dapp_oev_data_feed`:

    updater.pay_oev_bid(...)
        -> extension records UpdateAllowance(updater, cut_off)
        -> extension calls updater.on_oev_bid_payment(bid_amount, callback_data)
            -> updater calls extension.update_dapp_oev_data_feed(...)
            -> updater pays bid_amount to the extension
        -> extension requires it received at least bid_amount

Only the update path may be re-entered from the callback. Bid payments and
withdrawals are guarded against reentrancy.

Overlay data is signed over keccak256(keccak256(templateId), timestamp, data)
so base update signatures cannot be replayed here, and vice versa.

Beacon set updates mix signed and public data per Beacon:
    - signed Beacon: the signed data, unless the base Beacon is newer
    - abstaining Beacon: the dApp's stored overlay Beacon if newer than the
      base Beacon, else the base Beacon
The set is then aggregated like a base Beacon set, so an overlay never lags
behind data that is already public.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any

from web3 import Web3

from .AccessControlRegistry import (
    AUCTIONEER_ROLE_DESCRIPTION,
    WITHDRAWER_ROLE_DESCRIPTION,
    AccessControlRegistry,
    RegistryAdminnedWithManager,
)
from .DataFeed import DataFeed
from .DataFeedIds import decode_data, derive_beacon_id, derive_beacon_set_id, derive_dapi_name_hash
from .DataFeedServer import TIMESTAMP_VALIDITY_WINDOW, DataFeedServer
from .errors import (
    AccessDeniedError,
    IdentityMismatchError,
    InvalidArgumentError,
    NotInitializedError,
    ResourceError,
    SignatureError,
    StalenessError,
)
from .Events import DappOevWithdrew, PaidOevBid, UpdatedDappOevDataFeed
from .Ledger import ZERO_ADDRESS, Call, Ledger, LedgerAccount, external, non_reentrant
from .Median import aggregate
from .Multicall import SelfMulticall
from .SignatureVerifier import (
    hash_dapp_oev_signed_data,
    hash_oev_bid,
    recover_signer,
    verify_signature,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UpdateAllowance:
    """The last bid paid for a dApp.

    :ivar updater: Address allowed to update the dApp's overlay.
    :ivar end_timestamp: Cut-off, the latest signed data timestamp allowed.
    """

    updater: str = ZERO_ADDRESS
    end_timestamp: int = 0


@dataclass(frozen=True)
class SignedData:
    """Signed data for one Beacon. An empty signature marks an abstention."""

    airnode: str
    template_id: bytes
    timestamp: int
    data: bytes = b""
    signature: bytes = b""

    @property
    def beacon_id(self) -> bytes:
        return derive_beacon_id(self.airnode, self.template_id)

    @property
    def is_signed(self) -> bool:
        return len(self.signature) > 0


@dataclass
class OevExtensionStorage:
    dapp_id_to_update_allowance: dict[int, UpdateAllowance] = field(default_factory=dict)
    # (dApp ID, data feed ID) -> overlay entry
    oev_data_feeds: dict[tuple[int, bytes], DataFeed] = field(default_factory=dict)


class OevExtension(LedgerAccount, RegistryAdminnedWithManager, SelfMulticall):
    """Per-dApp OEV overlay on top of a :class:`DataFeedServer`.

    :ivar server: Base data feed server.
    :ivar withdrawer_role: Role allowed to withdraw bid payments.
    :ivar auctioneer_role: Role whose signatures authorize bids.
    """

    def __init__(
        self,
        ledger: Ledger,
        access_control_registry: AccessControlRegistry,
        admin_role_description: str,
        manager: str,
        server: DataFeedServer | None,
    ) -> None:
        """Deploy the extension.

        :raises InvalidArgumentError: If no server is given.
        """
        if server is None:
            raise InvalidArgumentError("Server address zero")
        self._init_roles(access_control_registry, admin_role_description, manager)
        self.server = server
        self.withdrawer_role = self._derive_role(WITHDRAWER_ROLE_DESCRIPTION)
        self.auctioneer_role = self._derive_role(AUCTIONEER_ROLE_DESCRIPTION)
        super().__init__(ledger, OevExtensionStorage())

    # Bids

    @external(payable=True)
    @non_reentrant
    def pay_oev_bid(
        self,
        dapp_id: int,
        bid_amount: int,
        cut_off: int,
        signature: bytes,
        callback_data: Any = None,
        *,
        sender: str,
        value: int = 0,
    ) -> None:
        """Pay a bid signed by the auctioneer and become the dApp's updater.

        If the sender is a contract it is called back with ``callback_data``
        and may update the overlay and pay the bid during the callback.

        :param dapp_id: dApp the bid is for.
        :param bid_amount: Amount the sender must pay.
        :param cut_off: Latest signed data timestamp the sender may use.
        :param signature: Auctioneer signature over the bid.
        :param callback_data: Passed back to the sender's callback.
        :param sender: Bid winner.
        :param value: Amount attached to the call.
        :raises InvalidArgumentError: If the dApp ID or cut-off is zero.
        :raises StalenessError: If the cut-off is too far in the future or
            not more recent than the previous one.
        :raises SignatureError: If the signer is not an auctioneer.
        :raises ResourceError: If less than the bid amount was paid.
        """
        if dapp_id == 0:
            raise InvalidArgumentError("dApp ID zero")
        if cut_off == 0:
            raise InvalidArgumentError("Cut-off zero")
        if cut_off > self.ledger.timestamp + TIMESTAMP_VALIDITY_WINDOW:
            raise StalenessError("Cut-off too far in the future")
        auctioneer = recover_signer(
            hash_oev_bid(self.ledger.chain_id, dapp_id, sender, bid_amount, cut_off),
            signature,
        )
        if not self._has_role_or_is_manager(self.auctioneer_role, auctioneer):
            raise SignatureError("Signature mismatch")
        if cut_off <= self.dapp_id_to_update_allowance(dapp_id).end_timestamp:
            raise StalenessError("Cut-off not more recent")

        balance_before = self.balance - value
        self.storage.dapp_id_to_update_allowance[dapp_id] = UpdateAllowance(
            updater=sender, end_timestamp=cut_off
        )
        self.ledger.emit(
            PaidOevBid(
                dapp_id=dapp_id,
                bid_amount=bid_amount,
                cut_off=cut_off,
                auctioneer=auctioneer,
                sender=sender,
            )
        )

        bidder = self.ledger.account(sender)
        if bidder is not None:
            if not hasattr(bidder, "on_oev_bid_payment"):
                raise InvalidArgumentError("Sender does not handle OEV bid payment")
            bidder.on_oev_bid_payment(bid_amount, callback_data, sender=self.address)
        if self.balance - balance_before < bid_amount:
            raise ResourceError("OEV bid payment amount short")
        logger.info(
            f"Paid OEV bid of {bid_amount} for dApp {dapp_id} by {sender}, cut-off {cut_off}"
        )

    # Updates

    @external
    def update_dapp_oev_data_feed(
        self, dapp_id: int, signed_data: Sequence[SignedData], *, sender: str
    ) -> tuple[bytes, int, int]:
        """Apply signed data to the dApp's overlay as its last bid updater.

        :param dapp_id: dApp whose overlay is updated.
        :param signed_data: One entry for a Beacon, one per Beacon in order
            for a Beacon set.
        :param sender: Must be the updater of the last bid for the dApp.
        :returns: ``(data_feed_id, value, timestamp)`` of the updated feed.
        :raises IdentityMismatchError: If the sender is not the last bid updater.
        """
        allowance = self.dapp_id_to_update_allowance(dapp_id)
        if allowance.updater == ZERO_ADDRESS or sender != allowance.updater:
            raise IdentityMismatchError("Sender not last bid updater")
        return self._update(dapp_id, signed_data, allowance.end_timestamp, sender)

    @external
    def simulate_dapp_oev_data_feed_update(
        self, dapp_id: int, signed_data: Sequence[SignedData], *, sender: str
    ) -> tuple[bytes, int, int]:
        """Preview an overlay update without a bid. Static calls from the zero address only.

        :raises IdentityMismatchError: If not called statically from the zero address.
        """
        self._require_simulation(sender)
        return self._update(dapp_id, signed_data, None, sender)

    @external
    def simulate_external_call(self, call: Call, *, sender: str) -> Any:
        """Execute a call as this extension during a static call from the zero address.

        Lets a searcher batch base updates with an overlay simulation to see
        the resulting feed values.

        :raises IdentityMismatchError: If not called statically from the zero address.
        """
        self._require_simulation(sender)
        return call.execute(self.ledger, self.address)

    @external
    @non_reentrant
    def withdraw(self, recipient: str, amount: int, *, sender: str) -> None:
        """Withdraw paid bids.

        :param recipient: Address to send to.
        :param amount: Amount to send.
        :param sender: Manager or withdrawer.
        :raises InvalidArgumentError: If the recipient or amount is zero.
        :raises AccessDeniedError: If the sender may not withdraw.
        :raises ResourceError: If the transfer is rejected.
        """
        if recipient == ZERO_ADDRESS:
            raise InvalidArgumentError("Recipient address zero")
        if amount == 0:
            raise InvalidArgumentError("Amount zero")
        if not self._has_role_or_is_manager(self.withdrawer_role, sender):
            raise AccessDeniedError("Sender cannot withdraw")
        if not self.ledger.transfer(self.address, recipient, amount):
            raise ResourceError("Withdrawal reverted")
        recipient = Web3.to_checksum_address(recipient)
        self.ledger.emit(DappOevWithdrew(recipient=recipient, amount=amount, sender=sender))
        logger.info(f"Withdrew {amount} to {recipient}")

    # Reads

    def dapp_id_to_update_allowance(self, dapp_id: int) -> UpdateAllowance:
        """Get the last bid paid for a dApp."""
        return self.storage.dapp_id_to_update_allowance.get(dapp_id, UpdateAllowance())

    def oev_data_feed(self, dapp_id: int, data_feed_id: bytes) -> DataFeed:
        """Get the overlay entry of a dApp, zero-valued if never updated."""
        return self.storage.oev_data_feeds.get((dapp_id, data_feed_id), DataFeed())

    def read_data_feed_with_dapp_id(self, dapp_id: int, data_feed_id: bytes) -> DataFeed:
        """Read a data feed as a dApp sees it, preferring a newer overlay.

        :raises NotInitializedError: If neither the overlay nor the base data
            feed was ever updated.
        """
        overlay = self.oev_data_feed(dapp_id, data_feed_id)
        base = self.server.data_feeds(data_feed_id)
        data_feed = overlay if overlay.timestamp > base.timestamp else base
        if not data_feed.is_initialized:
            raise NotInitializedError("Data feed not initialized")
        return data_feed

    def read_data_feed_with_dapi_name_and_dapp_id(self, dapp_id: int, dapi_name: bytes) -> DataFeed:
        """Read the data feed a dAPI name points at as a dApp sees it.

        :raises NotInitializedError: If the dAPI name is not set.
        """
        data_feed_id = self.server.resolve_dapi_name_hash(derive_dapi_name_hash(dapi_name))
        return self.read_data_feed_with_dapp_id(dapp_id, data_feed_id)

    # Internals

    def _require_simulation(self, sender: str) -> None:
        if sender != ZERO_ADDRESS or not self.ledger.is_static:
            raise IdentityMismatchError("Sender address not zero")

    def _update(
        self,
        dapp_id: int,
        signed_data: Sequence[SignedData],
        cut_off: int | None,
        sender: str,
    ) -> tuple[bytes, int, int]:
        if not signed_data:
            raise InvalidArgumentError("Signed data empty")

        if len(signed_data) == 1:
            data_feed_id = signed_data[0].beacon_id
            updated = self._validate_signed_beacon(dapp_id, signed_data[0], cut_off)
        else:
            members: list[DataFeed] = []
            signed_count = 0
            for entry in signed_data:
                beacon_id = entry.beacon_id
                base = self.server.data_feeds(beacon_id)
                if entry.is_signed:
                    signed = self._validate_signed_beacon(dapp_id, entry, cut_off)
                    member = base if base.timestamp > signed.timestamp else signed
                    signed_count += 1
                else:
                    stored = self.oev_data_feed(dapp_id, beacon_id)
                    member = stored if stored.timestamp > base.timestamp else base
                self.storage.oev_data_feeds[(dapp_id, beacon_id)] = member
                members.append(member)
            if signed_count == 0:
                raise StalenessError("Does not update timestamp")

            data_feed_id = derive_beacon_set_id([entry.beacon_id for entry in signed_data])
            updated = aggregate(members)
            if self.oev_data_feed(dapp_id, data_feed_id) == updated:
                raise StalenessError("Does not update Beacon set")
            logger.debug(
                f"Aggregated {signed_count}/{len(signed_data)} signed Beacons for dApp {dapp_id}"
            )

        self.storage.oev_data_feeds[(dapp_id, data_feed_id)] = updated
        self.ledger.emit(
            UpdatedDappOevDataFeed(
                dapp_id=dapp_id,
                data_feed_id=data_feed_id,
                value=updated.value,
                timestamp=updated.timestamp,
                sender=sender,
            )
        )
        logger.info(
            f"Updated dApp {dapp_id} OEV data feed 0x{data_feed_id.hex()}: "
            f"value={updated.value} timestamp={updated.timestamp}"
        )
        return data_feed_id, updated.value, updated.timestamp

    def _validate_signed_beacon(
        self, dapp_id: int, entry: SignedData, cut_off: int | None
    ) -> DataFeed:
        """Check a signed Beacon against the cut-off and the dApp's overlay.

        A cut-off of None skips the cut-off check, for simulations.
        """
        verify_signature(
            entry.airnode,
            hash_dapp_oev_signed_data(entry.template_id, entry.timestamp, entry.data),
            entry.signature,
        )
        if cut_off is not None and entry.timestamp > cut_off:
            raise StalenessError("Timestamp exceeds cut-off")
        if entry.timestamp <= self.oev_data_feed(dapp_id, entry.beacon_id).timestamp:
            raise StalenessError("Does not update timestamp")
        return DataFeed(value=decode_data(entry.data), timestamp=entry.timestamp)
