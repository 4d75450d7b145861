"""OevDataFeedServer: Data feed server with per-proxy OEV overlays.

A searcher that won an OEV auction for a proxy submits data signed by the
Airnodes specifically for that auction. The data is written to an overlay
only that proxy reads, and the bid is escrowed for the proxy's beneficiary.

The signed hash binds the chain, this server, the proxy, the data feed, the
update ID, the searcher and the bid amount, so a signature cannot be reused
by another searcher or for another payment:

    oevUpdateHash = keccak256(chainId, server, oevProxy, dataFeedId, updateId,
                              timestamp, data, searcher, bidAmount)
    signed hash   = keccak256(oevUpdateHash, templateId)

For Beacon sets an empty signature means the Beacon abstains. More than half
of the Beacons must sign.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field

from web3 import Web3

from .AccessControlRegistry import AccessControlRegistry
from .DataFeed import DataFeed
from .DataFeedIds import decode_data, derive_beacon_id, derive_beacon_set_id, derive_dapi_name_hash
from .DataFeedServer import DataFeedServer, DataFeedServerStorage
from .errors import (
    IdentityMismatchError,
    InvalidArgumentError,
    NotInitializedError,
    QuorumError,
    ResourceError,
    SignatureError,
)
from .Events import (
    UpdatedOevProxyBeaconSetWithSignedData,
    UpdatedOevProxyBeaconWithSignedData,
    Withdrew,
)
from .Ledger import ZERO_ADDRESS, Ledger, external
from .SignatureVerifier import hash_oev_signed_data, hash_oev_update, verify_signature

logger = logging.getLogger(__name__)

# (airnode, template ID, signature)
PackedSignature = tuple[str, bytes, bytes]


@dataclass
class OevDataFeedServerStorage(DataFeedServerStorage):
    oev_proxy_to_id_to_data_feed: dict[str, dict[bytes, DataFeed]] = field(default_factory=dict)
    oev_proxy_to_balance: dict[str, int] = field(default_factory=dict)


class OevDataFeedServer(DataFeedServer):
    """Data feed server extended with legacy OEV proxy overlays and escrow."""

    def __init__(
        self,
        ledger: Ledger,
        access_control_registry: AccessControlRegistry,
        admin_role_description: str,
        manager: str,
    ) -> None:
        super().__init__(
            ledger,
            access_control_registry,
            admin_role_description,
            manager,
            storage=OevDataFeedServerStorage(),
        )

    @external(payable=True)
    def update_oev_proxy_data_feed_with_signed_data(
        self,
        oev_proxy: str,
        data_feed_id: bytes,
        update_id: bytes,
        timestamp: int,
        data: bytes,
        packed_signatures: Sequence[PackedSignature],
        *,
        sender: str,
        value: int = 0,
    ) -> None:
        """Update the OEV overlay of a proxy, escrowing the attached bid.

        :param oev_proxy: Proxy whose overlay is updated.
        :param data_feed_id: Beacon or Beacon set ID being updated.
        :param update_id: Auction update ID, part of the signed hash.
        :param timestamp: Timestamp of the signed data.
        :param data: ABI-encoded int256 value.
        :param packed_signatures: ``(airnode, template_id, signature)`` per
            Beacon, in Beacon set order.
        :param sender: Searcher submitting the update.
        :param value: Bid amount attached to the call.
        :raises InvalidArgumentError: If no Beacons are specified.
        :raises StalenessError: If the timestamp is invalid or does not
            advance the overlay.
        :raises DataError: If the data does not decode into an int224.
        :raises SignatureError: If a present signature is invalid or the only
            signature is missing.
        :raises IdentityMismatchError: If the signers do not derive to
            ``data_feed_id``.
        :raises QuorumError: If no more than half of the Beacons signed.
        """
        if not packed_signatures:
            raise InvalidArgumentError("Did not specify any Beacons")
        self._require_valid_timestamp(timestamp)
        updated_value = decode_data(data)
        oev_proxy = Web3.to_checksum_address(oev_proxy)
        oev_update_hash = hash_oev_update(
            self.ledger.chain_id,
            self.address,
            oev_proxy,
            data_feed_id,
            update_id,
            timestamp,
            data,
            sender,
            value,
        )

        if len(packed_signatures) == 1:
            airnode, template_id, signature = packed_signatures[0]
            if not signature:
                raise SignatureError("Missing signature")
            verify_signature(
                airnode, hash_oev_signed_data(oev_update_hash, template_id), signature
            )
            if derive_beacon_id(airnode, template_id) != data_feed_id:
                raise IdentityMismatchError("Beacon ID mismatch")
        else:
            beacon_ids = [
                derive_beacon_id(airnode, template_id)
                for airnode, template_id, _ in packed_signatures
            ]
            if derive_beacon_set_id(beacon_ids) != data_feed_id:
                raise IdentityMismatchError("Beacon set ID mismatch")
            present = [packed for packed in packed_signatures if packed[2]]
            if len(present) <= len(packed_signatures) // 2:
                raise QuorumError("Not enough signatures")
            for airnode, template_id, signature in present:
                verify_signature(
                    airnode, hash_oev_signed_data(oev_update_hash, template_id), signature
                )
            logger.debug(
                f"{len(present)}/{len(packed_signatures)} Beacons signed OEV update "
                f"0x{update_id.hex()}"
            )

        overlay = self.storage.oev_proxy_to_id_to_data_feed.setdefault(oev_proxy, {})
        self._require_updates_timestamp(overlay.get(data_feed_id, DataFeed()), timestamp)
        overlay[data_feed_id] = DataFeed(value=updated_value, timestamp=timestamp)
        self.storage.oev_proxy_to_balance[oev_proxy] = (
            self.storage.oev_proxy_to_balance.get(oev_proxy, 0) + value
        )

        event_type = (
            UpdatedOevProxyBeaconWithSignedData
            if len(packed_signatures) == 1
            else UpdatedOevProxyBeaconSetWithSignedData
        )
        self.ledger.emit(
            event_type(
                data_feed_id,
                oev_proxy,
                update_id,
                updated_value,
                timestamp,
                sender,
            )
        )
        logger.info(
            f"Updated OEV overlay of {oev_proxy} for 0x{data_feed_id.hex()}: "
            f"value={updated_value} timestamp={timestamp} bid={value}"
        )

    @external
    def withdraw(self, oev_proxy: str, *, sender: str) -> None:
        """Pay the escrowed bids of a proxy out to its announced beneficiary.

        :param oev_proxy: Proxy whose escrow is withdrawn.
        :param sender: Anyone.
        :raises InvalidArgumentError: If the proxy announces no beneficiary or
            a zero one.
        :raises ResourceError: If the escrow is empty or the transfer is rejected.
        """
        oev_proxy = Web3.to_checksum_address(oev_proxy)
        proxy = self.ledger.account(oev_proxy)
        if proxy is None or not hasattr(proxy, "oev_beneficiary"):
            raise InvalidArgumentError("OEV proxy does not announce beneficiary")
        beneficiary = proxy.oev_beneficiary()
        if beneficiary == ZERO_ADDRESS:
            raise InvalidArgumentError("Beneficiary address zero")
        balance = self.storage.oev_proxy_to_balance.get(oev_proxy, 0)
        if balance == 0:
            raise ResourceError("OEV proxy balance zero")

        self.storage.oev_proxy_to_balance[oev_proxy] = 0
        if not self.ledger.transfer(self.address, beneficiary, balance):
            raise ResourceError("Withdrawal reverted")
        self.ledger.emit(
            Withdrew(proxy=oev_proxy, beneficiary=beneficiary, amount=balance, sender=sender)
        )
        logger.info(f"Withdrew {balance} escrowed for {oev_proxy} to {beneficiary}")

    # Reads

    def oev_proxy_to_id_to_data_feed(self, oev_proxy: str, data_feed_id: bytes) -> DataFeed:
        """Get the overlay entry of a proxy, zero-valued if never updated."""
        overlay = self.storage.oev_proxy_to_id_to_data_feed.get(
            Web3.to_checksum_address(oev_proxy), {}
        )
        return overlay.get(data_feed_id, DataFeed())

    def oev_proxy_to_balance(self, oev_proxy: str) -> int:
        """Get the escrowed bid total of a proxy."""
        return self.storage.oev_proxy_to_balance.get(Web3.to_checksum_address(oev_proxy), 0)

    def read_data_feed_with_id_as_oev_proxy(self, oev_proxy: str, data_feed_id: bytes) -> DataFeed:
        """Read a data feed as a proxy sees it, preferring a newer overlay.

        :raises NotInitializedError: If neither the overlay nor the base data
            feed was ever updated.
        """
        overlay = self.oev_proxy_to_id_to_data_feed(oev_proxy, data_feed_id)
        base = self.data_feeds(data_feed_id)
        data_feed = overlay if overlay.timestamp > base.timestamp else base
        if not data_feed.is_initialized:
            raise NotInitializedError("Data feed not initialized")
        return data_feed

    def read_data_feed_with_dapi_name_as_oev_proxy(self, oev_proxy: str, dapi_name: bytes) -> DataFeed:
        """Read the data feed a dAPI name points at as a proxy sees it."""
        data_feed_id = self.resolve_dapi_name_hash(derive_dapi_name_hash(dapi_name))
        return self.read_data_feed_with_id_as_oev_proxy(oev_proxy, data_feed_id)
