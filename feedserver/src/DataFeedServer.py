"""DataFeedServer: Base store of Beacons, Beacon sets and dAPI names.

Anyone can submit signed data; the server only accepts it if the signature
recovers to the Airnode of the Beacon and the timestamp moves the Beacon
forward. Beacon sets are recomputed from the stored Beacons on demand.

Update validation order:
    1. Signature over keccak256(templateId, timestamp, data)
    2. Data decodes to an int224 value
    3. Timestamp is newer than the stored one
    4. Timestamp is at most TIMESTAMP_VALIDITY_WINDOW seconds in the future

.. code-block:: python

    >>> server = DataFeedServer(ledger, registry, "Api3ServerV1 admin", manager)
    >>> beacon_id = server.update_beacon_with_signed_data(
    ...     airnode.address, template_id, timestamp, data, signature, sender=anyone
    ... )
    >>> server.read_data_feed_with_id(beacon_id)
    DataFeed(value=1824970000, timestamp=1700000000)
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field

from .AccessControlRegistry import (
    DAPI_NAME_SETTER_ROLE_DESCRIPTION,
    AccessControlRegistry,
    RegistryAdminnedWithManager,
)
from .DataFeed import DataFeed
from .DataFeedIds import (
    ZERO_BYTES32,
    decode_data,
    derive_beacon_id,
    derive_beacon_set_id,
    derive_dapi_name_hash,
)
from .errors import (
    AccessDeniedError,
    InvalidArgumentError,
    NotInitializedError,
    StalenessError,
)
from .Events import SetDapiName, UpdatedBeaconSetWithBeacons, UpdatedBeaconWithSignedData
from .Ledger import Ledger, LedgerAccount, external
from .Median import aggregate
from .Multicall import SelfMulticall
from .SignatureVerifier import hash_signed_data, verify_signature

logger = logging.getLogger(__name__)

# Signed data may be timestamped at most this far past the block time
TIMESTAMP_VALIDITY_WINDOW = 3600


@dataclass
class DataFeedServerStorage:
    data_feeds: dict[bytes, DataFeed] = field(default_factory=dict)
    dapi_name_hash_to_data_feed_id: dict[bytes, bytes] = field(default_factory=dict)


class DataFeedServer(LedgerAccount, RegistryAdminnedWithManager, SelfMulticall):
    """Base data feed store.

    :ivar dapi_name_setter_role: Role allowed to set dAPI names.
    """

    def __init__(
        self,
        ledger: Ledger,
        access_control_registry: AccessControlRegistry,
        admin_role_description: str,
        manager: str,
        storage: DataFeedServerStorage | None = None,
    ) -> None:
        """Deploy the server.

        :param ledger: Ledger to deploy on.
        :param access_control_registry: Registry holding the roles.
        :param admin_role_description: Description of the server's admin role.
        :param manager: Manager address, holds every role.
        :param storage: Initial storage, used by subclasses that extend it.
        """
        self._init_roles(access_control_registry, admin_role_description, manager)
        self.dapi_name_setter_role = self._derive_role(DAPI_NAME_SETTER_ROLE_DESCRIPTION)
        super().__init__(ledger, storage if storage is not None else DataFeedServerStorage())

    # Updates

    @external
    def update_beacon_with_signed_data(
        self,
        airnode: str,
        template_id: bytes,
        timestamp: int,
        data: bytes,
        signature: bytes,
        *,
        sender: str,
    ) -> bytes:
        """Update a Beacon with data signed by its Airnode.

        :param airnode: Airnode address.
        :param template_id: Template ID.
        :param timestamp: Timestamp of the signed data.
        :param data: ABI-encoded int256 value.
        :param signature: Airnode signature.
        :param sender: Submitter, may be anyone.
        :returns: The Beacon ID.
        :raises SignatureError: If the signature is not from the Airnode.
        :raises DataError: If the data does not decode into an int224.
        :raises StalenessError: If the timestamp does not advance the Beacon
            or is too far in the future.
        """
        beacon_id = derive_beacon_id(airnode, template_id)
        verify_signature(airnode, hash_signed_data(template_id, timestamp, data), signature)
        value = decode_data(data)
        self._require_updates_timestamp(self.data_feeds(beacon_id), timestamp)
        self._require_valid_timestamp(timestamp)

        self.storage.data_feeds[beacon_id] = DataFeed(value=value, timestamp=timestamp)
        self.ledger.emit(
            UpdatedBeaconWithSignedData(
                beacon_id=beacon_id, value=value, timestamp=timestamp, sender=sender
            )
        )
        logger.info(f"Updated Beacon 0x{beacon_id.hex()}: value={value} timestamp={timestamp}")
        return beacon_id

    @external
    def update_beacon_set_with_beacons(self, beacon_ids: Sequence[bytes], *, sender: str) -> bytes:
        """Aggregate the stored Beacons into their Beacon set.

        :param beacon_ids: Member Beacon IDs, order significant.
        :param sender: Submitter, may be anyone.
        :returns: The Beacon set ID.
        :raises InvalidArgumentError: If fewer than two Beacons are given.
        :raises StalenessError: If the Beacon set would not change.
        """
        if len(beacon_ids) < 2:
            raise InvalidArgumentError("Specified less than two Beacons")
        updated = aggregate([self.data_feeds(beacon_id) for beacon_id in beacon_ids])
        beacon_set_id = derive_beacon_set_id(beacon_ids)
        if self.data_feeds(beacon_set_id) == updated:
            raise StalenessError("Does not update Beacon set")

        self.storage.data_feeds[beacon_set_id] = updated
        self.ledger.emit(
            UpdatedBeaconSetWithBeacons(
                beacon_set_id=beacon_set_id,
                value=updated.value,
                timestamp=updated.timestamp,
                sender=sender,
            )
        )
        logger.info(
            f"Updated Beacon set 0x{beacon_set_id.hex()} from {len(beacon_ids)} Beacons: "
            f"value={updated.value} timestamp={updated.timestamp}"
        )
        return beacon_set_id

    @external
    def set_dapi_name(self, dapi_name: bytes, data_feed_id: bytes, *, sender: str) -> None:
        """Point a dAPI name at a data feed, or clear it with a zero ID.

        :param dapi_name: 32-byte dAPI name.
        :param data_feed_id: Data feed ID, zero to unset.
        :param sender: Manager or dAPI name setter.
        :raises InvalidArgumentError: If the dAPI name is zero.
        :raises AccessDeniedError: If the sender may not set dAPI names.
        """
        if dapi_name == ZERO_BYTES32:
            raise InvalidArgumentError("dAPI name zero")
        if not self._has_role_or_is_manager(self.dapi_name_setter_role, sender):
            raise AccessDeniedError("Sender cannot set dAPI name")

        dapi_name_hash = derive_dapi_name_hash(dapi_name)
        if data_feed_id == ZERO_BYTES32:
            self.storage.dapi_name_hash_to_data_feed_id.pop(dapi_name_hash, None)
        else:
            self.storage.dapi_name_hash_to_data_feed_id[dapi_name_hash] = data_feed_id
        self.ledger.emit(SetDapiName(data_feed_id=data_feed_id, dapi_name=dapi_name, sender=sender))
        logger.info(f"Set dAPI name 0x{dapi_name.hex()} to 0x{data_feed_id.hex()}")

    # Reads

    def data_feeds(self, data_feed_id: bytes) -> DataFeed:
        """Get the stored data feed, zero-valued if never updated."""
        return self.storage.data_feeds.get(data_feed_id, DataFeed())

    def dapi_name_hash_to_data_feed_id(self, dapi_name_hash: bytes) -> bytes:
        """Get the data feed ID a dAPI name hash points at, zero if unset."""
        return self.storage.dapi_name_hash_to_data_feed_id.get(dapi_name_hash, ZERO_BYTES32)

    def dapi_name_to_data_feed_id(self, dapi_name: bytes) -> bytes:
        """Get the data feed ID a dAPI name points at, zero if unset."""
        return self.dapi_name_hash_to_data_feed_id(derive_dapi_name_hash(dapi_name))

    def resolve_dapi_name_hash(self, dapi_name_hash: bytes) -> bytes:
        """Get the data feed ID a dAPI name hash points at.

        :raises NotInitializedError: If the dAPI name is not set.
        """
        data_feed_id = self.dapi_name_hash_to_data_feed_id(dapi_name_hash)
        if data_feed_id == ZERO_BYTES32:
            raise NotInitializedError("dAPI name not set")
        return data_feed_id

    def read_data_feed_with_id(self, data_feed_id: bytes) -> DataFeed:
        """Read an initialized data feed.

        :raises NotInitializedError: If the data feed was never updated.
        """
        data_feed = self.data_feeds(data_feed_id)
        if not data_feed.is_initialized:
            raise NotInitializedError("Data feed not initialized")
        return data_feed

    def read_data_feed_with_dapi_name_hash(self, dapi_name_hash: bytes) -> DataFeed:
        """Read the data feed a dAPI name hash points at.

        :raises NotInitializedError: If the dAPI name is not set or its data
            feed was never updated.
        """
        return self.read_data_feed_with_id(self.resolve_dapi_name_hash(dapi_name_hash))

    def read_data_feed_with_dapi_name(self, dapi_name: bytes) -> DataFeed:
        """Read the data feed a dAPI name points at."""
        return self.read_data_feed_with_dapi_name_hash(derive_dapi_name_hash(dapi_name))

    # Validation

    def _require_valid_timestamp(self, timestamp: int) -> None:
        if timestamp > self.ledger.timestamp + TIMESTAMP_VALIDITY_WINDOW:
            raise StalenessError("Timestamp not valid")

    @staticmethod
    def _require_updates_timestamp(stored: DataFeed, timestamp: int) -> None:
        if timestamp <= stored.timestamp:
            raise StalenessError("Does not update timestamp")
