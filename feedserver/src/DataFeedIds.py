"""Data feed identity derivation and signed data encoding.

A Beacon is identified by the Airnode (signer) address and the template ID
it signs for. A Beacon set is identified by the ordered list of its Beacon
IDs, so the same Beacons in a different order form a different Beacon set:

    beaconId    = keccak256(abi.encodePacked(airnode, templateId))
    beaconSetId = keccak256(abi.encode(beaconIds))
    dapiNameHash = keccak256(abi.encodePacked(dapiName))

Signed data is a single ABI-encoded ``int256`` that must fit in ``int224``.

.. code-block:: python

    >>> data = encode_data(1824970000)
    >>> len(data)
    32
    >>> decode_data(data)
    1824970000
"""

from __future__ import annotations

from collections.abc import Sequence

from eth_abi import decode, encode
from web3 import Web3

from .DataFeed import INT224_MAX, INT224_MIN
from .errors import DataError

ZERO_BYTES32 = b"\x00" * 32


def derive_beacon_id(airnode: str, template_id: bytes) -> bytes:
    """Derive the Beacon ID from the Airnode address and template ID.

    :param airnode: Airnode address.
    :param template_id: 32-byte template ID.
    :returns: 32-byte Beacon ID.
    """
    return bytes(
        Web3.solidity_keccak(
            ["address", "bytes32"], [Web3.to_checksum_address(airnode), template_id]
        )
    )


def derive_beacon_set_id(beacon_ids: Sequence[bytes]) -> bytes:
    """Derive the Beacon set ID from the ordered Beacon IDs.

    :param beacon_ids: Member Beacon IDs, order significant.
    :returns: 32-byte Beacon set ID.
    """
    return bytes(Web3.keccak(encode(["bytes32[]"], [list(beacon_ids)])))


def derive_template_id(endpoint_id: bytes, parameters: bytes) -> bytes:
    """Derive a template ID from an endpoint ID and encoded parameters.

    :param endpoint_id: 32-byte endpoint ID.
    :param parameters: Encoded template parameters.
    :returns: 32-byte template ID.
    """
    return bytes(Web3.solidity_keccak(["bytes32", "bytes"], [endpoint_id, parameters]))


def encode_dapi_name(name: str) -> bytes:
    """Encode a human-readable dAPI name as a right-padded bytes32.

    :param name: dAPI name such as "ETH/USD".
    :returns: 32-byte dAPI name.
    :raises ValueError: If the name is longer than 32 bytes.

    .. code-block:: python

        >>> encode_dapi_name("ETH/USD")[:7]
        b'ETH/USD'
    """
    raw = name.encode("utf-8")
    if len(raw) > 32:
        raise ValueError(f"dAPI name '{name}' is longer than 32 bytes")
    return raw.ljust(32, b"\x00")


def derive_dapi_name_hash(dapi_name: bytes) -> bytes:
    """Hash a bytes32 dAPI name into the key used by the name registry.

    :param dapi_name: 32-byte dAPI name.
    :returns: 32-byte dAPI name hash.
    """
    return bytes(Web3.solidity_keccak(["bytes32"], [dapi_name]))


def to_bytes32(value: str | bytes) -> bytes:
    """Convert a hex string or bytes into exactly 32 bytes.

    :param value: 0x-prefixed hex string or raw bytes.
    :returns: 32-byte value.
    :raises ValueError: If the value is not 32 bytes long.
    """
    raw = Web3.to_bytes(hexstr=value) if isinstance(value, str) else bytes(value)
    if len(raw) != 32:
        raise ValueError(f"Expected 32 bytes, got {len(raw)}")
    return raw


def encode_data(value: int) -> bytes:
    """ABI-encode a feed value as int256.

    :param value: Value to encode.
    :returns: 32-byte encoded value.
    """
    return encode(["int256"], [value])


def decode_data(data: bytes) -> int:
    """Decode signed data into a feed value.

    :param data: ABI-encoded int256.
    :returns: The decoded value.
    :raises DataError: If the data is not 32 bytes or the value does not fit
        in int224.
    """
    if len(data) != 32:
        raise DataError("Data length not correct")
    (value,) = decode(["int256"], data)
    if not INT224_MIN <= value <= INT224_MAX:
        raise DataError("Value typecasting error")
    return value
