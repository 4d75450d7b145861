"""SignatureVerifier: Domain-separated message hashes and signer recovery.

Each protocol signs a different packed hash so that a signature produced for
one purpose can never be replayed for another:

    base update:        keccak256(templateId, timestamp, data)
    legacy OEV update:  keccak256(keccak256(chainId, server, oevProxy, dataFeedId,
                                            updateId, timestamp, data, searcher,
                                            bidAmount), templateId)
    dApp OEV bid:       keccak256(chainId, dappId, updater, bidAmount, cutOff)
    dApp OEV update:    keccak256(keccak256(templateId), timestamp, data)

All hashes are signed as EIP-191 "Ethereum Signed Message" payloads, which is
what ``eth_account`` produces for ``encode_defunct(primitive=hash)``.

.. code-block:: python

    >>> from eth_account import Account
    >>> airnode = Account.create()
    >>> message_hash = hash_signed_data(b"\\x01" * 32, 1700000000, b"\\x00" * 32)
    >>> signature = sign_hash(airnode, message_hash)
    >>> recover_signer(message_hash, signature) == airnode.address
    True
"""

from __future__ import annotations

from eth_account import Account
from eth_account.messages import encode_defunct
from eth_account.signers.local import LocalAccount
from eth_keys.exceptions import BadSignature
from eth_utils import ValidationError
from web3 import Web3

from .errors import SignatureError


def hash_signed_data(template_id: bytes, timestamp: int, data: bytes) -> bytes:
    """Hash signed data for a base Beacon update.

    :param template_id: 32-byte template ID.
    :param timestamp: Timestamp of the observation.
    :param data: Encoded observation.
    :returns: 32-byte message hash.
    """
    return bytes(
        Web3.solidity_keccak(
            ["bytes32", "uint256", "bytes"], [template_id, timestamp, data]
        )
    )


def hash_oev_update(
    chain_id: int,
    server: str,
    oev_proxy: str,
    data_feed_id: bytes,
    update_id: bytes,
    timestamp: int,
    data: bytes,
    searcher: str,
    bid_amount: int,
) -> bytes:
    """Hash the auction context of a legacy OEV proxy update.

    Binding the chain, server, proxy, update ID, searcher and bid amount
    prevents the resulting signatures from being reused in any other context.

    :returns: 32-byte OEV update hash.
    """
    return bytes(
        Web3.solidity_keccak(
            [
                "uint256",
                "address",
                "address",
                "bytes32",
                "bytes32",
                "uint256",
                "bytes",
                "address",
                "uint256",
            ],
            [
                chain_id,
                Web3.to_checksum_address(server),
                Web3.to_checksum_address(oev_proxy),
                data_feed_id,
                update_id,
                timestamp,
                data,
                Web3.to_checksum_address(searcher),
                bid_amount,
            ],
        )
    )


def hash_oev_signed_data(oev_update_hash: bytes, template_id: bytes) -> bytes:
    """Hash what a single Airnode signs for a legacy OEV proxy update.

    :param oev_update_hash: Hash returned by :func:`hash_oev_update`.
    :param template_id: 32-byte template ID of the signing Beacon.
    :returns: 32-byte message hash.
    """
    return bytes(
        Web3.solidity_keccak(["bytes32", "bytes32"], [oev_update_hash, template_id])
    )


def hash_oev_bid(
    chain_id: int, dapp_id: int, updater: str, bid_amount: int, cut_off: int
) -> bytes:
    """Hash a dApp OEV bid as signed by the auctioneer.

    :param chain_id: Chain ID.
    :param dapp_id: dApp ID the bid is for.
    :param updater: Address that will be allowed to update.
    :param bid_amount: Amount the updater must pay.
    :param cut_off: Latest signed data timestamp the updater may use.
    :returns: 32-byte message hash.
    """
    return bytes(
        Web3.solidity_keccak(
            ["uint256", "uint256", "address", "uint256", "uint32"],
            [chain_id, dapp_id, Web3.to_checksum_address(updater), bid_amount, cut_off],
        )
    )


def hash_dapp_oev_signed_data(template_id: bytes, timestamp: int, data: bytes) -> bytes:
    """Hash signed data for a dApp OEV update.

    The template ID is hashed once more so that these signatures cannot be
    submitted as base updates.

    :param template_id: 32-byte template ID.
    :param timestamp: Timestamp of the observation.
    :param data: Encoded observation.
    :returns: 32-byte message hash.
    """
    return hash_signed_data(bytes(Web3.keccak(template_id)), timestamp, data)


def recover_signer(message_hash: bytes, signature: bytes) -> str:
    """Recover the address that signed an EIP-191 message hash.

    :param message_hash: 32-byte hash that was signed.
    :param signature: 65-byte signature.
    :returns: Checksum address of the signer.
    :raises SignatureError: If the signature is malformed.
    """
    if not signature:
        raise SignatureError("Signature mismatch")
    try:
        return Account.recover_message(
            encode_defunct(primitive=message_hash), signature=signature
        )
    except (ValueError, IndexError, BadSignature, ValidationError) as exc:
        raise SignatureError("Signature mismatch") from exc


def verify_signature(expected_signer: str, message_hash: bytes, signature: bytes) -> None:
    """Require that a signature over the hash recovers to the expected signer.

    :param expected_signer: Address expected to have signed.
    :param message_hash: 32-byte hash that was signed.
    :param signature: 65-byte signature.
    :raises SignatureError: If the signature is malformed or from another signer.
    """
    if recover_signer(message_hash, signature) != Web3.to_checksum_address(expected_signer):
        raise SignatureError("Signature mismatch")


def sign_hash(signer: LocalAccount | str | bytes, message_hash: bytes) -> bytes:
    """Sign a 32-byte hash as an EIP-191 message.

    :param signer: Local account or its private key.
    :param message_hash: Hash to sign.
    :returns: 65-byte signature.
    """
    account = signer if isinstance(signer, LocalAccount) else Account.from_key(signer)
    signed = account.sign_message(encode_defunct(primitive=message_hash))
    return bytes(signed.signature)


def sign_data(
    signer: LocalAccount | str | bytes, template_id: bytes, timestamp: int, data: bytes
) -> bytes:
    """Sign data for a base Beacon update."""
    return sign_hash(signer, hash_signed_data(template_id, timestamp, data))


def sign_dapp_oev_data(
    signer: LocalAccount | str | bytes, template_id: bytes, timestamp: int, data: bytes
) -> bytes:
    """Sign data for a dApp OEV update."""
    return sign_hash(signer, hash_dapp_oev_signed_data(template_id, timestamp, data))


def sign_oev_data(
    signer: LocalAccount | str | bytes, oev_update_hash: bytes, template_id: bytes
) -> bytes:
    """Sign a legacy OEV proxy update for one Beacon."""
    return sign_hash(signer, hash_oev_signed_data(oev_update_hash, template_id))


def sign_oev_bid(
    signer: LocalAccount | str | bytes,
    chain_id: int,
    dapp_id: int,
    updater: str,
    bid_amount: int,
    cut_off: int,
) -> bytes:
    """Sign a dApp OEV bid as the auctioneer."""
    return sign_hash(signer, hash_oev_bid(chain_id, dapp_id, updater, bid_amount, cut_off))
