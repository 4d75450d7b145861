"""Events emitted by the feed server contracts.

Events are appended to :attr:`Ledger.events` and rolled back together with
the rest of the state when a call fails.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class UpdatedBeaconWithSignedData:
    beacon_id: bytes
    value: int
    timestamp: int
    sender: str


@dataclass(frozen=True)
class UpdatedBeaconSetWithBeacons:
    beacon_set_id: bytes
    value: int
    timestamp: int
    sender: str


@dataclass(frozen=True)
class SetDapiName:
    data_feed_id: bytes
    dapi_name: bytes
    sender: str


@dataclass(frozen=True)
class UpdatedOevProxyBeaconWithSignedData:
    beacon_id: bytes
    proxy: str
    update_id: bytes
    value: int
    timestamp: int
    sender: str


@dataclass(frozen=True)
class UpdatedOevProxyBeaconSetWithSignedData:
    beacon_set_id: bytes
    proxy: str
    update_id: bytes
    value: int
    timestamp: int
    sender: str


@dataclass(frozen=True)
class Withdrew:
    """Escrow of a legacy OEV proxy paid out to its beneficiary."""

    proxy: str
    beneficiary: str
    amount: int
    sender: str


@dataclass(frozen=True)
class PaidOevBid:
    dapp_id: int
    bid_amount: int
    cut_off: int
    auctioneer: str
    sender: str


@dataclass(frozen=True)
class UpdatedDappOevDataFeed:
    dapp_id: int
    data_feed_id: bytes
    value: int
    timestamp: int
    sender: str


@dataclass(frozen=True)
class DappOevWithdrew:
    """Accumulated bid payments withdrawn from the dApp OEV extension."""

    recipient: str
    amount: int
    sender: str
