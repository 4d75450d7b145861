"""Shared fixtures for the feed server tests.

``deployment`` builds a fresh ledger with a role registry, an OEV data feed
server with three Beacons, an OEV extension and funded accounts for every
role. Keys are deterministic so failures are reproducible.
"""

from dataclasses import dataclass, field

import pytest
from eth_account import Account
from eth_account.signers.local import LocalAccount

from feedserver.src.AccessControlRegistry import (
    AUCTIONEER_ROLE_DESCRIPTION,
    DAPI_NAME_SETTER_ROLE_DESCRIPTION,
    WITHDRAWER_ROLE_DESCRIPTION,
    AccessControlRegistry,
    derive_root_role,
)
from feedserver.src.DataFeedIds import (
    derive_beacon_id,
    derive_beacon_set_id,
    derive_template_id,
    encode_data,
)
from feedserver.src.Ledger import Ledger
from feedserver.src.OevDataFeedServer import OevDataFeedServer
from feedserver.src.OevExtension import OevExtension, SignedData
from feedserver.src.SignatureVerifier import sign_dapp_oev_data, sign_data, sign_oev_bid

CHAIN_ID = 31337
START_TIMESTAMP = 1_700_000_000
ONE_ETHER = 10**18
SERVER_ADMIN_ROLE_DESCRIPTION = "Api3ServerV1 admin"
EXTENSION_ADMIN_ROLE_DESCRIPTION = "Api3ServerV1OevExtension admin"


def make_account(index: int) -> LocalAccount:
    """Deterministic account with private key ``index``."""
    return Account.from_key(index.to_bytes(32, "big"))


@dataclass
class Deployment:
    ledger: Ledger
    registry: AccessControlRegistry
    server: OevDataFeedServer
    extension: OevExtension
    manager: LocalAccount
    dapi_name_setter: LocalAccount
    auctioneer: LocalAccount
    withdrawer: LocalAccount
    updater: LocalAccount
    random_person: LocalAccount
    airnodes: list[LocalAccount] = field(default_factory=list)
    template_ids: list[bytes] = field(default_factory=list)

    @property
    def beacon_ids(self) -> list[bytes]:
        return [
            derive_beacon_id(airnode.address, template_id)
            for airnode, template_id in zip(self.airnodes, self.template_ids)
        ]

    @property
    def beacon_set_id(self) -> bytes:
        return derive_beacon_set_id(self.beacon_ids)

    def update_beacon(self, index: int, value: int, timestamp: int) -> bytes:
        """Update a base Beacon with properly signed data."""
        data = encode_data(value)
        signature = sign_data(self.airnodes[index], self.template_ids[index], timestamp, data)
        return self.server.update_beacon_with_signed_data(
            self.airnodes[index].address,
            self.template_ids[index],
            timestamp,
            data,
            signature,
            sender=self.random_person.address,
        )

    def dapp_signed_data(self, index: int, value: int, timestamp: int) -> SignedData:
        """Signed data for a dApp OEV overlay update."""
        data = encode_data(value)
        return SignedData(
            airnode=self.airnodes[index].address,
            template_id=self.template_ids[index],
            timestamp=timestamp,
            data=data,
            signature=sign_dapp_oev_data(
                self.airnodes[index], self.template_ids[index], timestamp, data
            ),
        )

    def abstaining_data(self, index: int, timestamp: int = 0) -> SignedData:
        return SignedData(
            airnode=self.airnodes[index].address,
            template_id=self.template_ids[index],
            timestamp=timestamp,
        )

    def bid_signature(self, dapp_id: int, updater: str, bid_amount: int, cut_off: int) -> bytes:
        return sign_oev_bid(self.auctioneer, CHAIN_ID, dapp_id, updater, bid_amount, cut_off)

    def pay_bid(
        self, dapp_id: int, cut_off: int, bid_amount: int = ONE_ETHER, updater: str | None = None
    ) -> None:
        """Pay a bid from an externally owned updater with the bid amount attached."""
        updater = updater or self.updater.address
        self.extension.pay_oev_bid(
            dapp_id,
            bid_amount,
            cut_off,
            self.bid_signature(dapp_id, updater, bid_amount, cut_off),
            sender=updater,
            value=bid_amount,
        )


@pytest.fixture
def deployment() -> Deployment:
    """A fresh deployment at START_TIMESTAMP with every role assigned."""
    ledger = Ledger(chain_id=CHAIN_ID, timestamp=START_TIMESTAMP)
    registry = AccessControlRegistry(ledger)

    manager = make_account(1)
    dapi_name_setter = make_account(2)
    auctioneer = make_account(3)
    withdrawer = make_account(4)
    updater = make_account(5)
    random_person = make_account(6)
    airnodes = [make_account(100 + i) for i in range(3)]
    template_ids = [
        derive_template_id(bytes([i + 1]) * 32, f"ETH/USD source {i}".encode())
        for i in range(3)
    ]

    root_role = derive_root_role(manager.address)
    registry.initialize_manager(manager.address, sender=manager.address)
    server_admin_role = registry.initialize_role_and_grant_to_sender(
        root_role, SERVER_ADMIN_ROLE_DESCRIPTION, sender=manager.address
    )
    dapi_name_setter_role = registry.initialize_role_and_grant_to_sender(
        server_admin_role, DAPI_NAME_SETTER_ROLE_DESCRIPTION, sender=manager.address
    )
    registry.grant_role(dapi_name_setter_role, dapi_name_setter.address, sender=manager.address)

    extension_admin_role = registry.initialize_role_and_grant_to_sender(
        root_role, EXTENSION_ADMIN_ROLE_DESCRIPTION, sender=manager.address
    )
    auctioneer_role = registry.initialize_role_and_grant_to_sender(
        extension_admin_role, AUCTIONEER_ROLE_DESCRIPTION, sender=manager.address
    )
    registry.grant_role(auctioneer_role, auctioneer.address, sender=manager.address)
    withdrawer_role = registry.initialize_role_and_grant_to_sender(
        extension_admin_role, WITHDRAWER_ROLE_DESCRIPTION, sender=manager.address
    )
    registry.grant_role(withdrawer_role, withdrawer.address, sender=manager.address)

    server = OevDataFeedServer(ledger, registry, SERVER_ADMIN_ROLE_DESCRIPTION, manager.address)
    extension = OevExtension(
        ledger, registry, EXTENSION_ADMIN_ROLE_DESCRIPTION, manager.address, server
    )

    for account in (updater, random_person):
        ledger.mint(account.address, 100 * ONE_ETHER)

    return Deployment(
        ledger=ledger,
        registry=registry,
        server=server,
        extension=extension,
        manager=manager,
        dapi_name_setter=dapi_name_setter,
        auctioneer=auctioneer,
        withdrawer=withdrawer,
        updater=updater,
        random_person=random_person,
        airnodes=airnodes,
        template_ids=template_ids,
    )
