"""Proxies: Consumer-facing readers of a single data feed.

A dApp reads one feed through one proxy. The legacy OEV proxies read through
their own OEV overlay on an :class:`OevDataFeedServer` and announce who the
escrowed bids for their overlay are paid to. :class:`DappReaderProxy` reads
a dAPI as one dApp sees it through an :class:`OevExtension`.
"""

from __future__ import annotations

from web3 import Web3

from .DataFeed import DataFeed
from .DataFeedIds import ZERO_BYTES32
from .errors import InvalidArgumentError
from .Ledger import ZERO_ADDRESS, Ledger, LedgerAccount
from .OevDataFeedServer import OevDataFeedServer
from .OevExtension import OevExtension


class DataFeedProxyWithOev(LedgerAccount):
    """Reads a data feed by ID through this proxy's OEV overlay."""

    def __init__(
        self,
        ledger: Ledger,
        server: OevDataFeedServer,
        data_feed_id: bytes,
        oev_beneficiary: str,
    ) -> None:
        super().__init__(ledger)
        self.server = server
        self.data_feed_id = data_feed_id
        self._oev_beneficiary = Web3.to_checksum_address(oev_beneficiary)

    def oev_beneficiary(self) -> str:
        """Address the escrowed OEV bids of this proxy are paid to."""
        return self._oev_beneficiary

    def read(self) -> DataFeed:
        return self.server.read_data_feed_with_id_as_oev_proxy(self.address, self.data_feed_id)


class DapiProxyWithOev(LedgerAccount):
    """Reads the data feed a dAPI name points at through this proxy's OEV overlay."""

    def __init__(
        self,
        ledger: Ledger,
        server: OevDataFeedServer,
        dapi_name: bytes,
        oev_beneficiary: str,
    ) -> None:
        super().__init__(ledger)
        self.server = server
        self.dapi_name = dapi_name
        self._oev_beneficiary = Web3.to_checksum_address(oev_beneficiary)

    def oev_beneficiary(self) -> str:
        """Address the escrowed OEV bids of this proxy are paid to."""
        return self._oev_beneficiary

    def read(self) -> DataFeed:
        return self.server.read_data_feed_with_dapi_name_as_oev_proxy(self.address, self.dapi_name)


class DappReaderProxy(LedgerAccount):
    """Reads a dAPI for one dApp, including that dApp's OEV overlay.

    Exposes the aggregator-style ``latest_answer``/``latest_timestamp`` pair
    most lending protocols integrate against.
    """

    def __init__(
        self, ledger: Ledger, extension: OevExtension, dapi_name: bytes, dapp_id: int
    ) -> None:
        if dapi_name == ZERO_BYTES32:
            raise InvalidArgumentError("dAPI name zero")
        if dapp_id == 0:
            raise InvalidArgumentError("dApp ID zero")
        super().__init__(ledger)
        self.extension = extension
        self.dapi_name = dapi_name
        self.dapp_id = dapp_id

    def oev_beneficiary(self) -> str:
        """dApp OEV proceeds are withdrawn from the extension, not per proxy."""
        return ZERO_ADDRESS

    def read(self) -> DataFeed:
        return self.extension.read_data_feed_with_dapi_name_and_dapp_id(self.dapp_id, self.dapi_name)

    def latest_answer(self) -> int:
        return self.read().value

    def latest_timestamp(self) -> int:
        return self.read().timestamp
