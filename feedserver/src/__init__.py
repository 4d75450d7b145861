"""
Signed Data Feed Server - On-Ledger Feed Registry Module

This module provides the data feed contracts and their execution environment:
- DataFeedServer: Beacons, Beacon sets and dAPI names from signed data
- OevDataFeedServer: Per-proxy OEV overlays with escrowed bids
- OevExtension: Per-dApp OEV auctions with atomic pay-then-update
- Median: Median aggregation with integer rounding toward zero
- SignatureVerifier: Domain-separated message hashes and signer recovery
- Ledger: In-process accounts, balances, events and all-or-nothing calls
"""

from .AccessControlRegistry import AccessControlRegistry, derive_role, derive_root_role
from .DataFeed import DataFeed
from .DataFeedServer import TIMESTAMP_VALIDITY_WINDOW, DataFeedServer
from .Ledger import DEFAULT_CHAIN_ID, ZERO_ADDRESS, Call, Ledger, LedgerAccount
from .Median import aggregate, average, median
from .OevDataFeedServer import OevDataFeedServer
from .OevExtension import OevExtension, SignedData, UpdateAllowance
from .OevSearcher import OevSearcher
from .Proxies import DapiProxyWithOev, DappReaderProxy, DataFeedProxyWithOev

__all__ = [
    "AccessControlRegistry",
    "Call",
    "DEFAULT_CHAIN_ID",
    "DapiProxyWithOev",
    "DappReaderProxy",
    "DataFeed",
    "DataFeedProxyWithOev",
    "DataFeedServer",
    "Ledger",
    "LedgerAccount",
    "OevDataFeedServer",
    "OevExtension",
    "OevSearcher",
    "SignedData",
    "TIMESTAMP_VALIDITY_WINDOW",
    "UpdateAllowance",
    "ZERO_ADDRESS",
    "aggregate",
    "average",
    "derive_role",
    "derive_root_role",
    "median",
]
