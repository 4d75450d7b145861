"""Exceptions raised by the feed server contracts.

Every failure aborts the whole call. The message of each exception is the
revert reason, so callers and tests can match on it directly.

.. code-block:: python

    >>> try:
    ...     raise StalenessError("Does not update timestamp")
    ... except FeedServerError as e:
    ...     str(e)
    'Does not update timestamp'
"""


class FeedServerError(Exception):
    """Base exception for all feed server errors."""

    pass


class SignatureError(FeedServerError):
    """Raised when a present signature does not recover to the expected signer."""

    pass


class StalenessError(FeedServerError):
    """Raised when a timestamp does not advance or falls outside its window."""

    pass


class IdentityMismatchError(FeedServerError):
    """Raised when a recomputed feed ID or caller does not match the claimed one."""

    pass


class QuorumError(FeedServerError):
    """Raised when too few signatures are present for a multi-Beacon update."""

    pass


class ResourceError(FeedServerError):
    """Raised on short payments, empty balances and rejected transfers."""

    pass


class DataError(FeedServerError):
    """Raised when signed data cannot be decoded into a feed value."""

    pass


class AccessDeniedError(FeedServerError):
    """Raised when the sender lacks the role required for an operation."""

    pass


class ReentrancyError(FeedServerError):
    """Raised when a guarded function is entered while already executing."""

    pass


class NotInitializedError(FeedServerError):
    """Raised when reading a data feed or dAPI name that was never set."""

    pass


class InvalidArgumentError(FeedServerError):
    """Raised for zero IDs, zero addresses and similar malformed arguments."""

    pass
