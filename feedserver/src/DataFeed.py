"""DataFeed: The (value, timestamp) pair stored for every Beacon and Beacon set.

Values are signed integers in the 224-bit range and timestamps are unsigned
32-bit integers, mirroring the packed on-chain storage slot.

.. code-block:: python

    >>> feed = DataFeed(value=1824970000, timestamp=1700000000)
    >>> feed.is_initialized
    True
    >>> DataFeed().is_initialized
    False
"""

from __future__ import annotations

from dataclasses import dataclass

INT224_MIN = -(2**223)
INT224_MAX = 2**223 - 1
UINT32_MAX = 2**32 - 1


@dataclass(frozen=True)
class DataFeed:
    """A stored data feed reading.

    :ivar value: Signed 224-bit value.
    :ivar timestamp: Unix timestamp of the reading, 0 if never updated.
    """

    value: int = 0
    timestamp: int = 0

    def __post_init__(self) -> None:
        if not INT224_MIN <= self.value <= INT224_MAX:
            raise ValueError(f"value out of int224 range: {self.value}")
        if not 0 <= self.timestamp <= UINT32_MAX:
            raise ValueError(f"timestamp out of uint32 range: {self.timestamp}")

    @property
    def is_initialized(self) -> bool:
        """Check if the feed has ever been written."""
        return self.timestamp != 0
