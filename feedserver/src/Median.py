"""Median: Integer median and average used to aggregate Beacons into Beacon sets.

Algorithm:
    1. Sort a copy of the values
    2. Odd length: return the middle element
    3. Even length: return the average of the two middle elements

The average is computed on the exact sum and halved toward zero, so
``average(-1, 0) == 0`` and ``average(x, x) == x`` even at the int256 limits.

.. code-block:: python

    >>> median([100, 80, 120])
    100
    >>> median([-3, -2])
    -2
    >>> average(2**255 - 1, 2**255 - 1) == 2**255 - 1
    True
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence

from .DataFeed import DataFeed


def average(x: int, y: int) -> int:
    """Average two integers, rounding toward zero.

    :param x: First value.
    :param y: Second value.
    :returns: ``(x + y) / 2`` with the magnitude floored and the sign kept.

    .. code-block:: python

        >>> average(-2, 1)
        0
        >>> average(3, 4)
        3
    """
    total = x + y
    half = abs(total) // 2
    return half if total >= 0 else -half


def median(values: Iterable[int]) -> int:
    """Compute the median of a list of integers.

    :param values: Values to aggregate, in any order.
    :returns: The median, with even-length inputs averaged toward zero.
    :raises ValueError: If no values are given.
    """
    ordered = sorted(values)
    if not ordered:
        raise ValueError("median of empty sequence")

    mid = len(ordered) // 2
    if len(ordered) % 2 == 1:
        return ordered[mid]
    return average(ordered[mid - 1], ordered[mid])


def aggregate(feeds: Sequence[DataFeed]) -> DataFeed:
    """Aggregate data feeds into one by taking the median value and timestamp.

    Values and timestamps are aggregated independently, so the resulting
    pair need not correspond to any single input.

    :param feeds: Member data feeds.
    :returns: The aggregated data feed.
    """
    return DataFeed(
        value=median(feed.value for feed in feeds),
        timestamp=median(feed.timestamp for feed in feeds),
    )
