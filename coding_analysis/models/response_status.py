"""Response coding status codes.

Provides a simple constants container instead of an Enum; values are the
integers persisted in the `status`, `status_v1`, `status_v2` and `status_v3`
columns of the response table.
"""

from __future__ import annotations


class ResponseStatus:
    CODING_COMPLETE = 5
    CODING_INCOMPLETE = 8
    INTENDED_INCOMPLETE = 12
    # Round-1 status of a response collapsed into a duplicate group's
    # canonical occurrence. The status it held before is kept in
    # `status_v1_pre_aggregation` until revert.
    DUPLICATE_AGGREGATED = 13


AGGREGATED_MARKER = ResponseStatus.DUPLICATE_AGGREGATED


__all__ = ["ResponseStatus", "AGGREGATED_MARKER"]
