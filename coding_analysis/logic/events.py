"""Aggregation domain events.

Apply and revert publish one event each after their transaction commits.
Events are logged and kept in a bounded in-process buffer that the
test-support routes expose.
"""

from __future__ import annotations

import logging
import threading
from collections import deque
from typing import Any, Deque, Dict, List

from coding_analysis.logic.timestamps import format_timestamp

logger = logging.getLogger(__name__)

AGGREGATION_APPLIED = "aggregation.applied"
AGGREGATION_REVERTED = "aggregation.reverted"

_BUFFER_LIMIT = 500
_buffer: Deque[Dict[str, Any]] = deque(maxlen=_BUFFER_LIMIT)
_buffer_lock = threading.Lock()


def publish(event_type: str, payload: Dict[str, Any]) -> None:
    event = {"type": event_type, "payload": dict(payload), "published_at": format_timestamp()}
    logger.info("event.published type=%s payload=%s", event_type, payload)
    with _buffer_lock:
        _buffer.append(event)


def get_buffered_events(clear: bool = True) -> List[Dict[str, Any]]:
    """Snapshot of published events, oldest first; drains the buffer by default."""
    with _buffer_lock:
        snapshot = list(_buffer)
        if clear:
            _buffer.clear()
    return snapshot


def clear_events() -> None:
    with _buffer_lock:
        _buffer.clear()


__all__ = [
    "AGGREGATION_APPLIED",
    "AGGREGATION_REVERTED",
    "publish",
    "get_buffered_events",
    "clear_events",
]
