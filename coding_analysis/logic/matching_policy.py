"""Per-workspace response matching policy.

Supplies the ordered matching flags of a workspace, the pure value
normalization used for duplicate detection, and persistence of the chosen
aggregation threshold.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Iterable, List

from sqlalchemy.engine import Engine

from coding_analysis.logic.repository_settings import (
    AGGREGATION_THRESHOLD_KEY,
    MATCHING_MODE_KEY,
    get_setting,
    put_setting,
)
from coding_analysis.models.matching import ResponseMatchingFlag

logger = logging.getLogger(__name__)

_WHITESPACE_RE = re.compile(r"\s+")


def normalize_value(value: str | None, flags: Iterable[ResponseMatchingFlag]) -> str:
    """Return the comparison form of a raw response value.

    - None              -> ""
    - IGNORE_CASE       -> lowercased
    - IGNORE_WHITESPACE -> every whitespace run removed
    """
    if value is None:
        return ""
    active = set(flags)
    normalized = str(value)
    if ResponseMatchingFlag.IGNORE_CASE in active:
        normalized = normalized.lower()
    if ResponseMatchingFlag.IGNORE_WHITESPACE in active:
        normalized = _WHITESPACE_RE.sub("", normalized)
    return normalized


def _parse_flags(raw: object) -> List[ResponseMatchingFlag]:
    flags: List[ResponseMatchingFlag] = []
    if not isinstance(raw, list):
        return flags
    for item in raw:
        try:
            flag = ResponseMatchingFlag(str(item))
        except ValueError:
            logger.warning("matching_policy.unknown_flag flag=%s", item)
            continue
        if flag not in flags:
            flags.append(flag)
    return flags


class MatchingPolicyProvider:
    """Settings-backed matching policy for workspaces."""

    def __init__(self, engine: Engine | None = None) -> None:
        self.engine = engine

    def get_matching_flags(self, workspace_id: int) -> List[ResponseMatchingFlag]:
        content = get_setting(MATCHING_MODE_KEY.format(workspace_id=workspace_id), self.engine)
        if content is None:
            # Default: exact match (no flags)
            return []
        try:
            parsed = json.loads(content)
        except json.JSONDecodeError:
            logger.warning("matching_policy.invalid_setting workspace_id=%s", workspace_id)
            return []
        return _parse_flags(parsed.get("flags") if isinstance(parsed, dict) else None)

    def set_matching_flags(self, workspace_id: int, flags: Iterable[ResponseMatchingFlag]) -> List[ResponseMatchingFlag]:
        ordered = _parse_flags([ResponseMatchingFlag(f).value for f in flags])
        put_setting(
            MATCHING_MODE_KEY.format(workspace_id=workspace_id),
            json.dumps({"flags": [f.value for f in ordered]}),
            self.engine,
        )
        logger.info("matching_policy.flags_saved workspace_id=%s flags=%s", workspace_id, [f.value for f in ordered])
        return ordered

    def normalize(self, value: str | None, flags: Iterable[ResponseMatchingFlag]) -> str:
        return normalize_value(value, flags)

    def set_aggregation_threshold(self, workspace_id: int, threshold: int) -> None:
        put_setting(
            AGGREGATION_THRESHOLD_KEY.format(workspace_id=workspace_id),
            json.dumps({"threshold": int(threshold)}),
            self.engine,
        )
        logger.info("matching_policy.threshold_saved workspace_id=%s threshold=%s", workspace_id, threshold)

    def get_aggregation_threshold(self, workspace_id: int) -> int | None:
        content = get_setting(AGGREGATION_THRESHOLD_KEY.format(workspace_id=workspace_id), self.engine)
        if content is None:
            return None
        try:
            value = json.loads(content).get("threshold")
            return int(value) if value is not None else None
        except (json.JSONDecodeError, AttributeError, TypeError, ValueError):
            logger.warning("matching_policy.invalid_threshold workspace_id=%s", workspace_id)
            return None


__all__ = ["normalize_value", "MatchingPolicyProvider"]
