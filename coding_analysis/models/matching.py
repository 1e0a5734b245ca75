"""Response matching flags and the payload used to read/replace them."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, Field


class ResponseMatchingFlag(str, Enum):
    NO_AGGREGATION = "NO_AGGREGATION"
    IGNORE_CASE = "IGNORE_CASE"
    IGNORE_WHITESPACE = "IGNORE_WHITESPACE"


class MatchingModePayload(BaseModel):
    flags: list[ResponseMatchingFlag] = Field(default_factory=list)


__all__ = ["ResponseMatchingFlag", "MatchingModePayload"]
