from __future__ import annotations

import enum

from pydantic import BaseModel, ConfigDict


class MatchMethod(str, enum.Enum):
    EXACT = "exact"
    ALIAS = "alias"
    FUZZY_CONTAINS = "fuzzy-contains"
    FUZZY_TOKENS = "fuzzy-tokens"
    NONE = "none"


class MatchResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    property_id: int | str | None = None
    matched_name: str | None = None
    score: int = 0
    method: MatchMethod = MatchMethod.NONE

    @property
    def matched(self) -> bool:
        return self.property_id is not None


class MatchSuggestion(BaseModel):
    model_config = ConfigDict(frozen=True)

    property_id: int | str
    name: str
    score: int
    method: MatchMethod


NO_MATCH = MatchResult()
