from __future__ import annotations

import math
import threading
from collections.abc import Iterable
from dataclasses import dataclass

from rental_intake.core.config import settings
from rental_intake.core.logging import get_logger, log_event
from rental_intake.modules.catalog.schemas import CatalogSnapshot, Property
from rental_intake.modules.matching.normalize import expand_abbreviations, normalize, tokens
from rental_intake.modules.matching.schemas import (
    NO_MATCH,
    MatchMethod,
    MatchResult,
    MatchSuggestion,
)

logger = get_logger(__name__)

EXACT_SCORE = 100
CONTAINS_CLOSE_SCORE = 90
CONTAINS_LOOSE_SCORE = 80
TOKEN_SCORE_CAP = 85

# Containment of very short strings ("t2", "rc") says nothing about the property.
_MIN_CONTAINS_LENGTH = 3
_CLOSE_LENGTH_RATIO = 0.75


@dataclass(frozen=True)
class _Form:
    text: str
    tokens: tuple[str, ...]


def _forms(raw: str | None) -> tuple[_Form, ...]:
    """The normalized text, plus its abbreviation-expanded variant when that differs."""
    text = normalize(raw)
    out = [_Form(text, tuple(tokens(text)))]
    expanded = expand_abbreviations(text)
    if expanded != text:
        out.append(_Form(expanded, tuple(tokens(expanded))))
    return tuple(out)


@dataclass(frozen=True)
class _Target:
    prop: Property
    forms: tuple[_Form, ...]
    is_alias: bool


def _build_targets(properties: Iterable[Property]) -> list[_Target]:
    out: list[_Target] = []
    for prop in properties:
        out.append(_Target(prop, _forms(prop.name), False))
        for alias in prop.aliases:
            out.append(_Target(prop, _forms(alias), True))
    return out


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _score_form(candidate: _Form, target: _Form, is_alias: bool) -> tuple[int, MatchMethod]:
    if not candidate.text or not target.text:
        return 0, MatchMethod.NONE

    if candidate.text == target.text:
        return EXACT_SCORE, MatchMethod.ALIAS if is_alias else MatchMethod.EXACT

    shorter, longer = sorted((len(candidate.text), len(target.text)))
    if shorter >= _MIN_CONTAINS_LENGTH and (
        candidate.text in target.text or target.text in candidate.text
    ):
        close = shorter / longer >= _CLOSE_LENGTH_RATIO
        score = CONTAINS_CLOSE_SCORE if close else CONTAINS_LOOSE_SCORE
        return score, MatchMethod.ALIAS if is_alias else MatchMethod.FUZZY_CONTAINS

    if candidate.tokens and target.tokens:
        overlap = sum(
            1
            for ct in candidate.tokens
            if any(ct in tt or tt in ct for tt in target.tokens)
        )
        if overlap:
            ratio = overlap / max(len(candidate.tokens), len(target.tokens))
            return _round_half_up(min(TOKEN_SCORE_CAP, ratio * 100)), MatchMethod.FUZZY_TOKENS

    return 0, MatchMethod.NONE


def _score(candidate: tuple[_Form, ...], target: _Target) -> tuple[int, MatchMethod]:
    # Plain forms are compared against each other, expanded forms against each other.
    best = (0, MatchMethod.NONE)
    pairs = ((candidate[0], target.forms[0]), (candidate[-1], target.forms[-1]))
    for cand_form, target_form in pairs:
        scored = _score_form(cand_form, target_form, target.is_alias)
        if scored[0] > best[0]:
            best = scored
    return best


def _best_match(candidate_raw: str | None, targets: list[_Target], threshold: int) -> MatchResult:
    candidate = _forms(candidate_raw)
    if not candidate[0].text:
        return NO_MATCH

    best: tuple[int, MatchMethod, Property] | None = None
    for target in targets:
        score, method = _score(candidate, target)
        if score <= 0:
            continue
        # Strictly greater: ties keep the earlier property (name before aliases).
        if best is None or score > best[0]:
            best = (score, method, target.prop)
            if score == EXACT_SCORE:
                break

    if best is None:
        return NO_MATCH

    score, method, prop = best
    return MatchResult(
        property_id=prop.id if score >= threshold else None,
        matched_name=prop.name,
        score=score,
        method=method,
    )


def _properties_of(catalog: CatalogSnapshot | Iterable[Property]) -> tuple[Property, ...]:
    if isinstance(catalog, CatalogSnapshot):
        return catalog.properties
    return tuple(catalog)


def match_property(
    candidate_raw: str | None,
    catalog: CatalogSnapshot | Iterable[Property],
    *,
    threshold: int | None = None,
) -> MatchResult:
    """
    Resolve a free-text property name against the catalog.

    Layers, in order: exact (100), containment (90 when lengths are close, else 80),
    token overlap (capped at 85). Containment only applies when the shorter string has
    at least three characters, which departs from the bare containment rule so that
    short codes such as "T2" do not hit every name holding them. Each layer also runs
    on the abbreviation-expanded forms ("Apt." as "apartamento"). The single best
    score across every name and alias wins; ties go to the earlier catalog entry.
    `property_id` is only populated when the score reaches `threshold`
    (default: settings.match_threshold).
    """
    if threshold is None:
        threshold = settings.match_threshold
    return _best_match(candidate_raw, _build_targets(_properties_of(catalog)), threshold)


def _suggest(
    candidate_raw: str | None, targets: list[_Target], *, threshold: int, limit: int
) -> list[MatchSuggestion]:
    candidate = _forms(candidate_raw)
    if not candidate[0].text:
        return []

    best_by_property: dict[int | str, tuple[int, int, MatchSuggestion]] = {}
    order: dict[int | str, int] = {}
    for target in targets:
        order.setdefault(target.prop.id, len(order))
        score, method = _score(candidate, target)
        if score < threshold or score <= 0:
            continue
        current = best_by_property.get(target.prop.id)
        if current is None or score > current[0]:
            best_by_property[target.prop.id] = (
                score,
                order[target.prop.id],
                MatchSuggestion(
                    property_id=target.prop.id, name=target.prop.name, score=score, method=method
                ),
            )

    ranked = sorted(best_by_property.values(), key=lambda x: (-x[0], x[1]))
    return [s for _, _, s in ranked[:limit]]


def suggest_properties(
    candidate_raw: str | None,
    catalog: CatalogSnapshot | Iterable[Property],
    *,
    threshold: int | None = None,
    limit: int = 3,
) -> list[MatchSuggestion]:
    """Diagnostic suggestions for an operator. Never used to assign a property."""
    if threshold is None:
        threshold = settings.match_suggestion_threshold
    return _suggest(
        candidate_raw, _build_targets(_properties_of(catalog)), threshold=threshold, limit=limit
    )


class PropertyMatcher:
    """Matcher bound to one catalog snapshot, memoizing results for the batch."""

    def __init__(
        self,
        catalog: CatalogSnapshot | Iterable[Property],
        *,
        threshold: int | None = None,
        suggestion_threshold: int | None = None,
    ) -> None:
        self._targets = _build_targets(_properties_of(catalog))
        self.threshold = settings.match_threshold if threshold is None else threshold
        self.suggestion_threshold = (
            settings.match_suggestion_threshold
            if suggestion_threshold is None
            else suggestion_threshold
        )
        self._memo: dict[str, MatchResult] = {}
        self._lock = threading.Lock()
        self.hits = 0
        self.misses = 0

    def match(self, candidate_raw: str | None) -> MatchResult:
        key = normalize(candidate_raw)
        with self._lock:
            cached = self._memo.get(key)
            if cached is not None:
                self.hits += 1
                return cached
        result = _best_match(key, self._targets, self.threshold)
        with self._lock:
            self._memo[key] = result
            self.misses += 1
        if not result.matched:
            log_event(
                logger,
                "matching.unmatched",
                candidate=candidate_raw,
                best_score=result.score,
                best_name=result.matched_name,
            )
        return result

    def suggest(self, candidate_raw: str | None, *, limit: int = 3) -> list[MatchSuggestion]:
        return _suggest(
            candidate_raw, self._targets, threshold=self.suggestion_threshold, limit=limit
        )
