"""
Specialty Matching Service

Resolves provider specialty labels to market rows and proposes mappings for
labels that do not resolve.

Resolution order (match_market_row):
1. Exact       - trimmed provider specialty equals the market specialty
2. Normalized  - normalize_specialty_key() of both sides are equal
3. Synonym     - user-curated synonym map, keyed by normalized or raw label
4. Missing     - nothing matched

Only market rows with all twelve benchmark values finite are eligible.

Similarity (specialty_similarity) combines token Jaccard, a difflib
SequenceMatcher ratio (down-weighted by 0.85, only for strings up to 40
characters) and a 0.92 containment score. Suggestions need at least the configured minimum score.
"""

import logging
import re
from difflib import SequenceMatcher
from typing import Dict, List, Optional, Sequence, Set

from tcc_engine.core.config import get_settings
from tcc_engine.models.enums import MatchStatus
from tcc_engine.models.schemas import (
    MarketMatch,
    MarketRow,
    ProviderRow,
    SpecialtySuggestion,
    SpecialtySuggestionResult,
)


logger = logging.getLogger(__name__)


CONTAINMENT_SCORE: float = 0.92
FUZZY_WEIGHT: float = 0.85
FUZZY_MAX_LENGTH: int = 40

_PUNCTUATION = re.compile(r"[^\w\s]")
_WHITESPACE = re.compile(r"\s+")
_TOKEN_SPLIT = re.compile(r"\s*[-_,/]\s*|\s+")


# =============================================================================
# Keys
# =============================================================================


def normalize_specialty_key(specialty: Optional[str]) -> str:
    """Lowercase, strip punctuation and collapse whitespace."""
    if not isinstance(specialty, str):
        return ""
    key = _PUNCTUATION.sub("", specialty.strip().lower())
    return _WHITESPACE.sub(" ", key).strip()


def resolve_synonym(specialty: str, synonym_map: Dict[str, str]) -> Optional[str]:
    """Synonym target for a provider specialty (normalized key first, then raw)."""
    raw = specialty.strip()
    return (
        synonym_map.get(normalize_specialty_key(raw))
        or synonym_map.get(raw)
        or synonym_map.get(raw.lower())
    )


def match_market_row(
    provider: ProviderRow,
    market_rows: Sequence[MarketRow],
    synonym_map: Optional[Dict[str, str]] = None,
) -> MarketMatch:
    """
    Match a provider to a market row by specialty.

    Returns:
        MarketMatch with the status and the matched row (None when Missing)
    """
    synonym_map = synonym_map or {}
    raw = (provider.specialty or "").strip()
    if not raw:
        return MarketMatch(status=MatchStatus.MISSING)

    valid = [m for m in market_rows if m.is_valid()]

    for m in valid:
        if m.specialty.strip() == raw:
            return MarketMatch(status=MatchStatus.EXACT, marketRow=m)

    provider_key = normalize_specialty_key(raw)
    for m in valid:
        if normalize_specialty_key(m.specialty) == provider_key:
            return MarketMatch(status=MatchStatus.NORMALIZED, marketRow=m)

    target = resolve_synonym(raw, synonym_map)
    if target:
        target_key = normalize_specialty_key(target)
        for m in valid:
            if normalize_specialty_key(m.specialty) == target_key:
                return MarketMatch(status=MatchStatus.SYNONYM, marketRow=m)

    return MarketMatch(status=MatchStatus.MISSING)


# =============================================================================
# Similarity
# =============================================================================


def _similarity_text(s: str) -> str:
    s = _WHITESPACE.sub(" ", s.lower().strip())
    return re.sub(r"[^\w\s-]", "", s)


def _token_set(s: str) -> Set[str]:
    return {t for t in _TOKEN_SPLIT.split(_similarity_text(s)) if t}


def _jaccard(a: Set[str], b: Set[str]) -> float:
    if not a and not b:
        return 1.0
    inter = len(a & b)
    union = len(a) + len(b) - inter
    return inter / union if union else 0.0


def fuzzy_ratio(a: str, b: str) -> float:
    """Character-level match ratio in [0, 1] (difflib SequenceMatcher)."""
    return SequenceMatcher(None, a, b).ratio()


def specialty_similarity(provider_specialty: str, market_specialty: str) -> float:
    """Similarity in [0, 1]; 1 for identical normalized labels."""
    p = _similarity_text(provider_specialty)
    m = _similarity_text(market_specialty)
    if p == m:
        return 1.0
    if not p or not m:
        return 0.0
    if p in m or m in p:
        return CONTAINMENT_SCORE
    jac = _jaccard(_token_set(provider_specialty), _token_set(market_specialty))
    ratio = fuzzy_ratio(p, m) if max(len(p), len(m)) <= FUZZY_MAX_LENGTH else 0.0
    return max(jac, ratio * FUZZY_WEIGHT)


def suggest_market_specialties(
    provider_specialties: Sequence[str],
    market_specialties: Sequence[str],
    min_score: Optional[float] = None,
    limit: int = 3,
) -> List[SpecialtySuggestionResult]:
    """
    Ranked market candidates for each provider specialty.

    Candidates below min_score are dropped; ties keep market order.
    """
    threshold = get_settings().specialty_suggestion_min_score if min_score is None else min_score
    results = []
    for prov in provider_specialties:
        scored = [
            SpecialtySuggestion(specialty=m, score=specialty_similarity(prov, m))
            for m in market_specialties
        ]
        scored = [s for s in scored if s.score >= threshold]
        scored.sort(key=lambda s: -s.score)
        results.append(SpecialtySuggestionResult(providerSpecialty=prov, suggestions=scored[:limit]))
    return results


def suggest_specialty_mappings(
    provider_specialties: Sequence[str],
    market_specialties: Sequence[str],
    min_score: Optional[float] = None,
) -> Dict[str, str]:
    """
    One-to-one provider -> market mapping proposal.

    Each market specialty is proposed for at most one provider specialty;
    stronger matches claim their market first.
    """
    if not market_specialties:
        return {}
    threshold = get_settings().specialty_suggestion_min_score if min_score is None else min_score

    candidates = []
    for prov in provider_specialties:
        best_market, best_score = "", 0.0
        for market in market_specialties:
            score = specialty_similarity(prov, market)
            if score > best_score and score >= threshold:
                best_market, best_score = market, score
        candidates.append((prov, best_market, best_score))

    candidates.sort(key=lambda c: -c[2])
    used: Set[str] = set()
    mapping: Dict[str, str] = {}
    for prov, market, _score in candidates:
        if market and market not in used:
            mapping[prov] = market
            used.add(market)
    logger.debug(f"Suggested {len(mapping)} specialty mappings for {len(provider_specialties)} labels")
    return mapping


__all__ = [
    'normalize_specialty_key',
    'resolve_synonym',
    'match_market_row',
    'fuzzy_ratio',
    'specialty_similarity',
    'suggest_market_specialties',
    'suggest_specialty_mappings',
]
