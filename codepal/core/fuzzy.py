from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, List, Optional

EXACT_MATCH_SCORE = 1000
PREFIX_MATCH_SCORE = 900
BOUNDARY_CHARS = frozenset("/.-_")


@dataclass(frozen=True)
class FuzzyMatch:
    item: str
    score: int


class FuzzyMatcher:
    """fzf-style ranking used for ``@file`` completion.

    Exact (case-insensitive) matches score 1000 and prefix matches 900.
    Anything else must contain the pattern as a case-insensitive subsequence;
    the score then accumulates per matched character (with a growing bonus for
    consecutive runs, separator and camelCase boundaries) plus bonuses for
    short candidates and an early first match. Zero means "no match".
    """

    @staticmethod
    def score(text: str, pattern: str) -> int:
        text_lower = text.lower()
        pattern_lower = pattern.lower()
        if text_lower == pattern_lower:
            return EXACT_MATCH_SCORE
        if text_lower.startswith(pattern_lower):
            return PREFIX_MATCH_SCORE

        score = 0
        consecutive = 0
        first_match = -1
        p_idx = 0
        for t_idx, char in enumerate(text_lower):
            if p_idx >= len(pattern_lower):
                break
            if char != pattern_lower[p_idx]:
                consecutive = 0
                continue
            if first_match == -1:
                first_match = t_idx
            consecutive += 1
            score += 10 + consecutive * 5
            if t_idx == 0 or text[t_idx - 1] in BOUNDARY_CHARS:
                score += 15
            if t_idx > 0 and text[t_idx].isupper() and text[t_idx - 1].islower():
                score += 10
            p_idx += 1

        if p_idx < len(pattern_lower):
            return 0
        score += max(0, 100 - len(text))
        if first_match >= 0:
            score += max(0, 50 - first_match)
        return score

    @classmethod
    def matches(cls, items: Iterable[str], pattern: str) -> List[FuzzyMatch]:
        """Scored matches, best first; ties go to the shorter candidate."""
        scored = [FuzzyMatch(item, cls.score(item, pattern)) for item in items]
        ranked = [match for match in scored if match.score > 0]
        ranked.sort(key=lambda match: (-match.score, len(match.item)))
        return ranked

    @classmethod
    def filter(
        cls, items: Iterable[str], pattern: str, limit: Optional[int] = None
    ) -> List[str]:
        if not pattern:
            candidates = list(items)
            return candidates[:limit] if limit is not None else candidates
        ranked = [match.item for match in cls.matches(items, pattern)]
        return ranked[:limit] if limit is not None else ranked
