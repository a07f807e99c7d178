"""
Field similarity scoring.

Primary metric is Jaro-Winkler (rewards shared prefixes). When the
Jaro-Winkler score lands within AMBIGUITY_MARGIN points of the caller's
threshold, normalized Levenshtein similarity is computed as well and the
higher score wins, so mid-string edits are not rejected on the prefix
metric alone.

Scores are integers in 0-100. Callers bound input lengths: both metrics
are O(len(a) * len(b)).
"""

from typing import Optional

from rapidfuzz.distance import JaroWinkler, Levenshtein

AMBIGUITY_MARGIN = 5
WINKLER_PREFIX_WEIGHT = 0.1


class SimilarityScorer:
    """Symmetric 0-100 string similarity."""

    def __init__(
        self,
        ambiguity_margin: int = AMBIGUITY_MARGIN,
        prefix_weight: float = WINKLER_PREFIX_WEIGHT,
    ):
        self.ambiguity_margin = ambiguity_margin
        self.prefix_weight = prefix_weight

    def score(self, a: Optional[str], b: Optional[str], threshold: Optional[float] = None) -> int:
        """
        Score two (already normalized) values.

        Args:
            a: First value
            b: Second value
            threshold: Decision threshold of the field being compared;
                enables the Levenshtein fallback near the boundary

        Returns:
            100 for equal values (including two empty ones), 0 when exactly
            one side is empty, otherwise the rounded similarity
        """
        a = a or ""
        b = b or ""
        if a == b:
            return 100
        if not a or not b:
            return 0

        # Canonical argument order keeps the score symmetric
        first, second = (a, b) if a <= b else (b, a)

        primary = self.jaro_winkler(first, second)
        if threshold is not None and abs(primary - threshold) <= self.ambiguity_margin:
            primary = max(primary, self.levenshtein(first, second))

        return _clamp(round(primary))

    def jaro_winkler(self, a: str, b: str) -> float:
        """Jaro-Winkler similarity scaled to 0-100"""
        return (
            JaroWinkler.normalized_similarity(a, b, prefix_weight=self.prefix_weight)
            * 100.0
        )

    @staticmethod
    def levenshtein(a: str, b: str) -> float:
        """Normalized Levenshtein similarity scaled to 0-100"""
        return Levenshtein.normalized_similarity(a, b) * 100.0


def _clamp(value: int) -> int:
    return max(0, min(100, int(value)))
