"""String similarity used to tell a rename apart from an unrelated add + remove."""
from dataclasses import dataclass

from rapidfuzz.distance import JaroWinkler, Levenshtein


@dataclass(frozen=True)
class SimilarityConfig:
    """
    Rename-detection policy.

    score = jaro_winkler_weight * jaro_winkler + levenshtein_weight * (1 - normalized_levenshtein),
    clamped to [0, 1]; a pair is a rename candidate when score >= threshold. Weights are
    normalised to sum to 1. Both metrics come from rapidfuzz; the normalised edit distance is
    the distance divided by the longer name's length.
    """
    threshold: float = 0.7
    jaro_winkler_weight: float = 0.7
    levenshtein_weight: float = 0.3

    def __post_init__(self):
        if not 0.0 <= self.threshold <= 1.0:
            raise ValueError(f"threshold must be within [0, 1], got {self.threshold}")
        if self.jaro_winkler_weight < 0 or self.levenshtein_weight < 0:
            raise ValueError("similarity weights must be non-negative")
        total = self.jaro_winkler_weight + self.levenshtein_weight
        if total <= 0:
            raise ValueError("at least one similarity weight must be positive")
        object.__setattr__(self, "jaro_winkler_weight", self.jaro_winkler_weight / total)
        object.__setattr__(self, "levenshtein_weight", self.levenshtein_weight / total)

    def score(self, old_name: str, new_name: str) -> float:
        value = (
            self.jaro_winkler_weight * JaroWinkler.similarity(old_name, new_name)
            + self.levenshtein_weight * (1 - Levenshtein.normalized_distance(old_name, new_name))
        )
        return min(1.0, max(0.0, value))

    def accepts(self, score: float) -> bool:
        return score >= self.threshold
