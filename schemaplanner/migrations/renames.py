from dataclasses import dataclass
from typing import Callable, Generic, Optional, TypeVar

from schemaplanner.migrations.Logging import logger
from schemaplanner.migrations.similarity import SimilarityConfig

T = TypeVar("T")


@dataclass(frozen=True)
class RenameMatch(Generic[T]):
    old_name: str
    new_name: str
    old: T
    new: T
    score: float


@dataclass(frozen=True)
class RenameResult(Generic[T]):
    renames: list[RenameMatch]
    removed: list[str]
    added: list[str]


class RenameDetector:
    """
    Reclassifies same-kind removal/addition candidates as renames.

    Every (removed, added) pair is scored; acceptable pairs are taken best-first
    (ties by old name, then new name) so a name is never used by two renames and a
    pair is never passed over for a lower-scoring one sharing an endpoint. Whatever
    stays unmatched falls through to plain add/remove. Never raises: the worst case
    is no renames at all.

    This is greedy, not a maximum-weight assignment: the highest-scoring pair is always
    matched first even when a different pairing would score more in total.
    """

    def __init__(self, config: Optional[SimilarityConfig] = None):
        self.config = config or SimilarityConfig()

    def match(
            self,
            removed: dict[str, T],
            added: dict[str, T],
            compatible: Callable[[T, T], bool] = None,
            scope: str = "",
    ) -> RenameResult:
        candidates = []
        for old_name in sorted(removed):
            for new_name in sorted(added):
                score = self.config.score(old_name, new_name)
                if not self.config.accepts(score):
                    logger.debug("[rename] %s %s -> %s rejected: score %.3f below %.2f",
                                 scope, old_name, new_name, score, self.config.threshold)
                    continue
                if compatible is not None and not compatible(removed[old_name], added[new_name]):
                    logger.debug("[rename] %s %s -> %s rejected: incompatible types (score %.3f)",
                                 scope, old_name, new_name, score)
                    continue
                candidates.append((score, old_name, new_name))

        candidates.sort(key=lambda c: (-c[0], c[1], c[2]))

        chosen: dict[str, RenameMatch] = {}
        taken_new = set()
        for score, old_name, new_name in candidates:
            if old_name in chosen or new_name in taken_new:
                continue
            chosen[old_name] = RenameMatch(old_name, new_name, removed[old_name], added[new_name], score)
            taken_new.add(new_name)
            logger.info("[rename] %s %s -> %s (score %.3f)", scope, old_name, new_name, score)

        if len(candidates) > len(chosen):
            logger.debug("[rename] %s resolved %d candidate pair(s) into %d rename(s)",
                         scope, len(candidates), len(chosen))

        return RenameResult(
            renames=[chosen[name] for name in removed if name in chosen],
            removed=[name for name in removed if name not in chosen],
            added=[name for name in added if name not in taken_new],
        )
