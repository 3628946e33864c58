import os
from dataclasses import dataclass

from dotenv import load_dotenv

from schemaplanner.migrations.similarity import SimilarityConfig


def _get_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}") from None


@dataclass(frozen=True)
class Settings:
    models_path: str = "lib"
    migrations_path: str = ".migrations"
    backend: str = "postgresql"
    rename_threshold: float = 0.7
    jaro_winkler_weight: float = 0.7
    levenshtein_weight: float = 0.3
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, dotenv_path: str = None) -> "Settings":
        """Read SCHEMAPLANNER_* variables, after loading `.env` if there is one."""
        load_dotenv(dotenv_path)
        return cls(
            models_path=os.getenv("SCHEMAPLANNER_MODELS_PATH", cls.models_path),
            migrations_path=os.getenv("SCHEMAPLANNER_MIGRATIONS_PATH", cls.migrations_path),
            backend=os.getenv("SCHEMAPLANNER_BACKEND", cls.backend).lower(),
            rename_threshold=_get_float("SCHEMAPLANNER_RENAME_THRESHOLD", cls.rename_threshold),
            jaro_winkler_weight=_get_float("SCHEMAPLANNER_JARO_WINKLER_WEIGHT", cls.jaro_winkler_weight),
            levenshtein_weight=_get_float("SCHEMAPLANNER_LEVENSHTEIN_WEIGHT", cls.levenshtein_weight),
            log_level=os.getenv("SCHEMAPLANNER_LOG_LEVEL", cls.log_level).upper(),
        )

    def similarity(self) -> SimilarityConfig:
        return SimilarityConfig(
            threshold=self.rename_threshold,
            jaro_winkler_weight=self.jaro_winkler_weight,
            levenshtein_weight=self.levenshtein_weight,
        )
