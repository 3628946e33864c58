from .database.Model import Model
from .migrations import (
    MigrationAutodetector,
    MigrationPlan,
    Planner,
    ProjectState,
    Squasher,
    SquashPolicy,
)
from .settings import Settings

__version__ = "0.1.0"

__all__ = [
    "MigrationAutodetector",
    "MigrationPlan",
    "Model",
    "Planner",
    "ProjectState",
    "Settings",
    "SquashPolicy",
    "Squasher",
]
