from .autodetector import MigrationAutodetector, StateDiffer
from .changes import ChangeSet
from .errors import (
    CircularDependency,
    InvalidState,
    MigrationError,
    NodeNotFound,
    NonSquashableBoundary,
    UnsupportedFeature,
)
from .loader import MigrationLoader, replay
from .migration import Migration
from .operations import (
    AddColumn,
    AddConstraint,
    AlterColumn,
    CreateIndex,
    CreateTable,
    DropColumn,
    DropConstraint,
    DropIndex,
    DropTable,
    Operation,
    Raw,
    RenameColumn,
    RenameTable,
)
from .plan import MigrationPlan
from .planner import Planner, PlanResult
from .renames import RenameDetector
from .similarity import SimilarityConfig
from .squasher import SquashPolicy, Squasher, SquashResult
from .state import (
    AutoGeneration,
    Constraint,
    FieldState,
    FieldType,
    Index,
    ModelState,
    ProjectState,
)
from .writer import MigrationWriter

__all__ = [
    "AddColumn",
    "AddConstraint",
    "AlterColumn",
    "AutoGeneration",
    "ChangeSet",
    "CircularDependency",
    "Constraint",
    "CreateIndex",
    "CreateTable",
    "DropColumn",
    "DropConstraint",
    "DropIndex",
    "DropTable",
    "FieldState",
    "FieldType",
    "Index",
    "InvalidState",
    "Migration",
    "MigrationAutodetector",
    "MigrationError",
    "MigrationLoader",
    "MigrationPlan",
    "MigrationWriter",
    "ModelState",
    "NodeNotFound",
    "NonSquashableBoundary",
    "Operation",
    "PlanResult",
    "Planner",
    "ProjectState",
    "Raw",
    "RenameColumn",
    "RenameDetector",
    "RenameTable",
    "SimilarityConfig",
    "SquashPolicy",
    "SquashResult",
    "Squasher",
    "StateDiffer",
    "UnsupportedFeature",
    "replay",
]
