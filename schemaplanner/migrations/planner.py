from dataclasses import dataclass, field
from typing import Iterable, Optional

from schemaplanner.migrations.autodetector import MigrationAutodetector
from schemaplanner.migrations.changes import ChangeSet
from schemaplanner.migrations.loader import highest_numbers, history_plan, leaf_names, replay
from schemaplanner.migrations.Logging import logger
from schemaplanner.migrations.migration import Migration
from schemaplanner.migrations.plan import MigrationPlan
from schemaplanner.migrations.similarity import SimilarityConfig
from schemaplanner.migrations.state import ProjectState


@dataclass
class PlanResult:
    before: ProjectState
    after: ProjectState
    changes: ChangeSet
    migrations: list[Migration] = field(default_factory=list)
    plan: Optional[MigrationPlan] = None

    @property
    def is_empty(self) -> bool:
        return not self.migrations


class Planner:
    """
    The makemigrations pipeline: replay history into `before`, diff it against the
    declared `after`, arrange the operations into migrations and schedule them.

    Pure: nothing is read from or written to disk here.
    """

    def __init__(self, config: SimilarityConfig = None):
        self.config = config or SimilarityConfig()

    def run(self, history: Iterable[Migration], after: ProjectState,
            app_labels: Iterable[str] = None, name: str = None) -> PlanResult:
        history = list(history)
        applied = history_plan(history)
        before = replay(applied)

        detector = MigrationAutodetector(before, after, self.config)
        changes = detector.changes()
        if changes.is_empty():
            logger.debug("No changes between history and declared models")
            return PlanResult(before, after, changes)
        logger.debug("Detected changes: %s", changes.summary())

        app_labels = set(app_labels) if app_labels else None
        migrations = detector.arrange(leaf_names(history), name=name, app_labels=app_labels,
                                      numbers=highest_numbers(history))

        plan = MigrationPlan(applied=applied.keys())
        plan.extend(migrations)
        plan.sort()
        for migration in plan:
            logger.debug("Planned %s with %d operation(s)", migration, len(migration.operations))
        return PlanResult(before, after, changes, list(plan), plan)
