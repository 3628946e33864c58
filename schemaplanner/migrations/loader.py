import json
from pathlib import Path
from typing import Iterable, Optional

from schemaplanner.migrations.errors import InvalidState
from schemaplanner.migrations.Logging import logger
from schemaplanner.migrations.migration import Migration
from schemaplanner.migrations.plan import MigrationPlan
from schemaplanner.migrations.state import ProjectState


def replay(migrations: Iterable[Migration], state: ProjectState = None) -> ProjectState:
    """Left fold of every operation of every migration, in order, from `state` (empty by default)."""
    state = state if state is not None else ProjectState()
    for migration in migrations:
        state = migration.apply(state)
    return state


def effective_history(migrations: Iterable[Migration]) -> list[Migration]:
    """Drop migrations that a squashed migration of the same history replaces."""
    migrations = list(migrations)
    replaced = {key for m in migrations for key in m.replaces}
    return [m for m in migrations if m.key not in replaced]


def history_plan(migrations: Iterable[Migration]) -> MigrationPlan:
    """Sorted plan of a stored history; squashed migrations stand in for what they replace."""
    migrations = effective_history(migrations)
    replaced = {key: m.key for m in migrations for key in m.replaces}
    plan = MigrationPlan()
    for migration in migrations:
        # Dependencies on a squashed-away migration point at its replacement.
        if any(dep in replaced for dep in migration.all_dependencies()):
            migration = Migration.from_dict({
                **migration.to_dict(),
                "dependencies": [list(replaced.get(d, d)) for d in migration.dependencies],
                "run_after": [list(replaced.get(d, d)) for d in migration.run_after],
            })
        plan.add(migration)
    plan.sort()
    return plan


def leaf_names(migrations: Iterable[Migration]) -> dict[str, str]:
    """Latest migration name per app."""
    leaves: dict[str, str] = {}
    for migration in effective_history(migrations):
        if migration.app_label not in leaves or migration.name > leaves[migration.app_label]:
            leaves[migration.app_label] = migration.name
    return leaves


def highest_numbers(migrations: Iterable[Migration]) -> dict[str, int]:
    """Highest migration number per app over everything stored, replaced migrations included."""
    highest: dict[str, int] = {}
    for migration in migrations:
        if migration.number is not None:
            highest[migration.app_label] = max(highest.get(migration.app_label, 0), migration.number)
    return highest


class MigrationLoader:
    """
    Reads the JSON history store: `<root>/<app>/<name>.json`, one migration per file.
    """

    def __init__(self, root="."):
        self.root = Path(root)
        self._cache: Optional[list[Migration]] = None

    def load(self, refresh: bool = False) -> list[Migration]:
        """Every stored migration, app by app, each app in name order."""
        if self._cache is not None and not refresh:
            return list(self._cache)

        migrations = []
        if self.root.exists():
            for app_dir in sorted(p for p in self.root.iterdir() if p.is_dir()):
                for path in sorted(app_dir.glob("*.json")):
                    migrations.append(self._read(path, app_dir.name))
        logger.debug("Loaded %d migration(s) from %s", len(migrations), self.root)
        self._cache = migrations
        return list(migrations)

    @staticmethod
    def _read(path: Path, app_label: str) -> Migration:
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            raise InvalidState(f"Migration file {path} is not valid JSON: {e}") from e
        try:
            migration = Migration.from_dict(data)
        except KeyError as e:
            raise InvalidState(f"Migration file {path} is missing {e}") from e
        if migration.app_label != app_label or migration.name != path.stem:
            raise InvalidState(
                f"Migration file {path} declares {migration}, expected {app_label}.{path.stem}"
            )
        return migration

    def get(self, app_label: str, name: str) -> Migration:
        for migration in self.load():
            if migration.key == (app_label, name):
                return migration
        raise InvalidState(f"No migration named {app_label}.{name} in {self.root}")

    def for_app(self, app_label: str) -> list[Migration]:
        return [m for m in self.load() if m.app_label == app_label]

    def effective(self) -> list[Migration]:
        return effective_history(self.load())

    def leaves(self) -> dict[str, str]:
        return leaf_names(self.load())

    def plan(self) -> MigrationPlan:
        return history_plan(self.load())

    def project_state(self) -> ProjectState:
        return replay(self.plan())
