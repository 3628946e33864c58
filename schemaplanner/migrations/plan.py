from collections import deque
from typing import Iterable, Iterator, Optional

from schemaplanner.migrations.errors import CircularDependency, InvalidState, NodeNotFound
from schemaplanner.migrations.Logging import logger
from schemaplanner.migrations.migration import Migration

Key = tuple[str, str]


class MigrationPlan:
    """
    Dependency graph over individual migrations and its topological order.

    Edges come from each migration's `dependencies`, its `run_after` hints and, with
    `implicit_chain`, the previous migration of the same app (by name). Keys listed in
    `applied` are satisfied without being part of the plan.

    `add()` appends in discovery order; `sort()` reorders in place and is idempotent.
    A failing `sort()` leaves the plan exactly as it was.
    """

    def __init__(self, applied: Iterable[Key] = (), implicit_chain: bool = True):
        self.applied = frozenset(tuple(k) for k in applied)
        self.implicit_chain = implicit_chain
        self._migrations: list[Migration] = []
        self._sorted = False

    def add(self, migration: Migration) -> "MigrationPlan":
        if any(m.key == migration.key for m in self._migrations):
            raise InvalidState(f"Migration {migration} is already part of the plan.")
        self._migrations.append(migration)
        self._sorted = False
        return self

    def extend(self, migrations: Iterable[Migration]) -> "MigrationPlan":
        for migration in migrations:
            self.add(migration)
        return self

    @property
    def migrations(self) -> tuple[Migration, ...]:
        return tuple(self._migrations)

    @property
    def is_sorted(self) -> bool:
        return self._sorted

    def __len__(self):
        return len(self._migrations)

    def __iter__(self) -> Iterator[Migration]:
        return iter(self._migrations)

    def keys(self) -> list[Key]:
        return [m.key for m in self._migrations]

    def get(self, app_label: str, name: str) -> Optional[Migration]:
        for migration in self._migrations:
            if migration.key == (app_label, name):
                return migration
        return None

    def edges(self) -> dict[Key, list[Key]]:
        """Every in-plan dependency of every migration, declared edges first."""
        graph: dict[Key, list[Key]] = {}
        previous: dict[Key, Key] = {}
        if self.implicit_chain:
            by_app: dict[str, list[Key]] = {}
            for migration in self._migrations:
                by_app.setdefault(migration.app_label, []).append(migration.key)
            for keys in by_app.values():
                keys.sort(key=lambda k: k[1])
                for before, after in zip(keys, keys[1:]):
                    previous[after] = before

        known = {m.key for m in self._migrations}
        for migration in self._migrations:
            deps = []
            for dep in migration.all_dependencies():
                if dep in self.applied and dep not in known:
                    continue
                if dep not in known:
                    raise NodeNotFound(dep, migration.key)
                if dep != migration.key and dep not in deps:
                    deps.append(dep)
            chained = previous.get(migration.key)
            if chained and chained not in deps:
                deps.append(chained)
            graph[migration.key] = deps
        return graph

    def sort(self) -> list[Migration]:
        """
        Topologically order the plan: each pass extracts, in discovery order, every
        migration whose dependencies are already placed. A pass that extracts nothing
        means the rest contains a cycle.
        """
        if self._sorted:
            return list(self._migrations)

        graph = self.edges()
        remaining = list(self._migrations)
        placed: set[Key] = set()
        ordered: list[Migration] = []

        while remaining:
            extracted = []
            for migration in remaining:
                if all(dep in placed for dep in graph[migration.key]):
                    extracted.append(migration)
                    placed.add(migration.key)
                    ordered.append(migration)
            if not extracted:
                cycle = self.find_cycle(graph, [m.key for m in remaining])
                error = CircularDependency(cycle)
                logger.error(str(error))
                raise error
            remaining = [m for m in remaining if m.key not in placed]

        self._migrations = ordered
        self._sorted = True
        logger.debug("Plan order: %s", ", ".join(str(m) for m in ordered))
        return list(ordered)

    @staticmethod
    def find_cycle(graph: dict[Key, list[Key]], nodes: list[Key]) -> tuple[Key, ...]:
        """Shortest cycle among `nodes`; equal lengths resolve to the earliest node."""
        candidates = set(nodes)
        best: Optional[list[Key]] = None
        for start in nodes:
            # BFS along dependency edges back to `start`.
            parents: dict[Key, Key] = {}
            queue = deque([start])
            found = None
            while queue and found is None:
                node = queue.popleft()
                for dep in graph.get(node, ()):
                    if dep not in candidates:
                        continue
                    if dep == start:
                        found = node
                        break
                    if dep not in parents:
                        parents[dep] = node
                        queue.append(dep)
            if found is None:
                continue
            path = [found]
            while path[-1] != start:
                path.append(parents[path[-1]])
            path.reverse()
            if best is None or len(path) < len(best):
                best = path
        return tuple(best or nodes)

    def describe(self) -> list[str]:
        lines = []
        for position, migration in enumerate(self._migrations, start=1):
            deps = ", ".join(f"{a}.{n}" for a, n in migration.all_dependencies())
            suffix = f"  (after {deps})" if deps else ""
            lines.append(f"{position:>3}. {migration}{suffix}")
        return lines
