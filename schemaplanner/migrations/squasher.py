"""
Migration squashing.

The optimizer repeatedly looks for an operation that `reduce`s with a later one and
rewrites the pair, as long as whatever sits between them is unrelated (see
`Operation.conflicts`). Non-structural operations (`Raw`) split the list into segments
that are optimised independently and never move.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Sequence

from slugify import slugify

from schemaplanner.migrations.errors import InvalidState, NonSquashableBoundary
from schemaplanner.migrations.Logging import logger
from schemaplanner.migrations.migration import Migration
from schemaplanner.migrations.operations import Operation


class SquashPolicy(str, Enum):
    PRESERVE = "preserve"
    REFUSE = "refuse"
    STOP_BEFORE = "stop-before"


@dataclass(frozen=True)
class SquashResult:
    migration: Migration
    # Migrations of the requested run that were left out (STOP_BEFORE only).
    remaining: tuple[Migration, ...] = ()


class OperationOptimizer:

    def optimize(self, operations: Sequence[Operation]) -> list[Operation]:
        result: list[Operation] = []
        segment: list[Operation] = []
        for operation in operations:
            if operation.structural:
                segment.append(operation)
                continue
            result.extend(self.optimize_segment(segment))
            result.append(operation)
            segment = []
        result.extend(self.optimize_segment(segment))
        return result

    def optimize_segment(self, operations: Sequence[Operation]) -> list[Operation]:
        operations = list(operations)
        while True:
            reduced = self._optimize_once(operations)
            if reduced is None:
                return operations
            operations = reduced

    @staticmethod
    def _optimize_once(operations: list[Operation]) -> Optional[list[Operation]]:
        for i, operation in enumerate(operations):
            for j in range(i + 1, len(operations)):
                other = operations[j]
                result = operation.reduce(other)
                if result is None:
                    continue
                in_between = operations[i + 1:j]
                if not any(op.conflicts(other) for op in in_between):
                    return operations[:i] + list(result) + in_between + operations[j + 1:]
                if not any(op.conflicts(operation) for op in in_between):
                    return operations[:i] + in_between + list(result) + operations[j + 1:]
        return None


class Squasher:
    """
    Collapses a contiguous, ordered run of one app's migrations into one migration
    that `replaces` them.
    """

    def __init__(self, policy: SquashPolicy = SquashPolicy.PRESERVE, optimizer: OperationOptimizer = None):
        self.policy = SquashPolicy(policy)
        self.optimizer = optimizer or OperationOptimizer()

    def squash(self, migrations: Sequence[Migration], name: str = None) -> SquashResult:
        migrations = list(migrations)
        self._validate(migrations)

        remaining: tuple[Migration, ...] = ()
        boundary = self._first_boundary(migrations)
        if boundary is not None:
            position, index, operation = boundary
            error = NonSquashableBoundary(migrations[position].key, index, operation)
            if self.policy == SquashPolicy.REFUSE:
                raise error
            if self.policy == SquashPolicy.STOP_BEFORE:
                if position == 0:
                    raise error
                remaining = tuple(migrations[position:])
                migrations = migrations[:position]
                logger.warning("Squash stops before %s: %s", remaining[0], operation.describe())
            else:
                logger.info("Keeping %s in place as a squash boundary", operation.describe())

        operations = [op for m in migrations for op in m.operations]
        optimized = self.optimizer.optimize(operations)
        logger.info("Squashed %d migration(s): %d operation(s) reduced to %d",
                    len(migrations), len(operations), len(optimized))

        internal = {m.key for m in migrations}
        replaces = []
        for migration in migrations:
            for key in migration.replaces or (migration.key,):
                if key not in replaces:
                    replaces.append(key)

        first, last = migrations[0], migrations[-1]
        squashed = Migration(
            app_label=first.app_label,
            name=self.squashed_name(first, last, name),
            operations=tuple(optimized),
            dependencies=self._external(migrations, "dependencies", internal),
            run_after=self._external(migrations, "run_after", internal),
            atomic=all(m.atomic for m in migrations),
            replaces=tuple(replaces),
            initial=first.initial,
        )
        return SquashResult(squashed, remaining)

    @staticmethod
    def squashed_name(first: Migration, last: Migration, name: str = None) -> str:
        prefix = f"{first.number:04d}" if first.number is not None else first.name
        if name:
            return f"{prefix}_{slugify(name, separator='_')}"
        return f"{prefix}_squashed_{last.name}"

    @staticmethod
    def _validate(migrations: list[Migration]):
        if not migrations:
            raise InvalidState("Nothing to squash.")
        apps = {m.app_label for m in migrations}
        if len(apps) > 1:
            raise InvalidState(f"Cannot squash migrations of different apps: {', '.join(sorted(apps))}")
        positions = {m.key: i for i, m in enumerate(migrations)}
        if len(positions) != len(migrations):
            raise InvalidState("The same migration was given twice.")
        for i, migration in enumerate(migrations):
            for dep in migration.all_dependencies():
                if positions.get(dep, -1) > i:
                    raise InvalidState(f"{migration} depends on {dep[0]}.{dep[1]}, which comes later in the run.")

    @staticmethod
    def _first_boundary(migrations: list[Migration]):
        for position, migration in enumerate(migrations):
            for index, operation in enumerate(migration.operations):
                if not operation.structural:
                    return position, index, operation
        return None

    @staticmethod
    def _external(migrations: list[Migration], attr: str, internal: set) -> tuple:
        edges = []
        for migration in migrations:
            for edge in getattr(migration, attr):
                if edge not in internal and edge not in edges:
                    edges.append(edge)
        return tuple(edges)
