class MigrationError(Exception):
    """Base class for every planner failure."""


class InvalidState(MigrationError):
    """A ProjectState or migration history that cannot be interpreted."""


class NodeNotFound(InvalidState):
    def __init__(self, node: tuple[str, str], origin: tuple[str, str] = None):
        self.node = node
        self.origin = origin
        where = f" (required by {origin[0]}.{origin[1]})" if origin else ""
        super().__init__(f"Migration {node[0]}.{node[1]} does not exist{where}.")


class CircularDependency(MigrationError):
    def __init__(self, cycle: tuple[tuple[str, str], ...]):
        self.cycle = tuple(cycle)
        path = " -> ".join(f"{app}.{name}" for app, name in self.cycle)
        if self.cycle:
            path += f" -> {self.cycle[0][0]}.{self.cycle[0][1]}"
        super().__init__(f"Circular dependency detected: {path}")


class NonSquashableBoundary(MigrationError):
    def __init__(self, migration: tuple[str, str], index: int, operation):
        self.migration = migration
        self.index = index
        self.operation = operation
        super().__init__(
            f"Operation #{index} of {migration[0]}.{migration[1]} "
            f"({operation.describe()}) cannot be squashed across."
        )


class UnsupportedFeature(MigrationError):
    def __init__(self, backend, operation, reason: str = None):
        self.backend = backend
        self.operation = operation
        message = f"{getattr(backend, 'value', backend)} cannot emit: {operation.describe()}"
        if reason:
            message += f" ({reason})"
        super().__init__(message)
