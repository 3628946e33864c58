from dataclasses import dataclass, replace
from typing import Any, Iterable, Optional

from schemaplanner.migrations.operations import Operation, operation_from_dict
from schemaplanner.migrations.state import ProjectState


@dataclass(frozen=True)
class Migration:
    """
    A named, ordered bundle of operations for one app.

    `dependencies` are declared (including the implicit chain to the app's previous
    migration); `run_after` holds cross-app ordering hints inferred by the autodetector;
    `replaces` lists the migrations a squashed migration stands in for.
    """
    app_label: str
    name: str
    operations: tuple[Operation, ...] = ()
    dependencies: tuple[tuple[str, str], ...] = ()
    run_after: tuple[tuple[str, str], ...] = ()
    atomic: bool = True
    replaces: tuple[tuple[str, str], ...] = ()
    initial: Optional[bool] = None

    def __post_init__(self):
        object.__setattr__(self, "operations", tuple(self.operations))
        for attr in ("dependencies", "run_after", "replaces"):
            object.__setattr__(self, attr, tuple(tuple(edge) for edge in getattr(self, attr)))

    @property
    def key(self) -> tuple[str, str]:
        return (self.app_label, self.name)

    @property
    def number(self) -> Optional[int]:
        prefix = self.name.split("_", 1)[0]
        return int(prefix) if prefix.isdigit() else None

    def __str__(self):
        return f"{self.app_label}.{self.name}"

    def with_run_after(self, edges: Iterable[tuple[str, str]]) -> "Migration":
        merged = list(self.run_after)
        for edge in edges:
            if tuple(edge) not in merged and tuple(edge) not in self.dependencies:
                merged.append(tuple(edge))
        return replace(self, run_after=tuple(merged))

    def all_dependencies(self) -> tuple[tuple[str, str], ...]:
        """Declared dependencies followed by inferred hints, without duplicates."""
        seen = []
        for edge in self.dependencies + self.run_after:
            if edge not in seen:
                seen.append(edge)
        return tuple(seen)

    def apply(self, state: ProjectState) -> ProjectState:
        """Fold every operation over `state` and record the dependency edges."""
        for operation in self.operations:
            state = operation.state_forwards(self.app_label, state)
        edges = [(self.app_label, app, name) for app, name in self.dependencies if app != self.app_label]
        return state.with_dependencies(edges) if edges else state

    def to_dict(self) -> dict[str, Any]:
        return {
            "app_label": self.app_label,
            "name": self.name,
            "initial": self.initial,
            "atomic": self.atomic,
            "dependencies": [list(d) for d in self.dependencies],
            "run_after": [list(d) for d in self.run_after],
            "replaces": [list(r) for r in self.replaces],
            "operations": [op.to_dict() for op in self.operations],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Migration":
        return cls(
            app_label=data["app_label"],
            name=data["name"],
            operations=tuple(operation_from_dict(op) for op in data.get("operations", ())),
            dependencies=tuple(tuple(d) for d in data.get("dependencies", ())),
            run_after=tuple(tuple(d) for d in data.get("run_after", ())),
            atomic=data.get("atomic", True),
            replaces=tuple(tuple(r) for r in data.get("replaces", ())),
            initial=data.get("initial"),
        )
