"""Entries produced by diffing two ProjectStates."""
from dataclasses import dataclass, field
from typing import Iterator

from schemaplanner.migrations.state import Constraint, FieldState, Index, ModelState


@dataclass(frozen=True)
class ModelAdded:
    app_label: str
    model: ModelState

    @property
    def model_name(self) -> str:
        return self.model.name


@dataclass(frozen=True)
class ModelRemoved:
    app_label: str
    model: ModelState

    @property
    def model_name(self) -> str:
        return self.model.name


@dataclass(frozen=True)
class ModelRenamed:
    app_label: str
    old: ModelState
    new: ModelState
    similarity: float

    @property
    def model_name(self) -> str:
        return self.new.name


@dataclass(frozen=True)
class ModelAltered:
    """Same model name, different table name."""
    app_label: str
    old: ModelState
    new: ModelState

    @property
    def model_name(self) -> str:
        return self.new.name


@dataclass(frozen=True)
class FieldAdded:
    app_label: str
    model_name: str
    field: FieldState


@dataclass(frozen=True)
class FieldRemoved:
    app_label: str
    model_name: str
    field: FieldState


@dataclass(frozen=True)
class FieldRenamed:
    app_label: str
    model_name: str
    old: FieldState
    new: FieldState
    similarity: float


@dataclass(frozen=True)
class FieldAltered:
    app_label: str
    model_name: str
    old: FieldState
    new: FieldState


@dataclass(frozen=True)
class ConstraintAdded:
    app_label: str
    model_name: str
    constraint: Constraint


@dataclass(frozen=True)
class ConstraintRemoved:
    app_label: str
    model_name: str
    constraint: Constraint


@dataclass(frozen=True)
class IndexAdded:
    app_label: str
    model_name: str
    index: Index


@dataclass(frozen=True)
class IndexRemoved:
    app_label: str
    model_name: str
    index: Index


@dataclass
class ChangeSet:
    """
    Structured diff between two ProjectStates, scoped per (app, model).

    Each list keeps discovery order so that synthesised operations are deterministic.
    """
    models_added: list[ModelAdded] = field(default_factory=list)
    models_removed: list[ModelRemoved] = field(default_factory=list)
    models_renamed: list[ModelRenamed] = field(default_factory=list)
    models_altered: list[ModelAltered] = field(default_factory=list)
    fields_added: list[FieldAdded] = field(default_factory=list)
    fields_removed: list[FieldRemoved] = field(default_factory=list)
    fields_renamed: list[FieldRenamed] = field(default_factory=list)
    fields_altered: list[FieldAltered] = field(default_factory=list)
    constraints_added: list[ConstraintAdded] = field(default_factory=list)
    constraints_removed: list[ConstraintRemoved] = field(default_factory=list)
    indexes_added: list[IndexAdded] = field(default_factory=list)
    indexes_removed: list[IndexRemoved] = field(default_factory=list)

    _KINDS = (
        "models_added", "models_removed", "models_renamed", "models_altered",
        "fields_added", "fields_removed", "fields_renamed", "fields_altered",
        "constraints_added", "constraints_removed", "indexes_added", "indexes_removed",
    )

    def __iter__(self) -> Iterator:
        for kind in self._KINDS:
            yield from getattr(self, kind)

    def __len__(self):
        return sum(len(getattr(self, kind)) for kind in self._KINDS)

    def is_empty(self) -> bool:
        return len(self) == 0

    def apps(self) -> list[str]:
        seen = []
        for entry in self:
            if entry.app_label not in seen:
                seen.append(entry.app_label)
        return seen

    def for_app(self, app_label: str) -> "ChangeSet":
        scoped = ChangeSet()
        for kind in self._KINDS:
            setattr(scoped, kind, [e for e in getattr(self, kind) if e.app_label == app_label])
        return scoped

    def summary(self) -> dict[str, int]:
        return {kind: len(getattr(self, kind)) for kind in self._KINDS if getattr(self, kind)}
