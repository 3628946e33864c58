"""
Atomic DDL-level intents.

Every operation knows how to move a ProjectState forward (`state_forwards`), which
models and columns it touches (used by the squasher to decide what may be reordered)
and how it collapses with a later operation (`reduce`). The set of operations is
closed: emitters dispatch on the concrete class and the codec below knows every kind.
"""
from dataclasses import dataclass, replace
from typing import Any, Optional

from schemaplanner.migrations.errors import InvalidState
from schemaplanner.migrations.state import Constraint, FieldState, Index, ModelState, ProjectState


class Operation:
    """Base for every operation. Subclasses are frozen dataclasses."""

    # Raw SQL and other data-affecting steps are never merged or reordered.
    structural = True

    def state_forwards(self, app_label: str, state: ProjectState) -> ProjectState:
        raise NotImplementedError("Subclasses must implement state_forwards()")

    def describe(self) -> str:
        raise NotImplementedError("Subclasses must implement describe()")

    @property
    def migration_name_fragment(self) -> str:
        raise NotImplementedError("Subclasses must implement migration_name_fragment")

    def model_names(self) -> set[str]:
        return set()

    def column_refs(self) -> Optional[set[tuple[str, str]]]:
        """(model, column) pairs touched, or None when the whole table is affected."""
        return None

    def references_model(self, name: str) -> bool:
        return not self.structural or name.lower() in {m.lower() for m in self.model_names()}

    def references_column(self, model: str, column: str) -> bool:
        if not self.references_model(model):
            return False
        refs = self.column_refs()
        if refs is None:
            return True
        return (model.lower(), column) in {(m.lower(), c) for m, c in refs}

    def conflicts(self, other: "Operation") -> bool:
        """Whether the relative order of the two operations matters."""
        if not self.structural or not other.structural:
            return True
        shared = {m.lower() for m in self.model_names()} & {m.lower() for m in other.model_names()}
        if not shared:
            return False
        mine, theirs = self.column_refs(), other.column_refs()
        if mine is None or theirs is None:
            return True
        return bool({(m.lower(), c) for m, c in mine} & {(m.lower(), c) for m, c in theirs})

    def reduce(self, other: "Operation") -> Optional[list["Operation"]]:
        """Operations replacing `self` followed by `other`, or None if they do not merge."""
        return None

    def to_dict(self) -> dict[str, Any]:
        raise NotImplementedError("Subclasses must implement to_dict()")

    def __str__(self):
        return self.describe()


def _same(a: str, b: str) -> bool:
    return a.lower() == b.lower()


def _fk_targets(constraints) -> set[str]:
    return {c.to_model[1] for c in constraints if c.to_model}


@dataclass(frozen=True)
class CreateTable(Operation):
    name: str
    table_name: str
    fields: tuple[FieldState, ...] = ()
    constraints: tuple[Constraint, ...] = ()
    indexes: tuple[Index, ...] = ()

    def __post_init__(self):
        object.__setattr__(self, "fields", tuple(self.fields))
        object.__setattr__(self, "constraints", tuple(self.constraints))
        object.__setattr__(self, "indexes", tuple(self.indexes))

    def model_state(self, app_label: str) -> ModelState:
        return ModelState(app_label, self.name, self.table_name, self.fields, self.constraints, self.indexes)

    def state_forwards(self, app_label, state):
        return state.with_model(self.model_state(app_label))

    def describe(self):
        return f"Create table {self.table_name} for model {self.name}"

    @property
    def migration_name_fragment(self):
        return self.name.lower()

    def model_names(self):
        return {self.name} | _fk_targets(self.constraints)

    def _rebuild(self, model: ModelState) -> "CreateTable":
        return replace(self, name=model.name, table_name=model.table_name, fields=model.fields,
                       constraints=model.constraints, indexes=model.indexes)

    def reduce(self, other):
        if isinstance(other, DropTable) and _same(other.name, self.name):
            return []
        if isinstance(other, RenameTable) and _same(other.old_name, self.name):
            return [replace(self, name=other.new_name, table_name=other.new_table or self.table_name)]
        model_name = getattr(other, "model_name", None)
        if model_name is None or not _same(model_name, self.name):
            return None
        # Scratch app label; only the table contents matter here.
        model = self.model_state("_")
        try:
            if isinstance(other, AddColumn):
                model = model.with_field(other.field)
            elif isinstance(other, AlterColumn):
                model = model.replace_field(other.column, other.new_field.renamed(other.column))
            elif isinstance(other, DropColumn):
                if any(c.references_column(other.column) for c in model.constraints) or \
                        any(i.references_column(other.column) for i in model.indexes):
                    return None
                model = model.without_field(other.column)
            elif isinstance(other, RenameColumn):
                model = model.rename_field(other.old_name, other.new_name)
            elif isinstance(other, AddConstraint):
                model = model.with_constraint(other.constraint)
            elif isinstance(other, DropConstraint):
                model = model.without_constraint(other.constraint)
            elif isinstance(other, CreateIndex):
                model = model.with_index(other.index)
            elif isinstance(other, DropIndex):
                model = model.without_index(other.index)
            else:
                return None
        except InvalidState:
            return None
        return [self._rebuild(model)]

    def to_dict(self):
        return {
            "type": "CreateTable",
            "name": self.name,
            "table_name": self.table_name,
            "fields": [f.to_dict() for f in self.fields],
            "constraints": [c.to_dict() for c in self.constraints],
            "indexes": [i.to_dict() for i in self.indexes],
        }

    @classmethod
    def from_dict(cls, data):
        return cls(
            data["name"],
            data["table_name"],
            tuple(FieldState.from_dict(f) for f in data.get("fields", ())),
            tuple(Constraint.from_dict(c) for c in data.get("constraints", ())),
            tuple(Index.from_dict(i) for i in data.get("indexes", ())),
        )


@dataclass(frozen=True)
class DropTable(Operation):
    name: str

    def state_forwards(self, app_label, state):
        return state.without_model(app_label, self.name)

    def describe(self):
        return f"Drop table for model {self.name}"

    @property
    def migration_name_fragment(self):
        return f"delete_{self.name.lower()}"

    def model_names(self):
        return {self.name}

    def to_dict(self):
        return {"type": "DropTable", "name": self.name}

    @classmethod
    def from_dict(cls, data):
        return cls(data["name"])


@dataclass(frozen=True)
class RenameTable(Operation):
    """Rename a model; `new_table` is set when the database table changes with it."""
    old_name: str
    new_name: str
    old_table: Optional[str] = None
    new_table: Optional[str] = None

    def state_forwards(self, app_label, state):
        return state.rename_model(app_label, self.old_name, self.new_name, self.new_table)

    def describe(self):
        if self.old_name == self.new_name:
            return f"Rename table of model {self.new_name} from {self.old_table} to {self.new_table}"
        return f"Rename model {self.old_name} to {self.new_name}"

    @property
    def migration_name_fragment(self):
        if self.old_name == self.new_name:
            return f"alter_{self.new_name.lower()}_table"
        return f"rename_{self.old_name.lower()}_{self.new_name.lower()}"

    def model_names(self):
        return {self.old_name, self.new_name}

    def reduce(self, other):
        if isinstance(other, RenameTable) and _same(other.old_name, self.new_name):
            merged = RenameTable(self.old_name, other.new_name, self.old_table,
                                 other.new_table or self.new_table)
            if merged.old_name == merged.new_name and (merged.new_table in (None, merged.old_table)):
                return []
            return [merged]
        if isinstance(other, DropTable) and _same(other.name, self.new_name):
            return [DropTable(self.old_name)]
        return None

    def to_dict(self):
        return {"type": "RenameTable", "old_name": self.old_name, "new_name": self.new_name,
                "old_table": self.old_table, "new_table": self.new_table}

    @classmethod
    def from_dict(cls, data):
        return cls(data["old_name"], data["new_name"], data.get("old_table"), data.get("new_table"))


@dataclass(frozen=True)
class AddColumn(Operation):
    model_name: str
    field: FieldState

    def state_forwards(self, app_label, state):
        model = state.get_model(app_label, self.model_name)
        return state.replace_model(model.with_field(self.field))

    def describe(self):
        return f"Add column {self.field.name} ({self.field.field_type}) to {self.model_name}"

    @property
    def migration_name_fragment(self):
        return f"{self.model_name.lower()}_{self.field.name.lower()}"

    def model_names(self):
        return {self.model_name}

    def column_refs(self):
        return {(self.model_name, self.field.name)}

    def reduce(self, other):
        if getattr(other, "model_name", None) is None or not _same(other.model_name, self.model_name):
            return None
        if isinstance(other, AlterColumn) and other.column == self.field.name:
            return [AddColumn(self.model_name, other.new_field.renamed(self.field.name))]
        if isinstance(other, DropColumn) and other.column == self.field.name:
            return []
        if isinstance(other, RenameColumn) and other.old_name == self.field.name:
            return [AddColumn(self.model_name, self.field.renamed(other.new_name))]
        return None

    def to_dict(self):
        return {"type": "AddColumn", "model_name": self.model_name, "field": self.field.to_dict()}

    @classmethod
    def from_dict(cls, data):
        return cls(data["model_name"], FieldState.from_dict(data["field"]))


@dataclass(frozen=True)
class DropColumn(Operation):
    model_name: str
    column: str
    field: Optional[FieldState] = None

    def state_forwards(self, app_label, state):
        model = state.get_model(app_label, self.model_name)
        return state.replace_model(model.without_field(self.column))

    def describe(self):
        return f"Drop column {self.column} from {self.model_name}"

    @property
    def migration_name_fragment(self):
        return f"remove_{self.model_name.lower()}_{self.column.lower()}"

    def model_names(self):
        return {self.model_name}

    def column_refs(self):
        return {(self.model_name, self.column)}

    def to_dict(self):
        return {"type": "DropColumn", "model_name": self.model_name, "column": self.column,
                "field": self.field.to_dict() if self.field else None}

    @classmethod
    def from_dict(cls, data):
        field_data = data.get("field")
        return cls(data["model_name"], data["column"], FieldState.from_dict(field_data) if field_data else None)


@dataclass(frozen=True)
class RenameColumn(Operation):
    model_name: str
    old_name: str
    new_name: str

    def state_forwards(self, app_label, state):
        return state.rename_field(app_label, self.model_name, self.old_name, self.new_name)

    def describe(self):
        return f"Rename column {self.old_name} on {self.model_name} to {self.new_name}"

    @property
    def migration_name_fragment(self):
        return f"rename_{self.old_name.lower()}_{self.model_name.lower()}_{self.new_name.lower()}"

    def model_names(self):
        return {self.model_name}

    def column_refs(self):
        return {(self.model_name, self.old_name), (self.model_name, self.new_name)}

    def reduce(self, other):
        if isinstance(other, RenameColumn) and _same(other.model_name, self.model_name) \
                and other.old_name == self.new_name:
            if other.new_name == self.old_name:
                return []
            return [RenameColumn(self.model_name, self.old_name, other.new_name)]
        return None

    def to_dict(self):
        return {"type": "RenameColumn", "model_name": self.model_name,
                "old_name": self.old_name, "new_name": self.new_name}

    @classmethod
    def from_dict(cls, data):
        return cls(data["model_name"], data["old_name"], data["new_name"])


@dataclass(frozen=True)
class AlterColumn(Operation):
    """Whole-column redefinition; `old_field` and `new_field` are kept verbatim."""
    model_name: str
    column: str
    old_field: FieldState
    new_field: FieldState

    def state_forwards(self, app_label, state):
        model = state.get_model(app_label, self.model_name)
        return state.replace_model(model.replace_field(self.column, self.new_field.renamed(self.column)))

    def describe(self):
        return f"Alter column {self.column} on {self.model_name} ({self.old_field.field_type} -> {self.new_field.field_type})"

    @property
    def migration_name_fragment(self):
        return f"alter_{self.model_name.lower()}_{self.column.lower()}"

    def model_names(self):
        return {self.model_name}

    def column_refs(self):
        return {(self.model_name, self.column)}

    def reduce(self, other):
        if getattr(other, "model_name", None) is None or not _same(other.model_name, self.model_name):
            return None
        if isinstance(other, AlterColumn) and other.column == self.column:
            if self.old_field.same_definition(other.new_field):
                return []
            return [AlterColumn(self.model_name, self.column, self.old_field, other.new_field)]
        if isinstance(other, DropColumn) and other.column == self.column:
            return [DropColumn(self.model_name, self.column, self.old_field)]
        return None

    def to_dict(self):
        return {"type": "AlterColumn", "model_name": self.model_name, "column": self.column,
                "old_field": self.old_field.to_dict(), "new_field": self.new_field.to_dict()}

    @classmethod
    def from_dict(cls, data):
        return cls(data["model_name"], data["column"], FieldState.from_dict(data["old_field"]),
                   FieldState.from_dict(data["new_field"]))


class _ConstraintOperation(Operation):

    def model_names(self):
        names = {self.model_name}
        if self.constraint.to_model:
            names.add(self.constraint.to_model[1])
        return names

    def column_refs(self):
        refs = {(self.model_name, c) for c in self.constraint.columns}
        if self.constraint.to_model:
            refs |= {(self.constraint.to_model[1], c) for c in self.constraint.to_columns}
        # Table-wide checks are conservatively treated as touching every column.
        return refs or None


@dataclass(frozen=True)
class AddConstraint(_ConstraintOperation):
    model_name: str
    constraint: Constraint

    def state_forwards(self, app_label, state):
        model = state.get_model(app_label, self.model_name)
        return state.replace_model(model.with_constraint(self.constraint))

    def describe(self):
        return f"Add {self.constraint.kind.value} constraint {self.constraint.label()} to {self.model_name}"

    @property
    def migration_name_fragment(self):
        return f"{self.model_name.lower()}_{self.constraint.label().lower()}"

    def reduce(self, other):
        if isinstance(other, DropConstraint) and _same(other.model_name, self.model_name) \
                and other.constraint.normalized() == self.constraint.normalized():
            return []
        return None

    def to_dict(self):
        return {"type": "AddConstraint", "model_name": self.model_name, "constraint": self.constraint.to_dict()}

    @classmethod
    def from_dict(cls, data):
        return cls(data["model_name"], Constraint.from_dict(data["constraint"]))


@dataclass(frozen=True)
class DropConstraint(_ConstraintOperation):
    model_name: str
    constraint: Constraint

    def state_forwards(self, app_label, state):
        model = state.get_model(app_label, self.model_name)
        return state.replace_model(model.without_constraint(self.constraint))

    def describe(self):
        return f"Drop {self.constraint.kind.value} constraint {self.constraint.label()} from {self.model_name}"

    @property
    def migration_name_fragment(self):
        return f"remove_{self.model_name.lower()}_{self.constraint.label().lower()}"

    def to_dict(self):
        return {"type": "DropConstraint", "model_name": self.model_name, "constraint": self.constraint.to_dict()}

    @classmethod
    def from_dict(cls, data):
        return cls(data["model_name"], Constraint.from_dict(data["constraint"]))


class _IndexOperation(Operation):

    def model_names(self):
        return {self.model_name}

    def column_refs(self):
        return {(self.model_name, c) for c in self.index.columns}


@dataclass(frozen=True)
class CreateIndex(_IndexOperation):
    model_name: str
    index: Index

    def state_forwards(self, app_label, state):
        model = state.get_model(app_label, self.model_name)
        return state.replace_model(model.with_index(self.index))

    def describe(self):
        return f"Create index {self.index.label()} on {self.model_name}({', '.join(self.index.columns)})"

    @property
    def migration_name_fragment(self):
        return f"{self.model_name.lower()}_{self.index.label().lower()}"

    def reduce(self, other):
        if isinstance(other, DropIndex) and _same(other.model_name, self.model_name) \
                and other.index.normalized() == self.index.normalized():
            return []
        return None

    def to_dict(self):
        return {"type": "CreateIndex", "model_name": self.model_name, "index": self.index.to_dict()}

    @classmethod
    def from_dict(cls, data):
        return cls(data["model_name"], Index.from_dict(data["index"]))


@dataclass(frozen=True)
class DropIndex(_IndexOperation):
    model_name: str
    index: Index

    def state_forwards(self, app_label, state):
        model = state.get_model(app_label, self.model_name)
        return state.replace_model(model.without_index(self.index))

    def describe(self):
        return f"Drop index {self.index.label()} from {self.model_name}"

    @property
    def migration_name_fragment(self):
        return f"remove_{self.model_name.lower()}_{self.index.label().lower()}"

    def to_dict(self):
        return {"type": "DropIndex", "model_name": self.model_name, "index": self.index.to_dict()}

    @classmethod
    def from_dict(cls, data):
        return cls(data["model_name"], Index.from_dict(data["index"]))


@dataclass(frozen=True)
class Raw(Operation):
    """Escape hatch for SQL outside the structural model (backfills, data fixes)."""
    sql: str
    reverse_sql: Optional[str] = None

    structural = False

    def state_forwards(self, app_label, state):
        return state

    def describe(self):
        first_line = self.sql.strip().splitlines()[0] if self.sql.strip() else ""
        return f"Raw SQL: {first_line[:60]}"

    @property
    def migration_name_fragment(self):
        return "raw_sql"

    def to_dict(self):
        return {"type": "Raw", "sql": self.sql, "reverse_sql": self.reverse_sql}

    @classmethod
    def from_dict(cls, data):
        return cls(data["sql"], data.get("reverse_sql"))


OPERATION_TYPES = {
    cls.__name__: cls
    for cls in (CreateTable, DropTable, RenameTable, AddColumn, DropColumn, RenameColumn,
                AlterColumn, AddConstraint, DropConstraint, CreateIndex, DropIndex, Raw)
}


def operation_from_dict(data: dict[str, Any]) -> Operation:
    try:
        cls = OPERATION_TYPES[data["type"]]
    except KeyError:
        raise InvalidState(f"Unknown operation type: {data.get('type')!r}") from None
    return cls.from_dict(data)
