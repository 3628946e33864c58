"""
Immutable snapshot types describing models, fields and constraints at one point in time.

A ProjectState is either built from the declared models (the `after` side of a diff) or
reconstructed by folding every recorded operation over the empty state (the `before`
side). Nothing in here mutates in place: every `with_*`/`without_*`/`rename_*` helper
returns a fresh value.
"""
import datetime
from dataclasses import dataclass, replace
from decimal import Decimal
from enum import Enum
from types import MappingProxyType
from typing import Any, Iterable, Optional
from uuid import UUID

from schemaplanner.migrations.errors import InvalidState


class TypeKind(str, Enum):
    SMALLINT = "smallint"
    INTEGER = "integer"
    BIGINT = "bigint"
    VARCHAR = "varchar"
    TEXT = "text"
    BOOLEAN = "boolean"
    UUID = "uuid"
    TIMESTAMP = "timestamp"
    DATE = "date"
    TIME = "time"
    DECIMAL = "decimal"
    BINARY = "binary"
    JSON = "json"
    CUSTOM = "custom"


TYPE_FAMILIES = {
    TypeKind.SMALLINT: "integer",
    TypeKind.INTEGER: "integer",
    TypeKind.BIGINT: "integer",
    TypeKind.VARCHAR: "string",
    TypeKind.TEXT: "string",
    TypeKind.BOOLEAN: "boolean",
    TypeKind.UUID: "uuid",
    TypeKind.TIMESTAMP: "temporal",
    TypeKind.DATE: "temporal",
    TypeKind.TIME: "temporal",
    TypeKind.DECIMAL: "decimal",
    TypeKind.BINARY: "binary",
    TypeKind.JSON: "json",
    TypeKind.CUSTOM: "custom",
}


@dataclass(frozen=True)
class FieldType:
    """Logical column type. Only the parameters meaningful for `kind` are set."""
    kind: TypeKind
    max_length: Optional[int] = None
    precision: Optional[int] = None
    scale: Optional[int] = None
    raw: Optional[str] = None

    @classmethod
    def smallint(cls) -> "FieldType":
        return cls(TypeKind.SMALLINT)

    @classmethod
    def integer(cls) -> "FieldType":
        return cls(TypeKind.INTEGER)

    @classmethod
    def bigint(cls) -> "FieldType":
        return cls(TypeKind.BIGINT)

    @classmethod
    def varchar(cls, max_length: int = 255) -> "FieldType":
        return cls(TypeKind.VARCHAR, max_length=max_length)

    @classmethod
    def text(cls) -> "FieldType":
        return cls(TypeKind.TEXT)

    @classmethod
    def boolean(cls) -> "FieldType":
        return cls(TypeKind.BOOLEAN)

    @classmethod
    def uuid(cls) -> "FieldType":
        return cls(TypeKind.UUID)

    @classmethod
    def timestamp(cls) -> "FieldType":
        return cls(TypeKind.TIMESTAMP)

    @classmethod
    def date(cls) -> "FieldType":
        return cls(TypeKind.DATE)

    @classmethod
    def time(cls) -> "FieldType":
        return cls(TypeKind.TIME)

    @classmethod
    def decimal(cls, precision: int = 10, scale: int = 2) -> "FieldType":
        return cls(TypeKind.DECIMAL, precision=precision, scale=scale)

    @classmethod
    def binary(cls, max_length: Optional[int] = None) -> "FieldType":
        return cls(TypeKind.BINARY, max_length=max_length)

    @classmethod
    def json(cls) -> "FieldType":
        return cls(TypeKind.JSON)

    @classmethod
    def custom(cls, raw: str) -> "FieldType":
        return cls(TypeKind.CUSTOM, raw=raw)

    @property
    def family(self) -> str:
        return TYPE_FAMILIES[self.kind]

    def is_compatible(self, other: "FieldType") -> bool:
        """Same logical family; raw types only match their own (case-insensitive) text."""
        if self.family != other.family:
            return False
        if self.kind == TypeKind.CUSTOM:
            return (self.raw or "").strip().lower() == (other.raw or "").strip().lower()
        return True

    def __str__(self):
        if self.kind == TypeKind.VARCHAR:
            return f"varchar({self.max_length})"
        if self.kind == TypeKind.DECIMAL:
            return f"decimal({self.precision},{self.scale})"
        if self.kind == TypeKind.BINARY and self.max_length:
            return f"binary({self.max_length})"
        if self.kind == TypeKind.CUSTOM:
            return self.raw or "custom"
        return self.kind.value

    def to_dict(self) -> dict[str, Any]:
        data = {"kind": self.kind.value}
        for key in ("max_length", "precision", "scale", "raw"):
            value = getattr(self, key)
            if value is not None:
                data[key] = value
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "FieldType":
        return cls(
            TypeKind(data["kind"]),
            max_length=data.get("max_length"),
            precision=data.get("precision"),
            scale=data.get("scale"),
            raw=data.get("raw"),
        )


def encode_default(value: Any) -> Any:
    """
    JSON-safe form of a field default that decodes back to an equal value.

    Scalars are stored as they are; anything else becomes a one-key tagged object, so a
    plain JSON object in stored history is always a tag.
    """
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    if isinstance(value, Decimal):
        return {"decimal": str(value)}
    if isinstance(value, datetime.datetime):
        return {"datetime": value.isoformat()}
    if isinstance(value, datetime.date):
        return {"date": value.isoformat()}
    if isinstance(value, datetime.time):
        return {"time": value.isoformat()}
    if isinstance(value, UUID):
        return {"uuid": str(value)}
    if isinstance(value, tuple):
        return {"tuple": [encode_default(item) for item in value]}
    if isinstance(value, list):
        return {"list": [encode_default(item) for item in value]}
    if isinstance(value, dict):
        return {"dict": [[encode_default(k), encode_default(v)] for k, v in value.items()]}
    raise TypeError(f"Cannot store default {value!r} of type {type(value).__name__}")


_DEFAULT_DECODERS = {
    "decimal": Decimal,
    "datetime": datetime.datetime.fromisoformat,
    "date": datetime.date.fromisoformat,
    "time": datetime.time.fromisoformat,
    "uuid": UUID,
    "tuple": lambda items: tuple(decode_default(item) for item in items),
    "list": lambda items: [decode_default(item) for item in items],
    "dict": lambda pairs: {decode_default(k): decode_default(v) for k, v in pairs},
}


def decode_default(data: Any) -> Any:
    if not isinstance(data, dict):
        return data
    if len(data) != 1:
        raise InvalidState(f"Malformed stored default {data!r}")
    (tag, payload), = data.items()
    try:
        decoder = _DEFAULT_DECODERS[tag]
    except KeyError:
        raise InvalidState(f"Unknown stored default tag {tag!r}") from None
    return decoder(payload)


class AutoGeneration(str, Enum):
    NONE = "none"
    ON_CREATE = "on_create"
    ON_UPDATE = "on_update"


@dataclass(frozen=True)
class FieldState:
    """One column's declared shape."""
    name: str
    field_type: FieldType
    nullable: bool = True
    unique: bool = False
    primary_key: bool = False
    default: Any = None
    auto: AutoGeneration = AutoGeneration.NONE

    def definition(self) -> tuple:
        """Everything but the name; two fields with equal definitions need no DDL."""
        return (self.field_type, self.nullable, self.unique, self.primary_key, self.default, self.auto)

    def same_definition(self, other: "FieldState") -> bool:
        return self.definition() == other.definition()

    def is_compatible(self, other: "FieldState") -> bool:
        return self.field_type.is_compatible(other.field_type)

    def renamed(self, name: str) -> "FieldState":
        return replace(self, name=name)

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "type": self.field_type.to_dict(),
            "nullable": self.nullable,
            "unique": self.unique,
            "primary_key": self.primary_key,
            "default": encode_default(self.default),
            "auto": self.auto.value,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "FieldState":
        return cls(
            name=data["name"],
            field_type=FieldType.from_dict(data["type"]),
            nullable=data.get("nullable", True),
            unique=data.get("unique", False),
            primary_key=data.get("primary_key", False),
            default=decode_default(data.get("default")),
            auto=AutoGeneration(data.get("auto", "none")),
        )


class ConstraintKind(str, Enum):
    UNIQUE = "unique"
    CHECK = "check"
    PRIMARY_KEY = "primary_key"
    FOREIGN_KEY = "foreign_key"


def _options_tuple(options) -> tuple:
    if not options:
        return ()
    if isinstance(options, dict):
        options = options.items()
    return tuple(sorted((str(k), v) for k, v in options))


@dataclass(frozen=True)
class Constraint:
    """A multi-column table constraint."""
    kind: ConstraintKind
    columns: tuple[str, ...] = ()
    name: Optional[str] = None
    expression: Optional[str] = None
    to_model: Optional[tuple[str, str]] = None
    to_columns: tuple[str, ...] = ()
    on_delete: Optional[str] = None

    def __post_init__(self):
        object.__setattr__(self, "kind", ConstraintKind(self.kind))
        object.__setattr__(self, "columns", tuple(self.columns))
        object.__setattr__(self, "to_columns", tuple(self.to_columns))
        if self.to_model is not None:
            object.__setattr__(self, "to_model", tuple(self.to_model))

    @classmethod
    def unique(cls, *columns: str, name: str = None) -> "Constraint":
        return cls(ConstraintKind.UNIQUE, columns, name=name)

    @classmethod
    def check(cls, expression: str, name: str = None) -> "Constraint":
        return cls(ConstraintKind.CHECK, (), name=name, expression=expression)

    @classmethod
    def primary_key(cls, *columns: str, name: str = None) -> "Constraint":
        return cls(ConstraintKind.PRIMARY_KEY, columns, name=name)

    @classmethod
    def foreign_key(cls, columns, to: tuple[str, str], to_columns=("id",),
                    on_delete: str = "CASCADE", name: str = None) -> "Constraint":
        if isinstance(columns, str):
            columns = (columns,)
        if isinstance(to_columns, str):
            to_columns = (to_columns,)
        return cls(ConstraintKind.FOREIGN_KEY, columns, name=name, to_model=to,
                   to_columns=to_columns, on_delete=on_delete)

    def normalized(self) -> tuple:
        """Canonical form used for comparison; literal column order is irrelevant."""
        if self.kind == ConstraintKind.FOREIGN_KEY:
            pairs = tuple(sorted(zip(self.columns, self.to_columns)))
            return (self.kind.value, self.name, pairs, self.to_model, (self.on_delete or "").upper())
        expression = " ".join(self.expression.split()) if self.expression else None
        return (self.kind.value, self.name, tuple(sorted(self.columns)), expression)

    def references_column(self, column: str) -> bool:
        return column in self.columns

    def rename_column(self, old: str, new: str) -> "Constraint":
        if old not in self.columns:
            return self
        return replace(self, columns=tuple(new if c == old else c for c in self.columns))

    def retarget(self, old_key: tuple[str, str], new_key: tuple[str, str]) -> "Constraint":
        if self.to_model != tuple(old_key):
            return self
        return replace(self, to_model=tuple(new_key))

    def rename_target_column(self, target: tuple[str, str], old: str, new: str) -> "Constraint":
        if self.to_model != tuple(target) or old not in self.to_columns:
            return self
        return replace(self, to_columns=tuple(new if c == old else c for c in self.to_columns))

    def label(self) -> str:
        if self.name:
            return self.name
        if self.kind == ConstraintKind.CHECK:
            return "check"
        return "_".join(self.columns + (self.kind.value,))

    def to_dict(self) -> dict[str, Any]:
        data = {"kind": self.kind.value, "columns": list(self.columns)}
        if self.name is not None:
            data["name"] = self.name
        if self.expression is not None:
            data["expression"] = self.expression
        if self.to_model is not None:
            data["to_model"] = list(self.to_model)
            data["to_columns"] = list(self.to_columns)
            data["on_delete"] = self.on_delete
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Constraint":
        return cls(
            ConstraintKind(data["kind"]),
            tuple(data.get("columns", ())),
            name=data.get("name"),
            expression=data.get("expression"),
            to_model=tuple(data["to_model"]) if data.get("to_model") else None,
            to_columns=tuple(data.get("to_columns", ())),
            on_delete=data.get("on_delete"),
        )


@dataclass(frozen=True)
class Index:
    columns: tuple[str, ...]
    name: Optional[str] = None
    unique: bool = False
    options: tuple = ()

    def __post_init__(self):
        columns = (self.columns,) if isinstance(self.columns, str) else tuple(self.columns)
        object.__setattr__(self, "columns", columns)
        object.__setattr__(self, "options", _options_tuple(self.options))

    def normalized(self) -> tuple:
        return (self.name, tuple(sorted(self.columns)), self.unique, self.options)

    def references_column(self, column: str) -> bool:
        return column in self.columns

    def rename_column(self, old: str, new: str) -> "Index":
        if old not in self.columns:
            return self
        return replace(self, columns=tuple(new if c == old else c for c in self.columns))

    def label(self) -> str:
        return self.name or "_".join(self.columns)

    def to_dict(self) -> dict[str, Any]:
        data = {"columns": list(self.columns), "unique": self.unique}
        if self.name is not None:
            data["name"] = self.name
        if self.options:
            data["options"] = dict(self.options)
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Index":
        return cls(tuple(data["columns"]), name=data.get("name"),
                   unique=data.get("unique", False), options=data.get("options") or ())


@dataclass(frozen=True, eq=False)
class ModelState:
    """
    One table's declared shape.

    Field order is kept for output determinism but ignored by `==`; constraints and
    indexes compare by their normalized forms.
    """
    app_label: str
    name: str
    table_name: str
    fields: tuple[FieldState, ...] = ()
    constraints: tuple[Constraint, ...] = ()
    indexes: tuple[Index, ...] = ()

    def __post_init__(self):
        object.__setattr__(self, "fields", tuple(self.fields))
        object.__setattr__(self, "constraints", tuple(self.constraints))
        object.__setattr__(self, "indexes", tuple(self.indexes))
        seen = set()
        for f in self.fields:
            if f.name in seen:
                raise InvalidState(f"Duplicate field `{f.name}` on {self.app_label}.{self.name}")
            seen.add(f.name)

    def diff_key(self) -> tuple[str, str]:
        return (self.app_label, self.name)

    @property
    def field_map(self) -> dict[str, FieldState]:
        return {f.name: f for f in self.fields}

    @property
    def field_names(self) -> list[str]:
        return [f.name for f in self.fields]

    def has_field(self, name: str) -> bool:
        return any(f.name == name for f in self.fields)

    def get_field(self, name: str) -> FieldState:
        for f in self.fields:
            if f.name == name:
                return f
        raise InvalidState(f"{self.app_label}.{self.name} has no field `{name}`")

    def constraint_set(self) -> frozenset:
        return frozenset(c.normalized() for c in self.constraints)

    def index_set(self) -> frozenset:
        return frozenset(i.normalized() for i in self.indexes)

    def __eq__(self, other):
        if not isinstance(other, ModelState):
            return NotImplemented
        return (
            self.app_label == other.app_label
            and self.name == other.name
            and self.table_name == other.table_name
            and self.field_map == other.field_map
            and self.constraint_set() == other.constraint_set()
            and self.index_set() == other.index_set()
        )

    __hash__ = None

    def clone(self, **changes) -> "ModelState":
        return replace(self, **changes)

    def with_field(self, field_state: FieldState) -> "ModelState":
        if self.has_field(field_state.name):
            raise InvalidState(f"{self.app_label}.{self.name} already has a field `{field_state.name}`")
        return replace(self, fields=self.fields + (field_state,))

    def without_field(self, name: str) -> "ModelState":
        self.get_field(name)
        return replace(self, fields=tuple(f for f in self.fields if f.name != name))

    def replace_field(self, name: str, field_state: FieldState) -> "ModelState":
        self.get_field(name)
        return replace(self, fields=tuple(field_state if f.name == name else f for f in self.fields))

    def rename_field(self, old: str, new: str) -> "ModelState":
        """Rename a column and every constraint/index column reference to it."""
        self.get_field(old)
        if old != new and self.has_field(new):
            raise InvalidState(f"{self.app_label}.{self.name} already has a field `{new}`")
        return replace(
            self,
            fields=tuple(f.renamed(new) if f.name == old else f for f in self.fields),
            constraints=tuple(c.rename_column(old, new) for c in self.constraints),
            indexes=tuple(i.rename_column(old, new) for i in self.indexes),
        )

    def with_constraint(self, constraint: Constraint) -> "ModelState":
        if constraint.normalized() in self.constraint_set():
            raise InvalidState(f"{self.app_label}.{self.name} already has constraint {constraint.label()}")
        return replace(self, constraints=self.constraints + (constraint,))

    def without_constraint(self, constraint: Constraint) -> "ModelState":
        key = constraint.normalized()
        if key not in self.constraint_set():
            raise InvalidState(f"{self.app_label}.{self.name} has no constraint {constraint.label()}")
        return replace(self, constraints=tuple(c for c in self.constraints if c.normalized() != key))

    def with_index(self, index: Index) -> "ModelState":
        if index.normalized() in self.index_set():
            raise InvalidState(f"{self.app_label}.{self.name} already has index {index.label()}")
        return replace(self, indexes=self.indexes + (index,))

    def without_index(self, index: Index) -> "ModelState":
        key = index.normalized()
        if key not in self.index_set():
            raise InvalidState(f"{self.app_label}.{self.name} has no index {index.label()}")
        return replace(self, indexes=tuple(i for i in self.indexes if i.normalized() != key))

    def foreign_keys(self) -> list[Constraint]:
        return [c for c in self.constraints if c.kind == ConstraintKind.FOREIGN_KEY]

    def to_dict(self) -> dict[str, Any]:
        return {
            "app_label": self.app_label,
            "name": self.name,
            "table_name": self.table_name,
            "fields": [f.to_dict() for f in self.fields],
            "constraints": [c.to_dict() for c in self.constraints],
            "indexes": [i.to_dict() for i in self.indexes],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ModelState":
        return cls(
            app_label=data["app_label"],
            name=data["name"],
            table_name=data["table_name"],
            fields=tuple(FieldState.from_dict(f) for f in data.get("fields", ())),
            constraints=tuple(Constraint.from_dict(c) for c in data.get("constraints", ())),
            indexes=tuple(Index.from_dict(i) for i in data.get("indexes", ())),
        )


class ProjectState:
    """
    The full schema snapshot: (app label, model name) -> ModelState, plus the
    inter-app dependency edges recorded by migrations as (app, dep_app, dep_name).
    """

    def __init__(self, models: Iterable[ModelState] = (), dependencies: Iterable[tuple] = ()):
        self._models: dict[tuple[str, str], ModelState] = {}
        for model in models:
            key = model.diff_key()
            if key in self._models:
                raise InvalidState(f"Duplicate model {key[0]}.{key[1]}")
            self._models[key] = model
        self._dependencies = frozenset(tuple(edge) for edge in dependencies)

    @classmethod
    def from_models(cls, declarations) -> "ProjectState":
        """Build the `after` snapshot from declared model classes (or ModelStates)."""
        states = []
        for declaration in declarations:
            states.append(declaration if isinstance(declaration, ModelState) else declaration.to_state())
        return cls(states)

    @property
    def models(self) -> MappingProxyType:
        return MappingProxyType(self._models)

    @property
    def dependencies(self) -> frozenset:
        return self._dependencies

    def __len__(self):
        return len(self._models)

    def __iter__(self):
        return iter(self._models.values())

    def __contains__(self, key):
        return tuple(key) in self._models

    def __eq__(self, other):
        if not isinstance(other, ProjectState):
            return NotImplemented
        return self._models == other._models and self._dependencies == other._dependencies

    __hash__ = None

    def __repr__(self):
        return f"<ProjectState models={list(self._models)}>"

    def apps(self) -> list[str]:
        seen = []
        for app_label, _ in self._models:
            if app_label not in seen:
                seen.append(app_label)
        return seen

    def models_for_app(self, app_label: str) -> list[ModelState]:
        return [m for (app, _), m in self._models.items() if app == app_label]

    def has_model(self, app_label: str, name: str) -> bool:
        return (app_label, name) in self._models

    def get_model(self, app_label: str, name: str) -> ModelState:
        try:
            return self._models[(app_label, name)]
        except KeyError:
            raise InvalidState(f"Model {app_label}.{name} does not exist") from None

    def clone(self) -> "ProjectState":
        return ProjectState(self._models.values(), self._dependencies)

    def _rebuild(self, models: Iterable[ModelState]) -> "ProjectState":
        return ProjectState(models, self._dependencies)

    def with_model(self, model: ModelState) -> "ProjectState":
        if model.diff_key() in self._models:
            raise InvalidState(f"Model {model.app_label}.{model.name} already exists")
        return self._rebuild(list(self._models.values()) + [model])

    def without_model(self, app_label: str, name: str) -> "ProjectState":
        self.get_model(app_label, name)
        return self._rebuild(m for k, m in self._models.items() if k != (app_label, name))

    def replace_model(self, model: ModelState) -> "ProjectState":
        key = model.diff_key()
        self.get_model(*key)
        return self._rebuild(model if k == key else m for k, m in self._models.items())

    def rename_model(self, app_label: str, old_name: str, new_name: str,
                     table_name: str = None) -> "ProjectState":
        """Rename a model (and optionally its table), retargeting foreign keys to it."""
        model = self.get_model(app_label, old_name)
        if old_name != new_name and self.has_model(app_label, new_name):
            raise InvalidState(f"Model {app_label}.{new_name} already exists")
        renamed = model.clone(name=new_name, table_name=table_name or model.table_name)
        old_key, new_key = (app_label, old_name), (app_label, new_name)
        models = []
        for key, current in self._models.items():
            if key == old_key:
                current = renamed
            if any(c.to_model == old_key for c in current.constraints):
                current = current.clone(constraints=tuple(c.retarget(old_key, new_key) for c in current.constraints))
            models.append(current)
        return self._rebuild(models)

    def rename_field(self, app_label: str, model_name: str, old: str, new: str) -> "ProjectState":
        """Rename a column, following foreign keys that target it from any model."""
        key = (app_label, model_name)
        model = self.get_model(*key).rename_field(old, new)
        models = []
        for current_key, current in self._models.items():
            if current_key == key:
                current = model
            if any(c.to_model == key for c in current.constraints):
                current = current.clone(
                    constraints=tuple(c.rename_target_column(key, old, new) for c in current.constraints)
                )
            models.append(current)
        return self._rebuild(models)

    def with_dependencies(self, edges: Iterable[tuple]) -> "ProjectState":
        return ProjectState(self._models.values(), self._dependencies | {tuple(e) for e in edges})

    def to_dict(self) -> dict[str, Any]:
        return {
            "models": [m.to_dict() for m in self._models.values()],
            "dependencies": sorted(list(e) for e in self._dependencies),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ProjectState":
        return cls(
            (ModelState.from_dict(m) for m in data.get("models", ())),
            (tuple(e) for e in data.get("dependencies", ())),
        )
