from typing import Any, Optional, Union

from schemaplanner.migrations.state import AutoGeneration, Constraint, FieldState, FieldType, Index


class Field:
    def __init__(
        self,
        primary_key: bool = False,
        nullable: bool = True,
        unique: bool = False,
        default: Any = None,
        index: bool = False,
        comment: str = None,
    ):
        self.primary_key = primary_key
        self.nullable = nullable and not primary_key
        self.unique = unique
        self.default = default
        self.index = index
        self.comment = comment
        self.name: Optional[str] = None

    def __set_name__(self, owner, name):
        self.name = name

    def get_field_type(self) -> FieldType:
        raise NotImplementedError("Subclasses must implement get_field_type()")

    def get_auto(self) -> AutoGeneration:
        return AutoGeneration.NONE

    def deconstruct(self, name: str = None) -> FieldState:
        return FieldState(
            name=name or self.name,
            field_type=self.get_field_type(),
            nullable=self.nullable,
            unique=self.unique,
            primary_key=self.primary_key,
            default=self.default,
            auto=self.get_auto(),
        )

    def get_constraints(self, name: str, app_label: str) -> list[Constraint]:
        return []

    def get_indexes(self, name: str) -> list[Index]:
        if self.index and not self.unique and not self.primary_key:
            return [Index((name,))]
        return []

    def __repr__(self):
        return f"<{type(self).__name__} {self.name or '?'}: {self.get_field_type()}>"


class IntegerField(Field):
    def __init__(self, auto_increment: bool = False, **kwargs):
        super().__init__(**kwargs)
        self.auto_increment = auto_increment

    def get_field_type(self) -> FieldType:
        return FieldType.integer()

    def get_auto(self) -> AutoGeneration:
        return AutoGeneration.ON_CREATE if self.auto_increment else AutoGeneration.NONE


class BigIntegerField(IntegerField):
    def get_field_type(self) -> FieldType:
        return FieldType.bigint()


class SmallIntegerField(IntegerField):
    def get_field_type(self) -> FieldType:
        return FieldType.smallint()


class CharField(Field):
    def __init__(self, max_length: int = 255, **kwargs):
        super().__init__(**kwargs)
        self.max_length = max_length

    def get_field_type(self) -> FieldType:
        return FieldType.varchar(self.max_length)


class TextField(Field):
    def get_field_type(self) -> FieldType:
        return FieldType.text()


class DecimalField(Field):
    def __init__(self, precision: int = 10, scale: int = 2, **kwargs):
        super().__init__(**kwargs)
        self.precision = precision
        self.scale = scale

    def get_field_type(self) -> FieldType:
        return FieldType.decimal(self.precision, self.scale)


class BooleanField(Field):
    def get_field_type(self) -> FieldType:
        return FieldType.boolean()


class DateTimeField(Field):
    def __init__(self, auto_now: bool = False, auto_now_add: bool = False, **kwargs):
        super().__init__(**kwargs)
        self.auto_now = auto_now
        self.auto_now_add = auto_now_add

    def get_field_type(self) -> FieldType:
        return FieldType.timestamp()

    def get_auto(self) -> AutoGeneration:
        if self.auto_now:
            return AutoGeneration.ON_UPDATE
        if self.auto_now_add:
            return AutoGeneration.ON_CREATE
        return AutoGeneration.NONE


class DateField(DateTimeField):
    def get_field_type(self) -> FieldType:
        return FieldType.date()


class TimeField(Field):
    def get_field_type(self) -> FieldType:
        return FieldType.time()


class TimestampField(Field):
    def __init__(self, auto_update: bool = False, **kwargs):
        super().__init__(**kwargs)
        self.auto_update = auto_update

    def get_field_type(self) -> FieldType:
        return FieldType.timestamp()

    def get_auto(self) -> AutoGeneration:
        return AutoGeneration.ON_UPDATE if self.auto_update else AutoGeneration.ON_CREATE


class JsonField(Field):
    def get_field_type(self) -> FieldType:
        return FieldType.json()


class BinaryField(Field):
    def __init__(self, max_length: Optional[int] = None, **kwargs):
        super().__init__(**kwargs)
        self.max_length = max_length

    def get_field_type(self) -> FieldType:
        return FieldType.binary(self.max_length)


class UUIDField(Field):
    def get_field_type(self) -> FieldType:
        return FieldType.uuid()


class RawField(Field):
    """A column type the planner does not model; compared by its SQL text."""

    def __init__(self, sql_type: str, **kwargs):
        super().__init__(**kwargs)
        self.sql_type = sql_type

    def get_field_type(self) -> FieldType:
        return FieldType.custom(self.sql_type)


class EnumField(RawField):
    def __init__(self, choices: list[str], **kwargs):
        self.choices = choices
        choices_str = ", ".join(f"'{choice}'" for choice in choices)
        super().__init__(f"ENUM({choices_str})", **kwargs)


class FloatField(RawField):
    def __init__(self, **kwargs):
        super().__init__("FLOAT", **kwargs)


class DoubleField(RawField):
    def __init__(self, **kwargs):
        super().__init__("DOUBLE", **kwargs)


class IPAddressField(CharField):
    def __init__(self, **kwargs):
        super().__init__(max_length=45, **kwargs)  # Supports both IPv4 and IPv6


class URLField(CharField):
    def __init__(self, **kwargs):
        super().__init__(max_length=2083, **kwargs)


class EmailField(CharField):
    def __init__(self, **kwargs):
        super().__init__(max_length=254, **kwargs)  # Maximum email length per RFC 5321


class ForeignKeyField(IntegerField):
    """
    Integer column plus a foreign-key constraint.

    `to` is a Model class, "app.Model" or a bare "Model" in the declaring app.
    """

    def __init__(self, to: Union[str, type], to_column: str = "id",
                 on_delete: str = "CASCADE", big: bool = False, **kwargs):
        super().__init__(**kwargs)
        self.to = to
        self.to_column = to_column
        self.on_delete = on_delete
        self.big = big

    def get_field_type(self) -> FieldType:
        return FieldType.bigint() if self.big else FieldType.integer()

    def target(self, app_label: str) -> tuple[str, str]:
        if isinstance(self.to, type):
            return (self.to.get_app_label(), self.to.__name__)
        if "." in self.to:
            app, model = self.to.rsplit(".", 1)
            return (app, model)
        return (app_label, self.to)

    def get_constraints(self, name: str, app_label: str) -> list[Constraint]:
        return [Constraint.foreign_key(name, self.target(app_label), self.to_column, self.on_delete)]

    def get_indexes(self, name: str) -> list[Index]:
        if self.unique or self.primary_key:
            return []
        return [Index((name,))]
