import re
from typing import Optional

import inflect
from slugify import slugify

from schemaplanner.database.fields.Fields import Field
from schemaplanner.migrations.state import Constraint, Index, ModelState

# Initialize the inflect engine
p = inflect.engine()


def split_camel_case(word: str) -> str:
    """Split PascalCase or camelCase into space-separated words."""
    return re.sub(r'(?<!^)(?=[A-Z])', ' ', word)


def transform_word(raw_word: str) -> str:
    """`DestructionLog` -> `destruction_logs`, the plural snake-case table word."""
    spaced = split_camel_case(raw_word)  # e.g. "Destruction Log"
    plural_spaced = p.plural(spaced.lower())  # e.g. "destruction logs"
    return slugify(plural_spaced, separator="_")


def app_label_for_module(module: str) -> str:
    """`lib.blog.models.post` -> `blog`; otherwise the module's top package."""
    parts = module.split(".")
    if "models" in parts:
        position = parts.index("models")
        if position > 0:
            return parts[position - 1]
    return parts[0]


class ModelMeta(type):
    def __new__(mcs, name, bases, attrs):
        cls = super().__new__(mcs, name, bases, attrs)

        # Inherited fields first, then this class's, in declaration order.
        fields: dict[str, Field] = {}
        for base in reversed(cls.__mro__[1:]):
            fields.update(base.__dict__.get("__fields__", {}))
        for attr_name, attr_value in attrs.items():
            if isinstance(attr_value, Field):
                fields[attr_name] = attr_value
        cls.__fields__ = fields
        return cls


class Model(metaclass=ModelMeta):
    """
    Declarative model base.

    Example:
        class Post(Model):
            __app_label__ = "blog"
            __indexes__ = [Index(("title", "created_at"))]

            id = IntegerField(primary_key=True, auto_increment=True)
            title = CharField(max_length=200, nullable=False)
            author = ForeignKeyField("auth.User")
    """
    __abstract__: bool = True
    __app_label__: Optional[str] = None
    __table__: Optional[str] = None
    __constraints__: list[Constraint] = []
    __indexes__: list[Index] = []

    @classmethod
    def is_abstract(cls) -> bool:
        return cls.__dict__.get("__abstract__", False)

    @classmethod
    def get_fields(cls) -> dict[str, Field]:
        return dict(cls.__fields__)

    @classmethod
    def get_app_label(cls) -> str:
        return cls.__app_label__ or app_label_for_module(cls.__module__)

    @classmethod
    def get_table_name(cls) -> str:
        if cls.__dict__.get("__table__"):
            return cls.__table__
        return f"{cls.get_app_label()}_{transform_word(cls.__name__)}"

    @classmethod
    def to_state(cls) -> ModelState:
        if cls.is_abstract():
            raise TypeError(f"{cls.__name__} is abstract and has no table.")
        app_label = cls.get_app_label()
        fields, constraints, indexes = [], [], []
        for name, field in cls.__fields__.items():
            fields.append(field.deconstruct(name))
            constraints.extend(field.get_constraints(name, app_label))
            indexes.extend(field.get_indexes(name))
        constraints.extend(cls.__constraints__)
        indexes.extend(cls.__indexes__)
        return ModelState(app_label, cls.__name__, cls.get_table_name(), fields, constraints, indexes)
