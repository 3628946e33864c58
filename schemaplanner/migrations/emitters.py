"""
Backend-specific DDL emitters.

Each operation kind has one `_emit_<Operation>` method on `SchemaEditor`; the
`Backend` enum picks the subclass. Emitters read the state *before* the operation to
resolve table names, `emit_migration` folds the state while emitting.
"""
from dataclasses import replace
from decimal import Decimal
from enum import Enum
from typing import Any

from schemaplanner.migrations.errors import UnsupportedFeature
from schemaplanner.migrations.migration import Migration
from schemaplanner.migrations.operations import (
    AddColumn,
    AddConstraint,
    AlterColumn,
    CreateIndex,
    CreateTable,
    DropColumn,
    DropConstraint,
    DropIndex,
    DropTable,
    Operation,
    Raw,
    RenameColumn,
    RenameTable,
)
from schemaplanner.migrations.state import (
    AutoGeneration,
    Constraint,
    ConstraintKind,
    FieldState,
    FieldType,
    Index,
    ProjectState,
    TypeKind,
)


class Backend(str, Enum):
    POSTGRESQL = "postgresql"
    MYSQL = "mysql"
    SQLITE = "sqlite"


CONSTRAINT_SUFFIXES = {
    ConstraintKind.UNIQUE: "uniq",
    ConstraintKind.CHECK: "check",
    ConstraintKind.PRIMARY_KEY: "pk",
    ConstraintKind.FOREIGN_KEY: "fk",
}

SQL_KEYWORD_DEFAULTS = ("CURRENT_TIMESTAMP", "NOW()", "CURRENT_DATE", "CURRENT_TIME")


def format_default(value: Any) -> str:
    """Format a Python value as a SQL DEFAULT literal."""
    if value is None:
        return "NULL"
    if isinstance(value, bool):
        return "TRUE" if value else "FALSE"
    if isinstance(value, (int, float, Decimal)):
        return str(value)
    if isinstance(value, str) and value.upper() in SQL_KEYWORD_DEFAULTS:
        return value.upper()
    escaped = str(value).replace("'", "''")
    return f"'{escaped}'"


class SchemaEditor:
    backend: Backend = None
    quote_char = '"'

    type_names = {
        TypeKind.SMALLINT: "SMALLINT",
        TypeKind.INTEGER: "INTEGER",
        TypeKind.BIGINT: "BIGINT",
        TypeKind.TEXT: "TEXT",
        TypeKind.BOOLEAN: "BOOLEAN",
        TypeKind.UUID: "UUID",
        TypeKind.TIMESTAMP: "TIMESTAMP",
        TypeKind.DATE: "DATE",
        TypeKind.TIME: "TIME",
        TypeKind.JSON: "JSON",
    }

    def __init__(self):
        self._handlers = {
            CreateTable: self._emit_CreateTable,
            DropTable: self._emit_DropTable,
            RenameTable: self._emit_RenameTable,
            AddColumn: self._emit_AddColumn,
            DropColumn: self._emit_DropColumn,
            RenameColumn: self._emit_RenameColumn,
            AlterColumn: self._emit_AlterColumn,
            AddConstraint: self._emit_AddConstraint,
            DropConstraint: self._emit_DropConstraint,
            CreateIndex: self._emit_CreateIndex,
            DropIndex: self._emit_DropIndex,
            Raw: self._emit_Raw,
        }

    # -- public API ---------------------------------------------------------------

    def emit(self, operation: Operation, app_label: str, state: ProjectState) -> list[str]:
        handler = self._handlers.get(type(operation))
        if handler is None:
            raise UnsupportedFeature(self.backend, operation, "unknown operation kind")
        return handler(operation, app_label, state)

    def emit_migration(self, migration: Migration, state: ProjectState = None) -> list[str]:
        state = state if state is not None else ProjectState()
        statements = []
        for operation in migration.operations:
            statements.extend(self.emit(operation, migration.app_label, state))
            state = operation.state_forwards(migration.app_label, state)
        return statements

    # -- building blocks -----------------------------------------------------------

    def quote(self, name: str) -> str:
        return f"{self.quote_char}{name}{self.quote_char}"

    def column_type(self, field_type: FieldType) -> str:
        kind = field_type.kind
        if kind == TypeKind.VARCHAR:
            return f"VARCHAR({field_type.max_length})"
        if kind == TypeKind.DECIMAL:
            return f"DECIMAL({field_type.precision},{field_type.scale})"
        if kind == TypeKind.BINARY:
            return self.binary_type(field_type.max_length)
        if kind == TypeKind.CUSTOM:
            return field_type.raw
        return self.type_names[kind]

    def binary_type(self, max_length) -> str:
        return "BLOB"

    def column_sql(self, field: FieldState, inline_pk: bool = True) -> str:
        col_def = f"{self.quote(field.name)} {self.column_type(field.field_type)}"
        if not field.nullable:
            col_def += " NOT NULL"
        if field.unique and not field.primary_key:
            col_def += " UNIQUE"
        if field.primary_key and inline_pk:
            col_def += " PRIMARY KEY"
        if field.default is not None:
            col_def += f" DEFAULT {format_default(field.default)}"
        elif field.auto != AutoGeneration.NONE and field.field_type.kind == TypeKind.TIMESTAMP:
            col_def += " DEFAULT CURRENT_TIMESTAMP"
        return col_def

    def table_of(self, app_label: str, model_name: str, state: ProjectState) -> str:
        return state.get_model(app_label, model_name).table_name

    def target_table(self, constraint: Constraint, state: ProjectState) -> str:
        app_label, model_name = constraint.to_model
        if state.has_model(app_label, model_name):
            return state.get_model(app_label, model_name).table_name
        return f"{app_label}_{model_name.lower()}"

    def constraint_name(self, table: str, constraint: Constraint) -> str:
        if constraint.name:
            return constraint.name
        return "_".join((table,) + constraint.columns + (CONSTRAINT_SUFFIXES[constraint.kind],))

    def index_name(self, table: str, index: Index) -> str:
        return index.name or "_".join((table,) + index.columns + ("idx",))

    def constraint_body(self, constraint: Constraint, state: ProjectState) -> str:
        columns = ", ".join(self.quote(c) for c in constraint.columns)
        if constraint.kind == ConstraintKind.UNIQUE:
            return f"UNIQUE ({columns})"
        if constraint.kind == ConstraintKind.PRIMARY_KEY:
            return f"PRIMARY KEY ({columns})"
        if constraint.kind == ConstraintKind.CHECK:
            return f"CHECK ({constraint.expression})"
        to_columns = ", ".join(self.quote(c) for c in constraint.to_columns)
        body = (f"FOREIGN KEY ({columns}) REFERENCES "
                f"{self.quote(self.target_table(constraint, state))} ({to_columns})")
        if constraint.on_delete:
            body += f" ON DELETE {constraint.on_delete.upper()}"
        return body

    def constraint_sql(self, table: str, constraint: Constraint, state: ProjectState) -> str:
        return (f"CONSTRAINT {self.quote(self.constraint_name(table, constraint))} "
                f"{self.constraint_body(constraint, state)}")

    def index_sql(self, table: str, index: Index) -> str:
        unique = "UNIQUE " if index.unique else ""
        columns = ", ".join(self.quote(c) for c in index.columns)
        return f"CREATE {unique}INDEX {self.quote(self.index_name(table, index))} ON {self.quote(table)} ({columns});"

    # -- operations ---------------------------------------------------------------

    def _emit_CreateTable(self, op: CreateTable, app_label, state):
        pk_fields = [f.name for f in op.fields if f.primary_key]
        inline_pk = len(pk_fields) == 1
        columns = [self.column_sql(f, inline_pk) for f in op.fields]
        if len(pk_fields) > 1:
            columns.append(f"PRIMARY KEY ({', '.join(self.quote(c) for c in pk_fields)})")
        columns.extend(self.constraint_sql(op.table_name, c, state) for c in op.constraints)
        statements = [f"CREATE TABLE {self.quote(op.table_name)} (\n  " + ",\n  ".join(columns) + "\n);"]
        statements.extend(self.index_sql(op.table_name, i) for i in op.indexes)
        return statements

    def _emit_DropTable(self, op: DropTable, app_label, state):
        return [f"DROP TABLE {self.quote(self.table_of(app_label, op.name, state))};"]

    def _emit_RenameTable(self, op: RenameTable, app_label, state):
        old_table = op.old_table or self.table_of(app_label, op.old_name, state)
        if not op.new_table or op.new_table == old_table:
            return []
        return [f"ALTER TABLE {self.quote(old_table)} RENAME TO {self.quote(op.new_table)};"]

    def _emit_AddColumn(self, op: AddColumn, app_label, state):
        table = self.table_of(app_label, op.model_name, state)
        return [f"ALTER TABLE {self.quote(table)} ADD COLUMN {self.column_sql(op.field)};"]

    def _emit_DropColumn(self, op: DropColumn, app_label, state):
        table = self.table_of(app_label, op.model_name, state)
        return [f"ALTER TABLE {self.quote(table)} DROP COLUMN {self.quote(op.column)};"]

    def _emit_RenameColumn(self, op: RenameColumn, app_label, state):
        table = self.table_of(app_label, op.model_name, state)
        return [f"ALTER TABLE {self.quote(table)} RENAME COLUMN "
                f"{self.quote(op.old_name)} TO {self.quote(op.new_name)};"]

    def _emit_AlterColumn(self, op: AlterColumn, app_label, state):
        raise UnsupportedFeature(self.backend, op)

    def _emit_AddConstraint(self, op: AddConstraint, app_label, state):
        table = self.table_of(app_label, op.model_name, state)
        return [f"ALTER TABLE {self.quote(table)} ADD {self.constraint_sql(table, op.constraint, state)};"]

    def _emit_DropConstraint(self, op: DropConstraint, app_label, state):
        table = self.table_of(app_label, op.model_name, state)
        name = self.constraint_name(table, op.constraint)
        return [f"ALTER TABLE {self.quote(table)} DROP CONSTRAINT {self.quote(name)};"]

    def _emit_CreateIndex(self, op: CreateIndex, app_label, state):
        return [self.index_sql(self.table_of(app_label, op.model_name, state), op.index)]

    def _emit_DropIndex(self, op: DropIndex, app_label, state):
        table = self.table_of(app_label, op.model_name, state)
        return [f"DROP INDEX {self.quote(self.index_name(table, op.index))};"]

    def _emit_Raw(self, op: Raw, app_label, state):
        return [op.sql]


class PostgreSQLSchemaEditor(SchemaEditor):
    backend = Backend.POSTGRESQL

    type_names = {
        **SchemaEditor.type_names,
        TypeKind.JSON: "JSONB",
    }

    def binary_type(self, max_length) -> str:
        return "BYTEA"

    def _emit_AlterColumn(self, op: AlterColumn, app_label, state):
        table = self.quote(self.table_of(app_label, op.model_name, state))
        column = self.quote(op.column)
        old, new = op.old_field, op.new_field
        prefix = f"ALTER TABLE {table} ALTER COLUMN {column}"
        statements = []
        if old.field_type != new.field_type:
            type_sql = self.column_type(new.field_type)
            statements.append(f"{prefix} TYPE {type_sql} USING {column}::{type_sql};")
        if old.nullable != new.nullable:
            statements.append(f"{prefix} {'DROP' if new.nullable else 'SET'} NOT NULL;")
        if old.default != new.default:
            if new.default is None:
                statements.append(f"{prefix} DROP DEFAULT;")
            else:
                statements.append(f"{prefix} SET DEFAULT {format_default(new.default)};")
        if old.unique != new.unique:
            name = self.quote(f"{self.table_of(app_label, op.model_name, state)}_{op.column}_key")
            if new.unique:
                statements.append(f"ALTER TABLE {table} ADD CONSTRAINT {name} UNIQUE ({column});")
            else:
                statements.append(f"ALTER TABLE {table} DROP CONSTRAINT {name};")
        return statements


class MySQLSchemaEditor(SchemaEditor):
    backend = Backend.MYSQL
    quote_char = "`"

    type_names = {
        **SchemaEditor.type_names,
        TypeKind.INTEGER: "INT",
        TypeKind.UUID: "CHAR(36)",
        TypeKind.TIMESTAMP: "DATETIME",
    }

    def binary_type(self, max_length) -> str:
        if max_length:
            return f"VARBINARY({max_length})"
        return "BLOB"

    def _emit_RenameTable(self, op: RenameTable, app_label, state):
        old_table = op.old_table or self.table_of(app_label, op.old_name, state)
        if not op.new_table or op.new_table == old_table:
            return []
        return [f"RENAME TABLE {self.quote(old_table)} TO {self.quote(op.new_table)};"]

    def _emit_AlterColumn(self, op: AlterColumn, app_label, state):
        # MODIFY needs the full column definition.
        table = self.table_of(app_label, op.model_name, state)
        field = op.new_field.renamed(op.column)
        return [f"ALTER TABLE {self.quote(table)} MODIFY COLUMN {self.column_sql(field, inline_pk=False)};"]

    def _emit_DropConstraint(self, op: DropConstraint, app_label, state):
        table = self.table_of(app_label, op.model_name, state)
        name = self.quote(self.constraint_name(table, op.constraint))
        kind = op.constraint.kind
        if kind == ConstraintKind.FOREIGN_KEY:
            return [f"ALTER TABLE {self.quote(table)} DROP FOREIGN KEY {name};"]
        if kind == ConstraintKind.UNIQUE:
            return [f"ALTER TABLE {self.quote(table)} DROP INDEX {name};"]
        if kind == ConstraintKind.PRIMARY_KEY:
            return [f"ALTER TABLE {self.quote(table)} DROP PRIMARY KEY;"]
        return [f"ALTER TABLE {self.quote(table)} DROP CHECK {name};"]

    def _emit_DropIndex(self, op: DropIndex, app_label, state):
        table = self.table_of(app_label, op.model_name, state)
        return [f"DROP INDEX {self.quote(self.index_name(table, op.index))} ON {self.quote(table)};"]


class SQLiteSchemaEditor(SchemaEditor):
    """SQLite can only change constraints and column definitions by rebuilding the table."""
    backend = Backend.SQLITE

    type_names = {
        **SchemaEditor.type_names,
        TypeKind.UUID: "CHAR(36)",
        TypeKind.JSON: "TEXT",
    }

    def emit_migration(self, migration: Migration, state: ProjectState = None) -> list[str]:
        """
        Constraints added to a table created earlier in the same migration are folded into
        its CREATE TABLE. Those tables resolve their foreign-key targets against the state at
        the end of the migration, since a target may be created after them.
        """
        state = state if state is not None else ProjectState()
        operations = self.inline_constraints(migration.operations)
        end_state = state
        for operation in migration.operations:
            end_state = operation.state_forwards(migration.app_label, end_state)

        statements = []
        for operation in operations:
            folded = isinstance(operation, CreateTable) and operation not in migration.operations
            statements.extend(self.emit(operation, migration.app_label, end_state if folded else state))
            state = operation.state_forwards(migration.app_label, state)
        return statements

    @staticmethod
    def inline_constraints(operations) -> list[Operation]:
        result: list[Operation] = []
        created: dict[str, int] = {}
        for operation in operations:
            if isinstance(operation, CreateTable):
                created[operation.name] = len(result)
            elif isinstance(operation, AddConstraint) and operation.model_name in created:
                position = created[operation.model_name]
                table = result[position]
                result[position] = replace(table, constraints=table.constraints + (operation.constraint,))
                continue
            elif not isinstance(operation, CreateIndex):
                for name in operation.model_names():
                    created.pop(name, None)
            result.append(operation)
        return result

    def _emit_AlterColumn(self, op, app_label, state):
        raise UnsupportedFeature(self.backend, op, "ALTER COLUMN requires a table rebuild")

    def _emit_AddConstraint(self, op, app_label, state):
        raise UnsupportedFeature(self.backend, op, "constraints can only be declared at CREATE TABLE")

    def _emit_DropConstraint(self, op, app_label, state):
        raise UnsupportedFeature(self.backend, op, "constraints can only be dropped by a table rebuild")


EDITORS = {
    Backend.POSTGRESQL: PostgreSQLSchemaEditor,
    Backend.MYSQL: MySQLSchemaEditor,
    Backend.SQLITE: SQLiteSchemaEditor,
}


def emitter_for(backend) -> SchemaEditor:
    """`backend` is a Backend or its value ("postgresql", "mysql", "sqlite")."""
    return EDITORS[Backend(backend)]()


def emit(operation: Operation, app_label: str, state: ProjectState, backend=Backend.POSTGRESQL) -> list[str]:
    return emitter_for(backend).emit(operation, app_label, state)


def emit_migration(migration: Migration, state: ProjectState = None, backend=Backend.POSTGRESQL) -> list[str]:
    return emitter_for(backend).emit_migration(migration, state)
