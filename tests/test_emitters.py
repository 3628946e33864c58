from decimal import Decimal
from unittest import TestCase

from schemaplanner.migrations.autodetector import MigrationAutodetector
from schemaplanner.migrations.emitters import (
    Backend,
    MySQLSchemaEditor,
    emit,
    emit_migration,
    emitter_for,
    format_default,
)
from schemaplanner.migrations.errors import UnsupportedFeature
from schemaplanner.migrations.migration import Migration
from schemaplanner.migrations.operations import (
    AddColumn,
    AddConstraint,
    AlterColumn,
    CreateTable,
    DropConstraint,
    DropIndex,
    Raw,
    RenameColumn,
    RenameTable,
)
from schemaplanner.migrations.state import (
    AutoGeneration,
    Constraint,
    FieldState,
    FieldType,
    Index,
    ModelState,
    ProjectState,
)

PK = FieldState("id", FieldType.integer(), nullable=False, primary_key=True, auto=AutoGeneration.ON_CREATE)
EMAIL = FieldState("email", FieldType.varchar(255))
AGE = FieldState("age", FieldType.integer())
AUTHOR_FK = Constraint.foreign_key("author_id", ("auth", "User"))


def project():
    return ProjectState([
        ModelState("auth", "User", "auth_users", (PK, EMAIL, AGE)),
        ModelState("blog", "Post", "blog_posts", (PK, FieldState("author_id", FieldType.integer())), (AUTHOR_FK,)),
    ])


class TestPostgreSQL(TestCase):
    def test_add_column(self):
        op = AddColumn("User", FieldState("nickname", FieldType.varchar(50)))
        assert emit(op, "auth", project()) == ['ALTER TABLE "auth_users" ADD COLUMN "nickname" VARCHAR(50);']

    def test_create_table(self):
        op = CreateTable("Tag", "blog_tags", (PK, FieldState("label", FieldType.varchar(50), nullable=False,
                                                             unique=True, default="misc")))
        assert emit(op, "blog", project()) == [
            'CREATE TABLE "blog_tags" (\n'
            '  "id" INTEGER NOT NULL PRIMARY KEY,\n'
            "  \"label\" VARCHAR(50) NOT NULL UNIQUE DEFAULT 'misc'\n"
            ');'
        ]

    def test_create_table_with_composite_key_and_index(self):
        a = FieldState("a", FieldType.integer(), nullable=False, primary_key=True)
        b = FieldState("b", FieldType.integer(), nullable=False, primary_key=True)
        op = CreateTable("Pair", "blog_pairs", (a, b), indexes=(Index(("b",)),))
        statements = emit(op, "blog", project())
        assert '  PRIMARY KEY ("a", "b")\n);' in statements[0]
        assert statements[1] == 'CREATE INDEX "blog_pairs_b_idx" ON "blog_pairs" ("b");'

    def test_alter_column(self):
        op = AlterColumn("User", "age", AGE, FieldState("age", FieldType.bigint(), nullable=False, default=0))
        assert emit(op, "auth", project()) == [
            'ALTER TABLE "auth_users" ALTER COLUMN "age" TYPE BIGINT USING "age"::BIGINT;',
            'ALTER TABLE "auth_users" ALTER COLUMN "age" SET NOT NULL;',
            'ALTER TABLE "auth_users" ALTER COLUMN "age" SET DEFAULT 0;',
        ]

    def test_foreign_key_constraint(self):
        assert emit(AddConstraint("Post", AUTHOR_FK), "blog", project()) == [
            'ALTER TABLE "blog_posts" ADD CONSTRAINT "blog_posts_author_id_fk" '
            'FOREIGN KEY ("author_id") REFERENCES "auth_users" ("id") ON DELETE CASCADE;'
        ]
        assert emit(DropConstraint("Post", AUTHOR_FK), "blog", project()) == [
            'ALTER TABLE "blog_posts" DROP CONSTRAINT "blog_posts_author_id_fk";'
        ]

    def test_rename_table(self):
        assert emit(RenameTable("User", "User", "auth_users", "auth_people"), "auth", project()) == [
            'ALTER TABLE "auth_users" RENAME TO "auth_people";'
        ]
        # A model rename that keeps its table needs no DDL.
        assert emit(RenameTable("User", "Account"), "auth", project()) == []

    def test_raw_is_emitted_verbatim(self):
        assert emit(Raw("UPDATE auth_users SET age = 0;"), "auth", project()) == ["UPDATE auth_users SET age = 0;"]

    def test_migration_folds_the_state(self):
        migration = Migration("shop", "0001_initial", operations=[
            CreateTable("Order", "shop_orders", (PK,)),
            AddColumn("Order", FieldState("total", FieldType.decimal(12, 2))),
        ])
        statements = emit_migration(migration)
        assert statements[-1] == 'ALTER TABLE "shop_orders" ADD COLUMN "total" DECIMAL(12,2);'


class TestMySQL(TestCase):
    def setUp(self):
        self.editor = emitter_for("mysql")

    def test_dispatch(self):
        assert isinstance(self.editor, MySQLSchemaEditor)
        assert self.editor.backend == Backend.MYSQL

    def test_rename_column(self):
        assert self.editor.emit(RenameColumn("User", "email", "email_address"), "auth", project()) == [
            "ALTER TABLE `auth_users` RENAME COLUMN `email` TO `email_address`;"
        ]

    def test_alter_column_restates_the_definition(self):
        op = AlterColumn("User", "age", AGE, FieldState("age", FieldType.bigint(), nullable=False, default=0))
        assert self.editor.emit(op, "auth", project()) == [
            "ALTER TABLE `auth_users` MODIFY COLUMN `age` BIGINT NOT NULL DEFAULT 0;"
        ]

    def test_drops(self):
        assert self.editor.emit(DropIndex("User", Index(("email",))), "auth", project()) == [
            "DROP INDEX `auth_users_email_idx` ON `auth_users`;"
        ]
        assert self.editor.emit(DropConstraint("Post", AUTHOR_FK), "blog", project()) == [
            "ALTER TABLE `blog_posts` DROP FOREIGN KEY `blog_posts_author_id_fk`;"
        ]
        assert self.editor.emit(DropConstraint("User", Constraint.unique("email")), "auth", project()) == [
            "ALTER TABLE `auth_users` DROP INDEX `auth_users_email_uniq`;"
        ]

    def test_rename_table(self):
        assert self.editor.emit(RenameTable("User", "Person", "auth_users", "auth_people"), "auth", project()) == [
            "RENAME TABLE `auth_users` TO `auth_people`;"
        ]


class TestSQLite(TestCase):
    def test_unsupported_operations(self):
        op = AlterColumn("User", "age", AGE, FieldState("age", FieldType.bigint()))
        with self.assertRaises(UnsupportedFeature) as ctx:
            emit(op, "auth", project(), backend=Backend.SQLITE)
        assert ctx.exception.backend == Backend.SQLITE
        assert ctx.exception.operation is op

        with self.assertRaises(UnsupportedFeature):
            emit(AddConstraint("Post", AUTHOR_FK), "blog", project(), backend="sqlite")

    def test_inline_constraints_on_create(self):
        op = CreateTable("Comment", "blog_comments", (PK, FieldState("uid", FieldType.uuid())),
                         (Constraint.unique("uid"),))
        statement = emit(op, "blog", project(), backend="sqlite")[0]
        assert '"uid" CHAR(36)' in statement
        assert 'CONSTRAINT "blog_comments_uid_uniq" UNIQUE ("uid")' in statement

    def test_initial_migration_declares_foreign_keys_inline(self):
        author = ModelState("blog", "Author", "blog_authors", (PK,))
        post = ModelState("blog", "Post", "blog_posts", (PK, FieldState("author_id", FieldType.integer())),
                          (Constraint.foreign_key("author_id", ("blog", "Author")),))
        migration = MigrationAutodetector(ProjectState(), ProjectState([author, post])).arrange()[0]
        assert any(isinstance(op, AddConstraint) for op in migration.operations)

        statements = emit_migration(migration, backend="sqlite")
        assert len(statements) == 2
        post_table = next(s for s in statements if s.startswith('CREATE TABLE "blog_posts"'))
        assert 'FOREIGN KEY ("author_id") REFERENCES "blog_authors" ("id")' in post_table
        assert not any(s.startswith("ALTER TABLE") for s in statements)

    def test_constraint_on_an_existing_table_still_needs_a_rebuild(self):
        migration = Migration("blog", "0002_post_author", operations=[AddConstraint("Post", AUTHOR_FK)])
        with self.assertRaises(UnsupportedFeature):
            emit_migration(migration, project(), backend="sqlite")


class TestFormatDefault(TestCase):
    def test_literals(self):
        assert format_default(None) == "NULL"
        assert format_default(True) == "TRUE"
        assert format_default(3) == "3"
        assert format_default(Decimal("1.50")) == "1.50"
        assert format_default("now()") == "NOW()"
        assert format_default("O'Brien") == "'O''Brien'"
