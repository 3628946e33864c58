import datetime
import json
import tempfile
from decimal import Decimal
from pathlib import Path
from unittest import TestCase
from uuid import UUID

from schemaplanner.database.fields.Fields import DecimalField, IntegerField
from schemaplanner.database.Model import Model
from schemaplanner.migrations.errors import InvalidState
from schemaplanner.migrations.loader import MigrationLoader, history_plan, leaf_names
from schemaplanner.migrations.migration import Migration
from schemaplanner.migrations.operations import AddColumn, CreateTable, Raw
from schemaplanner.migrations.planner import Planner
from schemaplanner.migrations.state import (
    AutoGeneration,
    Constraint,
    FieldState,
    FieldType,
    Index,
    ProjectState,
    decode_default,
    encode_default,
)
from schemaplanner.migrations.writer import MigrationWriter

PK = FieldState("id", FieldType.integer(), nullable=False, primary_key=True, auto=AutoGeneration.ON_CREATE)
TITLE = FieldState("title", FieldType.varchar(200), nullable=False, default="untitled")
X = FieldState("x", FieldType.decimal(12, 4))


def history():
    initial = Migration(
        "blog", "0001_initial",
        operations=[CreateTable("Post", "blog_posts", (PK, FieldState("author_id", FieldType.integer())),
                                [Constraint.foreign_key("author_id", ("auth", "User"))],
                                [Index(("author_id",))])],
        initial=True,
    )
    title = Migration("blog", "0002_post_title", operations=[AddColumn("Post", TITLE)],
                      dependencies=[("blog", "0001_initial")])
    return initial, title


class TestMigrationWriter(TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.root = Path(self._tmp.name) / ".migrations"

    def tearDown(self):
        self._tmp.cleanup()

    def test_written_migration_loads_back_equal(self):
        initial, title = history()
        path = MigrationWriter(initial).write(self.root)
        MigrationWriter(title).write(self.root)

        assert path == self.root / "blog" / "0001_initial.json"
        assert json.loads(path.read_text(encoding="utf-8"))["operations"][0]["type"] == "CreateTable"
        assert MigrationLoader(self.root).load() == [initial, title]

    def test_existing_file_is_never_overwritten(self):
        initial, _ = history()
        MigrationWriter(initial).write(self.root)
        with self.assertRaises(FileExistsError):
            MigrationWriter(initial).write(self.root)

    def test_raw_sql_survives(self):
        migration = Migration("blog", "0003_backfill", operations=[Raw("UPDATE blog_posts SET title = 'x';", None)],
                              atomic=False)
        MigrationWriter(migration).write(self.root)
        assert MigrationLoader(self.root).get("blog", "0003_backfill") == migration


class TestMigrationLoader(TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.root = Path(self._tmp.name)

    def tearDown(self):
        self._tmp.cleanup()

    def test_missing_directory_is_an_empty_history(self):
        loader = MigrationLoader(self.root / "nowhere")
        assert loader.load() == []
        assert loader.leaves() == {}
        assert len(loader.project_state()) == 0

    def test_leaves_and_state(self):
        for migration in history():
            MigrationWriter(migration).write(self.root)
        loader = MigrationLoader(self.root)

        assert loader.leaves() == {"blog": "0002_post_title"}
        post = loader.project_state().get_model("blog", "Post")
        assert post.field_names == ["id", "author_id", "title"]
        assert post.get_field("title").default == "untitled"

    def test_squashed_migration_stands_in_for_what_it_replaces(self):
        initial, title = history()
        squashed = Migration(
            "blog", "0001_squashed_0002_post_title",
            operations=[CreateTable("Post", "blog_posts", (PK, TITLE))],
            replaces=[initial.key, title.key],
            initial=True,
        )
        later = Migration("blog", "0003_post_x", operations=[AddColumn("Post", X)],
                          dependencies=[("blog", "0002_post_title")])

        plan = history_plan([initial, title, squashed, later])
        assert [m.name for m in plan] == ["0001_squashed_0002_post_title", "0003_post_x"]
        assert plan.get("blog", "0003_post_x").dependencies == ((squashed.key),)
        assert leaf_names([initial, title, squashed, later]) == {"blog": "0003_post_x"}

        for migration in (initial, title, squashed, later):
            MigrationWriter(migration).write(self.root)
        state = MigrationLoader(self.root).project_state()
        assert state.get_model("blog", "Post").field_names == ["id", "title", "x"]

    def test_invalid_json(self):
        (self.root / "blog").mkdir()
        (self.root / "blog" / "0001_initial.json").write_text("{not json", encoding="utf-8")
        with self.assertRaises(InvalidState):
            MigrationLoader(self.root).load()

    def test_file_name_must_match_migration(self):
        initial, _ = history()
        (self.root / "blog").mkdir()
        (self.root / "blog" / "0009_other.json").write_text(MigrationWriter(initial).as_json(), encoding="utf-8")
        with self.assertRaises(InvalidState):
            MigrationLoader(self.root).load()

    def test_unknown_migration(self):
        with self.assertRaises(InvalidState):
            MigrationLoader(self.root).get("blog", "0001_initial")

    def test_results_are_cached_until_refresh(self):
        initial, title = history()
        MigrationWriter(initial).write(self.root)
        loader = MigrationLoader(self.root)
        assert len(loader.load()) == 1
        MigrationWriter(title).write(self.root)
        assert len(loader.load()) == 1
        assert len(loader.load(refresh=True)) == 2


class Product(Model):
    __app_label__ = "shop"

    id = IntegerField(primary_key=True, auto_increment=True)
    price = DecimalField(default=Decimal("1.50"))


class TestStoredDefaults(TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.root = Path(self._tmp.name)

    def tearDown(self):
        self._tmp.cleanup()

    def test_replanning_from_stored_history_finds_nothing(self):
        after = ProjectState.from_models([Product])
        for migration in Planner().run([], after).migrations:
            MigrationWriter(migration).write(self.root)

        loader = MigrationLoader(self.root)
        stored = loader.project_state().get_model("shop", "Product").get_field("price")
        assert stored.default == Decimal("1.50")

        history = loader.load()
        second = Planner().run(history, after)
        assert second.changes.summary() == {}
        assert second.is_empty

    def test_defaults_keep_their_type(self):
        values = [
            Decimal("1.50"),
            datetime.datetime(2024, 5, 1, 12, 30),
            datetime.date(2024, 5, 1),
            datetime.time(8, 15),
            UUID("12345678-1234-5678-1234-567812345678"),
            ("a", 1),
            ["x", Decimal("2")],
            {"k": (1, 2)},
            "plain",
            7,
            None,
        ]
        for value in values:
            field = FieldState("f", FieldType.text(), default=value)
            stored = json.loads(json.dumps(field.to_dict()))
            loaded = FieldState.from_dict(stored).default
            assert loaded == value and type(loaded) is type(value), value

    def test_unstorable_default(self):
        with self.assertRaises(TypeError):
            encode_default(object())

    def test_malformed_stored_default(self):
        with self.assertRaises(InvalidState):
            decode_default({"complex": "1+2j"})
