from unittest import TestCase

from schemaplanner.migrations.errors import InvalidState
from schemaplanner.migrations.state import (
    AutoGeneration,
    Constraint,
    FieldState,
    FieldType,
    Index,
    ModelState,
    ProjectState,
)


def pk():
    return FieldState("id", FieldType.integer(), nullable=False, primary_key=True, auto=AutoGeneration.ON_CREATE)


class TestFieldState(TestCase):
    def test_definition_ignores_name(self):
        a = FieldState("email", FieldType.varchar(255))
        b = FieldState("email_address", FieldType.varchar(255))
        assert a.same_definition(b)
        assert not a.same_definition(FieldState("email", FieldType.varchar(100)))

    def test_default_and_auto_are_part_of_the_definition(self):
        base = FieldState("created_at", FieldType.timestamp())
        assert not base.same_definition(FieldState("created_at", FieldType.timestamp(), default="CURRENT_TIMESTAMP"))
        assert not base.same_definition(FieldState("created_at", FieldType.timestamp(), auto=AutoGeneration.ON_UPDATE))

    def test_type_families(self):
        assert FieldType.integer().is_compatible(FieldType.bigint())
        assert FieldType.varchar(10).is_compatible(FieldType.text())
        assert FieldType.date().is_compatible(FieldType.timestamp())
        assert not FieldType.varchar(10).is_compatible(FieldType.integer())
        assert FieldType.custom("FLOAT").is_compatible(FieldType.custom("float"))
        assert not FieldType.custom("FLOAT").is_compatible(FieldType.custom("DOUBLE"))

    def test_dict_roundtrip(self):
        field = FieldState("price", FieldType.decimal(12, 4), nullable=False, default="0.00")
        assert FieldState.from_dict(field.to_dict()) == field


class TestConstraintsAndIndexes(TestCase):
    def test_normalized_ignores_column_order(self):
        assert Constraint.unique("a", "b").normalized() == Constraint.unique("b", "a").normalized()
        assert Index(("a", "b")).normalized() == Index(("b", "a")).normalized()

    def test_check_expression_whitespace(self):
        assert Constraint.check("age  >=\n0").normalized() == Constraint.check("age >= 0").normalized()

    def test_index_options_are_sorted(self):
        assert Index(("a",), options={"b": 1, "a": 2}) == Index(("a",), options=[("a", 2), ("b", 1)])

    def test_foreign_key_normal_form(self):
        a = Constraint.foreign_key("author_id", ("auth", "User"), on_delete="cascade")
        b = Constraint.foreign_key(("author_id",), ("auth", "User"), to_columns="id", on_delete="CASCADE")
        assert a.normalized() == b.normalized()


class TestModelState(TestCase):
    def test_duplicate_field_is_invalid(self):
        with self.assertRaises(InvalidState):
            ModelState("blog", "Post", "blog_posts", [pk(), pk()])

    def test_equality_ignores_field_order(self):
        title = FieldState("title", FieldType.varchar(200))
        a = ModelState("blog", "Post", "blog_posts", [pk(), title])
        b = ModelState("blog", "Post", "blog_posts", [title, pk()])
        assert a == b
        assert a.field_names != b.field_names

    def test_rename_field_rewrites_constraints_and_indexes(self):
        model = ModelState(
            "auth", "User", "auth_users",
            [pk(), FieldState("email", FieldType.varchar(255))],
            [Constraint.unique("email")],
            [Index(("email",))],
        )
        renamed = model.rename_field("email", "email_address")
        assert renamed.field_names == ["id", "email_address"]
        assert renamed.constraints[0].columns == ("email_address",)
        assert renamed.indexes[0].columns == ("email_address",)
        # The original value is untouched.
        assert model.field_names == ["id", "email"]

    def test_missing_field_is_invalid(self):
        model = ModelState("blog", "Post", "blog_posts", [pk()])
        with self.assertRaises(InvalidState):
            model.without_field("title")


class TestProjectState(TestCase):
    def setUp(self):
        self.user = ModelState("auth", "User", "auth_users", [pk()])
        self.post = ModelState(
            "blog", "Post", "blog_posts",
            [pk(), FieldState("author_id", FieldType.integer())],
            [Constraint.foreign_key("author_id", ("auth", "User"))],
        )

    def test_duplicate_model_key_is_invalid(self):
        with self.assertRaises(InvalidState):
            ProjectState([self.user, self.user])

    def test_models_mapping_is_read_only(self):
        state = ProjectState([self.user])
        with self.assertRaises(TypeError):
            state.models[("auth", "Other")] = self.user

    def test_apps_in_first_appearance_order(self):
        state = ProjectState([self.post, self.user])
        assert state.apps() == ["blog", "auth"]

    def test_rename_model_retargets_foreign_keys(self):
        state = ProjectState([self.user, self.post]).rename_model("auth", "User", "Account", "auth_accounts")
        assert state.has_model("auth", "Account")
        assert not state.has_model("auth", "User")
        assert state.get_model("auth", "Account").table_name == "auth_accounts"
        assert state.get_model("blog", "Post").constraints[0].to_model == ("auth", "Account")

    def test_rename_field_follows_foreign_key_targets(self):
        state = ProjectState([self.user, self.post]).rename_field("auth", "User", "id", "user_id")
        assert state.get_model("blog", "Post").constraints[0].to_columns == ("user_id",)

    def test_helpers_return_new_states(self):
        state = ProjectState([self.user])
        bigger = state.with_model(self.post)
        assert len(state) == 1
        assert len(bigger) == 2
        assert bigger.without_model("blog", "Post") == state

    def test_dict_roundtrip(self):
        state = ProjectState([self.user, self.post], [("blog", "auth", "0001_initial")])
        assert ProjectState.from_dict(state.to_dict()) == state
