from unittest import TestCase

from schemaplanner.migrations.errors import CircularDependency, InvalidState, NodeNotFound
from schemaplanner.migrations.migration import Migration
from schemaplanner.migrations.plan import MigrationPlan


def m(app, name, *deps, run_after=()):
    return Migration(app, name, dependencies=deps, run_after=run_after)


class TestMigrationPlan(TestCase):
    def test_dependencies_come_first(self):
        plan = MigrationPlan().extend([
            m("blog", "0001_initial", ("auth", "0001_initial")),
            m("auth", "0001_initial"),
        ])
        order = [str(x) for x in plan.sort()]
        assert order == ["auth.0001_initial", "blog.0001_initial"]
        assert plan.is_sorted

    def test_ties_keep_discovery_order(self):
        # M2 is ready only after M1 is placed; M3 is free and keeps its place in the pass.
        plan = MigrationPlan().extend([
            m("b", "0001_m2", ("a", "0001_m1")),
            m("a", "0001_m1"),
            m("c", "0001_m3"),
        ])
        assert [x.app_label for x in plan.sort()] == ["a", "c", "b"]

    def test_run_after_hints_are_edges(self):
        plan = MigrationPlan().extend([
            m("blog", "0001_initial", run_after=[("auth", "0001_initial")]),
            m("auth", "0001_initial"),
        ])
        assert plan.edges()[("blog", "0001_initial")] == [("auth", "0001_initial")]
        assert plan.sort()[0].app_label == "auth"

    def test_implicit_chain_by_name(self):
        plan = MigrationPlan().extend([m("blog", "0002_post_title"), m("blog", "0001_initial")])
        assert [x.name for x in plan.sort()] == ["0001_initial", "0002_post_title"]

        unchained = MigrationPlan(implicit_chain=False)
        unchained.extend([m("blog", "0002_post_title"), m("blog", "0001_initial")])
        assert [x.name for x in unchained.sort()] == ["0002_post_title", "0001_initial"]

    def test_missing_dependency(self):
        plan = MigrationPlan().add(m("blog", "0001_initial", ("auth", "0001_initial")))
        with self.assertRaises(NodeNotFound) as ctx:
            plan.sort()
        assert ctx.exception.node == ("auth", "0001_initial")
        assert ctx.exception.origin == ("blog", "0001_initial")

    def test_applied_migrations_satisfy_dependencies(self):
        plan = MigrationPlan(applied=[("auth", "0001_initial")])
        plan.add(m("blog", "0001_initial", ("auth", "0001_initial")))
        assert [str(x) for x in plan.sort()] == ["blog.0001_initial"]

    def test_cycle_is_reported_and_plan_untouched(self):
        a = m("a", "0001_x", ("b", "0001_y"))
        b = m("b", "0001_y", ("a", "0001_x"))
        plan = MigrationPlan().extend([a, b])

        with self.assertLogs("schemaplanner.migrations", level="ERROR"):
            with self.assertRaises(CircularDependency) as ctx:
                plan.sort()
        assert ctx.exception.cycle == (("a", "0001_x"), ("b", "0001_y"))
        assert "a.0001_x -> b.0001_y -> a.0001_x" in str(ctx.exception)
        assert plan.migrations == (a, b)
        assert not plan.is_sorted

    def test_minimal_cycle(self):
        plan = MigrationPlan(implicit_chain=False).extend([
            m("x", "p1", ("x", "p2")),
            m("x", "p2", ("x", "p3")),
            m("x", "p3", ("x", "p1"), ("x", "p2")),
        ])
        with self.assertRaises(CircularDependency) as ctx:
            plan.sort()
        assert ctx.exception.cycle == (("x", "p2"), ("x", "p3"))

    def test_sort_is_idempotent(self):
        plan = MigrationPlan().extend([
            m("blog", "0001_initial", ("auth", "0001_initial")),
            m("auth", "0001_initial"),
            m("auth", "0002_user_age"),
        ])
        first = plan.sort()
        assert plan.sort() == first
        again = MigrationPlan().extend(first)
        assert again.sort() == first

    def test_duplicates_are_rejected(self):
        plan = MigrationPlan().add(m("auth", "0001_initial"))
        with self.assertRaises(InvalidState):
            plan.add(m("auth", "0001_initial"))

    def test_describe(self):
        plan = MigrationPlan().extend([
            m("auth", "0001_initial"),
            m("blog", "0001_initial", ("auth", "0001_initial")),
        ])
        plan.sort()
        assert plan.describe() == [
            "  1. auth.0001_initial",
            "  2. blog.0001_initial  (after auth.0001_initial)",
        ]
        assert plan.get("blog", "0001_initial").name == "0001_initial"
        assert plan.get("blog", "0002_missing") is None
