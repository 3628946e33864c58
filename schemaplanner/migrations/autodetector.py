"""
State diff engine and migration autodetector.

`StateDiffer` compares two ProjectStates and produces a ChangeSet. Added/removed
candidates always go through the RenameDetector before being classified, and
constraints/indexes are compared only after the detected renames have been applied
to the `before` side, the same way replaying RenameTable/RenameColumn would.

`MigrationAutodetector` turns that ChangeSet into named, per-app Migrations.
"""
from typing import Optional

from slugify import slugify

from schemaplanner.migrations.changes import (
    ChangeSet,
    ConstraintAdded,
    ConstraintRemoved,
    FieldAdded,
    FieldAltered,
    FieldRemoved,
    FieldRenamed,
    IndexAdded,
    IndexRemoved,
    ModelAdded,
    ModelAltered,
    ModelRemoved,
    ModelRenamed,
)
from schemaplanner.migrations.Logging import logger
from schemaplanner.migrations.migration import Migration
from schemaplanner.migrations.operations import CreateTable, Operation
from schemaplanner.migrations.renames import RenameDetector
from schemaplanner.migrations.similarity import SimilarityConfig
from schemaplanner.migrations.state import ModelState, ProjectState
from schemaplanner.migrations.synthesizer import OperationSynthesizer, SynthesisResult

MAX_NAME_FRAGMENT = 52


def _ordered_apps(before: ProjectState, after: ProjectState) -> list[str]:
    apps = after.apps()
    for app in before.apps():
        if app not in apps:
            apps.append(app)
    return apps


class StateDiffer:

    def __init__(self, config: Optional[SimilarityConfig] = None):
        self.detector = RenameDetector(config)

    def diff(self, before: ProjectState, after: ProjectState) -> ChangeSet:
        changes = ChangeSet()
        projected = before
        paired: list[tuple[str, str]] = []

        # Models: renames first so everything below compares like with like.
        for app in _ordered_apps(before, after):
            old_models = {m.name: m for m in before.models_for_app(app)}
            new_models = {m.name: m for m in after.models_for_app(app)}
            removed = {name: m for name, m in old_models.items() if name not in new_models}
            added = {name: m for name, m in new_models.items() if name not in old_models}

            result = self.detector.match(removed, added, scope=f"model {app}:")
            for match in result.renames:
                changes.models_renamed.append(ModelRenamed(app, match.old, match.new, match.score))
                projected = projected.rename_model(app, match.old_name, match.new_name, match.new.table_name)

            for name in result.removed:
                changes.models_removed.append(ModelRemoved(app, removed[name]))
            for name in result.added:
                changes.models_added.append(ModelAdded(app, added[name]))

            renamed_to = {m.new_name for m in result.renames}
            for name in new_models:
                if name in old_models or name in renamed_to:
                    paired.append((app, name))

        # Fields: per paired model, renames before anything else.
        for app, name in paired:
            old_model = projected.get_model(app, name)
            new_model = after.get_model(app, name)
            if old_model.table_name != new_model.table_name:
                changes.models_altered.append(ModelAltered(app, old_model, new_model))
                projected = projected.replace_model(old_model.clone(table_name=new_model.table_name))

            old_fields = old_model.field_map
            new_fields = new_model.field_map
            removed = {n: f for n, f in old_fields.items() if n not in new_fields}
            added = {n: f for n, f in new_fields.items() if n not in old_fields}

            result = self.detector.match(
                removed, added,
                compatible=lambda old, new: old.is_compatible(new),
                scope=f"field {app}.{name}:",
            )
            for match in result.renames:
                changes.fields_renamed.append(FieldRenamed(app, name, match.old, match.new, match.score))
                projected = projected.rename_field(app, name, match.old_name, match.new_name)
            for field_name in result.removed:
                changes.fields_removed.append(FieldRemoved(app, name, removed[field_name]))
            for field_name in result.added:
                changes.fields_added.append(FieldAdded(app, name, added[field_name]))

        # Alterations, constraints and indexes against the fully projected state.
        for app, name in paired:
            self._diff_model(changes, app, projected.get_model(app, name), after.get_model(app, name))

        return changes

    @staticmethod
    def _diff_model(changes: ChangeSet, app: str, old: ModelState, new: ModelState):
        old_fields = old.field_map
        for new_field in new.fields:
            old_field = old_fields.get(new_field.name)
            if old_field is not None and not old_field.same_definition(new_field):
                changes.fields_altered.append(FieldAltered(app, new.name, old_field, new_field))

        old_constraints, new_constraints = old.constraint_set(), new.constraint_set()
        for constraint in old.constraints:
            if constraint.normalized() not in new_constraints:
                changes.constraints_removed.append(ConstraintRemoved(app, new.name, constraint))
        for constraint in new.constraints:
            if constraint.normalized() not in old_constraints:
                changes.constraints_added.append(ConstraintAdded(app, new.name, constraint))

        old_indexes, new_indexes = old.index_set(), new.index_set()
        for index in old.indexes:
            if index.normalized() not in new_indexes:
                changes.indexes_removed.append(IndexRemoved(app, new.name, index))
        for index in new.indexes:
            if index.normalized() not in old_indexes:
                changes.indexes_added.append(IndexAdded(app, new.name, index))


class MigrationAutodetector:
    """
    Diffs `before` against `after` and arranges the result into named migrations.

    Example:
        detector = MigrationAutodetector(before, after)
        migrations = detector.arrange(leaves={"blog": "0003_post_slug"})
    """

    def __init__(self, before: ProjectState, after: ProjectState,
                 config: Optional[SimilarityConfig] = None):
        self.before = before
        self.after = after
        self.differ = StateDiffer(config)
        self.synthesizer = OperationSynthesizer()
        self._changes: Optional[ChangeSet] = None

    def changes(self) -> ChangeSet:
        if self._changes is None:
            self._changes = self.differ.diff(self.before, self.after)
        return self._changes

    def synthesize(self, app_labels=None) -> dict[str, SynthesisResult]:
        changes = self.changes()
        results = {}
        for app in _ordered_apps(self.before, self.after):
            if app_labels and app not in app_labels:
                continue
            result = self.synthesizer.synthesize(app, changes)
            if result.operations:
                results[app] = result
        return results

    def arrange(self, leaves: dict[str, str] = None, name: str = None,
                app_labels=None, numbers: dict[str, int] = None) -> list[Migration]:
        """
        One migration per changed app, numbered after the app's highest stored number
        (`numbers`, falling back to the leaf) and chained to its leaf. Cross-app hints
        become `run_after` edges.

        With `app_labels`, other apps are left out unless a kept migration needs a model
        that one of them creates in this run; those apps are pulled in.
        """
        leaves = leaves or {}
        numbers = numbers or {}
        results = self.synthesize()

        migrations: dict[str, Migration] = {}
        for app, result in results.items():
            leaf = leaves.get(app)
            number = self._next_number(leaf, numbers.get(app, 0))
            if name:
                fragment = slugify(name, separator="_", max_length=MAX_NAME_FRAGMENT) or "auto"
            elif leaf is None:
                fragment = "initial"
            else:
                fragment = self.suggest_name(result.operations)
            migrations[app] = Migration(
                app_label=app,
                name=f"{number:04d}_{fragment}",
                operations=tuple(result.operations),
                dependencies=((app, leaf),) if leaf else (),
                initial=leaf is None,
            )

        for app, result in results.items():
            edges = []
            for hint in result.hints:
                target = migrations.get(hint.app_label)
                if target is not None and results[hint.app_label].creates_model(hint.model_name):
                    edges.append(target.key)
                elif hint.app_label in leaves:
                    edges.append((hint.app_label, leaves[hint.app_label]))
                else:
                    logger.debug("No migration provides %s.%s (%s); assuming it is unmanaged",
                                 hint.app_label, hint.model_name, hint.reason)
            if edges:
                migrations[app] = migrations[app].with_run_after(edges)

        if app_labels:
            migrations = self._trim_to_apps(migrations, app_labels)
        return list(migrations.values())

    @staticmethod
    def _trim_to_apps(migrations: dict[str, Migration], app_labels) -> dict[str, Migration]:
        """Keep the requested apps plus every app whose new migration they run after."""
        keep = [app for app in migrations if app in app_labels]
        pending = list(keep)
        while pending:
            app = pending.pop()
            for dep_app, dep_name in migrations[app].run_after:
                needed = migrations.get(dep_app)
                if needed is not None and needed.name == dep_name and dep_app not in keep:
                    logger.info("Including %s: %s needs a model it creates", needed, migrations[app])
                    keep.append(dep_app)
                    pending.append(dep_app)
        return {app: migration for app, migration in migrations.items() if app in keep}

    @staticmethod
    def _next_number(leaf: Optional[str], highest: int = 0) -> int:
        if leaf:
            prefix = leaf.split("_", 1)[0]
            if prefix.isdigit():
                highest = max(highest, int(prefix))
        return highest + 1

    @staticmethod
    def suggest_name(operations: list[Operation]) -> str:
        if not operations:
            return "auto"
        if all(isinstance(op, CreateTable) for op in operations):
            raw = "_".join(sorted(op.migration_name_fragment for op in operations))
        else:
            raw = "_".join(op.migration_name_fragment for op in operations)
        return slugify(raw, separator="_", max_length=MAX_NAME_FRAGMENT, word_boundary=True) or "auto"
