from dataclasses import dataclass, field

from schemaplanner.migrations.changes import ChangeSet
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
    RenameColumn,
    RenameTable,
)
from schemaplanner.migrations.state import ConstraintKind, ModelState


@dataclass(frozen=True)
class DependencyHint:
    """This app's operations need `app_label.model_name` to exist first."""
    app_label: str
    model_name: str
    reason: str


@dataclass
class SynthesisResult:
    app_label: str
    operations: list[Operation] = field(default_factory=list)
    hints: list[DependencyHint] = field(default_factory=list)

    def creates_model(self, model_name: str) -> bool:
        for op in self.operations:
            if isinstance(op, CreateTable) and op.name == model_name:
                return True
            if isinstance(op, RenameTable) and op.new_name == model_name:
                return True
        return False


def _is_fk(constraint) -> bool:
    return constraint.kind == ConstraintKind.FOREIGN_KEY


class OperationSynthesizer:
    """
    Turns one app's ChangeSet into an ordered operation list.

    Order: table renames, column renames, constraint/index drops, column drops, table
    drops, table creates, column adds, column alters, then constraint/index adds with
    foreign keys last. Removed constraints and indexes are expressed with post-rename
    column names, which is why renames come first.
    """

    def synthesize(self, app_label: str, changes: ChangeSet) -> SynthesisResult:
        changes = changes.for_app(app_label)
        result = SynthesisResult(app_label)
        ops = result.operations

        for renamed in changes.models_renamed:
            ops.append(RenameTable(
                renamed.old.name,
                renamed.new.name,
                renamed.old.table_name,
                renamed.new.table_name if renamed.new.table_name != renamed.old.table_name else None,
            ))
        for altered in changes.models_altered:
            ops.append(RenameTable(altered.old.name, altered.new.name, altered.old.table_name, altered.new.table_name))

        for renamed in changes.fields_renamed:
            ops.append(RenameColumn(renamed.model_name, renamed.old.name, renamed.new.name))

        for removed in changes.constraints_removed:
            ops.append(DropConstraint(removed.model_name, removed.constraint))
        for removed in changes.indexes_removed:
            ops.append(DropIndex(removed.model_name, removed.index))

        for removed in changes.fields_removed:
            ops.append(DropColumn(removed.model_name, removed.field.name, removed.field))

        for model in self._drop_order([r.model for r in changes.models_removed]):
            ops.append(DropTable(model.name))

        deferred_fks = []
        for added in changes.models_added:
            model = added.model
            ops.append(CreateTable(
                model.name,
                model.table_name,
                model.fields,
                tuple(c for c in model.constraints if not _is_fk(c)),
            ))
            deferred_fks.extend((model.name, c) for c in model.constraints if _is_fk(c))

        for added in changes.fields_added:
            ops.append(AddColumn(added.model_name, added.field))

        for altered in changes.fields_altered:
            ops.append(AlterColumn(altered.model_name, altered.new.name, altered.old, altered.new))

        for added in changes.constraints_added:
            if _is_fk(added.constraint):
                deferred_fks.append((added.model_name, added.constraint))
            else:
                ops.append(AddConstraint(added.model_name, added.constraint))

        for added in changes.models_added:
            for index in added.model.indexes:
                ops.append(CreateIndex(added.model.name, index))
        for added in changes.indexes_added:
            ops.append(CreateIndex(added.model_name, added.index))

        for model_name, constraint in deferred_fks:
            ops.append(AddConstraint(model_name, constraint))
            target_app, target_model = constraint.to_model
            if target_app != app_label:
                hint = DependencyHint(target_app, target_model,
                                      f"{app_label}.{model_name}.{','.join(constraint.columns)} references it")
                if hint not in result.hints:
                    result.hints.append(hint)

        return result

    @staticmethod
    def _drop_order(models: list[ModelState]) -> list[ModelState]:
        """Tables referenced by other dropped tables are dropped after them."""
        remaining = list(models)
        ordered = []
        while remaining:
            progressed = False
            for model in list(remaining):
                key = model.diff_key()
                referenced = any(
                    other is not model and any(c.to_model == key for c in other.foreign_keys())
                    for other in remaining
                )
                if not referenced:
                    ordered.append(model)
                    remaining.remove(model)
                    progressed = True
            if not progressed:
                # Mutual references: the constraints go with the tables, keep input order.
                ordered.extend(remaining)
                break
        return ordered
