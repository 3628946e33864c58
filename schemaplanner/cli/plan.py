from schemaplanner.migrations.emitters import emitter_for
from schemaplanner.migrations.loader import MigrationLoader, replay
from schemaplanner.settings import Settings


def showplan(settings: Settings):
    plan = MigrationLoader(settings.migrations_path).plan()
    if not len(plan):
        print("No migrations recorded.")
        return plan

    print(f"📦 {len(plan)} migration(s) in execution order:")
    for line in plan.describe():
        print(line)
    return plan


def sqlmigrate(settings: Settings, app_label: str, name: str, backend: str = None):
    """Print the DDL of one stored migration, against the state the plan reaches before it."""
    loader = MigrationLoader(settings.migrations_path)
    target = loader.get(app_label, name)

    preceding = []
    for migration in loader.plan():
        if migration.key == target.key:
            break
        preceding.append(migration)
    state = replay(preceding)

    editor = emitter_for(backend or settings.backend)
    statements = editor.emit_migration(target, state)
    print(f"-- {target} ({editor.backend.value})")
    for statement in statements:
        print(statement)
    return statements
