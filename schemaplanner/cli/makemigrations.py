from schemaplanner.database.discover import discover_models
from schemaplanner.migrations.loader import MigrationLoader
from schemaplanner.migrations.planner import Planner
from schemaplanner.migrations.state import ProjectState
from schemaplanner.migrations.writer import MigrationWriter
from schemaplanner.settings import Settings


def makemigrations(settings: Settings, app_labels=None, name=None, dry_run=False):
    models = discover_models(settings.models_path)
    print(f"📦 Discovered {len(models)} models.")

    loader = MigrationLoader(settings.migrations_path)
    history = loader.load()
    after = ProjectState.from_models(models)

    result = Planner(settings.similarity()).run(history, after, app_labels=app_labels, name=name)
    if result.is_empty:
        print("✓ No changes detected.")
        return []

    for migration in result.migrations:
        print(f"\n🔍 {migration.app_label}/{migration.name}")
        for operation in migration.operations:
            print(f"  - {operation.describe()}")
        for app, dep in migration.run_after:
            print(f"  ↳ runs after {app}.{dep}")

        if dry_run:
            print("⚠️ Dry run: migration not written.")
            continue
        path = MigrationWriter(migration).write(settings.migrations_path)
        print(f"✅ Wrote {path}")

    return result.migrations
