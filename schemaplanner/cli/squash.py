from schemaplanner.migrations.errors import InvalidState
from schemaplanner.migrations.loader import MigrationLoader
from schemaplanner.migrations.squasher import Squasher
from schemaplanner.migrations.writer import MigrationWriter
from schemaplanner.settings import Settings


def squashmigrations(settings: Settings, app_label: str, start: str, end: str,
                     policy: str = "preserve", name: str = None):
    loader = MigrationLoader(settings.migrations_path)
    history = loader.for_app(app_label)
    names = [m.name for m in history]
    for wanted in (start, end):
        if wanted not in names:
            raise InvalidState(f"No migration named {app_label}.{wanted}")

    first, last = names.index(start), names.index(end)
    if first > last:
        raise InvalidState(f"{start} comes after {end}")
    run = history[first:last + 1]

    result = Squasher(policy).squash(run, name=name)
    squashed = result.migration
    print(f"🔍 Squashed {len(run) - len(result.remaining)} migration(s) into {squashed.name}")
    print(f"  {sum(len(m.operations) for m in run if m not in result.remaining)} operation(s) "
          f"reduced to {len(squashed.operations)}")
    if result.remaining:
        print(f"⚠️ Stopped before {result.remaining[0].name}; left untouched: "
              f"{', '.join(m.name for m in result.remaining)}")

    path = MigrationWriter(squashed).write(settings.migrations_path)
    print(f"✅ Wrote {path}")
    return result
