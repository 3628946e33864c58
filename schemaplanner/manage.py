import argparse
import sys
from dataclasses import replace

from schemaplanner.cli.makemigrations import makemigrations
from schemaplanner.cli.plan import showplan, sqlmigrate
from schemaplanner.cli.squash import squashmigrations
from schemaplanner.core_services.ErrorHandler import ErrorHandler
from schemaplanner.migrations.emitters import Backend
from schemaplanner.migrations.errors import (
    CircularDependency,
    InvalidState,
    MigrationError,
    NodeNotFound,
    NonSquashableBoundary,
    UnsupportedFeature,
)
from schemaplanner.migrations.Logging import configure_logging
from schemaplanner.migrations.squasher import SquashPolicy
from schemaplanner.settings import Settings

EXCEPTION_MAP = {
    NodeNotFound: "A migration depends on one that does not exist.",
    CircularDependency: "Migrations depend on each other in a cycle.",
    NonSquashableBoundary: "The run contains an operation that cannot be squashed.",
    UnsupportedFeature: "The selected backend cannot express this migration.",
    InvalidState: "The migration history or the declared models are inconsistent.",
    MigrationError: "Migration planning failed.",
    FileExistsError: "A migration with that name already exists.",
    ValueError: "Invalid configuration.",
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="schemaplanner", description="Schema migration planner")
    parser.add_argument("--models-path", help="Directory scanned for models/ packages")
    parser.add_argument("--migrations-path", help="Migration history directory")
    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # Makemigrations command
    make_parser = subparsers.add_parser("makemigrations", help="Create migrations for model changes")
    make_parser.add_argument("--app", action="append", dest="apps", help="Limit to this app (repeatable)")
    make_parser.add_argument("--name", help="Use this name instead of a generated one")
    make_parser.add_argument("--dry-run", action="store_true", help="Show migrations without writing them")

    # Showplan command
    subparsers.add_parser("showplan", help="Print the stored migrations in execution order")

    # Sqlmigrate command
    sql_parser = subparsers.add_parser("sqlmigrate", help="Print the DDL for one migration")
    sql_parser.add_argument("app", help="App label")
    sql_parser.add_argument("name", help="Migration name")
    sql_parser.add_argument("--backend", choices=[b.value for b in Backend], help="DDL dialect")

    # Squashmigrations command
    squash_parser = subparsers.add_parser("squashmigrations", help="Squash a run of one app's migrations")
    squash_parser.add_argument("app", help="App label")
    squash_parser.add_argument("start", help="First migration of the run")
    squash_parser.add_argument("end", help="Last migration of the run")
    squash_parser.add_argument("--policy", choices=[p.value for p in SquashPolicy],
                               default=SquashPolicy.PRESERVE.value,
                               help="What to do with raw SQL operations inside the run")
    squash_parser.add_argument("--name", help="Name of the squashed migration")

    return parser


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    handler = ErrorHandler()
    exit_code = 0

    def _fail(message, error):
        nonlocal exit_code
        exit_code = 1

    with handler.handle_errors(EXCEPTION_MAP, fallback=_fail):
        settings = Settings.from_env()
        if args.models_path:
            settings = replace(settings, models_path=args.models_path)
        if args.migrations_path:
            settings = replace(settings, migrations_path=args.migrations_path)
        configure_logging(settings.log_level)

        if args.command == "makemigrations":
            makemigrations(settings, app_labels=args.apps, name=args.name, dry_run=args.dry_run)

        elif args.command == "showplan":
            showplan(settings)

        elif args.command == "sqlmigrate":
            sqlmigrate(settings, args.app, args.name, backend=args.backend)

        elif args.command == "squashmigrations":
            squashmigrations(settings, args.app, args.start, args.end, policy=args.policy, name=args.name)

        else:
            parser.print_help()

    return exit_code


if __name__ == "__main__":
    sys.exit(main())
