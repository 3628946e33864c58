import json
from pathlib import Path

from schemaplanner.migrations.Logging import logger
from schemaplanner.migrations.migration import Migration


class MigrationWriter:
    """Persists one Migration as `<root>/<app>/<name>.json`."""

    def __init__(self, migration: Migration):
        self.migration = migration

    def as_dict(self) -> dict:
        return self.migration.to_dict()

    def as_json(self) -> str:
        return json.dumps(self.as_dict(), indent=2) + "\n"

    def path(self, root) -> Path:
        return Path(root) / self.migration.app_label / f"{self.migration.name}.json"

    def write(self, root) -> Path:
        path = self.path(root)
        if path.exists():
            raise FileExistsError(f"Refusing to overwrite existing migration {path}")
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            f.write(self.as_json())
        logger.info("Wrote %s", path)
        return path
