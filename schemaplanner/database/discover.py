import importlib.util
import sys
from pathlib import Path

from schemaplanner.database.Model import Model


def discover_models(lib_path: str = "lib") -> list[type[Model]]:
    """
    Import every module under a `models/` directory below `lib_path` and return the
    concrete Model classes they define.

    Directories and files are visited in sorted order and classes are returned in
    definition order, so the same source tree always yields the same list.
    """
    models = []
    base_dir = Path(lib_path).resolve()

    project_root = base_dir.parent
    if str(project_root) not in sys.path:
        sys.path.insert(0, str(project_root))

    def _import_module(file_path: Path):
        # Convert path to module path format, starting from the lib directory
        parts = file_path.relative_to(base_dir).with_suffix('').parts
        module_name = f"{base_dir.name}.{'.'.join(parts)}"
        if module_name in sys.modules:
            return sys.modules[module_name]

        spec = importlib.util.spec_from_file_location(module_name, str(file_path))
        if spec and spec.loader:
            module = importlib.util.module_from_spec(spec)
            sys.modules[module_name] = module
            try:
                spec.loader.exec_module(module)
            except Exception:
                del sys.modules[module_name]
                raise
            return module

    def _scan_models_directory(models_dir: Path):
        for item in sorted(models_dir.iterdir()):
            if item.is_file() and item.suffix == '.py' and not item.stem.startswith('__'):
                module = _import_module(item)
                if module is None:
                    continue
                for obj in vars(module).values():
                    if isinstance(obj, type) and issubclass(obj, Model) and not obj.is_abstract() \
                            and obj.__module__ == module.__name__ and obj not in models:
                        models.append(obj)

    def _find_models_folders(directory: Path):
        if not directory.exists():
            return

        for item in sorted(directory.iterdir()):
            if item.is_dir() and not item.name.startswith('__'):
                # If we find a "models" directory, scan it
                if item.name == "models":
                    _scan_models_directory(item)
                # Continue searching in subdirectories
                _find_models_folders(item)

    _find_models_folders(base_dir)
    return models
