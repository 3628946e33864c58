import logging
import sys

logger = logging.getLogger("schemaplanner.migrations")


def configure_logging(level=logging.INFO, name: str = "schemaplanner") -> logging.Logger:
    """
    Attach the stdout handler to the package logger once and set its level.
    Accepts a level name ("DEBUG") or a numeric level.
    """
    root = logging.getLogger(name)
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            raise ValueError(f"Unknown log level: {level}")

    if not any(getattr(h, "_schemaplanner", False) for h in root.handlers):
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter("%(levelname)s - %(message)s"))
        handler._schemaplanner = True
        root.addHandler(handler)

    root.setLevel(level)
    return root
