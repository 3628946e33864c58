import logging
import sys
from contextlib import contextmanager


class ErrorHandler:
    def __init__(self, name="schemaplanner.cli", log_to_console=True, log_to_file=None, log_level=logging.INFO):
        """
        :param name: logger name
        :param log_to_console: whether to log to the terminal
        :param log_to_file: filepath string to enable file logging
        :param log_level: default log level (e.g., logging.INFO)
        """
        self.logger = logging.getLogger(name)
        self.logger.setLevel(log_level)

        formatter = logging.Formatter("%(levelname)s - %(message)s")

        if log_to_console and not self._has_handler(logging.StreamHandler):
            console_handler = logging.StreamHandler(sys.stderr)
            console_handler.setFormatter(formatter)
            self.logger.addHandler(console_handler)
            # The package logger may print the same record on stdout.
            self.logger.propagate = False

        if log_to_file and not self._has_handler(logging.FileHandler, log_to_file):
            file_handler = logging.FileHandler(log_to_file)
            file_handler.setFormatter(formatter)
            self.logger.addHandler(file_handler)

    def _has_handler(self, handler_type, filename=None):
        for handler in self.logger.handlers:
            if isinstance(handler, handler_type):
                if isinstance(handler, logging.FileHandler):
                    return handler.baseFilename == filename
                return True
        return False

    @staticmethod
    def message_for(exception_map, error: BaseException) -> str:
        """Most specific mapped message for `error`'s class hierarchy."""
        for cls in type(error).__mro__:
            if cls in exception_map:
                return exception_map[cls]
        return "An error occurred."

    @contextmanager
    def handle_errors(self, exception_map, fallback=None, log_level=logging.ERROR):
        try:
            yield
        except tuple(exception_map.keys()) as e:
            message = self.message_for(exception_map, e)
            self.logger.log(log_level, f"{message} | {type(e).__name__}: {e}")
            if fallback:
                fallback(message, e)
