import logging
import sys
from pathlib import Path

_NOISY_LOGGERS = ('apscheduler', 'werkzeug', 'sqlalchemy', 'urllib3')


class _ThirdPartyFilter(logging.Filter):
    """Only let warnings and errors from library loggers reach the console."""

    def filter(self, record):
        if record.name.startswith(_NOISY_LOGGERS):
            return record.levelno >= logging.WARNING
        return True


def setup_logging(level='INFO', log_dir=None):
    """
    Configure the root logger with a console handler and, when log_dir is
    given, a file handler that keeps everything at DEBUG.

    Call once at process start. Existing root handlers are replaced.
    """
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    root = logging.getLogger()
    root.setLevel(logging.DEBUG)
    for handler in list(root.handlers):
        root.removeHandler(handler)

    fmt = logging.Formatter(
        fmt="%(asctime)s.%(msecs)03d %(levelname)s %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(level)
    console.setFormatter(fmt)
    console.addFilter(_ThirdPartyFilter())
    root.addHandler(console)

    if log_dir:
        path = Path(log_dir)
        path.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(str(path / 'app.log'), encoding='utf-8')
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(fmt)
        root.addHandler(file_handler)

    logging.captureWarnings(True)
