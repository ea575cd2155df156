# src/flowtask/logging_setup.py

from __future__ import annotations

import logging
import sys
from pathlib import Path

LOG_FILE_NAME = "flowtask.log"

# Transport libraries are capped at WARNING everywhere, file included.
QUIET_LIBRARIES = ("httpx", "httpcore")


class _ConsoleNoiseFilter(logging.Filter):
    """
    Console shows flowtask's own activity; the log file keeps everything.

    - flowtask.api.* (one line per HTTP request) only from WARNING
    - everything else outside flowtask, py.warnings included, only from ERROR
    """

    def filter(self, record: logging.LogRecord) -> bool:
        if not record.name.startswith("flowtask."):
            return record.levelno >= logging.ERROR
        if record.name.startswith("flowtask.api."):
            return record.levelno >= logging.WARNING
        # Rollbacks from flowtask.core.optimistic log at WARNING and pass here.
        return True


def setup_logging(*, log_dir: str | Path = ".local/flowtask", console_level: int = logging.INFO) -> Path:
    """
    Install the console and file handlers on the root logger, replacing any
    already installed. Returns the log file path.
    """
    log_dir = Path(log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / LOG_FILE_NAME

    root = logging.getLogger()
    root.setLevel(logging.DEBUG)
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()

    fmt = logging.Formatter(
        fmt="%(asctime)s.%(msecs)03d %(levelname)s %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(console_level)
    console.setFormatter(fmt)
    console.addFilter(_ConsoleNoiseFilter())
    root.addHandler(console)

    to_file = logging.FileHandler(str(log_file), encoding="utf-8")
    to_file.setLevel(logging.DEBUG)
    to_file.setFormatter(fmt)
    root.addHandler(to_file)

    for name in QUIET_LIBRARIES:
        logging.getLogger(name).setLevel(logging.WARNING)

    logging.captureWarnings(True)
    return log_file
