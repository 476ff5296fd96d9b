import logging
import logging.handlers
import os
from importlib.metadata import PackageNotFoundError, version
from pathlib import Path

try:
    __version__ = version("recordsheet")
except PackageNotFoundError:  # pragma: no cover
    # package is not installed
    __version__ = "0.0.0"

# Note that nothing is passed to getLogger to set the "root" logger
logger = logging.getLogger()

CONSOLE_FORMAT = "%(levelname)-8s|%(name)s|%(message)s"
FILE_FORMAT = "%(asctime)s|%(name)-24s|%(levelname)-8s|%(message)s"
LOGFILE_MAX_BYTES = 100_000
LOGFILE_BACKUP_COUNT = 5


def _level_from_env(default: int) -> int:
    """The level named by LOGLEVEL, or default if unset or unknown."""
    name = os.getenv("LOGLEVEL", "").strip().upper()
    level = logging.getLevelName(name) if name else default
    return level if isinstance(level, int) else default


def setup_logging(loglevel: int = logging.INFO, logfile: Path | None = None):
    """
    Log recordsheet messages to the console and optionally a rotating file.

    LOGLEVEL (e.g. ``LOGLEVEL=debug``) overrides the loglevel argument. The
    level is clamped to the range NOTSET..CRITICAL so that the -v/-q counts
    of the command line cannot produce invalid levels.
    """
    loglevel = min(logging.CRITICAL, max(_level_from_env(loglevel), logging.NOTSET))

    logging.basicConfig(level=loglevel, format=CONSOLE_FORMAT)

    if logfile is not None:
        fh = logging.handlers.RotatingFileHandler(
            logfile,
            maxBytes=LOGFILE_MAX_BYTES,
            backupCount=LOGFILE_BACKUP_COUNT,
            encoding="utf-8",
        )
        fh.setLevel(loglevel)
        fh.setFormatter(logging.Formatter(fmt=FILE_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
        logger.addHandler(fh)
