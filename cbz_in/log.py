from datetime import datetime
from pathlib import Path

from rich.console import Console
from rich.text import Text

DEFAULT_LOG_FILE = "./cbz_in.log"
LEVELS = {"debug": 10, "info": 20, "warning": 30, "error": 40}

# Global settings - will be set by configure()
console = Console()
VERBOSE = False
QUIET = False
LOG_FILE = None
FILE_LEVEL = LEVELS["info"]


def configure(log_file=None, level="info", verbose=False, quiet=False):
    """Set up console verbosity and the optional log file for this run."""
    global LOG_FILE, FILE_LEVEL, VERBOSE, QUIET

    VERBOSE = verbose and not quiet
    QUIET = quiet
    FILE_LEVEL = LEVELS[level]
    LOG_FILE = None

    if log_file is not None:
        path = Path(log_file).expanduser()
        if not path.parent.is_dir():
            raise ValueError(f"Directory does not exist: \"{path.parent}\"")
        if path.exists() and not path.is_file():
            raise ValueError(f"The path to the log file is not a regular file: \"{path}\"")
        LOG_FILE = path


def log(msg, level="info"):
    """Log messages to console and, if configured, to the log file."""
    rank = LEVELS[level]

    if rank >= LEVELS["error"]:
        console.print(msg)
    elif level == "debug":
        if VERBOSE:
            console.print(f"[dim]{msg}[/dim]")
    elif not QUIET:
        console.print(msg)

    if LOG_FILE is not None and rank >= FILE_LEVEL:
        plain = Text.from_markup(msg).plain
        stamp = datetime.now().isoformat(timespec="seconds")
        with open(LOG_FILE, 'a', encoding='utf-8') as f:
            f.write(f"{stamp} {level.upper():<7} {plain}\n")
