"""Error handling decorator for CLI commands."""
from __future__ import annotations

import functools
import sys

from core.errors import SceneCommandError

from .output import print_error


def handle_command_errors(func):
    """Print typed orchestration errors and exit non-zero instead of a traceback."""
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except SceneCommandError as exc:
            print_error(f"{exc.message} [{exc.code}]")
            sys.exit(1)
        except ValueError as exc:
            print_error(str(exc))
            sys.exit(1)
    return wrapper
