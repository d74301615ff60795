"""Diagnostic output.

Messages are printed as ``[component] message`` lines on stderr so that
``--json`` output on stdout stays machine readable. The entry point sets the
verbosity once; everything else just calls :func:`log`.
"""

from __future__ import annotations

import sys
import threading

ERROR = -1
WARNING = 0
INFO = 1
DEBUG = 2

_verbosity = WARNING
_lock = threading.Lock()


def set_verbosity(level: int) -> None:
    """Set the process-wide verbosity (ERROR, WARNING, INFO or DEBUG)."""
    global _verbosity
    _verbosity = level


def verbosity_from_flags(quiet: bool, verbose: int) -> int:
    if quiet:
        return ERROR
    return min(WARNING + verbose, DEBUG)


def log(msg: str, level: int = INFO) -> None:
    """Print with flush for reliable output from worker threads."""
    if level > _verbosity:
        return
    with _lock:
        print(msg, file=sys.stderr, flush=True)
