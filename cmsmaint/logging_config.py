"""
Centralized logging configuration.

Command output goes to stdout through print(); diagnostics go through
module loggers to stderr so they never interleave with --json output.
"""
import logging
import sys

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"

# Quiet by default; -v raises cmsmaint loggers to DEBUG
_DEFAULT_LEVEL = logging.WARNING


def configure_logging(verbose: bool = False) -> None:
    """Configure root and package loggers once per process"""
    root = logging.getLogger()
    if not any(getattr(h, "_cmsmaint", False) for h in root.handlers):
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handler._cmsmaint = True
        root.addHandler(handler)
    root.setLevel(_DEFAULT_LEVEL)
    logging.getLogger("cmsmaint").setLevel(logging.DEBUG if verbose else _DEFAULT_LEVEL)
