"""Utility functions for the schroot provisioning tool."""
import logging
import os
import sys


def is_executable(path: str) -> bool:
    """Check if a file exists at path and is executable."""
    return os.path.isfile(path) and os.access(path, os.X_OK)


def is_root() -> bool:
    """Check if the script is running as root."""
    return os.geteuid() == 0


def get_real_user() -> str:
    """Get the real username (handles sudo)."""
    return os.environ.get('SUDO_USER', os.environ.get('USER', ''))


def log_info(message: str) -> None:
    """Log an informational message."""
    print(f"[INFO] {message}")


def log_action(message: str) -> None:
    """Log an action being performed."""
    print(f"  -> {message}")


def log_warning(message: str) -> None:
    """Log a warning to stderr."""
    print(f"WARNING: {message}", file=sys.stderr)


def setup_logging(verbose: bool = False) -> None:
    """Setup logging configuration.

    Verbose mode shows every external command before it runs.
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        stream=sys.stderr,
    )
