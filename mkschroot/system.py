"""Thin wrappers around the system tools used to build a schroot."""
import logging
import os
import shlex
from pathlib import Path
from typing import Optional, Union

import sh

from mkschroot.errors import MissingDependencyError
from mkschroot.utils import is_root


logger = logging.getLogger(__name__)

# apt packages providing the tools this module runs
PACKAGES = {
    "gpg": "gnupg",
    "kbd_mode": "kbd",
    "lsb_release": "lsb-release",
}


def _command(program: str) -> sh.Command:
    """Look up a program, failing with an installation hint if it is missing."""
    try:
        return sh.Command(program)
    except sh.CommandNotFound:
        package = PACKAGES.get(program, program)
        raise MissingDependencyError(
            f"{program} not found. Please run: sudo apt install {package}"
        ) from None


def _execute(*args: str) -> None:
    logger.debug("$ %s", shlex.join(args))
    _command(args[0])(*args[1:], _fg=True)


def run(*args: str) -> None:
    """Run a host command as the invoking user."""
    _execute(*args)


def privileged(*args: str) -> None:
    """Run a host command as root, through sudo unless already root."""
    if is_root():
        _execute(*args)
    else:
        _execute("sudo", *args)


def in_chroot(name: str, *args: str) -> None:
    """Run a command as root inside the named schroot."""
    _execute("schroot", "-c", name, "-d", "/", "-u", "root", "--", *args)


def write_file(path: Union[str, Path], content: str, append: bool = False) -> None:
    """Write (or append to) a root-owned file."""
    if is_root():
        logger.debug("%s %s", "append to" if append else "write", path)
        with open(path, 'a' if append else 'w') as f:
            f.write(content)
        return

    tee_args = ["tee", "-a", str(path)] if append else ["tee", str(path)]
    logger.debug("$ sudo %s", shlex.join(tee_args))
    _command("sudo")(*tee_args, _in=content, _out=os.devnull)


def read_text(path: Union[str, Path]) -> Optional[str]:
    """Read a file, returning None if it is missing or unreadable."""
    try:
        return Path(path).read_text()
    except OSError:
        return None


def host_codename() -> str:
    """Get the release codename of the host, e.g. 'jammy'."""
    return str(_command("lsb_release")("-sc")).strip()
