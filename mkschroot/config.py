"""Provisioning request and schroot configuration rendering."""
from dataclasses import dataclass
from pathlib import Path
from typing import Optional


DEFAULT_RELEASE = "xenial"
DEFAULT_MIRROR = "http://archive.ubuntu.com/ubuntu"
SOURCES_MIRROR = "http://us.archive.ubuntu.com/ubuntu/"
CHROOTS_DIR = Path("/var/chroots")
SCHROOT_ETC = Path("/etc/schroot")
LOCALE = "en_US.UTF-8"


def default_path(name: str) -> Path:
    """Get the default chroot directory for a schroot name."""
    return CHROOTS_DIR / name


def default_friendly_name(release: str) -> str:
    """Build a friendly name from a release, e.g. 'xenial' -> 'Xenial Schroot'."""
    return f"{release[:1].upper()}{release[1:]} Schroot"


@dataclass(frozen=True)
class ProvisionRequest:
    """Everything one provisioning run needs to know."""

    name: str
    release: str = DEFAULT_RELEASE
    path: Optional[Path] = None
    friendly_name: Optional[str] = None
    force: bool = False
    skip: bool = False
    mirror: str = DEFAULT_MIRROR

    def __post_init__(self):
        if not self.name:
            raise ValueError("schroot name must not be empty")
        if self.skip and not self.force:
            raise ValueError("skip requires force")
        # frozen, so defaults are filled in through object.__setattr__
        if self.path is None:
            object.__setattr__(self, "path", default_path(self.name))
        else:
            object.__setattr__(self, "path", Path(self.path))
        if self.friendly_name is None:
            object.__setattr__(self, "friendly_name", default_friendly_name(self.release))

    @property
    def config_file(self) -> Path:
        """The schroot.conf entry for this chroot."""
        return SCHROOT_ETC / "chroot.d" / self.name

    @property
    def fstab_file(self) -> Path:
        """The fstab schroot mounts into this chroot."""
        return SCHROOT_ETC / self.name / "fstab"

    @property
    def default_fstab(self) -> Path:
        """The fstab template shipped with schroot."""
        return SCHROOT_ETC / "default" / "fstab"

    @property
    def locale_file(self) -> Path:
        """locale.conf inside the chroot."""
        return self.path / "etc" / "locale.conf"

    @property
    def sources_file(self) -> Path:
        """apt sources.list inside the chroot."""
        return self.path / "etc" / "apt" / "sources.list"


def render_config(request: ProvisionRequest, user: str) -> str:
    """Render the schroot.conf stanza for a request."""
    lines = [
        f"[{request.name}]",
        f"description={request.friendly_name}",
        f"directory={request.path}",
        f"users={user}",
        "groups=sudo",
        "root-groups=sudo",
        "preserve-environment=true",
        "type=directory",
        f"setup.fstab={request.name}/fstab",
    ]
    return "\n".join(lines) + "\n"
