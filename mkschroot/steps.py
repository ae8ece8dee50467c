"""Provisioning workflow steps.

Every step looks at the current state of the filesystem and either acts or
logs why there is nothing to do. Failures propagate as exceptions, so the
first failing step stops the workflow; nothing is rolled back.
"""
import sys
from pathlib import Path
from typing import List, Optional

from mkschroot import system
from mkschroot.config import LOCALE, SOURCES_MIRROR, ProvisionRequest, render_config
from mkschroot.errors import AlreadyExistsError, MissingDependencyError
from mkschroot.utils import get_real_user, is_executable, log_action, log_info, log_warning


REQUIRED_TOOLS = ("/usr/sbin/debootstrap", "/usr/bin/schroot")
PRECISE_KEYRING = "/tmp/ubuntu-precise-keyring.gpg"
PRECISE_KEY_ID = "0x40976EAF437D05B5"
KEYSERVER = "keyserver.ubuntu.com"
HOST_SOURCES = Path("/etc/apt/sources.list")
UPSTART_RELEASES = ("precise", "trusty")
SHM_MOUNTS = (
    "/dev/shm /dev/shm none rw,bind 0 0",
    "/run/shm /run/shm none rw,bind 0 0",
)


def check_dependencies() -> None:
    """Make sure debootstrap and schroot are installed."""
    for tool in REQUIRED_TOOLS:
        if not is_executable(tool):
            raise MissingDependencyError("Please run: sudo apt install debootstrap schroot")


def check_preconditions(request: ProvisionRequest) -> None:
    """Refuse to touch existing files unless --force was given."""
    if request.force:
        return

    for path in (request.config_file, request.fstab_file, request.path):
        if path.exists():
            raise AlreadyExistsError(
                f"{path} already exists. Refusing to overwrite without --force."
            )


def fetch_keyring(request: ProvisionRequest, dry_run: bool = False) -> List[str]:
    """Fetch the archive key for releases debootstrap no longer ships.

    Returns the extra debootstrap options needed to use the keyring.
    """
    if request.release != "precise":
        return []

    if dry_run:
        log_action(f"[DRY RUN] Would fetch precise GPG key into {PRECISE_KEYRING}")
    else:
        log_action("Fetching precise GPG key...")
        system.run(
            "gpg", f"--keyring={PRECISE_KEYRING}", "--no-default-keyring",
            "--keyserver", KEYSERVER, "--receive-keys", PRECISE_KEY_ID,
        )
    return [f"--keyring={PRECISE_KEYRING}"]


def bootstrap_filesystem(request: ProvisionRequest, debootstrap_options: Optional[List[str]] = None,
                         dry_run: bool = False) -> None:
    """Install a base system into the chroot directory."""
    path = request.path
    if request.skip and path.exists():
        log_warning(f"{path} already exists. Skipping debootstrap.")
        return

    if dry_run:
        log_action(f"[DRY RUN] Would debootstrap {request.release} into {path}")
        return

    if path.exists():
        log_action(f"Removing existing {path}...")
        system.privileged("rm", "-rf", str(path))
    system.privileged("mkdir", "-p", str(path))

    log_action(f"Bootstrapping {request.release} into {path}...")
    system.privileged(
        "debootstrap", *(debootstrap_options or []),
        request.release, str(path), request.mirror,
    )


def install_fstab(request: ProvisionRequest, dry_run: bool = False) -> None:
    """Copy the default schroot fstab for this chroot."""
    fstab = request.fstab_file
    if request.skip and fstab.exists():
        log_warning(f"{fstab} already set up. Skipping creation.")
        return

    if dry_run:
        log_action(f"[DRY RUN] Would copy {request.default_fstab} to {fstab}")
        return

    system.privileged("mkdir", "-p", str(fstab.parent))
    system.privileged("cp", "-v", str(request.default_fstab), str(fstab))


def register_config(request: ProvisionRequest, dry_run: bool = False) -> None:
    """Add the schroot.conf entry, never replacing one that is already there."""
    stanza = render_config(request, get_real_user())
    config_file = request.config_file

    if config_file.is_file():
        log_warning(f"{config_file} already exists. The file has not been modified.")
        log_warning("Ensure the configuration matches the below:")
        print(stanza, file=sys.stderr)
        return

    if dry_run:
        log_action(f"[DRY RUN] Would write {config_file}")
        return

    log_action(f"Writing {config_file}...")
    system.write_file(config_file, stanza)


def render_locale() -> str:
    """Contents of the chroot's locale.conf."""
    return f"LC_ALL={LOCALE}\n{LOCALE} UTF-8\nLANG={LOCALE}\n"


def configure_locale(request: ProvisionRequest, dry_run: bool = False) -> None:
    """Write locale.conf and generate the locale inside the chroot."""
    current = system.read_text(request.locale_file) or ""
    if request.skip and f"LC_ALL={LOCALE}" in current:
        log_warning("locale.conf already set up. Skipping locale generation.")
        return

    if dry_run:
        log_action(f"[DRY RUN] Would configure {LOCALE} locale")
        return

    log_action(f"Configuring {LOCALE} locale...")
    system.write_file(request.locale_file, render_locale())
    system.in_chroot(request.name, "locale-gen", LOCALE)


def render_sources_list(release: str, host_sources: str = "", host_release: str = "") -> str:
    """Build the chroot's sources.list.

    Only main and updates are enabled; the host's own list follows, rewritten
    for the target release and commented out.
    """
    content = (
        f"deb {SOURCES_MIRROR} {release} main restricted\n"
        f"deb {SOURCES_MIRROR} {release}-updates main restricted\n\n\n\n"
    )

    for line in host_sources.splitlines():
        if host_release:
            line = line.replace(host_release, release)
        stripped = line.strip()
        if not stripped or stripped.startswith("#"):
            content += f"{line}\n"
        else:
            content += f"# {line}\n"
    return content


def divert_upstart(request: ProvisionRequest) -> None:
    """Neutralise initctl so package scripts don't talk to upstart."""
    log_action("Diverting /sbin/initctl...")
    system.in_chroot(request.name, "dpkg-divert", "--local", "--rename", "--add", "/sbin/initctl")
    system.in_chroot(request.name, "ln", "-s", "/bin/true", "/sbin/initctl")


def configure_apt_sources(request: ProvisionRequest, dry_run: bool = False) -> None:
    """Point the chroot's apt at the target release."""
    current = system.read_text(request.sources_file) or ""
    if request.skip and request.release in current:
        log_warning("sources.list already set up. Skipping setup.")
        return

    if dry_run:
        log_action(f"[DRY RUN] Would write {request.sources_file}")
        if request.release in UPSTART_RELEASES:
            log_action("[DRY RUN] Would divert /sbin/initctl")
        return

    host_sources = system.read_text(HOST_SOURCES)
    if host_sources is None:
        log_warning(f"{HOST_SOURCES} not found. Only the minimal sources will be written.")
        host_sources, host_release = "", ""
    else:
        host_release = system.host_codename()

    log_action(f"Writing {request.sources_file}...")
    system.write_file(
        request.sources_file,
        render_sources_list(request.release, host_sources, host_release),
    )

    if request.release in UPSTART_RELEASES:
        divert_upstart(request)


def refresh_packages(request: ProvisionRequest, dry_run: bool = False) -> None:
    """Update and upgrade packages inside the chroot."""
    if dry_run:
        log_action("[DRY RUN] Would run apt-get update and upgrade in the chroot")
        return

    log_action("Updating packages...")
    system.in_chroot(request.name, "apt-get", "update")
    system.in_chroot(request.name, "apt-get", "upgrade", "-y")


def add_mount_to_fstab(entry: str, fstab: Path, dry_run: bool = False) -> None:
    """Append an fstab entry unless it is already there."""
    current = system.read_text(fstab) or ""
    if entry in current.splitlines():
        log_info(f"{entry.split()[0]} is already mounted in {fstab}.")
        return

    if dry_run:
        log_action(f"[DRY RUN] Would add '{entry}' to {fstab}")
        return

    log_action(f"Adding {entry.split()[0]} to {fstab}...")
    system.write_file(fstab, f"{entry}\n", append=True)


def add_shm_mounts(request: ProvisionRequest, dry_run: bool = False) -> None:
    """Bind mount /dev/shm and /run/shm into the chroot."""
    for entry in SHM_MOUNTS:
        add_mount_to_fstab(entry, request.fstab_file, dry_run=dry_run)


def reset_console(dry_run: bool = False) -> None:
    """Restore the host's VT keyboard mode, which schroot sessions can leave raw."""
    if dry_run:
        log_action("[DRY RUN] Would reset console keyboard mode")
        return

    system.privileged("kbd_mode", "-s")


def provision_schroot(request: ProvisionRequest, dry_run: bool = False) -> None:
    """Main provisioning workflow."""
    check_dependencies()
    check_preconditions(request)

    # Phase 1: Base system
    debootstrap_options = fetch_keyring(request, dry_run=dry_run)
    bootstrap_filesystem(request, debootstrap_options, dry_run=dry_run)

    # Phase 2: schroot registration
    install_fstab(request, dry_run=dry_run)
    register_config(request, dry_run=dry_run)

    # Phase 3: Chroot configuration
    configure_locale(request, dry_run=dry_run)
    configure_apt_sources(request, dry_run=dry_run)
    refresh_packages(request, dry_run=dry_run)
    add_shm_mounts(request, dry_run=dry_run)

    reset_console(dry_run=dry_run)
