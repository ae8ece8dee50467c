"""Tests for the CLI interface."""
from pathlib import Path
from unittest.mock import patch

import sh
from typer.testing import CliRunner

from mkschroot.cli import app
from mkschroot.config import ProvisionRequest
from mkschroot.errors import AlreadyExistsError, MissingDependencyError

runner = CliRunner()


def test_cli_help():
    """Test CLI help command."""
    result = runner.invoke(app, ["--help"])
    assert result.exit_code == 0
    assert "schroot" in result.stdout.lower()
    assert "--release" in result.stdout.lower()
    assert "--skip" in result.stdout.lower()


@patch('mkschroot.steps.provision_schroot')
def test_help_has_no_side_effects(mock_provision):
    """Test --help never starts provisioning."""
    result = runner.invoke(app, ["xenial-build", "--help"])

    assert result.exit_code == 0
    mock_provision.assert_not_called()


@patch('mkschroot.steps.provision_schroot')
def test_setup_defaults(mock_provision):
    """Test a bare name derives the defaults."""
    result = runner.invoke(app, ["xenial-build"])

    assert result.exit_code == 0
    mock_provision.assert_called_once_with(ProvisionRequest(name="xenial-build"), dry_run=False)
    request = mock_provision.call_args.args[0]
    assert request.path == Path("/var/chroots/xenial-build")
    assert request.release == "xenial"
    assert request.friendly_name == "Xenial Schroot"
    assert "schroot -c xenial-build" in result.stdout


@patch('mkschroot.steps.provision_schroot')
def test_setup_all_options(mock_provision):
    """Test every option reaches the request."""
    result = runner.invoke(app, [
        "-r", "trusty", "-p", "/srv/trusty", "--name", "Old Build", "-f", "--skip", "trusty-build",
    ])

    assert result.exit_code == 0
    mock_provision.assert_called_once_with(
        ProvisionRequest(
            name="trusty-build", release="trusty", path=Path("/srv/trusty"),
            friendly_name="Old Build", force=True, skip=True,
        ),
        dry_run=False,
    )


@patch('mkschroot.steps.provision_schroot')
def test_setup_mirror_from_environment(mock_provision):
    """Test the debootstrap mirror can come from MKSCHROOT_MIRROR."""
    result = runner.invoke(app, ["build"], env={"MKSCHROOT_MIRROR": "http://mirror.local/ubuntu"})

    assert result.exit_code == 0
    assert mock_provision.call_args.args[0].mirror == "http://mirror.local/ubuntu"


@patch('mkschroot.steps.provision_schroot')
def test_setup_dry_run(mock_provision):
    """Test setup with --dry-run option."""
    result = runner.invoke(app, ["--dry-run", "build"])

    assert result.exit_code == 0
    mock_provision.assert_called_once_with(ProvisionRequest(name="build"), dry_run=True)
    assert "Nothing was changed" in result.stdout


@patch('mkschroot.utils.setup_logging')
@patch('mkschroot.steps.provision_schroot')
def test_setup_verbose(mock_provision, mock_logging):
    """Test setup with --verbose option."""
    result = runner.invoke(app, ["--verbose", "build"])

    assert result.exit_code == 0
    mock_logging.assert_called_once_with(True)


@patch('mkschroot.steps.provision_schroot')
def test_missing_name(mock_provision):
    """Test a missing name is a usage error."""
    result = runner.invoke(app, ["--release", "bionic"])

    assert result.exit_code == 1
    assert "Missing schroot name" in result.output
    mock_provision.assert_not_called()


@patch('mkschroot.steps.provision_schroot')
def test_duplicate_release(mock_provision):
    """Test giving --release twice is a usage error."""
    result = runner.invoke(app, ["-r", "xenial", "--release", "bionic", "build"])

    assert result.exit_code == 1
    assert "Duplicate Ubuntu release" in result.output
    mock_provision.assert_not_called()


@patch('mkschroot.steps.provision_schroot')
def test_duplicate_path(mock_provision):
    """Test giving --path twice is a usage error."""
    result = runner.invoke(app, ["-p", "/a", "-p", "/b", "build"])

    assert result.exit_code == 1
    assert "Duplicate chroot path" in result.output


@patch('mkschroot.steps.provision_schroot')
def test_duplicate_friendly_name(mock_provision):
    """Test giving --name twice is a usage error."""
    result = runner.invoke(app, ["--name", "A", "--name", "B", "build"])

    assert result.exit_code == 1
    assert "Duplicate friendly name" in result.output


@patch('mkschroot.steps.provision_schroot')
def test_duplicate_schroot_name(mock_provision):
    """Test two positional names is a usage error."""
    result = runner.invoke(app, ["build", "other"])

    assert result.exit_code == 1
    assert "Duplicate schroot name" in result.output
    mock_provision.assert_not_called()


@patch('mkschroot.steps.provision_schroot')
def test_skip_requires_force(mock_provision):
    """Test --skip without --force always fails."""
    for args in (["--skip", "build"], ["--skip", "-r", "trusty", "-p", "/srv/x", "build"], ["--skip"]):
        result = runner.invoke(app, args)

        assert result.exit_code == 1
        assert "Can't use" in result.output

    mock_provision.assert_not_called()


@patch('mkschroot.steps.provision_schroot')
def test_unknown_option(mock_provision):
    """Test an unknown option is a usage error with exit status 1."""
    result = runner.invoke(app, ["--bogus", "build"])

    assert result.exit_code == 1
    mock_provision.assert_not_called()


@patch('mkschroot.steps.provision_schroot')
def test_provision_error_exits_1(mock_provision):
    """Test a failed precondition is reported with exit status 1."""
    mock_provision.side_effect = AlreadyExistsError(
        "/etc/schroot/chroot.d/build already exists. Refusing to overwrite without --force."
    )

    result = runner.invoke(app, ["build"])

    assert result.exit_code == 1
    assert "already exists" in result.output


@patch('mkschroot.steps.provision_schroot')
def test_command_failure_exits_1(mock_provision):
    """Test a failing system command is reported with exit status 1."""
    mock_provision.side_effect = sh.ErrorReturnCode_1("/usr/sbin/debootstrap xenial", b"", b"")

    result = runner.invoke(app, ["build"])

    assert result.exit_code == 1
    assert "Command failed (exit 1)" in result.output
    assert "debootstrap" in result.output


@patch('mkschroot.system.sh.Command')
@patch('mkschroot.steps.check_preconditions')
@patch('mkschroot.steps.check_dependencies')
def test_missing_tool_exits_1_with_hint(mock_deps, mock_pre, mock_command):
    """Test a tool missing from PATH is reported with an install hint, not a traceback."""
    mock_command.side_effect = sh.CommandNotFound("mkdir")

    result = runner.invoke(app, ["build", "--force"])

    assert result.exit_code == 1
    assert not isinstance(result.exception, sh.CommandNotFound)
    assert "not found. Please run: sudo apt install" in result.output


@patch('mkschroot.steps.provision_schroot')
def test_missing_dependency_exits_1(mock_provision):
    """Test a missing dependency is reported with exit status 1."""
    mock_provision.side_effect = MissingDependencyError(
        "lsb_release not found. Please run: sudo apt install lsb-release"
    )

    result = runner.invoke(app, ["build"])

    assert result.exit_code == 1
    assert "sudo apt install lsb-release" in result.output
    assert "Setup complete" not in result.output


@patch('mkschroot.steps.system')
@patch('mkschroot.steps.check_preconditions')
@patch('mkschroot.steps.check_dependencies')
def test_console_reset_failure_exits_1(mock_deps, mock_pre, mock_system):
    """Test a failing kbd_mode at the end of the run still fails the command."""
    def privileged(*args):
        if args[0] == "kbd_mode":
            raise sh.ErrorReturnCode_1("kbd_mode -s", b"", b"no console")

    mock_system.privileged.side_effect = privileged
    mock_system.read_text.return_value = None

    result = runner.invoke(app, ["build", "--force"])

    assert result.exit_code == 1
    assert "Command failed (exit 1): kbd_mode -s" in result.output
    assert "Setup complete" not in result.output
