"""Errors raised while provisioning a schroot."""


class ProvisionError(RuntimeError):
    """A provisioning step cannot continue."""


class MissingDependencyError(ProvisionError):
    """A required system tool is not installed."""


class AlreadyExistsError(ProvisionError):
    """A step would overwrite existing state without --force."""
