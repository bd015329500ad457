class DeployError(Exception):
    """Base class for anything that aborts an install run."""

    # Name of the install step that raised it; None before provisioning starts
    step = None


class ConfigError(DeployError):
    """Operator input is missing or invalid, or no port could be chosen."""


class ProvisioningError(DeployError):
    """An external tool failed or a step's postcondition does not hold."""

    def __init__(self, message, cmd=None, returncode=None):
        super().__init__(message)
        self.cmd = cmd
        self.returncode = returncode
