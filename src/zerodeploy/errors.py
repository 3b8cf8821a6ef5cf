"""Domain errors for zerodeploy."""


class DeployError(RuntimeError):
    """Raised when the deployment cannot continue safely."""


class ConfigError(DeployError):
    """Invalid or incomplete deployment configuration."""


class LockError(DeployError):
    """Another deployment already holds the release lock."""


class CommandError(DeployError):
    """An external command could not be run or exited non-zero."""

    def __init__(self, message: str, returncode=None):
        super().__init__(message)
        self.returncode = returncode


class FetchError(DeployError):
    """Transport or storage failure while retrieving the artifact."""


class ExtractError(DeployError):
    """Corrupt or incompatible release artifact."""


class ConfigRenderError(DeployError):
    """Release-scoped configuration could not be rendered."""


class CutoverError(DeployError):
    """The live application root could not be repointed."""


class LinkReconcileError(DeployError):
    """A shared resource could not be removed or relinked."""


class MigrationError(DeployError):
    """Database setup, upgrade or cache flush failed."""


class ServiceReloadError(DeployError):
    """The application runtime could not be restarted."""
