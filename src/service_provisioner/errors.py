"""Exceptions raised by the service provisioner."""


class ProvisioningError(Exception):
    """Base class for errors that abort a provisioning run."""
    pass


class ServiceDefinitionError(ProvisioningError):
    """Raised when the requested service definition is invalid."""
    pass


class UnsupportedProviderError(ProvisioningError):
    """Raised when the git provider is not one of the supported backends."""
    pass


class UnsupportedBranchScopeError(ProvisioningError):
    """Raised when a policy branch uses a wildcard form other than 'name/*'."""
    pass


class ProjectDefinitionError(ProvisioningError):
    """Raised when no usable project definition can be loaded."""
    pass


class RepositoryNotFoundError(ProvisioningError):
    """Raised when a repository expected to exist cannot be found."""
    pass


class TeamNotFoundError(ProvisioningError):
    """Raised when a required team does not exist in the organization."""
    pass


class SkeletonError(ProvisioningError):
    """Raised when the skeleton generator fails."""
    pass


class QualityGateTimeoutError(ProvisioningError):
    """Raised when a quality gate does not complete within its time limit."""
    pass


class ProviderApiError(ProvisioningError):
    """Raised when a hosting backend answers with an unexpected status."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class StepFailedError(ProvisioningError):
    """Raised by the workflow when one of its steps fails."""

    def __init__(self, step: str, cause: Exception):
        super().__init__(f"Step '{step}' failed: {cause}")
        self.step = step
        self.cause = cause


class SettingsError(ProvisioningError):
    """Raised when the environment holds an invalid setting."""
    pass
