"""Domain error taxonomy shared by services, executors and routers."""


class PortalError(Exception):
    """Base error for request lifecycle and execution failures."""


class NotFound(PortalError):
    """Raised when a request or execution record does not exist."""


class InvalidState(PortalError):
    """Raised when an action is attempted outside the required request status."""


class Forbidden(PortalError):
    """Raised when the actor's role or pod scope does not cover the request."""


class InvalidArgument(PortalError):
    """Raised for malformed submissions or unparseable document-store invocations."""


class InstanceNotFound(PortalError):
    """Raised when no registry entry matches an instance name and kind."""


class ExecutionFailure(PortalError):
    """Raised when a backend, script or offload step fails during execution."""


class ScriptTimeout(ExecutionFailure):
    """Raised when a sandboxed script exceeds its wall-clock budget."""


class ArtifactExpired(PortalError):
    """Raised when an offloaded result is past its retention window."""


class ArtifactUnavailable(PortalError):
    """Raised when an offloaded result is missing from object storage."""
