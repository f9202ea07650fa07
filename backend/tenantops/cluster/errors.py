class ClusterError(Exception):
    """Base class for failures talking to the cluster control plane."""

    def __init__(self, message: str, *, status: int | None = None):
        super().__init__(message)
        self.status = status


class ClusterTransportError(ClusterError):
    """Network failure, rate limiting or a server-side error. Retryable by the caller."""


class ClusterTimeoutError(ClusterTransportError):
    pass


class ResourceConflictError(ClusterError):
    """409 from the control plane, e.g. deleting a namespace that is already terminating."""


class ResourceAlreadyExistsError(ResourceConflictError):
    pass


class ResourceNotFoundError(ClusterError):
    pass


class ClusterRequestError(ClusterError):
    """The control plane rejected the request itself (bad spec, forbidden, ...)."""
