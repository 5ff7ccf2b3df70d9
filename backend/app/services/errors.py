"""Service-layer exceptions, translated to HTTP errors by the routers."""


class LifecycleError(Exception):
    pass


class NotFoundError(LifecycleError):
    pass


class ValidationError(LifecycleError):
    pass


class ConflictError(LifecycleError):
    """Optimistic concurrency retries were exhausted."""


class PersistenceError(LifecycleError):
    """A primary write failed; nothing downstream of it was applied."""
