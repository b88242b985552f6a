class InfrastructureError(Exception):
    """Base class for every error raised by the infrastructure layer."""
    pass


class PersistenceError(InfrastructureError):
    """Raised when a database write cannot be committed."""
    pass
