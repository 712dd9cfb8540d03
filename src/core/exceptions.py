class DomainError(Exception):
    """Base class for domain-specific errors."""

    pass


class ConfigurationError(DomainError):
    """Exception raised when required runtime configuration is missing."""

    pass


class RecordNotFoundError(DomainError):
    """Exception raised when an assessment record does not exist."""

    pass
