class ApplicationError(Exception):
    pass


class ConfigurationError(ApplicationError):
    pass


class EncodeError(ApplicationError):
    pass


class ResourceError(ApplicationError):
    """The object embedded in an admission request is not a usable resource."""

    pass
