class ImageServerError(Exception):
    """Base class for failures the entry points report and exit on."""


class ConfigError(ImageServerError):
    pass


class ConfigNotFound(ConfigError):
    pass


class ConfigMalformed(ConfigError):
    pass


class ConfigInvalid(ConfigError):
    pass


class ListenerBindFailure(ImageServerError):
    pass


class ShutdownTimeout(ImageServerError):
    pass


class ServiceControlError(ImageServerError):
    pass


class AlreadyInstalled(ServiceControlError):
    pass


class NotInstalled(ServiceControlError):
    pass


class EventSourceConflict(ServiceControlError):
    """Event-log source already registered (install) or already gone (remove)."""
