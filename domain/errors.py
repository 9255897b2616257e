class MoolaError(Exception):
    """Base class for errors raised by the moola bot."""


class RepositoryError(MoolaError):
    """A call to the points backend failed."""


class ThresholdConfigError(MoolaError):
    """Threshold configuration is missing or malformed."""


class RoleConfigurationError(MoolaError):
    """A configured role id does not exist in the guild."""


class RoleUpdateError(MoolaError):
    """
    Changing a single member's roles failed.

    `retryable` is set for rate limits and transient server errors.
    """

    def __init__(self, reason: str, retryable: bool = False) -> None:
        super().__init__(reason)
        self.reason = reason
        self.retryable = retryable


class RoleSyncInProgress(MoolaError):
    """A role sync was requested while another one is still running."""
