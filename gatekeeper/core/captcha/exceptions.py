"""Verification-challenge exceptions for error handling."""


class CaptchaError(Exception):
    """Base exception for all challenge gate operations."""
    pass


class StorageError(CaptchaError):
    """The challenge store could not be reached or rejected the operation."""
    pass


class SendError(CaptchaError):
    """A challenge could not be delivered to its target."""
    pass


class ChallengeInvalid(CaptchaError):
    """Submitted code is absent, mismatched or expired."""
    pass


class MissingParameter(CaptchaError):
    """A required request parameter was not supplied.

    Attributes:
        parameter: Name of the missing parameter
    """

    def __init__(self, parameter: str):
        self.parameter = parameter
        super().__init__(f"Missing required parameter: {parameter}")


class UnknownChannel(CaptchaError):
    """The requested challenge channel is not registered."""

    def __init__(self, channel: str):
        self.channel = channel
        super().__init__(f"Unknown challenge type: {channel}")


class ThrottleExceeded(CaptchaError):
    """A challenge was requested again before the resend interval elapsed.

    Attributes:
        retry_after: Seconds until another send is allowed
    """

    def __init__(self, retry_after: int):
        self.retry_after = retry_after
        super().__init__(f"Verification code already sent, retry in {retry_after}s")
