"""
Custom Exceptions
"""


class SignalDigestError(Exception):
    """Base error for the signal digest package."""

    def __init__(self, message: str, details: dict = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)

    def __str__(self):
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


class SourceFetchError(SignalDigestError):
    """A single source could not be fetched or parsed."""

    def __init__(self, message: str, source: str = None, **kwargs):
        super().__init__(message, kwargs)
        self.source = source


class ResponseTooLargeError(SourceFetchError):
    """Response body exceeded the configured byte ceiling."""
    pass


class RobotCheckError(SourceFetchError):
    """The site answered with a bot-detection / CAPTCHA page."""
    pass


class SocialSearchError(SignalDigestError):
    """Social-search API call failed."""

    def __init__(self, message: str, status_code: int = None, **kwargs):
        super().__init__(message, kwargs)
        self.status_code = status_code


class RunAlreadyInProgressError(SignalDigestError):
    """A run for the same theme is still in flight."""

    def __init__(self, theme_id: str):
        super().__init__(f"run already in progress for theme '{theme_id}'")
        self.theme_id = theme_id
