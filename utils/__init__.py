"""
Utils Module
"""
from .logger import setup_logger
from .exceptions import (
    ResponseTooLargeError,
    RobotCheckError,
    RunAlreadyInProgressError,
    SignalDigestError,
    SocialSearchError,
    SourceFetchError,
)

__all__ = [
    "setup_logger",
    "ResponseTooLargeError",
    "RobotCheckError",
    "RunAlreadyInProgressError",
    "SignalDigestError",
    "SocialSearchError",
    "SourceFetchError",
]
