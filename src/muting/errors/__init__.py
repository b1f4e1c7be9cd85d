"""
Error handling module for the muting webhook.

This module provides the error taxonomy used to report which startup or
request phase failed.
"""

from .muting_errors import (
    ConfigurationError,
    CryptoFailure,
    MutingError,
    RegistrationFailure,
    ServerStartFailure,
    ShutdownTimeout,
    TransformDegraded,
    TransformError,
)

__all__ = [
    "MutingError",
    "CryptoFailure",
    "RegistrationFailure",
    "ServerStartFailure",
    "TransformError",
    "TransformDegraded",
    "ShutdownTimeout",
    "ConfigurationError",
]
