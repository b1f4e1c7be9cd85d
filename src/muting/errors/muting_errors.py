"""
Webhook error hierarchy with phase categorization.

This module defines the error types used throughout the muting webhook.
Every error records the startup or request phase it belongs to so that
the entry point can report a single diagnostic line naming that phase.
"""


class MutingError(Exception):
    """
    Base error class for all webhook-related exceptions.

    Provides phase categorization, fatality and user guidance for resolution.
    """

    def __init__(
        self,
        message: str,
        phase: str,
        fatal: bool = True,
        user_action: str | None = None,
        cause: Exception | None = None,
    ):
        """
        Initialize webhook error.

        Args:
            message: Human-readable error description
            phase: Phase that failed (tls, registration, server, transform, ...)
            fatal: Whether the process must terminate
            user_action: What user should do to resolve the issue
            cause: Underlying exception that caused this error
        """
        super().__init__(message)
        self.phase = phase
        self.fatal = fatal
        self.user_action = user_action
        self.cause = cause

    def __str__(self) -> str:
        """Enhanced string representation with user guidance."""
        base_msg = super().__str__()
        if self.user_action:
            return f"{base_msg}\nAction required: {self.user_action}"
        return base_msg


class CryptoFailure(MutingError):
    """Key or certificate generation, signing or encoding failed."""

    def __init__(self, message: str, cause: Exception | None = None):
        super().__init__(
            message=message,
            phase="tls",
            user_action="Check the cryptography installation and requested key sizes",
            cause=cause,
        )


class RegistrationFailure(MutingError):
    """Reconciling the MutatingWebhookConfiguration with the cluster failed."""

    def __init__(
        self,
        message: str,
        reason: str | None = None,
        cause: Exception | None = None,
    ):
        if reason:
            message = f"{message} (reason: {reason})"
        super().__init__(
            message=message,
            phase="registration",
            user_action="Check RBAC permissions on mutatingwebhookconfigurations and cluster connectivity",
            cause=cause,
        )


class ServerStartFailure(MutingError):
    """The HTTPS listener could not bind or the TLS credential is unusable."""

    def __init__(self, message: str, cause: Exception | None = None):
        super().__init__(
            message=message,
            phase="server",
            user_action="Check the bind address and that the port is free",
            cause=cause,
        )


class TransformError(MutingError):
    """Transform rules could not be obtained or parsed."""

    def __init__(self, message: str, cause: Exception | None = None):
        super().__init__(
            message=message,
            phase="transform",
            fatal=False,
            user_action="Check the transforms file or ConfigMap contents",
            cause=cause,
        )


class TransformDegraded(MutingError):
    """A value passed through unmutated because its rules were unavailable."""

    def __init__(self, value: str, cause: Exception | None = None):
        super().__init__(
            message=f"Transform degraded, leaving '{value}' unchanged: {cause}",
            phase="transform",
            fatal=False,
            cause=cause,
        )
        self.value = value


class ShutdownTimeout(MutingError):
    """In-flight requests did not finish within the drain bound."""

    def __init__(self, timeout: float, pending: int):
        super().__init__(
            message=f"Timed out after {timeout}s waiting for {pending} in-flight request(s)",
            phase="shutdown",
        )
        self.timeout = timeout
        self.pending = pending


class ConfigurationError(MutingError):
    """Error in webhook configuration."""

    def __init__(self, message: str, user_action: str | None = None):
        super().__init__(
            message=message,
            phase="configuration",
            user_action=user_action or "Review and correct configuration",
        )
