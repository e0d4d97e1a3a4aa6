"""Custom exception classes for Toolwatch."""

from typing import Optional


class ToolwatchError(Exception):
    """Base class for all custom exceptions in Toolwatch."""

    pass


class ConfigurationError(ToolwatchError):
    """Raised when loading or validating configuration fails.

    Also raised at registration time for a malformed target definition.
    """

    pass


class PersistenceError(ToolwatchError):
    """Raised when a write to the status, metric or incident store fails."""

    def __init__(
        self,
        message: str,
        target_id: Optional[str] = None,
        orig_exc: Optional[Exception] = None,
    ):
        self.target_id = target_id
        self.orig_exc = orig_exc

        full_msg = "Persistence error"
        if target_id:
            full_msg += f" (target: {target_id})"
        full_msg += f": {message}"
        if orig_exc:
            full_msg += f" (original error: {type(orig_exc).__name__})"
        super().__init__(full_msg)


class ProbeError(ToolwatchError):
    """Base class for failures raised while probing a target.

    Probe errors never escape a checker; they are converted into an
    ``unhealthy`` outcome carrying :attr:`kind` and the message.
    """

    kind = "probe_error"

    def __init__(self, message: str, target_id: Optional[str] = None):
        self.target_id = target_id
        super().__init__(message)


class ProbeTimeout(ProbeError):
    """The probe did not complete within the target's timeout."""

    kind = "timeout"


class ProbeConnectionError(ProbeError):
    """The target could not be reached (DNS, refused, reset, TLS)."""

    kind = "connection_error"


class ProbeProtocolError(ProbeError):
    """The target answered with an unexpected status code or payload."""

    kind = "protocol_error"
