"""Error taxonomy shared by the host, the hosted objects and the HTTP layer.

Hosted objects raise these inside the manager process; they are pickled back
to the caller unchanged, so keep constructors to a single message argument.
"""

from __future__ import annotations

from typing import Optional


class ModelShareError(Exception):
    """Base class for all modelshare errors."""


class InitializationError(ModelShareError):
    """Model setup failed, was attempted twice, or has not happened yet."""


class InvalidInputError(ModelShareError, ValueError):
    """Caller-supplied input failed shape or type validation."""


class NotRegisteredError(ModelShareError, LookupError):
    """The manager was asked to create a type it does not know."""


class StartupError(ModelShareError):
    """The manager process could not be spawned."""


class SerializationError(ModelShareError):
    """An argument or result could not cross the process boundary."""


class ConnectionLostError(ModelShareError, ConnectionError):
    """The hosting process is unreachable or has crashed."""


class CallTimeoutError(ConnectionLostError):
    """A remote call did not complete within the configured timeout."""


class RemoteExecutionError(ModelShareError):
    """A hosted method raised an error outside the shared contract.

    Attributes:
        remote_type: Qualified name of the error raised in the host, when known
    """

    def __init__(self, message: str, remote_type: Optional[str] = None):
        super().__init__(message)
        self.remote_type = remote_type
