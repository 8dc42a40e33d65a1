"""Call protocol between proxies and the manager process.

Every hosted type is reached through a HostedObjectProxy subclass that
declares its operations explicitly in ``_exposed_``. On top of the stock
multiprocessing proxy this adds:
- a per-call timeout (MODELSHARE_CALL_TIMEOUT_SECONDS)
- translation of transport and remote failures into modelshare errors
"""

from __future__ import annotations

import logging
import pickle
from dataclasses import dataclass
from enum import Enum
from multiprocessing.managers import BaseProxy
from typing import Any, Callable, Dict, Optional, Tuple, Type

from ..config import get_call_timeout
from ..errors import (
    CallTimeoutError,
    ConnectionLostError,
    ModelShareError,
    RemoteExecutionError,
    SerializationError,
)

logger = logging.getLogger(__name__)

# Errors that belong to a hosted object's contract and reach the caller as-is
CONTRACT_ERRORS = (ModelShareError, LookupError, TypeError, ValueError)

_DEFAULT_TIMEOUT = object()


class HostState(str, Enum):
    """Manager lifecycle states."""

    CREATED = "created"  # Accepting registrations
    RUNNING = "running"  # Hosting process up, proxies can be created
    FAILED = "failed"  # Hosting process could not be spawned
    STOPPED = "stopped"  # Shutdown complete


@dataclass
class Registration:
    """A hosted type known to a manager."""

    name: str
    constructor: Callable[..., Any]
    proxy_type: Type["HostedObjectProxy"]

    def registry_entry(self) -> Tuple[Any, ...]:
        """Entry in the layout multiprocessing's Server expects."""
        return (self.constructor, tuple(self.proxy_type._exposed_), None, self.proxy_type)


def traceback_error_type(text: str) -> Optional[str]:
    """
    Qualified error name from the last line of a formatted traceback.

    Builtins are printed unqualified and get the ``builtins.`` prefix.
    Returns None when the text does not end in an ``Error: message`` line.
    """
    lines = [line for line in str(text).splitlines() if line.strip()]
    if not lines:
        return None
    name, sep, _ = lines[-1].partition(":")
    name = name.strip()
    if not sep or not all(part.isidentifier() for part in name.split(".")):
        return None
    return name if "." in name else f"builtins.{name}"


def translate_error(kind: str, result: Any, methodname: str) -> Exception:
    """
    Map a non-return reply from the manager to the error the caller sees.

    Args:
        kind: Reply kind sent by the server ('#ERROR', '#TRACEBACK', ...)
        result: Exception object or formatted traceback
        methodname: Name of the remote operation, for messages
    """
    if kind == "#ERROR":
        if isinstance(result, CONTRACT_ERRORS):
            return result
        remote_type = f"{type(result).__module__}.{type(result).__qualname__}"
        error = RemoteExecutionError(
            f"{methodname}() failed in manager: {remote_type}: {result}",
            remote_type=remote_type,
        )
        error.__cause__ = result
        return error
    if kind == "#UNSERIALIZABLE":
        return SerializationError(f"Reply to {methodname}() could not be transmitted: {result}")
    if kind == "#TRACEBACK":
        return RemoteExecutionError(
            f"{methodname}() failed in manager:\n{result}",
            remote_type=traceback_error_type(result),
        )
    return RemoteExecutionError(f"Unexpected reply kind {kind!r} for {methodname}()")


class HostedObjectProxy(BaseProxy):
    """
    Base proxy for objects living in the manager process.

    Subclasses list their operations in ``_exposed_`` and implement one
    method per operation that calls ``_callmethod``.
    """

    _exposed_: Tuple[str, ...] = ()

    def _callmethod(self, methodname, args=(), kwds={}):
        return self._invoke(methodname, args, kwds)

    def _invoke(
        self,
        methodname: str,
        args: Tuple[Any, ...] = (),
        kwds: Optional[Dict[str, Any]] = None,
        timeout: Any = _DEFAULT_TIMEOUT,
    ) -> Any:
        """
        Send one request and wait for its reply.

        Raises:
            SerializationError: If arguments or the reply cannot be pickled
            CallTimeoutError: If no reply arrives within the timeout
            ConnectionLostError: If the manager is unreachable or went away
        """
        if timeout is _DEFAULT_TIMEOUT:
            timeout = get_call_timeout()

        conn = self._connection()
        try:
            conn.send((self._id, methodname, tuple(args), dict(kwds or {})))
        except (pickle.PicklingError, TypeError, AttributeError) as e:
            raise SerializationError(f"Cannot send arguments of {methodname}(): {e}") from e
        except (OSError, EOFError) as e:
            self._drop_connection()
            raise ConnectionLostError(f"Lost connection to manager during {methodname}(): {e}") from e

        try:
            ready = timeout is None or conn.poll(timeout)
            if ready:
                kind, result = conn.recv()
        except (pickle.UnpicklingError, ImportError, AttributeError) as e:
            raise SerializationError(f"Cannot decode reply to {methodname}(): {e}") from e
        except (OSError, EOFError) as e:
            self._drop_connection()
            raise ConnectionLostError(f"Lost connection to manager during {methodname}(): {e}") from e

        if not ready:
            # A late reply would be read by the next call on this channel
            self._drop_connection()
            raise CallTimeoutError(f"{methodname}() did not complete within {timeout}s")

        if kind == "#RETURN":
            return result
        raise translate_error(kind, result, methodname)

    def _connection(self):
        """Thread-local connection to the manager, opened on first use."""
        try:
            return self._tls.connection
        except AttributeError:
            pass
        try:
            self._connect()
        except (OSError, EOFError) as e:
            raise ConnectionLostError(
                f"Cannot reach manager at {self._token.address}: {e}"
            ) from e
        return self._tls.connection

    def _drop_connection(self) -> None:
        conn = getattr(self._tls, "connection", None)
        if conn is None:
            return
        del self._tls.connection
        try:
            conn.close()
        except OSError as e:
            logger.debug(f"Error closing manager connection: {e}")
