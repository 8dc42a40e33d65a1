"""Manager for the process that hosts shared objects.

One HostManager per deployment. It spawns a multiprocessing manager server,
creates registered objects inside it and hands out proxies. The manager is
passed explicitly to whoever needs it; there is no module-level instance.
"""

from __future__ import annotations

import logging
import multiprocessing
import pickle
import threading
from multiprocessing.managers import BaseManager, RemoteError, dispatch
from typing import Any, Callable, Dict, Optional, Tuple, Type, Union

from ..config import get_manager_address, get_manager_authkey, get_start_method
from ..errors import (
    ConnectionLostError,
    NotRegisteredError,
    RemoteExecutionError,
    SerializationError,
    StartupError,
)
from .protocol import HostedObjectProxy, HostState, Registration, traceback_error_type

logger = logging.getLogger(__name__)

Address = Union[Tuple[str, int], str]


class _HostServer(BaseManager):
    """Manager with an empty class registry; entries are set per instance."""


class HostManager:
    """
    Hosts registered objects in a separate process.

    Lifecycle:
    - register() every hosted type
    - start() the hosting process
    - create() objects and receive proxies
    - shutdown() (or leave the ``with`` block)
    """

    def __init__(
        self,
        address: Optional[Address] = None,
        authkey: Optional[bytes] = None,
        start_method: Optional[str] = None,
    ):
        """
        Initialize manager.

        Args:
            address: (host, port) or socket path; defaults to configuration,
                which is a local socket unless TCP is configured
            authkey: Connection key; None uses the current process authkey
            start_method: multiprocessing start method ('spawn', 'fork', ...)
        """
        self._address = address if address is not None else get_manager_address()
        self._authkey = authkey if authkey is not None else get_manager_authkey()
        self._start_method = start_method or get_start_method()

        self._registrations: Dict[str, Registration] = {}
        self._server: Optional[_HostServer] = None
        self._state = HostState.CREATED
        self._lock = threading.Lock()

    def register(
        self,
        name: str,
        constructor: Callable[..., Any],
        proxy_type: Type[HostedObjectProxy],
    ) -> None:
        """
        Associate a name with a constructible type and its proxy.

        Raises:
            StartupError: If the manager has already been started
        """
        if not (isinstance(proxy_type, type) and issubclass(proxy_type, HostedObjectProxy)):
            raise TypeError(f"Proxy for '{name}' must subclass HostedObjectProxy")

        with self._lock:
            if self._state is not HostState.CREATED:
                raise StartupError(
                    f"Cannot register '{name}': manager is {self._state.value}"
                )
            self._registrations[name] = Registration(name, constructor, proxy_type)
            logger.debug(f"Registered hosted type '{name}' -> {proxy_type.__name__}")

    def start(self) -> None:
        """
        Spawn the hosting process.

        Raises:
            StartupError: If already started or the process cannot be spawned
        """
        with self._lock:
            if self._state is not HostState.CREATED:
                raise StartupError(f"Manager cannot start: it is {self._state.value}")

            try:
                ctx = multiprocessing.get_context(self._start_method)
            except ValueError as e:
                self._state = HostState.FAILED
                raise StartupError(f"Unknown start method '{self._start_method}'") from e

            server = _HostServer(address=self._address, authkey=self._authkey, ctx=ctx)
            server._registry = {
                name: registration.registry_entry()
                for name, registration in self._registrations.items()
            }

            try:
                server.start()
            except (OSError, EOFError) as e:
                # EOFError: the child died before reporting its address
                self._state = HostState.FAILED
                raise StartupError(f"Failed to start manager on {self._address}: {e}") from e

            self._server = server
            self._state = HostState.RUNNING
            logger.info(
                f"Manager started at {server.address} (pid {server._process.pid}, "
                f"hosting: {', '.join(sorted(self._registrations)) or 'nothing'})"
            )

    def create(self, name: str, *args: Any, **kwargs: Any) -> HostedObjectProxy:
        """
        Instantiate a registered type in the hosting process.

        Args:
            name: Registered name
            *args, **kwargs: Constructor arguments (must be picklable)

        Returns:
            Proxy for the new object

        Raises:
            NotRegisteredError: If name was never registered
            ConnectionLostError: If the manager is not running
            SerializationError: If constructor arguments cannot be sent
            RemoteExecutionError: If the constructor raised in the host
        """
        registration = self._registrations.get(name)
        if registration is None:
            raise NotRegisteredError(f"'{name}' is not registered with this manager")

        server = self._running_server()
        try:
            token, exposed = server._create(name, *args, **kwargs)
            proxy = registration.proxy_type(
                token,
                server._serializer,
                manager=server,
                authkey=server._authkey,
                exposed=exposed,
            )
            # The proxy holds its own reference; release the one create() left
            conn = server._Client(token.address, authkey=server._authkey)
            try:
                dispatch(conn, None, "decref", (token.id,))
            finally:
                conn.close()
        except (pickle.PicklingError, TypeError, AttributeError) as e:
            raise SerializationError(f"Cannot send arguments for '{name}': {e}") from e
        except RemoteError as e:
            # The server reports constructor failures as a formatted traceback
            raise RemoteExecutionError(
                f"Failed to create '{name}' in manager:\n{e}",
                remote_type=traceback_error_type(e.args[0] if e.args else ""),
            ) from e
        except (OSError, EOFError) as e:
            raise ConnectionLostError(f"Lost connection to manager creating '{name}': {e}") from e

        logger.debug(f"Created hosted '{name}' ({token.id})")
        return proxy

    def _running_server(self) -> _HostServer:
        if self._server is None or self._state is not HostState.RUNNING:
            raise ConnectionLostError(
                f"Manager is not running (state: {self._state.value}); call start() first"
            )
        if not self._server._process.is_alive():
            raise ConnectionLostError(
                f"Manager process exited (exit code: {self._server._process.exitcode})"
            )
        return self._server

    def shutdown(self) -> None:
        """Stop the hosting process. Safe to call more than once."""
        with self._lock:
            if self._state is HostState.RUNNING and self._server is not None:
                logger.info(f"Shutting down manager at {self._server.address}")
                self._server.shutdown()
            self._state = HostState.STOPPED

    def is_alive(self) -> bool:
        """Check if the hosting process is still running."""
        return (
            self._state is HostState.RUNNING
            and self._server is not None
            and self._server._process.is_alive()
        )

    @property
    def state(self) -> HostState:
        return self._state

    @property
    def address(self) -> Optional[Address]:
        """Bound address once running, the configured one before."""
        if self._server is not None:
            return self._server.address
        return self._address

    @property
    def pid(self) -> Optional[int]:
        if self._server is None:
            return None
        return self._server._process.pid

    def status(self) -> Dict[str, Any]:
        """Status for health checks."""
        address = self.address
        return {
            "state": self._state.value,
            "alive": self.is_alive(),
            "address": list(address) if isinstance(address, tuple) else address,
            "pid": self.pid,
            "hosted_types": sorted(self._registrations),
        }

    def __enter__(self) -> "HostManager":
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.shutdown()

    def __repr__(self) -> str:
        return f"<HostManager {self._state.value} address={self.address!r}>"
