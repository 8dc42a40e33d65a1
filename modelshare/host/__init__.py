"""Out-of-process hosting for shared objects.

This module lets many processes use one copy of a stateful object:
- The manager process owns the object (e.g. a loaded model)
- Clients hold lightweight proxies that forward calls to it
- Transport and remote failures surface as modelshare errors

Key components:
- manager: HostManager for registration, lifecycle and object creation
- protocol: HostedObjectProxy base class, timeouts, error translation
- proxies: Proxies for the model handle and the shared collection
"""

from .manager import HostManager
from .protocol import HostedObjectProxy, HostState, Registration, translate_error
from .proxies import ModelHandleProxy, SharedCollectionProxy

__all__ = [
    "HostManager",
    "HostedObjectProxy",
    "HostState",
    "Registration",
    "translate_error",
    "ModelHandleProxy",
    "SharedCollectionProxy",
]
