"""Objects hosted in the manager process and helpers that consume them.

Key components:
- model_handle: ModelHandle, the guarded owner of one inference model
- collection: SharedCollection, a read-only sequence addressed by index
- pool: map_shared() for process pools reading a collection by reference
"""

from .collection import SharedCollection
from .model_handle import HandleState, ModelHandle, resolve_factory
from .pool import map_shared

__all__ = [
    "SharedCollection",
    "HandleState",
    "ModelHandle",
    "resolve_factory",
    "map_shared",
]
