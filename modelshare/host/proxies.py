"""Proxies for the hosted model handle and shared collection."""

from __future__ import annotations

from typing import Any, Dict, Iterator, List

from ..config import get_startup_timeout
from .protocol import HostedObjectProxy


class ModelHandleProxy(HostedObjectProxy):
    """Client-side stand-in for a ModelHandle in the manager process."""

    _exposed_ = ("initialize", "predict", "is_ready", "info", "labels", "release")

    def initialize(self) -> None:
        # Loading weights can take far longer than an inference call
        return self._invoke("initialize", timeout=get_startup_timeout())

    def predict(self, data: Any) -> List[float]:
        return self._callmethod("predict", (data,))

    def is_ready(self) -> bool:
        return self._callmethod("is_ready")

    def info(self) -> Dict[str, Any]:
        return self._callmethod("info")

    def labels(self) -> List[str]:
        return self._callmethod("labels")

    def release(self) -> None:
        return self._callmethod("release")


class SharedCollectionProxy(HostedObjectProxy):
    """
    Client-side stand-in for a SharedCollection.

    len(), indexing and iteration are built on length() and get(), one
    remote call per element. Negative indices are rejected like in get().
    """

    _exposed_ = ("length", "get")

    def length(self) -> int:
        return self._callmethod("length")

    def get(self, index: int) -> Any:
        return self._callmethod("get", (index,))

    def __len__(self) -> int:
        return self.length()

    def __getitem__(self, index: int) -> Any:
        return self.get(index)

    def __iter__(self) -> Iterator[Any]:
        for index in range(self.length()):
            yield self.get(index)
