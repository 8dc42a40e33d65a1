"""Process pool helpers that read a shared collection by reference.

Each pool worker receives the collection proxy once, through the pool
initializer, and then fetches only the elements its tasks ask for.
"""

from __future__ import annotations

import logging
import multiprocessing
from typing import Any, Callable, List, Optional

from ..config import get_start_method
from ..host.proxies import SharedCollectionProxy

logger = logging.getLogger(__name__)

# Per worker process: the proxy and function bound by _bind_worker
_worker_collection: Optional[SharedCollectionProxy] = None
_worker_func: Optional[Callable[[Any], Any]] = None


def _bind_worker(collection: SharedCollectionProxy, func: Callable[[Any], Any]) -> None:
    global _worker_collection, _worker_func
    _worker_collection = collection
    _worker_func = func


def _apply_at(index: int) -> Any:
    return _worker_func(_worker_collection.get(index))


def map_shared(
    func: Callable[[Any], Any],
    collection: SharedCollectionProxy,
    processes: Optional[int] = None,
    chunksize: int = 1,
    start_method: Optional[str] = None,
) -> List[Any]:
    """
    Apply func to every element of a hosted collection in a process pool.

    Args:
        func: Module-level callable taking one element
        collection: Proxy returned by HostManager.create()
        processes: Pool size (defaults to the CPU count)
        chunksize: Indices handed to a worker per task
        start_method: multiprocessing start method; defaults to configuration

    Returns:
        Results in element order
    """
    count = collection.length()
    if count == 0:
        return []

    ctx = multiprocessing.get_context(start_method or get_start_method())
    logger.debug(f"Mapping over {count} shared elements with {processes or 'cpu_count'} workers")
    with ctx.Pool(processes, initializer=_bind_worker, initargs=(collection, func)) as pool:
        return pool.map(_apply_at, range(count), chunksize)
