"""Guarded wrapper around the single model instance a manager process owns.

The manager serves every client connection on its own thread, so several
predict() calls can reach the handle at the same time. The handle lets
exactly one of them run inference; the others wait on the guard.
"""

from __future__ import annotations

import importlib
import logging
import threading
import time
from enum import Enum
from typing import Any, Callable, Dict, List, Sequence, Tuple, Union

import numpy as np

from ..errors import InitializationError, InvalidInputError

logger = logging.getLogger(__name__)

ModelFactory = Union[str, Callable[[], Any]]


class HandleState(str, Enum):
    """Model handle lifecycle states."""

    UNINITIALIZED = "uninitialized"
    READY = "ready"
    RELEASED = "released"


def resolve_factory(factory: ModelFactory) -> Callable[[], Any]:
    """
    Turn a ``"package.module:attribute"`` string into the callable it names.

    Callables are returned unchanged.

    Raises:
        InitializationError: If the string is malformed or cannot be imported
    """
    if callable(factory):
        return factory

    module_name, _, attr = str(factory).partition(":")
    if not module_name or not attr:
        raise InitializationError(
            f"Model factory '{factory}' must look like 'package.module:attribute'"
        )
    try:
        module = importlib.import_module(module_name)
        target = getattr(module, attr)
    except (ImportError, AttributeError) as e:
        raise InitializationError(f"Cannot import model factory '{factory}': {e}") from e

    if not callable(target):
        raise InitializationError(f"Model factory '{factory}' is not callable")
    return target


class ModelHandle:
    """
    Owns one inference model and serializes access to it.

    The model is built lazily by initialize() so that construction happens
    in the hosting process, never in the callers.
    """

    def __init__(self, model_factory: ModelFactory, input_shape: Sequence[int]):
        """
        Args:
            model_factory: Callable (or import string) returning a classifier
                with load(), predict(), labels and name
            input_shape: Exact shape every predict() input must have
        """
        self._factory = model_factory
        self._input_shape: Tuple[int, ...] = tuple(int(d) for d in input_shape)
        self._model: Any = None
        self._state = HandleState.UNINITIALIZED
        self._guard = threading.Lock()  # held for the duration of one inference
        self._init_lock = threading.Lock()
        self._predictions = 0

    def initialize(self) -> None:
        """
        Construct and load the model exactly once.

        Raises:
            InitializationError: If already initialized, released or loading fails
        """
        with self._init_lock:
            if self._state is HandleState.READY:
                raise InitializationError("Model handle is already initialized")
            if self._state is HandleState.RELEASED:
                raise InitializationError("Model handle was released")

            factory = resolve_factory(self._factory)
            try:
                model = factory()
                model.load()
            except InitializationError:
                raise
            except Exception as e:
                logger.error(f"Failed to load model: {e}", exc_info=True)
                raise InitializationError(f"Failed to load model: {e}") from e

            self._model = model
            self._state = HandleState.READY
            logger.info(
                f"Model handle ready: {getattr(model, 'name', type(model).__name__)} "
                f"(input shape {self._input_shape})"
            )

    def is_ready(self) -> bool:
        return self._state is HandleState.READY

    def predict(self, data: Any) -> List[float]:
        """
        Run one inference under the guard.

        Args:
            data: Numeric array with exactly the configured input shape

        Returns:
            Class probabilities as plain floats

        Raises:
            InitializationError: If initialize() has not completed
            InvalidInputError: If data is not a numeric array of the right shape
        """
        if self._state is not HandleState.READY:
            raise InitializationError(
                f"Model handle is not initialized (state: {self._state.value})"
            )

        array = self._validate(data)

        with self._guard:
            model = self._model
            if model is None:
                raise InitializationError("Model handle was released")
            start = time.time()
            probs = model.predict(array)
            self._predictions += 1
            logger.debug(f"Inference took {int((time.time() - start) * 1000)}ms")

        return [float(p) for p in probs]

    def release(self) -> None:
        """
        Free the model before the hosting process goes away.

        Waits for the inference in flight, then calls the model's cleanup().
        Later predict() and initialize() calls fail. Safe to call twice.
        """
        with self._init_lock, self._guard:
            model, self._model = self._model, None
            self._state = HandleState.RELEASED

        if model is None:
            return
        cleanup = getattr(model, "cleanup", None)
        if cleanup is not None:
            cleanup()
        logger.info(f"Model handle released: {getattr(model, 'name', type(model).__name__)}")

    def _validate(self, data: Any) -> np.ndarray:
        if not isinstance(data, np.ndarray):
            raise InvalidInputError(
                f"Expected a numpy array, got {type(data).__name__}"
            )
        if data.shape != self._input_shape:
            raise InvalidInputError(
                f"Expected input shape {self._input_shape}, got {tuple(data.shape)}"
            )
        if data.dtype == np.bool_ or not np.issubdtype(data.dtype, np.number):
            raise InvalidInputError(f"Expected numeric input, got dtype {data.dtype}")
        if np.issubdtype(data.dtype, np.floating) and not np.all(np.isfinite(data)):
            raise InvalidInputError("Input contains NaN or infinite values")
        return data

    def labels(self) -> List[str]:
        """Labels known to the loaded model, in output order."""
        if self._model is None:
            return []
        return list(getattr(self._model, "labels", []) or [])

    def info(self) -> Dict[str, Any]:
        """Plain status dict, safe to send across the process boundary."""
        model = self._model
        return {
            "state": self._state.value,
            "model": getattr(model, "name", None) if model is not None else None,
            "input_shape": list(self._input_shape),
            "num_classes": len(self.labels()),
            "load_time_ms": getattr(model, "load_time_ms", 0) if model is not None else 0,
            "predictions": self._predictions,
            "busy": self._guard.locked(),
        }
