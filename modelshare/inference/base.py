"""Base class for inference models hosted by a model handle.

Classifiers are plain objects that:
1. Load their weights once, inside the manager process
2. Turn one fixed-shape input array into a probability distribution
3. Release resources when the hosting process shuts down
"""

from __future__ import annotations

import gc
import logging
import time
from abc import ABC, abstractmethod
from typing import Any, List, Sequence

import numpy as np

logger = logging.getLogger(__name__)


class BaseClassifier(ABC):
    """
    Base class for all hosted classifiers.

    Subclasses must implement:
    - name: Class attribute for logging and status output
    - load_model(): Load model into memory
    - infer(): Run inference on loaded model
    """

    name: str = "unknown"  # Override in subclass

    def __init__(self) -> None:
        self._model: Any = None
        self._labels: List[str] = []
        self._load_time_ms: int = 0

    @property
    def labels(self) -> List[str]:
        """Class labels in output order (may be empty)."""
        return list(self._labels)

    @property
    def load_time_ms(self) -> int:
        return self._load_time_ms

    def load(self) -> None:
        """Load the model and record how long it took."""
        logger.info(f"Loading model {self.name}...")
        start = time.time()
        self._model = self.load_model()
        self._load_time_ms = int((time.time() - start) * 1000)
        logger.info(f"Model {self.name} loaded in {self._load_time_ms}ms")

    def predict(self, image: np.ndarray) -> Sequence[float]:
        """Run inference on a validated input and return class probabilities."""
        if self._model is None:
            raise RuntimeError(f"Model {self.name} is not loaded")
        return self.infer(image)

    @abstractmethod
    def load_model(self) -> Any:
        """
        Load the model into memory.

        Called once by load(). Should also fill self._labels when the model
        carries its own label names.

        Returns:
            The loaded model object
        """
        pass

    @abstractmethod
    def infer(self, image: np.ndarray) -> Sequence[float]:
        """
        Run inference on the loaded model.

        Args:
            image: Input array with the handle's expected shape

        Returns:
            Probability for every class, in label order
        """
        pass

    def cleanup(self) -> None:
        """
        Release model resources.

        Called by ModelHandle.release() before the manager shuts down.
        Override for custom cleanup.
        """
        if self._model is not None:
            # Try to move to CPU first
            if hasattr(self._model, "cpu"):
                try:
                    self._model.cpu()
                except Exception as e:
                    logger.debug(f"Could not move {self.name} to CPU: {e}")
            del self._model
            self._model = None

        gc.collect()
        cleanup_gpu_memory()


def softmax(logits: Sequence[float]) -> np.ndarray:
    """Numerically stable softmax over a 1-D vector of logits."""
    values = np.asarray(logits, dtype=np.float64)
    shifted = np.exp(values - values.max())
    return shifted / shifted.sum()


def cleanup_gpu_memory() -> None:
    """Clear GPU memory caches."""
    try:
        import torch
    except ImportError:
        return

    if torch.cuda.is_available():
        torch.cuda.empty_cache()
        torch.cuda.ipc_collect()
