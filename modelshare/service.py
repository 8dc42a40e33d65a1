"""PredictionService - the web process's view of the hosted model.

Responsibilities:
- Start the manager process and register the hosted types
- Create and initialize the model handle once
- Run blocking proxy calls off the event loop
- Turn probability distributions into labelled predictions
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import asdict, dataclass
from typing import Any, Dict, Iterable, List, Optional, Sequence

import numpy as np

from .config import (
    get_input_shape,
    get_labels_path,
    get_model_factory,
)
from .errors import ConnectionLostError, ModelShareError
from .host import HostManager, ModelHandleProxy, SharedCollectionProxy
from .labels import LabelMap
from .shared import ModelHandle, SharedCollection

logger = logging.getLogger(__name__)

MODEL_TYPE = "model"
COLLECTION_TYPE = "collection"


@dataclass
class Prediction:
    """One labelled entry of a distribution."""

    index: int
    label: str
    confidence: float

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def create_host(
    address=None,
    authkey: Optional[bytes] = None,
    start_method: Optional[str] = None,
) -> HostManager:
    """Manager with the model handle and shared collection registered."""
    host = HostManager(address=address, authkey=authkey, start_method=start_method)
    host.register(MODEL_TYPE, ModelHandle, ModelHandleProxy)
    host.register(COLLECTION_TYPE, SharedCollection, SharedCollectionProxy)
    return host


def top_predictions(
    probs: Sequence[float], labels: LabelMap, top_k: int = 1
) -> List[Prediction]:
    """
    Highest-probability classes, best first.

    Args:
        probs: Distribution returned by the model
        labels: Index-to-label mapping
        top_k: Number of predictions to return (clamped to len(probs))
    """
    if top_k < 1:
        raise ValueError("top_k must be at least 1")
    values = np.asarray(probs, dtype=np.float64)
    if values.size == 0:
        return []
    k = min(top_k, values.size)
    # Stable sort keeps the lower index first on ties
    order = np.argsort(-values, kind="stable")[:k]
    return [
        Prediction(index=int(i), label=labels.label_for(int(i)), confidence=float(values[i]))
        for i in order
    ]


class PredictionService:
    """
    Owns the manager and the model proxy for the lifetime of the web app.

    Created by build_service() at startup and handed to request handlers.
    """

    def __init__(
        self,
        host: HostManager,
        model: ModelHandleProxy,
        labels: LabelMap,
        input_shape: Sequence[int],
    ):
        self.host = host
        self.model = model
        self.labels = labels
        self.input_shape = tuple(input_shape)

    async def classify(self, image: np.ndarray, top_k: int = 1) -> List[Prediction]:
        """
        Classify one input through the hosted model.

        Raises:
            InvalidInputError: If the input does not match the model's shape
            ConnectionLostError: If the manager is unreachable or timed out
            RemoteExecutionError: If inference failed in the manager
        """
        start = time.time()
        probs = await asyncio.to_thread(self.model.predict, image)
        predictions = top_predictions(probs, self.labels, top_k)
        logger.debug(
            f"Classified in {int((time.time() - start) * 1000)}ms: "
            f"{predictions[0].label if predictions else '-'}"
        )
        return predictions

    def share(self, items: Iterable[Any]) -> SharedCollectionProxy:
        """Host a read-only collection next to the model and return its proxy."""
        return self.host.create(COLLECTION_TYPE, list(items))

    async def status(self) -> Dict[str, Any]:
        """Manager and model status for health checks."""
        status: Dict[str, Any] = {"manager": self.host.status(), "model": None}
        try:
            status["model"] = await asyncio.to_thread(self.model.info)
        except ModelShareError as e:
            logger.warning(f"Model status unavailable: {e}")
            status["model_error"] = str(e)
        return status

    async def is_ready(self) -> bool:
        try:
            return await asyncio.to_thread(self.model.is_ready)
        except ConnectionLostError:
            return False

    def close(self) -> None:
        """Release the model, then shut the manager down; the proxies become invalid."""
        try:
            self.model.release()
        except ModelShareError as e:
            logger.warning(f"Could not release model before shutdown: {e}")
        self.host.shutdown()


def _load_labels(model: ModelHandleProxy) -> LabelMap:
    path = get_labels_path()
    if path is not None:
        labels = LabelMap.from_file(path)
    else:
        labels = LabelMap.from_labels(model.labels())
        logger.info(f"Using {len(labels)} labels from the model")

    num_classes = model.info().get("num_classes", 0)
    if num_classes and len(labels) != num_classes:
        logger.warning(
            f"Label map has {len(labels)} entries but the model has {num_classes} classes"
        )
    return labels


def build_service(host: Optional[HostManager] = None) -> PredictionService:
    """
    Start the manager, load the model in it and wrap both in a service.

    Blocking: run it in a thread from async code.

    Args:
        host: Manager with the standard types registered; created from
              configuration when omitted
    """
    host = host or create_host()
    host.start()
    try:
        input_shape = get_input_shape()
        model = host.create(MODEL_TYPE, get_model_factory(), input_shape)
        model.initialize()
        labels = _load_labels(model)
    except Exception:
        host.shutdown()
        raise

    logger.info(f"Prediction service ready (input shape {input_shape})")
    return PredictionService(host, model, labels, input_shape)
