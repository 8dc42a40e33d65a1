"""Image classification with HuggingFace transformers.

Loads any ``AutoModelForImageClassification`` checkpoint (ViT, ResNet,
ConvNeXt, ...) together with its image processor. Heavy imports stay inside
load_model() so only the manager process pays for torch.
"""

from __future__ import annotations

import logging
import os
from typing import Any, List, Optional

import numpy as np

from ..config import (
    get_device,
    get_hf_endpoint,
    get_hf_token,
    get_model_cache_dir,
    get_model_id,
)
from .base import BaseClassifier

logger = logging.getLogger(__name__)


class HFImageClassifier(BaseClassifier):
    """Single-image classifier backed by a transformers checkpoint."""

    def __init__(self, model_id: Optional[str] = None, device: Optional[str] = None):
        super().__init__()
        self.model_id = model_id or get_model_id()
        self.name = self.model_id
        self._device_pref = device or get_device()
        self._device = "cpu"
        self._processor: Any = None

    def load_model(self) -> Any:
        """Load the processor and model, pick a device and read id2label."""
        import torch
        from transformers import AutoImageProcessor, AutoModelForImageClassification

        os.environ["HF_ENDPOINT"] = get_hf_endpoint()
        cache_dir = str(get_model_cache_dir())
        token = get_hf_token()

        if self._device_pref:
            self._device = self._device_pref
        else:
            self._device = "cuda" if torch.cuda.is_available() else "cpu"

        logger.info(f"Loading {self.model_id} on {self._device} (cache: {cache_dir})")
        self._processor = AutoImageProcessor.from_pretrained(
            self.model_id, cache_dir=cache_dir, token=token
        )
        model = AutoModelForImageClassification.from_pretrained(
            self.model_id, cache_dir=cache_dir, token=token
        )
        model.to(self._device)
        model.eval()

        self._labels = self._read_labels(model)
        return model

    @staticmethod
    def _read_labels(model: Any) -> List[str]:
        id2label = getattr(model.config, "id2label", None) or {}
        return [str(id2label[i]) for i in sorted(int(k) for k in id2label)]

    def infer(self, image: np.ndarray) -> List[float]:
        """Classify one HxWxC image array."""
        import torch

        inputs = self._processor(images=image, return_tensors="pt")
        inputs = {k: v.to(self._device) for k, v in inputs.items()}

        with torch.no_grad():
            logits = self._model(**inputs).logits

        probs = torch.softmax(logits[0], dim=-1).cpu().numpy()

        del inputs, logits
        if self._device.startswith("cuda"):
            torch.cuda.empty_cache()

        return probs.astype(float).tolist()
