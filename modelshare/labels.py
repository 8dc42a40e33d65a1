"""Index-to-label mapping supplied as external configuration data."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, Iterable, Union

logger = logging.getLogger(__name__)


class LabelMap:
    """Maps output indices of a classifier to human-readable labels."""

    def __init__(self, labels: Dict[int, str]):
        self._labels = dict(labels)

    @classmethod
    def from_labels(cls, labels: Iterable[str]) -> "LabelMap":
        return cls({i: str(label) for i, label in enumerate(labels)})

    @classmethod
    def from_file(cls, path: Union[str, Path]) -> "LabelMap":
        """
        Load a label map from JSON.

        Accepted layouts:
            ["tench", "goldfish", ...]
            {"0": "tench", "1": "goldfish"}
            {"0": ["n01440364", "tench"], ...}  (ImageNet class index)

        Raises:
            ValueError: If the file is not one of the layouts above
        """
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)

        if isinstance(data, list):
            return cls.from_labels(data)
        if not isinstance(data, dict):
            raise ValueError(f"Label file {path} must hold a JSON list or object")

        labels: Dict[int, str] = {}
        for key, value in data.items():
            try:
                index = int(key)
            except ValueError as e:
                raise ValueError(f"Label file {path}: key {key!r} is not an index") from e
            labels[index] = _label_text(value, path)

        logger.info(f"Loaded {len(labels)} labels from {path}")
        return cls(labels)

    def label_for(self, index: int) -> str:
        """Label for an output index, or ``class_<index>`` if unmapped."""
        return self._labels.get(index, f"class_{index}")

    def __len__(self) -> int:
        return len(self._labels)

    def __contains__(self, index: object) -> bool:
        return index in self._labels


def _label_text(value: Any, path: Union[str, Path]) -> str:
    if isinstance(value, str):
        return value
    if isinstance(value, (list, tuple)) and value:
        return str(value[-1])
    raise ValueError(f"Label file {path}: unsupported label value {value!r}")
