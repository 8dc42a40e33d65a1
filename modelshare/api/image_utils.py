"""Image utilities for turning uploads into fixed-shape model input."""

from __future__ import annotations

import io
import logging
from typing import Sequence

import numpy as np
from PIL import Image, UnidentifiedImageError

from ..errors import InvalidInputError

logger = logging.getLogger(__name__)


def decode_image(image_bytes: bytes, input_shape: Sequence[int]) -> np.ndarray:
    """Decode uploaded image bytes to a uint8 array of the given shape.

    Supports all PIL-supported formats. The image is converted to RGB (or L
    for single-channel shapes) and resized to the model's input size.

    Args:
        image_bytes: Raw file content.
        input_shape: (height, width, channels) expected by the model.

    Returns:
        Array with exactly input_shape.

    Raises:
        InvalidInputError: If the bytes are not a readable image or the
            shape is not (height, width, 1 or 3).
    """
    if len(input_shape) != 3 or input_shape[2] not in (1, 3):
        raise InvalidInputError(f"Unsupported image input shape {tuple(input_shape)}")
    if not image_bytes:
        raise InvalidInputError("Uploaded file is empty")

    height, width, channels = (int(d) for d in input_shape)
    try:
        img = Image.open(io.BytesIO(image_bytes))
        img = img.convert("RGB" if channels == 3 else "L")
    except (UnidentifiedImageError, OSError) as e:
        raise InvalidInputError(f"Could not decode image: {e}") from e

    if img.size != (width, height):
        img = img.resize((width, height), Image.Resampling.BILINEAR)

    array = np.asarray(img, dtype=np.uint8)
    if channels == 1:
        array = array[:, :, np.newaxis]
    return array
