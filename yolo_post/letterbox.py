from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Tuple

import numpy as np

from .errors import ShapeError


@dataclass(frozen=True)
class LetterboxGeometry:
    """
    Scale ratio and padding between an original image and the model input.

    The content is scaled by `ratio`, centered, and padded; left/top padding is
    floored so the right/bottom side takes the odd pixel.
    """

    ratio: float
    pad_x: float
    pad_y: float
    orig_width: int
    orig_height: int

    @classmethod
    def compute(cls, orig_size: Tuple[int, int], model_size: Tuple[int, int]) -> "LetterboxGeometry":
        """
        Args:
            orig_size: (width, height) of the original image
            model_size: (width, height) of the model input
        """

        w0, h0 = orig_size
        w1, h1 = model_size
        if w0 <= 0 or h0 <= 0:
            raise ShapeError(f"Original image size must be positive, got {orig_size}")
        if w1 <= 0 or h1 <= 0:
            raise ShapeError(f"Model input size must be positive, got {model_size}")

        r = min(w1 / w0, h1 / h0)
        scaled_w, scaled_h = scaled_size(w0, h0, r)
        pad_x = math.floor((w1 - scaled_w) / 2)
        pad_y = math.floor((h1 - scaled_h) / 2)
        return cls(ratio=r, pad_x=float(pad_x), pad_y=float(pad_y), orig_width=int(w0), orig_height=int(h0))

    @property
    def orig_size(self) -> Tuple[int, int]:
        return self.orig_width, self.orig_height

    @property
    def scaled_size(self) -> Tuple[int, int]:
        return scaled_size(self.orig_width, self.orig_height, self.ratio)

    def forward(self, x, y):
        """Original image -> model input coordinates. Works on scalars and arrays."""
        return x * self.ratio + self.pad_x, y * self.ratio + self.pad_y

    def inverse(self, x, y):
        """Model input -> original image coordinates (no clamping)."""
        return (x - self.pad_x) / self.ratio, (y - self.pad_y) / self.ratio

    def inverse_clamped(self, x, y):
        ix, iy = self.inverse(x, y)
        return self.clamp_x(ix), self.clamp_y(iy)

    def scale_length(self, length):
        # Sizes are only rescaled; padding offsets positions, not extents.
        return length / self.ratio

    def clamp_x(self, x):
        return np.clip(x, 0.0, float(self.orig_width))

    def clamp_y(self, y):
        return np.clip(y, 0.0, float(self.orig_height))


def scaled_size(w0: float, h0: float, ratio: float) -> Tuple[int, int]:
    return int(round(w0 * ratio)), int(round(h0 * ratio))


def letterbox(
    image: np.ndarray,
    new_shape: Tuple[int, int] = (640, 640),
    color: Tuple[int, int, int] = (114, 114, 114),
):
    """
    Resize and pad image into the model input, preserving aspect ratio.

    Args:
        image: (H, W, C) image
        new_shape: (width, height) of the model input

    Returns:
        padded: resized + padded image of shape (new_h, new_w, C)
        geometry: LetterboxGeometry to map model coordinates back to `image`
    """
    try:
        import cv2  # type: ignore
    except Exception as e:  # pragma: no cover
        raise ImportError("OpenCV is required for letterbox(). Install with `pip install opencv-python`.") from e

    if isinstance(new_shape, int):
        new_shape = (new_shape, new_shape)

    h, w = image.shape[:2]
    new_w, new_h = new_shape
    geom = LetterboxGeometry.compute((w, h), (new_w, new_h))
    resized_w, resized_h = geom.scaled_size

    if (w, h) != (resized_w, resized_h):
        image = cv2.resize(image, (resized_w, resized_h), interpolation=cv2.INTER_LINEAR)

    top, left = int(geom.pad_y), int(geom.pad_x)
    bottom = new_h - resized_h - top
    right = new_w - resized_w - left
    padded = cv2.copyMakeBorder(image, top, bottom, left, right, cv2.BORDER_CONSTANT, value=color)

    return padded, geom
