from __future__ import annotations

from typing import List, Sequence, Tuple

import numpy as np

from .errors import NumericError, ShapeError
from .letterbox import LetterboxGeometry
from .types import Bbox, Candidate, Detection


def _cv2():
    try:
        import cv2  # type: ignore
    except Exception as e:  # pragma: no cover
        raise ImportError("OpenCV is required for mask reconstruction. Install with `pip install opencv-python`.") from e
    return cv2


def raw_mask(coefficients: np.ndarray, prototypes: np.ndarray) -> np.ndarray:
    """
    Linear combination of prototype channels.

    Args:
        coefficients: (num_masks,)
        prototypes: (num_masks, mask_h, mask_w) for one image

    Returns:
        (mask_h, mask_w) float32 mask at prototype resolution
    """

    protos = np.asarray(prototypes, dtype=np.float32)
    if protos.ndim != 3:
        raise NumericError(f"Prototypes must be (num_masks, h, w), got shape {protos.shape}")
    nm, mh, mw = protos.shape
    coefs = np.asarray(coefficients, dtype=np.float32).reshape(1, -1)
    if coefs.shape[1] != nm:
        raise NumericError(f"Got {coefs.shape[1]} mask coefficients for {nm} prototype channels")

    mask = coefs @ protos.reshape(nm, mh * mw)  # (1, mh*mw)
    return mask.reshape(mh, mw)


def valid_region(orig_size: Tuple[int, int], mask_size: Tuple[int, int]) -> Tuple[int, int, int, int]:
    """
    Non-padded part of a prototype-resolution mask.

    Args:
        orig_size: (width, height) of the original image
        mask_size: (width, height) of the prototype grid

    Returns:
        (left, top, width, height) in prototype pixels
    """

    geom = LetterboxGeometry.compute(orig_size, mask_size)
    w, h = geom.scaled_size
    # Extreme aspect ratios can round a side to zero prototype pixels; keep one.
    w, h = max(1, w), max(1, h)
    left = min(int(geom.pad_x), mask_size[0] - w)
    top = min(int(geom.pad_y), mask_size[1] - h)
    return left, top, w, h


def crop_to_box(mask: np.ndarray, bbox: Bbox) -> np.ndarray:
    """
    Zero every pixel outside `bbox` (edges inclusive, truncated to whole pixels).
    """

    x1, y1 = int(bbox.xmin), int(bbox.ymin)
    x2, y2 = int(bbox.xmax), int(bbox.ymax)
    out = np.zeros_like(mask)
    out[y1 : y2 + 1, x1 : x2 + 1] = mask[y1 : y2 + 1, x1 : x2 + 1]
    return out


class MaskReconstructor:
    """
    Rebuild per-instance masks from coefficients and the shared prototype tensor.

    interpolation: "cubic" (smoother edges, default for segmentation) or "bilinear".
    """

    def __init__(self, interpolation: str = "cubic"):
        if interpolation not in ("cubic", "bilinear"):
            raise ValueError(f"Unsupported mask interpolation: {interpolation!r}")
        self.interpolation = interpolation

    def reconstruct(self, cand: Candidate, prototypes: np.ndarray, orig_size: Tuple[int, int]) -> np.ndarray:
        """
        Returns a uint8 (height, width) mask at original resolution, zero outside the box.
        """

        if cand.coefficients is None:
            raise NumericError("Candidate has no mask coefficients")
        cv2 = _cv2()

        mask = raw_mask(cand.coefficients, prototypes)
        mh, mw = mask.shape
        left, top, w, h = valid_region(orig_size, (mw, mh))
        mask = np.ascontiguousarray(mask[top : top + h, left : left + w])

        w0, h0 = orig_size
        flag = cv2.INTER_CUBIC if self.interpolation == "cubic" else cv2.INTER_LINEAR
        mask = cv2.resize(mask, (int(w0), int(h0)), interpolation=flag)

        mask = np.rint(np.clip(mask, 0.0, 1.0) * 255.0).astype(np.uint8)
        return crop_to_box(mask, cand.bbox)

    def attach(
        self,
        candidates: Sequence[Candidate],
        prototypes: np.ndarray,
        orig_size: Tuple[int, int],
    ) -> List[Detection]:
        if prototypes is None:
            raise ShapeError("Mask reconstruction needs the prototype output")
        detections = []
        for cand in candidates:
            mask = None
            if cand.coefficients is not None:
                mask = self.reconstruct(cand, prototypes, orig_size)
            detections.append(Detection.from_candidate(cand, mask=mask))
        return detections
