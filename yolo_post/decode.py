from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Sequence, Tuple, Union

import numpy as np

from .config import ModelParameters
from .errors import ShapeError
from .letterbox import LetterboxGeometry
from .types import Bbox, Candidate, ClassificationResult, Keypoint, Task


CXCYWH = 4
KPT_STEP = 3  # x, y, conf


Outputs = Union[np.ndarray, Sequence[np.ndarray]]


@dataclass
class DecodedImage:
    """
    Candidates for one image plus what the later stages need to finish it.
    """

    geometry: LetterboxGeometry
    candidates: List[Candidate]
    prototypes: Optional[np.ndarray] = None  # (num_masks, mask_h, mask_w), segment only


def select_class(class_scores: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    """
    Pick class id + confidence for each anchor.

    Folds over the class rows, replacing the running best only when a score is
    strictly greater. On equal scores the lowest class index wins.

    Args:
        class_scores: (num_classes, anchors) or (num_classes,)

    Returns:
        class_ids: int64 array (anchors,) or scalar array
        confidence: float array of matching shape
    """

    scores = np.asarray(class_scores)
    if scores.ndim == 0 or scores.shape[0] == 0:
        raise ShapeError(f"class_scores must have at least one class row, got shape {scores.shape}")

    best = np.array(scores[0], dtype=np.float64, copy=True)
    best_id = np.zeros(best.shape, dtype=np.int64)
    for k in range(1, scores.shape[0]):
        row = scores[k]
        better = row > best
        best_id = np.where(better, k, best_id)
        best = np.where(better, row, best)
    return best_id, best


def _as_arrays(outputs: Outputs) -> List[np.ndarray]:
    if isinstance(outputs, np.ndarray):
        return [outputs]
    if isinstance(outputs, (list, tuple)):
        if not outputs:
            raise ShapeError("Model returned no outputs")
        return [np.asarray(o) for o in outputs]
    return [np.asarray(outputs)]


class YoloDecoder:
    """
    Decode raw YOLO outputs into per-image candidates in original-image pixels.

    Layouts (per batch):
    - classify: (B, ...) embedding per image
    - detect:   (B, 4 + nc, anchors)
    - pose:     (B, 4 + nc + 3 * nk, anchors)
    - segment:  (B, 4 + nc + nm, anchors) plus prototypes (B, nm, mask_h, mask_w)
    """

    def __init__(self, params: ModelParameters):
        self.params = params
        self._task_tails: Dict[Task, Callable[[np.ndarray, LetterboxGeometry], List]] = {
            Task.DETECT: self._no_tail,
            Task.POSE: self._decode_keypoints,
            Task.SEGMENT: self._copy_coefficients,
        }

    def decode(
        self,
        outputs: Outputs,
        orig_sizes: Sequence[Tuple[int, int]],
    ) -> List[Union[ClassificationResult, DecodedImage]]:
        """
        Args:
            outputs: primary output, or (primary, prototypes) for segmentation
            orig_sizes: (width, height) of every image in the batch, in order
        """

        arrays = _as_arrays(outputs)
        batch = len(orig_sizes)
        if self.params.task is Task.CLASSIFY:
            return self._decode_classify(arrays[0], batch)

        preds, protos = self._split_outputs(arrays, batch)
        decoded = []
        for idx, size in enumerate(orig_sizes):
            geom = LetterboxGeometry.compute(size, self.params.input_size)
            decoded.append(
                DecodedImage(
                    geometry=geom,
                    candidates=self.decode_image(preds[idx], geom),
                    prototypes=protos[idx] if protos is not None else None,
                )
            )
        return decoded

    def decode_image(self, pred: np.ndarray, geom: LetterboxGeometry) -> List[Candidate]:
        """
        Decode a single (channels, anchors) prediction.
        """

        p = self.params
        pred = np.asarray(pred)
        if pred.ndim != 2 or pred.shape[0] != p.expected_channels:
            raise ShapeError(f"Expected prediction of shape ({p.expected_channels}, anchors), got {pred.shape}")

        nc = p.num_classes
        class_ids, confidence = select_class(pred[CXCYWH : CXCYWH + nc])

        keep = confidence >= p.conf_threshold
        if p.class_ids is not None:
            keep &= np.isin(class_ids, np.array(p.class_ids))
        idx = np.nonzero(keep)[0]
        if idx.size == 0:
            return []

        boxes = pred[:CXCYWH, idx].astype(np.float64)
        cx, cy = geom.inverse(boxes[0], boxes[1])
        w = geom.scale_length(boxes[2])
        h = geom.scale_length(boxes[3])
        # Clamp each edge separately so a box crossing the border shrinks instead of moving.
        x1 = geom.clamp_x(cx - w / 2)
        y1 = geom.clamp_y(cy - h / 2)
        x2 = np.maximum(geom.clamp_x(cx + w / 2), x1)
        y2 = np.maximum(geom.clamp_y(cy + h / 2), y1)

        tails = self._task_tails[p.task](pred[CXCYWH + nc :, idx], geom)
        conf = np.clip(confidence[idx], 0.0, 1.0)
        ids = class_ids[idx]

        candidates: List[Candidate] = []
        for j in range(idx.size):
            cand = Candidate(
                bbox=Bbox(
                    x=float(x1[j]),
                    y=float(y1[j]),
                    width=float(x2[j] - x1[j]),
                    height=float(y2[j] - y1[j]),
                ),
                class_id=int(ids[j]),
                confidence=float(conf[j]),
            )
            if p.task is Task.POSE:
                cand.keypoints = tails[j]
            elif p.task is Task.SEGMENT:
                cand.coefficients = tails[j]
            candidates.append(cand)
        return candidates

    # ------------------------------------------------------------------ #
    # Helper internal
    # ------------------------------------------------------------------ #
    def _decode_classify(self, preds: np.ndarray, batch: int) -> List[ClassificationResult]:
        if preds.ndim < 1 or preds.shape[0] != batch:
            raise ShapeError(f"Classification output must have batch {batch} on axis 0, got shape {preds.shape}")
        return [ClassificationResult(embedding=np.array(preds[i], copy=True)) for i in range(batch)]

    def _split_outputs(self, arrays: List[np.ndarray], batch: int) -> Tuple[np.ndarray, Optional[np.ndarray]]:
        p = self.params
        preds = arrays[0]
        if preds.ndim != 3:
            raise ShapeError(f"Primary output must be (batch, channels, anchors), got shape {preds.shape}")
        if preds.shape[0] != batch:
            raise ShapeError(f"Primary output batch {preds.shape[0]} does not match {batch} input image(s)")
        if preds.shape[1] != p.expected_channels:
            raise ShapeError(
                f"Primary output has {preds.shape[1]} channels, expected {p.expected_channels} "
                f"for task {p.task.value!r}"
            )

        if p.task is not Task.SEGMENT:
            return preds, None

        if len(arrays) < 2:
            raise ShapeError("Segmentation needs a second output with mask prototypes")
        protos = arrays[1]
        if protos.ndim != 4:
            raise ShapeError(f"Prototype output must be (batch, masks, h, w), got shape {protos.shape}")
        if protos.shape[0] != batch:
            raise ShapeError(f"Prototype output batch {protos.shape[0]} does not match {batch} input image(s)")
        if protos.shape[1] != p.num_masks:
            raise ShapeError(f"Prototype output has {protos.shape[1]} channels, expected {p.num_masks}")
        return preds, protos

    def _no_tail(self, tail: np.ndarray, geom: LetterboxGeometry) -> List[None]:
        return [None] * tail.shape[1]

    def _decode_keypoints(self, tail: np.ndarray, geom: LetterboxGeometry) -> List[List[Keypoint]]:
        nk = self.params.num_keypoints
        kpts = tail.astype(np.float64).reshape(nk, KPT_STEP, -1)  # (nk, 3, n)
        kx, ky = geom.inverse_clamped(kpts[:, 0, :], kpts[:, 1, :])
        kconf = kpts[:, 2, :]
        present = kconf >= self.params.kpt_conf_threshold
        kconf = np.clip(kconf, 0.0, 1.0)

        out: List[List[Keypoint]] = []
        for j in range(kpts.shape[2]):
            out.append(
                [
                    Keypoint(float(kx[i, j]), float(ky[i, j]), float(kconf[i, j])) if present[i, j] else Keypoint.absent()
                    for i in range(nk)
                ]
            )
        return out

    def _copy_coefficients(self, tail: np.ndarray, geom: LetterboxGeometry) -> List[np.ndarray]:
        return [np.array(tail[:, j], dtype=np.float32, copy=True) for j in range(tail.shape[1])]
