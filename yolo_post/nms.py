from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

import numpy as np

from .types import Bbox, Candidate


@dataclass
class NMSConfig:
    iou_threshold: float = 0.45
    max_detections: Optional[int] = 300


def box_iou(a: Bbox, b: Bbox) -> float:
    """
    IoU of two boxes; 0 when the union is empty.
    """

    iw = max(0.0, min(a.xmax, b.xmax) - max(a.xmin, b.xmin))
    ih = max(0.0, min(a.ymax, b.ymax) - max(a.ymin, b.ymin))
    inter = iw * ih
    union = a.area + b.area - inter
    if union <= 0:
        return 0.0
    return inter / union


def _score_order(scores: np.ndarray) -> np.ndarray:
    # Highest score first; stable so equal scores keep their original order.
    return np.argsort(-scores, kind="stable")


def nms(boxes: np.ndarray, scores: np.ndarray, cfg: NMSConfig) -> np.ndarray:
    """
    Simple NumPy NMS. Expects boxes shape (N,4) in xyxy and scores shape (N,).
    Returns indices of boxes to keep, in selection order.

    A box is dropped when its IoU with a kept box is strictly greater than
    `cfg.iou_threshold`.
    """

    if boxes.size == 0:
        return np.empty((0,), dtype=np.int64)

    boxes = np.asarray(boxes, dtype=np.float64)
    scores = np.asarray(scores, dtype=np.float64)
    x1 = boxes[:, 0]
    y1 = boxes[:, 1]
    x2 = boxes[:, 2]
    y2 = boxes[:, 3]
    areas = (x2 - x1) * (y2 - y1)

    order = _score_order(scores)
    keep = []

    while order.size > 0 and (cfg.max_detections is None or len(keep) < cfg.max_detections):
        i = order[0]
        keep.append(i)

        xx1 = np.maximum(x1[i], x1[order[1:]])
        yy1 = np.maximum(y1[i], y1[order[1:]])
        xx2 = np.minimum(x2[i], x2[order[1:]])
        yy2 = np.minimum(y2[i], y2[order[1:]])

        w = np.maximum(0.0, xx2 - xx1)
        h = np.maximum(0.0, yy2 - yy1)
        inter = w * h
        union = areas[i] + areas[order[1:]] - inter
        iou = np.divide(inter, union, out=np.zeros_like(inter), where=union > 0)

        inds = np.where(iou <= cfg.iou_threshold)[0]
        order = order[inds + 1]

    return np.array(keep, dtype=np.int64)


def batched_nms(boxes: np.ndarray, scores: np.ndarray, class_ids: np.ndarray, cfg: NMSConfig) -> np.ndarray:
    """
    Per-class NMS: boxes only suppress boxes with the same class id.
    Kept indices are merged by score, ties resolved by original index.
    """

    if boxes.size == 0:
        return np.empty((0,), dtype=np.int64)

    per_class = NMSConfig(iou_threshold=cfg.iou_threshold, max_detections=None)
    kept: List[int] = []
    for cls in np.unique(class_ids):
        idx = np.where(class_ids == cls)[0]
        keep_local = nms(boxes[idx], scores[idx], per_class)
        kept.extend(idx[keep_local].tolist())

    kept_arr = np.sort(np.array(kept, dtype=np.int64))
    kept_arr = kept_arr[_score_order(np.asarray(scores, dtype=np.float64)[kept_arr])]
    if cfg.max_detections is not None:
        kept_arr = kept_arr[: cfg.max_detections]
    return kept_arr


def _to_arrays(candidates: Sequence[Candidate]) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    boxes = np.array([c.bbox.as_xyxy() for c in candidates], dtype=np.float64).reshape(-1, 4)
    scores = np.array([c.confidence for c in candidates], dtype=np.float64)
    class_ids = np.array([c.class_id for c in candidates], dtype=np.int64)
    return boxes, scores, class_ids


def non_max_suppression(
    candidates: Sequence[Candidate],
    iou_threshold: float,
    class_agnostic: bool = True,
    max_detections: Optional[int] = None,
) -> List[Candidate]:
    """
    Greedy NMS over decoded candidates.

    Suppression is global across classes by default; pass
    `class_agnostic=False` to only compare candidates of the same class id.
    The result is ordered by non-increasing confidence; equal confidences keep
    the order in which the decoder found them.
    """

    if not candidates:
        return []

    boxes, scores, class_ids = _to_arrays(candidates)
    cfg = NMSConfig(iou_threshold=iou_threshold, max_detections=max_detections)
    if class_agnostic:
        keep = nms(boxes, scores, cfg)
    else:
        keep = batched_nms(boxes, scores, class_ids, cfg)
    return [candidates[i] for i in keep]
