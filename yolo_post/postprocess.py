from __future__ import annotations

from typing import List, Sequence, Tuple

from .config import ModelParameters
from .decode import DecodedImage, Outputs, YoloDecoder
from .masks import MaskReconstructor
from .nms import non_max_suppression
from .types import ClassificationResult, Detection, DetectionResult, ResultSet, Task


class YoloPostprocessor:
    """
    Raw model outputs -> one ResultSet per image.

    decode (+ inverse letterbox) -> confidence filter -> NMS -> masks (segment only).
    Holds nothing but the read-only parameters, so one instance can be shared
    between threads.
    """

    def __init__(self, params: ModelParameters):
        self.params = params
        self.decoder = YoloDecoder(params)
        self.masks = MaskReconstructor(params.mask_interpolation)

    def process(self, outputs: Outputs, orig_sizes: Sequence[Tuple[int, int]]) -> List[ResultSet]:
        """
        Args:
            outputs: model outputs for the whole batch
            orig_sizes: (width, height) for each image of the batch
        """

        results: List[ResultSet] = []
        for item in self.decoder.decode(outputs, orig_sizes):
            if isinstance(item, ClassificationResult):
                results.append(item)
            else:
                results.append(self._finish(item))
        return results

    def process_one(self, outputs: Outputs, orig_size: Tuple[int, int]) -> ResultSet:
        return self.process(outputs, [orig_size])[0]

    def _finish(self, decoded: DecodedImage) -> DetectionResult:
        p = self.params
        kept = non_max_suppression(
            decoded.candidates,
            p.iou_threshold,
            class_agnostic=p.class_agnostic_nms,
            max_detections=p.max_detections,
        )
        if p.task is Task.SEGMENT:
            detections = self.masks.attach(kept, decoded.prototypes, decoded.geometry.orig_size)
        else:
            detections = [Detection.from_candidate(c) for c in kept]
        return DetectionResult(detections=detections)
