"""
Post-processing for YOLO-family models: raw output tensors -> image-space results.

Covers detect, pose, segment and classify exports. Core functionality needs
NumPy (plus OpenCV for letterboxing and mask resizing); inference runtimes are
optional and live under `yolo_post.backends`.
"""

from .types import (
    Bbox,
    Candidate,
    ClassificationResult,
    Detection,
    DetectionResult,
    Keypoint,
    ResultSet,
    Task,
)
from .errors import ConfigMismatch, NumericError, PostprocessError, ShapeError
from .config import ModelParameters, check_input_shape, check_output_shapes, load_model_params
from .letterbox import LetterboxGeometry, letterbox
from .decode import YoloDecoder, select_class
from .nms import box_iou, nms, non_max_suppression
from .masks import MaskReconstructor
from .postprocess import YoloPostprocessor
from .metadata import load_class_names, params_from_metadata, parse_names
from .runtime import YoloPipeline, find_project_root, load_pipeline, resolve_path

__all__ = [
    "Bbox",
    "Candidate",
    "ClassificationResult",
    "Detection",
    "DetectionResult",
    "Keypoint",
    "ResultSet",
    "Task",
    "ConfigMismatch",
    "NumericError",
    "PostprocessError",
    "ShapeError",
    "ModelParameters",
    "check_input_shape",
    "check_output_shapes",
    "load_model_params",
    "LetterboxGeometry",
    "letterbox",
    "YoloDecoder",
    "select_class",
    "box_iou",
    "nms",
    "non_max_suppression",
    "MaskReconstructor",
    "YoloPostprocessor",
    "load_class_names",
    "params_from_metadata",
    "parse_names",
    "YoloPipeline",
    "find_project_root",
    "load_pipeline",
    "resolve_path",
]
