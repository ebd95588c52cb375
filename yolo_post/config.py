from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional, Sequence, Tuple, Union

from .errors import ConfigMismatch
from .types import Task


MASK_INTERPOLATIONS = ("cubic", "bilinear")


@dataclass(frozen=True)
class ModelParameters:
    """
    Read-only model description shared by every decode call.

    Counts that the task needs must be set here; they are checked once at
    construction instead of per frame.
    """

    task: Task = Task.DETECT
    num_classes: int = 0
    num_keypoints: int = 0
    num_masks: int = 0
    input_width: int = 640
    input_height: int = 640
    conf_threshold: float = 0.3
    iou_threshold: float = 0.45
    kpt_conf_threshold: float = 0.55
    # Global NMS across classes; set False to suppress only within a class id.
    class_agnostic_nms: bool = True
    max_detections: Optional[int] = 300
    # Optional list of class IDs to keep; None keeps all.
    class_ids: Optional[Tuple[int, ...]] = None
    mask_interpolation: str = "cubic"

    def __post_init__(self) -> None:
        try:
            task = Task(self.task)
        except ValueError as exc:
            raise ConfigMismatch(f"Unknown task: {self.task!r}") from exc
        object.__setattr__(self, "task", task)
        if self.class_ids is not None:
            object.__setattr__(self, "class_ids", tuple(int(c) for c in self.class_ids))

        if self.input_width <= 0 or self.input_height <= 0:
            raise ConfigMismatch("input_width and input_height must be > 0")
        for name in ("conf_threshold", "iou_threshold", "kpt_conf_threshold"):
            value = getattr(self, name)
            if not (0.0 <= value <= 1.0):
                raise ConfigMismatch(f"{name} must be within [0, 1]")
        if self.max_detections is not None and self.max_detections < 1:
            raise ConfigMismatch("max_detections must be >= 1 (or None)")
        if self.mask_interpolation not in MASK_INTERPOLATIONS:
            raise ConfigMismatch(f"mask_interpolation must be one of {MASK_INTERPOLATIONS}")
        if min(self.num_classes, self.num_keypoints, self.num_masks) < 0:
            raise ConfigMismatch("num_classes, num_keypoints and num_masks must be >= 0")

        if task is not Task.CLASSIFY and self.num_classes < 1:
            raise ConfigMismatch(f"num_classes is required for task {task.value!r}")
        if task is Task.POSE and self.num_keypoints < 1:
            raise ConfigMismatch("num_keypoints is required for task 'pose'")
        if task is Task.SEGMENT and self.num_masks < 1:
            raise ConfigMismatch("num_masks is required for task 'segment'")
        if self.class_ids is not None:
            bad = [c for c in self.class_ids if not (0 <= c < self.num_classes)]
            if bad:
                raise ConfigMismatch(f"class_ids out of range for {self.num_classes} classes: {bad}")

    @property
    def input_size(self) -> Tuple[int, int]:
        return self.input_width, self.input_height

    @property
    def tail_channels(self) -> int:
        """Channels after the class scores in the primary output."""
        if self.task is Task.POSE:
            return 3 * self.num_keypoints
        if self.task is Task.SEGMENT:
            return self.num_masks
        return 0

    @property
    def expected_channels(self) -> int:
        return 4 + self.num_classes + self.tail_channels


_ALLOWED_KEYS = {
    "task",
    "num_classes",
    "num_keypoints",
    "num_masks",
    "input_width",
    "input_height",
    "conf_threshold",
    "iou_threshold",
    "kpt_conf_threshold",
    "class_agnostic_nms",
    "max_detections",
    "class_ids",
    "mask_interpolation",
}
_INT_KEYS = {"num_classes", "num_keypoints", "num_masks", "input_width", "input_height"}
_FLOAT_KEYS = {"conf_threshold", "iou_threshold", "kpt_conf_threshold"}


def _check_types(payload: Dict[str, Any]) -> None:
    for key, value in payload.items():
        if key in _INT_KEYS and (isinstance(value, bool) or not isinstance(value, int)):
            raise ConfigMismatch(f"{key} must be an integer")
        if key in _FLOAT_KEYS and (isinstance(value, bool) or not isinstance(value, (int, float))):
            raise ConfigMismatch(f"{key} must be a number")
        if key == "class_agnostic_nms" and not isinstance(value, bool):
            raise ConfigMismatch("class_agnostic_nms must be a boolean")
        if key == "max_detections" and value is not None and (isinstance(value, bool) or not isinstance(value, int)):
            raise ConfigMismatch("max_detections must be an integer or null")
        if key == "class_ids" and value is not None and not isinstance(value, list):
            raise ConfigMismatch("class_ids must be a list of integers or null")
        if key in ("task", "mask_interpolation") and not isinstance(value, str):
            raise ConfigMismatch(f"{key} must be a string")


def model_params_from_dict(payload: Dict[str, Any]) -> ModelParameters:
    unknown = sorted(set(payload.keys()) - _ALLOWED_KEYS)
    if unknown:
        raise ConfigMismatch(f"Unknown model parameter keys: {unknown}")
    _check_types(payload)
    return ModelParameters(**payload)


def load_model_params(path: Union[str, Path]) -> ModelParameters:
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Model parameter file not found: {path}")
    raw = path.read_text(encoding="utf-8")
    try:
        payload = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ConfigMismatch(f"Invalid model parameter JSON: {path}") from exc
    if not isinstance(payload, dict):
        raise ConfigMismatch("Model parameter file must be a JSON object")
    return model_params_from_dict(payload)


def _static_dim(dim: Any) -> Optional[int]:
    # ONNX reports symbolic dims ("batch", "anchors") as strings or None.
    if isinstance(dim, bool) or not isinstance(dim, int):
        return None
    return dim if dim > 0 else None


def check_input_shape(params: ModelParameters, shape: Sequence[Any]) -> None:
    """
    Check a static (batch, 3, height, width) model input against input_width/input_height.
    """

    if not shape:
        return
    dims = list(shape)
    if len(dims) != 4:
        raise ConfigMismatch(f"Model input must be (batch, channels, height, width), got {dims}")
    height, width = _static_dim(dims[2]), _static_dim(dims[3])
    if height is not None and height != params.input_height:
        raise ConfigMismatch(f"Model input height is {height}, parameters say {params.input_height}")
    if width is not None and width != params.input_width:
        raise ConfigMismatch(f"Model input width is {width}, parameters say {params.input_width}")


def check_output_shapes(params: ModelParameters, shapes: Sequence[Sequence[Any]]) -> None:
    """
    Check static model output shapes against the configured counts.

    Meant to run once at model load; symbolic dimensions are skipped.
    """

    if params.task is Task.CLASSIFY:
        if not shapes:
            raise ConfigMismatch("Classification model exposes no outputs")
        return

    if not shapes:
        raise ConfigMismatch("Model exposes no outputs")
    primary = list(shapes[0])
    if len(primary) != 3:
        raise ConfigMismatch(f"Primary output must be (batch, channels, anchors), got {primary}")
    channels = _static_dim(primary[1])
    if channels is not None and channels != params.expected_channels:
        raise ConfigMismatch(
            f"Primary output has {channels} channels, expected {params.expected_channels} "
            f"(4 + {params.num_classes} classes + {params.tail_channels} for task {params.task.value!r})"
        )

    if params.task is Task.SEGMENT:
        if len(shapes) < 2:
            raise ConfigMismatch("Segmentation model must expose a mask prototype output")
        protos = list(shapes[1])
        if len(protos) != 4:
            raise ConfigMismatch(f"Prototype output must be (batch, masks, h, w), got {protos}")
        nm = _static_dim(protos[1])
        if nm is not None and nm != params.num_masks:
            raise ConfigMismatch(f"Prototype output has {nm} channels, expected num_masks={params.num_masks}")
