from __future__ import annotations

import ast
from typing import Any, Dict, Mapping, Optional, Sequence

from .config import ModelParameters
from .errors import ConfigMismatch
from .types import Task


def load_class_names(metadata_path: str) -> Dict[int, str]:
    """
    Load class names from a lightweight `metadata.yaml`:

        names:
          0: person
          1: bicycle
          ...

    Only the `names:` block is read, so no PyYAML dependency is needed.
    """

    names: Dict[int, str] = {}
    in_names = False

    with open(metadata_path, "r", encoding="utf-8") as f:
        for raw in f:
            line = raw.strip()
            if not line or line.startswith("#"):
                continue
            if line == "names:":
                in_names = True
                continue
            if not in_names:
                continue

            if ":" not in line:
                continue
            left, right = line.split(":", 1)
            left = left.strip()
            right = right.strip().strip("'").strip('"')
            if not left.isdigit():
                # Next top-level key ends the block.
                if not raw.startswith((" ", "\t")):
                    in_names = False
                continue
            names[int(left)] = right

    return names


def parse_names(text: str) -> Dict[int, str]:
    """
    Parse the `names` entry of Ultralytics ONNX metadata, e.g. "{0: 'person', 1: 'car'}".
    """

    try:
        value = ast.literal_eval(text)
    except (ValueError, SyntaxError) as exc:
        raise ConfigMismatch(f"Could not parse class names: {text[:60]!r}") from exc
    if isinstance(value, (list, tuple)):
        value = dict(enumerate(value))
    if not isinstance(value, dict):
        raise ConfigMismatch("Class names must be a dict or list")
    return {int(k): str(v) for k, v in value.items()}


def _literal(metadata: Mapping[str, str], key: str) -> Any:
    if key not in metadata:
        return None
    try:
        return ast.literal_eval(str(metadata[key]))
    except (ValueError, SyntaxError) as exc:
        raise ConfigMismatch(f"Could not parse model metadata {key!r}: {metadata[key]!r}") from exc


def _static(dim: Any) -> Optional[int]:
    if isinstance(dim, bool) or not isinstance(dim, int) or dim <= 0:
        return None
    return dim


def params_from_metadata(
    metadata: Mapping[str, str],
    output_shapes: Sequence[Sequence[Any]] = (),
    **overrides: Any,
) -> ModelParameters:
    """
    Resolve ModelParameters from ONNX custom metadata and output shapes.

    Explicit keyword overrides win over anything read from the model. Counts the
    task needs but that cannot be resolved raise ConfigMismatch.
    """

    values: Dict[str, Any] = {}

    task = overrides.pop("task", None) or metadata.get("task")
    if task is None:
        raise ConfigMismatch("Model metadata has no 'task'; pass task=... explicitly")
    try:
        task = Task(task)
    except ValueError as exc:
        raise ConfigMismatch(f"Unknown task: {task!r}") from exc
    values["task"] = task

    imgsz = _literal(metadata, "imgsz")
    if isinstance(imgsz, (list, tuple)) and len(imgsz) == 2:
        # Ultralytics stores (height, width).
        values["input_height"], values["input_width"] = int(imgsz[0]), int(imgsz[1])

    if "names" in metadata:
        values["num_classes"] = len(parse_names(metadata["names"]))

    kpt_shape = _literal(metadata, "kpt_shape")
    if task is Task.POSE and isinstance(kpt_shape, (list, tuple)) and kpt_shape:
        values["num_keypoints"] = int(kpt_shape[0])

    if task is Task.SEGMENT and len(output_shapes) > 1 and len(output_shapes[1]) == 4:
        nm = _static(output_shapes[1][1])
        if nm is not None:
            values["num_masks"] = nm

    if output_shapes and len(output_shapes[0]) == 3 and task is not Task.CLASSIFY:
        channels = _static(output_shapes[0][1])
        if channels is not None and "num_classes" not in values:
            tail = 0
            if task is Task.POSE:
                tail = 3 * int(overrides.get("num_keypoints", values.get("num_keypoints", 0)))
            elif task is Task.SEGMENT:
                tail = int(overrides.get("num_masks", values.get("num_masks", 0)))
            values["num_classes"] = channels - 4 - tail

    values.update(overrides)
    return ModelParameters(**values)
