from __future__ import annotations

import time
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Callable, List, Optional, Sequence, Tuple, Union

import numpy as np

from .config import ModelParameters, check_input_shape, check_output_shapes
from .decode import Outputs
from .letterbox import letterbox
from .metadata import params_from_metadata
from .postprocess import YoloPostprocessor
from .types import ResultSet


PathLike = Union[str, Path]


def find_project_root(
    start: Optional[PathLike] = None,
    markers: Sequence[str] = ("pyproject.toml", "setup.py", ".git", "requirements.txt"),
) -> Path:
    """
    Best-effort project root discovery, so models can be referenced as `models/x.onnx`.
    """

    p = Path(start) if start is not None else Path.cwd()
    p = p.resolve()

    # If a file is provided, start from its directory.
    if p.is_file():
        p = p.parent

    for parent in (p, *p.parents):
        for m in markers:
            if (parent / m).exists():
                return parent
    return p


def resolve_path(path: PathLike, root: Optional[PathLike] = "auto") -> Path:
    """
    Resolve `path` to an absolute Path.

    - Absolute paths are returned as-is.
    - Relative paths are resolved against:
      - `root` if provided
      - project root (auto) otherwise
    """

    p = Path(path)
    if p.is_absolute():
        return p

    if root == "auto" or root is None:
        base = find_project_root()
    else:
        base = Path(root).resolve()

    return (base / p).resolve()


@dataclass(frozen=True)
class PreprocessResult:
    blob: np.ndarray
    orig_sizes: List[Tuple[int, int]]


class YoloPipeline:
    """
    Plug-and-play pipeline: preprocess (letterbox) -> inference -> postprocess.

    The pipeline expects BGR images (OpenCV-style) as `np.ndarray` and returns
    one ResultSet per image in original image coordinates.
    """

    def __init__(
        self,
        infer_fn: Callable[[np.ndarray], Outputs],
        params: ModelParameters,
        *,
        backend: Optional[object] = None,
        backend_name: Optional[str] = None,
        pad_color: Tuple[int, int, int] = (114, 114, 114),
        profile: bool = False,
    ):
        self._infer_fn = infer_fn
        self.params = params
        self.backend = backend
        self.backend_name = backend_name
        self.pad_color = pad_color
        self.profile = profile
        self.post = YoloPostprocessor(params)

    def preprocess(self, images_bgr: Sequence[np.ndarray]) -> PreprocessResult:
        blobs = []
        sizes = []
        for image_bgr in images_bgr:
            if image_bgr is None or not hasattr(image_bgr, "shape"):
                raise TypeError("image_bgr must be a NumPy array (BGR).")
            if image_bgr.ndim != 3 or image_bgr.shape[2] != 3:
                raise ValueError(f"Expected image shape (H, W, 3), got {getattr(image_bgr, 'shape', None)}")

            orig_h, orig_w = image_bgr.shape[:2]
            img, _ = letterbox(image_bgr, new_shape=self.params.input_size, color=self.pad_color)

            # BGR -> RGB, normalize, HWC -> CHW
            blob = img[:, :, ::-1].astype(np.float32) / 255.0
            blobs.append(np.transpose(blob, (2, 0, 1)))
            sizes.append((orig_w, orig_h))

        if not blobs:
            raise ValueError("At least one image is required.")
        return PreprocessResult(blob=np.ascontiguousarray(np.stack(blobs)), orig_sizes=sizes)

    def run_batch(self, images_bgr: Sequence[np.ndarray]) -> List[ResultSet]:
        t0 = time.perf_counter()
        prep = self.preprocess(images_bgr)
        t1 = time.perf_counter()
        outputs = self._infer_fn(prep.blob)
        t2 = time.perf_counter()
        results = self.post.process(outputs, prep.orig_sizes)
        t3 = time.perf_counter()

        if self.profile:
            print(f"[Preprocess]: {(t1 - t0) * 1000.0:.3f}ms")
            print(f"[Inference]: {(t2 - t1) * 1000.0:.3f}ms")
            print(f"[Postprocess]: {(t3 - t2) * 1000.0:.3f}ms")
        return results

    def __call__(self, image_bgr: np.ndarray) -> ResultSet:
        return self.run_batch([image_bgr])[0]


def load_pipeline(
    model_path: PathLike,
    *,
    backend: Optional[str] = None,
    root: Optional[PathLike] = "auto",
    params: Optional[ModelParameters] = None,
    profile: bool = False,
    onnx_providers: Optional[Sequence[str]] = None,
    onnx_input_name: Optional[str] = None,
    torch_device: str = "cpu",
    torch_half: bool = False,
    **param_overrides: Any,
) -> YoloPipeline:
    """
    Create a plug-and-play pipeline for a model on disk.

    Typical usage:
        pipe = load_pipeline("models/yolo11n-seg.onnx", conf_threshold=0.4)

    Args:
        model_path: path to the model file; relative paths resolve against project root by default
        backend: "onnxruntime" (default for .onnx), "torchscript", or None to infer from extension
        params: full ModelParameters; if omitted they are read from ONNX metadata
            (torchscript models need them, or at least task/num_classes overrides)
        param_overrides: ModelParameters fields that take precedence over model metadata
    """

    if params is not None and param_overrides:
        params = replace(params, **param_overrides)

    resolved = resolve_path(model_path, root=root)
    chosen = backend
    if chosen is None:
        suffix = resolved.suffix.lower()
        if suffix == ".onnx":
            chosen = "onnxruntime"
        elif suffix in {".torchscript", ".ts", ".pt"}:
            chosen = "torchscript"
        else:
            raise ValueError(
                f"Could not infer backend from extension '{suffix}'. Pass backend=... explicitly."
            )

    chosen = chosen.lower()
    if chosen == "onnxruntime":
        from .backends.onnxruntime_backend import OnnxRuntimeBackend, OnnxRuntimeBackendConfig

        ort_backend = OnnxRuntimeBackend(
            resolved,
            OnnxRuntimeBackendConfig(providers=onnx_providers, input_name=onnx_input_name),
        )
        if params is None:
            params = params_from_metadata(ort_backend.metadata, ort_backend.output_shapes, **param_overrides)
        check_input_shape(params, ort_backend.input_shape)
        check_output_shapes(params, ort_backend.output_shapes)
        return YoloPipeline(
            ort_backend.infer,
            params,
            backend=ort_backend,
            backend_name="onnxruntime",
            profile=profile,
        )

    if chosen == "torchscript":
        from .backends.torchscript_backend import TorchScriptBackend, TorchScriptBackendConfig

        ts_backend = TorchScriptBackend(
            resolved,
            TorchScriptBackendConfig(device=torch_device, half=torch_half),
        )
        if params is None:
            params = ModelParameters(**param_overrides)
        return YoloPipeline(
            ts_backend.infer,
            params,
            backend=ts_backend,
            backend_name="torchscript",
            profile=profile,
        )

    raise ValueError(f"Unsupported backend: {backend!r}")
