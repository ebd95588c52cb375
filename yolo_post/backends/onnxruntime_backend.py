from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Union

import numpy as np


PathLike = Union[str, Path]


@dataclass(frozen=True)
class OnnxRuntimeBackendConfig:
    """
    Configuration for ONNX Runtime inference.

    - providers: ORT execution providers, passed through as-is
    - input_name: override the auto-selected input name if needed
    - output_names: restrict/reorder outputs; None returns all outputs in model order
    """

    providers: Optional[Sequence[str]] = None
    input_name: Optional[str] = None
    output_names: Optional[Sequence[str]] = None


class OnnxRuntimeBackend:
    """
    Minimal ONNX Runtime backend.

    Expects an NCHW float32 blob, typically shaped (B, 3, H, W).
    Returns every selected output as a list of NumPy arrays.
    """

    def __init__(self, model_path: PathLike, cfg: OnnxRuntimeBackendConfig = OnnxRuntimeBackendConfig()):
        try:
            import onnxruntime as ort  # type: ignore
        except Exception as e:  # pragma: no cover
            raise ImportError(
                "onnxruntime is required for the ONNX backend. Install it with `pip install onnxruntime` "
                "(or `onnxruntime-gpu`)."
            ) from e

        self.model_path = Path(model_path)
        if not self.model_path.exists():
            raise FileNotFoundError(str(self.model_path))

        sess_opts = ort.SessionOptions()
        providers = list(cfg.providers) if cfg.providers is not None else None
        self.session = ort.InferenceSession(str(self.model_path), sess_options=sess_opts, providers=providers)

        self.input_name = cfg.input_name or self.session.get_inputs()[0].name
        if cfg.output_names is not None:
            self.output_names = list(cfg.output_names)
        else:
            self.output_names = [o.name for o in self.session.get_outputs()]

    @property
    def metadata(self) -> Dict[str, str]:
        # Ultralytics exports store task/names/imgsz/kpt_shape here.
        return dict(self.session.get_modelmeta().custom_metadata_map)

    @property
    def output_shapes(self) -> List[List[Any]]:
        by_name = {o.name: o.shape for o in self.session.get_outputs()}
        return [list(by_name[name]) for name in self.output_names]

    @property
    def input_shape(self) -> List[Any]:
        for i in self.session.get_inputs():
            if i.name == self.input_name:
                return list(i.shape)
        return []

    def infer(self, blob: np.ndarray) -> List[np.ndarray]:
        outputs = self.session.run(self.output_names, {self.input_name: blob})
        return [np.asarray(o) for o in outputs]
