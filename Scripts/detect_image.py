from __future__ import annotations

import argparse
from typing import Any, Dict

import cv2

from yolo_post import ClassificationResult, Task, load_class_names, load_model_params, load_pipeline


def _print_params(pipeline) -> None:
    p = pipeline.params
    print("Model parameters")
    print("================")
    print(f"  backend:        {pipeline.backend_name}")
    print(f"  task:           {p.task.value}")
    print(f"  input:          {p.input_width}x{p.input_height}")
    print(f"  num_classes:    {p.num_classes}")
    print(f"  num_keypoints:  {p.num_keypoints}")
    print(f"  num_masks:      {p.num_masks}")
    print(f"  conf / iou:     {p.conf_threshold:.2f} / {p.iou_threshold:.2f}")
    print(f"  kpt conf:       {p.kpt_conf_threshold:.2f}")
    print(f"  class agnostic: {p.class_agnostic_nms}")
    backend = pipeline.backend
    if backend is not None and hasattr(backend, "output_shapes"):
        print(f"  outputs:        {backend.output_shapes}")


def main() -> int:
    parser = argparse.ArgumentParser(description="Run a YOLO model on one image and print the decoded results.")
    parser.add_argument("--image", default=None, help="Path to an input image.")
    parser.add_argument("--model", default="Models/yolo11n.onnx", help="Path to a YOLO model (.onnx/.torchscript).")
    parser.add_argument("--params", default=None, help="Optional JSON file with model parameters.")
    parser.add_argument("--metadata", default=None, help="Optional class metadata (names mapping).")
    parser.add_argument("--task", default=None, help="Override task: detect / pose / segment / classify.")
    parser.add_argument("--conf", type=float, default=None, help="Confidence threshold.")
    parser.add_argument("--iou", type=float, default=None, help="IoU threshold for NMS.")
    parser.add_argument("--per-class-nms", action="store_true", help="Only suppress boxes of the same class.")
    parser.add_argument("--backend", default=None, help="Force backend: onnxruntime / torchscript.")
    parser.add_argument(
        "--onnx-providers",
        default=None,
        help='Comma-separated ORT providers, e.g. "CUDAExecutionProvider,CPUExecutionProvider".',
    )
    parser.add_argument("--validate", action="store_true", help="Only load the model and print its parameters.")
    parser.add_argument("--profile", action="store_true", help="Print per-stage timings.")
    args = parser.parse_args()

    if args.conf is not None and not (0.0 <= args.conf <= 1.0):
        raise ValueError("--conf must be within [0, 1]")
    if args.iou is not None and not (0.0 <= args.iou <= 1.0):
        raise ValueError("--iou must be within [0, 1]")

    overrides: Dict[str, Any] = {}
    if args.task is not None:
        overrides["task"] = Task(args.task)
    if args.conf is not None:
        overrides["conf_threshold"] = args.conf
    if args.iou is not None:
        overrides["iou_threshold"] = args.iou
    if args.per_class_nms:
        overrides["class_agnostic_nms"] = False

    onnx_providers = None
    if args.onnx_providers:
        onnx_providers = [p.strip() for p in str(args.onnx_providers).split(",") if p.strip()]

    params = load_model_params(args.params) if args.params else None
    pipeline = load_pipeline(
        args.model,
        backend=args.backend,
        params=params,
        profile=args.profile,
        onnx_providers=onnx_providers,
        **overrides,
    )

    if args.validate:
        _print_params(pipeline)
        return 0

    if args.image is None:
        raise ValueError("--image is required unless --validate is given")
    img = cv2.imread(args.image)
    if img is None:
        raise FileNotFoundError(f"Could not read image at path: {args.image}")

    class_names = load_class_names(args.metadata) if args.metadata else {}
    result = pipeline(img)

    if isinstance(result, ClassificationResult):
        emb = result.embedding.ravel()
        top = emb.argsort()[::-1][:5]
        for i in top:
            print(class_names.get(int(i), str(int(i))), float(emb[i]))
        return 0

    print(f"{len(result)} detection(s)")
    for det in result:
        name = class_names.get(det.class_id, str(det.class_id))
        line = f"{name} {det.confidence:.3f} {tuple(round(v, 1) for v in det.as_xyxy())}"
        if det.keypoints is not None:
            visible = sum(1 for k in det.keypoints if not k.is_absent)
            line += f" keypoints={visible}/{len(det.keypoints)}"
        if det.mask is not None:
            line += f" mask_px={int((det.mask > 0).sum())}"
        print(line)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
