"""
Optional inference backends for yolo_post.

Backends are kept in a separate module so post-processing stays lightweight
and can be used without installing inference runtimes. Every backend returns
all model outputs, so segmentation prototypes reach the decoder.
"""

from __future__ import annotations

__all__ = []
