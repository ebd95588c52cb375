"""
Exception types raised by the post-processing pipeline.

All of them subclass ValueError, so callers that already catch ValueError
around post-processing keep working.
"""


class PostprocessError(ValueError):
    """Base class for every error raised while turning model outputs into results."""


class ShapeError(PostprocessError):
    """A tensor's rank or dimensions do not match the layout expected for the task."""


class ConfigMismatch(PostprocessError):
    """Class/keypoint/mask counts are unset or disagree with the model outputs."""


class NumericError(PostprocessError):
    """Mask reconstruction failed (coefficient/prototype mismatch, empty region)."""
