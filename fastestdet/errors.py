"""
Typed decode failures.

Shape and geometry failures mean the model and the tensor contract do not
match. They are surfaced to the caller instead of being turned into an
empty result, which is reserved for the normal "nothing detected" case.
"""


class DecodeError(ValueError):
    """Base class for tensor decoding failures."""


class ShapeMismatch(DecodeError):
    """Tensor dimensions do not match the decoder's channel/grid layout."""


class InvalidGeometry(DecodeError):
    """Model input size is not an exact, consistent multiple of the grid size."""
