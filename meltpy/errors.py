"""
Exceptions raised by meltpy.
"""


class MissingInputError(FileNotFoundError):
    """A dataset file, cached artifact or required variable is not available."""


class ShapeMismatchError(ValueError):
    """Grids or query arrays that must be co-registered are not."""


class InvalidArgumentError(ValueError):
    """An option was given a malformed value."""
