"""
Error types raised by the stitching pipeline.
"""


class StitchError(Exception):
    """Base class for every failure surfaced by photostitch."""


class DecodeError(StitchError, IOError):
    """A single source could not be decoded; the whole stitch is aborted."""

    def __init__(self, index, reason=None):
        self.index = index
        self.reason = reason
        message = f"Failed to decode image source #{index}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class InsufficientInputError(StitchError, ValueError):
    """No image sources were supplied."""

    def __init__(self, message="No images to stitch"):
        super().__init__(message)


class InvalidConfigError(StitchError, ValueError):
    """Configuration value that cannot be resolved into a usable setting."""
