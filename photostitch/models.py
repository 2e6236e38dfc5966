"""
Data model shared by the stitching stages.
"""

from __future__ import annotations

import enum
import math
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Tuple, Union

import numpy as np

from .errors import InvalidConfigError

AUTO = "auto"

# MIME type -> Pillow format name
OUTPUT_FORMATS = {
    "image/jpeg": "JPEG",
    "image/png": "PNG",
    "image/webp": "WEBP",
}

_FORMAT_ALIASES = {
    "jpeg": "image/jpeg",
    "jpg": "image/jpeg",
    "image/jpg": "image/jpeg",
    "png": "image/png",
    "webp": "image/webp",
}


class Topology(enum.Enum):
    HORIZONTAL = "horizontal"
    VERTICAL = "vertical"
    GRID = "grid"
    PANORAMIC = "panoramic"

    @property
    def blend_axis(self) -> Optional[int]:
        """Array axis the seam gradient runs along (1 = x, 0 = y), None for grid."""
        if self in (Topology.HORIZONTAL, Topology.PANORAMIC):
            return 1
        if self is Topology.VERTICAL:
            return 0
        return None

    @classmethod
    def parse(cls, value) -> Union["Topology", str]:
        """Resolve a topology tag; ``"auto"`` is passed through."""
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            tag = value.strip().lower()
            if tag == AUTO:
                return AUTO
            for member in cls:
                if member.value == tag:
                    return member
        raise InvalidConfigError(f"Unknown topology: {value!r}")


class StitchState(enum.Enum):
    IDLE = "idle"
    LOADING = "loading"
    PASSTHROUGH = "single_image_passthrough"
    ESTIMATING_OVERLAP = "estimating_overlap"
    PLANNING = "planning"
    BLENDING = "blending"
    ENCODING = "encoding"
    DONE = "done"
    FAILED = "failed"


def clamp_fraction(value: float) -> float:
    return min(1.0, max(0.0, value))


def resolve_overlap_fraction(value) -> Union[float, str]:
    """
    Normalise a configured overlap fraction.

    Numbers (and numeric strings) are clamped to [0, 1]; ``"auto"`` is kept
    as-is. Anything else, NaN included, is rejected.
    """
    if isinstance(value, str):
        if value.strip().lower() == AUTO:
            return AUTO
        try:
            value = float(value)
        except ValueError:
            raise InvalidConfigError(f"Invalid overlap fraction: {value!r}") from None
    if isinstance(value, bool) or not isinstance(value, (int, float, np.integer, np.floating)):
        raise InvalidConfigError(f"Invalid overlap fraction: {value!r}")
    value = float(value)
    if math.isnan(value):
        raise InvalidConfigError("Overlap fraction must not be NaN")
    return clamp_fraction(value)


def resolve_output_format(value: str) -> str:
    if not isinstance(value, str):
        raise InvalidConfigError(f"Invalid output format: {value!r}")
    tag = value.strip().lower()
    tag = _FORMAT_ALIASES.get(tag, tag)
    if tag not in OUTPUT_FORMATS:
        raise InvalidConfigError(f"Unsupported output format: {value!r}")
    return tag


@dataclass
class StitchConfig:
    topology: Union[Topology, str] = Topology.HORIZONTAL
    overlap_fraction: Union[float, str] = 0.1
    blending_enabled: bool = True
    output_quality: float = 0.9
    output_format: str = "image/jpeg"
    min_overlap: float = 0.05
    max_overlap: float = 0.30
    decode_timeout: Optional[float] = 30.0
    match_threshold: float = 0.7

    @classmethod
    def from_options(cls, **options) -> "StitchConfig":
        """Build a validated config from loose keyword options."""
        unknown = set(options) - set(cls.__dataclass_fields__)
        if unknown:
            raise InvalidConfigError(f"Unknown stitch options: {', '.join(sorted(unknown))}")
        return cls(**options).validate()

    def validate(self) -> "StitchConfig":
        """Normalise every field in place and return ``self``."""
        self.topology = Topology.parse(self.topology)
        self.overlap_fraction = resolve_overlap_fraction(self.overlap_fraction)
        self.output_format = resolve_output_format(self.output_format)
        self.blending_enabled = bool(self.blending_enabled)

        try:
            quality = float(self.output_quality)
        except (TypeError, ValueError):
            raise InvalidConfigError(f"Invalid output quality: {self.output_quality!r}") from None
        if not 0.0 < quality <= 1.0:
            raise InvalidConfigError(f"Output quality must be in (0, 1], got {quality}")
        self.output_quality = quality

        low = resolve_overlap_fraction(self.min_overlap)
        high = resolve_overlap_fraction(self.max_overlap)
        if low == AUTO or high == AUTO or low > high:
            raise InvalidConfigError(
                f"Invalid overlap search bracket: [{self.min_overlap}, {self.max_overlap}]"
            )
        self.min_overlap, self.max_overlap = low, high

        if self.decode_timeout is not None:
            try:
                timeout = float(self.decode_timeout)
            except (TypeError, ValueError):
                raise InvalidConfigError(f"Invalid decode timeout: {self.decode_timeout!r}") from None
            if not timeout > 0:
                raise InvalidConfigError("Decode timeout must be positive")
            self.decode_timeout = timeout

        try:
            threshold = float(self.match_threshold)
        except (TypeError, ValueError):
            raise InvalidConfigError(f"Invalid match threshold: {self.match_threshold!r}") from None
        if not 0.0 <= threshold <= 1.0:
            raise InvalidConfigError(f"Match threshold must be in [0, 1], got {threshold}")
        self.match_threshold = threshold
        return self


@dataclass
class RasterImage:
    """Decoded RGBA8 image plus where it came from."""

    pixels: np.ndarray
    index: int = 0
    source_bytes: Optional[bytes] = None
    mime_type: Optional[str] = None

    @property
    def width(self) -> int:
        return self.pixels.shape[1]

    @property
    def height(self) -> int:
        return self.pixels.shape[0]

    @property
    def size(self) -> Tuple[int, int]:
        return self.width, self.height


@dataclass
class OverlapEstimate:
    pixels: int
    fraction: float
    score: float
    axis: int
    pair: Tuple[int, int] = (0, 1)

    @property
    def confidence(self) -> float:
        """Score normalised to [0, 1]."""
        return self.score / 765.0


@dataclass
class Placement:
    x: int
    y: int
    width: int
    height: int


@dataclass
class Layout:
    topology: Topology
    width: int
    height: int
    placements: List[Placement]
    overlap_pixels: int = 0

    @property
    def blend_axis(self) -> Optional[int]:
        return self.topology.blend_axis

    def new_canvas(self) -> np.ndarray:
        """Allocate a transparent RGBA canvas of the planned size."""
        return np.zeros((self.height, self.width, 4), dtype=np.uint8)


@dataclass
class StitchResult:
    data: bytes
    mime_type: str
    topology: Optional[Topology]
    overlap_fraction: float
    source_count: int
    estimates: List[OverlapEstimate] = field(default_factory=list)

    def save(self, filepath) -> Path:
        """Write the encoded composite to ``filepath``."""
        path = Path(filepath)
        if path.parent and not path.parent.exists():
            path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(self.data)
        return path
