"""
Photo stitching without feature matching.

This package assembles ordered photos into one composite image using only
NumPy and Pillow.

Main components:
- image_io: decoding sources into RGBA buffers and encoding the result
- OverlapEstimator: coarse-grid similarity search for the overlap band
- LayoutPlanner: canvas geometry for horizontal, vertical, grid and
  panoramic composites
- SeamBlender: linear alpha blending across the overlap band
- Stitcher: the complete pipeline

Example usage:
    from photostitch import stitch

    result = stitch(['left.jpg', 'right.jpg'], topology='horizontal',
                    overlap_fraction='auto')
    result.save('stitched.jpg')
"""

__version__ = '1.0.0'

from .errors import DecodeError, InsufficientInputError, InvalidConfigError, StitchError
from .models import (
    AUTO,
    Layout,
    OverlapEstimate,
    Placement,
    RasterImage,
    StitchConfig,
    StitchResult,
    StitchState,
    Topology,
)
from .image_io import decode_source, encode_image, load_images
from .overlap import OverlapEstimator, detect_topology
from .layout import LayoutPlanner, grid_shape
from .blending import SeamBlender
from .stitcher import Stitcher, auto_stitch, stitch

__all__ = [
    'AUTO',
    'DecodeError',
    'InsufficientInputError',
    'InvalidConfigError',
    'StitchError',
    'Layout',
    'OverlapEstimate',
    'Placement',
    'RasterImage',
    'StitchConfig',
    'StitchResult',
    'StitchState',
    'Topology',
    'decode_source',
    'encode_image',
    'load_images',
    'OverlapEstimator',
    'detect_topology',
    'LayoutPlanner',
    'grid_shape',
    'SeamBlender',
    'Stitcher',
    'auto_stitch',
    'stitch',
]
