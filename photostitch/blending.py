"""
Seam blending for strip composites using only NumPy.

Each image is drawn onto the canvas at its placement. Inside the overlap band
the new image is mixed with what is already there using a linear ramp: the
old image dominates at the leading edge of the band, the new one at the
trailing edge. Images are composited source-over, so transparent source
pixels keep whatever lies beneath them.
"""

import logging

import numpy as np

logger = logging.getLogger(__name__)


def linear_ramp(length, overlap):
    """
    Blend weights of the new image along the blend axis.

    Weights are sampled at pixel centres: ``(i + 0.5) / overlap`` inside the
    band, 1.0 beyond it.

    Args:
        length: Number of positions to produce
        overlap: Width of the overlap band in pixels

    Returns:
        float32 array of shape (length,)
    """
    positions = np.arange(length, dtype=np.float32)
    if overlap <= 0:
        return np.ones(length, dtype=np.float32)
    return np.clip((positions + 0.5) / overlap, 0.0, 1.0)


def source_over(src, dst):
    """
    Composite RGBA8 ``src`` over ``dst`` (non-premultiplied alpha).

    Opaque source pixels replace the destination exactly; transparent ones
    leave it untouched.
    """
    src_alpha = src[..., 3:4]
    if (src_alpha == 255).all():
        return src.copy()

    sa = src_alpha.astype(np.float32) / 255.0
    da = dst[..., 3:4].astype(np.float32) / 255.0
    out_alpha = sa + da * (1.0 - sa)
    rgb = src[..., :3] * sa + dst[..., :3] * (da * (1.0 - sa))
    rgb = np.divide(rgb, out_alpha, out=np.zeros_like(rgb), where=out_alpha > 0)
    out = np.concatenate([rgb, out_alpha * 255.0], axis=2)
    return np.clip(np.rint(out), 0, 255).astype(np.uint8)


class SeamBlender:
    """
    Draws placed images onto a canvas, blending across the overlap band.
    """

    def __init__(self, enabled=True):
        """
        Initialize Seam Blender.

        Args:
            enabled: When False every image is a plain opaque copy
        """
        self.enabled = enabled

    def draw(self, canvas, pixels, placement, overlap=0, axis=None, first=False):
        """
        Draw one image onto the canvas in place.

        Args:
            canvas: RGBA8 canvas (H x W x 4), modified in place
            pixels: RGBA8 image already sized to the placement
            placement: Placement of the image on the canvas
            overlap: Width of the overlap band in pixels
            axis: 1 for a horizontal ramp, 0 for a vertical one, None to copy
            first: The first image is never blended

        Returns:
            The canvas
        """
        canvas_h, canvas_w = canvas.shape[:2]
        x0 = max(placement.x, 0)
        y0 = max(placement.y, 0)
        x1 = min(placement.x + pixels.shape[1], canvas_w)
        y1 = min(placement.y + pixels.shape[0], canvas_h)
        if x0 >= x1 or y0 >= y1:
            logger.debug("Placement %s falls outside the canvas", placement)
            return canvas

        # Drawing is clipped to the canvas
        src = pixels[y0 - placement.y:y1 - placement.y, x0 - placement.x:x1 - placement.x]
        region = canvas[y0:y1, x0:x1]

        blend = self.enabled and not first and axis is not None and overlap > 0
        if not blend:
            region[...] = source_over(src, region)
            return canvas

        if axis == 1:
            start = x0 - placement.x
            band = max(0, min(overlap - start, region.shape[1]))
            ramp = linear_ramp(start + band, overlap)[start:]
            old = region[:, :band].astype(np.float32)
            weights = ramp[np.newaxis, :, np.newaxis]
            band_slice = (slice(None), slice(0, band))
        else:
            start = y0 - placement.y
            band = max(0, min(overlap - start, region.shape[0]))
            ramp = linear_ramp(start + band, overlap)[start:]
            old = region[:band].astype(np.float32)
            weights = ramp[:, np.newaxis, np.newaxis]
            band_slice = (slice(0, band), slice(None))

        region[...] = source_over(src, region)
        if band == 0:
            return canvas

        new = region[band_slice].astype(np.float32)
        # Nothing drawn underneath yet: keep the new image as-is
        weights = np.where(old[..., 3:4] == 0, 1.0, weights)
        mixed = new * weights + old * (1.0 - weights)
        region[band_slice] = np.clip(np.rint(mixed), 0, 255).astype(np.uint8)
        return canvas
