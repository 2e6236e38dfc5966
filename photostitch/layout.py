"""
Canvas geometry for the four composition topologies.
"""

import logging
import math

from .models import Layout, Placement, Topology, clamp_fraction

logger = logging.getLogger(__name__)

# Absorbs float error when a measured pixel overlap went through a fraction
_EPS = 1e-9


def grid_shape(count):
    """Return (cols, rows) of the smallest near-square grid holding ``count`` cells."""
    cols = math.ceil(math.sqrt(count))
    rows = math.ceil(count / cols)
    return cols, rows


def _size_of(image):
    if hasattr(image, 'width') and hasattr(image, 'height'):
        return int(image.width), int(image.height)
    width, height = image
    return int(width), int(height)


class LayoutPlanner:
    """
    Computes the canvas size and the placement of every image.

    Images are given as anything with ``width``/``height`` attributes or as
    ``(width, height)`` tuples, in stitch order.
    """

    def plan(self, images, topology, overlap_fraction=0.0):
        """
        Plan a composite.

        Args:
            images: Ordered images or (width, height) sizes
            topology: Topology to lay the images out in
            overlap_fraction: Fraction (0-1) of the first image shared with
                its neighbour; ignored for grids

        Returns:
            Layout with canvas size and one Placement per image
        """
        sizes = [_size_of(image) for image in images]
        if not sizes:
            raise ValueError("Cannot plan a layout without images")
        fraction = clamp_fraction(overlap_fraction)

        if topology is Topology.HORIZONTAL:
            layout = self._plan_strip(sizes, fraction, Topology.HORIZONTAL)
        elif topology is Topology.VERTICAL:
            # Transpose, plan as a horizontal strip, transpose back
            transposed = self._plan_strip([(h, w) for w, h in sizes], fraction, Topology.VERTICAL)
            layout = Layout(
                topology=Topology.VERTICAL,
                width=transposed.height,
                height=transposed.width,
                placements=[Placement(p.y, p.x, p.height, p.width) for p in transposed.placements],
                overlap_pixels=transposed.overlap_pixels,
            )
        elif topology is Topology.GRID:
            layout = self._plan_grid(sizes)
        elif topology is Topology.PANORAMIC:
            layout = self._plan_panoramic(sizes, fraction)
        else:
            raise ValueError(f"Unsupported topology: {topology!r}")

        logger.info(
            "Planned %s layout: %d image(s) on %dx%d canvas, overlap %dpx",
            layout.topology.value, len(sizes), layout.width, layout.height, layout.overlap_pixels,
        )
        return layout

    def _plan_strip(self, sizes, fraction, topology):
        overlap = int(sizes[0][0] * fraction + _EPS)
        canvas_width = max(0, sum(w for w, _ in sizes) - overlap * (len(sizes) - 1))
        canvas_height = max(h for _, h in sizes)

        placements = []
        x = 0
        for w, h in sizes:
            placements.append(Placement(x, int((canvas_height - h) / 2), w, h))
            x += w - overlap

        return Layout(topology, canvas_width, canvas_height, placements, overlap)

    def _plan_grid(self, sizes):
        cols, rows = grid_shape(len(sizes))
        cell_width = max(w for w, _ in sizes)
        cell_height = max(h for _, h in sizes)

        placements = []
        for index, (w, h) in enumerate(sizes):
            col = index % cols
            row = index // cols
            x = col * cell_width + int((cell_width - w) / 2)
            y = row * cell_height + int((cell_height - h) / 2)
            placements.append(Placement(x, y, w, h))

        return Layout(Topology.GRID, cols * cell_width, rows * cell_height, placements, 0)

    def _plan_panoramic(self, sizes, fraction):
        target_height = int(sum(h for _, h in sizes) / len(sizes))
        target_height = max(1, target_height)
        scaled = [(max(1, int(w * target_height / h)), target_height) for w, h in sizes]

        layout = self._plan_strip(scaled, fraction, Topology.PANORAMIC)
        layout.height = target_height
        return layout
