"""
Stitching pipeline: load, estimate overlap, plan, blend, encode.
"""

import logging

from .blending import SeamBlender
from .errors import InsufficientInputError, InvalidConfigError
from .image_io import decode_source, encode_image, load_images, resize_image
from .layout import LayoutPlanner
from .models import (
    AUTO,
    StitchConfig,
    StitchResult,
    StitchState,
    Topology,
    clamp_fraction,
)
from .overlap import OverlapEstimator, detect_topology

logger = logging.getLogger(__name__)


class Stitcher:
    """
    Complete stitching pipeline.

    This class coordinates all components:
    1. Decoding the sources (concurrently, order preserved)
    2. Overlap estimation between adjacent images ("auto" mode)
    3. Layout planning for the chosen topology
    4. Seam blending onto a fresh canvas
    5. Encoding the canvas

    Every call to :meth:`stitch` allocates its own canvas. The ``state`` and
    ``last_estimates`` attributes describe the most recent call, so share a
    Stitcher between threads only if you do not read them.
    """

    def __init__(self, decoder=None, encoder=None, debug=False):
        """
        Initialize Stitcher.

        Args:
            decoder: Callable ``(source, index) -> RasterImage``
            encoder: Callable ``(pixels, mime_type, quality) -> bytes``
            debug: Log per-candidate overlap scores
        """
        self.decoder = decoder or decode_source
        self.encoder = encoder or encode_image
        self.debug = debug
        self.planner = LayoutPlanner()
        self.state = StitchState.IDLE
        self.last_estimates = []

    def stitch(self, sources, config=None, **options):
        """
        Stitch ordered image sources into one encoded composite.

        Args:
            sources: Ordered list of image sources
            config: StitchConfig; keyword options build one when omitted

        Returns:
            StitchResult
        """
        self.last_estimates = []
        try:
            config = self._resolve_config(config, options)
            sources = list(sources) if sources is not None else []
            if not sources:
                raise InsufficientInputError()

            self._enter(StitchState.LOADING)
            images = load_images(sources, timeout=config.decode_timeout, decoder=self.decoder)

            if len(images) == 1:
                result = self._passthrough(images[0], config)
            else:
                result = self._stitch_many(images, config)
        except Exception:
            self._enter(StitchState.FAILED)
            raise

        self._enter(StitchState.DONE)
        return result

    def compose(self, images, topology, overlap_fraction, blending_enabled=True):
        """
        Plan and blend decoded images into a new RGBA canvas.

        Args:
            images: Ordered list of RasterImage; entries are released as drawn
            topology: Topology of the composite
            overlap_fraction: Resolved overlap fraction (0-1)
            blending_enabled: Blend the overlap band

        Returns:
            RGBA8 canvas as a NumPy array
        """
        self._enter(StitchState.PLANNING)
        layout = self.planner.plan(images, topology, overlap_fraction)
        if layout.width <= 0 or layout.height <= 0:
            raise InvalidConfigError(
                f"Overlap fraction {overlap_fraction:.3f} leaves an empty "
                f"{layout.width}x{layout.height} canvas"
            )

        canvas = layout.new_canvas()
        blender = SeamBlender(enabled=blending_enabled)

        self._enter(StitchState.BLENDING)
        for index, placement in enumerate(layout.placements):
            image = images[index]
            images[index] = None
            pixels = resize_image(image.pixels, placement.width, placement.height)
            blender.draw(
                canvas,
                pixels,
                placement,
                overlap=layout.overlap_pixels,
                axis=layout.blend_axis,
                first=index == 0,
            )
            logger.debug("Drew image %d at (%d, %d)", index, placement.x, placement.y)
        return canvas

    def resolve_overlap(self, images, config, topology):
        """
        Return the overlap fraction for this run, estimating it in "auto" mode.
        """
        if config.overlap_fraction != AUTO:
            return clamp_fraction(config.overlap_fraction)
        if topology is Topology.GRID:
            # Grids never overlap, nothing to measure
            return 0.0

        self._enter(StitchState.ESTIMATING_OVERLAP)
        estimator = self._estimator(config)
        estimates = estimator.estimate_sequence(images, axis=topology.blend_axis)
        self.last_estimates = estimates
        for estimate in estimates:
            logger.info(
                "Pair %s: overlap %dpx (%.3f), confidence %.3f",
                estimate.pair, estimate.pixels, estimate.fraction, estimate.confidence,
            )
        fraction = sum(e.fraction for e in estimates) / len(estimates)
        return clamp_fraction(fraction)

    def _stitch_many(self, images, config):
        count = len(images)
        topology = config.topology
        if topology == AUTO:
            topology = detect_topology(
                images, self._estimator(config), match_threshold=config.match_threshold
            )

        fraction = self.resolve_overlap(images, config, topology)
        logger.info("Stitching %d images (%s, overlap %.3f)", count, topology.value, fraction)

        canvas = self.compose(images, topology, fraction, config.blending_enabled)

        self._enter(StitchState.ENCODING)
        data = self.encoder(canvas, config.output_format, config.output_quality)
        return StitchResult(
            data=data,
            mime_type=config.output_format,
            topology=topology,
            overlap_fraction=fraction,
            source_count=count,
            estimates=list(self.last_estimates),
        )

    def _passthrough(self, image, config):
        self._enter(StitchState.PASSTHROUGH)
        topology = config.topology if isinstance(config.topology, Topology) else None
        fraction = 0.0 if config.overlap_fraction == AUTO else config.overlap_fraction

        if image.source_bytes is not None:
            return StitchResult(
                data=image.source_bytes,
                mime_type=image.mime_type or config.output_format,
                topology=topology,
                overlap_fraction=fraction,
                source_count=1,
            )

        # In-memory rasters have no encoded form of their own
        self._enter(StitchState.ENCODING)
        return StitchResult(
            data=self.encoder(image.pixels, config.output_format, config.output_quality),
            mime_type=config.output_format,
            topology=topology,
            overlap_fraction=fraction,
            source_count=1,
        )

    def _estimator(self, config):
        return OverlapEstimator(
            min_fraction=config.min_overlap,
            max_fraction=config.max_overlap,
            debug=self.debug,
        )

    def _resolve_config(self, config, options):
        if config is None:
            return StitchConfig.from_options(**options)
        if options:
            raise InvalidConfigError("Pass either a StitchConfig or keyword options, not both")
        if not isinstance(config, StitchConfig):
            raise InvalidConfigError(f"Expected StitchConfig, got {type(config).__name__}")
        return config.validate()

    def _enter(self, state):
        logger.debug("Stitcher state: %s -> %s", self.state.value, state.value)
        self.state = state


def stitch(sources, config=None, **options):
    """Stitch with a fresh Stitcher; see :meth:`Stitcher.stitch`."""
    return Stitcher().stitch(sources, config, **options)


def auto_stitch(sources, **options):
    """Stitch with the topology and overlap both detected from the images."""
    options.setdefault('topology', AUTO)
    options.setdefault('overlap_fraction', AUTO)
    return Stitcher().stitch(sources, **options)
