"""
Overlap estimation between adjacent images.

A brute-force scan over candidate overlap widths: each candidate band is
sampled on a coarse grid and scored by how closely the two images agree.
No feature matching is involved.
"""

import logging
import math

import numpy as np

from .models import OverlapEstimate, Topology, clamp_fraction

logger = logging.getLogger(__name__)

# 3 * 255, the largest possible |dr| + |dg| + |db|
MAX_CHANNEL_DIFF = 765.0

_EPS = 1e-9


def _pixels_of(image):
    return image.pixels if hasattr(image, 'pixels') else np.asarray(image)


class OverlapEstimator:
    """
    Finds the overlap fraction that maximises pixel similarity between two
    adjacent images.

    Candidates are scanned in ascending overlap and only a strictly better
    score replaces the current best, so ties resolve to the smallest overlap.
    """

    def __init__(self, min_fraction=0.05, max_fraction=0.30, sample_step=5,
                 candidate_step=5, debug=False):
        """
        Initialize Overlap Estimator.

        Args:
            min_fraction: Lower end of the search bracket (0-1)
            max_fraction: Upper end of the search bracket (0-1)
            sample_step: Sample every n-th pixel on each axis of a band
            candidate_step: Distance in pixels between candidate overlaps
            debug: Log the score of every candidate
        """
        if min_fraction > max_fraction:
            raise ValueError("min_fraction must not exceed max_fraction")
        self.min_fraction = clamp_fraction(min_fraction)
        self.max_fraction = clamp_fraction(max_fraction)
        self.sample_step = max(1, int(sample_step))
        self.candidate_step = max(1, int(candidate_step))
        self.debug = debug

    def estimate(self, img1, img2, axis=1, pair=(0, 1)):
        """
        Estimate the overlap between two adjacent images.

        Args:
            img1: Leading image (left for axis=1, top for axis=0)
            img2: Trailing image
            axis: 1 for side-by-side images, 0 for stacked images
            pair: Indices of the two images, recorded on the estimate

        Returns:
            OverlapEstimate whose fraction is relative to img1's extent
            along the axis
        """
        a = _pixels_of(img1)
        b = _pixels_of(img2)
        if axis == 0:
            # Stacked images: transpose so the scan always runs over columns
            a = a.transpose(1, 0, 2)
            b = b.transpose(1, 0, 2)

        h1, w1 = a.shape[:2]
        h2, w2 = b.shape[:2]
        step = self.sample_step

        # Rows are compared with both images centred on each other, as laid out
        common = min(h1, h2)
        top1 = (h1 - common) // 2
        top2 = (h2 - common) // 2
        rows1 = a[top1:top1 + common:step, :, :3].astype(np.int16)
        rows2 = b[top2:top2 + common:step, :, :3].astype(np.int16)

        low = max(1, math.ceil(self.min_fraction * w1 - _EPS))
        high = min(math.floor(self.max_fraction * w1 + _EPS), w1, w2)

        best_pixels = None
        best_score = None
        for overlap in range(low, high + 1, self.candidate_step):
            cols = np.arange(0, overlap, step)
            band1 = rows1[:, w1 - overlap + cols]
            band2 = rows2[:, cols]
            if band1.size == 0:
                continue

            diff = np.abs(band1 - band2).sum(axis=2)
            score = float(np.mean(MAX_CHANNEL_DIFF - diff))
            if self.debug:
                logger.debug("pair %s axis=%d overlap=%dpx score=%.2f", pair, axis, overlap, score)

            if best_score is None or score > best_score:
                best_score = score
                best_pixels = overlap

        if best_pixels is None:
            logger.debug("pair %s: no scorable candidate, using %.3f", pair, self.min_fraction)
            return OverlapEstimate(
                pixels=int(w1 * self.min_fraction),
                fraction=self.min_fraction,
                score=0.0,
                axis=axis,
                pair=pair,
            )

        fraction = min(self.max_fraction, max(self.min_fraction, best_pixels / w1))
        return OverlapEstimate(
            pixels=best_pixels,
            fraction=fraction,
            score=best_score,
            axis=axis,
            pair=pair,
        )

    def estimate_sequence(self, images, axis=1):
        """Estimate every adjacent pair of an ordered image list."""
        return [
            self.estimate(images[i], images[i + 1], axis=axis, pair=(i, i + 1))
            for i in range(len(images) - 1)
        ]


def detect_topology(images, estimator=None, match_threshold=0.7):
    """
    Pick a topology from how adjacent images overlap.

    Each adjacent pair is scored side-by-side and stacked; the better of the
    two counts as a match when its confidence exceeds ``match_threshold``.

    Args:
        images: Ordered list of images
        estimator: OverlapEstimator to score pairs with
        match_threshold: Minimum confidence (0-1) for a pair to count

    Returns:
        Topology
    """
    estimator = estimator or OverlapEstimator()
    horizontal = 0
    vertical = 0

    for i in range(len(images) - 1):
        side = estimator.estimate(images[i], images[i + 1], axis=1, pair=(i, i + 1))
        stacked = estimator.estimate(images[i], images[i + 1], axis=0, pair=(i, i + 1))
        best = side if side.confidence > stacked.confidence else stacked
        logger.debug(
            "pair (%d, %d): side-by-side %.3f, stacked %.3f",
            i, i + 1, side.confidence, stacked.confidence,
        )
        if best.confidence <= match_threshold:
            continue
        if best.axis == 1:
            horizontal += 1
        else:
            vertical += 1

    matched = horizontal + vertical
    if matched == 0:
        topology = Topology.GRID
    elif matched == len(images) - 1 and horizontal > vertical:
        topology = Topology.PANORAMIC
    elif horizontal > vertical:
        topology = Topology.HORIZONTAL
    elif vertical > 0:
        topology = Topology.VERTICAL
    else:
        topology = Topology.GRID

    logger.info("Detected %s topology (%d side-by-side, %d stacked matches)",
                topology.value, horizontal, vertical)
    return topology
