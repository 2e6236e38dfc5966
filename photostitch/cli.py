#!/usr/bin/env python3
"""
Photo Stitch CLI
Command-line interface for stitching photos into a strip, grid or panorama.

Usage:
    python -m photostitch image1.jpg image2.jpg image3.jpg [options]
"""

import argparse
import logging
import os
import sys
import time

from .errors import StitchError
from .models import AUTO, OUTPUT_FORMATS, StitchConfig, Topology
from .stitcher import Stitcher

_EXTENSIONS = {
    '.jpg': 'image/jpeg',
    '.jpeg': 'image/jpeg',
    '.png': 'image/png',
    '.webp': 'image/webp',
}


def build_parser():
    parser = argparse.ArgumentParser(
        prog='photostitch',
        description='Stitch photos into a single composite image'
    )

    parser.add_argument(
        'images',
        nargs='+',
        help='Input images (in stitch order)'
    )

    parser.add_argument(
        '-o', '--output',
        default='stitched/stitched-image.jpg',
        help='Output image path (default: stitched/stitched-image.jpg)'
    )

    parser.add_argument(
        '-t', '--topology',
        default=Topology.HORIZONTAL.value,
        choices=[t.value for t in Topology] + [AUTO],
        help='Layout of the composite (default: horizontal)'
    )

    parser.add_argument(
        '--overlap',
        default='0.1',
        help='Overlap fraction 0.0-1.0, or "auto" to measure it (default: 0.1)'
    )

    parser.add_argument(
        '--no-blend',
        action='store_true',
        help='Disable seam blending'
    )

    parser.add_argument(
        '--quality',
        type=float,
        default=0.9,
        help='Output quality 0.0-1.0 (default: 0.9)'
    )

    parser.add_argument(
        '--format',
        choices=sorted(OUTPUT_FORMATS),
        default=None,
        help='Output MIME type (default: guessed from the output extension)'
    )

    parser.add_argument(
        '--min-overlap',
        type=float,
        default=0.05,
        help='Lower bound of the auto overlap search (default: 0.05)'
    )

    parser.add_argument(
        '--max-overlap',
        type=float,
        default=0.30,
        help='Upper bound of the auto overlap search (default: 0.30)'
    )

    parser.add_argument(
        '--timeout',
        type=float,
        default=30.0,
        help='Seconds allowed to decode each image (default: 30)'
    )

    parser.add_argument(
        '-v', '--verbose',
        action='store_true',
        help='Log pipeline details'
    )

    return parser


def log_level(verbose):
    return logging.DEBUG if verbose else logging.WARNING


def guess_format(output_path):
    ext = os.path.splitext(output_path)[1].lower()
    return _EXTENSIONS.get(ext, 'image/jpeg')


def main(argv=None):
    """Main function for CLI."""
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=log_level(args.verbose),
        format='%(levelname)s %(name)s: %(message)s'
    )

    for img_path in args.images:
        if not os.path.exists(img_path):
            print(f"Error: Image not found: {img_path}")
            return 1

    try:
        config = StitchConfig(
            topology=args.topology,
            overlap_fraction=args.overlap,
            blending_enabled=not args.no_blend,
            output_quality=args.quality,
            output_format=args.format or guess_format(args.output),
            min_overlap=args.min_overlap,
            max_overlap=args.max_overlap,
            decode_timeout=args.timeout,
        ).validate()
    except StitchError as e:
        print(f"Error: {e}")
        return 1

    print(f"Input images: {len(args.images)}")

    stitcher = Stitcher(debug=args.verbose)
    start_time = time.time()

    try:
        result = stitcher.stitch(args.images, config)
    except StitchError as e:
        print(f"\nError during stitching: {e}")
        return 1

    elapsed_time = time.time() - start_time

    print("\nSaving composite...")
    output_path = result.save(args.output)

    topology = result.topology.value if result.topology else 'passthrough'
    print("\n✓ Success!")
    print(f"  Composite saved to: {output_path}")
    print(f"  Format: {result.mime_type} ({len(result.data)} bytes)")
    print(f"  Topology: {topology}")
    print(f"  Overlap fraction: {result.overlap_fraction:.3f}")
    for estimate in result.estimates:
        print(f"    Pair {estimate.pair}: {estimate.pixels}px, confidence {estimate.confidence:.3f}")
    print(f"  Processing time: {elapsed_time:.2f} seconds")

    return 0


if __name__ == '__main__':
    sys.exit(main())
