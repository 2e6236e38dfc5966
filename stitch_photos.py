#!/usr/bin/env python3
"""
Wrapper script for photo stitching.
Makes it easier to run without the -m flag.

Usage:
    python stitch_photos.py image1.jpg image2.jpg image3.jpg
"""

import sys
from photostitch.cli import main

if __name__ == '__main__':
    sys.exit(main())
