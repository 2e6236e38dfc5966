"""
Image I/O utilities using PIL (Pillow).

Decodes the supported source kinds into RGBA8 NumPy buffers and encodes the
finished canvas.
"""

import base64
import binascii
import concurrent.futures
import io
import logging
import os
from pathlib import Path

import numpy as np
from PIL import Image

from .errors import DecodeError, InvalidConfigError
from .models import OUTPUT_FORMATS, RasterImage

logger = logging.getLogger(__name__)

MAX_DECODE_WORKERS = 4


def _to_rgba_array(img):
    if img.mode != 'RGBA':
        img = img.convert('RGBA')
    return np.array(img, dtype=np.uint8)


def _array_to_rgba(array):
    """Coerce a grayscale, RGB or RGBA array into an RGBA8 buffer."""
    array = np.asarray(array)
    if array.dtype != np.uint8:
        if np.issubdtype(array.dtype, np.floating):
            # Floats in [0, 1] are treated as normalised intensities
            if array.size and np.nanmax(array) <= 1.0:
                array = array * 255.0
            array = np.nan_to_num(array)
        array = np.clip(array, 0, 255).astype(np.uint8)

    if array.ndim == 2:
        array = array[:, :, np.newaxis]
    if array.ndim != 3 or array.shape[2] not in (1, 3, 4):
        raise ValueError(f"Unsupported array shape {array.shape}")

    channels = array.shape[2]
    if channels == 1:
        array = np.repeat(array, 3, axis=2)
    if channels in (1, 3):
        alpha = np.full(array.shape[:2] + (1,), 255, dtype=np.uint8)
        array = np.concatenate([array, alpha], axis=2)
    return np.ascontiguousarray(array)


def _decode_bytes(data):
    """Decode encoded image bytes; returns (pixels, mime type)."""
    with Image.open(io.BytesIO(data)) as img:
        mime_type = img.get_format_mimetype() if img.format else None
        img.load()
        return _to_rgba_array(img), mime_type


def _decode_base64(text):
    payload = text.strip()
    if payload.startswith('data:'):
        _, _, payload = payload.partition(',')
    try:
        return base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ValueError(f"Invalid base64 payload: {e}") from e


def decode_source(source, index=0):
    """
    Decode one image source.

    Args:
        source: PIL image, NumPy array, encoded bytes, base64 / data URL
            string, or a path to an image file
        index: Position of the source in the input list

    Returns:
        RasterImage with RGBA8 pixels
    """
    source_bytes = None
    mime_type = None

    if isinstance(source, Image.Image):
        pixels = _to_rgba_array(source)
    elif isinstance(source, np.ndarray):
        pixels = _array_to_rgba(source)
    elif isinstance(source, (bytes, bytearray, memoryview)):
        source_bytes = bytes(source)
        pixels, mime_type = _decode_bytes(source_bytes)
    elif isinstance(source, Path) or (
        isinstance(source, str) and not source.startswith('data:') and os.path.isfile(source)
    ):
        source_bytes = Path(source).read_bytes()
        pixels, mime_type = _decode_bytes(source_bytes)
    elif isinstance(source, str):
        source_bytes = _decode_base64(source)
        pixels, mime_type = _decode_bytes(source_bytes)
    else:
        raise TypeError(f"Unsupported image source type: {type(source).__name__}")

    if pixels.ndim != 3 or pixels.shape[0] <= 0 or pixels.shape[1] <= 0:
        raise ValueError("Decoded image has no pixels")

    return RasterImage(pixels=pixels, index=index, source_bytes=source_bytes, mime_type=mime_type)


def load_images(sources, timeout=None, decoder=None):
    """
    Decode multiple sources concurrently.

    Results come back in input order regardless of which decode finishes
    first. The first failure (by input position) aborts the whole load.

    Args:
        sources: Ordered list of image sources
        timeout: Seconds to wait for each decode, None to wait forever
        decoder: Callable ``(source, index) -> RasterImage``

    Returns:
        List of RasterImage, one per source
    """
    decoder = decoder or decode_source
    sources = list(sources)
    if not sources:
        return []

    max_workers = min(MAX_DECODE_WORKERS, len(sources), os.cpu_count() or 1)
    executor = concurrent.futures.ThreadPoolExecutor(max_workers=max_workers)
    try:
        futures = [executor.submit(decoder, source, index) for index, source in enumerate(sources)]
        images = []
        for index, future in enumerate(futures):
            try:
                image = future.result(timeout=timeout)
            except concurrent.futures.TimeoutError:
                raise DecodeError(index, f"timed out after {timeout}s") from None
            except Exception as e:
                raise DecodeError(index, str(e)) from e
            image.index = index
            images.append(image)
            logger.debug("Decoded source #%d: %dx%d", index, image.width, image.height)
        return images
    finally:
        executor.shutdown(wait=False, cancel_futures=True)


def encode_image(pixels, mime_type='image/jpeg', quality=0.9):
    """
    Encode an RGBA canvas.

    Args:
        pixels: RGBA8 array (H x W x 4)
        mime_type: Output MIME type
        quality: Encoder quality in (0, 1]; ignored by lossless formats

    Returns:
        Encoded bytes
    """
    pil_format = OUTPUT_FORMATS.get(mime_type)
    if pil_format is None:
        raise InvalidConfigError(f"Unsupported output format: {mime_type!r}")

    img = Image.fromarray(pixels)
    params = {}
    if pil_format == 'JPEG':
        # JPEG has no alpha; transparent areas come out black
        img = img.convert('RGB')
        params['quality'] = max(1, min(100, int(round(quality * 100))))
    elif pil_format == 'WEBP':
        params['quality'] = max(1, min(100, int(round(quality * 100))))

    buffer = io.BytesIO()
    img.save(buffer, format=pil_format, **params)
    return buffer.getvalue()


def resize_image(pixels, width, height):
    """
    Resize an RGBA buffer to exactly ``width`` x ``height``.
    """
    if pixels.shape[1] == width and pixels.shape[0] == height:
        return pixels
    img = Image.fromarray(pixels)
    img_resized = img.resize((width, height), Image.LANCZOS)
    return np.array(img_resized, dtype=np.uint8)
