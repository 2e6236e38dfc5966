"""
Tests for the complete stitching pipeline.
"""

import base64
import concurrent.futures
import io

import numpy as np
import pytest
from PIL import Image

from photostitch.errors import DecodeError, InsufficientInputError, InvalidConfigError
from photostitch.image_io import decode_source
from photostitch.models import StitchConfig, StitchState, Topology
from photostitch.stitcher import Stitcher, auto_stitch, stitch


def noise(width, height, seed):
    rng = np.random.default_rng(seed)
    rgb = rng.integers(0, 256, size=(height, width, 3), dtype=np.uint8)
    alpha = np.full((height, width, 1), 255, dtype=np.uint8)
    return np.concatenate([rgb, alpha], axis=2)


def png_bytes(pixels):
    buffer = io.BytesIO()
    Image.fromarray(pixels).save(buffer, format='PNG')
    return buffer.getvalue()


def decoded(result):
    return np.array(Image.open(io.BytesIO(result.data)).convert('RGBA'))


def test_zero_sources():
    """No sources fails before anything is decoded or drawn."""
    calls = []

    def decoder(source, index):
        calls.append(index)
        return decode_source(source, index)

    stitcher = Stitcher(decoder=decoder)
    with pytest.raises(InsufficientInputError):
        stitcher.stitch([])
    assert calls == []
    assert stitcher.state is StitchState.FAILED


def test_single_source_bytes_are_returned_unchanged():
    data = png_bytes(noise(30, 20, 0))
    result = stitch([data], output_format='image/jpeg')

    assert result.data == data
    assert result.mime_type == 'image/png'
    assert result.source_count == 1


def test_single_base64_source():
    data = png_bytes(noise(30, 20, 0))
    result = stitch([base64.b64encode(data).decode('ascii')])
    assert result.data == data


def test_single_raster_is_encoded():
    pixels = noise(30, 20, 1)
    result = stitch([pixels], output_format='image/png')
    np.testing.assert_array_equal(decoded(result), pixels)


def test_two_strips_without_blending():
    a = noise(100, 50, 1)
    b = noise(100, 50, 2)
    result = stitch([a, b], topology='horizontal', overlap_fraction=0.1,
                    blending_enabled=False, output_format='image/png')

    canvas = decoded(result)
    assert canvas.shape == (50, 190, 4)
    np.testing.assert_array_equal(canvas[:, :90], a[:, :90])
    np.testing.assert_array_equal(canvas[:, 90:], b)
    assert result.topology is Topology.HORIZONTAL
    assert result.overlap_fraction == 0.1
    assert result.source_count == 2


def test_blending_leaves_pixels_outside_band_alone():
    a = noise(100, 50, 3)
    b = noise(100, 50, 4)
    canvas = decoded(stitch([a, b], overlap_fraction=0.1, output_format='image/png'))

    np.testing.assert_array_equal(canvas[:, :90], a[:, :90])
    np.testing.assert_array_equal(canvas[:, 100:], b[:, 10:])
    band = canvas[:, 90:100]
    assert not np.array_equal(band, b[:, :10])


def test_horizontal_canvas_width_formula():
    images = [noise(80, 40, 5), noise(120, 60, 6), noise(100, 50, 7)]
    canvas = decoded(stitch(images, overlap_fraction=0.25, blending_enabled=False,
                            output_format='image/png'))

    overlap = int(80 * 0.25)
    assert canvas.shape[1] == 300 - overlap * 2
    assert canvas.shape[0] == 60
    # last image sits at x = (80 - 20) + (120 - 20)
    np.testing.assert_array_equal(canvas[5:55, 160:260], images[2])


@pytest.mark.parametrize("configured, resolved", [(-3, 0.0), (0.0, 0.0), (7.5, 1.0)])
def test_overlap_fraction_is_clamped(configured, resolved):
    images = [noise(40, 20, 8), noise(40, 20, 9)]
    result = stitch(images, overlap_fraction=configured, output_format='image/png')
    assert result.overlap_fraction == resolved


def test_vertical():
    a = noise(50, 100, 10)
    b = noise(50, 100, 11)
    canvas = decoded(stitch([a, b], topology='vertical', overlap_fraction=0.1,
                            output_format='image/png'))

    assert canvas.shape == (190, 50, 4)
    np.testing.assert_array_equal(canvas[:90], a[:90])
    np.testing.assert_array_equal(canvas[100:], b[10:])


def test_grid_ignores_overlap_and_blending():
    images = [noise(10, 10, seed) for seed in range(5)]
    canvas = decoded(stitch(images, topology='grid', overlap_fraction=0.5,
                            output_format='image/png'))

    assert canvas.shape == (20, 30, 4)
    for index, image in enumerate(images):
        row, col = divmod(index, 3)
        np.testing.assert_array_equal(canvas[row * 10:row * 10 + 10, col * 10:col * 10 + 10], image)
    # unused cell stays transparent
    assert (canvas[10:, 20:] == 0).all()


def test_panoramic_rescales_to_average_height():
    images = [noise(80, 100, 12), noise(120, 200, 13)]
    result = stitch(images, topology='panoramic', overlap_fraction=0.1,
                    output_format='image/png')

    # widths 80 * 1.5 = 120 and 120 * 0.75 = 90, overlap int(120 * 0.1)
    assert decoded(result).shape == (150, 120 + 90 - 12, 4)
    assert result.topology is Topology.PANORAMIC


def scene_pair():
    scene = noise(180, 60, 14)
    return scene[:, :100], scene[:, 80:]


def test_auto_overlap():
    a, b = scene_pair()
    stitcher = Stitcher()
    result = stitcher.stitch([a, b], overlap_fraction='auto', output_format='image/png')

    assert result.overlap_fraction == 0.2
    assert [e.pixels for e in result.estimates] == [20]
    assert stitcher.last_estimates == result.estimates
    canvas = decoded(result)
    assert canvas.shape == (60, 180, 4)
    np.testing.assert_array_equal(canvas[:, :80], a[:, :80])
    np.testing.assert_array_equal(canvas[:, 100:], b[:, 20:])


def test_auto_overlap_averages_every_pair():
    """Pairs sharing 20 and 30 columns resolve to their mean overlap."""
    scene = noise(250, 60, 18)
    images = [scene[:, :100], scene[:, 80:180], scene[:, 150:250]]
    result = stitch(images, overlap_fraction='auto', blending_enabled=False,
                    output_format='image/png')

    assert [e.pixels for e in result.estimates] == [20, 30]
    fractions = [e.fraction for e in result.estimates]
    assert result.overlap_fraction == pytest.approx(sum(fractions) / len(fractions))
    assert result.overlap_fraction == pytest.approx(0.25)
    # three 100px images with int(100 * 0.25) = 25px applied at each seam
    assert decoded(result).shape == (60, 300 - 2 * 25, 4)


def test_auto_overlap_applies_measured_pixels():
    scene = noise(171, 50, 19)
    a, b = scene[:, :100], scene[:, 71:]
    result = stitch([a, b], overlap_fraction='auto', min_overlap=0.04,
                    blending_enabled=False, output_format='image/png')

    assert [e.pixels for e in result.estimates] == [29]
    canvas = decoded(result)
    np.testing.assert_array_equal(canvas, scene)


def test_auto_overlap_on_grid_is_zero():
    images = [noise(10, 10, 15), noise(10, 10, 16)]
    result = stitch(images, topology='grid', overlap_fraction='auto', output_format='image/png')
    assert result.overlap_fraction == 0.0
    assert result.estimates == []


def test_auto_stitch_detects_topology():
    a, b = scene_pair()
    result = auto_stitch([a, b], output_format='image/png')
    assert result.topology is Topology.PANORAMIC
    assert result.overlap_fraction == 0.2
    assert decoded(result).shape == (60, 180, 4)


def test_decode_failure_aborts():
    good = png_bytes(noise(20, 20, 17))
    stitcher = Stitcher()
    with pytest.raises(DecodeError) as excinfo:
        stitcher.stitch([good, b'garbage', good])
    assert excinfo.value.index == 1
    assert stitcher.state is StitchState.FAILED


def test_invalid_config():
    with pytest.raises(InvalidConfigError):
        stitch([noise(10, 10, 0)], topology='spiral')
    with pytest.raises(InvalidConfigError):
        Stitcher().stitch([noise(10, 10, 0)], StitchConfig(), topology='grid')


def test_empty_canvas_is_rejected():
    images = [noise(100, 10, 0), noise(1, 10, 1), noise(1, 10, 2)]
    with pytest.raises(InvalidConfigError):
        stitch(images, overlap_fraction=1.0)


def test_collaborators_are_used():
    encoded = []

    def encoder(pixels, mime_type, quality):
        encoded.append((pixels.shape, mime_type, quality))
        return b'encoded'

    stitcher = Stitcher(encoder=encoder)
    config = StitchConfig(overlap_fraction=0.0, output_format='png', output_quality=0.5)
    result = stitcher.stitch([noise(10, 10, 0), noise(10, 10, 1)], config)

    assert result.data == b'encoded'
    assert encoded == [((10, 20, 4), 'image/png', 0.5)]
    assert stitcher.state is StitchState.DONE


def test_concurrent_calls_use_separate_canvases():
    jobs = [[noise(40, 30, seed), noise(40, 30, seed + 50)] for seed in range(6)]

    def run(images):
        return decoded(stitch(images, overlap_fraction=0.0, output_format='image/png'))

    with concurrent.futures.ThreadPoolExecutor(max_workers=3) as executor:
        canvases = list(executor.map(run, jobs))

    for images, canvas in zip(jobs, canvases):
        np.testing.assert_array_equal(canvas[:, :40], images[0])
        np.testing.assert_array_equal(canvas[:, 40:], images[1])
