"""Tests for image buffers, the release ledger and raster helpers."""

import numpy as np
import pytest
from conftest import make_buffer

from invocr.services.ocr.image_buffer import (
    ImageBuffer,
    ImageLedger,
    calculate_sample_size,
    crop_image,
    load_image,
    resize_pixels,
    rotate_image,
)


class TestImageBuffer:
    def test_dimensions(self):
        buffer = make_buffer(30, 20)
        assert (buffer.width, buffer.height) == (30, 20)

    def test_rejects_non_rgb(self):
        with pytest.raises(ValueError):
            ImageBuffer(np.zeros((4, 4), dtype=np.uint8))

    def test_use_after_release(self):
        buffer = make_buffer(4, 4)
        buffer.release()
        assert buffer.released
        with pytest.raises(RuntimeError):
            _ = buffer.pixels


class TestImageLedger:
    def test_release_all_once_per_buffer(self):
        ledger = ImageLedger()
        first, second = make_buffer(4, 4), make_buffer(5, 5)
        ledger.register(first)
        ledger.register(second)
        ledger.register(first)

        assert len(ledger) == 2
        assert ledger.release_all() == 2
        assert ledger.release_all() == 0
        assert first.release_count == 1
        assert second.release_count == 1

    def test_early_release_is_not_repeated(self):
        ledger = ImageLedger()
        buffer = ledger.register(make_buffer(4, 4))
        ledger.release(buffer)
        ledger.release_all()
        assert buffer.release_count == 1
        assert buffer not in ledger

    def test_context_manager_releases(self):
        buffer = make_buffer(4, 4)
        with ImageLedger() as ledger:
            ledger.register(buffer)
        assert buffer.released


class TestCalculateSampleSize:
    def test_small_image_not_sampled(self):
        assert calculate_sample_size(100, 100, 4096, 4096) == 1

    def test_power_of_two(self):
        assert calculate_sample_size(200, 120, 50, 50) == 2
        assert calculate_sample_size(10000, 10000, 1000, 1000) == 8


class TestLoadImage:
    def test_loads_rgb(self, write_image):
        pixels = np.zeros((12, 16, 3), dtype=np.uint8)
        pixels[:, :, 0] = 200
        buffer = load_image(write_image(pixels))
        assert (buffer.width, buffer.height) == (16, 12)
        assert buffer.pixels[0, 0].tolist() == [200, 0, 0]

    def test_large_image_is_sampled(self, white_image_file):
        buffer = load_image(white_image_file, max_dimension=50)
        assert (buffer.width, buffer.height) == (100, 60)

    def test_grayscale_converted(self, tmp_path):
        from PIL import Image

        path = tmp_path / "gray.png"
        Image.new("L", (8, 6), 128).save(path)
        buffer = load_image(path)
        assert buffer.pixels.shape == (6, 8, 3)

    def test_undecodable_file(self, tmp_path):
        path = tmp_path / "broken.png"
        path.write_bytes(b"not an image")
        assert load_image(path) is None

    def test_missing_file(self, tmp_path):
        assert load_image(tmp_path / "absent.png") is None


class TestRasterOperations:
    def test_rotate_zero_returns_input(self):
        buffer = make_buffer(30, 20)
        assert rotate_image(buffer, 0) is buffer
        assert rotate_image(buffer, 360) is buffer

    @pytest.mark.parametrize("angle", [90, 270])
    def test_rotate_quarter_swaps_sides(self, angle):
        rotated = rotate_image(make_buffer(30, 20), angle)
        assert (rotated.width, rotated.height) == (20, 30)

    def test_rotate_clockwise(self):
        pixels = np.zeros((2, 3, 3), dtype=np.uint8)
        pixels[0, 0] = 255
        rotated = rotate_image(ImageBuffer(pixels), 90)
        assert rotated.pixels[0, 1].tolist() == [255, 255, 255]

    def test_rotate_rejects_odd_angles(self):
        with pytest.raises(ValueError):
            rotate_image(make_buffer(4, 4), 45)

    def test_crop_copies_region(self):
        pixels = np.arange(10 * 10 * 3, dtype=np.uint8).reshape(10, 10, 3)
        source = ImageBuffer(pixels)
        crop = crop_image(source, [2, 3, 6, 8])
        assert (crop.width, crop.height) == (4, 5)
        np.testing.assert_array_equal(crop.pixels, pixels[3:8, 2:6])
        source.release()
        assert crop.pixels.shape == (5, 4, 3)

    def test_crop_clamps_to_at_least_one_pixel(self):
        crop = crop_image(make_buffer(10, 10), [20.7, -5, 3, 40])
        assert (crop.width, crop.height) == (1, 10)

    def test_crop_needs_four_values(self):
        assert crop_image(make_buffer(10, 10), [1, 2, 3]) is None

    def test_resize_same_size_is_noop(self):
        pixels = np.zeros((5, 6, 3), dtype=np.uint8)
        assert resize_pixels(pixels, 6, 5) is pixels
        assert resize_pixels(pixels, 12, 10).shape == (10, 12, 3)
