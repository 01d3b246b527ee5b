import asyncio
import io
import threading
import unittest
from concurrent.futures import ThreadPoolExecutor

import numpy as np
from PIL import Image

from notification_composer.services.capture import (
    CaptureEngine,
    CaptureSecurityError,
    apply_rounded_corners,
    scale_bitmap,
)
from notification_composer.services.encoder import (
    EncodeError,
    FrameSequence,
    GifEncoder,
    encode_png,
)

from tests.fakes import FakeRegion


def _opaque(height, width, value=200):
    bitmap = np.full((height, width, 4), value, dtype=np.uint8)
    bitmap[:, :, 3] = 255
    return bitmap


class RoundedCornerTests(unittest.TestCase):
    def test_corners_become_transparent(self):
        result = apply_rounded_corners(_opaque(40, 40), 10)
        self.assertEqual(result[0, 0, 3], 0)
        self.assertEqual(result[39, 39, 3], 0)
        self.assertEqual(result[20, 20, 3], 255)

    def test_small_radius_is_ignored(self):
        bitmap = _opaque(10, 10)
        self.assertIs(apply_rounded_corners(bitmap, 1), bitmap)

    def test_scale_bitmap(self):
        self.assertEqual(scale_bitmap(_opaque(6, 8), 2).shape, (12, 16, 4))


class CaptureEngineTests(unittest.IsolatedAsyncioTestCase):
    async def test_capture_scales_and_masks(self):
        region = FakeRegion()
        bitmap = await CaptureEngine(corner_radius=2).capture(region, 2)

        self.assertEqual(bitmap.shape, (12, 16, 4))
        self.assertLess(bitmap[0, 0, 3], 255)
        self.assertEqual(bitmap[6, 8, 3], 255)
        self.assertEqual(region.scroll_offset, 0.0)

    async def test_tainted_region_is_refused(self):
        with self.assertRaises(CaptureSecurityError):
            await CaptureEngine().capture(FakeRegion(tainted=True), 1)

    async def test_scale_below_one_is_refused(self):
        with self.assertRaises(ValueError):
            await CaptureEngine().capture(FakeRegion(), 0.5)


class PngEncoderTests(unittest.TestCase):
    def test_png_signature(self):
        data = encode_png(_opaque(4, 4))
        self.assertTrue(data.startswith(b'\x89PNG'))


class GifEncoderTests(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.encoder = GifEncoder()
        self.addCleanup(self.encoder.shutdown)

    async def test_encodes_frames_with_delays(self):
        sequence = FrameSequence()
        for value in (10, 120, 240):
            sequence.append(_opaque(6, 8, value), 50)

        data = await self.encoder.submit(sequence).wait()

        with Image.open(io.BytesIO(data)) as image:
            self.assertEqual(image.format, 'GIF')
            self.assertEqual(image.n_frames, 3)
            self.assertEqual(image.info['duration'], 50)
        self.assertTrue(sequence.released)

    async def test_empty_sequence_fails(self):
        sequence = FrameSequence()
        with self.assertRaises(EncodeError):
            await self.encoder.submit(sequence).wait()
        self.assertTrue(sequence.released)

    async def test_cancel_before_start_releases_frames(self):
        executor = ThreadPoolExecutor(max_workers=1)
        self.addCleanup(executor.shutdown)
        gate = threading.Event()
        blocker = executor.submit(gate.wait, 5)

        sequence = FrameSequence()
        sequence.append(_opaque(6, 8), 50)
        task = GifEncoder(executor).submit(sequence)

        task.cancel()
        gate.set()
        blocker.result()

        self.assertTrue(task.cancelled)
        self.assertTrue(sequence.released)
        with self.assertRaises(asyncio.CancelledError):
            await task.wait()


if __name__ == "__main__":
    unittest.main()
