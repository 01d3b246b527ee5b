import asyncio
import io
import unittest

from PIL import Image

from notification_composer.services.capture import CaptureEngine, CaptureSecurityError
from notification_composer.services.composition import CompositionState
from notification_composer.services.encoder import EncodeError
from notification_composer.services.export_pipeline import (
    CancellationToken,
    ExportBusyError,
    ExportCancelledError,
    ExportFormat,
    ExportJob,
    ExportPipeline,
    ExportState,
    describe_failure,
    frame_hold_delay,
    plan_frame_count,
    plan_scroll_offsets,
)
from notification_composer.services.renderer import MockupRenderer
from notification_composer.services.wallpaper import ResolvedWallpaper
from notification_composer.services.wallpaper_catalog import RemoteWallpaper

from tests.fakes import (
    FailingEncodeTask,
    FakeEncoder,
    FakeRegion,
    PendingEncodeTask,
    ShutDownEncoder,
)


class FramePlanTests(unittest.TestCase):
    def test_eighty_frames_for_four_seconds_at_twenty_fps(self):
        offsets = plan_scroll_offsets(540, 4000, 20)
        self.assertEqual(len(offsets), 80)
        self.assertEqual(offsets[0], 0)
        self.assertEqual(offsets[-1], 540)
        for k, offset in enumerate(offsets):
            self.assertAlmostEqual(offset, k / 79 * 540, places=9)

    def test_offsets_are_monotone(self):
        offsets = plan_scroll_offsets(333, 1500, 12)
        self.assertEqual(offsets, sorted(offsets))

    def test_nothing_to_scroll_plans_no_offsets(self):
        self.assertEqual(plan_scroll_offsets(0, 4000, 20), [])
        self.assertEqual(plan_scroll_offsets(-10, 4000, 20), [])

    def test_frame_count_rounds_half_up(self):
        self.assertEqual(plan_frame_count(1250, 10), 13)
        self.assertEqual(plan_frame_count(1240, 10), 12)

    def test_frame_count_never_below_two(self):
        self.assertEqual(plan_frame_count(10, 20), 2)

    def test_hold_delay(self):
        self.assertEqual(frame_hold_delay(20), 50)


class ExportJobTests(unittest.TestCase):
    def test_format_string_is_accepted(self):
        self.assertEqual(ExportJob('still').format, ExportFormat.STILL)

    def test_invalid_jobs_are_rejected(self):
        with self.assertRaises(ValueError):
            ExportJob('video')
        with self.assertRaises(ValueError):
            ExportJob(ExportFormat.STILL, pixel_scale=0.5)
        with self.assertRaises(ValueError):
            ExportJob(ExportFormat.ANIMATED, frame_rate=0)
        with self.assertRaises(ValueError):
            ExportJob(ExportFormat.ANIMATED, duration_ms=0)


class DescribeFailureTests(unittest.TestCase):
    def test_messages_are_portuguese(self):
        self.assertEqual(describe_failure(ExportCancelledError()), "Exportação cancelada.")
        self.assertIn("papel de parede", describe_failure(CaptureSecurityError()))
        self.assertIn("animação", describe_failure(EncodeError()))
        self.assertIn("andamento", describe_failure(ExportBusyError()))


class ExportPipelineTests(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.pipeline = ExportPipeline(CaptureEngine(), settle_delay_ms=0)
        self.addCleanup(self.pipeline.close)

    async def test_still_export_produces_png(self):
        region = FakeRegion()
        outcome = await self.pipeline.export(region, ExportJob(ExportFormat.STILL, pixel_scale=2))

        self.assertTrue(outcome.succeeded)
        self.assertEqual(
            outcome.transitions,
            [ExportState.IDLE, ExportState.CAPTURING, ExportState.DONE]
        )
        artifact = outcome.artifact
        self.assertEqual(artifact.media_type, 'image/png')
        self.assertEqual(artifact.filename, 'notificacao.png')
        self.assertTrue(artifact.data.startswith(b'\x89PNG'))
        with Image.open(io.BytesIO(artifact.data)) as image:
            self.assertEqual(image.size, (16, 12))

    async def test_still_export_of_tainted_region_fails(self):
        region = FakeRegion(tainted=True)
        outcome = await self.pipeline.export(region, ExportJob(ExportFormat.STILL))

        self.assertEqual(outcome.state, ExportState.FAILED)
        self.assertIsInstance(outcome.error, CaptureSecurityError)
        self.assertIsNone(outcome.artifact)
        self.assertEqual(outcome.message, describe_failure(outcome.error))
        self.assertEqual(region.offsets_seen, [])

    async def test_scrolling_export_captures_every_offset(self):
        region = FakeRegion(content_height=1130, viewport_height=590)
        region.scroll_offset = 17
        job = ExportJob(ExportFormat.ANIMATED, pixel_scale=1, duration_ms=4000, frame_rate=20)

        outcome = await self.pipeline.export(region, job)

        self.assertTrue(outcome.succeeded)
        self.assertEqual(
            outcome.transitions,
            [ExportState.IDLE, ExportState.SEQUENCING, ExportState.ENCODING, ExportState.DONE]
        )
        self.assertEqual(outcome.artifact.frame_count, 80)
        self.assertEqual(outcome.artifact.frame_delays_ms, (50.0,) * 80)
        self.assertEqual(len(region.offsets_seen), 80)
        for k, offset in enumerate(region.offsets_seen):
            self.assertAlmostEqual(offset, k / 79 * 540, places=9)
        self.assertEqual(region.scroll_offset, 17)

        self.assertEqual(outcome.artifact.media_type, 'image/gif')
        with Image.open(io.BytesIO(outcome.artifact.data)) as image:
            self.assertEqual(image.format, 'GIF')

    async def test_short_content_exports_single_frame(self):
        region = FakeRegion(content_height=300, viewport_height=590)
        job = ExportJob(ExportFormat.ANIMATED, pixel_scale=1, duration_ms=4000, frame_rate=20)

        outcome = await self.pipeline.export(region, job)

        self.assertTrue(outcome.succeeded)
        self.assertEqual(outcome.artifact.frame_count, 1)
        self.assertEqual(outcome.artifact.frame_delays_ms, (4000,))
        self.assertEqual(region.offsets_seen, [0.0])

    async def test_capture_failure_restores_scroll(self):
        region = FakeRegion(taint_after=3)
        region.scroll_offset = 42
        job = ExportJob(ExportFormat.ANIMATED, pixel_scale=1)

        outcome = await self.pipeline.export(region, job)

        self.assertEqual(outcome.state, ExportState.FAILED)
        self.assertEqual(
            outcome.transitions,
            [ExportState.IDLE, ExportState.SEQUENCING, ExportState.FAILED]
        )
        self.assertIsInstance(outcome.error, CaptureSecurityError)
        self.assertEqual(len(region.offsets_seen), 3)
        self.assertEqual(region.scroll_offset, 42)
        self.assertFalse(self.pipeline.is_busy(region))

    async def test_cancel_during_capture_stops_the_loop(self):
        token = CancellationToken()

        def cancel_on_third(count):
            if count == 3:
                token.cancel()

        region = FakeRegion(on_rasterize=cancel_on_third)
        outcome = await self.pipeline.export(region, ExportJob(ExportFormat.ANIMATED, pixel_scale=1), token)

        self.assertEqual(outcome.state, ExportState.FAILED)
        self.assertIsInstance(outcome.error, ExportCancelledError)
        self.assertEqual(outcome.message, "Exportação cancelada.")
        self.assertEqual(len(region.offsets_seen), 3)
        self.assertEqual(region.scroll_offset, 0)

    async def test_cancel_during_encoding_cancels_encoder(self):
        token = CancellationToken()
        tasks = []

        def make_task(sequence):
            task = PendingEncodeTask(sequence)
            tasks.append(task)
            token.cancel()
            return task

        pipeline = ExportPipeline(CaptureEngine(), FakeEncoder(make_task), settle_delay_ms=0)
        region = FakeRegion()
        outcome = await pipeline.export(region, ExportJob(ExportFormat.ANIMATED, pixel_scale=1), token)

        self.assertEqual(outcome.state, ExportState.FAILED)
        self.assertEqual(outcome.transitions[-2:], [ExportState.ENCODING, ExportState.FAILED])
        self.assertIsInstance(outcome.error, ExportCancelledError)
        self.assertTrue(tasks[0].cancel_called)
        self.assertTrue(tasks[0].sequence.released)

    async def test_encoder_failure_fails_the_job(self):
        encoder = FakeEncoder(lambda sequence: FailingEncodeTask(sequence, EncodeError("disk full")))
        pipeline = ExportPipeline(CaptureEngine(), encoder, settle_delay_ms=0)

        outcome = await pipeline.export(FakeRegion(), ExportJob(ExportFormat.ANIMATED, pixel_scale=1))

        self.assertEqual(outcome.state, ExportState.FAILED)
        self.assertEqual(
            outcome.transitions,
            [ExportState.IDLE, ExportState.SEQUENCING, ExportState.ENCODING, ExportState.FAILED]
        )
        self.assertIsInstance(outcome.error, EncodeError)
        self.assertIsNone(outcome.artifact)

    async def test_second_export_on_busy_region_is_rejected(self):
        region = FakeRegion()
        token = CancellationToken()
        job = ExportJob(ExportFormat.ANIMATED, pixel_scale=1)

        running = asyncio.create_task(self.pipeline.export(region, job, token))
        await asyncio.sleep(0)
        self.assertTrue(self.pipeline.is_busy(region))

        with self.assertRaises(ExportBusyError):
            await self.pipeline.export(region, ExportJob(ExportFormat.STILL))

        token.cancel()
        outcome = await running
        self.assertIsInstance(outcome.error, ExportCancelledError)
        self.assertFalse(self.pipeline.is_busy(region))

    async def test_unexpected_capture_error_fails_the_job(self):
        def disk_error(count):
            raise OSError('disk')

        region = FakeRegion(on_rasterize=disk_error)
        region.scroll_offset = 5

        with self.assertLogs('notification_composer.services.export_pipeline', level='ERROR'):
            outcome = await self.pipeline.export(region, ExportJob(ExportFormat.STILL))

        self.assertEqual(
            outcome.transitions,
            [ExportState.IDLE, ExportState.CAPTURING, ExportState.FAILED]
        )
        self.assertIsInstance(outcome.error, OSError)
        self.assertEqual(outcome.message, "Erro ao gerar a imagem. Tente novamente.")
        self.assertFalse(self.pipeline.is_busy(region))

        with self.assertLogs('notification_composer.services.export_pipeline', level='ERROR'):
            outcome = await self.pipeline.export(region, ExportJob(ExportFormat.ANIMATED, pixel_scale=1))

        self.assertEqual(outcome.state, ExportState.FAILED)
        self.assertEqual(region.scroll_offset, 5)

    async def test_encoder_refusing_work_releases_frames(self):
        encoder = ShutDownEncoder()
        pipeline = ExportPipeline(CaptureEngine(), encoder, settle_delay_ms=0)

        outcome = await pipeline.export(FakeRegion(), ExportJob(ExportFormat.ANIMATED, pixel_scale=1))

        self.assertEqual(outcome.transitions[-2:], [ExportState.ENCODING, ExportState.FAILED])
        self.assertIsInstance(outcome.error, EncodeError)
        self.assertTrue(encoder.submitted[0].released)

    async def test_close_stops_capture_loop(self):
        region = FakeRegion()
        region.scroll_offset = 30

        def close_on_third(count):
            if count == 3:
                self.pipeline.close()

        region.on_rasterize = close_on_third
        outcome = await self.pipeline.export(region, ExportJob(ExportFormat.ANIMATED, pixel_scale=1))

        self.assertEqual(
            outcome.transitions,
            [ExportState.IDLE, ExportState.SEQUENCING, ExportState.FAILED]
        )
        self.assertIsInstance(outcome.error, ExportCancelledError)
        self.assertEqual(len(region.offsets_seen), 3)
        self.assertEqual(region.scroll_offset, 30)
        self.assertFalse(self.pipeline.has_pending_work)

    async def test_close_cancels_running_encode(self):
        tasks = []

        def make_task(sequence):
            task = PendingEncodeTask(sequence)
            tasks.append(task)
            asyncio.get_running_loop().call_soon(pipeline.close)
            return task

        encoder = FakeEncoder(make_task)
        pipeline = ExportPipeline(CaptureEngine(), encoder, settle_delay_ms=0)
        outcome = await pipeline.export(FakeRegion(), ExportJob(ExportFormat.ANIMATED, pixel_scale=1))

        self.assertEqual(outcome.transitions[-2:], [ExportState.ENCODING, ExportState.FAILED])
        self.assertIsInstance(outcome.error, ExportCancelledError)
        self.assertTrue(tasks[0].cancel_called)
        self.assertTrue(tasks[0].sequence.released)
        self.assertTrue(encoder.shutdown_called)
        self.assertFalse(pipeline.has_pending_work)

    async def test_closed_pipeline_rejects_exports(self):
        self.pipeline.close()
        with self.assertRaises(ExportCancelledError):
            await self.pipeline.export(FakeRegion(), ExportJob(ExportFormat.STILL))

    async def test_failed_remote_wallpaper_blocks_still_export(self):
        state = CompositionState.create_default()
        remote = RemoteWallpaper('https://images.example.com/bg.jpg')
        state.set_wallpaper(remote)
        resolved = ResolvedWallpaper(reference=remote, failed=True, warning='timeout', token=1)

        renderer = MockupRenderer(state.snapshot(), resolved)
        outcome = await self.pipeline.export(renderer, ExportJob(ExportFormat.STILL))

        self.assertEqual(outcome.state, ExportState.FAILED)
        self.assertIsInstance(outcome.error, CaptureSecurityError)
        self.assertIs(state.wallpaper, remote)


if __name__ == "__main__":
    unittest.main()
