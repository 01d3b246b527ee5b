import tempfile
import unittest
from pathlib import Path

import numpy as np

from notification_composer.services.composition import CompositionState, NotificationField
from notification_composer.services.renderer import MockupRenderer
from notification_composer.services.wallpaper import LocalImageHandle, ResolvedWallpaper
from notification_composer.services.wallpaper_catalog import RemoteWallpaper

from tests.fakes import png_bytes


def _state_with(count):
    state = CompositionState.create_default()
    for _ in range(count - 1):
        state.add_notification()
    return state


class MockupRendererTests(unittest.TestCase):
    def test_rasterize_matches_frame_size(self):
        renderer = MockupRenderer(CompositionState.create_default().snapshot())
        bitmap = renderer.rasterize()

        self.assertEqual(bitmap.shape, (610, 300, 4))
        self.assertEqual(bitmap[0, 0, 3], 0)
        self.assertEqual(bitmap[305, 150, 3], 255)

    def test_short_stack_does_not_scroll(self):
        renderer = MockupRenderer(CompositionState.create_default().snapshot())
        self.assertEqual(renderer.content_height, 172)
        self.assertEqual(renderer.viewport_height, 590)

        renderer.scroll_offset = 100
        self.assertEqual(renderer.scroll_offset, 0)

    def test_long_stack_scrolls(self):
        renderer = MockupRenderer(_state_with(8).snapshot())
        self.assertEqual(renderer.content_height, 760)

        top = renderer.rasterize()
        renderer.scroll_offset = 500
        self.assertEqual(renderer.scroll_offset, 170)
        bottom = renderer.rasterize()

        self.assertFalse(np.array_equal(top, bottom))

    def test_embedded_wallpaper_is_never_tainted(self):
        renderer = MockupRenderer(CompositionState.create_default().snapshot())
        self.assertFalse(renderer.has_tainted_content())

    def test_remote_wallpaper_needs_live_handle(self):
        state = CompositionState.create_default()
        remote = RemoteWallpaper('https://images.example.com/bg.png')
        state.set_wallpaper(remote)

        self.assertTrue(MockupRenderer(state.snapshot()).has_tainted_content())

        failed = ResolvedWallpaper(reference=remote, failed=True, warning='404', token=1)
        self.assertTrue(MockupRenderer(state.snapshot(), failed).has_tainted_content())

        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / 'wallpaper_bg'
            path.write_bytes(png_bytes(16, 32))
            handle = LocalImageHandle(path)
            resolved = ResolvedWallpaper(reference=remote, handle=handle, token=2)

            renderer = MockupRenderer(state.snapshot(), resolved)
            self.assertFalse(renderer.has_tainted_content())
            self.assertEqual(renderer.rasterize().shape, (610, 300, 4))

            # The renderer keeps the bytes it read; new renderers see the release
            handle.release()
            self.assertFalse(renderer.has_tainted_content())
            self.assertEqual(renderer.rasterize().shape, (610, 300, 4))
            self.assertTrue(MockupRenderer(state.snapshot(), resolved).has_tainted_content())

    def test_unreadable_handle_is_tainted(self):
        state = CompositionState.create_default()
        remote = RemoteWallpaper('https://images.example.com/bg.png')
        state.set_wallpaper(remote)

        with tempfile.TemporaryDirectory() as tmp:
            handle = LocalImageHandle(Path(tmp) / 'vanished')
            resolved = ResolvedWallpaper(reference=remote, handle=handle, token=1)

            with self.assertLogs('notification_composer.services.renderer', level='WARNING'):
                renderer = MockupRenderer(state.snapshot(), resolved)

        self.assertTrue(renderer.has_tainted_content())

    def test_custom_icon_and_bad_icon(self):
        state = CompositionState.create_default()
        record_id = state.notifications[0].id
        state.update_field(record_id, NotificationField.APP, 'Outro')
        state.update_field(record_id, NotificationField.CUSTOM_ICON, png_bytes(8, 8))
        MockupRenderer(state.snapshot()).rasterize()

        state.update_field(record_id, NotificationField.CUSTOM_ICON, b'not an image')
        with self.assertLogs('notification_composer.services.renderer', level='WARNING'):
            MockupRenderer(state.snapshot()).rasterize()

    def test_notchless_skin(self):
        state = _state_with(2)
        state.set_skin('galaxy-ultra')
        state.set_status_bar(battery_percent=10, text_color='black', wifi=False)
        bitmap = MockupRenderer(state.snapshot()).rasterize()
        self.assertEqual(bitmap.shape, (620, 290, 4))


if __name__ == "__main__":
    unittest.main()
