import contextlib
import io
import json
import os
import tempfile
import unittest
from pathlib import Path
from unittest import mock

from PIL import Image

from notification_composer.commands.export import (
    ExportCommand,
    ExportCommandError,
    load_composition,
)
from notification_composer.config.composer_config import ComposerSettings
from notification_composer.main import create_parser, main
from notification_composer.services.export_pipeline import ExportFormat
from notification_composer.services.notification_text import Institution
from notification_composer.services.wallpaper_catalog import EmbeddedWallpaper

from tests.fakes import png_bytes


class LoadCompositionTests(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self._tmp.cleanup)
        self.tmp = Path(self._tmp.name)

    def _write(self, data, name='composition.json'):
        path = self.tmp / name
        path.write_text(json.dumps(data), encoding='utf-8')
        return path

    def test_local_wallpaper_path_is_embedded(self):
        (self.tmp / 'bg.png').write_bytes(png_bytes(12, 24))
        path = self._write({
            'skin': 'pixel-pro',
            'wallpaper': 'bg.png',
            'notifications': [
                {'app': 'Inter', 'amount': '250,00', 'counterparty_name': 'Peter Parker'},
            ],
        })

        state = load_composition(path)

        self.assertEqual(state.skin.id, 'pixel-pro')
        self.assertIsInstance(state.wallpaper, EmbeddedWallpaper)
        self.assertEqual(state.wallpaper.label, 'bg.png')
        self.assertEqual(state.notifications[0].app, Institution.INTER)

    def test_missing_wallpaper_file(self):
        path = self._write({'wallpaper': 'missing.png'})
        with self.assertRaises(ExportCommandError):
            load_composition(path)

    def test_invalid_json(self):
        path = self.tmp / 'broken.json'
        path.write_text('{"skin": ', encoding='utf-8')
        with self.assertRaises(ExportCommandError):
            load_composition(path)

    def test_invalid_field(self):
        path = self._write({'notifications': [{'amount': 'muito'}]})
        with self.assertRaises(ExportCommandError):
            load_composition(path)


class ExportCommandTests(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self._tmp.cleanup)
        self.tmp = Path(self._tmp.name)
        self.settings = ComposerSettings(pixel_scale=1, settle_delay_ms=0, output_dir=self.tmp)

    def _run(self, command):
        with contextlib.redirect_stdout(io.StringIO()):
            return command.run()

    def test_still_export_writes_png(self):
        command = ExportCommand(ExportFormat.STILL, settings=self.settings, skin_id='galaxy-ultra')
        self.assertEqual(self._run(command), 0)

        output = self.tmp / 'notificacao.png'
        with Image.open(output) as image:
            self.assertEqual(image.size, (290, 620))

    def test_animated_export_writes_gif(self):
        output = self.tmp / 'stack.gif'
        command = ExportCommand(
            ExportFormat.ANIMATED,
            output=output,
            settings=self.settings,
            duration_ms=1000,
            frame_rate=10,
            gradient_choice=2
        )
        self.assertEqual(self._run(command), 0)

        with Image.open(output) as image:
            self.assertEqual(image.format, 'GIF')

    def test_missing_config_returns_error_code(self):
        command = ExportCommand(
            ExportFormat.STILL,
            config_path=self.tmp / 'missing.json',
            settings=self.settings
        )
        self.assertEqual(self._run(command), 1)

    def test_invalid_job_returns_error_code(self):
        command = ExportCommand(ExportFormat.ANIMATED, settings=self.settings, frame_rate=0)
        self.assertEqual(self._run(command), 1)


class CliTests(unittest.TestCase):
    def test_parser_reads_animation_options(self):
        args = create_parser().parse_args(
            ['animated', '--config', 'c.json', '--duration', '3000', '--fps', '15', '--scale', '3']
        )
        self.assertEqual(args.command, 'animated')
        self.assertEqual(args.duration, 3000)
        self.assertEqual(args.fps, 15)
        self.assertEqual(args.scale, 3.0)
        self.assertEqual(args.config, Path('c.json'))

    def test_skins_command(self):
        out = io.StringIO()
        with mock.patch('sys.argv', ['notification-composer', 'skins']):
            with contextlib.redirect_stdout(out):
                self.assertEqual(main(), 0)
        self.assertIn('titanium-pro', out.getvalue())


class SettingsTests(unittest.TestCase):
    def test_environment_overrides(self):
        env = {
            'NOTIF_PIXEL_SCALE': '3',
            'NOTIF_FRAME_RATE': '10',
            'NOTIF_OUTPUT_DIR': '/tmp/mockups',
        }
        with mock.patch.dict(os.environ, env):
            settings = ComposerSettings.from_env()

        self.assertEqual(settings.pixel_scale, 3.0)
        self.assertEqual(settings.frame_rate, 10)
        self.assertEqual(settings.duration_ms, 4000)
        self.assertEqual(settings.output_dir, Path('/tmp/mockups'))

    def test_non_numeric_value_raises(self):
        with mock.patch.dict(os.environ, {'NOTIF_FRAME_RATE': 'fast'}):
            with self.assertRaises(ValueError):
                ComposerSettings.from_env()


if __name__ == "__main__":
    unittest.main()
