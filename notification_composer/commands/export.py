#!/usr/bin/env python3
"""
Export Command

Renders a composition file to a still PNG or an animated GIF:
1. Load the composition (JSON) or start from the default one
2. Resolve the wallpaper
3. Run the export pipeline and write the artifact
"""

import asyncio
import json
import logging
import mimetypes
from pathlib import Path
from typing import Optional

from ..config.composer_config import ComposerSettings
from ..config.skin_catalog import list_available_skins
from ..services.composition import CompositionState, InvalidFieldError
from ..services.export_pipeline import ExportFormat, ExportJob, ExportOutcome
from ..services.session import EditingSession
from ..services.wallpaper_catalog import (
    EmbeddedWallpaper,
    GradientStyle,
    WallpaperReference,
    gradient_wallpaper,
    wallpaper_from_string,
)


class ExportCommandError(Exception):
    """Raised when the export command cannot run"""
    pass


def load_wallpaper(value: str, base_dir: Path) -> WallpaperReference:
    """
    Parse a wallpaper value from a composition file

    Args:
        value: data: URI, http(s) URL or a local image path
        base_dir: Directory relative paths are resolved against

    Returns:
        WallpaperReference (local files become embedded wallpapers)
    """
    if value.startswith(('data:', 'http://', 'https://')):
        return wallpaper_from_string(value)

    path = Path(value).expanduser()
    if not path.is_absolute():
        path = base_dir / path

    # Guard clause: missing file
    if not path.is_file():
        raise ExportCommandError(f"Wallpaper não encontrado: {path}")

    media_type = mimetypes.guess_type(path.name)[0] or 'image/png'
    return EmbeddedWallpaper(data=path.read_bytes(), media_type=media_type, label=path.name)


def load_composition(config_path: Optional[Path]) -> CompositionState:
    """
    Load a composition file, or the default composition when None

    Raises:
        ExportCommandError: If the file is missing or invalid
    """
    if config_path is None:
        return CompositionState.create_default()

    # Guard clause: missing file
    if not config_path.is_file():
        raise ExportCommandError(f"Arquivo de composição não encontrado: {config_path}")

    try:
        with open(config_path, 'r', encoding='utf-8') as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        raise ExportCommandError(f"JSON inválido em {config_path}: {e}")

    if not isinstance(data, dict):
        raise ExportCommandError(f"A composição deve ser um objeto JSON: {config_path}")

    try:
        wallpaper = None
        if data.get('wallpaper'):
            wallpaper = load_wallpaper(data['wallpaper'], config_path.parent)
        return CompositionState.from_dict(data, wallpaper=wallpaper)
    except (InvalidFieldError, ValueError) as e:
        raise ExportCommandError(f"Composição inválida: {e}")


class ExportCommand:
    """Renders one composition to an image file"""

    # Console colors
    RED = '\033[0;31m'
    GREEN = '\033[0;32m'
    YELLOW = '\033[1;33m'
    BLUE = '\033[0;34m'
    MAGENTA = '\033[0;35m'
    CYAN = '\033[0;36m'
    NC = '\033[0m'

    def __init__(
        self,
        export_format: ExportFormat,
        config_path: Optional[Path] = None,
        output: Optional[Path] = None,
        settings: Optional[ComposerSettings] = None,
        pixel_scale: Optional[float] = None,
        duration_ms: Optional[int] = None,
        frame_rate: Optional[int] = None,
        skin_id: Optional[str] = None,
        gradient_choice: Optional[int] = None
    ):
        """
        Initialize export command

        Args:
            export_format: still or animated
            config_path: Composition JSON (None = default composition)
            output: Output file or directory (default: settings.output_dir)
            settings: Runtime settings (default: from environment)
            pixel_scale: Override settings.pixel_scale
            duration_ms: Override settings.duration_ms
            frame_rate: Override settings.frame_rate
            skin_id: Override the composition's skin
            gradient_choice: Use a built-in gradient wallpaper (1-6)
        """
        self.logger = logging.getLogger(__name__)
        self.export_format = ExportFormat(export_format)
        self.config_path = config_path
        self.settings = settings or ComposerSettings.from_env()
        self.output = output

        self.pixel_scale = pixel_scale if pixel_scale is not None else self.settings.pixel_scale
        self.duration_ms = duration_ms if duration_ms is not None else self.settings.duration_ms
        self.frame_rate = frame_rate if frame_rate is not None else self.settings.frame_rate
        self.skin_id = skin_id
        self.gradient_choice = gradient_choice

    def _print_banner(self) -> None:
        """Print command banner"""
        print()
        print(f"{self.MAGENTA}╔════════════════════════════════════════════╗{self.NC}")
        print(f"{self.MAGENTA}║     📱  Notification Mockup Export  📱     ║{self.NC}")
        print(f"{self.MAGENTA}╚════════════════════════════════════════════╝{self.NC}")
        print()

    def _print_success(self, message: str) -> None:
        """Print success message"""
        print(f"{self.GREEN}✅ {message}{self.NC}")

    def _print_error(self, message: str) -> None:
        """Print error message"""
        print(f"{self.RED}❌ {message}{self.NC}")

    def _print_warning(self, message: str) -> None:
        """Print warning message"""
        print(f"{self.YELLOW}⚠️  {message}{self.NC}")

    def _print_info(self, message: str) -> None:
        """Print info message"""
        print(f"{self.CYAN}ℹ️  {message}{self.NC}")

    def _print_configuration(self, state: CompositionState) -> None:
        """Print export configuration"""
        print(f"{self.CYAN}⚙️  Configuração:{self.NC}")
        print(f"   Formato: {self.YELLOW}{self.export_format.value}{self.NC}")
        print(f"   Aparelho: {self.YELLOW}{state.skin.name}{self.NC}")
        print(f"   Notificações: {self.YELLOW}{len(state.notifications)}{self.NC}")
        print(f"   Escala: {self.YELLOW}{self.pixel_scale}x{self.NC}")
        if self.export_format == ExportFormat.ANIMATED:
            print(f"   Duração: {self.YELLOW}{self.duration_ms} ms{self.NC}")
            print(f"   FPS: {self.YELLOW}{self.frame_rate}{self.NC}")
        print()

    def _output_path(self, filename: str) -> Path:
        output = self.output or self.settings.output_dir
        if output.is_dir() or output.suffix == '':
            return output / filename
        return output

    def _prepare_state(self) -> CompositionState:
        state = load_composition(self.config_path)

        if self.skin_id:
            try:
                state.set_skin(self.skin_id)
            except ValueError as e:
                raise ExportCommandError(str(e))

        if self.gradient_choice is not None:
            try:
                state.set_wallpaper(gradient_wallpaper(GradientStyle.get_by_index(self.gradient_choice)))
            except ValueError as e:
                raise ExportCommandError(str(e))

        return state

    async def _export(self, state: CompositionState, job: ExportJob) -> ExportOutcome:
        async with EditingSession(state=state, settings=self.settings) as session:
            if session.wallpaper_warning:
                self._print_warning(f"Papel de parede indisponível: {session.wallpaper_warning}")
            return await session.export(job)

    def run(self) -> int:
        """
        Execute the export

        Returns:
            Exit code (0 for success, 1 for failure)
        """
        try:
            self._print_banner()

            state = self._prepare_state()
            self._print_configuration(state)

            try:
                job = ExportJob(
                    format=self.export_format,
                    pixel_scale=self.pixel_scale,
                    duration_ms=self.duration_ms,
                    frame_rate=self.frame_rate
                )
            except ValueError as e:
                raise ExportCommandError(str(e))

            self._print_info("Gerando imagem...")
            outcome = asyncio.run(self._export(state, job))

            # Guard clause: export failed
            if not outcome.succeeded:
                raise ExportCommandError(outcome.message)

            artifact = outcome.artifact
            output_path = self._output_path(artifact.filename)
            output_path.parent.mkdir(parents=True, exist_ok=True)
            output_path.write_bytes(artifact.data)

            self._print_success(f"Arquivo salvo: {output_path}")
            if artifact.frame_count > 1:
                self._print_info(f"Quadros: {artifact.frame_count}")
            return 0

        except ExportCommandError as e:
            self._print_error(str(e))
            return 1
        except KeyboardInterrupt:
            print()
            self._print_error("Operação cancelada pelo usuário")
            return 130
        except Exception as e:
            self.logger.exception("Unexpected error during export")
            self._print_error(f"Erro inesperado: {e}")
            return 1


def list_skins() -> int:
    """Print the skin catalog"""
    print(f"{ExportCommand.CYAN}📱 Aparelhos disponíveis:{ExportCommand.NC}")
    for skin_id, name in list_available_skins():
        print(f"   {ExportCommand.YELLOW}{skin_id}{ExportCommand.NC}  {name}")
    return 0
