#!/usr/bin/env python3
"""
Editing Session

Session-scoped context object: owns the composition being edited, the
wallpaper resolver, the export pipeline, the preview zoom and the loading
flags. close() releases everything the session holds.

Generative helpers (text and wallpaper autofill) go through an optional
ContentGenerator. Their failures are never fatal: the field stays as it
was and the reason is kept in `last_error`.
"""

import logging
from typing import Dict, Optional, Protocol

from ..config.composer_config import ComposerSettings, SessionConfig
from .capture import CaptureEngine
from .composition import CompositionState, NotificationField
from .export_pipeline import (
    CancellationToken,
    ExportBusyError,
    ExportJob,
    ExportOutcome,
    ExportPipeline,
)
from .renderer import MockupRenderer
from .wallpaper import ResolvedWallpaper, WallpaperResolver
from .wallpaper_catalog import EmbeddedWallpaper, WallpaperReference


class ContentGenerator(Protocol):
    """External service producing text and images"""

    async def generate_text(self, kind: str) -> str: ...

    async def generate_image(self, prompt: str) -> bytes: ...


# Which record field each text kind fills
AUTOFILL_FIELDS = {
    'recipient': NotificationField.COUNTERPARTY_NAME,
    'timestamp': NotificationField.TIMESTAMP_TEXT,
}


class EditingSession:
    """One user's editing session"""

    def __init__(
        self,
        state: Optional[CompositionState] = None,
        settings: Optional[ComposerSettings] = None,
        resolver: Optional[WallpaperResolver] = None,
        pipeline: Optional[ExportPipeline] = None,
        generator: Optional[ContentGenerator] = None
    ):
        self.logger = logging.getLogger(__name__)
        self.settings = settings or ComposerSettings()
        self.state = state or CompositionState.create_default()
        self.resolver = resolver or WallpaperResolver(fetch_timeout=self.settings.fetch_timeout)
        self.pipeline = pipeline or ExportPipeline(
            capture_engine=CaptureEngine(),
            settle_delay_ms=self.settings.settle_delay_ms
        )
        self.generator = generator

        self.zoom_level = SessionConfig.DEFAULT_ZOOM
        self.loading: Dict[str, bool] = {'text': False, 'wallpaper': False, 'export': False}
        self.last_error: Optional[str] = None
        self._closed = False

    async def __aenter__(self) -> 'EditingSession':
        await self.resolve_wallpaper()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.close()

    # ==================================
    # ZOOM
    # ==================================

    def set_zoom(self, level: float) -> float:
        self.zoom_level = round(
            max(SessionConfig.MIN_ZOOM, min(SessionConfig.MAX_ZOOM, level)), 2
        )
        return self.zoom_level

    def zoom_in(self) -> float:
        return self.set_zoom(self.zoom_level + SessionConfig.ZOOM_STEP)

    def zoom_out(self) -> float:
        return self.set_zoom(self.zoom_level - SessionConfig.ZOOM_STEP)

    # ==================================
    # WALLPAPER
    # ==================================

    async def set_wallpaper(self, reference: WallpaperReference) -> ResolvedWallpaper:
        """Change the wallpaper and resolve it"""
        self.state.set_wallpaper(reference)
        return await self.resolve_wallpaper()

    async def resolve_wallpaper(self) -> ResolvedWallpaper:
        """Resolve the composition's current wallpaper"""
        self.loading['wallpaper'] = True
        try:
            result = await self.resolver.resolve(self.state.wallpaper)
        finally:
            self.loading['wallpaper'] = False

        if result.failed:
            self.last_error = result.warning
        return result

    @property
    def wallpaper_warning(self) -> Optional[str]:
        current = self.resolver.current
        if current is not None and current.failed:
            return current.warning
        return None

    # ==================================
    # RENDER AND EXPORT
    # ==================================

    def make_renderer(self) -> MockupRenderer:
        """Renderer over a fresh snapshot of the composition"""
        return MockupRenderer(self.state.snapshot(), self.resolver.current)

    async def export(
        self,
        job: ExportJob,
        cancel_token: Optional[CancellationToken] = None
    ) -> ExportOutcome:
        """
        Export the composition as it is now

        Raises:
            ExportBusyError: If this session is already exporting
            ExportCancelledError: If the session was closed
        """
        if self.loading['export']:
            raise ExportBusyError("This session is already exporting")

        renderer = self.make_renderer()
        self.pipeline.capture_engine.corner_radius = renderer.snapshot.skin.frame.corner_radius

        self.loading['export'] = True
        try:
            outcome = await self.pipeline.export(renderer, job, cancel_token)
        finally:
            self.loading['export'] = False

        if not outcome.succeeded:
            self.last_error = outcome.message
        return outcome

    # ==================================
    # GENERATIVE AUTOFILL
    # ==================================

    async def autofill_text(self, notification_id: str, kind: str) -> bool:
        """
        Fill a text field from the generator

        Args:
            notification_id: Record to update
            kind: 'recipient' or 'timestamp'

        Returns:
            True if the field was updated

        Raises:
            ValueError: If kind is not supported
        """
        if kind not in AUTOFILL_FIELDS:
            raise ValueError(
                f"Unknown autofill kind: '{kind}'. "
                f"Available kinds: {', '.join(SessionConfig.AUTOFILL_KINDS)}"
            )
        # Fail fast on an unknown id before calling the generator
        self.state.get_notification(notification_id)

        if self.generator is None:
            self.last_error = "Nenhum gerador de conteúdo configurado."
            return False

        self.loading['text'] = True
        try:
            text = await self.generator.generate_text(kind)
            value = text.strip().strip('"').strip()
            if not value:
                raise ValueError("generator returned empty text")
            self.state.update_field(notification_id, AUTOFILL_FIELDS[kind], value)
        except Exception as e:
            self.logger.warning(f"Text autofill ({kind}) failed: {e}")
            self.last_error = f"Não foi possível gerar o texto: {e}"
            return False
        finally:
            self.loading['text'] = False

        return True

    async def autofill_wallpaper(self, prompt: str) -> bool:
        """
        Generate a wallpaper from a prompt and apply it

        Returns:
            True if the wallpaper was replaced
        """
        if self.generator is None:
            self.last_error = "Nenhum gerador de conteúdo configurado."
            return False

        self.loading['wallpaper'] = True
        try:
            data = await self.generator.generate_image(prompt)
            if not data:
                raise ValueError("generator returned an empty image")
        except Exception as e:
            self.logger.warning(f"Wallpaper autofill failed: {e}")
            self.last_error = f"Não foi possível gerar o papel de parede: {e}"
            return False
        finally:
            self.loading['wallpaper'] = False

        await self.set_wallpaper(EmbeddedWallpaper(data=data, label=prompt))
        return True

    # ==================================
    # TEARDOWN
    # ==================================

    def close(self) -> None:
        """Stop in-flight exports, then release the wallpaper handle"""
        if self._closed:
            return

        self._closed = True
        self.pipeline.close()
        self.resolver.close()
        self.logger.debug("Editing session closed")
