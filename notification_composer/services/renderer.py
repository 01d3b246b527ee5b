#!/usr/bin/env python3
"""
Visual Renderer

RenderedRegion is the boundary the capture engine reads from: a scrollable
area that can rasterize itself and report whether it draws unresolved
cross-origin content.

MockupRenderer is the reference implementation, drawing a composition
snapshot with Pillow: device frame, wallpaper, status bar, notch and the
notification stack scrolled by `scroll_offset`.
"""

import io
import logging
from typing import List, Optional, Protocol, Tuple

import cv2
import numpy as np
from PIL import Image, ImageDraw, ImageFont, UnidentifiedImageError

from ..config.composer_config import RenderConfig, StatusBarConfig
from .color_utils import readable_text_color, status_text_rgb
from .composition import CompositionSnapshot, NotificationRecord
from .notification_text import app_badge, render_message
from .wallpaper import ResolvedWallpaper, WallpaperFetchError


class RenderedRegion(Protocol):
    """Scrollable visual region that can be captured"""

    scroll_offset: float

    @property
    def content_height(self) -> int: ...

    @property
    def viewport_height(self) -> int: ...

    def rasterize(self) -> np.ndarray:
        """Current appearance as a BGRA array at 1x"""
        ...

    def has_tainted_content(self) -> bool:
        """True when capture would read unresolved cross-origin pixels"""
        ...


FRAME_COLOR = (28, 28, 30, 255)
NOTCH_COLOR = (0, 0, 0, 255)
TITLE_COLOR = (17, 17, 17)
BODY_COLOR = (51, 51, 51)
MUTED_COLOR = (110, 110, 110)
BATTERY_LOW_COLOR = (255, 59, 48)


def _font(size: int):
    return ImageFont.load_default(size=size)


class MockupRenderer:
    """
    Draws one composition snapshot.

    The notification stack scrolls inside the screen; the wallpaper, status
    bar and notch stay fixed.
    """

    def __init__(
        self,
        snapshot: CompositionSnapshot,
        resolved: Optional[ResolvedWallpaper] = None
    ):
        """
        Initialize renderer

        Args:
            snapshot: Composition to draw (read-only)
            resolved: Resolver output for the snapshot's wallpaper
        """
        self.logger = logging.getLogger(__name__)
        self.snapshot = snapshot
        self.resolved = resolved
        # Remote wallpaper bytes, pinned at snapshot time
        self._remote_wallpaper = self._pin_remote_wallpaper()
        self._scroll_offset = 0.0

        self._title_font = _font(RenderConfig.TITLE_FONT_SIZE)
        self._body_font = _font(RenderConfig.BODY_FONT_SIZE)
        self._status_font = _font(RenderConfig.STATUS_FONT_SIZE)

    # ==================================
    # REGION PROTOCOL
    # ==================================

    @property
    def scroll_offset(self) -> float:
        return self._scroll_offset

    @scroll_offset.setter
    def scroll_offset(self, value: float) -> None:
        max_offset = max(0, self.content_height - self.viewport_height)
        self._scroll_offset = max(0.0, min(float(value), float(max_offset)))

    @property
    def viewport_height(self) -> int:
        return self.snapshot.skin.screen_height

    @property
    def content_height(self) -> int:
        count = len(self.snapshot.notifications)
        return (
            RenderConfig.STACK_TOP_MARGIN
            + count * RenderConfig.CARD_HEIGHT
            + max(0, count - 1) * RenderConfig.CARD_GAP
            + RenderConfig.STACK_BOTTOM_MARGIN
        )

    def has_tainted_content(self) -> bool:
        return self.snapshot.wallpaper.is_remote and self._remote_wallpaper is None

    def _pin_remote_wallpaper(self) -> Optional[bytes]:
        """Local copy of a remote wallpaper, or None if it is not render-safe"""
        wallpaper = self.snapshot.wallpaper
        resolved = self.resolved
        if not wallpaper.is_remote or resolved is None:
            return None

        # Remote wallpaper is only safe through a live local handle for it
        if resolved.reference != wallpaper or resolved.handle is None or resolved.handle.released:
            return None

        try:
            return resolved.handle.read_bytes()
        except (WallpaperFetchError, OSError) as e:
            self.logger.warning(f"Cannot read wallpaper handle {resolved.handle}: {e}")
            return None

    def rasterize(self) -> np.ndarray:
        skin = self.snapshot.skin
        frame = skin.frame

        canvas = Image.new('RGBA', (frame.width, frame.height), (0, 0, 0, 0))
        draw = ImageDraw.Draw(canvas)
        draw.rounded_rectangle(
            (0, 0, frame.width - 1, frame.height - 1),
            radius=frame.corner_radius,
            fill=FRAME_COLOR
        )

        screen = self._draw_screen()
        screen_mask = Image.new('L', screen.size, 0)
        ImageDraw.Draw(screen_mask).rounded_rectangle(
            (0, 0, screen.width - 1, screen.height - 1),
            radius=skin.screen.corner_radius,
            fill=255
        )
        canvas.paste(screen, (skin.screen_offset, skin.screen_offset), screen_mask)

        rgba = np.array(canvas)
        return cv2.cvtColor(rgba, cv2.COLOR_RGBA2BGRA)

    # ==================================
    # SCREEN
    # ==================================

    def _draw_screen(self) -> Image.Image:
        skin = self.snapshot.skin
        size = (skin.screen_width, skin.screen_height)

        screen = self._wallpaper_image(size).convert('RGBA')
        dim = Image.new('RGBA', size, RenderConfig.WALLPAPER_DIM)
        screen = Image.alpha_composite(screen, dim)

        stack = Image.new('RGBA', size, (0, 0, 0, 0))
        offset = int(round(self._scroll_offset))
        for index, record in enumerate(self.snapshot.notifications):
            top = (
                RenderConfig.STACK_TOP_MARGIN
                + index * (RenderConfig.CARD_HEIGHT + RenderConfig.CARD_GAP)
                - offset
            )
            # Skip cards fully outside the viewport
            if top + RenderConfig.CARD_HEIGHT < 0 or top > size[1]:
                continue
            self._draw_card(stack, record, top)
        screen = Image.alpha_composite(screen, stack)

        draw = ImageDraw.Draw(screen, 'RGBA')
        self._draw_status_bar(draw, size[0])

        notch = skin.notch
        if notch is not None:
            left = (size[0] - notch.width) // 2
            draw.rounded_rectangle(
                (left, 0, left + notch.width, notch.height),
                radius=notch.height // 2,
                fill=NOTCH_COLOR
            )

        return screen

    def _wallpaper_image(self, size: Tuple[int, int]) -> Image.Image:
        """Wallpaper scaled to cover the screen, or a flat placeholder"""
        data = self._wallpaper_bytes()
        if data is None:
            return Image.new('RGB', size, RenderConfig.WALLPAPER_PLACEHOLDER)

        try:
            image = Image.open(io.BytesIO(data)).convert('RGB')
        except (UnidentifiedImageError, OSError) as e:
            self.logger.warning(f"Cannot decode wallpaper, using placeholder: {e}")
            return Image.new('RGB', size, RenderConfig.WALLPAPER_PLACEHOLDER)

        # Cover: scale to fill, then center-crop
        scale = max(size[0] / image.width, size[1] / image.height)
        scaled = image.resize(
            (max(size[0], round(image.width * scale)), max(size[1], round(image.height * scale))),
            Image.Resampling.LANCZOS
        )
        left = (scaled.width - size[0]) // 2
        top = (scaled.height - size[1]) // 2
        return scaled.crop((left, top, left + size[0], top + size[1]))

    def _wallpaper_bytes(self) -> Optional[bytes]:
        wallpaper = self.snapshot.wallpaper
        if not wallpaper.is_remote:
            return wallpaper.data

        return self._remote_wallpaper

    # ==================================
    # STATUS BAR
    # ==================================

    def _draw_status_bar(self, draw: ImageDraw.ImageDraw, width: int) -> None:
        status = self.snapshot.status_bar
        color = status_text_rgb(status.text_color)
        pad = RenderConfig.STATUS_BAR_PADDING_X
        mid_y = RenderConfig.STATUS_BAR_HEIGHT // 2

        draw.text((pad + 8, mid_y), status.time, font=self._status_font, fill=color, anchor='lm')

        right = width - pad - 4
        right = self._draw_battery(draw, right, mid_y, status.battery_percent, color)
        right = self._draw_wifi(draw, right - 6, mid_y, status.wifi_on, status.wifi_bars, color)
        self._draw_signal(draw, right - 6, mid_y, status.signal_bars, color)

    def _draw_signal(self, draw, right: int, mid_y: int, bars: int, color) -> int:
        max_height = 10
        bar_width = 3
        left = right - StatusBarConfig.SIGNAL_MAX * (bar_width + 1)
        for i in range(1, StatusBarConfig.SIGNAL_MAX + 1):
            # Heights grow in 25 % steps
            height = max_height * i // StatusBarConfig.SIGNAL_MAX
            x = left + (i - 1) * (bar_width + 1)
            fill = color if i <= bars else color + (90,)
            draw.rectangle(
                (x, mid_y + max_height // 2 - height, x + bar_width - 1, mid_y + max_height // 2),
                fill=fill
            )
        return left

    def _draw_wifi(self, draw, right: int, mid_y: int, wifi_on: bool, bars: int, color) -> int:
        size = 14
        left = right - size
        if not wifi_on:
            return right

        cx = left + size // 2
        base_y = mid_y + 5
        for level in range(1, StatusBarConfig.WIFI_BARS_MAX + 1):
            radius = 2 + level * 3
            fill = color if level <= bars else color + (90,)
            draw.arc(
                (cx - radius, base_y - radius, cx + radius, base_y + radius),
                start=225, end=315, fill=fill, width=2
            )
        return left

    def _draw_battery(self, draw, right: int, mid_y: int, percent: int, color) -> int:
        width, height = 22, 11
        left = right - width
        top = mid_y - height // 2
        draw.rounded_rectangle((left, top, right, top + height), radius=3, outline=color, width=1)
        draw.rectangle((right + 1, mid_y - 2, right + 2, mid_y + 2), fill=color)

        low = percent <= StatusBarConfig.BATTERY_LOW_THRESHOLD
        fill_width = int((width - 4) * percent / StatusBarConfig.BATTERY_MAX)
        if fill_width > 0:
            draw.rectangle(
                (left + 2, top + 2, left + 2 + fill_width, top + height - 2),
                fill=BATTERY_LOW_COLOR if low else color
            )
        return left

    # ==================================
    # NOTIFICATION CARDS
    # ==================================

    def _draw_card(self, layer: Image.Image, record: NotificationRecord, top: int) -> None:
        width = layer.width
        left = RenderConfig.CARD_MARGIN_X
        right = width - RenderConfig.CARD_MARGIN_X
        bottom = top + RenderConfig.CARD_HEIGHT
        pad = RenderConfig.CARD_PADDING

        card = Image.new('RGBA', layer.size, (0, 0, 0, 0))
        draw = ImageDraw.Draw(card)
        draw.rounded_rectangle(
            (left, top, right, bottom),
            radius=RenderConfig.CARD_RADIUS,
            fill=RenderConfig.CARD_FILL
        )

        badge = app_badge(record)
        icon_left = left + pad
        icon_top = top + pad
        self._draw_badge(card, draw, badge, icon_left, icon_top)

        text_left = icon_left + RenderConfig.CARD_ICON_SIZE + 10
        text_right = right - pad

        draw.text(
            (text_right, icon_top),
            record.timestamp_text,
            font=self._body_font,
            fill=MUTED_COLOR,
            anchor='ra'
        )
        timestamp_width = draw.textlength(record.timestamp_text, font=self._body_font)
        title = self._fit(draw, badge.name, self._title_font, text_right - text_left - timestamp_width - 6)
        draw.text((text_left, icon_top), title, font=self._title_font, fill=TITLE_COLOR)

        lines = self._wrap(draw, render_message(record), self._body_font, text_right - text_left, 2)
        line_top = icon_top + RenderConfig.TITLE_FONT_SIZE + 6
        for line in lines:
            draw.text((text_left, line_top), line, font=self._body_font, fill=BODY_COLOR)
            line_top += RenderConfig.BODY_FONT_SIZE + 3

        layer.alpha_composite(card)

    def _draw_badge(self, card, draw, badge, left: int, top: int) -> None:
        size = RenderConfig.CARD_ICON_SIZE
        box = (left, top, left + size, top + size)

        if badge.icon is not None:
            try:
                icon = Image.open(io.BytesIO(badge.icon)).convert('RGBA').resize((size, size), Image.Resampling.LANCZOS)
            except (UnidentifiedImageError, OSError) as e:
                self.logger.warning(f"Cannot decode custom icon, drawing letter badge: {e}")
            else:
                mask = Image.new('L', (size, size), 0)
                ImageDraw.Draw(mask).rounded_rectangle(
                    (0, 0, size - 1, size - 1), radius=RenderConfig.CARD_ICON_RADIUS, fill=255
                )
                card.paste(icon, (left, top), mask)
                return

        draw.rounded_rectangle(box, radius=RenderConfig.CARD_ICON_RADIUS, fill=badge.color)
        draw.text(
            (left + size // 2, top + size // 2),
            badge.letter,
            font=_font(size // 2),
            fill=readable_text_color(badge.color),
            anchor='mm'
        )

    @staticmethod
    def _fit(draw, text: str, font, max_width: float) -> str:
        """Truncate text with an ellipsis to fit max_width"""
        if draw.textlength(text, font=font) <= max_width:
            return text
        while text and draw.textlength(text + '…', font=font) > max_width:
            text = text[:-1]
        return text + '…'

    @classmethod
    def _wrap(cls, draw, text: str, font, max_width: float, max_lines: int) -> List[str]:
        """Greedy word wrap, ellipsizing the last allowed line"""
        lines: List[str] = []
        current = ''
        words = text.split()

        for index, word in enumerate(words):
            candidate = f"{current} {word}".strip()
            if not current or draw.textlength(candidate, font=font) <= max_width:
                current = candidate
                continue

            if len(lines) == max_lines - 1:
                rest = ' '.join([current] + words[index:]).strip()
                lines.append(cls._fit(draw, rest, font, max_width))
                return lines

            lines.append(current)
            current = word

        if current:
            lines.append(cls._fit(draw, current, font, max_width))
        return lines
