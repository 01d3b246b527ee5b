#!/usr/bin/env python3
"""
Composer Configuration Constants

This module centralizes all magic numbers and configuration
constants used by the composition model and the export pipeline.

Usage:
    from notification_composer.config.composer_config import ExportConfig

    delay = ExportConfig.SETTLE_DELAY_MS
"""

import os
from dataclasses import dataclass
from pathlib import Path


class CaptureConfig:
    """Configuration constants for raster capture"""

    # ==================================
    # PIXEL SCALE
    # ==================================

    # Default capture scale (2 = retina-like output)
    DEFAULT_PIXEL_SCALE = 2

    # Minimum accepted scale
    MIN_PIXEL_SCALE = 1

    # ==================================
    # CORNER MASK
    # ==================================

    # Minimum corner radius to apply (pixels)
    MIN_CORNER_RADIUS = 2

    # Gaussian blur kernel size for smooth corners
    BLUR_KERNEL_SIZE = (5, 5)
    BLUR_SIGMA = 0

    # Mask values
    MASK_VALUE_ALLOW = 255
    MASK_VALUE_BLOCK = 0

    # ==================================
    # INTERPOLATION
    # ==================================

    # OpenCV interpolation method for high-quality resizing
    INTERPOLATION_METHOD = 'LANCZOS4'


class ExportConfig:
    """Configuration constants for still and animated export"""

    # ==================================
    # ANIMATION
    # ==================================

    # Default animation length (milliseconds)
    DEFAULT_DURATION_MS = 4000

    # Default frames per second
    DEFAULT_FRAME_RATE = 20

    # Wait after each scroll write so the new position is painted
    SETTLE_DELAY_MS = 50

    # Scrolling animations always show the top and the bottom
    MIN_SCROLL_FRAMES = 2

    # ==================================
    # OUTPUT
    # ==================================

    # PNG compression level (0-9, where 9 is highest compression)
    PNG_COMPRESSION_LEVEL = 9

    # GIF loop count (0 = forever)
    GIF_LOOP = 0

    # Background used when flattening transparent frames for GIF (RGB)
    GIF_BACKGROUND = (30, 30, 30)

    STILL_FILENAME = "notificacao.png"
    ANIMATED_FILENAME = "notificacao.gif"

    STILL_MEDIA_TYPE = "image/png"
    ANIMATED_MEDIA_TYPE = "image/gif"


class WallpaperConfig:
    """Configuration constants for wallpaper resolution"""

    # HTTP timeout for remote wallpapers (seconds)
    FETCH_TIMEOUT_SECONDS = 30

    # Refuse absurdly large downloads (bytes)
    MAX_DOWNLOAD_BYTES = 20 * 1024 * 1024

    # Prefix for materialized local handles
    TEMP_FILE_PREFIX = "wallpaper_"

    # Built-in wallpaper size (matches the largest skin screen)
    BUILTIN_WIDTH = 300
    BUILTIN_HEIGHT = 620


class StatusBarConfig:
    """Status bar ranges and defaults"""

    SIGNAL_MIN = 0
    SIGNAL_MAX = 4

    WIFI_BARS_MIN = 0
    WIFI_BARS_MAX = 3

    BATTERY_MIN = 0
    BATTERY_MAX = 100

    # Battery is drawn red at or below this level
    BATTERY_LOW_THRESHOLD = 20

    DEFAULT_TIME = "09:41"
    DEFAULT_SIGNAL = 4
    DEFAULT_BATTERY = 88

    TEXT_COLORS = ("white", "black")


class RenderConfig:
    """Layout constants for the reference renderer"""

    # ==================================
    # STATUS BAR
    # ==================================

    STATUS_BAR_HEIGHT = 32
    STATUS_BAR_PADDING_X = 16
    STATUS_FONT_SIZE = 12

    # ==================================
    # NOTIFICATION CARDS
    # ==================================

    # Space above the first card
    STACK_TOP_MARGIN = 72

    CARD_MARGIN_X = 8
    CARD_HEIGHT = 76
    CARD_GAP = 8
    CARD_RADIUS = 16
    CARD_PADDING = 12
    CARD_ICON_SIZE = 40
    CARD_ICON_RADIUS = 8

    # Semi-transparent white card (RGBA)
    CARD_FILL = (255, 255, 255, 178)

    TITLE_FONT_SIZE = 13
    BODY_FONT_SIZE = 12

    # Space below the last card
    STACK_BOTTOM_MARGIN = 24

    # ==================================
    # WALLPAPER
    # ==================================

    # Darkening overlay over the wallpaper (RGBA)
    WALLPAPER_DIM = (0, 0, 0, 26)

    # Fill used when the wallpaper cannot be drawn (RGB)
    WALLPAPER_PLACEHOLDER = (212, 212, 212)


class SessionConfig:
    """Editing session defaults"""

    # Preview zoom (1.0 = actual size)
    DEFAULT_ZOOM = 1.0
    MIN_ZOOM = 0.5
    MAX_ZOOM = 1.5
    ZOOM_STEP = 0.1

    # Kinds of text the generator can fill in
    AUTOFILL_KINDS = ("recipient", "timestamp")


class LocaleConfig:
    """pt-BR display conventions"""

    CURRENCY_SYMBOL = "R$"

    # Intl.NumberFormat places a no-break space between symbol and value
    CURRENCY_SEPARATOR = "\u00a0"

    THOUSANDS_SEPARATOR = "."
    DECIMAL_SEPARATOR = ","

    TIME_FORMAT = "%H:%M"


@dataclass
class ComposerSettings:
    """Runtime settings, overridable through environment variables.

    Attributes:
        pixel_scale: Capture scale for exports
        settle_delay_ms: Wait after each scroll write during animated export
        fetch_timeout: Remote wallpaper timeout (seconds)
        duration_ms: Default animation length
        frame_rate: Default animation frame rate
        output_dir: Where the CLI writes artifacts
    """
    pixel_scale: float = CaptureConfig.DEFAULT_PIXEL_SCALE
    settle_delay_ms: float = ExportConfig.SETTLE_DELAY_MS
    fetch_timeout: float = WallpaperConfig.FETCH_TIMEOUT_SECONDS
    duration_ms: int = ExportConfig.DEFAULT_DURATION_MS
    frame_rate: int = ExportConfig.DEFAULT_FRAME_RATE
    output_dir: Path = Path(".")

    @classmethod
    def from_env(cls) -> "ComposerSettings":
        """
        Build settings from NOTIF_* environment variables

        Returns:
            ComposerSettings with defaults for unset variables

        Raises:
            ValueError: If a variable is set but not numeric
        """
        return cls(
            pixel_scale=float(os.getenv('NOTIF_PIXEL_SCALE', cls.pixel_scale)),
            settle_delay_ms=float(os.getenv('NOTIF_SETTLE_DELAY_MS', cls.settle_delay_ms)),
            fetch_timeout=float(os.getenv('NOTIF_FETCH_TIMEOUT', cls.fetch_timeout)),
            duration_ms=int(os.getenv('NOTIF_ANIMATION_DURATION_MS', cls.duration_ms)),
            frame_rate=int(os.getenv('NOTIF_FRAME_RATE', cls.frame_rate)),
            output_dir=Path(os.getenv('NOTIF_OUTPUT_DIR', '.')),
        )


# Convenience function for getting OpenCV interpolation constant
def get_interpolation_method():
    """Returns OpenCV interpolation method constant"""
    import cv2
    method_name = CaptureConfig.INTERPOLATION_METHOD
    return getattr(cv2, f'INTER_{method_name}')
