#!/usr/bin/env python3
"""
Wallpaper References and Built-in Wallpapers

A wallpaper reference is either embedded image data (self-contained and
safe to rasterize) or a remote URL (may taint capture until resolved).
Built-in wallpapers are gradients generated in memory, so they are
always embedded.

Usage:
    from notification_composer.services.wallpaper_catalog import (
        GradientStyle, gradient_wallpaper, wallpaper_from_string
    )

    ref = gradient_wallpaper(GradientStyle.OCEAN_BLUE)
    remote = wallpaper_from_string("https://example.com/bg.jpg")
"""

import base64
import binascii
from dataclasses import dataclass
from functools import lru_cache
from typing import List, Optional, Tuple, Union

import cv2
import numpy as np

from ..config.composer_config import ExportConfig, WallpaperConfig
from .color_utils import hex_to_rgb


class WallpaperReferenceError(ValueError):
    """Raised when a wallpaper reference cannot be parsed"""
    pass


@dataclass(frozen=True)
class EmbeddedWallpaper:
    """Image bytes carried inside the composition"""
    data: bytes
    media_type: str = ExportConfig.STILL_MEDIA_TYPE
    label: str = ''

    is_remote = False

    def to_uri(self) -> str:
        """Serialize as a data: URI"""
        encoded = base64.b64encode(self.data).decode('ascii')
        return f"data:{self.media_type};base64,{encoded}"


@dataclass(frozen=True)
class RemoteWallpaper:
    """Image living on another origin"""
    url: str

    is_remote = True

    def to_uri(self) -> str:
        return self.url


WallpaperReference = Union[EmbeddedWallpaper, RemoteWallpaper]


def decode_data_uri(uri: str) -> Tuple[bytes, str]:
    """
    Decode a base64 data: URI

    Args:
        uri: String like "data:image/png;base64,iVBOR..."

    Returns:
        Tuple of (bytes, media_type)

    Raises:
        WallpaperReferenceError: If the URI is malformed
    """
    # Guard clause: not a data URI
    if not uri.startswith('data:') or ',' not in uri:
        raise WallpaperReferenceError(f"Not a data URI: {uri[:40]}")

    header, payload = uri[5:].split(',', 1)
    media_type = header.split(';')[0] or 'application/octet-stream'

    if ';base64' not in header:
        raise WallpaperReferenceError("Only base64 data URIs are supported")

    try:
        return base64.b64decode(payload, validate=True), media_type
    except (binascii.Error, ValueError) as e:
        raise WallpaperReferenceError(f"Invalid base64 payload: {e}")


def wallpaper_from_string(value: str) -> WallpaperReference:
    """
    Parse a wallpaper string from a serialized composition

    Args:
        value: data: URI or http(s) URL

    Returns:
        EmbeddedWallpaper or RemoteWallpaper

    Raises:
        WallpaperReferenceError: If the string is neither
    """
    value = value.strip()

    if value.startswith('data:'):
        data, media_type = decode_data_uri(value)
        return EmbeddedWallpaper(data=data, media_type=media_type)

    if value.startswith(('http://', 'https://')):
        return RemoteWallpaper(url=value)

    raise WallpaperReferenceError(
        f"Unsupported wallpaper reference: '{value[:40]}'. "
        f"Use a data: URI or an http(s) URL"
    )


class GradientStyle:
    """Gradient style definitions"""

    PREMIUM_PURPLE = ("Premium Purple/Pink", "#667eea", "#764ba2")
    OCEAN_BLUE = ("Ocean Blue", "#4facfe", "#00f2fe")
    SUNSET_ORANGE = ("Sunset Orange", "#fa709a", "#fee140")
    FRESH_GREEN = ("Fresh Green", "#0ba360", "#3cba92")
    DARK_PURPLE = ("Dark Purple", "#2d3436", "#6c5ce7")
    BOLD_RED_PINK = ("Bold Red/Pink", "#f093fb", "#f5576c")

    @classmethod
    def get_all(cls) -> List[Tuple[str, str, str]]:
        """Get all gradient styles"""
        return [
            cls.PREMIUM_PURPLE,
            cls.OCEAN_BLUE,
            cls.SUNSET_ORANGE,
            cls.FRESH_GREEN,
            cls.DARK_PURPLE,
            cls.BOLD_RED_PINK
        ]

    @classmethod
    def get_by_index(cls, index: int) -> Tuple[str, str, str]:
        """Get gradient style by index (1-6)"""
        styles = cls.get_all()

        # Guard clause: Invalid index
        if index < 1 or index > len(styles):
            raise ValueError(f"Invalid gradient index: {index}. Must be 1-{len(styles)}")

        return styles[index - 1]


@lru_cache(maxsize=None)
def _gradient_png(start: str, end: str, width: int, height: int) -> bytes:
    """Vertical gradient encoded as PNG bytes"""
    top = np.array(hex_to_rgb(start)[::-1], dtype=np.float32)  # BGR
    bottom = np.array(hex_to_rgb(end)[::-1], dtype=np.float32)

    ramp = np.linspace(0.0, 1.0, height, dtype=np.float32)[:, None]
    column = top * (1.0 - ramp) + bottom * ramp
    image = np.repeat(column[:, None, :], width, axis=1).astype(np.uint8)

    ok, encoded = cv2.imencode('.png', image)
    if not ok:
        raise WallpaperReferenceError(f"Failed to encode gradient {start}-{end}")
    return encoded.tobytes()


def gradient_wallpaper(
    style: Tuple[str, str, str],
    width: Optional[int] = None,
    height: Optional[int] = None
) -> EmbeddedWallpaper:
    """
    Build an embedded wallpaper from a gradient style

    Args:
        style: Tuple of (name, start hex, end hex) from GradientStyle
        width: Image width (default: WallpaperConfig.BUILTIN_WIDTH)
        height: Image height (default: WallpaperConfig.BUILTIN_HEIGHT)

    Returns:
        EmbeddedWallpaper labelled with the style name
    """
    name, start, end = style
    data = _gradient_png(
        start,
        end,
        width or WallpaperConfig.BUILTIN_WIDTH,
        height or WallpaperConfig.BUILTIN_HEIGHT
    )
    return EmbeddedWallpaper(data=data, label=name)


def default_wallpaper() -> EmbeddedWallpaper:
    """Wallpaper used by new compositions"""
    return gradient_wallpaper(GradientStyle.PREMIUM_PURPLE)
