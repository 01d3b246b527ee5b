#!/usr/bin/env python3
"""
Color Utility Functions

Provides the small colour conversions used by the built-in wallpapers
and the reference renderer.

Usage:
    from notification_composer.services.color_utils import hex_to_rgb, readable_text_color

    readable_text_color((240, 240, 240))  # (0, 0, 0)
"""

import colorsys
from typing import Tuple


def hex_to_rgb(hex_color: str) -> Tuple[int, int, int]:
    """
    Convert hex color to RGB tuple (0-255 range)

    Args:
        hex_color: Color in hex format (e.g., "#FF5733" or "FF5733")

    Returns:
        Tuple of (R, G, B) values in 0-255 range

    Example:
        >>> hex_to_rgb("#FF5733")
        (255, 87, 51)
    """
    hex_color = hex_color.lstrip('#')
    return tuple(int(hex_color[i:i+2], 16) for i in (0, 2, 4))


def rgb_lightness(rgb: Tuple[int, int, int]) -> float:
    """
    HSL lightness of an RGB colour

    Args:
        rgb: Tuple of (R, G, B) values in 0-255 range

    Returns:
        Lightness from 0.0 to 1.0
    """
    r, g, b = rgb
    # colorsys uses HLS (not HSL), where L is in the middle
    _, l, _ = colorsys.rgb_to_hls(r / 255.0, g / 255.0, b / 255.0)
    return l


def readable_text_color(
    background: Tuple[int, int, int],
    threshold: float = 0.6
) -> Tuple[int, int, int]:
    """
    Pick black or white text for a background

    Args:
        background: Background colour (RGB)
        threshold: Lightness above which black text is used

    Returns:
        (0, 0, 0) or (255, 255, 255)
    """
    if rgb_lightness(background) > threshold:
        return (0, 0, 0)
    return (255, 255, 255)


def status_text_rgb(text_color: str) -> Tuple[int, int, int]:
    """Map the status bar text colour name to RGB"""
    return (255, 255, 255) if text_color == 'white' else (0, 0, 0)
