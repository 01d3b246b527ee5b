#!/usr/bin/env python3
"""
Capture Engine

Rasterizes a rendered region into a BGRA bitmap at a pixel scale and
applies the device's rounded-corner alpha mask.

Rasterization runs on the caller's event loop so the captured state is
consistent with the current scroll offset. Scaling and masking run in a
worker thread.
"""

import asyncio
import logging

import cv2
import numpy as np

from ..config.composer_config import CaptureConfig, get_interpolation_method


class CaptureSecurityError(Exception):
    """Raised when a region would expose unresolved cross-origin pixels"""
    pass


def apply_rounded_corners(image: np.ndarray, corner_radius: float) -> np.ndarray:
    """
    Apply rounded corners to an image's alpha channel

    Args:
        image: numpy array BGRA
        corner_radius: corner radius in pixels

    Returns:
        New image with rounded corners applied
    """
    h, w = image.shape[:2]
    radius = int(corner_radius)

    # Radius too small to matter
    if radius < CaptureConfig.MIN_CORNER_RADIUS:
        return image

    corners_mask = np.ones((h, w), dtype=np.uint8) * CaptureConfig.MASK_VALUE_ALLOW

    if radius < min(h, w):
        block = CaptureConfig.MASK_VALUE_BLOCK
        allow = CaptureConfig.MASK_VALUE_ALLOW
        centers = [
            (radius, radius),
            (w - radius - 1, radius),
            (radius, h - radius - 1),
            (w - radius - 1, h - radius - 1),
        ]
        corners_mask[0:radius, 0:radius] = block
        corners_mask[0:radius, w-radius:w] = block
        corners_mask[h-radius:h, 0:radius] = block
        corners_mask[h-radius:h, w-radius:w] = block
        for center in centers:
            cv2.circle(corners_mask, center, radius, allow, -1)

        # Smooth to avoid jagged edges
        corners_mask = cv2.GaussianBlur(
            corners_mask,
            CaptureConfig.BLUR_KERNEL_SIZE,
            CaptureConfig.BLUR_SIGMA
        )

    result = image.copy()
    result[:, :, 3] = cv2.bitwise_and(result[:, :, 3], corners_mask)
    return result


def scale_bitmap(bitmap: np.ndarray, pixel_scale: float) -> np.ndarray:
    """Resize a bitmap by pixel_scale (no-op at 1x)"""
    if pixel_scale == 1:
        return bitmap

    h, w = bitmap.shape[:2]
    size = (max(1, int(round(w * pixel_scale))), max(1, int(round(h * pixel_scale))))
    return cv2.resize(bitmap, size, interpolation=get_interpolation_method())


class CaptureEngine:
    """Produces scaled, corner-masked bitmaps from rendered regions"""

    def __init__(self, corner_radius: float = 0):
        """
        Initialize capture engine

        Args:
            corner_radius: Outer corner radius at 1x (0 = no mask)
        """
        self.logger = logging.getLogger(__name__)
        self.corner_radius = corner_radius

    async def capture(self, region, pixel_scale: float) -> np.ndarray:
        """
        Capture the region's current appearance

        Args:
            region: RenderedRegion to read (never mutated)
            pixel_scale: Output scale (>= 1)

        Returns:
            BGRA bitmap

        Raises:
            CaptureSecurityError: If the region draws unresolved remote content
            ValueError: If pixel_scale is below the minimum
        """
        if pixel_scale < CaptureConfig.MIN_PIXEL_SCALE:
            raise ValueError(f"pixel_scale must be >= {CaptureConfig.MIN_PIXEL_SCALE}, got {pixel_scale}")

        if region.has_tainted_content():
            raise CaptureSecurityError(
                "Region contains a remote image that was not resolved locally"
            )

        bitmap = region.rasterize()
        if bitmap.ndim != 3 or bitmap.shape[2] != 4:
            raise ValueError(f"Expected a BGRA bitmap, got shape {bitmap.shape}")

        return await asyncio.to_thread(self._finish, bitmap, pixel_scale)

    def _finish(self, bitmap: np.ndarray, pixel_scale: float) -> np.ndarray:
        scaled = scale_bitmap(bitmap, pixel_scale)
        if self.corner_radius > 0:
            scaled = apply_rounded_corners(scaled, self.corner_radius * pixel_scale)
        self.logger.debug(f"Captured {scaled.shape[1]}x{scaled.shape[0]} at {pixel_scale}x")
        return scaled
