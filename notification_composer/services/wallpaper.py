#!/usr/bin/env python3
"""
Wallpaper Resolver Service

Turns a wallpaper reference into something the renderer can draw without
tainting capture. Embedded wallpapers resolve immediately; remote ones are
downloaded into a local temp file handle.

Each resolve() call takes a monotonically increasing token. Only the
latest token may become current: older results arriving late are dropped
and their handles released, so the last requested wallpaper always wins.
"""

import asyncio
import logging
import os
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import cv2
import numpy as np
import requests

from ..config.composer_config import WallpaperConfig
from .wallpaper_catalog import WallpaperReference


class WallpaperFetchError(Exception):
    """Raised when a remote wallpaper cannot be fetched or decoded"""
    pass


class LocalImageHandle:
    """
    Temp file holding a fetched wallpaper.

    release() deletes the file. It is idempotent: a second call only logs
    a warning.
    """

    def __init__(self, path: Path, media_type: str = 'image/png'):
        self.logger = logging.getLogger(__name__)
        self.path = Path(path)
        self.media_type = media_type
        self._released = False

    @property
    def released(self) -> bool:
        return self._released

    def read_bytes(self) -> bytes:
        if self._released:
            raise WallpaperFetchError(f"Handle already released: {self.path}")
        return self.path.read_bytes()

    def release(self) -> None:
        if self._released:
            self.logger.warning(f"Wallpaper handle released twice: {self.path}")
            return

        self._released = True
        try:
            self.path.unlink()
        except FileNotFoundError:
            self.logger.debug(f"Wallpaper handle already gone: {self.path}")

    def __repr__(self) -> str:
        state = 'released' if self._released else 'live'
        return f"LocalImageHandle({self.path.name}, {state})"


@dataclass
class ResolvedWallpaper:
    """
    Result of one resolve() call.

    Attributes:
        reference: The reference that was requested (kept unchanged on failure)
        handle: Local handle for a fetched remote image, None otherwise
        failed: True when the remote image could not be made local
        warning: Human-readable reason for the failure
        token: Request token this result belongs to
    """
    reference: WallpaperReference
    handle: Optional[LocalImageHandle] = None
    failed: bool = False
    warning: Optional[str] = None
    token: int = 0

    @property
    def is_render_safe(self) -> bool:
        """True when drawing this wallpaper cannot taint capture"""
        return not self.reference.is_remote or self.handle is not None


class WallpaperResolver:
    """Resolves wallpaper references into render-safe local images"""

    def __init__(
        self,
        fetch_timeout: float = WallpaperConfig.FETCH_TIMEOUT_SECONDS,
        session: Optional[requests.Session] = None,
        temp_dir: Optional[Path] = None
    ):
        """
        Initialize resolver

        Args:
            fetch_timeout: HTTP timeout for remote wallpapers (seconds)
            session: HTTP session (injectable for tests)
            temp_dir: Where local handles are written (default: system temp)
        """
        self.logger = logging.getLogger(__name__)
        self.fetch_timeout = fetch_timeout
        self.session = session or requests.Session()
        self.temp_dir = temp_dir

        self._latest_token = 0
        self._current: Optional[ResolvedWallpaper] = None
        self._closed = False

    @property
    def current(self) -> Optional[ResolvedWallpaper]:
        """The wallpaper the renderer should draw"""
        return self._current

    @property
    def latest_token(self) -> int:
        return self._latest_token

    async def resolve(self, reference: WallpaperReference) -> ResolvedWallpaper:
        """
        Resolve a reference and make it current unless superseded

        Fetch failures never raise: they come back as failed=True with a
        warning, and the failed result still becomes current so the
        failure stays observable.

        Args:
            reference: Embedded or remote wallpaper

        Returns:
            ResolvedWallpaper for this call (check `token` against
            `latest_token` to know whether it was applied)
        """
        self._latest_token += 1
        token = self._latest_token

        if not reference.is_remote:
            result = ResolvedWallpaper(reference=reference, token=token)
        else:
            result = await self._resolve_remote(reference, token)

        self._apply(result)
        return result

    async def _resolve_remote(self, reference, token: int) -> ResolvedWallpaper:
        self.logger.info(f"Fetching remote wallpaper: {reference.url}")
        try:
            handle = await asyncio.to_thread(self._fetch_to_handle, reference.url)
        except WallpaperFetchError as e:
            self.logger.warning(f"Wallpaper fetch failed: {e}")
            return ResolvedWallpaper(
                reference=reference,
                failed=True,
                warning=str(e),
                token=token
            )

        return ResolvedWallpaper(reference=reference, handle=handle, token=token)

    def _fetch_to_handle(self, url: str) -> LocalImageHandle:
        """Download, validate and materialize an image (blocking)"""
        try:
            response = self.session.get(url, timeout=self.fetch_timeout)
            response.raise_for_status()
        except requests.RequestException as e:
            raise WallpaperFetchError(f"Could not download {url}: {e}")

        data = response.content

        # Guard clause: empty or oversized body
        if not data:
            raise WallpaperFetchError(f"Empty response from {url}")
        if len(data) > WallpaperConfig.MAX_DOWNLOAD_BYTES:
            raise WallpaperFetchError(f"Wallpaper too large ({len(data)} bytes): {url}")

        image = cv2.imdecode(np.frombuffer(data, dtype=np.uint8), cv2.IMREAD_UNCHANGED)
        if image is None:
            raise WallpaperFetchError(f"Response is not a decodable image: {url}")

        media_type = response.headers.get('Content-Type', 'image/png').split(';')[0]
        fd, path = tempfile.mkstemp(
            prefix=WallpaperConfig.TEMP_FILE_PREFIX,
            dir=str(self.temp_dir) if self.temp_dir else None
        )
        with os.fdopen(fd, 'wb') as f:
            f.write(data)

        self.logger.debug(f"Wallpaper stored at {path} ({len(data)} bytes)")
        return LocalImageHandle(Path(path), media_type=media_type)

    def _apply(self, result: ResolvedWallpaper) -> None:
        """Make a result current, or discard it if a newer request exists"""
        if self._closed or result.token != self._latest_token:
            self.logger.debug(f"Discarding stale wallpaper result (token {result.token})")
            if result.handle is not None:
                result.handle.release()
            return

        previous = self._current
        self._current = result

        if previous is not None and previous.handle is not None:
            previous.handle.release()

    def close(self) -> None:
        """Release the current handle (session teardown)"""
        if self._closed:
            return

        self._closed = True
        if self._current is not None and self._current.handle is not None:
            self._current.handle.release()
        self._current = None
        self.session.close()
