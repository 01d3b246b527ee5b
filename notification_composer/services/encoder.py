#!/usr/bin/env python3
"""
Image Encoders

PNG encoding for stills (OpenCV) and a background GIF encoder (Pillow)
for animated exports.

The GIF encoder runs on a single worker thread. Submitting a frame
sequence transfers it to the worker: the caller must not touch the
frames afterwards. The worker releases them when it finishes, fails or
is cancelled.
"""

import asyncio
import io
import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import List, Optional

import cv2
import numpy as np
from PIL import Image

from ..config.composer_config import ExportConfig


class EncodeError(Exception):
    """Raised when frames cannot be encoded"""
    pass


class EncodeCancelledError(EncodeError):
    """Raised inside the worker when the task was cancelled"""
    pass


@dataclass
class Frame:
    """One captured bitmap and how long it is shown"""
    bitmap: Optional[np.ndarray]
    hold_delay_ms: float


@dataclass
class FrameSequence:
    """Ordered frames owned by exactly one in-flight export"""
    frames: List[Frame] = field(default_factory=list)
    released: bool = False

    def append(self, bitmap: np.ndarray, hold_delay_ms: float) -> None:
        if self.released:
            raise EncodeError("Cannot add frames to a released sequence")
        self.frames.append(Frame(bitmap=bitmap, hold_delay_ms=hold_delay_ms))

    @property
    def delays_ms(self) -> List[float]:
        return [frame.hold_delay_ms for frame in self.frames]

    def __len__(self) -> int:
        return len(self.frames)

    def release(self) -> None:
        """Drop the bitmaps (safe to call more than once)"""
        for frame in self.frames:
            frame.bitmap = None
        self.released = True


def encode_png(bitmap: np.ndarray) -> bytes:
    """
    Encode a BGRA bitmap as PNG

    Raises:
        EncodeError: If OpenCV cannot encode the bitmap
    """
    ok, encoded = cv2.imencode(
        '.png',
        bitmap,
        [cv2.IMWRITE_PNG_COMPRESSION, ExportConfig.PNG_COMPRESSION_LEVEL]
    )
    if not ok:
        raise EncodeError(f"PNG encoding failed for bitmap of shape {bitmap.shape}")
    return encoded.tobytes()


def _flatten_frame(bitmap: np.ndarray) -> Image.Image:
    """BGRA bitmap flattened onto the GIF background colour"""
    rgba = cv2.cvtColor(bitmap, cv2.COLOR_BGRA2RGBA)
    image = Image.fromarray(rgba, 'RGBA')
    background = Image.new('RGB', image.size, ExportConfig.GIF_BACKGROUND)
    background.paste(image, mask=image.getchannel('A'))
    return background


class EncodeTask:
    """Handle to one background encode: a single awaited result plus cancel()"""

    def __init__(self, future: Future, cancel_event: threading.Event, sequence: FrameSequence):
        self._future = future
        self._cancel_event = cancel_event
        self._sequence = sequence

    @property
    def done(self) -> bool:
        return self._future.done()

    @property
    def cancelled(self) -> bool:
        return self._cancel_event.is_set()

    async def wait(self) -> bytes:
        """
        Await the encoded bytes

        Raises:
            EncodeError: If encoding failed
            EncodeCancelledError: If the task was cancelled
        """
        return await asyncio.wrap_future(self._future)

    def cancel(self) -> None:
        """Stop the encode between frames; frames are released either way"""
        self._cancel_event.set()

        # Never started: the worker will not release the frames
        if self._future.cancel():
            self._sequence.release()


class GifEncoder:
    """Encodes frame sequences to animated GIF on a worker thread"""

    def __init__(self, executor: Optional[ThreadPoolExecutor] = None):
        self.logger = logging.getLogger(__name__)
        self._owns_executor = executor is None
        self.executor = executor or ThreadPoolExecutor(
            max_workers=1,
            thread_name_prefix='gif-encoder'
        )

    def submit(self, sequence: FrameSequence) -> EncodeTask:
        """
        Transfer a sequence to the worker

        Args:
            sequence: Frames to encode (ownership moves to the worker)

        Returns:
            EncodeTask delivering the GIF bytes
        """
        cancel_event = threading.Event()
        future = self.executor.submit(self._encode, sequence, cancel_event)
        return EncodeTask(future, cancel_event, sequence)

    def _encode(self, sequence: FrameSequence, cancel_event: threading.Event) -> bytes:
        try:
            if not sequence.frames:
                raise EncodeError("No frames to encode")

            images = []
            for index, frame in enumerate(sequence.frames):
                if cancel_event.is_set():
                    raise EncodeCancelledError(f"Encoding cancelled at frame {index}")
                if frame.bitmap is None:
                    raise EncodeError(f"Frame {index} was released before encoding")
                images.append(_flatten_frame(frame.bitmap))

            if cancel_event.is_set():
                raise EncodeCancelledError("Encoding cancelled before writing")

            buffer = io.BytesIO()
            images[0].save(
                buffer,
                format='GIF',
                save_all=True,
                append_images=images[1:],
                duration=[int(round(delay)) for delay in sequence.delays_ms],
                loop=ExportConfig.GIF_LOOP,
            )
            self.logger.debug(f"Encoded GIF with {len(images)} frames ({buffer.tell()} bytes)")
            return buffer.getvalue()

        except EncodeError:
            raise
        except (OSError, ValueError) as e:
            raise EncodeError(f"GIF encoding failed: {e}")
        finally:
            sequence.release()

    def shutdown(self) -> None:
        if self._owns_executor:
            self.executor.shutdown(wait=False, cancel_futures=True)
