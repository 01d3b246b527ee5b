#!/usr/bin/env python3
"""
Export Pipeline

Turns a rendered region into a still PNG or an animated GIF that scrolls
through the notification stack.

Each job runs its own state machine:

    still:     IDLE -> CAPTURING -> DONE
    animated:  IDLE -> SEQUENCING -> ENCODING -> DONE

FAILED is reachable from every non-idle state. A failure ends only the
current job; the composition is never touched, and the region's scroll
offset is always restored. close() stops every export still in flight.

Usage:
    pipeline = ExportPipeline(CaptureEngine(corner_radius=56))
    outcome = await pipeline.export(region, ExportJob(ExportFormat.ANIMATED))
    if outcome.succeeded:
        Path(outcome.artifact.filename).write_bytes(outcome.artifact.data)
"""

import asyncio
import logging
import math
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Tuple

from ..config.composer_config import CaptureConfig, ExportConfig
from .capture import CaptureEngine, CaptureSecurityError
from .encoder import (
    EncodeCancelledError,
    EncodeError,
    EncodeTask,
    FrameSequence,
    GifEncoder,
    encode_png,
)


class ExportBusyError(Exception):
    """Raised when the region already has an export in flight"""
    pass


class ExportCancelledError(Exception):
    """Raised when an export is cancelled by its token"""
    pass


class ExportFormat(str, Enum):
    STILL = 'still'
    ANIMATED = 'animated'


class ExportState(str, Enum):
    IDLE = 'idle'
    CAPTURING = 'capturing'
    SEQUENCING = 'sequencing'
    ENCODING = 'encoding'
    DONE = 'done'
    FAILED = 'failed'


_ALLOWED_TRANSITIONS = {
    ExportState.IDLE: {ExportState.CAPTURING, ExportState.SEQUENCING},
    ExportState.CAPTURING: {ExportState.DONE, ExportState.FAILED},
    ExportState.SEQUENCING: {ExportState.ENCODING, ExportState.FAILED},
    ExportState.ENCODING: {ExportState.DONE, ExportState.FAILED},
    ExportState.DONE: set(),
    ExportState.FAILED: set(),
}


class _ExportMachine:
    """Per-job state machine recording every state it passes through"""

    def __init__(self):
        self.state = ExportState.IDLE
        self.transitions = [ExportState.IDLE]

    def to(self, state: ExportState) -> None:
        if state not in _ALLOWED_TRANSITIONS[self.state]:
            raise RuntimeError(f"Illegal export transition: {self.state.value} -> {state.value}")
        self.state = state
        self.transitions.append(state)


@dataclass(frozen=True)
class ExportJob:
    """
    One export request.

    Attributes:
        format: still or animated
        pixel_scale: Output scale (>= 1)
        duration_ms: Animation length (animated only)
        frame_rate: Frames per second (animated only)
    """
    format: ExportFormat
    pixel_scale: float = CaptureConfig.DEFAULT_PIXEL_SCALE
    duration_ms: int = ExportConfig.DEFAULT_DURATION_MS
    frame_rate: int = ExportConfig.DEFAULT_FRAME_RATE

    def __post_init__(self):
        try:
            object.__setattr__(self, 'format', ExportFormat(self.format))
        except ValueError:
            raise ValueError(f"Unknown export format: {self.format!r}")

        if self.pixel_scale < CaptureConfig.MIN_PIXEL_SCALE:
            raise ValueError(f"pixel_scale must be >= {CaptureConfig.MIN_PIXEL_SCALE}, got {self.pixel_scale}")
        if self.duration_ms <= 0:
            raise ValueError(f"duration_ms must be positive, got {self.duration_ms}")
        if self.frame_rate <= 0:
            raise ValueError(f"frame_rate must be positive, got {self.frame_rate}")


@dataclass(frozen=True)
class ExportArtifact:
    """Encoded output of a successful export"""
    data: bytes
    media_type: str
    filename: str
    frame_count: int = 1
    frame_delays_ms: Tuple[float, ...] = ()


@dataclass
class ExportOutcome:
    """Final state of one job, with the artifact or the failure"""
    job: ExportJob
    state: ExportState
    transitions: List[ExportState] = field(default_factory=list)
    artifact: Optional[ExportArtifact] = None
    error: Optional[BaseException] = None
    message: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.state == ExportState.DONE and self.artifact is not None


class CancellationToken:
    """Cooperative cancellation shared between a caller and one export"""

    def __init__(self):
        self._event = asyncio.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    async def wait(self) -> None:
        await self._event.wait()


def frame_hold_delay(frame_rate: int) -> float:
    """Milliseconds each scrolling frame is shown"""
    return 1000 / frame_rate


def plan_frame_count(duration_ms: int, frame_rate: int) -> int:
    """
    Number of frames for a scrolling animation

    round(duration / frame interval), halves rounded up, and never fewer
    than two so the first and last offsets are both shown.
    """
    exact = duration_ms / frame_hold_delay(frame_rate)
    return max(ExportConfig.MIN_SCROLL_FRAMES, int(math.floor(exact + 0.5)))


def plan_scroll_offsets(scroll_distance: float, duration_ms: int, frame_rate: int) -> List[float]:
    """
    Evenly spaced scroll offsets from 0 to scroll_distance

    Returns:
        Monotone offsets, first 0, last scroll_distance; empty when there
        is nothing to scroll
    """
    if scroll_distance <= 0:
        return []

    frame_count = plan_frame_count(duration_ms, frame_rate)
    return [i / (frame_count - 1) * scroll_distance for i in range(frame_count)]


def describe_failure(error: BaseException) -> str:
    """User-facing (pt-BR) message for a failed export"""
    if isinstance(error, (ExportCancelledError, EncodeCancelledError)):
        return "Exportação cancelada."
    if isinstance(error, CaptureSecurityError):
        return (
            "Não foi possível exportar: o papel de parede remoto não pôde ser "
            "carregado com segurança. Envie a imagem do seu computador e tente novamente."
        )
    if isinstance(error, EncodeError):
        return "Falha ao gerar a animação. Tente novamente."
    if isinstance(error, ExportBusyError):
        return "Já existe uma exportação em andamento."
    return "Erro ao gerar a imagem. Tente novamente."


class ExportPipeline:
    """Runs still and animated exports against rendered regions"""

    def __init__(
        self,
        capture_engine: Optional[CaptureEngine] = None,
        encoder: Optional[GifEncoder] = None,
        settle_delay_ms: float = ExportConfig.SETTLE_DELAY_MS
    ):
        """
        Initialize export pipeline

        Args:
            capture_engine: Engine used for every capture
            encoder: Background GIF encoder
            settle_delay_ms: Wait after each scroll write
        """
        self.logger = logging.getLogger(__name__)
        self.capture_engine = capture_engine or CaptureEngine()
        self.encoder = encoder or GifEncoder()
        self.settle_delay_ms = settle_delay_ms
        self._active_regions = set()
        # In-flight work stopped by close()
        self._active_tokens = set()
        self._encode_tasks = set()
        self._closed = False

    def is_busy(self, region) -> bool:
        return id(region) in self._active_regions

    @property
    def has_pending_work(self) -> bool:
        """True while any export or background encode is in flight"""
        return bool(self._active_tokens or self._encode_tasks)

    async def export(
        self,
        region,
        job: ExportJob,
        cancel_token: Optional[CancellationToken] = None
    ) -> ExportOutcome:
        """
        Run one export job to completion

        Args:
            region: RenderedRegion to capture
            job: What to produce
            cancel_token: Optional token to stop the export

        Returns:
            ExportOutcome in state DONE (with artifact) or FAILED (with
            error and message)

        Raises:
            ExportBusyError: If the region already has an export in flight
            ExportCancelledError: If the pipeline was already closed
        """
        # Guard clauses: open pipeline, one export per region
        if self._closed:
            raise ExportCancelledError("Export pipeline is closed")
        if self.is_busy(region):
            raise ExportBusyError("An export is already running for this region")

        token = cancel_token or CancellationToken()
        self._active_regions.add(id(region))
        self._active_tokens.add(token)
        machine = _ExportMachine()
        self.logger.info(f"Starting {job.format.value} export at {job.pixel_scale}x")

        try:
            if job.format == ExportFormat.STILL:
                artifact = await self._export_still(region, job, machine)
            else:
                artifact = await self._export_animated(region, job, machine, token)

        except (ExportCancelledError, EncodeCancelledError) as e:
            self.logger.info("Export cancelled")
            return self._failed(job, machine, e)

        except (CaptureSecurityError, EncodeError, ValueError) as e:
            self.logger.error(f"Export failed: {e}")
            return self._failed(job, machine, e)

        except Exception as e:
            self.logger.exception(f"Unexpected error during {job.format.value} export")
            return self._failed(job, machine, e)

        finally:
            self._active_regions.discard(id(region))
            self._active_tokens.discard(token)

        machine.to(ExportState.DONE)
        self.logger.info(f"Export done: {artifact.filename} ({len(artifact.data)} bytes)")
        return ExportOutcome(
            job=job,
            state=machine.state,
            transitions=machine.transitions,
            artifact=artifact
        )

    @staticmethod
    def _failed(job: ExportJob, machine: _ExportMachine, error: Exception) -> ExportOutcome:
        machine.to(ExportState.FAILED)
        return ExportOutcome(
            job=job,
            state=machine.state,
            transitions=machine.transitions,
            error=error,
            message=describe_failure(error)
        )

    # ==================================
    # STILL
    # ==================================

    async def _export_still(self, region, job: ExportJob, machine: _ExportMachine) -> ExportArtifact:
        machine.to(ExportState.CAPTURING)
        bitmap = await self.capture_engine.capture(region, job.pixel_scale)
        data = await asyncio.to_thread(encode_png, bitmap)
        return ExportArtifact(
            data=data,
            media_type=ExportConfig.STILL_MEDIA_TYPE,
            filename=ExportConfig.STILL_FILENAME
        )

    # ==================================
    # ANIMATED
    # ==================================

    async def _export_animated(
        self,
        region,
        job: ExportJob,
        machine: _ExportMachine,
        cancel_token: CancellationToken
    ) -> ExportArtifact:
        machine.to(ExportState.SEQUENCING)
        sequence = await self._capture_sequence(region, job, cancel_token)

        frame_count = len(sequence)
        delays = tuple(sequence.delays_ms)

        machine.to(ExportState.ENCODING)
        try:
            task = self.encoder.submit(sequence)
        except RuntimeError as e:
            # Ownership never moved to the worker
            sequence.release()
            raise EncodeError(f"Encoder is not accepting work: {e}")

        self._encode_tasks.add(task)
        try:
            data = await self._await_encode(task, cancel_token)
        finally:
            self._encode_tasks.discard(task)

        return ExportArtifact(
            data=data,
            media_type=ExportConfig.ANIMATED_MEDIA_TYPE,
            filename=ExportConfig.ANIMATED_FILENAME,
            frame_count=frame_count,
            frame_delays_ms=delays
        )

    async def _capture_sequence(
        self,
        region,
        job: ExportJob,
        cancel_token: Optional[CancellationToken]
    ) -> FrameSequence:
        """Capture every frame strictly in order, restoring scroll afterwards"""
        original_offset = region.scroll_offset
        sequence = FrameSequence()

        try:
            scroll_distance = region.content_height - region.viewport_height

            if scroll_distance <= 0:
                self._check_cancelled(cancel_token)
                bitmap = await self.capture_engine.capture(region, job.pixel_scale)
                sequence.append(bitmap, job.duration_ms)
            else:
                hold = frame_hold_delay(job.frame_rate)
                offsets = plan_scroll_offsets(scroll_distance, job.duration_ms, job.frame_rate)
                self.logger.debug(f"Scrolling {scroll_distance}px over {len(offsets)} frames")

                for offset in offsets:
                    self._check_cancelled(cancel_token)
                    region.scroll_offset = offset
                    await asyncio.sleep(self.settle_delay_ms / 1000)
                    bitmap = await self.capture_engine.capture(region, job.pixel_scale)
                    sequence.append(bitmap, hold)

            self._check_cancelled(cancel_token)

        except BaseException:
            sequence.release()
            raise

        finally:
            region.scroll_offset = original_offset

        return sequence

    async def _await_encode(self, task: EncodeTask, cancel_token: CancellationToken) -> bytes:
        """Wait for the encoder, racing it against cancellation"""
        encoding = asyncio.ensure_future(task.wait())
        cancelled = asyncio.ensure_future(cancel_token.wait())
        try:
            done, _ = await asyncio.wait(
                {encoding, cancelled},
                return_when=asyncio.FIRST_COMPLETED
            )
        except asyncio.CancelledError:
            task.cancel()
            encoding.cancel()
            raise
        finally:
            cancelled.cancel()

        # Cancellation wins even if the encode settled in the same step
        if encoding in done and not cancel_token.cancelled:
            return encoding.result()

        task.cancel()
        if encoding.done() and not encoding.cancelled():
            encoding.exception()
        encoding.cancel()
        raise ExportCancelledError("Export cancelled while encoding")

    @staticmethod
    def _check_cancelled(cancel_token: Optional[CancellationToken]) -> None:
        if cancel_token is not None and cancel_token.cancelled:
            raise ExportCancelledError("Export cancelled while capturing frames")

    def close(self) -> None:
        """
        Stop every in-flight export, then the encoder

        Capture loops stop before their next frame and restore scroll;
        running encodes are cancelled between frames.
        """
        if self._closed:
            return

        self._closed = True
        if self._active_tokens or self._encode_tasks:
            self.logger.info(
                f"Cancelling {len(self._active_tokens)} export(s) and "
                f"{len(self._encode_tasks)} encode(s) on close"
            )
        for token in list(self._active_tokens):
            token.cancel()
        for task in list(self._encode_tasks):
            task.cancel()
        self.encoder.shutdown()
