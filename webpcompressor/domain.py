"""Core data types for animated WebP processing and a threaded worker pool."""

from __future__ import annotations

import enum
import queue
import threading
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Protocol

DEFAULT_METHOD = 6
DEFAULT_FILTER_STRENGTH = 100
DEFAULT_PRESET = "photo"
DEFAULT_MAX_CONCURRENCY = 4


class DisposeMethod(enum.IntEnum):
    """How a frame's area is treated after display."""

    NONE = 0
    BACKGROUND = 1


class BlendMethod(enum.IntEnum):
    """Whether a frame is alpha-blended onto the canvas."""

    NO = 0
    YES = 1


@dataclass
class FrameInfo:
    """One frame of an animation."""

    index: int = 0
    x: int = 0
    y: int = 0
    duration: timedelta = timedelta(0)
    dispose: DisposeMethod = DisposeMethod.NONE
    blend: BlendMethod = BlendMethod.NO
    path: str = ""


@dataclass
class AnimationInfo:
    """Canvas and frame data of an animation."""

    width: int = 0
    height: int = 0
    frame_count: int = 0
    loop_count: int = 0
    frames: list[FrameInfo] = field(default_factory=list)


@dataclass
class CompressionConfig:
    """Encoder settings for compressing frames."""

    quality: int = 0
    method: int = 0
    filter_strength: int = 0
    preset: str = ""
    lossless: bool = False
    alpha_quality: int = 0
    enable_parallel: bool = False
    max_concurrency: int = 0


def default_compression_config(quality: int) -> CompressionConfig:
    """Strongest settings for the given quality, parallel with four workers."""
    half = quality // 2 if quality >= 0 else -((-quality) // 2)
    return CompressionConfig(
        quality=quality,
        method=DEFAULT_METHOD,
        filter_strength=DEFAULT_FILTER_STRENGTH,
        preset=DEFAULT_PRESET,
        lossless=False,
        alpha_quality=half,
        enable_parallel=True,
        max_concurrency=DEFAULT_MAX_CONCURRENCY,
    )


@dataclass
class CompressResult:
    """Outcome of compressing an animation."""

    original_size: int = 0
    compressed_size: int = 0
    compression_ratio: float = 0.0
    processing_time: timedelta = timedelta(0)
    frames_processed: int = 0
    parallel_workers: int = 0

    def calculate_compression_ratio(self) -> None:
        """Set the ratio as compressed size in percent of the original."""
        if self.original_size > 0:
            self.compression_ratio = self.compressed_size / self.original_size * 100


FrameProcessor = Callable[[FrameInfo], None]

_STOP = object()


class WorkerPool:
    """A fixed set of threads that run a processor over submitted frames."""

    def __init__(self, max_workers: int) -> None:
        if max_workers < 1:
            raise ValueError(f"max_workers must be at least 1, got {max_workers}")
        self.max_workers = max_workers
        self._jobs: queue.Queue = queue.Queue(maxsize=max_workers * 2)
        self._threads: list[threading.Thread] = []
        self._errors: list[BaseException] = []
        self._lock = threading.Lock()

    def start(self, processor: FrameProcessor) -> None:
        """Start the worker threads."""
        for _ in range(self.max_workers):
            thread = threading.Thread(target=self._work, args=(processor,), daemon=True)
            thread.start()
            self._threads.append(thread)

    def submit(self, frame: FrameInfo) -> None:
        """Queue a frame, blocking while the queue is full."""
        self._jobs.put(frame)

    def close(self) -> None:
        """Signal that no more frames will be submitted."""
        for _ in self._threads:
            self._jobs.put(_STOP)

    def wait(self) -> list[BaseException]:
        """Wait for all workers to finish and return the errors they raised."""
        for thread in self._threads:
            thread.join()
        with self._lock:
            return list(self._errors)

    def _work(self, processor: FrameProcessor) -> None:
        while (frame := self._jobs.get()) is not _STOP:
            try:
                processor(frame)
            except Exception as exc:  # noqa: BLE001 - errors are reported through wait()
                with self._lock:
                    self._errors.append(exc)


class ToolExecutor(Protocol):
    """Runs external command-line tools."""

    def execute_command(self, tool_name: str, *args: str) -> None: ...

    def execute_command_with_output(self, tool_name: str, *args: str) -> str: ...

    def get_tool_path(self, tool_name: str) -> str: ...

    def is_tool_available(self, tool_name: str) -> bool: ...


class FileManager(Protocol):
    """File-system operations used by the service."""

    def create_temp_dir(self, prefix: str) -> str: ...

    def cleanup_temp_dir(self, path: str) -> None: ...

    def get_file_size(self, path: str) -> int: ...

    def file_exists(self, path: str) -> bool: ...

    def copy_file(self, src: str, dst: str) -> None: ...