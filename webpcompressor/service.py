"""Animated WebP compression: parse, extract, re-encode and reassemble frames."""

from __future__ import annotations

import os
import re
import time
from datetime import timedelta

from webpcompressor.config import Config
from webpcompressor.domain import (
    AnimationInfo,
    BlendMethod,
    CompressionConfig,
    CompressResult,
    DisposeMethod,
    FileManager,
    FrameInfo,
    ToolExecutor,
    WorkerPool,
)
from webpcompressor.errors import (
    AppError,
    ErrorType,
    file_not_found,
    invalid_quality,
    new_error,
    wrap,
    wrapf,
)
from webpcompressor.logger import Logger, OperationLogger, ProgressLogger, format_duration

_CANVAS_RE = re.compile(r"Canvas size:\s*([+-]?\d+)\s*x\s*([+-]?\d+)")
_FRAME_COUNT_RE = re.compile(r"Number of frames:\s*([+-]?\d+)")
_MIN_FRAME_FIELDS = 9
_MILLISECOND = timedelta(milliseconds=1)


def format_file_size(size: int) -> str:
    """Human-readable size using binary units."""
    unit = 1024
    if size < unit:
        return f"{size} B"
    div, exp = unit, 0
    n = size // unit
    while n >= unit:
        div *= unit
        exp += 1
        n //= unit
    return f"{size / div:.1f} {'KMGTPE'[exp]}B"


def _atoi(text: str) -> int:
    try:
        return int(text)
    except ValueError:
        return 0


def _millis(duration: timedelta) -> int:
    return int(duration / _MILLISECOND)


class WebPService:
    """Compresses animated WebP files with the external webpmux and cwebp tools."""

    def __init__(
        self,
        config: Config,
        tool_executor: ToolExecutor,
        file_manager: FileManager,
        logger: Logger,
    ) -> None:
        self.config = config
        self.tool_executor = tool_executor
        self.file_manager = file_manager
        self.logger = logger

    def compress_animation(
        self, input_path: str, output_path: str, config: CompressionConfig
    ) -> CompressResult:
        """Run the whole pipeline and return size and timing figures."""
        op_logger = (
            OperationLogger(self.logger, "WebP动画压缩")
            .with_context("input", input_path)
            .with_context("output", output_path)
            .with_context("quality", config.quality)
            .with_context("parallel", config.enable_parallel)
        )
        op_logger.start()
        start = time.monotonic()
        try:
            result = self._compress(input_path, output_path, config, start)
        except Exception as exc:
            op_logger.error(exc)
            raise
        op_logger.success()
        self.logger.info(
            "压缩完成",
            original_size=format_file_size(result.original_size),
            compressed_size=format_file_size(result.compressed_size),
            compression_ratio=f"{result.compression_ratio:.1f}%",
            frames=result.frames_processed,
            duration=format_duration(result.processing_time.total_seconds()),
            parallel_workers=result.parallel_workers,
        )
        return result

    def _compress(
        self, input_path: str, output_path: str, config: CompressionConfig, start: float
    ) -> CompressResult:
        self.validate_input(input_path, output_path, config)

        try:
            original_size = self.file_manager.get_file_size(input_path)
        except Exception as exc:
            raise wrap(exc, ErrorType.IO, "GET_FILE_SIZE", "获取文件大小失败") from exc

        anim_info = self.parse_animation(input_path)

        try:
            temp_dir = self.file_manager.create_temp_dir("webp_compress")
        except Exception as exc:
            raise wrap(exc, ErrorType.IO, "CREATE_TEMP_DIR", "创建临时目录失败") from exc

        try:
            self.extract_frames(input_path, temp_dir, anim_info.frames)
            self.compress_frames(anim_info.frames, config)
            self.assemble_animation(anim_info.frames, output_path)
        finally:
            try:
                self.file_manager.cleanup_temp_dir(temp_dir)
            except Exception as exc:  # noqa: BLE001 - cleanup failure must not mask the result
                self.logger.warn("清理临时目录失败", path=temp_dir, error=exc)

        try:
            compressed_size = self.file_manager.get_file_size(output_path)
        except Exception as exc:  # noqa: BLE001 - a missing size is reported as zero
            self.logger.warn("获取压缩后文件大小失败", error=exc)
            compressed_size = 0

        frame_total = len(anim_info.frames)
        parallel_workers = 1
        if config.enable_parallel and frame_total > 1:
            parallel_workers = min(self._max_workers(config), frame_total)

        result = CompressResult(
            original_size=original_size,
            compressed_size=compressed_size,
            processing_time=timedelta(seconds=time.monotonic() - start),
            frames_processed=frame_total,
            parallel_workers=parallel_workers,
        )
        result.calculate_compression_ratio()
        return result

    def _max_workers(self, config: CompressionConfig) -> int:
        if config.max_concurrency > 0:
            return config.max_concurrency
        return self.config.app.max_concurrency

    def parse_animation(self, input_path: str) -> AnimationInfo:
        """Read canvas and frame data from `webpmux -info`."""
        self.logger.debug("开始解析动画信息", file=input_path)
        try:
            output = self.tool_executor.execute_command_with_output("webpmux", "-info", input_path)
        except Exception as exc:
            raise wrap(exc, ErrorType.EXECUTION, "PARSE_ANIMATION", "执行webpmux失败") from exc
        return self._parse_webpmux_output(output)

    def _parse_webpmux_output(self, output: str) -> AnimationInfo:
        info = AnimationInfo()
        reading = False
        for raw in output.splitlines():
            line = raw.strip()

            if line.startswith("Canvas size:"):
                if match := _CANVAS_RE.match(line):
                    info.width, info.height = int(match.group(1)), int(match.group(2))
                else:
                    self.logger.warn("解析画布大小失败", line=line)
                continue

            if line.startswith("Number of frames:"):
                if match := _FRAME_COUNT_RE.match(line):
                    info.frame_count = int(match.group(1))
                else:
                    self.logger.warn("解析帧数失败", line=line)
                continue

            if line.startswith("No.") and "duration" in line:
                reading = True
                continue

            if reading:
                if not line:
                    break
                try:
                    frame = self._parse_frame_line(line)
                except ValueError as exc:
                    self.logger.warn("解析帧信息失败", line=line, error=exc)
                    continue
                info.frames.append(frame)

        if not info.frames:
            raise new_error(ErrorType.VALIDATION, "NO_FRAMES", "未能解析到任何帧")

        self.logger.debug(
            "解析动画信息成功", width=info.width, height=info.height, frames=len(info.frames)
        )
        return info

    @staticmethod
    def _parse_frame_line(line: str) -> FrameInfo:
        fields = line.split()
        if len(fields) < _MIN_FRAME_FIELDS:
            raise ValueError(f"字段数量不足: {len(fields)}")
        index_text = fields[0][:-1] if fields[0].endswith(":") else fields[0]
        return FrameInfo(
            index=_atoi(index_text),
            x=_atoi(fields[4]),
            y=_atoi(fields[5]),
            duration=timedelta(milliseconds=_atoi(fields[6])),
            dispose=DisposeMethod.BACKGROUND if fields[7] == "background" else DisposeMethod.NONE,
            blend=BlendMethod.YES if fields[8] == "yes" else BlendMethod.NO,
        )

    def extract_frames(self, input_path: str, output_dir: str, frames: list[FrameInfo]) -> None:
        """Write each frame to output_dir and record its path on the frame."""
        self.logger.info("开始提取帧", total_frames=len(frames))
        progress = ProgressLogger(self.logger, len(frames), "提取帧")

        for done, frame in enumerate(frames, start=1):
            frame_output = os.path.join(output_dir, f"frame_{frame.index}.webp")
            try:
                self.tool_executor.execute_command(
                    "webpmux", "-get", "frame", str(frame.index), "-o", frame_output, input_path
                )
            except Exception as exc:
                raise wrapf(
                    exc, ErrorType.EXECUTION, "EXTRACT_FRAME", "提取第%d帧失败", frame.index
                ) from exc

            if not self.file_manager.file_exists(frame_output):
                raise new_error(
                    ErrorType.EXECUTION,
                    "FRAME_NOT_CREATED",
                    f"第{frame.index}帧文件未成功创建: {frame_output}",
                )

            frame.path = frame_output
            self.logger.debug("提取帧成功", index=frame.index, output=frame_output)
            progress.update(done)

        progress.finish()

    def compress_frames(self, frames: list[FrameInfo], config: CompressionConfig) -> None:
        """Re-encode every frame, in parallel when enabled and worthwhile."""
        if config.enable_parallel and len(frames) > 1:
            self.compress_frames_parallel(frames, config)
        else:
            self._compress_frames_sequential(frames, config)

    def compress_frames_parallel(self, frames: list[FrameInfo], config: CompressionConfig) -> None:
        """Re-encode frames on a worker pool; raises the first error encountered."""
        self.logger.info(
            "开始并行压缩帧",
            total_frames=len(frames),
            quality=config.quality,
            max_concurrency=config.max_concurrency,
        )
        if not frames:
            self.logger.info("并行压缩完成", workers=0, frames=0)
            return

        max_workers = min(self._max_workers(config), len(frames))
        pool = WorkerPool(max_workers)
        pool.start(lambda frame: self._compress_frame(frame, config))
        for frame in frames:
            pool.submit(frame)
        pool.close()
        errors = pool.wait()

        if errors:
            self.logger.error("并行压缩出现错误", error_count=len(errors))
            raise errors[0]

        self.logger.info("并行压缩完成", workers=max_workers, frames=len(frames))

    def _compress_frames_sequential(self, frames: list[FrameInfo], config: CompressionConfig) -> None:
        self.logger.info("开始顺序压缩帧", total_frames=len(frames), quality=config.quality)
        progress = ProgressLogger(self.logger, len(frames), "压缩帧")
        for done, frame in enumerate(frames, start=1):
            self._compress_frame(frame, config)
            progress.update(done)
        progress.finish()

    def _compress_frame(self, frame: FrameInfo, config: CompressionConfig) -> None:
        if not self.file_manager.file_exists(frame.path):
            raise new_error(
                ErrorType.IO, "INPUT_FRAME_NOT_FOUND", f"输入帧文件不存在: {frame.path}"
            )

        compressed_path = frame.path.replace("frame_", "frame_compressed_", 1)
        args = self.build_compression_args(config, frame.path, compressed_path)
        try:
            self.tool_executor.execute_command("cwebp", *args)
        except Exception as exc:
            raise wrapf(
                exc, ErrorType.EXECUTION, "COMPRESS_FRAME", "压缩第%d帧失败", frame.index
            ) from exc

        if not self.file_manager.file_exists(compressed_path):
            raise new_error(
                ErrorType.EXECUTION,
                "COMPRESSED_FRAME_NOT_CREATED",
                f"第{frame.index}帧压缩文件未成功创建: {compressed_path}",
            )

        frame.path = compressed_path
        self.logger.debug("压缩帧成功", index=frame.index, output=compressed_path)

    def assemble_animation(self, frames: list[FrameInfo], output_path: str) -> None:
        """Combine the frame files into an animation at output_path."""
        self.logger.info("开始重新组装动画", output=output_path)

        output_dir = os.path.dirname(output_path)
        if output_dir not in ("", "."):
            try:
                os.makedirs(output_dir, exist_ok=True)
            except OSError as exc:
                raise wrap(
                    exc, ErrorType.IO, "CREATE_OUTPUT_DIR", f"创建输出目录失败: {output_dir}"
                ) from exc
            self.logger.debug("创建输出目录", dir=output_dir)

        for frame in frames:
            if not self.file_manager.file_exists(frame.path):
                raise new_error(
                    ErrorType.IO,
                    "FRAME_FILE_NOT_FOUND",
                    f"帧文件不存在: {frame.path} (索引: {frame.index})",
                )
            try:
                size = self.file_manager.get_file_size(frame.path)
            except (AppError, OSError) as exc:
                self.logger.warn("无法获取帧文件大小", file=frame.path, error=exc)
                continue
            if size == 0:
                raise new_error(
                    ErrorType.IO,
                    "EMPTY_FRAME_FILE",
                    f"帧文件为空: {frame.path} (索引: {frame.index})",
                )
            self.logger.debug("帧文件验证通过", index=frame.index, path=frame.path, size=size)

        args: list[str] = []
        for frame in frames:
            blend = "+b" if frame.blend == BlendMethod.YES else "-b"
            duration_ms = _millis(frame.duration)
            params = f"+{duration_ms}+{frame.x}+{frame.y}+{int(frame.dispose)}{blend}"
            args.extend(["-frame", frame.path, params])
            self.logger.debug(
                "添加帧参数",
                index=frame.index,
                path=frame.path,
                frame_params=params,
                duration_ms=duration_ms,
                x=frame.x,
                y=frame.y,
                dispose=int(frame.dispose),
                blend=blend,
            )
        args.extend(["-loop", "0", "-o", output_path])

        self.logger.info("执行webpmux命令", args=" ".join(args), total_frames=len(frames))
        try:
            self.tool_executor.execute_command("webpmux", *args)
        except Exception as exc:
            raise wrap(exc, ErrorType.EXECUTION, "ASSEMBLE_ANIMATION", "重新组装动画失败") from exc

    def build_compression_args(
        self, config: CompressionConfig, input_path: str, output_path: str
    ) -> list[str]:
        """Command-line arguments for cwebp."""
        args = [
            "-q", str(config.quality),
            "-m", str(config.method),
            "-preset", config.preset,
            "-mt",
            "-f", str(config.filter_strength),
            "-sharpness", "0",
            "-sns", "100",
            "-segments", "4",
            "-pass", "10",
            "-alpha_q", str(config.alpha_quality),
            "-size", "0",
            "-metadata", "none",
            input_path,
            "-o", output_path,
        ]
        if config.lossless:
            args.insert(0, "-lossless")
        return args

    def validate_input(self, input_path: str, output_path: str, config: CompressionConfig) -> None:
        """Raise if the input is missing or too large, or the quality is out of range."""
        if not self.file_manager.file_exists(input_path):
            raise file_not_found().with_context("file", input_path)

        try:
            size = self.file_manager.get_file_size(input_path)
        except (AppError, OSError):
            size = None
        limit = self.config.advanced.optimization_rules.max_file_size
        if size is not None and size > limit:
            raise new_error(
                ErrorType.VALIDATION,
                "FILE_TOO_LARGE",
                f"文件大小超过限制: {format_file_size(size)} > {format_file_size(limit)}",
            )

        if not 0 <= config.quality <= 100:
            raise invalid_quality().with_context("quality", config.quality)