"""Command-line entry point: compress an animated WebP at a given quality."""

from __future__ import annotations

import os
import re
import sys
from collections.abc import Sequence

from webpcompressor.config import Config, default_config
from webpcompressor.domain import CompressResult, default_compression_config
from webpcompressor.file_manager import FileManagerFactory, TempDirManager
from webpcompressor.logger import Logger, create_logger, default_logger, format_duration
from webpcompressor.service import WebPService, format_file_size
from webpcompressor.tool_executor import ToolExecutorFactory

_INT_PATTERN = re.compile(r"[+-]?[0-9]+")
_DEFAULT_PROG = "webpcompressor"


def _parse_quality(text: str) -> int:
    if not _INT_PATTERN.fullmatch(text):
        raise ValueError(f"无效的质量参数: {text}")
    return int(text)


def _program_name() -> str:
    return os.path.basename(sys.argv[0]) if sys.argv and sys.argv[0] else _DEFAULT_PROG


class Application:
    """Wires configuration, logging and the compression service together."""

    def __init__(
        self,
        config: Config,
        logger: Logger,
        webp_service: WebPService,
        temp_dir_manager: TempDirManager,
        prog: str = _DEFAULT_PROG,
    ) -> None:
        self.config = config
        self.logger = logger
        self.webp_service = webp_service
        self.temp_dir_manager = temp_dir_manager
        self.prog = prog

    def run(self, args: Sequence[str]) -> CompressResult:
        """Compress using `<input> <quality> <output>`; raises on bad arguments or failure."""
        try:
            return self._run(list(args))
        finally:
            self.temp_dir_manager.cleanup_all()

    def _run(self, args: list[str]) -> CompressResult:
        if len(args) < 3:
            self._show_usage()
            raise ValueError("参数不足")

        input_file, quality_text, output_file = args[0], args[1], args[2]
        quality = _parse_quality(quality_text)
        compression_config = default_compression_config(quality)

        self.logger.info(
            "开始WebP压缩",
            input=input_file,
            output=output_file,
            quality=quality,
            version=self.config.app.version,
        )

        try:
            result = self.webp_service.compress_animation(input_file, output_file, compression_config)
        except Exception as exc:
            self.logger.error("压缩失败", error=exc)
            raise

        self.logger.info(
            "压缩成功",
            duration=format_duration(result.processing_time.total_seconds()),
            original_size=result.original_size,
            compressed_size=result.compressed_size,
            compression_ratio=f"{result.compression_ratio:.1f}%",
            frames_processed=result.frames_processed,
        )

        print("✅ 压缩完成！")
        print(
            f"📊 压缩效果: {format_file_size(result.original_size)} -> "
            f"{format_file_size(result.compressed_size)} ({result.compression_ratio:.1f}%)"
        )
        print(f"⏱️  处理时间: {format_duration(result.processing_time.total_seconds())}")
        print(f"🎞️  处理帧数: {result.frames_processed}")
        return result

    def _show_usage(self) -> None:
        version = self.config.app.version
        prog = self.prog
        print(
            f"""WebP Compressor v{version} - 高性能WebP动画压缩工具

用法: {prog} <input.webp> <quality[0-100]> <output.webp>

参数:
  input.webp    输入的WebP动画文件
  quality       压缩质量(0-100)，建议30-50获得更好的压缩效果
  output.webp   输出的压缩文件

示例:
  {prog} animation.webp 40 compressed.webp

环境变量配置:
  WEBP_LOG_LEVEL       日志级别 (debug|info|warn|error)
  WEBP_TEMP_DIR        临时目录路径
  WEBP_MAX_CONCURRENCY 最大并发数
  WEBP_TIMEOUT         操作超时时间
  WEBP_MAX_FILE_SIZE   最大文件大小限制
"""
        )


def build_application() -> Application:
    """Load configuration from the environment and assemble the application."""
    config = default_config()
    config.load_from_env()
    try:
        config.validate()
    except ValueError as exc:
        raise ValueError(f"配置验证失败: {exc}") from exc

    try:
        logger = create_logger(config.logging)
    except OSError as exc:
        logger = default_logger()
        logger.warn("使用默认日志配置", error=exc)

    tool_factory = ToolExecutorFactory(config, logger)
    file_factory = FileManagerFactory(config, logger)

    tool_executor = tool_factory.create_executor(config.tools.use_embedded, "")
    file_manager = file_factory.create_file_manager(True)

    try:
        tool_factory.validate_tools(tool_executor)
    except Exception as exc:
        raise RuntimeError(f"工具验证失败: {exc}") from exc

    temp_dir_manager = TempDirManager(file_manager, logger)
    webp_service = WebPService(config, tool_executor, file_manager, logger)
    return Application(config, logger, webp_service, temp_dir_manager, prog=_program_name())


def main(argv: Sequence[str] | None = None) -> int:
    """Run the compressor and return the process exit status."""
    args = list(sys.argv[1:] if argv is None else argv)

    try:
        app = build_application()
    except Exception as exc:  # noqa: BLE001 - reported to the user as a failed start
        print(f"❌ 初始化失败: {exc}", file=sys.stderr)
        return 1

    try:
        app.run(args)
    except Exception as exc:  # noqa: BLE001 - reported to the user as a failed run
        print(f"❌ 运行失败: {exc}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())