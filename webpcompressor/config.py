"""Application configuration: defaults, environment overrides and validation."""

from __future__ import annotations

import os
import re
import sys
from collections.abc import Mapping
from dataclasses import dataclass, field

_INT_PATTERN = re.compile(r"[+-]?[0-9]+")

VALID_LOG_LEVELS = ("debug", "info", "warn", "error")
VALID_PRESETS = ("default", "photo", "picture", "drawing", "icon", "text")


def _cpu_count() -> int:
    return os.cpu_count() or 1


def _parse_int(value: str) -> int | None:
    if _INT_PATTERN.fullmatch(value):
        return int(value)
    return None


@dataclass
class AppConfig:
    name: str = "WebP Compressor"
    version: str = "2.0.0"
    max_concurrency: int = field(default_factory=_cpu_count)
    temp_dir_prefix: str = "webpcompressor"
    default_quality: int = 75
    temp_dir: str = ""
    timeout: float = 300.0  # seconds


@dataclass
class ToolsConfig:
    tools_path: str = "."
    webpmux_path: str = "webpmux"
    cwebp_path: str = "cwebp"
    dwebp_path: str = "dwebp"
    command_timeout: int = 300  # seconds
    use_embedded: bool = False
    tool_paths: dict[str, str] = field(default_factory=dict)


@dataclass
class ProcessingConfig:
    enable_parallel: bool = True
    max_workers: int = field(default_factory=_cpu_count)
    chunk_size: int = 10
    preserve_metadata: bool = True
    default_preset: str = "photo"
    enable_progress_bar: bool = True
    enable_optimization: bool = True
    max_file_size: int = 100 * 1024 * 1024


@dataclass
class LoggingConfig:
    level: str = "info"
    format: str = "text"
    output_file: str = ""
    max_size: int = 10  # MB
    max_backups: int = 3
    max_age: int = 7  # days


@dataclass(frozen=True)
class CompressionPreset:
    name: str
    description: str
    quality: int
    method: int
    filter_strength: int
    preset: str
    alpha_quality: int
    lossless: bool = False
    near_lossless: int = 0
    sharpness: int = 0
    sns: int = 0
    segments: int = 0
    passes: int = 0
    target_size: int = 0


@dataclass(frozen=True)
class QualityProfile:
    name: str
    description: str
    min_quality: int
    max_quality: int
    use_case: str


@dataclass
class OptimizationRules:
    enable_auto_quality: bool = True
    max_file_size: int = 100 * 1024 * 1024
    target_size_reduction: float = 0.3
    enable_smart_preset: bool = True


@dataclass
class PerformanceConfig:
    io_buffer_size: int = 64 * 1024
    enable_memory_limit: bool = True
    max_memory_usage: int = 1024  # MB
    enable_cpu_throttling: bool = False
    cpu_usage_limit: int = 80


def _default_compression_presets() -> dict[str, CompressionPreset]:
    return {
        "fast": CompressionPreset(
            name="快速",
            description="快速压缩，适合批量处理",
            quality=60,
            method=0,
            filter_strength=60,
            preset="default",
            alpha_quality=30,
        ),
        "balanced": CompressionPreset(
            name="平衡",
            description="质量与速度平衡",
            quality=75,
            method=4,
            filter_strength=80,
            preset="photo",
            alpha_quality=50,
        ),
        "quality": CompressionPreset(
            name="高质量",
            description="最佳质量，处理时间较长",
            quality=90,
            method=6,
            filter_strength=100,
            preset="photo",
            alpha_quality=80,
            sharpness=2,
            sns=80,
            segments=4,
            passes=6,
        ),
        "lossless": CompressionPreset(
            name="无损",
            description="无损压缩，文件较大",
            quality=100,
            method=6,
            filter_strength=100,
            preset="default",
            alpha_quality=100,
            lossless=True,
        ),
        "web": CompressionPreset(
            name="网页优化",
            description="适合网页使用的优化设置",
            quality=70,
            method=4,
            filter_strength=75,
            preset="default",
            alpha_quality=40,
            target_size=512 * 1024,
        ),
    }


def _default_quality_profiles() -> dict[str, QualityProfile]:
    return {
        "low": QualityProfile("低质量", "高压缩，适合网络传输", 10, 40, "network"),
        "medium": QualityProfile("中等质量", "平衡压缩，日常使用", 40, 70, "general"),
        "high": QualityProfile("高质量", "低压缩，保持细节", 70, 90, "archive"),
        "premium": QualityProfile("顶级质量", "最佳质量，专业用途", 90, 100, "professional"),
    }


@dataclass
class AdvancedConfig:
    compression_presets: dict[str, CompressionPreset] = field(default_factory=_default_compression_presets)
    quality_profiles: dict[str, QualityProfile] = field(default_factory=_default_quality_profiles)
    optimization_rules: OptimizationRules = field(default_factory=OptimizationRules)
    performance: PerformanceConfig = field(default_factory=PerformanceConfig)


@dataclass
class Config:
    """Full application configuration."""

    app: AppConfig = field(default_factory=AppConfig)
    tools: ToolsConfig = field(default_factory=ToolsConfig)
    processing: ProcessingConfig = field(default_factory=ProcessingConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    advanced: AdvancedConfig = field(default_factory=AdvancedConfig)

    def load_from_env(self, environ: Mapping[str, str] | None = None) -> None:
        """Override settings from WEBP_* environment variables."""
        env = os.environ if environ is None else environ

        def get(name: str) -> str:
            return env.get(name, "")

        if val := get("WEBP_MAX_CONCURRENCY"):
            num = _parse_int(val)
            if num is not None and num > 0:
                self.app.max_concurrency = num
                self.processing.max_workers = num

        if val := get("WEBP_DEFAULT_QUALITY"):
            num = _parse_int(val)
            if num is not None and 0 <= num <= 100:
                self.app.default_quality = num

        if val := get("WEBP_TOOLS_PATH"):
            self.tools.tools_path = val

        if val := get("WEBP_COMMAND_TIMEOUT"):
            num = _parse_int(val)
            if num is not None and num > 0:
                self.tools.command_timeout = num

        if val := get("WEBP_ENABLE_PARALLEL"):
            self.processing.enable_parallel = val.lower() == "true"

        if val := get("WEBP_PRESERVE_METADATA"):
            self.processing.preserve_metadata = val.lower() == "true"

        if val := get("WEBP_DEFAULT_PRESET"):
            self.processing.default_preset = val

        if val := get("WEBP_LOG_LEVEL"):
            self.logging.level = val

        if val := get("WEBP_LOG_FILE"):
            self.logging.output_file = val

        if val := get("WEBP_MAX_MEMORY"):
            num = _parse_int(val)
            if num is not None and num > 0:
                self.advanced.performance.max_memory_usage = num

    def validate(self) -> None:
        """Raise ValueError if any setting is out of range."""
        if not 0 <= self.app.default_quality <= 100:
            raise ValueError(f"默认质量必须在0-100之间，当前值: {self.app.default_quality}")
        if self.app.max_concurrency <= 0:
            raise ValueError(f"最大并发数必须大于0，当前值: {self.app.max_concurrency}")
        if not self.tools.tools_path:
            raise ValueError("工具路径不能为空")
        if self.tools.command_timeout <= 0:
            raise ValueError(f"命令超时时间必须大于0，当前值: {self.tools.command_timeout}")
        if self.logging.level not in VALID_LOG_LEVELS:
            raise ValueError(
                f"无效的日志级别: {self.logging.level}，支持的级别: [{' '.join(VALID_LOG_LEVELS)}]"
            )
        if self.processing.default_preset not in VALID_PRESETS:
            raise ValueError(
                f"无效的默认预设: {self.processing.default_preset}，支持的预设: [{' '.join(VALID_PRESETS)}]"
            )

    def get_compression_preset(self, name: str) -> CompressionPreset | None:
        """Return the named compression preset, or None."""
        return self.advanced.compression_presets.get(name)

    def get_quality_profile(self, name: str) -> QualityProfile | None:
        """Return the named quality profile, or None."""
        return self.advanced.quality_profiles.get(name)

    def is_parallel_enabled(self) -> bool:
        """Parallel processing is on and more than one worker is allowed."""
        return self.processing.enable_parallel and self.processing.max_workers > 1

    def get_effective_workers(self, task_count: int) -> int:
        """Number of workers to use for task_count tasks."""
        max_workers = self.processing.max_workers
        if max_workers <= 0:
            max_workers = _cpu_count()
        return min(task_count, max_workers)

    def get_tool_path(self, tool_name: str) -> str:
        """Resolve the executable path for a tool name."""
        tools = self.tools
        if tool_name in tools.tool_paths:
            return tools.tool_paths[tool_name]
        path = {
            "webpmux": tools.webpmux_path,
            "cwebp": tools.cwebp_path,
            "dwebp": tools.dwebp_path,
        }.get(tool_name, tool_name)
        if sys.platform == "win32" and not os.path.splitext(path)[1]:
            path += ".exe"
        if (
            not os.path.isabs(path)
            and not os.path.dirname(path)
            and tools.tools_path not in ("", ".")
        ):
            path = os.path.join(tools.tools_path, path)
        return path


def default_config() -> Config:
    """Return a configuration with default values."""
    return Config()