"""Running the external WebP command-line tools."""

from __future__ import annotations

import os
import shutil
import subprocess
import time

from webpcompressor.config import Config
from webpcompressor.domain import ToolExecutor
from webpcompressor.errors import ErrorType, new_error, wrap
from webpcompressor.logger import Logger, format_duration

REQUIRED_TOOLS = ("webpmux", "cwebp")


def _working_dir() -> str | None:
    try:
        return os.getcwd()
    except OSError:
        return None


class LocalToolExecutor:
    """Runs tools found on disk or on the PATH."""

    def __init__(self, config: Config, logger: Logger) -> None:
        self.config = config
        self.logger = logger
        self.tool_paths: dict[str, str] = dict(config.tools.tool_paths)
        for tool_name in self.tool_paths:
            if self.is_tool_available(tool_name):
                self.logger.debug("工具可用", tool=tool_name, path=self.get_tool_path(tool_name))
            else:
                self.logger.warn("工具不可用", tool=tool_name, path=self.get_tool_path(tool_name))

    def execute_command(self, tool_name: str, *args: str) -> None:
        """Run a tool, discarding its standard output."""
        self._run(tool_name, args, capture_output=False)

    def execute_command_with_output(self, tool_name: str, *args: str) -> str:
        """Run a tool and return its standard output."""
        return self._run(tool_name, args, capture_output=True)

    def get_tool_path(self, tool_name: str) -> str:
        """Executable path for a tool name."""
        if tool_name in self.tool_paths:
            return self.tool_paths[tool_name]
        return self.config.get_tool_path(tool_name)

    def is_tool_available(self, tool_name: str) -> bool:
        """True if the tool exists as a file or can be found on the PATH."""
        return self._available_at(self.get_tool_path(tool_name))

    @staticmethod
    def _available_at(tool_path: str) -> bool:
        return os.path.exists(tool_path) or shutil.which(tool_path) is not None

    def _run(self, tool_name: str, args: tuple[str, ...], *, capture_output: bool) -> str:
        tool_path = self.get_tool_path(tool_name)
        timeout = self.config.app.timeout
        self.logger.debug(
            "执行命令",
            tool=tool_name,
            path=tool_path,
            args=" ".join(args),
            timeout=format_duration(timeout),
        )
        start = time.monotonic()
        try:
            completed = subprocess.run(
                [tool_path, *args],
                stdout=subprocess.PIPE if capture_output else subprocess.DEVNULL,
                stderr=subprocess.PIPE,
                text=True,
                errors="replace",
                timeout=timeout,
                cwd=_working_dir(),
                check=False,
            )
        except subprocess.TimeoutExpired as exc:
            self.logger.error(
                "命令执行超时",
                tool=tool_name,
                timeout=format_duration(timeout),
                duration=format_duration(time.monotonic() - start),
            )
            raise wrap(exc, ErrorType.EXECUTION, "COMMAND_TIMEOUT", "命令执行超时") from exc
        except FileNotFoundError as exc:
            self.logger.error("工具不存在", tool=tool_name, path=tool_path)
            raise wrap(exc, ErrorType.EXECUTION, "TOOL_NOT_FOUND", "工具不存在") from exc
        except OSError as exc:
            self.logger.error(
                "命令执行失败",
                tool=tool_name,
                error=exc,
                duration=format_duration(time.monotonic() - start),
            )
            raise wrap(exc, ErrorType.EXECUTION, "COMMAND_FAILED", "命令执行失败") from exc

        duration = format_duration(time.monotonic() - start)
        if completed.returncode != 0:
            stderr = completed.stderr or ""
            if stderr:
                self.logger.error("命令标准错误输出", tool=tool_name, stderr=stderr)
            failure = subprocess.CalledProcessError(
                completed.returncode, completed.args, completed.stdout, completed.stderr
            )
            self.logger.error("命令执行失败", tool=tool_name, error=failure, duration=duration)
            error = wrap(failure, ErrorType.EXECUTION, "COMMAND_FAILED", "命令执行失败")
            raise error.with_details(stderr) from failure

        self.logger.debug("命令执行成功", tool=tool_name, duration=duration)
        return completed.stdout if capture_output else ""


class EmbeddedToolExecutor(LocalToolExecutor):
    """Runs tools unpacked into a directory, falling back to local tools."""

    def __init__(self, config: Config, logger: Logger, temp_dir: str) -> None:
        self.temp_dir = temp_dir
        super().__init__(config, logger)

    def get_tool_path(self, tool_name: str) -> str:
        """Path of the tool inside the unpack directory, or the local path without one."""
        if self.temp_dir:
            file_name = os.path.basename(self.config.get_tool_path(tool_name))
            return os.path.join(self.temp_dir, file_name)
        return super().get_tool_path(tool_name)

    def is_tool_available(self, tool_name: str) -> bool:
        """True if the unpacked tool exists, otherwise checks the local tool."""
        if self.temp_dir and os.path.exists(self.get_tool_path(tool_name)):
            return True
        return self._available_at(super().get_tool_path(tool_name))


class ToolExecutorFactory:
    """Builds tool executors and checks that the required tools exist."""

    def __init__(self, config: Config, logger: Logger) -> None:
        self.config = config
        self.logger = logger

    def create_executor(self, use_embedded: bool, temp_dir: str) -> ToolExecutor:
        """An embedded executor when asked for and given a directory, else a local one."""
        if use_embedded and temp_dir:
            self.logger.info("使用嵌入式工具执行器", temp_dir=temp_dir)
            return EmbeddedToolExecutor(self.config, self.logger, temp_dir)
        self.logger.info("使用本地工具执行器")
        return LocalToolExecutor(self.config, self.logger)

    def validate_tools(self, executor: ToolExecutor) -> None:
        """Raise a configuration error naming every required tool that is missing."""
        missing = [tool for tool in REQUIRED_TOOLS if not executor.is_tool_available(tool)]
        if missing:
            raise new_error(
                ErrorType.CONFIGURATION,
                "TOOLS_MISSING",
                f"缺少必需的工具: {', '.join(missing)}",
            )
        self.logger.info("所有必需工具都可用")