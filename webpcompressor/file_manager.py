"""Local file-system access, a path-checking wrapper and temporary-directory tracking."""

from __future__ import annotations

import os
import shutil
import stat
import tempfile

from webpcompressor.config import Config
from webpcompressor.domain import FileManager
from webpcompressor.errors import AppError, ErrorType, file_not_found, new_error, wrap
from webpcompressor.logger import Logger

_TEMP_NAME_MARKERS = ("temp", "tmp", "webp")


class LocalFileManager:
    """File operations on the local file system."""

    def __init__(self, config: Config, logger: Logger) -> None:
        self.config = config
        self.logger = logger

    def create_temp_dir(self, prefix: str) -> str:
        """Create a uniquely named directory under the configured or system temp directory."""
        base_dir = self.config.app.temp_dir or tempfile.gettempdir()
        try:
            os.makedirs(base_dir, exist_ok=True)
        except OSError as exc:
            raise wrap(exc, ErrorType.IO, "CREATE_BASE_DIR", "创建基础目录失败") from exc
        try:
            temp_dir = tempfile.mkdtemp(prefix=f"{prefix}_", dir=base_dir)
        except OSError as exc:
            raise wrap(exc, ErrorType.IO, "CREATE_TEMP_DIR", "创建临时目录失败") from exc
        self.logger.debug("创建临时目录", path=temp_dir)
        return temp_dir

    def cleanup_temp_dir(self, path: str) -> None:
        """Remove a temporary directory; refuses paths that do not look temporary."""
        if not path:
            return
        if not self._is_temp_dir(path):
            self.logger.warn("拒绝删除非临时目录", path=path)
            raise new_error(ErrorType.VALIDATION, "NOT_TEMP_DIR", "拒绝删除非临时目录")
        try:
            if os.path.isdir(path) and not os.path.islink(path):
                shutil.rmtree(path)
            elif os.path.lexists(path):
                os.remove(path)
        except OSError as exc:
            self.logger.warn("清理临时目录失败", path=path, error=exc)
            raise wrap(exc, ErrorType.IO, "CLEANUP_TEMP_DIR", "清理临时目录失败") from exc
        self.logger.debug("清理临时目录成功", path=path)

    def get_file_size(self, path: str) -> int:
        """Size of a regular file in bytes."""
        try:
            info = os.stat(path)
        except FileNotFoundError as exc:
            raise file_not_found().with_context("file", path) from exc
        except OSError as exc:
            raise wrap(exc, ErrorType.IO, "GET_FILE_INFO", "获取文件信息失败") from exc
        if stat.S_ISDIR(info.st_mode):
            raise new_error(ErrorType.VALIDATION, "IS_DIRECTORY", "路径是目录而不是文件")
        return info.st_size

    def file_exists(self, path: str) -> bool:
        """True if the path exists and is not a directory."""
        try:
            info = os.stat(path)
        except (OSError, ValueError):
            return False
        return not stat.S_ISDIR(info.st_mode)

    def copy_file(self, src: str, dst: str) -> None:
        """Copy src to dst, creating the destination directory if needed."""
        if not self.file_exists(src):
            raise file_not_found().with_context("file", src)
        dst_dir = os.path.dirname(dst) or "."
        try:
            os.makedirs(dst_dir, exist_ok=True)
        except OSError as exc:
            raise wrap(exc, ErrorType.IO, "CREATE_DST_DIR", "创建目标目录失败") from exc
        try:
            shutil.copyfile(src, dst)
        except OSError as exc:
            raise wrap(exc, ErrorType.IO, "COPY_CONTENT", "复制文件内容失败") from exc
        self.logger.debug("复制文件成功", src=src, dst=dst, size=os.path.getsize(dst))

    def _is_temp_dir(self, path: str) -> bool:
        abs_path = os.path.abspath(path)
        if self.config.app.temp_dir and abs_path.startswith(os.path.abspath(self.config.app.temp_dir)):
            return True
        if abs_path.startswith(os.path.abspath(tempfile.gettempdir())):
            return True
        base = os.path.basename(path)
        return any(marker in base for marker in _TEMP_NAME_MARKERS)


class SafeFileManager:
    """Wraps a file manager with path checks and a file-size limit."""

    def __init__(self, inner: FileManager, config: Config, logger: Logger) -> None:
        self.inner = inner
        self.config = config
        self.logger = logger

    def create_temp_dir(self, prefix: str) -> str:
        """Create a temporary directory through the wrapped manager."""
        return self.inner.create_temp_dir(prefix)

    def cleanup_temp_dir(self, path: str) -> None:
        """Remove a temporary directory through the wrapped manager."""
        self.inner.cleanup_temp_dir(path)

    def file_exists(self, path: str) -> bool:
        """True if the path exists and is not a directory."""
        return self.inner.file_exists(path)

    def get_file_size(self, path: str) -> int:
        """File size after checking the path; warns when the size exceeds the limit."""
        self._validate_path(path)
        size = self.inner.get_file_size(path)
        limit = self.config.processing.max_file_size
        if size > limit:
            self.logger.warn("文件大小超过限制", file=path, size=size, limit=limit)
        return size

    def copy_file(self, src: str, dst: str) -> None:
        """Copy after checking both paths and the source size."""
        try:
            self._validate_path(src)
        except AppError as exc:
            raise wrap(exc, ErrorType.VALIDATION, "INVALID_SRC_PATH", "源路径无效") from exc
        try:
            self._validate_path(dst)
        except AppError as exc:
            raise wrap(exc, ErrorType.VALIDATION, "INVALID_DST_PATH", "目标路径无效") from exc
        size = self.inner.get_file_size(src)
        if size > self.config.processing.max_file_size:
            raise new_error(ErrorType.VALIDATION, "FILE_TOO_LARGE", "文件大小超过复制限制")
        self.inner.copy_file(src, dst)

    def _validate_path(self, path: str) -> None:
        clean = os.path.normpath(path) if path else "."
        if ".." in clean:
            raise new_error(ErrorType.VALIDATION, "PATH_TRAVERSAL", "检测到路径遍历攻击")
        if os.path.isabs(clean):
            self.logger.debug("使用绝对路径", path=clean)


class FileManagerFactory:
    """Builds file managers from configuration."""

    def __init__(self, config: Config, logger: Logger) -> None:
        self.config = config
        self.logger = logger

    def create_file_manager(self, safe: bool) -> FileManager:
        """A local file manager, wrapped with safety checks when safe is true."""
        base = LocalFileManager(self.config, self.logger)
        if safe:
            self.logger.debug("创建安全文件管理器")
            return SafeFileManager(base, self.config, self.logger)
        self.logger.debug("创建标准文件管理器")
        return base


class TempDirManager:
    """Remembers created temporary directories and removes them all at once."""

    def __init__(self, file_manager: FileManager, logger: Logger) -> None:
        self.file_manager = file_manager
        self.logger = logger
        self.temp_dirs: list[str] = []

    def __enter__(self) -> TempDirManager:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.cleanup_all()

    def create_temp_dir(self, prefix: str) -> str:
        """Create a temporary directory and record it."""
        directory = self.file_manager.create_temp_dir(prefix)
        self.temp_dirs.append(directory)
        self.logger.debug("记录临时目录", path=directory, total=len(self.temp_dirs))
        return directory

    def cleanup_all(self) -> None:
        """Remove every recorded directory, logging failures, and forget them."""
        total = len(self.temp_dirs)
        self.logger.info("开始清理所有临时目录", count=total)
        cleaned = 0
        for directory in self.temp_dirs:
            try:
                self.file_manager.cleanup_temp_dir(directory)
            except AppError as exc:
                self.logger.warn("清理临时目录失败", path=directory, error=exc)
            else:
                cleaned += 1
        self.logger.info("临时目录清理完成", total=total, cleaned=cleaned, failed=total - cleaned)
        self.temp_dirs.clear()