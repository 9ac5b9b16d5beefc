"""Typed application errors carrying a category, a code, context and a cause."""

from __future__ import annotations

import enum
import traceback
from typing import Any

_STACK_DEPTH = 32


class ErrorType(str, enum.Enum):
    """Broad category of an application error."""

    VALIDATION = "VALIDATION"
    IO = "IO"
    EXECUTION = "EXECUTION"
    CONFIGURATION = "CONFIGURATION"
    INTERNAL = "INTERNAL"
    EXTERNAL = "EXTERNAL"

    def __str__(self) -> str:
        return self.value


def _stack_trace() -> str:
    # Drop this helper and AppError.__init__ from the captured stack.
    frames = traceback.extract_stack()[:-2][-_STACK_DEPTH:]
    return "".join(f"{frame.filename}:{frame.lineno} {frame.name}\n" for frame in reversed(frames))


class AppError(Exception):
    """An error with a type, a code, a message and an optional cause."""

    def __init__(
        self,
        error_type: ErrorType,
        code: str,
        message: str,
        *,
        cause: BaseException | None = None,
        details: str = "",
        context: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.type = error_type
        self.code = code
        self.message = message
        self.details = details
        self.cause = cause
        self.context: dict[str, Any] = dict(context) if context else {}
        self.stack_trace = _stack_trace()
        if cause is not None:
            self.__cause__ = cause

    def __str__(self) -> str:
        prefix = f"[{self.type.value}:{self.code}] {self.message}"
        if self.cause is not None:
            return f"{prefix}: {self.cause}"
        return prefix

    def __repr__(self) -> str:
        return f"AppError({self.type.value!r}, {self.code!r}, {self.message!r})"

    def with_context(self, key: str, value: Any) -> AppError:
        """Attach a context entry and return this error."""
        self.context[key] = value
        return self

    def with_details(self, details: str) -> AppError:
        """Set the detail text and return this error."""
        self.details = details
        return self


def new_error(error_type: ErrorType, code: str, message: str) -> AppError:
    """Create a new application error."""
    return AppError(error_type, code, message)


def wrap(err: BaseException | None, error_type: ErrorType, code: str, message: str) -> AppError:
    """Wrap an existing error as the cause of a new application error."""
    return AppError(error_type, code, message, cause=err)


def wrapf(err: BaseException | None, error_type: ErrorType, code: str, fmt: str, *args: Any) -> AppError:
    """Wrap an error, building the message from a %-style format string."""
    message = fmt % args if args else fmt
    return AppError(error_type, code, message, cause=err)


def is_type(err: BaseException | None, error_type: ErrorType) -> bool:
    """Tell whether err is an application error of the given type."""
    return isinstance(err, AppError) and err.type == error_type


def is_code(err: BaseException | None, code: str) -> bool:
    """Tell whether err is an application error with the given code."""
    return isinstance(err, AppError) and err.code == code


def get_type(err: BaseException | None) -> ErrorType:
    """Return the error's type, INTERNAL for foreign errors."""
    if isinstance(err, AppError):
        return err.type
    return ErrorType.INTERNAL


def get_code(err: BaseException | None) -> str:
    """Return the error's code, UNKNOWN for foreign errors."""
    if isinstance(err, AppError):
        return err.code
    return "UNKNOWN"


def invalid_quality() -> AppError:
    """Quality outside the 0-100 range."""
    return AppError(ErrorType.VALIDATION, "INVALID_QUALITY", "质量参数必须在0-100之间")


def invalid_input() -> AppError:
    """Invalid input parameters."""
    return AppError(ErrorType.VALIDATION, "INVALID_INPUT", "输入参数无效")


def file_not_found() -> AppError:
    """A file that does not exist."""
    return AppError(ErrorType.IO, "FILE_NOT_FOUND", "文件不存在")


def tool_not_found() -> AppError:
    """An external tool that cannot be found."""
    return AppError(ErrorType.EXECUTION, "TOOL_NOT_FOUND", "工具不存在")


def processing_failed() -> AppError:
    """Processing that failed."""
    return AppError(ErrorType.EXECUTION, "PROCESSING_FAILED", "处理失败")


def timeout_error() -> AppError:
    """An operation that timed out."""
    return AppError(ErrorType.EXECUTION, "TIMEOUT", "操作超时")