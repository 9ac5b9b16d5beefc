import io
import logging
import os
import sys

import pytest

from webpcompressor.config import default_config
from webpcompressor.errors import AppError, ErrorType
from webpcompressor.logger import Logger
from webpcompressor.tool_executor import (
    EmbeddedToolExecutor,
    LocalToolExecutor,
    ToolExecutorFactory,
)


def make_env(tool_paths=None):
    cfg = default_config()
    cfg.tools.tool_paths = dict(tool_paths or {})
    stream = io.StringIO()
    return cfg, Logger(stream, logging.DEBUG), stream


def test_execute_with_output_returns_stdout():
    cfg, logger, _ = make_env({"py": sys.executable})
    executor = LocalToolExecutor(cfg, logger)
    output = executor.execute_command_with_output("py", "-c", "print('hello')")
    assert output.strip() == "hello"


def test_execute_command_runs_tool(tmp_path):
    cfg, logger, stream = make_env({"py": sys.executable})
    executor = LocalToolExecutor(cfg, logger)
    target = tmp_path / "made.txt"
    executor.execute_command("py", "-c", f"open({str(target)!r}, 'w').write('x')")
    assert target.read_text() == "x"
    assert "命令执行成功" in stream.getvalue()


def test_failing_command_raises_with_stderr():
    cfg, logger, stream = make_env({"py": sys.executable})
    executor = LocalToolExecutor(cfg, logger)
    script = "import sys; sys.stderr.write('boom'); sys.exit(3)"
    with pytest.raises(AppError) as info:
        executor.execute_command_with_output("py", "-c", script)
    assert info.value.code == "COMMAND_FAILED"
    assert info.value.type == ErrorType.EXECUTION
    assert info.value.details == "boom"
    with pytest.raises(AppError) as info:
        executor.execute_command("py", "-c", script)
    assert info.value.code == "COMMAND_FAILED"
    assert "boom" in stream.getvalue()


def test_command_timeout():
    cfg, logger, _ = make_env({"py": sys.executable})
    cfg.app.timeout = 0.5
    executor = LocalToolExecutor(cfg, logger)
    with pytest.raises(AppError) as info:
        executor.execute_command("py", "-c", "import time; time.sleep(5)")
    assert info.value.code == "COMMAND_TIMEOUT"


def test_missing_tool(tmp_path):
    ghost = str(tmp_path / "no-such-tool")
    cfg, logger, stream = make_env({"ghost": ghost})
    executor = LocalToolExecutor(cfg, logger)
    assert "工具不可用" in stream.getvalue()
    assert executor.is_tool_available("ghost") is False
    with pytest.raises(AppError) as info:
        executor.execute_command("ghost")
    assert info.value.code == "TOOL_NOT_FOUND"


def test_tool_paths_and_config_fallback():
    cfg, logger, _ = make_env({"py": sys.executable})
    executor = LocalToolExecutor(cfg, logger)
    assert executor.get_tool_path("py") == sys.executable
    assert executor.is_tool_available("py") is True
    assert executor.get_tool_path("webpmux") == cfg.get_tool_path("webpmux")


def test_embedded_paths_point_into_temp_dir(tmp_path):
    cfg, logger, _ = make_env()
    executor = EmbeddedToolExecutor(cfg, logger, str(tmp_path))
    expected = os.path.join(str(tmp_path), os.path.basename(cfg.get_tool_path("cwebp")))
    assert executor.get_tool_path("cwebp") == expected


def test_embedded_availability(tmp_path):
    cfg, logger, _ = make_env()
    cfg.tools.cwebp_path = "definitely-missing-cwebp-tool"
    executor = EmbeddedToolExecutor(cfg, logger, str(tmp_path))
    assert executor.is_tool_available("cwebp") is False
    open(executor.get_tool_path("cwebp"), "wb").close()
    assert executor.is_tool_available("cwebp") is True


def test_embedded_without_dir_uses_local_path():
    cfg, logger, _ = make_env({"py": sys.executable})
    executor = EmbeddedToolExecutor(cfg, logger, "")
    assert executor.get_tool_path("py") == sys.executable
    assert executor.execute_command_with_output("py", "-c", "print(7)").strip() == "7"


def test_factory_creates_matching_executor(tmp_path):
    cfg, logger, _ = make_env()
    factory = ToolExecutorFactory(cfg, logger)
    embedded = factory.create_executor(True, str(tmp_path))
    assert os.path.dirname(embedded.get_tool_path("webpmux")) == str(tmp_path)
    local = factory.create_executor(True, "")
    assert local.get_tool_path("webpmux") == cfg.get_tool_path("webpmux")
    plain = factory.create_executor(False, str(tmp_path))
    assert plain.get_tool_path("webpmux") == cfg.get_tool_path("webpmux")


def test_validate_tools_reports_missing(tmp_path):
    cfg, logger, _ = make_env()
    cfg.tools.webpmux_path = "definitely-missing-webpmux"
    cfg.tools.cwebp_path = "definitely-missing-cwebp"
    factory = ToolExecutorFactory(cfg, logger)
    executor = factory.create_executor(True, str(tmp_path))
    with pytest.raises(AppError) as info:
        factory.validate_tools(executor)
    assert info.value.code == "TOOLS_MISSING"
    assert info.value.type == ErrorType.CONFIGURATION
    assert "webpmux" in info.value.message
    assert "cwebp" in info.value.message


def test_validate_tools_passes_when_present(tmp_path):
    cfg, logger, stream = make_env()
    factory = ToolExecutorFactory(cfg, logger)
    executor = factory.create_executor(True, str(tmp_path))
    for tool in ("webpmux", "cwebp"):
        open(executor.get_tool_path(tool), "wb").close()
    factory.validate_tools(executor)
    assert "所有必需工具都可用" in stream.getvalue()