import os

import pytest

from webpcompressor.config import Config, default_config


def test_default_values_from_source():
    cfg = default_config()
    assert cfg.app.version == "2.0.0"
    assert cfg.app.default_quality == 75
    assert cfg.tools.command_timeout == 300
    assert cfg.processing.default_preset == "photo"
    assert cfg.logging.level == "info"
    assert cfg.advanced.optimization_rules.max_file_size == 100 * 1024 * 1024


def test_default_config_is_valid():
    default_config().validate()
    assert default_config() == Config()


def test_default_concurrency_matches_cpu_count():
    cfg = default_config()
    assert cfg.app.max_concurrency == (os.cpu_count() or 1)
    assert cfg.processing.max_workers == cfg.app.max_concurrency


def test_empty_environment_changes_nothing():
    cfg = default_config()
    cfg.load_from_env({})
    assert cfg == default_config()


def test_max_concurrency_from_env_sets_both_fields():
    cfg = default_config()
    cfg.load_from_env({"WEBP_MAX_CONCURRENCY": "8"})
    assert cfg.app.max_concurrency == 8
    assert cfg.processing.max_workers == 8


@pytest.mark.parametrize("value", ["0", "-3", "abc", " 8", "8.5"])
def test_invalid_max_concurrency_is_ignored(value):
    cfg = default_config()
    cfg.load_from_env({"WEBP_MAX_CONCURRENCY": value})
    assert cfg.app.max_concurrency == default_config().app.max_concurrency


def test_default_quality_from_env():
    cfg = default_config()
    cfg.load_from_env({"WEBP_DEFAULT_QUALITY": "40"})
    assert cfg.app.default_quality == 40
    cfg.load_from_env({"WEBP_DEFAULT_QUALITY": "101"})
    assert cfg.app.default_quality == 40


def test_string_settings_from_env(tmp_path):
    log_file = str(tmp_path / "app.log")
    cfg = default_config()
    cfg.load_from_env(
        {
            "WEBP_TOOLS_PATH": str(tmp_path),
            "WEBP_DEFAULT_PRESET": "drawing",
            "WEBP_LOG_LEVEL": "debug",
            "WEBP_LOG_FILE": log_file,
            "WEBP_COMMAND_TIMEOUT": "60",
            "WEBP_MAX_MEMORY": "2048",
        }
    )
    assert cfg.tools.tools_path == str(tmp_path)
    assert cfg.processing.default_preset == "drawing"
    assert cfg.logging.level == "debug"
    assert cfg.logging.output_file == log_file
    assert cfg.tools.command_timeout == 60
    assert cfg.advanced.performance.max_memory_usage == 2048
    cfg.validate()


@pytest.mark.parametrize("value, expected", [("TRUE", True), ("true", True), ("no", False), ("1", False)])
def test_boolean_flags_from_env(value, expected):
    cfg = default_config()
    cfg.load_from_env({"WEBP_ENABLE_PARALLEL": value, "WEBP_PRESERVE_METADATA": value})
    assert cfg.processing.enable_parallel is expected
    assert cfg.processing.preserve_metadata is expected


def test_load_from_process_environment(monkeypatch):
    monkeypatch.setenv("WEBP_DEFAULT_QUALITY", "33")
    cfg = default_config()
    cfg.load_from_env()
    assert cfg.app.default_quality == 33


def test_invalid_log_level_from_env_fails_validation():
    cfg = default_config()
    cfg.load_from_env({"WEBP_LOG_LEVEL": "verbose"})
    with pytest.raises(ValueError, match="无效的日志级别: verbose"):
        cfg.validate()


@pytest.mark.parametrize(
    "mutate, pattern",
    [
        (lambda c: setattr(c.app, "default_quality", -1), "默认质量"),
        (lambda c: setattr(c.app, "default_quality", 101), "默认质量"),
        (lambda c: setattr(c.app, "max_concurrency", 0), "最大并发数"),
        (lambda c: setattr(c.tools, "tools_path", ""), "工具路径不能为空"),
        (lambda c: setattr(c.tools, "command_timeout", 0), "命令超时时间"),
        (lambda c: setattr(c.processing, "default_preset", "bogus"), "无效的默认预设: bogus"),
    ],
)
def test_validate_rejects_bad_values(mutate, pattern):
    cfg = default_config()
    mutate(cfg)
    with pytest.raises(ValueError, match=pattern):
        cfg.validate()


def test_compression_presets():
    cfg = default_config()
    quality = cfg.get_compression_preset("quality")
    assert quality.quality == 90
    assert quality.passes == 6
    assert quality.segments == 4
    assert cfg.get_compression_preset("lossless").lossless is True
    assert cfg.get_compression_preset("web").target_size == 512 * 1024
    assert cfg.get_compression_preset("missing") is None


def test_quality_profiles_are_ordered_ranges():
    cfg = default_config()
    for name in ("low", "medium", "high", "premium"):
        profile = cfg.get_quality_profile(name)
        assert 0 <= profile.min_quality < profile.max_quality <= 100
    assert cfg.get_quality_profile("premium").max_quality == 100
    assert cfg.get_quality_profile("missing") is None


def test_is_parallel_enabled():
    cfg = default_config()
    cfg.processing.enable_parallel = True
    cfg.processing.max_workers = 1
    assert cfg.is_parallel_enabled() is False
    cfg.processing.max_workers = 2
    assert cfg.is_parallel_enabled() is True
    cfg.processing.enable_parallel = False
    assert cfg.is_parallel_enabled() is False


def test_effective_workers_capped_by_tasks():
    cfg = default_config()
    cfg.processing.max_workers = 4
    assert cfg.get_effective_workers(2) == 2
    assert cfg.get_effective_workers(10) == 4


def test_effective_workers_falls_back_to_cpu_count():
    cfg = default_config()
    cfg.processing.max_workers = 0
    assert cfg.get_effective_workers(10_000) == (os.cpu_count() or 1)


def test_tool_path_explicit_override():
    cfg = default_config()
    cfg.tools.tool_paths["webpmux"] = "custom/webpmux-bin"
    assert cfg.get_tool_path("webpmux") == "custom/webpmux-bin"


def test_tool_path_joined_with_tools_dir(tmp_path):
    cfg = default_config()
    cfg.tools.tools_path = str(tmp_path)
    path = cfg.get_tool_path("cwebp")
    assert os.path.dirname(path) == str(tmp_path)
    assert os.path.basename(path).startswith("cwebp")


def test_tool_path_uses_configured_names():
    cfg = default_config()
    cfg.tools.dwebp_path = "mydwebp"
    assert os.path.basename(cfg.get_tool_path("dwebp")).startswith("mydwebp")
    assert os.path.basename(cfg.get_tool_path("gif2webp")).startswith("gif2webp")