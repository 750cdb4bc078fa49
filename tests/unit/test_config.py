"""Unit tests for settings loading and grouping."""

import pytest
from pydantic import ValidationError

from reactor.config import CleanupConfig, RuntimeConfig, Settings


def make_settings(**kwargs) -> Settings:
    return Settings(_env_file=None, **kwargs)


class TestDefaults:
    def test_defaults(self, monkeypatch):
        monkeypatch.delenv("REACTOR_LOG_LEVEL", raising=False)
        s = make_settings()

        assert s.isolation_prefix is None
        assert s.default_image == "ghcr.io/dyluth/reactor/base:latest"
        assert s.cleanup_helper_image == "alpine:latest"
        assert s.workspace_operation_timeout is None
        assert s.log_level == "INFO"
        assert s.log_format == "console"

    def test_environment_overrides(self, monkeypatch):
        monkeypatch.setenv("REACTOR_ISOLATION_PREFIX", "ci-42")
        monkeypatch.setenv("REACTOR_WORKSPACE_MAX_PARALLEL", "3")
        monkeypatch.setenv("REACTOR_VERBOSE_CLEANUP", "true")

        s = make_settings()

        assert s.isolation_prefix == "ci-42"
        assert s.workspace_max_parallel == 3
        assert s.verbose_cleanup is True


class TestValidation:
    @pytest.mark.parametrize("value", ["", "   "])
    def test_blank_prefix_is_unset(self, value):
        assert make_settings(isolation_prefix=value).isolation_prefix is None

    def test_prefix_is_stripped(self):
        assert make_settings(isolation_prefix=" run-1 ").isolation_prefix == "run-1"

    @pytest.mark.parametrize("value", ["-leading", "has space", "slash/y", "ünï"])
    def test_invalid_prefix_rejected(self, value):
        with pytest.raises(ValidationError):
            make_settings(isolation_prefix=value)

    def test_log_level_normalised(self):
        assert make_settings(log_level="debug").log_level == "DEBUG"

    def test_unknown_log_level_rejected(self):
        with pytest.raises(ValidationError):
            make_settings(log_level="chatty")

    def test_unknown_log_format_rejected(self):
        with pytest.raises(ValidationError):
            make_settings(log_format="xml")

    def test_parallelism_bounds(self):
        with pytest.raises(ValidationError):
            make_settings(workspace_max_parallel=0)


class TestGroups:
    def test_runtime_group(self):
        s = make_settings(container_start_timeout=5, workspace_max_parallel=2)
        runtime = s.runtime

        assert isinstance(runtime, RuntimeConfig)
        assert runtime.container_start_timeout == 5
        assert runtime.workspace_max_parallel == 2

    def test_cleanup_group(self):
        s = make_settings(cleanup_helper_image="busybox:1.36", verbose_cleanup=True)
        cleanup = s.cleanup

        assert isinstance(cleanup, CleanupConfig)
        assert cleanup.cleanup_helper_image == "busybox:1.36"
        assert cleanup.verbose_cleanup is True

    def test_logging_group(self, tmp_path):
        log_file = str(tmp_path / "reactor.log")
        s = make_settings(log_format="JSON", log_file=log_file)

        assert s.logging.log_format == "json"
        assert s.logging.log_file == log_file
