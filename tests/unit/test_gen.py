"""Tests for the gen.py build shortcut."""

import pytest

from gen import build_argv


class TestBuildArgv:
    def test_no_arguments(self) -> None:
        assert build_argv([]) == ["build"]

    @pytest.mark.parametrize("option", ["--config", "-c"])
    def test_config_moves_before_build(self, option) -> None:
        """-c 和 --config 都属于全局选项."""
        assert build_argv([option, "x.json", "--env", "development"]) == [
            option, "x.json", "build", "--env", "development",
        ]

    def test_config_with_equals(self) -> None:
        assert build_argv(["--env", "production", "--config=x.json"]) == [
            "--config=x.json", "build", "--env", "production",
        ]

    @pytest.mark.parametrize("option", ["--verbose", "-v"])
    def test_verbose(self, option) -> None:
        assert build_argv(["--env", "development", option]) == [
            option, "build", "--env", "development",
        ]
