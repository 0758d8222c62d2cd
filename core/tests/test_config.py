"""Tests for settings loading."""

from __future__ import annotations

import json

import pytest

from promptsandbox.config import RerunPolicy, Settings, load_settings, read_config_file


class TestLoadSettings:

    def test_defaults(self, tmp_path):
        settings = load_settings(tmp_path / "missing.json", environ={})
        assert settings == Settings()
        assert settings.rerun_policy is RerunPolicy.FULL
        assert settings.max_concurrency is None

    def test_file_values(self, tmp_path):
        path = tmp_path / "configuration.json"
        path.write_text(json.dumps({"rerun_policy": "incremental", "max_concurrency": 2}))

        settings = load_settings(path, environ={})

        assert settings.rerun_policy is RerunPolicy.INCREMENTAL
        assert settings.max_concurrency == 2

    def test_env_overrides_file(self, tmp_path):
        path = tmp_path / "configuration.json"
        path.write_text(json.dumps({"max_tokens": 100, "max_concurrency": 2}))

        settings = load_settings(path, environ={
            "PROMPTSANDBOX_MAX_TOKENS": "512",
            "PROMPTSANDBOX_MAX_CONCURRENCY": "none",
            "PROMPTSANDBOX_SKIP_UNRESOLVED_PROMPTS": "false",
        })

        assert settings.max_tokens == 512
        assert settings.max_concurrency is None
        assert settings.skip_unresolved_prompts is False

    def test_invalid_value(self, tmp_path):
        with pytest.raises(ValueError):
            load_settings(tmp_path / "missing.json", environ={"PROMPTSANDBOX_MAX_TOKENS": "lots"})

    def test_unreadable_file_gives_defaults(self, tmp_path):
        path = tmp_path / "configuration.json"
        path.write_text("{not json")
        assert read_config_file(path) == {}
