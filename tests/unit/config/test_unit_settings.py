# tests/unit/config/test_unit_settings.py — v2
"""Tests for config/settings.py: defaults, env overrides, validation."""

from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from pageflow.config.settings import ConfigurationError, Settings, load_settings


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    for field in Settings.model_fields:
        monkeypatch.delenv(field.upper(), raising=False)


class TestDefaults:
    def test_defaults(self):
        s = Settings(_env_file=None)
        assert s.converter_count == 3
        assert s.split_max_retries == 3
        assert s.max_failed_page_ratio == 0.5
        assert s.llm_default_provider == "openai"
        assert s.log_format == "text"

    def test_resolved_paths_expand_home(self):
        s = Settings(_env_file=None)
        assert "~" not in str(s.resolved_data_dir)
        assert s.resolved_db_path.name == "pageflow.db"


class TestOverrides:
    def test_env_variable(self, monkeypatch):
        monkeypatch.setenv("CONVERTER_COUNT", "5")
        monkeypatch.setenv("DATA_DIR", "/srv/pageflow")
        s = Settings(_env_file=None)
        assert s.converter_count == 5
        assert s.data_dir == Path("/srv/pageflow")

    def test_env_file(self, tmp_path):
        (tmp_path / ".env").write_text("LLM_DEFAULT_PROVIDER=anthropic\nOPENAI_API_KEY=sk-x\n")
        s = load_settings()
        assert s.llm_default_provider == "anthropic"
        assert s.openai_api_key == "sk-x"

    def test_keyword_override(self):
        assert load_settings(converter_count=7).converter_count == 7


class TestValidation:
    def test_zero_converters_rejected(self):
        with pytest.raises(ValidationError, match="converter_count"):
            Settings(_env_file=None, converter_count=0)

    def test_negative_retries_rejected(self):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, converter_max_retries=-1)

    def test_task_timeout_must_exceed_converter_timeout(self):
        with pytest.raises(ConfigurationError, match="TASK_TIMEOUT_MS"):
            Settings(_env_file=None, task_timeout_ms=1000, converter_timeout_ms=5000)

    def test_task_timeout_must_exceed_office_conversion(self):
        with pytest.raises(ConfigurationError, match="OFFICE_CONVERT_TIMEOUT_MS"):
            Settings(_env_file=None, task_timeout_ms=200_000, office_convert_timeout_ms=200_000)

    def test_heartbeat_interval(self):
        assert Settings(_env_file=None, task_timeout_ms=400_000).heartbeat_interval_s == 100.0

    def test_ratio_bounds(self):
        with pytest.raises(ConfigurationError, match="MAX_FAILED_PAGE_RATIO"):
            Settings(_env_file=None, max_failed_page_ratio=1.5)


class TestProviderCredentials:
    def test_base_url_from_environment(self, monkeypatch):
        monkeypatch.setenv("ANTHROPIC_BASE_URL", "http://proxy:8080")
        s = Settings(_env_file=None, anthropic_api_key="sk-a")
        assert s.provider_credentials("anthropic") == ("sk-a", "http://proxy:8080")

    def test_lookup(self):
        s = Settings(
            _env_file=None,
            openai_api_key="sk-o",
            anthropic_api_key="sk-a",
            google_api_key="g",
            ollama_base_url="http://gpu:11434",
        )
        assert s.provider_credentials("openai") == ("sk-o", "")
        assert s.provider_credentials("openai-responses") == ("sk-o", "")
        assert s.provider_credentials("anthropic") == ("sk-a", "")
        assert s.provider_credentials("google") == ("g", "")
        assert s.provider_credentials("ollama") == ("", "http://gpu:11434")
        assert s.provider_credentials("other") == ("", "")
