"""
Tests for the Engine Configuration.

============================================================
PURPOSE
============================================================
1. Defaults and conservative profile
2. Nested dict and YAML loading
3. Environment overlay and its validation
4. Secrets never printed
5. JSON log lines

============================================================
"""

import json
import logging
from unittest.mock import patch

import pytest

from core.exceptions import InvalidConfigError
from farming_detection.config import MergeStrategy
from orchestrator.config import (
    DEFAULT_JOB_INTERVALS,
    EngineConfig,
    get_conservative_config,
    get_default_config,
    load_config_from_dict,
    load_config_from_yaml,
)
from orchestrator.core import JsonFormatter


ENV_KEYS = (
    "FRAUD_ENGINE_CONFIG",
    "DATABASE_URL",
    "FRAUD_ENGINE_DATASTORE_URL",
    "FRAUD_ENGINE_DATASTORE_API_KEY",
    "FRAUD_ENGINE_LOG_LEVEL",
    "FRAUD_ENGINE_DRY_RUN",
    "FRAUD_ENGINE_MERGE_STRATEGY",
    "TELEGRAM_BOT_TOKEN",
    "TELEGRAM_CHAT_ID",
    "ALERT_EMAIL_WEBHOOK_URL",
    "ALERT_PUSH_WEBHOOK_URL",
)


# ============================================================
# FIXTURES
# ============================================================

@pytest.fixture
def clean_env(monkeypatch):
    """No engine variables and no .env file."""
    for key in ENV_KEYS:
        monkeypatch.delenv(key, raising=False)
    with patch("orchestrator.config.load_dotenv"):
        yield monkeypatch


# ============================================================
# DEFAULT TESTS
# ============================================================

class TestDefaults:
    
    def test_default_is_valid(self):
        config = EngineConfig()
        assert config.validate() == []
        assert config.ensure_valid() is config
        assert config.scheduler.intervals == DEFAULT_JOB_INTERVALS
        assert config.farming.merge.strategy == MergeStrategy.SINGLE_PASS
        assert not config.remediation.dry_run
        assert get_default_config() == config
    
    def test_conservative_profile(self):
        config = get_conservative_config()
        assert config.farming.merge.strategy == MergeStrategy.UNION_FIND
        assert config.remediation.dry_run
        assert config.validate() == []
    
    def test_invalid_raises(self):
        config = EngineConfig(log_format="xml")
        assert any("log_format" in e for e in config.validate())
        with pytest.raises(InvalidConfigError):
            config.ensure_valid()
    
    def test_database_url_redacted(self):
        config = EngineConfig(database_url="postgresql+asyncpg://fraud:secret@db:5432/fraud")
        assert config.to_dict()["database_url"] == "postgresql+asyncpg://***@db:5432/fraud"
        assert "secret" not in str(config.to_dict())
    
    def test_api_key_not_exported(self):
        config = EngineConfig(datastore_url="https://data.example", datastore_api_key="k-123")
        assert "k-123" not in str(config.to_dict())


# ============================================================
# LOADER TESTS
# ============================================================

class TestLoadFromDict:
    
    def test_sections_merge_with_defaults(self):
        config = load_config_from_dict({
            "log_level": "debug",
            "scheduler": {
                "intervals": {"cluster_scan": 600},
                "disabled_jobs": ["referral_audit"],
                "page_size": 100,
            },
            "remediation": {"dry_run": True},
        })
        
        assert config.log_level == "DEBUG"
        assert config.scheduler.intervals["cluster_scan"] == 600
        assert config.scheduler.intervals["trust_recompute"] == DEFAULT_JOB_INTERVALS["trust_recompute"]
        assert config.scheduler.disabled_jobs == ("referral_audit",)
        assert config.scheduler.page_size == 100
        assert config.remediation.dry_run
    
    def test_section_must_be_mapping(self):
        with pytest.raises(InvalidConfigError):
            load_config_from_dict({"trust": ["weights"]})
    
    def test_page_size_bounded(self):
        config = load_config_from_dict({"scheduler": {"page_size": 1000}})
        assert any("page_size" in e for e in config.validate())
    
    def test_non_positive_interval(self):
        config = load_config_from_dict({"scheduler": {"intervals": {"retention_cleanup": 0}}})
        assert any("retention_cleanup" in e for e in config.validate())


class TestLoadFromYaml:
    
    def test_loads_file(self, tmp_path):
        path = tmp_path / "engine.yaml"
        path.write_text(
            "version: '2024.6'\n"
            "scheduler:\n"
            "  intervals:\n"
            "    bot_velocity_scan: 900\n"
            "abuse:\n"
            "  rules:\n"
            "    refund_loop:\n"
            "      threshold: 4\n",
            encoding="utf-8",
        )
        
        config = load_config_from_yaml(path)
        
        assert config.version == "2024.6"
        assert config.scheduler.intervals["bot_velocity_scan"] == 900
    
    def test_empty_file_is_default(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("", encoding="utf-8")
        assert load_config_from_yaml(path).scheduler.intervals == DEFAULT_JOB_INTERVALS
    
    def test_missing_file(self, tmp_path):
        with pytest.raises(InvalidConfigError):
            load_config_from_yaml(tmp_path / "missing.yaml")
    
    def test_top_level_list(self, tmp_path):
        path = tmp_path / "list.yaml"
        path.write_text("- a\n- b\n", encoding="utf-8")
        with pytest.raises(InvalidConfigError):
            load_config_from_yaml(path)


# ============================================================
# ENVIRONMENT TESTS
# ============================================================

class TestFromEnv:
    """Environment overlays the base configuration."""
    
    def test_no_env_keeps_defaults(self, clean_env):
        assert EngineConfig.from_env() == EngineConfig()
    
    def test_overlay(self, clean_env):
        clean_env.setenv("DATABASE_URL", "sqlite+aiosqlite:///engine.db")
        clean_env.setenv("FRAUD_ENGINE_DATASTORE_URL", "https://data.example")
        clean_env.setenv("FRAUD_ENGINE_DATASTORE_API_KEY", "k-123")
        clean_env.setenv("FRAUD_ENGINE_LOG_LEVEL", "warning")
        clean_env.setenv("FRAUD_ENGINE_DRY_RUN", "yes")
        clean_env.setenv("FRAUD_ENGINE_MERGE_STRATEGY", "UNION_FIND")
        clean_env.setenv("TELEGRAM_BOT_TOKEN", "bot-token")
        clean_env.setenv("TELEGRAM_CHAT_ID", "-100, -200")
        clean_env.setenv("ALERT_EMAIL_WEBHOOK_URL", "https://mail.example/hook")
        
        config = EngineConfig.from_env()
        
        assert config.database_url == "sqlite+aiosqlite:///engine.db"
        assert config.datastore_url == "https://data.example"
        assert config.datastore_api_key == "k-123"
        assert config.log_level == "WARNING"
        assert config.remediation.dry_run
        assert config.farming.merge.strategy == MergeStrategy.UNION_FIND
        assert config.monitoring.telegram_chat_ids == ("-100", "-200")
        assert config.monitoring.email_webhook_url == "https://mail.example/hook"
        assert config.monitoring.push_webhook_url == ""
    
    def test_overlays_given_base(self, clean_env):
        clean_env.setenv("FRAUD_ENGINE_DRY_RUN", "false")
        
        config = EngineConfig.from_env(get_conservative_config())
        
        assert not config.remediation.dry_run
        assert config.farming.merge.strategy == MergeStrategy.UNION_FIND
    
    def test_config_path_from_env(self, clean_env, tmp_path):
        path = tmp_path / "engine.yaml"
        path.write_text("version: from-file\n", encoding="utf-8")
        clean_env.setenv("FRAUD_ENGINE_CONFIG", str(path))
        
        assert EngineConfig.from_env().version == "from-file"
    
    def test_chat_without_token_ignored(self, clean_env):
        clean_env.setenv("TELEGRAM_CHAT_ID", "-100")
        assert EngineConfig.from_env().monitoring.telegram_chat_ids == ()
    
    def test_bad_bool(self, clean_env):
        clean_env.setenv("FRAUD_ENGINE_DRY_RUN", "maybe")
        with pytest.raises(InvalidConfigError):
            EngineConfig.from_env()
    
    def test_bad_merge_strategy(self, clean_env):
        clean_env.setenv("FRAUD_ENGINE_MERGE_STRATEGY", "louvain")
        with pytest.raises(InvalidConfigError):
            EngineConfig.from_env()


# ============================================================
# LOGGING TESTS
# ============================================================

class TestJsonFormatter:
    
    def test_line_is_json(self):
        record = logging.LogRecord("farming_detection.engine", logging.WARNING, __file__, 1, "scan took %ss", (12,), None)
        
        payload = json.loads(JsonFormatter("run-42").format(record))
        
        assert payload["level"] == "WARNING"
        assert payload["logger"] == "farming_detection.engine"
        assert payload["message"] == "scan took 12s"
        assert payload["correlation_id"] == "run-42"
        assert "exception" not in payload
