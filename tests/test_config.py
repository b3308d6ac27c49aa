import json

import pytest

from app.config.settings import Config, EnvSettings


def test_defaults_match_upstream_contract():
    cfg = Config()
    assert cfg.upstream.api_base == "https://api.mp3youtube.cc"
    assert cfg.upstream.key_ttl_seconds == 3600
    assert cfg.upstream.key_timeout_seconds == 5.0
    assert cfg.retry.key_attempts == 5
    assert cfg.retry.convert_attempts == 3
    assert (cfg.retry.backoff_base_ms, cfg.retry.backoff_jitter_ms) == (5000, 2000)
    assert cfg.upstream.api_key is None
    assert cfg.redis.url is None


def test_api_base_overrides_both_origins():
    cfg = Config.load_from_env(EnvSettings(API_BASE="https://mirror.test/", API_KEY="X"))
    assert cfg.upstream.api_base == "https://mirror.test"
    assert cfg.upstream.web_base == "https://mirror.test"
    assert cfg.upstream.api_key == "X"


def test_env_reads_process_environment(monkeypatch):
    monkeypatch.setenv("REDIS_URL", "redis://cache:6379/1")
    monkeypatch.setenv("LOG_LEVEL", "debug")
    monkeypatch.setenv("ENABLE_SSRF_PROTECTION", "false")
    cfg = Config.load_from_env()
    assert cfg.redis.url == "redis://cache:6379/1"
    assert cfg.logging.level == "DEBUG"
    assert cfg.security.enable_ssrf_protection is False


def test_invalid_log_level_is_rejected():
    with pytest.raises(ValueError):
        Config(logging={"level": "LOUD"})


def test_load_from_file(tmp_path):
    path = tmp_path / "config.json"
    path.write_text(json.dumps({"retry": {"convert_attempts": 1}}))
    cfg = Config.load_from_file(str(path))
    assert cfg.retry.convert_attempts == 1
    assert cfg.retry.key_attempts == 5


def test_missing_file_falls_back_to_defaults(tmp_path):
    cfg = Config.load_from_file(str(tmp_path / "absent.json"))
    assert cfg == Config()
