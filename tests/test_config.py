"""Tests for configuration loading."""

import json

from muse.config.loader import load_config, save_config
from muse.config.schema import Config


def test_defaults():
    config = Config()
    assert config.cache.backend == "memory"
    assert config.agent.max_steps == 5
    assert config.agent.max_tokens == 350
    assert config.retrieval.min_length == 10
    assert config.timeouts.model_first_token == 60.0
    assert config.get_api_key() is None


def test_camel_case_file(tmp_path):
    path = tmp_path / "config.json"
    path.write_text(
        json.dumps(
            {
                "cache": {"backend": "redis", "redisUrl": "redis://cache:6379/1", "contextTtl": 120},
                "agent": {"maxSteps": 2, "historyLimit": 6},
                "providers": {"anthropic": {"apiKey": "sk-ant-test"}},
            }
        )
    )

    config = load_config(path)

    assert config.cache.backend == "redis"
    assert config.cache.redis_url == "redis://cache:6379/1"
    assert config.cache.context_ttl == 120
    assert config.agent.max_steps == 2
    assert config.agent.history_limit == 6
    assert config.get_api_key() == "sk-ant-test"


def test_save_round_trips_aliases(tmp_path):
    path = tmp_path / "nested" / "config.json"
    config = Config()
    config.agent.max_steps = 3

    save_config(config, path)
    data = json.loads(path.read_text())

    assert data["agent"]["maxSteps"] == 3
    assert "redisUrl" in data["cache"]
    assert load_config(path).agent.max_steps == 3


def test_invalid_file_falls_back_to_defaults(tmp_path):
    path = tmp_path / "config.json"
    path.write_text("{not json")
    assert load_config(path).agent.max_steps == 5


def test_missing_file(tmp_path):
    assert load_config(tmp_path / "absent.json").cache.backend == "memory"


def test_env_override(monkeypatch):
    monkeypatch.setenv("MUSE_CACHE__BACKEND", "redis")
    assert Config().cache.backend == "redis"


def test_openrouter_api_base():
    config = Config()
    config.providers.openrouter.api_key = "sk-or-x"
    assert config.get_api_key() == "sk-or-x"
    assert config.get_api_base() == "https://openrouter.ai/api/v1"
