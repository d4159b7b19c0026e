import pytest

from settings import DEFAULT_EXPLAIN_LADDERS, DEFAULT_SEARCH_LADDERS, ServiceConfig


def test_from_env_defaults_to_gemini_ladders() -> None:
    config = ServiceConfig.from_env({})

    assert config.provider == "gemini"
    assert config.search_ladder == DEFAULT_SEARCH_LADDERS["gemini"]
    assert config.explain_ladder == DEFAULT_EXPLAIN_LADDERS["gemini"]
    assert config.remote_keys_url is None


def test_from_env_reads_overrides() -> None:
    config = ServiceConfig.from_env({
        "GENAI_PROVIDER": "OpenAI",
        "SEARCH_MODELS": "gpt-a, gpt-b ,,",
        "QUOTA_BACKOFF_SECONDS": "2",
        "DESCRIPTION_MAX_WORDS": "25",
        "REMOTE_KEYS_URL": "https://config.example.com/keys",
        "REMOTE_KEYS_TOKEN": "secret-token",
    })

    assert config.provider == "openai"
    assert config.search_ladder == ("gpt-a", "gpt-b")
    assert config.explain_ladder == DEFAULT_EXPLAIN_LADDERS["openai"]
    assert config.quota_backoff_seconds == 2.0
    assert config.description_max_words == 25
    assert config.remote_keys_url == "https://config.example.com/keys"
    assert "secret-token" not in repr(config)


def test_from_env_rejects_unknown_provider() -> None:
    with pytest.raises(RuntimeError, match="GENAI_PROVIDER"):
        ServiceConfig.from_env({"GENAI_PROVIDER": "watson"})


def test_quota_backoff_increases_with_both_indices() -> None:
    config = ServiceConfig(quota_backoff_seconds=1.0, quota_backoff_step_seconds=0.5)

    assert config.quota_backoff(0, 0) == 1.0
    assert config.quota_backoff(0, 1) == 1.5
    assert config.quota_backoff(1, 0) == 1.5
    assert config.quota_backoff(2, 1) == 2.5
