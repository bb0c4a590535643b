import pytest

import lakiapu.config as config


def test_parse_csv_lists_from_string() -> None:
    out = config.Settings._parse_csv_list("http://a.com, http://b.com, ,http://a.com")
    assert out == ["http://a.com", "http://b.com", "http://a.com"]
    assert config.Settings._parse_csv_list(["x"]) == ["x"]


def test_settings_reads_lists_from_environment(monkeypatch) -> None:
    monkeypatch.setenv("CORS_ALLOW_ORIGINS", "https://lakiapu.fi,https://www.lakiapu.fi")
    monkeypatch.setenv("TRUSTED_PROXIES", "10.0.0.1")
    s = config.Settings()
    assert s.cors_allow_origins == ["https://lakiapu.fi", "https://www.lakiapu.fi"]
    assert s.trusted_proxies == ["10.0.0.1"]


def test_parse_debug_variants(monkeypatch) -> None:
    monkeypatch.setattr(config, "_running_tests", lambda: False, raising=True)
    assert config.Settings._parse_debug(None) is False
    assert config.Settings._parse_debug(True) is True
    assert config.Settings._parse_debug(0) is False
    assert config.Settings._parse_debug(1) is True
    assert config.Settings._parse_debug("0") is False
    assert config.Settings._parse_debug("false") is False
    assert config.Settings._parse_debug("") is False
    assert config.Settings._parse_debug("maybe") is True


def test_defaults_match_attachment_and_timeout_limits() -> None:
    s = config.Settings()
    assert s.max_attachment_bytes == 5 * 1024 * 1024
    assert s.api_prefix == "/api/v1"
    assert s.retrieval_timeout_seconds > 0
    assert s.generation_timeout_seconds > 0


def test_api_key_required_when_debug_false(monkeypatch) -> None:
    monkeypatch.setattr(config, "_running_tests", lambda: False, raising=True)
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)

    with pytest.raises(ValueError) as exc_info:
        config.Settings(debug=False, _env_file=None)
    assert "OPENAI_API_KEY" in str(exc_info.value)


def test_api_key_present_passes_when_debug_false(monkeypatch) -> None:
    monkeypatch.setattr(config, "_running_tests", lambda: False, raising=True)
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")

    s = config.Settings(debug=False, _env_file=None)
    assert s.openai_api_key == "sk-test"


def test_get_settings_is_cached() -> None:
    config.get_settings.cache_clear()
    s1 = config.get_settings()
    s2 = config.get_settings()
    assert s1 is s2
    config.get_settings.cache_clear()
