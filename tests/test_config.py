from library_ledger.config import _default_log_level, _env_flag


def test_log_level_defaults_to_info(monkeypatch):
    monkeypatch.delenv("LOG_LEVEL", raising=False)
    monkeypatch.delenv("DEBUG", raising=False)
    assert _default_log_level() == "INFO"


def test_debug_turns_on_debug_logging(monkeypatch):
    monkeypatch.delenv("LOG_LEVEL", raising=False)
    monkeypatch.setenv("DEBUG", "true")
    assert _default_log_level() == "DEBUG"


def test_explicit_log_level_wins_over_debug(monkeypatch):
    monkeypatch.setenv("DEBUG", "1")
    monkeypatch.setenv("LOG_LEVEL", "warning")
    assert _default_log_level() == "WARNING"


def test_env_flag(monkeypatch):
    monkeypatch.setenv("SEED_SAMPLE_DATA", "Yes")
    assert _env_flag("SEED_SAMPLE_DATA", "False") is True
    monkeypatch.delenv("SEED_SAMPLE_DATA")
    assert _env_flag("SEED_SAMPLE_DATA", "False") is False
