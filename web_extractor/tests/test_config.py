import pytest

from web_extractor.core.config import Settings, apply_env, load_settings
from web_extractor.core.errors import ValidationError
from web_extractor.main import load_targets


def test_settings_from_yaml_and_env(tmp_path, monkeypatch):
    cfg = tmp_path / "config.yaml"
    cfg.write_text("settings:\n  concurrency: 8\n  headless: false\ntargets: []\n", encoding="utf-8")
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("WEB_EXTRACTOR_RATE_LIMIT_MAX", "5")
    s = load_settings(str(cfg))
    assert s.concurrency == 8
    assert s.headless is False
    assert s.rate_limit_max == 5
    assert s.rate_limit_window_seconds == 900


def test_unknown_setting_is_rejected():
    with pytest.raises(ValidationError):
        Settings.from_dict({"concurency": 3})


def test_env_bool_and_bad_int():
    s = apply_env(Settings(), {"WEB_EXTRACTOR_HEADLESS": "no"})
    assert s.headless is False
    with pytest.raises(ValidationError):
        apply_env(Settings(), {"WEB_EXTRACTOR_CONCURRENCY": "many"})


def test_load_targets_merges_defaults():
    cfg = {
        "defaults": {"throttle": 200, "maxRetries": 2},
        "targets": [
            {"url": "https://example.com", "selectors": [{"id": "t", "path": "h1", "kind": "text"}],
             "options": {"maxRetries": 0}},
        ],
    }
    [t] = load_targets(cfg)
    assert t.options.throttle_ms == 200
    assert t.options.max_retries == 0


@pytest.mark.parametrize("cfg", [None, {}, {"targets": []}, {"targets": ["x"]},
                                 {"targets": [{"url": "https://e.com", "selectors": [{"id": "a", "path": "a", "kind": "attribute"}]}]}])
def test_load_targets_rejects_bad_config(cfg):
    with pytest.raises(ValidationError):
        load_targets(cfg)
