"""Tests for scanner config loading."""

import os
import tempfile

import pytest

from freshscan.config import FreshScanConfig, load_config


def test_load_config_defaults():
    """Loading with no path returns all defaults."""
    config = load_config()
    assert isinstance(config, FreshScanConfig)
    assert config.camera.index == 0
    assert config.camera.save_dir == ""
    assert config.scanner.cooldown_ms == 5000
    assert config.scanner.max_expiry_attempts == 5
    assert config.scanner.attempt_interval_ms == 2000
    assert config.scanner.cooldown_max_entries == 0
    assert config.scanner.opportunistic_extraction is True
    assert config.barcode.formats == ["EAN13", "EAN8", "UPCA", "UPCE"]
    assert config.resolver.base_url.startswith("https://world.openfoodfacts.org")
    assert config.extractor.backend == "gemini"
    assert config.extractor.gemini.model == "gemini-2.0-flash"
    assert config.database.path == "~/.config/freshscan/records.db"
    assert config.freshness.warn_days == 3


def test_load_config_nonexistent_file():
    """Loading a nonexistent file returns defaults."""
    config = load_config("/nonexistent/path.toml")
    assert config.scanner.max_expiry_attempts == 5


def test_load_config_from_toml():
    """Loading a valid TOML file populates config."""
    toml_content = b"""\
[camera]
index = 2
save_dir = "/var/freshscan"

[scanner]
cooldown_ms = 3000
max_expiry_attempts = 3
attempt_interval_ms = 1500
cooldown_max_entries = 100
opportunistic_extraction = false

[extractor]
backend = "ocr"

[extractor.ocr]
tesseract_cmd = "/usr/bin/tesseract"
lang = "spa"

[extractor.claude]
api_key = "test-key-123"

[database]
path = "/tmp/records.db"

[freshness]
warn_days = 5
check_schedule = "30 7 * * *"
"""
    with tempfile.NamedTemporaryFile(suffix=".toml", delete=False) as f:
        f.write(toml_content)
        f.flush()
        config = load_config(f.name)

    os.unlink(f.name)

    assert config.camera.index == 2
    assert config.camera.save_dir == "/var/freshscan"
    assert config.scanner.cooldown_ms == 3000
    assert config.scanner.max_expiry_attempts == 3
    assert config.scanner.attempt_interval_ms == 1500
    assert config.scanner.cooldown_max_entries == 100
    assert config.scanner.opportunistic_extraction is False
    assert config.extractor.backend == "ocr"
    assert config.extractor.ocr.tesseract_cmd == "/usr/bin/tesseract"
    assert config.extractor.ocr.lang == "spa"
    assert config.extractor.claude.api_key == "test-key-123"
    assert config.database.path == "/tmp/records.db"
    assert config.freshness.warn_days == 5
    assert config.freshness.check_schedule == "30 7 * * *"


def test_api_key_from_env(monkeypatch):
    """API keys fall back to environment variables."""
    monkeypatch.setenv("GEMINI_API_KEY", "env-gemini")
    monkeypatch.setenv("ANTHROPIC_API_KEY", "env-claude")
    config = load_config()
    assert config.extractor.gemini.api_key == "env-gemini"
    assert config.extractor.claude.api_key == "env-claude"


def test_config_file_key_wins_over_env(monkeypatch, tmp_path):
    monkeypatch.setenv("GEMINI_API_KEY", "env-gemini")
    path = tmp_path / "config.toml"
    path.write_text('[extractor.gemini]\napi_key = "file-key"\n')
    config = load_config(path)
    assert config.extractor.gemini.api_key == "file-key"


def test_invalid_max_attempts(tmp_path):
    path = tmp_path / "config.toml"
    path.write_text("[scanner]\nmax_expiry_attempts = 0\n")
    with pytest.raises(ValueError, match="max_expiry_attempts"):
        load_config(path)


def test_negative_interval(tmp_path):
    path = tmp_path / "config.toml"
    path.write_text("[scanner]\nattempt_interval_ms = -1\n")
    with pytest.raises(ValueError, match="attempt_interval_ms"):
        load_config(path)
