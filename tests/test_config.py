import json

import pytest

from voicecorpus.config import DEFAULT_BUCKET_NAME, load_settings
from voicecorpus.errors import ConfigError


def test_defaults(tmp_path):
    settings = load_settings({"VOICECORPUS_CONFIG": str(tmp_path / "missing.json")})
    assert settings.bucket_name == DEFAULT_BUCKET_NAME == "common-voice-corpus"
    assert settings.batch_concurrency == 1
    assert settings.ffmpeg_binary is None
    assert settings.port == 8080


def test_config_file_and_env_override(tmp_path):
    path = tmp_path / "config.json"
    path.write_text(json.dumps({"BUCKET_NAME": "from-file", "BATCH_CONCURRENCY": 3}))
    settings = load_settings({"VOICECORPUS_CONFIG": str(path)})
    assert settings.bucket_name == "from-file"
    assert settings.batch_concurrency == 3

    settings = load_settings({"VOICECORPUS_CONFIG": str(path), "BUCKET_NAME": "from-env", "LOG_LEVEL": "debug"})
    assert settings.bucket_name == "from-env"
    assert settings.log_level == "DEBUG"


def test_invalid_integer(tmp_path):
    with pytest.raises(ConfigError):
        load_settings({"VOICECORPUS_CONFIG": str(tmp_path / "none.json"), "BATCH_CONCURRENCY": "many"})
    with pytest.raises(ConfigError):
        load_settings({"VOICECORPUS_CONFIG": str(tmp_path / "none.json"), "PORT": "0"})


def test_malformed_config_file(tmp_path):
    path = tmp_path / "config.json"
    path.write_text("[1, 2]")
    with pytest.raises(ConfigError):
        load_settings({"VOICECORPUS_CONFIG": str(path)})


def test_invalid_log_level(tmp_path):
    with pytest.raises(ConfigError):
        load_settings({"VOICECORPUS_CONFIG": str(tmp_path / "none.json"), "LOG_LEVEL": "LOUD"})


def test_config_path_is_reported_only_when_loaded(tmp_path):
    assert load_settings({"VOICECORPUS_CONFIG": str(tmp_path / "none.json")}).config_path is None
    path = tmp_path / "config.json"
    path.write_text("{}")
    assert load_settings({"VOICECORPUS_CONFIG": str(path)}).config_path == str(path)
