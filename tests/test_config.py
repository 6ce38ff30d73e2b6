"""Tests for Config loading from defaults, files and environment."""

from pathlib import Path

import pytest

from resumable_upload.config import Config, load_config

ENV_VARS = [
    "UPLOAD_HOST", "UPLOAD_PORT", "UPLOAD_DIR", "UPLOAD_FILES_DIR",
    "UPLOAD_DEFAULT_NAME", "UPLOAD_FSYNC", "UPLOAD_GAP_TIMEOUT",
    "UPLOAD_CORS_ORIGINS", "UPLOAD_LOG_LEVEL",
]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


class TestDefaults:
    def test_defaults(self):
        config = Config()
        assert config.port == 8090
        assert config.upload_dir == Path("./tmp")
        assert config.default_name == "uploaded_file"
        assert config.cors_origins == ["*"]
        assert config.fsync is True

    def test_files_dir_defaults_under_upload_dir(self):
        config = Config(upload_dir=Path("/data/uploads"))
        assert config.resolved_files_dir == Path("/data/uploads/files")

    def test_explicit_files_dir(self):
        config = Config(files_dir=Path("/srv/files"))
        assert config.resolved_files_dir == Path("/srv/files")


class TestFromEnv:
    def test_reads_environment(self, monkeypatch):
        monkeypatch.setenv("UPLOAD_PORT", "9000")
        monkeypatch.setenv("UPLOAD_DIR", "/var/uploads")
        monkeypatch.setenv("UPLOAD_FSYNC", "false")
        monkeypatch.setenv("UPLOAD_GAP_TIMEOUT", "0.5")
        monkeypatch.setenv("UPLOAD_CORS_ORIGINS", "http://a.test, http://b.test")

        config = Config.from_env()

        assert config.port == 9000
        assert config.upload_dir == Path("/var/uploads")
        assert config.fsync is False
        assert config.gap_timeout == 0.5
        assert config.cors_origins == ["http://a.test", "http://b.test"]


class TestFromFile:
    def test_missing_file_gives_defaults(self, tmp_path):
        assert Config.from_file(tmp_path / "nope.json") == Config()

    def test_save_and_load(self, tmp_path):
        path = tmp_path / "config.json"
        original = Config(
            port=9100,
            upload_dir=tmp_path / "up",
            files_dir=tmp_path / "done",
            default_name="blob",
            gap_timeout=1.5,
            log_level="DEBUG",
        )
        original.save(path)

        assert Config.from_file(path) == original


class TestLoadConfig:
    def test_environment_overrides_file(self, tmp_path, monkeypatch):
        path = tmp_path / "config.json"
        Config(port=9100, default_name="from-file").save(path)
        monkeypatch.setenv("UPLOAD_PORT", "9200")

        config = load_config(path)

        assert config.port == 9200
        assert config.default_name == "from-file"

    def test_no_file(self):
        assert load_config(None) == Config()
