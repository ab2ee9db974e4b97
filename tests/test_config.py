from pathlib import Path

import pytest

from dbdump.core import config
from dbdump.core.config import DEFAULT_DUMP_URL, Settings, load_settings


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch, tmp_path):
    for name in (config.CONFIG_ENV_VAR, config.DATA_ROOT_ENV_VAR, config.STRICT_ENV_VAR):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)
    monkeypatch.setattr(config, "_settings", None)


def test_defaults(tmp_path):
    settings = load_settings()
    assert settings.data_dir == tmp_path / "data"
    assert settings.dump_url == DEFAULT_DUMP_URL
    assert settings.strict_tables is False
    assert settings.dump_path == tmp_path / "data" / "db-dump.tar.gz"


def test_yaml_file_in_working_directory(tmp_path):
    (tmp_path / "dbdump.yaml").write_text(
        "data_dir: /srv/crates\nstrict_tables: true\ndownload_attempts: 5\n",
        encoding="utf-8",
    )
    settings = load_settings()
    assert settings.data_dir == Path("/srv/crates")
    assert settings.strict_tables is True
    assert settings.download_attempts == 5


def test_config_path_from_environment(tmp_path, monkeypatch):
    path = tmp_path / "elsewhere.yaml"
    path.write_text("log_level: DEBUG\n", encoding="utf-8")
    monkeypatch.setenv(config.CONFIG_ENV_VAR, str(path))
    assert load_settings().log_level == "DEBUG"


def test_environment_overrides_file(tmp_path, monkeypatch):
    (tmp_path / "dbdump.yaml").write_text("data_dir: /srv/crates\nstrict_tables: true\n", encoding="utf-8")
    monkeypatch.setenv(config.DATA_ROOT_ENV_VAR, str(tmp_path / "override"))
    monkeypatch.setenv(config.STRICT_ENV_VAR, "no")

    settings = load_settings()

    assert settings.data_dir == tmp_path / "override"
    assert settings.strict_tables is False


def test_empty_file_means_defaults(tmp_path):
    (tmp_path / "dbdump.yaml").write_text("", encoding="utf-8")
    assert load_settings() == Settings(data_dir=tmp_path / "data")


@pytest.mark.parametrize("text", ["data_dir: [unclosed\n", "- just\n- a list\n", "download_attempts: 0\n"])
def test_invalid_files(tmp_path, text):
    (tmp_path / "dbdump.yaml").write_text(text, encoding="utf-8")
    with pytest.raises(ValueError):
        load_settings()


def test_settings_are_cached(tmp_path):
    first = config.get_settings()
    assert config.get_settings() is first


def test_data_dir_is_created(tmp_path, monkeypatch):
    monkeypatch.setenv(config.DATA_ROOT_ENV_VAR, str(tmp_path / "made" / "here"))
    assert config.get_data_dir().is_dir()
