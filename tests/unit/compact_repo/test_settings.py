from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from compact_repo.config import DEFAULT_MAX_TOKENS, OutputFormat, ProjectRules
from compact_repo.exceptions import ConfigFileError
from compact_repo.settings import Settings, build_settings, env_defaults, load_yaml_config


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for key in ("COMPACT_REPO_MAX_TOKENS", "COMPACT_REPO_WORKERS", "COMPACT_REPO_LOG_FILE"):
        monkeypatch.delenv(key, raising=False)


@pytest.mark.unit
def test_settings_defaults() -> None:
    settings = Settings(output=Path("out.txt"))

    assert settings.repo == Path.cwd()
    assert settings.output_format is OutputFormat.GROUPED
    assert settings.max_tokens == DEFAULT_MAX_TOKENS
    assert settings.include_metadata is True
    assert settings.use_gitignore is True
    assert settings.project_rules is ProjectRules.AUTO
    assert settings.workers is None
    assert settings.extra_ignored_directories == set()


@pytest.mark.unit
def test_settings_split_comma_separated_lists() -> None:
    settings = Settings(
        output=Path("out.txt"),
        extra_ignored_directories="generated, vendor ,",
        extra_ignored_files="*.snap",
    )

    assert settings.extra_ignored_directories == {"generated", "vendor"}
    assert settings.extra_ignored_files == {"*.snap"}


@pytest.mark.unit
@pytest.mark.parametrize(
    "bad",
    [
        {"max_tokens": -1},
        {"workers": 0},
        {"output_format": "xml"},
        {"unknown_option": True},
    ],
)
def test_settings_rejects_invalid_values(bad: dict) -> None:
    with pytest.raises(ValidationError):
        Settings(output=Path("out.txt"), **bad)


@pytest.mark.unit
def test_env_defaults_reads_env_file_and_environment(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    env_file = tmp_path / ".env"
    env_file.write_text("COMPACT_REPO_MAX_TOKENS=1234\nCOMPACT_REPO_WORKERS=2\nOTHER=1\n", encoding="utf-8")
    monkeypatch.setenv("COMPACT_REPO_WORKERS", "6")

    values = env_defaults(env_file)

    assert values["max_tokens"] == "1234"
    assert values["workers"] == "6"
    assert "other" not in values


@pytest.mark.unit
def test_load_yaml_config_normalizes_dashes(tmp_path: Path) -> None:
    config = tmp_path / "compact.yaml"
    config.write_text("max-tokens: 500\noutput_format: flat\n", encoding="utf-8")

    assert load_yaml_config(config) == {"max_tokens": 500, "output_format": "flat"}


@pytest.mark.unit
def test_load_yaml_config_empty_file(tmp_path: Path) -> None:
    config = tmp_path / "compact.yaml"
    config.write_text("", encoding="utf-8")

    assert load_yaml_config(config) == {}


@pytest.mark.unit
@pytest.mark.parametrize("content", ["- a\n- b\n", "key: [unclosed\n"])
def test_load_yaml_config_rejects_invalid_files(tmp_path: Path, content: str) -> None:
    config = tmp_path / "compact.yaml"
    config.write_text(content, encoding="utf-8")

    with pytest.raises(ConfigFileError) as exc_info:
        load_yaml_config(config)

    assert exc_info.value.path == config


@pytest.mark.unit
def test_load_yaml_config_missing_file(tmp_path: Path) -> None:
    with pytest.raises(ConfigFileError):
        load_yaml_config(tmp_path / "missing.yaml")


@pytest.mark.unit
def test_build_settings_precedence(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    env_file = tmp_path / ".env"
    env_file.write_text("COMPACT_REPO_MAX_TOKENS=100\nCOMPACT_REPO_WORKERS=2\n", encoding="utf-8")
    monkeypatch.setenv("COMPACT_REPO_LOG_FILE", "run.log")
    config = tmp_path / "compact.yaml"
    config.write_text("max_tokens: 200\noutput_format: structured\n", encoding="utf-8")

    settings = build_settings(
        {"output": tmp_path / "out.json", "output_format": None, "workers": 4},
        config_file=config,
        env_file=env_file,
    )

    assert settings.max_tokens == 200
    assert settings.output_format is OutputFormat.STRUCTURED
    assert settings.workers == 4
    assert settings.log_file == "run.log"


@pytest.mark.unit
def test_build_settings_wraps_validation_errors(tmp_path: Path) -> None:
    config = tmp_path / "compact.yaml"
    config.write_text("max_tokens: lots\n", encoding="utf-8")

    with pytest.raises(ConfigFileError) as exc_info:
        build_settings({"output": tmp_path / "out.txt"}, config_file=config, env_file=None)

    assert exc_info.value.path == config


@pytest.mark.unit
def test_build_settings_blames_the_command_line(tmp_path: Path) -> None:
    with pytest.raises(ConfigFileError) as exc_info:
        build_settings({"output": tmp_path / "out.txt", "workers": 0}, env_file=None)

    assert exc_info.value.path == Path()
    assert exc_info.value.message.startswith("Invalid settings from command line:")
