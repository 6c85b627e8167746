from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import yaml
from dotenv import dotenv_values, find_dotenv
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from compact_repo.config import DEFAULT_MAX_TOKENS, OutputFormat, ProjectRules
from compact_repo.exceptions import ConfigFileError

ENV_FILE = find_dotenv(usecwd=True)
ENV_PREFIX = "COMPACT_REPO_"


def env_defaults(env_file: str | Path | None = ENV_FILE) -> dict[str, str]:
    """Read `COMPACT_REPO_*` values from the `.env` file and the process environment.

    Process environment variables win over the `.env` file. Keys are returned
    lower-cased and without the prefix, so they map onto `Settings` fields.

    Args:
        env_file: Path to a `.env` file; empty or None skips the file.

    Returns:
        dict[str, str]: the raw values keyed by `Settings` field name.
    """
    values: dict[str, str | None] = dict(dotenv_values(env_file)) if env_file else {}
    values.update(os.environ)
    out: dict[str, str] = {}
    for key, value in values.items():
        if value is None or not key.startswith(ENV_PREFIX):
            continue
        out[key.removeprefix(ENV_PREFIX).lower()] = value
    return out


class Settings(BaseModel):
    """Configuration settings for one compact_repo run."""

    model_config = ConfigDict(arbitrary_types_allowed=True, extra="forbid")

    repo: Path = Field(default_factory=Path.cwd, description="Root of the tree to compact.")
    output: Path = Field(..., description="Output file.")
    output_format: OutputFormat = Field(
        default=OutputFormat.GROUPED,
        description="Output encoding: grouped, flat or structured.",
    )
    extra_ignored_directories: set[str] = Field(
        default_factory=set,
        description="Additional directory names to ignore.",
    )
    extra_ignored_files: set[str] = Field(
        default_factory=set,
        description="Additional file names or *.suffix rules to ignore.",
    )
    max_tokens: int = Field(
        default=DEFAULT_MAX_TOKENS,
        ge=0,
        description="Estimated token budget for the retained files.",
    )
    include_metadata: bool = Field(default=True, description="Analyze project metadata.")
    use_gitignore: bool = Field(default=True, description="Honor the root .gitignore.")
    project_rules: ProjectRules = Field(
        default=ProjectRules.AUTO,
        description="Project-specific exclusion layer: auto, none or blazor.",
    )
    workers: int | None = Field(
        default=None,
        ge=1,
        description="Normalization workers; defaults to the CPU count.",
    )
    log_file: str = Field(default="", description="Log file path.")

    @field_validator("extra_ignored_directories", "extra_ignored_files", mode="before")
    @classmethod
    def _split_comma_lists(cls, value: Any) -> Any:  # noqa: ANN401
        if isinstance(value, str):
            return {v.strip() for v in value.split(",") if v.strip()}
        return value


def load_yaml_config(path: Path) -> dict[str, Any]:
    """Load a YAML configuration file whose keys are `Settings` field names.

    Args:
        path (Path): the YAML file to read

    Raises:
        ConfigFileError: if the file cannot be read, parsed, or is not a mapping.

    Returns:
        dict[str, Any]: the parsed mapping (empty for an empty file)
    """
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except (OSError, yaml.YAMLError) as e:
        raise ConfigFileError(path=path, reason=str(e), message=f"Cannot load config {path}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigFileError(path=path, reason="not a mapping", message=f"Config {path} must be a mapping.")
    return {str(k).replace("-", "_"): v for k, v in data.items()}


def build_settings(
    overrides: dict[str, Any],
    *,
    config_file: Path | None = None,
    env_file: str | Path | None = ENV_FILE,
) -> Settings:
    """Merge environment, YAML config and explicit overrides into `Settings`.

    Precedence, lowest first: field defaults, `.env`/environment, YAML file,
    `overrides` (typically the parsed command line).

    Args:
        overrides (dict[str, Any]): explicit values; None values are ignored.
        config_file (Path | None): optional YAML configuration file.
        env_file (str | Path | None): `.env` file used for environment defaults.

    Raises:
        ConfigFileError: if the YAML file is invalid or the merged values are
            invalid; `path` is the YAML file, or empty when none was given.

    Returns:
        Settings: the validated settings.
    """
    fields = Settings.model_fields
    env_values = {k: v for k, v in env_defaults(env_file).items() if k in fields}
    file_values = load_yaml_config(config_file) if config_file is not None else {}
    cli_values = {k: v for k, v in overrides.items() if v is not None}

    sources: list[str] = []
    if env_values:
        sources.append("environment")
    if config_file is not None:
        sources.append(str(config_file))
    if cli_values:
        sources.append("command line")

    try:
        return Settings(**{**env_values, **file_values, **cli_values})
    except ValidationError as e:
        raise ConfigFileError(
            path=config_file or Path(),
            reason=str(e),
            message=f"Invalid settings from {', '.join(sources) or 'defaults'}: {e}",
        ) from e
