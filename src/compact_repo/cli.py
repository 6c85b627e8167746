"""
compact_repo: compact a source tree into one LLM-ready artifact.

Overview
--------
The tool walks a project directory, drops noise (build output, dependencies,
binaries, minified or generated files, VCS metadata and `.gitignore`d paths),
strips comments and blank lines, and writes one artifact:

1) **grouped** (default): files grouped by category (configuration, source,
   markup, style, script, documentation, data) under `=== ... FILES ===`
   section delimiters.
2) **flat**: every file one after the other, in priority order.
3) **structured**: one JSON document with a `files` list.

Files are prioritized (configuration first, shallow and entry-point-like
files before the rest) and trimmed greedily to an estimated token budget
(`--max-tokens`, four characters per token).

Usage
-----
    compact-repo --repo ./MyProject --output out.txt
    compact-repo --repo ./MyProject --output out.json --format structured --max-tokens 100000
    compact-repo --repo ./MyProject --output out.txt --ignore-dir custom-bin --no-metadata
    python -m compact_repo.cli --repo . --output out.txt --config compact.yaml --log-file run.log
"""

from __future__ import annotations

import argparse
from pathlib import Path
from typing import TYPE_CHECKING, Any

from compact_repo import __version__
from compact_repo.config import OutputFormat, ProjectRules
from compact_repo.exceptions import CompactRepoError
from compact_repo.logging import logger, setup_logging
from compact_repo.pipeline import run
from compact_repo.settings import Settings, build_settings

if TYPE_CHECKING:
    from collections.abc import Sequence


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="compact-repo",
        description="Compact a source tree for LLM consumption (grouped/flat/structured).",
    )
    p.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    p.add_argument("--repo", type=Path, default=None, help="Root of the tree to compact.")
    p.add_argument("--output", type=Path, required=True, help="Output file.")
    p.add_argument(
        "--format",
        dest="output_format",
        type=str,
        choices=[f.value for f in OutputFormat],
        default=None,
        help="Output encoding (default: grouped).",
    )
    p.add_argument(
        "--ignore-dir",
        dest="extra_ignored_directories",
        action="append",
        default=[],
        help="Additional directory name to ignore (repeatable).",
    )
    p.add_argument(
        "--ignore-file",
        dest="extra_ignored_files",
        action="append",
        default=[],
        help="Additional file name or *.suffix to ignore (repeatable).",
    )
    p.add_argument(
        "--max-tokens",
        type=int,
        default=None,
        help="Estimated token budget (default: 150000).",
    )
    p.add_argument(
        "--no-metadata",
        dest="include_metadata",
        action="store_false",
        default=None,
        help="Skip project metadata analysis.",
    )
    p.add_argument(
        "--no-gitignore",
        dest="use_gitignore",
        action="store_false",
        default=None,
        help="Do not honor the root .gitignore.",
    )
    p.add_argument(
        "--project-rules",
        type=str,
        choices=[r.value for r in ProjectRules],
        default=None,
        help="Project-specific exclusions: auto-detect, none, or force blazor.",
    )
    p.add_argument("--workers", type=int, default=None, help="Normalization workers.")
    p.add_argument("--config", type=Path, default=None, help="YAML file with default options.")
    p.add_argument("--log-file", type=str, default=None, help="Log file path.")
    return p


def parse_args(argv: Sequence[str] | None = None) -> Settings:
    """Parse the command line into `Settings`.

    Command-line values override the YAML config file, which overrides
    `COMPACT_REPO_*` environment variables and the `.env` file.

    Args:
        argv (Sequence[str] | None): arguments, `sys.argv[1:]` when None

    Raises:
        ConfigFileError: if the config file or the merged options are invalid.

    Returns:
        Settings: the validated settings
    """
    args = build_parser().parse_args(argv)
    values: dict[str, Any] = vars(args)
    config_file = values.pop("config")
    for key in ("extra_ignored_directories", "extra_ignored_files"):
        if not values[key]:
            values[key] = None
        else:
            values[key] = set(values[key])
    return build_settings(values, config_file=config_file)


def main(argv: Sequence[str] | None = None) -> int:
    try:
        settings = parse_args(argv)
    except CompactRepoError as e:
        logger.error("Invalid configuration: %s", e)  # noqa: TRY400
        return 1
    if settings.log_file:
        setup_logging(settings.log_file)

    try:
        summary = run(settings.repo, settings.output, settings)
    except CompactRepoError as e:
        logger.error("Compaction failed: %s", e)  # noqa: TRY400
        return 1

    print(  # noqa: T201
        f"Wrote {summary.output} format={summary.output_format} "
        f"files={summary.files} trimmed={summary.trimmed} tokens={summary.tokens}",
    )
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
