from __future__ import annotations

import re
from typing import TYPE_CHECKING

from pydantic import BaseModel, ConfigDict, Field

from compact_repo.config import (
    BINARY_EXTENSIONS,
    BLAZOR_GENERATED_PATTERN,
    BLAZOR_IGNORED_DIRECTORIES,
    BLAZOR_IGNORED_FILES,
    BLAZOR_MINIFIED_PATTERN,
    BLAZOR_PATH_DENYLIST,
    BLAZOR_RELEVANT_EXTENSIONS,
    BLAZOR_WWWROOT_EXTENSIONS,
    IGNORED_DIRECTORIES,
    IGNORED_FILES,
)
from compact_repo.gitignore import IgnoreRule, compile_rules, gitignore_verdict, read_gitignore_lines
from compact_repo.logging import logger

if TYPE_CHECKING:
    from collections.abc import Iterable
    from pathlib import Path


def _lowered(values: Iterable[str]) -> frozenset[str]:
    return frozenset(v.strip().strip("/").replace("\\", "/").lower() for v in values if v.strip())


class ProjectExclusions(BaseModel):
    """Secondary exclusion layer for a detected framework variant.

    It adds directories and file rules to the base policy and then restricts
    what is left: no minified or generated files, only whitelisted extensions,
    a narrower set of assets under `wwwroot/`, and no build or publish output.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    name: str = Field(..., description="Human readable variant name")
    ignored_directories: frozenset[str] = Field(default_factory=frozenset)
    ignored_files: frozenset[str] = Field(default_factory=frozenset)
    relevant_extensions: frozenset[str] = Field(default_factory=frozenset)
    minified_regex: re.Pattern[str] | None = None
    generated_regex: re.Pattern[str] | None = None
    asset_root: str = "wwwroot/"
    asset_extensions: frozenset[str] = Field(default_factory=frozenset)
    path_denylist: tuple[str, ...] = ()

    def is_excluded(self, rel: str, file_name: str, extension: str) -> bool:
        """Apply the variant-specific checks to one file.

        Args:
            rel (str): root-relative path with `/` separators
            file_name (str): the base name of the file
            extension (str): the extension including the dot

        Returns:
            bool: True if the variant rules exclude the file
        """
        ext = extension.lower()
        if self.minified_regex is not None and self.minified_regex.match(file_name):
            return True
        if self.generated_regex is not None and self.generated_regex.match(file_name):
            return True
        rel_low = rel.lower()
        if self.asset_root and rel_low.startswith(self.asset_root):
            if ext not in self.asset_extensions:
                return True
            if ".min." in file_name.lower():
                return True
        if self.relevant_extensions and ext not in self.relevant_extensions:
            return True
        # leading slash so that top-level directories match "/bin/" as well
        probe = "/" + rel_low
        return any(fragment in probe for fragment in self.path_denylist)


def blazor_exclusions() -> ProjectExclusions:
    """Build the exclusion layer used for Blazor and ASP.NET projects."""
    return ProjectExclusions(
        name="Blazor",
        ignored_directories=_lowered(BLAZOR_IGNORED_DIRECTORIES),
        ignored_files=_lowered(BLAZOR_IGNORED_FILES),
        relevant_extensions=_lowered(BLAZOR_RELEVANT_EXTENSIONS),
        minified_regex=re.compile(BLAZOR_MINIFIED_PATTERN, re.IGNORECASE),
        generated_regex=re.compile(BLAZOR_GENERATED_PATTERN, re.IGNORECASE),
        asset_extensions=_lowered(BLAZOR_WWWROOT_EXTENSIONS),
        path_denylist=BLAZOR_PATH_DENYLIST,
    )


class IgnorePolicy(BaseModel):
    """Immutable set of exclusion rules shared by every discovery thread.

    Attributes:
        ignored_directories: Lower-cased directory names (or `a/b` runs).
        ignored_files: Lower-cased exact file names and `*.suffix` rules.
        binary_extensions: Lower-cased extensions that are always excluded.
        rules: Compiled gitignore rules in source order.
        project: Optional variant-specific layer.
    """

    model_config = ConfigDict(frozen=True)

    ignored_directories: frozenset[str] = Field(default_factory=frozenset)
    ignored_files: frozenset[str] = Field(default_factory=frozenset)
    binary_extensions: frozenset[str] = Field(default_factory=frozenset)
    rules: tuple[IgnoreRule, ...] = ()
    project: ProjectExclusions | None = None

    def in_ignored_directory(self, rel: str) -> bool:
        """Check whether any directory segment of `rel` is ignored.

        Multi-segment entries such as `wwwroot/lib` match a contiguous run of
        directory segments. The file name itself is not a directory segment.
        """
        segments = rel.lower().split("/")[:-1]
        for i in range(len(segments)):
            for j in range(i + 1, len(segments) + 1):
                if "/".join(segments[i:j]) in self.ignored_directories:
                    return True
        return False

    def prunes_directory(self, rel_dir: str) -> bool:
        """Check whether a whole directory can be skipped during the walk.

        Args:
            rel_dir (str): root-relative directory path with `/` separators

        Returns:
            bool: True if every file below `rel_dir` is excluded by directory rules
        """
        return self.in_ignored_directory(rel_dir + "/_")

    def is_ignored_file(self, file_name: str) -> bool:
        """Check exact names and `*.suffix` rules, case-insensitively."""
        name = file_name.lower()
        if name in self.ignored_files:
            return True
        return any(rule.startswith("*.") and name.endswith(rule[1:]) for rule in self.ignored_files)

    def is_binary(self, extension: str) -> bool:
        """Check the extension against the known binary formats."""
        return extension.lower() in self.binary_extensions

    def is_ignored_by_gitignore(self, rel: str) -> bool:
        """Apply gitignore rules with last-match-wins semantics."""
        return bool(gitignore_verdict(rel, self.rules))

    def is_excluded(self, rel: str, file_name: str, extension: str) -> bool:
        """Decide whether a file is left out of the output.

        Directory, file-name and binary checks each exclude on their own and
        cannot be undone by a negated gitignore rule. The project layer, when
        present, is applied last and only adds exclusions.

        Args:
            rel (str): root-relative path with `/` separators
            file_name (str): the base name of the file
            extension (str): the extension including the dot (may be empty)

        Returns:
            bool: True if the file is excluded
        """
        if self.in_ignored_directory(rel):
            return True
        if self.is_ignored_file(file_name):
            return True
        if self.is_binary(extension):
            return True
        if self.is_ignored_by_gitignore(rel):
            return True
        return self.project is not None and self.project.is_excluded(rel, file_name, extension)


def build_policy(  # noqa: PLR0913
    root: Path | None = None,
    *,
    extra_directories: Iterable[str] = (),
    extra_files: Iterable[str] = (),
    project: ProjectExclusions | None = None,
    use_gitignore: bool = True,
    gitignore_lines: Iterable[str] | None = None,
    directories: Iterable[str] = IGNORED_DIRECTORIES,
    files: Iterable[str] = IGNORED_FILES,
    binary_extensions: Iterable[str] = BINARY_EXTENSIONS,
) -> IgnorePolicy:
    """Assemble the policy for one run.

    Built-in tables are parameters so that callers (and tests) can supply
    isolated rule sets. Gitignore lines are read from `<root>/.gitignore`
    unless `gitignore_lines` is given explicitly.

    Args:
        root (Path | None): tree root, used to locate `.gitignore`
        extra_directories (Iterable[str]): user-supplied directory names
        extra_files (Iterable[str]): user-supplied file names or `*.suffix` rules
        project (ProjectExclusions | None): optional variant-specific layer
        use_gitignore (bool): whether to compile gitignore rules at all
        gitignore_lines (Iterable[str] | None): explicit gitignore lines
        directories (Iterable[str]): built-in ignored directories
        files (Iterable[str]): built-in ignored file rules
        binary_extensions (Iterable[str]): built-in binary extensions

    Returns:
        IgnorePolicy: the immutable policy
    """
    all_directories = set(_lowered(directories)) | _lowered(extra_directories)
    all_files = set(_lowered(files)) | _lowered(extra_files)
    if project is not None:
        all_directories |= project.ignored_directories
        all_files |= project.ignored_files

    rules: tuple[IgnoreRule, ...] = ()
    if use_gitignore:
        if gitignore_lines is None:
            gitignore_lines = read_gitignore_lines(root) if root is not None else []
        rules = compile_rules(gitignore_lines)

    policy = IgnorePolicy(
        ignored_directories=frozenset(all_directories),
        ignored_files=frozenset(all_files),
        binary_extensions=_lowered(binary_extensions),
        rules=rules,
        project=project,
    )
    logger.info(
        "Built ignore policy: %d directories, %d file rules, %d gitignore rules, project=%s",
        len(policy.ignored_directories),
        len(policy.ignored_files),
        len(policy.rules),
        project.name if project is not None else "none",
    )
    return policy
