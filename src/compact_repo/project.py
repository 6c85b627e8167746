from __future__ import annotations

import os
import re
from pathlib import Path
from typing import TYPE_CHECKING

from pydantic import BaseModel, ConfigDict, Field

from compact_repo.config import IGNORED_DIRECTORIES, ProjectRules
from compact_repo.discovery import log_walk_error, relpath
from compact_repo.logging import logger
from compact_repo.policy import ProjectExclusions, blazor_exclusions

if TYPE_CHECKING:
    from compact_repo.policy import IgnorePolicy

MAX_MAPPED_DIRECTORIES = 50
MAX_FILES_PER_DIRECTORY = 20

BLAZOR_MARKERS = (
    "Microsoft.AspNetCore.Components",
    "Blazor",
    '<Project Sdk="Microsoft.NET.Sdk.BlazorWebAssembly">',
    '<Project Sdk="Microsoft.NET.Sdk.Web">',
)
BLAZOR_ENTRY_FILES = frozenset({"_imports.razor", "app.razor", "mainlayout.razor"})

_PACKAGE_REFERENCE = re.compile(r'<PackageReference\s+Include="([^"]+)"')

# first match wins
_PROJECT_TYPES: tuple[tuple[str, str], ...] = (
    ("Microsoft.AspNetCore.Components.WebAssembly", "Blazor WebAssembly"),
    ("Microsoft.AspNetCore.Components", "Blazor Server"),
    ("Microsoft.AspNetCore", "ASP.NET Core"),
    ("Microsoft.WindowsDesktop.App", "WPF/WinForms"),
    ("Microsoft.NET.Sdk.Web", "Web Application"),
)


class ProjectStructure(BaseModel):
    """Metadata extracted from the first project file found at the root."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., description="Project file name without extension")
    type: str = Field(..., description="Detected project type")
    dependencies: tuple[str, ...] = Field(default=(), description="Package references")
    directories: dict[str, tuple[str, ...]] = Field(
        default_factory=dict,
        description="Relative directory to a sample of its file names",
    )


def _walk_files(root: Path) -> list[Path]:
    results: list[Path] = []
    for current, dirs, files in os.walk(root, onerror=log_walk_error):
        dirs[:] = [d for d in dirs if d.lower() not in IGNORED_DIRECTORIES]
        results.extend(Path(current) / f for f in files)
    return results


def detect_blazor_project(root: Path) -> bool:
    """Heuristically decide whether `root` holds a Blazor or ASP.NET project.

    A project file mentioning the components packages or the web SDKs, any
    `.razor` file, or a `wwwroot/index.html` is enough. Unreadable project
    files are skipped.

    Args:
        root (Path): the tree root

    Returns:
        bool: True if a Blazor project was detected
    """
    files = _walk_files(root)
    for path in files:
        if path.suffix.lower() != ".csproj":
            continue
        try:
            content = path.read_text(encoding="utf-8", errors="ignore")
        except OSError as e:
            logger.warning("Cannot read project file %s: %s", path, e)
            continue
        if any(marker in content for marker in BLAZOR_MARKERS):
            return True

    for path in files:
        if path.suffix.lower() == ".razor" or path.name.lower() in BLAZOR_ENTRY_FILES:
            return True
        if path.name.lower() == "index.html" and path.parent.name.lower() == "wwwroot":
            return True
    return False


def select_project_exclusions(root: Path, rules: ProjectRules) -> ProjectExclusions | None:
    """Pick the project-specific exclusion layer for a run.

    Args:
        root (Path): the tree root
        rules (ProjectRules): `auto` detects, `blazor` forces, `none` disables

    Returns:
        ProjectExclusions | None: the layer to compose with the base policy
    """
    if rules == ProjectRules.NONE:
        return None
    if rules == ProjectRules.BLAZOR or detect_blazor_project(root):
        logger.info("Blazor project detected - applying Blazor-specific filtering rules")
        return blazor_exclusions()
    return None


def extract_package_references(project_content: str) -> list[str]:
    return _PACKAGE_REFERENCE.findall(project_content)


def determine_project_type(project_content: str) -> str:
    for marker, project_type in _PROJECT_TYPES:
        if marker in project_content:
            return project_type
    return "Console/Library"


def build_directory_map(root: Path, policy: IgnorePolicy) -> dict[str, tuple[str, ...]]:
    """Map relative directories to a sample of their non-binary file names.

    Directories pruned by the policy are skipped. At most
    `MAX_MAPPED_DIRECTORIES` directories and `MAX_FILES_PER_DIRECTORY` files
    per directory are listed.
    """
    result: dict[str, tuple[str, ...]] = {}
    seen = 0
    for current, dirs, files in os.walk(root, onerror=log_walk_error):
        rel_dir = relpath(Path(current), root)
        prefix = "" if rel_dir == "." else rel_dir + "/"
        dirs[:] = sorted(d for d in dirs if not policy.prunes_directory(prefix + d))
        if rel_dir == ".":
            continue
        seen += 1
        if seen > MAX_MAPPED_DIRECTORIES:
            break
        names = tuple(
            sorted(f for f in files if not policy.is_binary(Path(f).suffix))[:MAX_FILES_PER_DIRECTORY],
        )
        if names:
            result[rel_dir] = names
    return result


def analyze_project_structure(root: Path, policy: IgnorePolicy) -> ProjectStructure | None:
    """Extract name, type, dependencies and layout from the first root `.csproj`.

    Args:
        root (Path): the tree root
        policy (IgnorePolicy): used to skip ignored directories in the layout

    Returns:
        ProjectStructure | None: the metadata, or None when no project file is
            present at the root or it cannot be read
    """
    project_files = sorted(p for p in root.glob("*.csproj") if p.is_file())
    if not project_files:
        return None
    project_file = project_files[0]
    try:
        content = project_file.read_text(encoding="utf-8", errors="ignore")
    except OSError as e:
        logger.warning("Cannot read project file %s: %s", project_file, e)
        return None
    return ProjectStructure(
        name=project_file.stem,
        type=determine_project_type(content),
        dependencies=tuple(extract_package_references(content)),
        directories=build_directory_map(root, policy),
    )
