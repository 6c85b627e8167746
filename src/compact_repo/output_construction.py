from __future__ import annotations

import io
import json
from datetime import UTC, datetime
from itertools import groupby
from typing import TYPE_CHECKING, Any

from compact_repo.config import OutputFormat

if TYPE_CHECKING:
    from collections.abc import Sequence

    from compact_repo.config import FileRecord
    from compact_repo.project import ProjectStructure

SECTION_DELIMITER = "\n=== {0} ===\n"
MAX_LISTED_DIRECTORIES = 10


def generated_at() -> str:
    """UTC timestamp stamped on every artifact."""
    return datetime.now(UTC).isoformat(timespec="seconds")


def _draw(node: dict[str, dict], prefix: str, lines: list[str]) -> None:
    last_index = len(node) - 1
    for idx, (name, children) in enumerate(node.items()):
        last = idx == last_index
        lines.append(prefix + ("└── " if last else "├── ") + name + ("/" if children else ""))
        if children:
            _draw(children, prefix + ("    " if last else "│   "), lines)


def build_tree_lines(root_name: str, rel_paths: Sequence[str]) -> list[str]:
    """Draw `rel_paths` as a tree, keeping the order in which they are given.

    A directory is placed where its first file appears, so records already in
    output order produce a layout that matches the file contents section.

    Args:
        root_name (str): label of the first line
        rel_paths (Sequence[str]): `/` separated paths relative to the root

    Returns:
        list[str]: one string per tree line
    """
    tree: dict[str, dict] = {}
    for rel in rel_paths:
        node = tree
        for part in rel.strip("/").split("/"):
            if part:
                node = node.setdefault(part, {})
    lines = [root_name]
    _draw(tree, "", lines)
    return lines
    return lines


def total_tokens(records: Sequence[FileRecord]) -> int:
    return sum(r.token_estimate for r in records)


def write_header(
    out: io.StringIO,
    records: Sequence[FileRecord],
    *,
    project: ProjectStructure | None,
    is_blazor: bool,
) -> None:
    """Write the analysis header and the optional project section."""
    out.write("# PROJECT ANALYSIS\n")
    out.write(f"Generated: {generated_at()}\n")
    out.write(f"Files: {len(records)}\n")
    out.write(f"Estimated Tokens: {total_tokens(records):,}\n")
    if is_blazor:
        out.write("Project Type: Blazor Application\n")

    if project is not None:
        out.write("\n## PROJECT STRUCTURE\n")
        out.write(f"Name: {project.name}\n")
        out.write(f"Type: {project.type}\n")
        if project.dependencies:
            out.write(f"Dependencies: {', '.join(project.dependencies)}\n")
        if project.directories:
            out.write("\n### Directory Structure:\n")
            listed = list(project.directories.items())[:MAX_LISTED_DIRECTORIES]
            out.writelines(f"- {d}/ ({len(files)} files)\n" for d, files in listed)

    out.write("\n## FILE LAYOUT\n")
    out.write("```text\n")
    out.write("\n".join(build_tree_lines(".", [r.rel for r in records])))
    out.write("\n```\n")
    out.write("\n## FILE CONTENTS\n")


def write_file_block(out: io.StringIO, rec: FileRecord) -> None:
    out.write(f"## {rec.rel}\n")
    out.write(rec.content)
    out.write("\n")


def build_grouped(
    records: Sequence[FileRecord],
    *,
    project: ProjectStructure | None = None,
    is_blazor: bool = False,
) -> str:
    """Render records grouped by category, categories in priority order.

    Within a category, records keep the order they were given in.

    Args:
        records (Sequence[FileRecord]): the records to render
        project (ProjectStructure | None): optional project metadata
        is_blazor (bool): whether a Blazor project was detected

    Returns:
        str: the rendered document
    """
    out = io.StringIO()
    write_header(out, records, project=project, is_blazor=is_blazor)
    ordered = sorted(records, key=lambda r: r.category)
    for category, group in groupby(ordered, key=lambda r: r.category):
        out.write(SECTION_DELIMITER.format(f"{category.name} FILES"))
        for rec in group:
            write_file_block(out, rec)
    return out.getvalue().rstrip() + "\n"


def build_flat(
    records: Sequence[FileRecord],
    *,
    project: ProjectStructure | None = None,
    is_blazor: bool = False,
) -> str:
    """Render records one after the other, in the given order."""
    out = io.StringIO()
    write_header(out, records, project=project, is_blazor=is_blazor)
    for rec in records:
        out.write("\n")
        write_file_block(out, rec)
    return out.getvalue().rstrip() + "\n"


def build_structured(
    records: Sequence[FileRecord],
    *,
    project: ProjectStructure | None = None,
    is_blazor: bool = False,
) -> str:
    """Render records as one indented JSON document.

    Args:
        records (Sequence[FileRecord]): the records to render
        project (ProjectStructure | None): optional project metadata
        is_blazor (bool): whether a Blazor project was detected

    Returns:
        str: the JSON document
    """
    doc: dict[str, Any] = {
        "generated_at": generated_at(),
        "files_count": len(records),
        "estimated_tokens": total_tokens(records),
    }
    if is_blazor:
        doc["project_type"] = "Blazor Application"
    if project is not None:
        doc["project"] = project.model_dump(mode="json")
    doc["files"] = [
        {
            "path": rec.rel,
            "category": rec.category.name.lower(),
            "tokens": rec.token_estimate,
            "content": rec.content,
        }
        for rec in records
    ]
    return json.dumps(doc, ensure_ascii=False, indent=2) + "\n"


RENDERERS = {
    OutputFormat.GROUPED: build_grouped,
    OutputFormat.FLAT: build_flat,
    OutputFormat.STRUCTURED: build_structured,
}


def render(
    records: Sequence[FileRecord],
    *,
    output_format: OutputFormat,
    project: ProjectStructure | None = None,
    is_blazor: bool = False,
) -> str:
    return RENDERERS[OutputFormat(output_format)](records, project=project, is_blazor=is_blazor)
