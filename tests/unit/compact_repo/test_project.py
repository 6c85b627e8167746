from __future__ import annotations

import os
from pathlib import Path

import pytest
from pytest_mock import MockerFixture

from compact_repo import discovery
from compact_repo.config import ProjectRules
from compact_repo.policy import build_policy
from compact_repo.project import (
    MAX_FILES_PER_DIRECTORY,
    analyze_project_structure,
    build_directory_map,
    detect_blazor_project,
    determine_project_type,
    extract_package_references,
    select_project_exclusions,
)

BLAZOR_CSPROJ = """<Project Sdk="Microsoft.NET.Sdk.BlazorWebAssembly">
  <ItemGroup>
    <PackageReference Include="Microsoft.AspNetCore.Components.WebAssembly" Version="8.0.0" />
    <PackageReference Include="MudBlazor" Version="6.0.0" />
  </ItemGroup>
</Project>
"""


def _write(root: Path, rel: str, content: str = "x") -> Path:
    path = root / rel
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")
    return path


@pytest.mark.unit
def test_detect_blazor_from_project_file(tmp_path: Path) -> None:
    _write(tmp_path, "src/Client/Client.csproj", BLAZOR_CSPROJ)

    assert detect_blazor_project(tmp_path)


@pytest.mark.unit
def test_detect_blazor_from_razor_file(tmp_path: Path) -> None:
    _write(tmp_path, "Shared/NavMenu.razor", "<nav></nav>")

    assert detect_blazor_project(tmp_path)


@pytest.mark.unit
def test_detect_blazor_from_wwwroot_index(tmp_path: Path) -> None:
    _write(tmp_path, "wwwroot/index.html", "<html></html>")

    assert detect_blazor_project(tmp_path)


@pytest.mark.unit
def test_plain_console_project_is_not_blazor(tmp_path: Path) -> None:
    _write(tmp_path, "Tool.csproj", '<Project Sdk="Microsoft.NET.Sdk"></Project>')
    _write(tmp_path, "Program.cs", "class Program {}")
    # razor files under ignored directories are not looked at
    _write(tmp_path, "node_modules/pkg/Widget.razor", "<p></p>")

    assert not detect_blazor_project(tmp_path)


@pytest.mark.unit
def test_select_project_exclusions(tmp_path: Path) -> None:
    assert select_project_exclusions(tmp_path, ProjectRules.AUTO) is None
    assert select_project_exclusions(tmp_path, ProjectRules.NONE) is None

    forced = select_project_exclusions(tmp_path, ProjectRules.BLAZOR)
    assert forced is not None
    assert forced.name == "Blazor"

    _write(tmp_path, "App.razor", "<Router />")
    assert select_project_exclusions(tmp_path, ProjectRules.AUTO) is not None
    assert select_project_exclusions(tmp_path, ProjectRules.NONE) is None


@pytest.mark.unit
def test_extract_package_references() -> None:
    assert extract_package_references(BLAZOR_CSPROJ) == [
        "Microsoft.AspNetCore.Components.WebAssembly",
        "MudBlazor",
    ]


@pytest.mark.unit
@pytest.mark.parametrize(
    ("content", "expected"),
    [
        (BLAZOR_CSPROJ, "Blazor WebAssembly"),
        ('<PackageReference Include="Microsoft.AspNetCore.Components.Web" />', "Blazor Server"),
        ('<PackageReference Include="Microsoft.AspNetCore.Mvc" />', "ASP.NET Core"),
        ('<Project Sdk="Microsoft.NET.Sdk.Web"></Project>', "Web Application"),
        ('<Project Sdk="Microsoft.NET.Sdk"></Project>', "Console/Library"),
    ],
)
def test_determine_project_type(content: str, expected: str) -> None:
    assert determine_project_type(content) == expected


@pytest.mark.unit
def test_build_directory_map_skips_ignored_and_binary(tmp_path: Path) -> None:
    _write(tmp_path, "Pages/Index.razor")
    _write(tmp_path, "Pages/logo.png")
    _write(tmp_path, "obj/Debug/x.cs")
    for i in range(MAX_FILES_PER_DIRECTORY + 5):
        _write(tmp_path, f"Data/row{i:02d}.sql")

    mapping = build_directory_map(tmp_path, build_policy(gitignore_lines=[]))

    assert mapping["Pages"] == ("Index.razor",)
    assert len(mapping["Data"]) == MAX_FILES_PER_DIRECTORY
    assert not any(d.startswith("obj") for d in mapping)


@pytest.mark.unit
def test_analyze_project_structure(tmp_path: Path) -> None:
    _write(tmp_path, "Client.csproj", BLAZOR_CSPROJ)
    _write(tmp_path, "Pages/Index.razor")

    structure = analyze_project_structure(tmp_path, build_policy(gitignore_lines=[]))

    assert structure is not None
    assert structure.name == "Client"
    assert structure.type == "Blazor WebAssembly"
    assert structure.dependencies == ("Microsoft.AspNetCore.Components.WebAssembly", "MudBlazor")
    assert "Pages" in structure.directories


@pytest.mark.unit
def test_analyze_project_structure_without_project_file(tmp_path: Path) -> None:
    _write(tmp_path, "sub/Nested.csproj", BLAZOR_CSPROJ)

    assert analyze_project_structure(tmp_path, build_policy(gitignore_lines=[])) is None


@pytest.mark.unit
def test_unlistable_directories_are_logged(tmp_path: Path, mocker: MockerFixture) -> None:
    _write(tmp_path, "App.csproj", '<Project Sdk="Microsoft.NET.Sdk"></Project>')
    _write(tmp_path, "locked/Widget.razor", "<p></p>")
    real_scandir = os.scandir

    def scandir(path):  # noqa: ANN001, ANN202
        if str(path).endswith("locked"):
            raise PermissionError(13, "Permission denied", str(path))
        return real_scandir(path)

    mocker.patch.object(os, "scandir", side_effect=scandir)
    log = mocker.patch.object(discovery, "logger")

    assert not detect_blazor_project(tmp_path)
    structure = analyze_project_structure(tmp_path, build_policy(gitignore_lines=[]))

    assert structure is not None
    assert "locked" not in structure.directories
    assert log.warning.call_count == 2
    assert all(call.args[1] == str(tmp_path / "locked") for call in log.warning.call_args_list)
