from __future__ import annotations

from enum import IntEnum, StrEnum, auto

from pydantic import BaseModel, ConfigDict, Field

DEFAULT_MAX_TOKENS = 150_000
CHARS_PER_TOKEN = 4


class FileCategory(IntEnum):
    """Coarse role of a file, ordered by how early an LLM should read it.

    The integer value is the category priority: lower values come first in
    prioritized output and in grouped sections.
    """

    CONFIGURATION = 1
    SOURCE = 2
    MARKUP = 3
    STYLE = 4
    SCRIPT = 5
    DOCUMENTATION = 6
    DATA = 7


class OutputFormat(StrEnum):
    """Interchangeable encodings for the final artifact."""

    GROUPED = auto()
    FLAT = auto()
    STRUCTURED = auto()


class ProjectRules(StrEnum):
    """Selection of the project-specific exclusion layer."""

    AUTO = auto()
    NONE = auto()
    BLAZOR = auto()


EXT2CATEGORY: dict[str, FileCategory] = {
    ".cs": FileCategory.SOURCE,
    ".razor": FileCategory.MARKUP,
    ".cshtml": FileCategory.MARKUP,
    ".html": FileCategory.MARKUP,
    ".htm": FileCategory.MARKUP,
    ".css": FileCategory.STYLE,
    ".scss": FileCategory.STYLE,
    ".less": FileCategory.STYLE,
    ".js": FileCategory.SCRIPT,
    ".ts": FileCategory.SCRIPT,
    ".jsx": FileCategory.SCRIPT,
    ".tsx": FileCategory.SCRIPT,
    ".json": FileCategory.CONFIGURATION,
    ".xml": FileCategory.CONFIGURATION,
    ".yaml": FileCategory.CONFIGURATION,
    ".yml": FileCategory.CONFIGURATION,
    ".toml": FileCategory.CONFIGURATION,
    ".csproj": FileCategory.CONFIGURATION,
    ".sln": FileCategory.CONFIGURATION,
    ".props": FileCategory.CONFIGURATION,
    ".targets": FileCategory.CONFIGURATION,
    ".md": FileCategory.DOCUMENTATION,
    ".txt": FileCategory.DOCUMENTATION,
    ".rst": FileCategory.DOCUMENTATION,
    ".sql": FileCategory.DATA,
}

IGNORED_DIRECTORIES = frozenset({
    "bin",
    "obj",
    ".vs",
    ".idea",
    ".vscode",
    "packages",
    "node_modules",
    "bower_components",
    "jspm_packages",
    "typings",
    ".git",
    ".svn",
    ".hg",
    ".env",
    ".env.local",
    ".env.development",
    ".env.production",
    ".env.test",
    "temp",
    "tmp",
    "cache",
    ".cache",
    "logs",
    "__pycache__",
    ".venv",
    ".mypy_cache",
    ".pytest_cache",
    ".ruff_cache",
})

IGNORED_FILES = frozenset({
    ".gitignore",
    ".gitattributes",
    ".gitmodules",
    ".gitkeep",
    ".npmrc",
    ".yarnrc",
    ".editorconfig",
    ".eslintrc",
    ".prettierrc",
    ".DS_Store",
    "Thumbs.db",
    "desktop.ini",
    "package-lock.json",
    "yarn.lock",
    "pnpm-lock.yaml",
    "*.tmp",
    "*.bak",
    "*.swp",
    "*.swo",
    "*.log",
    "*.pid",
    "*.seed",
    "*.pid.lock",
    "*.lock",
    "*.suo",
    "*.userprefs",
    "*.sln.cache",
})

BINARY_EXTENSIONS = frozenset({
    # images
    ".png", ".jpg", ".jpeg", ".gif", ".bmp", ".ico", ".svg", ".webp",
    # audio
    ".mp3", ".wav", ".ogg", ".flac", ".aac",
    # video
    ".mp4", ".avi", ".mkv", ".mov", ".wmv", ".flv",
    # archives
    ".zip", ".rar", ".tar", ".gz", ".7z", ".br",
    # executables and libraries
    ".exe", ".dll", ".pdb", ".so", ".dylib", ".lib", ".wasm", ".pyc",
    # office documents
    ".doc", ".docx", ".xls", ".xlsx", ".ppt", ".pptx", ".pdf",
    # fonts
    ".ttf", ".otf", ".woff", ".woff2", ".eot",
    # resources and opaque data
    ".res", ".resx", ".blat", ".dat",
})  # fmt: skip

BLAZOR_IGNORED_DIRECTORIES = frozenset({
    "wwwroot/lib",
    "wwwroot/_framework",
    "wwwroot/_content",
    "dist",
    "build",
    "out",
    "publish",
    "sass-cache",
    ".sass-cache",
    "css",
    "js/lib",
    "js/libs",
    "js/vendor",
    "package",
    "nuget",
    ".nuget",
    "clientbin",
    "generatedassets",
    "_bin_deployableassemblies",
    "launchsettings",
    ".launchsettings",
})

BLAZOR_IGNORED_FILES = frozenset({
    "*.min.css",
    "*.min.js",
    "*.bundle.js",
    "*.bundle.css",
    "blazor.boot.json",
    "blazor.webassembly.js",
    "dotnet.js",
    "dotnet.wasm",
    "*.nupkg",
    "*.snupkg",
    "*.symbols.nupkg",
    "*.nuspec",
    "packages.config",
    "packages.lock.json",
    "*.compiled.css",
    "*.generated.css",
    "*.scss.css",
    "*.less.css",
    "webpack.config.js",
    "rollup.config.js",
    "vite.config.js",
    "tsconfig.json",
    "jsconfig.json",
    "launchSettings.json",
    "*.pubxml",
    "*.pubxml.user",
    "*.dll.config",
    "*.exe.config",
    "*.runtimeconfig.json",
    "*.deps.json",
    "*.pdb",
    "*.xml",
    "*.resources",
})

BLAZOR_RELEVANT_EXTENSIONS = frozenset({
    ".cs", ".razor", ".cshtml", ".csproj", ".sln", ".props", ".targets",
    ".json", ".xml", ".yaml", ".yml", ".css", ".js", ".html", ".htm",
    ".md", ".txt", ".rst",
})  # fmt: skip

BLAZOR_WWWROOT_EXTENSIONS = frozenset({".html", ".css", ".js"})

BLAZOR_PATH_DENYLIST = ("/publish/", "/dist/", "/build/", "/.vs/", "/bin/", "/obj/")

BLAZOR_MINIFIED_PATTERN = r".*\.min\.(js|css|html)$"
BLAZOR_GENERATED_PATTERN = r".*\.(generated|g|designer)\.(cs|js|css)$"

IMPORTANT_NAMES = ("program", "startup", "app", "main", "index", "layout", "appsettings")

IMPORTANCE_BY_PATH_FRAGMENT: tuple[tuple[str, int], ...] = (
    ("controller", 90),
    ("service", 80),
    ("model", 70),
    ("component", 60),
)


def categorize(extension: str) -> FileCategory:
    """Map a file extension to its category, defaulting to source code.

    Args:
        extension (str): the extension including the leading dot, any case.

    Returns:
        FileCategory: the category used for ordering and grouping.
    """
    return EXT2CATEGORY.get(extension.lower(), FileCategory.SOURCE)


class FileRecord(BaseModel):
    """A normalized file ready for output.

    Attributes:
        rel: Path relative to the root, always with `/` separators.
        extension: Original extension including the dot (may be empty).
        content: Normalized content.
        category: Category used for prioritization and grouping.
        token_estimate: Rough token count of `content`.
    """

    model_config = ConfigDict(frozen=True)

    rel: str = Field(..., description="File path relative to the root")
    extension: str = Field("", description="File extension including the dot")
    content: str = Field(..., description="Normalized file content")
    category: FileCategory = Field(FileCategory.SOURCE, description="File category")
    token_estimate: int = Field(0, ge=0, description="Estimated token count")

    @property
    def depth(self) -> int:
        """Number of directories between the root and the file."""
        return self.rel.count("/")
