from __future__ import annotations

import re
from functools import wraps
from types import MappingProxyType
from typing import TYPE_CHECKING, Any

from compact_repo.config import CHARS_PER_TOKEN, FileRecord, categorize
from compact_repo.exceptions import FileProcessingError

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping
    from pathlib import Path

    from compact_repo.discovery import CandidateFile

    CommentStripperFn = Callable[[str], str]

COMMENT_STRIPPERS: dict[str, CommentStripperFn] = {}

_BLOCK_COMMENT = re.compile(r"/\*[\s\S]*?\*/")
_DOC_COMMENT = re.compile(r"^\s*///.*$", re.MULTILINE)
# a match starts at the first slash of a run and never right after ":" (URLs)
_LINE_COMMENT = re.compile(r"(?<![:/])//.*$", re.MULTILINE)
_PRAGMA = re.compile(r"^\s*#pragma\s.*$", re.MULTILINE)
_REGION = re.compile(r"^\s*#(?:region|endregion)\b.*$", re.MULTILINE)
_RAZOR_COMMENT = re.compile(r"@\*[\s\S]*?\*@")
_MARKUP_COMMENT = re.compile(r"<!--[\s\S]*?-->")
_HASH_COMMENT = re.compile(r"^\s*#(?!!).*$", re.MULTILINE)
_SQL_LINE_COMMENT = re.compile(r"^\s*--.*$", re.MULTILINE)


def register_comment_stripper(
    key: str | list[str],
) -> Callable[[CommentStripperFn], CommentStripperFn]:
    """Decorator to register a comment-stripping function for file extensions.

    Args:
        key (str | list[str]): the extension (e.g. ".cs") or extensions the
            decorated function handles. Keys are stored lower-cased.

    Returns:
        Callable[[CommentStripperFn], CommentStripperFn]: A decorator that registers the given
        function in the COMMENT_STRIPPERS mapping under the given key(s) and returns it.
    """

    def decorator(func: CommentStripperFn) -> CommentStripperFn:
        @wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:  # noqa: ANN401
            return func(*args, **kwargs)

        keys = key if isinstance(key, list) else [key]
        for k in keys:
            COMMENT_STRIPPERS[k.lower()] = wrapper
        return wrapper

    return decorator


@register_comment_stripper([
    ".cs", ".js", ".jsx", ".ts", ".tsx", ".java", ".go", ".c", ".h",
    ".cpp", ".hpp", ".rs", ".swift", ".kt",
])  # fmt: skip
def strip_c_style_comments(content: str) -> str:
    """Remove block, line and doc comments plus pragma and region directives."""
    content = _BLOCK_COMMENT.sub("", content)
    content = _DOC_COMMENT.sub("", content)
    content = _LINE_COMMENT.sub("", content)
    content = _PRAGMA.sub("", content)
    return _REGION.sub("", content)


@register_comment_stripper([".razor", ".cshtml"])
def strip_razor_comments(content: str) -> str:
    return strip_c_style_comments(_RAZOR_COMMENT.sub("", content))


@register_comment_stripper([".css", ".scss", ".less"])
def strip_css_comments(content: str) -> str:
    return _BLOCK_COMMENT.sub("", content)


@register_comment_stripper([".html", ".htm", ".xml", ".csproj", ".props", ".targets"])
def strip_markup_comments(content: str) -> str:
    return _MARKUP_COMMENT.sub("", content)


@register_comment_stripper([".py", ".sh", ".yaml", ".yml", ".toml"])
def strip_hash_comments(content: str) -> str:
    """Remove full-line `#` comments; shebang lines are kept."""
    return _HASH_COMMENT.sub("", content)


@register_comment_stripper(".sql")
def strip_sql_comments(content: str) -> str:
    return _SQL_LINE_COMMENT.sub("", _BLOCK_COMMENT.sub("", content))


def compact_lines(text: str) -> str:
    """Trim every line, drop empty ones and join the rest.

    Lines are joined without a separator when the first one looks like
    markup or JSON (starts with `<` or `{`), otherwise with a newline.

    Args:
        text (str): the text to compact

    Returns:
        str: the compacted text, empty if nothing but whitespace remained
    """
    lines = [ln.strip() for ln in text.splitlines()]
    lines = [ln for ln in lines if ln]
    if not lines:
        return ""
    joiner = "" if lines[0].startswith(("<", "{")) else "\n"
    return joiner.join(lines)


def estimate_tokens(content: str) -> int:
    """Roughly estimate the token count of `content` (four characters per token)."""
    return len(content) // CHARS_PER_TOKEN


class ContentNormalizer:
    """Turn one file's text into its compacted representation.

    Args:
        strippers: Mapping of lower-cased extension to comment stripper.
            Defaults to the functions registered with
            `register_comment_stripper`.
    """

    def __init__(self, strippers: Mapping[str, CommentStripperFn] | None = None) -> None:
        source = COMMENT_STRIPPERS if strippers is None else strippers
        self.strippers: Mapping[str, CommentStripperFn] = MappingProxyType(
            {k.lower(): v for k, v in source.items()},
        )

    def strip_comments(self, text: str, extension: str) -> str:
        stripper = self.strippers.get(extension.lower())
        return stripper(text) if stripper is not None else text

    def normalize_text(self, text: str, extension: str) -> str:
        """Strip comments for the extension, then compact whitespace.

        Args:
            text (str): the raw file text
            extension (str): the extension including the dot

        Returns:
            str: the normalized content; empty means the file should be skipped
        """
        return compact_lines(self.strip_comments(text, extension))

    def normalize_file(self, path: Path) -> str:
        """Read `path` as UTF-8 and normalize it.

        Args:
            path (Path): the file to read

        Raises:
            FileProcessingError: if the file cannot be read or decoded.

        Returns:
            str: the normalized content
        """
        try:
            text = path.read_text(encoding="utf-8-sig")
        except (OSError, UnicodeDecodeError) as e:
            raise FileProcessingError(path=path, reason=str(e), message=f"Cannot read {path}: {e}") from e
        return self.normalize_text(text, path.suffix)

    def to_record(self, candidate: CandidateFile) -> FileRecord | None:
        """Normalize a candidate file into a `FileRecord`.

        Returns:
            FileRecord | None: the record, or None when nothing but whitespace remained
        """
        content = self.normalize_file(candidate.path)
        if not content:
            return None
        extension = candidate.extension
        return FileRecord(
            rel=candidate.rel,
            extension=extension,
            content=content,
            category=categorize(extension),
            token_estimate=estimate_tokens(content),
        )
