from dataclasses import dataclass
from pathlib import Path


@dataclass(frozen=True)
class CompactRepoError(Exception):
    """Base exception for errors in the compact_repo module."""

    message: str = "compact_repo failed."

    def __str__(self) -> str:
        return self.message


@dataclass(frozen=True)
class RootNotFoundError(CompactRepoError):
    """Raised when the root to compact does not exist or is not a directory."""

    folder: Path = Path()
    message: str = "The specified root does not exist or is not a directory."


@dataclass(frozen=True)
class OutputWriteError(CompactRepoError):
    """Raised when the output artifact cannot be written."""

    output: Path = Path()
    reason: str = ""
    message: str = "The output file could not be written."


@dataclass(frozen=True)
class ConfigFileError(CompactRepoError):
    """Raised when a configuration file or the merged settings cannot be loaded."""

    path: Path = Path()
    reason: str = ""
    message: str = "The configuration file could not be loaded."


@dataclass(frozen=True)
class FileProcessingError(CompactRepoError):
    """Raised when a single file cannot be read or normalized."""

    path: Path = Path()
    reason: str = ""
    message: str = "The file could not be processed."
