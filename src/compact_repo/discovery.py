from __future__ import annotations

import os
import stat
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import TYPE_CHECKING

from pydantic import BaseModel, ConfigDict, Field

from compact_repo.exceptions import RootNotFoundError
from compact_repo.logging import logger

if TYPE_CHECKING:
    import queue
    from collections.abc import Iterator

    from compact_repo.policy import IgnorePolicy

DEFAULT_CHECK_WORKERS = 4


class CandidateFile(BaseModel):
    """A file that passed every exclusion check and awaits normalization."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    path: Path = Field(..., description="Absolute file path")
    rel: str = Field(..., description="Path relative to the root, `/` separated")

    @property
    def name(self) -> str:
        return self.path.name

    @property
    def extension(self) -> str:
        return self.path.suffix


def relpath(path: Path, root: Path) -> str:
    """Send the relative path of path from root.

    Args:
        path (Path): the path to "relativise"
        root (Path): the root to relativise from

    Returns:
        str: the relative path from root to path, with POSIX separators.
            If path is not under root, returns the original path as a string.
    """
    try:
        return path.relative_to(root).as_posix()
    except ValueError:
        return str(path).replace("\\", "/")


def is_regular_file(path: Path) -> bool:
    """Check if a file is regular.

    Args:
        path (Path): path to test.

    Returns:
        bool: True if the file is regular, False otherwise.
    """
    try:
        st = path.stat()
        return stat.S_ISREG(st.st_mode)
    except OSError:
        return False


def log_walk_error(err: OSError) -> None:
    """`os.walk` error callback: the directory is skipped, the walk goes on."""
    logger.warning("Cannot list %s: %s", err.filename, err)


def ensure_root(root: Path) -> Path:
    """Resolve `root` and check that it is an existing directory.

    Raises:
        RootNotFoundError: if `root` is missing or not a directory.

    Returns:
        Path: the resolved root
    """
    resolved = Path(root).expanduser().resolve()
    if not resolved.is_dir():
        raise RootNotFoundError(folder=resolved, message=f"Root is not a directory: {resolved}")
    return resolved


class FileDiscoverer:
    """Walk a root directory and emit the files an `IgnorePolicy` keeps.

    Directories excluded by name are pruned from the walk. The remaining
    files of each directory are checked against the policy on a small thread
    pool; the policy is immutable so the checks share nothing mutable.
    Emission order is unspecified.
    """

    def __init__(self, root: Path, policy: IgnorePolicy, workers: int | None = None) -> None:
        self.root = ensure_root(root)
        self.policy = policy
        self.workers = workers or DEFAULT_CHECK_WORKERS

    def _check(self, path: Path) -> CandidateFile | None:
        rel = relpath(path, self.root)
        if self.policy.is_excluded(rel, path.name, path.suffix):
            return None
        if not is_regular_file(path):
            return None
        return CandidateFile(path=path, rel=rel)

    def iter_candidates(self) -> Iterator[CandidateFile]:
        """Yield every non-excluded regular file under the root.

        Yields:
            CandidateFile: the next file to normalize
        """
        with ThreadPoolExecutor(max_workers=self.workers, thread_name_prefix="discover") as pool:
            for current, dirs, files in os.walk(self.root, onerror=log_walk_error):
                base = Path(current)
                rel_dir = relpath(base, self.root)
                prefix = "" if rel_dir == "." else rel_dir + "/"
                dirs[:] = [d for d in dirs if not self.policy.prunes_directory(prefix + d)]
                if not files:
                    continue
                for candidate in pool.map(self._check, [base / f for f in files]):
                    if candidate is not None:
                        yield candidate

    def discover(self, sink: queue.Queue[CandidateFile]) -> int:
        """Put every candidate on `sink`; the caller closes the queue.

        Args:
            sink (queue.Queue[CandidateFile]): hand-off queue read by the workers

        Returns:
            int: the number of candidates emitted
        """
        count = 0
        for candidate in self.iter_candidates():
            sink.put(candidate)
            count += 1
        logger.info("Discovery finished: %d candidate files under %s", count, self.root)
        return count
