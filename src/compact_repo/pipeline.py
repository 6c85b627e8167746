"""Discovery and normalization pipeline.

One discovery task feeds a `queue.Queue` read by a fixed pool of
normalization workers. When discovery finishes the queue is shut down; the
workers drain what is left and stop on `queue.ShutDown`. Ordering and
trimming run afterwards on the complete, static set of records.
"""

from __future__ import annotations

import os
import queue
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import TYPE_CHECKING

from pydantic import BaseModel, ConfigDict, Field

from compact_repo.config import IMPORTANCE_BY_PATH_FRAGMENT, IMPORTANT_NAMES, FileRecord, OutputFormat
from compact_repo.discovery import FileDiscoverer, ensure_root, relpath
from compact_repo.exceptions import OutputWriteError
from compact_repo.logging import logger
from compact_repo.normalizer import ContentNormalizer
from compact_repo.output_construction import render
from compact_repo.policy import build_policy
from compact_repo.project import analyze_project_structure, select_project_exclusions

if TYPE_CHECKING:
    from collections.abc import Sequence

    from compact_repo.discovery import CandidateFile
    from compact_repo.policy import IgnorePolicy
    from compact_repo.settings import Settings


class RecordCollector:
    """Lock-guarded list of records shared by the normalization workers."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._records: list[FileRecord] = []

    def append(self, record: FileRecord) -> None:
        with self._lock:
            self._records.append(record)

    def snapshot(self) -> list[FileRecord]:
        with self._lock:
            return list(self._records)

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)


class RunSummary(BaseModel):
    """Outcome of one `run`."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    output: Path
    output_format: OutputFormat
    files: int = Field(..., ge=0, description="Records written")
    trimmed: int = Field(..., ge=0, description="Records dropped by the token budget")
    tokens: int = Field(..., ge=0, description="Estimated tokens written")
    elapsed_ms: float = Field(default=0.0, ge=0)


def _discover_then_close(discoverer: FileDiscoverer, candidates: queue.Queue[CandidateFile]) -> int:
    try:
        return discoverer.discover(candidates)
    finally:
        # lets workers drain the remaining items and then stop
        candidates.shutdown()


def _normalize_worker(
    candidates: queue.Queue[CandidateFile],
    collector: RecordCollector,
    normalizer: ContentNormalizer,
) -> int:
    processed = 0
    while True:
        try:
            candidate = candidates.get()
        except queue.ShutDown:
            return processed
        try:
            record = normalizer.to_record(candidate)
        except Exception as e:  # noqa: BLE001
            logger.warning("Failed to process file %s: %s", candidate.rel, e)
            continue
        if record is not None:
            collector.append(record)
            processed += 1


def available_workers(requested: int | None) -> int:
    """Worker count: `requested`, else the CPUs this process may run on."""
    return requested or os.process_cpu_count() or 1


def collect_records(
    root: Path,
    policy: IgnorePolicy,
    *,
    normalizer: ContentNormalizer | None = None,
    workers: int | None = None,
) -> list[FileRecord]:
    """Discover and normalize every kept file under `root` concurrently.

    Args:
        root (Path): the tree root
        policy (IgnorePolicy): exclusion rules shared by all threads
        normalizer (ContentNormalizer | None): normalizer used by the workers
        workers (int | None): number of normalization workers, see `available_workers`

    Raises:
        RootNotFoundError: if `root` is missing or not a directory.

    Returns:
        list[FileRecord]: the records, in no particular order
    """
    discoverer = FileDiscoverer(root, policy)
    normalizer = normalizer or ContentNormalizer()
    worker_count = available_workers(workers)
    candidates: queue.Queue[CandidateFile] = queue.Queue()
    collector = RecordCollector()

    with ThreadPoolExecutor(max_workers=worker_count + 1, thread_name_prefix="compact") as pool:
        discovery = pool.submit(_discover_then_close, discoverer, candidates)
        futures = [
            pool.submit(_normalize_worker, candidates, collector, normalizer) for _ in range(worker_count)
        ]
        discovered = discovery.result()
        processed = sum(f.result() for f in futures)

    logger.info(
        "Normalized %d of %d candidate files with %d workers",
        processed,
        discovered,
        worker_count,
    )
    return collector.snapshot()


def file_importance(rel: str) -> int:
    """Score how central a file is likely to be, higher first.

    Args:
        rel (str): root-relative path

    Returns:
        int: 100 for entry-point-like names, then 90 to 60 for controllers,
            services, models and components, else 0
    """
    stem = Path(rel).stem.lower()
    if any(name in stem for name in IMPORTANT_NAMES):
        return 100
    low = rel.lower()
    for fragment, score in IMPORTANCE_BY_PATH_FRAGMENT:
        if fragment in low:
            return score
    return 0


def prioritize_records(records: Sequence[FileRecord]) -> list[FileRecord]:
    """Order records deterministically for LLM consumption.

    The ordering is determined by:
    1) category priority (configuration, source, markup, style, script,
       documentation, data),
    2) path depth, root files first,
    3) `file_importance`, highest first,
    4) the relative path.

    Args:
        records (Sequence[FileRecord]): the records to order

    Returns:
        list[FileRecord]: the ordered records
    """

    def key(rec: FileRecord) -> tuple[int, int, int, str]:
        return (int(rec.category), rec.depth, -file_importance(rec.rel), rec.rel)

    return sorted(records, key=key)


def trim_to_budget(records: Sequence[FileRecord], max_tokens: int) -> list[FileRecord]:
    """Keep the longest prefix of `records` that fits in `max_tokens`.

    The first record is always kept, even when it alone exceeds the budget.

    Args:
        records (Sequence[FileRecord]): records in priority order
        max_tokens (int): cumulative token budget

    Returns:
        list[FileRecord]: the kept prefix
    """
    kept: list[FileRecord] = []
    used = 0
    for rec in records:
        if kept and used + rec.token_estimate > max_tokens:
            break
        kept.append(rec)
        used += rec.token_estimate
    return kept


def write_output(output: Path, content: str) -> None:
    """Write the rendered artifact.

    Raises:
        OutputWriteError: if the file or its parent directory cannot be written.
    """
    try:
        output.parent.mkdir(parents=True, exist_ok=True)
        output.write_text(content, encoding="utf-8")
    except OSError as e:
        raise OutputWriteError(output=output, reason=str(e), message=f"Cannot write {output}: {e}") from e


def run(root: Path, output: Path, options: Settings) -> RunSummary:
    """Compact the tree under `root` into `output`.

    Only a missing root or an unwritable output fail the run; per-file
    problems are logged and the file is skipped.

    Args:
        root (Path): the tree root
        output (Path): where to write the artifact
        options (Settings): run options

    Raises:
        RootNotFoundError: if `root` is missing or not a directory.
        OutputWriteError: if the output cannot be written.

    Returns:
        RunSummary: counts and token total of what was written
    """
    started = time.perf_counter()
    root_path = ensure_root(root)
    out_path = Path(output).expanduser().resolve()

    project_layer = select_project_exclusions(root_path, options.project_rules)
    policy = build_policy(
        root_path,
        extra_directories=options.extra_ignored_directories,
        extra_files=options.extra_ignored_files,
        project=project_layer,
        use_gitignore=options.use_gitignore,
    )

    records = collect_records(root_path, policy, workers=options.workers)
    # a previous artifact inside the tree must not feed the next one
    out_rel = relpath(out_path, root_path)
    records = [r for r in records if r.rel != out_rel]

    prioritized = prioritize_records(records)
    kept = trim_to_budget(prioritized, options.max_tokens)
    structure = analyze_project_structure(root_path, policy) if options.include_metadata else None

    content = render(
        kept,
        output_format=options.output_format,
        project=structure,
        is_blazor=project_layer is not None,
    )
    write_output(out_path, content)

    summary = RunSummary(
        output=out_path,
        output_format=options.output_format,
        files=len(kept),
        trimmed=len(prioritized) - len(kept),
        tokens=sum(r.token_estimate for r in kept),
        elapsed_ms=(time.perf_counter() - started) * 1000,
    )
    logger.info(
        "Compacted %s into %s: %d files (%d trimmed), ~%d tokens",
        root_path,
        out_path,
        summary.files,
        summary.trimmed,
        summary.tokens,
    )
    return summary
