"""
Staged ingestion pipeline and the state it maintains.

    scan → filter → read/classify (bounded batches) → build → commit

Stages hand complete collections to each other. ``Workspace`` owns the one
current snapshot (tree plus content map) and replaces it wholesale on every
mutation, so readers always see either the old or the new snapshot. Each
ingestion carries an ``IngestRun`` with a run id; results from a run that
was superseded by a newer ingestion or by ``clear()`` are discarded. Deletes
and re-processing check the same run id, plus the snapshot they started
from, before committing.
"""

from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from .classify import read_text_file
from .config import Settings
from .errors import ContexterError, InvalidInputError, StaleRunError, UnreadableFileError
from .filtering import MetadataFilter
from .gitignore import combine_gitignore_sources, normalize_rel_path
from .merge import merge_to_text
from .models import (
    EMPTY_RESULT,
    FileInput,
    FilterStatus,
    IngestReport,
    MergeOptions,
    ProcessingOptions,
    ProcessingResult,
    ReadReport,
    SkippedFile,
)
from .scanner import ProjectScanner
from .tree import flatten_tree, iter_files, process_files, recalculate, summarize_tree


DEFAULT_BATCH_SIZE = 50
DEFAULT_MAX_WORKERS = 8


# =============================================================================
# EXECUTOR
# =============================================================================

class PipelineExecutor:
    """Owns the worker pool used for reading files.

    Construct, ``start()``, hand to a ``Workspace``, and ``shutdown()`` when
    done (or use it as a context manager).
    """

    def __init__(self, max_workers: int = DEFAULT_MAX_WORKERS, batch_size: int = DEFAULT_BATCH_SIZE):
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        self.max_workers = max_workers
        self.batch_size = batch_size
        self._pool: Optional[ThreadPoolExecutor] = None

    @property
    def running(self) -> bool:
        return self._pool is not None

    def start(self) -> PipelineExecutor:
        if self._pool is None:
            self._pool = ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="contexter-read")
        return self

    def shutdown(self, wait: bool = True) -> None:
        if self._pool is not None:
            self._pool.shutdown(wait=wait, cancel_futures=True)
            self._pool = None

    def __enter__(self) -> PipelineExecutor:
        return self.start()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.shutdown()

    def read_files(self, root: Path, paths: Sequence[str], run: Optional[IngestRun] = None) -> ReadReport:
        """Read and classify kept paths in bounded batches.

        Binary files are counted and dropped; unreadable files are logged and
        recorded in ``skipped``. Neither aborts the batch.
        """
        if self._pool is None:
            raise RuntimeError("PipelineExecutor is not started")

        report = ReadReport()
        for i in range(0, len(paths), self.batch_size):
            if run is not None:
                run.ensure_current()
            batch = paths[i:i + self.batch_size]
            futures = [self._pool.submit(read_text_file, root, path) for path in batch]
            for path, future in zip(batch, futures):
                try:
                    file_input = future.result()
                except UnreadableFileError as e:
                    logging.warning(str(e))
                    report.skipped.append(SkippedFile(path=path, reason=e.reason))
                    continue
                if file_input is None:
                    report.binary_count += 1
                else:
                    report.files.append(file_input)
            logging.debug(f"Read {min(i + self.batch_size, len(paths)):,}/{len(paths):,} files")
        return report


# =============================================================================
# RUNS AND SNAPSHOTS
# =============================================================================

@dataclass
class IngestRun:
    """Context threaded through one ingestion; knows whether it is still current."""
    run_id: int
    root: Path
    workspace: Workspace

    def is_current(self) -> bool:
        return self.workspace.current_run_id == self.run_id

    def ensure_current(self) -> None:
        if not self.is_current():
            raise StaleRunError(self.run_id)


@dataclass(frozen=True)
class Snapshot:
    """The tree, the content it was built from, and where that content came from."""
    result: ProcessingResult = EMPTY_RESULT
    contents: Dict[str, str] = field(default_factory=dict)
    root: Optional[Path] = None


# =============================================================================
# WORKSPACE
# =============================================================================

class Workspace:
    """Single owner of the current tree and its flat content map."""

    def __init__(self, executor: PipelineExecutor, settings: Optional[Settings] = None):
        self.executor = executor
        self.settings = settings or Settings()
        self._lock = threading.Lock()
        self._run_id = 0
        self._snapshot = Snapshot()

    # --- read access ---

    @property
    def current_run_id(self) -> int:
        return self._run_id

    @property
    def snapshot(self) -> Snapshot:
        return self._snapshot

    @property
    def result(self) -> ProcessingResult:
        return self._snapshot.result

    @property
    def processing_options(self) -> ProcessingOptions:
        return self.settings.processing_options()

    # --- runs ---

    def _begin_run(self, root: Path) -> IngestRun:
        with self._lock:
            self._run_id += 1
            return IngestRun(run_id=self._run_id, root=root, workspace=self)

    def _capture(self) -> Tuple[int, Snapshot]:
        """The run id and snapshot a mutation starts from."""
        with self._lock:
            return self._run_id, self._snapshot

    def _commit(self, snapshot: Snapshot, run_id: int, base: Optional[Snapshot] = None) -> None:
        """Install ``snapshot`` unless the state moved on since ``run_id`` (and ``base``) was read."""
        with self._lock:
            if self._run_id != run_id or (base is not None and self._snapshot is not base):
                logging.info(f"Discarding result of superseded run {run_id}")
                raise StaleRunError(run_id)
            self._snapshot = snapshot

    def ingest(self, root: Path, use_gitignore: bool = True) -> IngestReport:
        """Scan, filter, read and build a directory, replacing the current state.

        Raises StaleRunError when a newer ingestion or ``clear()`` started
        before this one finished.
        """
        root = Path(root).resolve()
        run = self._begin_run(root)
        start = time.perf_counter()
        logging.info(f"Run {run.run_id}: ingesting {root}")

        scan = ProjectScanner(root, use_gitignore=use_gitignore).scan()
        rules = combine_gitignore_sources(scan.gitignores)
        filtered = MetadataFilter(rules, self.settings.max_file_size).filter(scan.metadata)
        run.ensure_current()

        if filtered.status is not FilterStatus.OK:
            self._commit(Snapshot(root=root), run.run_id)
            return IngestReport(run_id=run.run_id, status=filtered.status, result=EMPTY_RESULT)

        report = self.executor.read_files(root, filtered.paths, run)
        run.ensure_current()

        result = process_files(report.files, self.processing_options)
        contents = {f.path: f.content for f in report.files}
        self._commit(Snapshot(result=result, contents=contents, root=root), run.run_id)

        logging.info(
            f"Run {run.run_id}: {result.total_files:,} files, {report.binary_count:,} binary, "
            f"{len(report.skipped):,} unreadable in {time.perf_counter() - start:.3f}s"
        )
        return IngestReport(
            run_id=run.run_id,
            status=FilterStatus.OK,
            result=result,
            skipped=list(report.skipped),
        )

    def load_files(self, files: Iterable[FileInput], root: Optional[Path] = None) -> ProcessingResult:
        """Replace the state with already-read files (no scanning or reading)."""
        with self._lock:
            self._run_id += 1
            run_id = self._run_id
        files = list(files)
        result = process_files(files, self.processing_options)
        self._commit(Snapshot(result=result, contents={f.path: f.content for f in files}, root=root), run_id)
        return result

    # --- mutations on the current snapshot ---

    def reprocess(self) -> ProcessingResult:
        """Rebuild the tree from the current content map with current settings.

        Raises StaleRunError if the state was cleared, re-ingested or otherwise
        replaced while the rebuild ran.
        """
        run_id, snapshot = self._capture()
        files = [FileInput(path=p, content=c) for p, c in snapshot.contents.items()]
        result = process_files(files, self.processing_options)
        self._commit(replace(snapshot, result=result), run_id, snapshot)
        return result

    def update_settings(self, **changes) -> ProcessingResult:
        """Apply new settings and re-process the loaded files with them.

        ``max_file_size`` only takes effect on the next ingestion.
        """
        try:
            new_settings = replace(self.settings, **changes)
        except TypeError as e:
            raise InvalidInputError(f"Unknown setting: {e}") from e
        previous, self.settings = self.settings, new_settings
        if not self._snapshot.contents:
            return self._snapshot.result
        try:
            return self.reprocess()
        except ContexterError:
            self.settings = previous
            raise

    def delete(self, paths: Iterable[str]) -> ProcessingResult:
        """Remove files or whole directories from the state and recalculate.

        Raises StaleRunError if the state changed while recalculating.
        """
        run_id, snapshot = self._capture()
        removed = {normalize_rel_path(p).rstrip("/") for p in paths}
        removed.discard("")
        if not removed:
            return snapshot.result

        start = time.perf_counter()
        tree = recalculate(snapshot.result.file_tree, removed, self.processing_options)
        kept_paths = {node.path for node in iter_files(tree)}
        contents = {p: c for p, c in snapshot.contents.items() if p in kept_paths}
        total_files, total_tokens, total_size = summarize_tree(tree)
        result = ProcessingResult(
            file_tree=tree,
            total_tokens=total_tokens,
            total_files=total_files,
            total_size=total_size,
            processing_time_ms=(time.perf_counter() - start) * 1000,
        )
        self._commit(replace(snapshot, result=result, contents=contents), run_id, snapshot)
        logging.info(f"Removed {len(removed):,} paths, {total_files:,} files remain")
        return result

    def clear(self) -> None:
        """Drop all state and invalidate any in-flight ingestion."""
        with self._lock:
            self._run_id += 1
            self._snapshot = Snapshot()

    # --- export ---

    def selected_files(self, paths: Optional[Iterable[str]] = None) -> List[FileInput]:
        """Files under the selected paths, in tree display order (all files when None)."""
        snapshot = self._snapshot
        tree = snapshot.result.file_tree
        if paths is None:
            nodes = list(iter_files(tree))
        else:
            by_path = flatten_tree(tree)
            wanted = set()
            for p in paths:
                node = by_path.get(normalize_rel_path(p).rstrip("/"))
                if node is None:
                    logging.warning(f"Selected path not in tree: {p}")
                    continue
                wanted.update(f.path for f in iter_files([node]))
            nodes = [node for node in iter_files(tree) if node.path in wanted]
        return [
            FileInput(path=node.path, content=snapshot.contents[node.path])
            for node in nodes
            if node.path in snapshot.contents
        ]

    def merge_selection(
        self,
        paths: Optional[Iterable[str]] = None,
        options: Optional[MergeOptions] = None,
    ) -> str:
        if options is None:
            options = self.settings.merge_options()
        return merge_to_text(self.selected_files(paths), options)


__all__ = [
    "IngestRun",
    "PipelineExecutor",
    "Snapshot",
    "Workspace",
]
