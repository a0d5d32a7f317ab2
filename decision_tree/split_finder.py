from concurrent.futures import Future, ThreadPoolExecutor, wait
from typing import Iterable, List, Optional
import os
import threading

import numpy as np

from data_utils import ExampleStore
from splitters import FeatureSplitter, SplitCandidate


class SplitSearchTimeout(TimeoutError):
    """Raised when the column workers of a split search miss their deadline."""


class BestSplitFinder:
    """
    Best-split coordinator.

    Runs one FeatureSplitter search per feature column on a thread pool, waits
    for every column, and reduces the per-column answers to the single best
    split. The reduction walks the results in column order with the key
    (gini, column), so the answer does not depend on which worker finishes
    first.

    Use as a context manager so the worker pool is shut down:

        with BestSplitFinder(store, n_jobs=4) as finder:
            split = finder.find_best_split(store.all_indices())
    """

    def __init__(self,
                 store: ExampleStore,
                 n_jobs: Optional[int] = None,
                 timeout: Optional[float] = None):
        """
        Args:
            store (ExampleStore): Read-only training examples
            n_jobs (int, optional): Number of column workers. Defaults to
                min(n_features, cpu_count)
            timeout (float, optional): Seconds to wait for all columns of one
                search before giving up. None waits indefinitely.

        Raises:
            ValueError: If n_jobs < 1 or timeout <= 0
        """
        if n_jobs is not None and n_jobs < 1:
            raise ValueError(f"n_jobs must be at least 1, got {n_jobs}")
        if timeout is not None and timeout <= 0:
            raise ValueError(f"timeout must be positive, got {timeout}")

        self.store = store
        self.splitter = FeatureSplitter(store)
        self.n_jobs = n_jobs or max(1, min(store.n_features, os.cpu_count() or 1))
        self.timeout = timeout

        self._executor: Optional[ThreadPoolExecutor] = None
        self._lock = threading.Lock()
        self._cancelled = threading.Event()

    def __enter__(self) -> 'BestSplitFinder':
        self.start()
        return self

    def __exit__(self, exc_type, exc_value, traceback) -> None:
        self.shutdown()

    def start(self) -> None:
        """Create the worker pool if it isn't running yet."""
        with self._lock:
            if self._executor is None:
                self._executor = ThreadPoolExecutor(max_workers=self.n_jobs,
                                                    thread_name_prefix='split-search')

    def shutdown(self) -> None:
        """Stop the worker pool, dropping any column searches not yet started."""
        with self._lock:
            executor, self._executor = self._executor, None
        if executor is not None:
            executor.shutdown(wait=True, cancel_futures=True)

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def find_best_split(self, indices: np.ndarray) -> Optional[SplitCandidate]:
        """
        Find the best split over all feature columns for the given examples.

        Args:
            indices (np.ndarray): Row indices of the examples at the current node

        Returns:
            SplitCandidate: Globally best split, or None when no column has a
                candidate (fewer than 2 examples or no features)

        Raises:
            SplitSearchTimeout: If a timeout is set and the columns don't all
                finish in time, or an earlier search of this finder timed out
        """
        if self._cancelled.is_set():
            raise SplitSearchTimeout("Split search was cancelled after an earlier timeout")

        if len(indices) < 2 or self.store.n_features == 0:
            return None

        self.start()
        futures: List[Future] = [
            self._executor.submit(self._evaluate_column, column, indices)
            for column in range(self.store.n_features)
        ]

        _, not_done = wait(futures, timeout=self.timeout)
        if not_done:
            # Queued workers check the flag and return without searching
            self._cancelled.set()
            for future in not_done:
                future.cancel()
            raise SplitSearchTimeout(
                f"{len(not_done)} of {len(futures)} column searches unfinished after {self.timeout}s"
            )

        return self.reduce_candidates(future.result() for future in futures)

    def _evaluate_column(self, column: int, indices: np.ndarray) -> Optional[SplitCandidate]:
        if self._cancelled.is_set():
            return None
        return self.splitter.best_split(column, indices)

    @staticmethod
    def reduce_candidates(candidates: Iterable[Optional[SplitCandidate]]) -> Optional[SplitCandidate]:
        """
        Pick the candidate with the lowest (gini, column) key.

        Args:
            candidates (Iterable[Optional[SplitCandidate]]): Per-column results;
                None entries mean the column had no candidate

        Returns:
            SplitCandidate: Best candidate, or None if every entry is None
        """
        best: Optional[SplitCandidate] = None
        for candidate in candidates:
            if candidate is None:
                continue
            if best is None or candidate.sort_key() < best.sort_key():
                best = candidate
        return best
