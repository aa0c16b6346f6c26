from __future__ import annotations

import threading
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Callable, Hashable, List, Optional, Sequence

from joblib import Parallel, cpu_count, delayed


def _count_chunk(candidates: Sequence[Sequence[Hashable]], transaction_keys: Sequence[frozenset]) -> List[int]:
    counts = [0] * len(candidates)
    for keys in transaction_keys:
        for idx, candidate in enumerate(candidates):
            if all(key in keys for key in candidate):
                counts[idx] += 1
    return counts


def count_supports(
    candidates: Sequence[Sequence[Hashable]],
    transaction_keys: Sequence[frozenset],
    n_jobs: int = 1,
    backend: str = "loky",
) -> List[int]:
    """Return the number of transactions containing each candidate, in candidate order."""
    if n_jobs == 1 or len(candidates) < 2:
        return _count_chunk(candidates, transaction_keys)
    workers = max(1, cpu_count() + 1 + n_jobs) if n_jobs < 0 else n_jobs
    n_chunks = min(len(candidates), workers)
    size = -(-len(candidates) // n_chunks)
    chunks = [list(candidates[i : i + size]) for i in range(0, len(candidates), size)]
    results = Parallel(n_jobs=n_jobs, backend=backend)(
        delayed(_count_chunk)(chunk, transaction_keys) for chunk in chunks
    )
    # Parallel keeps submission order, so concatenation matches the sequential pass.
    return [count for chunk_counts in results for count in chunk_counts]


class WorkerRunner:
    def __init__(self, max_workers: Optional[int] = None) -> None:
        self.max_workers = max_workers
        self._executor: Optional[ThreadPoolExecutor] = None
        self._lock = threading.Lock()

    def start(
        self,
        fn: Callable[..., Any],
        on_finish: Optional[Callable[[Any], None]] = None,
        on_error: Optional[Callable[[BaseException], None]] = None,
        *args: Any,
        **kwargs: Any,
    ) -> Future:
        with self._lock:
            if self._executor is None:
                self._executor = ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="apriori")
            future = self._executor.submit(self._run, fn, on_finish, args, kwargs)
        if on_error is not None:
            def _report(done: Future) -> None:
                exc = done.exception()
                if exc is not None:
                    on_error(exc)

            future.add_done_callback(_report)
        return future

    @staticmethod
    def _run(fn: Callable[..., Any], on_finish: Optional[Callable[[Any], None]], args: tuple, kwargs: dict) -> Any:
        result = fn(*args, **kwargs)
        if on_finish is not None:
            on_finish(result)
        return result

    def shutdown(self, wait: bool = True) -> None:
        with self._lock:
            executor, self._executor = self._executor, None
        if executor is not None:
            executor.shutdown(wait=wait)
