from __future__ import annotations

import asyncio
import logging
import threading
import time
from collections.abc import Mapping, Set as AbstractSet
from concurrent.futures import Future
from dataclasses import dataclass, field
from itertools import combinations
from typing import Any, Callable, Dict, Generic, Hashable, Iterable, Iterator, List, Optional, Sequence, Tuple, TypeVar

from .state import ExecutionState, MinerOptions
from .workers import WorkerRunner, count_supports

logger = logging.getLogger(__name__)

T = TypeVar("T")

Listener = Callable[["Itemset[Any]"], None]


@dataclass(frozen=True)
class ValueKey:
    kind: str
    value: Hashable


@dataclass
class Itemset(Generic[T]):
    items: List[T]
    support: int = 0

    def __len__(self) -> int:
        return len(self.items)

    def as_frozenset(self) -> frozenset:
        return frozenset(item_key(item) for item in self.items)


@dataclass
class AprioriResult(Generic[T]):
    itemsets: List[Itemset[T]]
    execution_time: int
    transaction_count: int = 0
    min_support_count: int = 0
    logs: List[Dict[str, Any]] = field(default_factory=list)

    def levels(self) -> Dict[int, List[Itemset[T]]]:
        grouped: Dict[int, List[Itemset[T]]] = {}
        for itemset in self.itemsets:
            grouped.setdefault(len(itemset), []).append(itemset)
        return grouped


def item_key(item: Any) -> Hashable:
    """Return the value used to compare items.

    Hashable items are their own key. Lists, tuples, sets and mappings that
    hold unhashable values are keyed recursively by content, wrapped in
    ``ValueKey`` so the key never equals a plain hashable item.
    """
    try:
        hash(item)
    except TypeError:
        pass
    else:
        return item
    if isinstance(item, Mapping):
        return ValueKey("mapping", frozenset((item_key(k), item_key(v)) for k, v in item.items()))
    if isinstance(item, AbstractSet):
        return ValueKey("set", frozenset(item_key(v) for v in item))
    if isinstance(item, (bytearray, memoryview)):
        return bytes(item)
    if isinstance(item, list):
        return ValueKey("list", tuple(item_key(v) for v in item))
    if isinstance(item, tuple):
        return ValueKey("tuple", tuple(item_key(v) for v in item))
    raise TypeError(f"Item {item!r} is not hashable and has no value key")


def generate_candidates(pool: Sequence[T], k: int) -> Iterator[Tuple[T, ...]]:
    """All k-combinations of ``pool`` in positional order (brute force, no subset pruning)."""
    if k <= 0 or k > len(pool):
        return iter(())
    return combinations(pool, k)


class Apriori(Generic[T]):
    """Level-wise frequent itemset miner.

    Starts from the frequent single items and extends frequent k-itemsets
    into (k+1)-candidates until a level comes back empty. Every frequent
    itemset is pushed to the subscribed listeners as soon as it is
    confirmed; the full collection is returned at the end of the run.

    ``support`` is the minimum support as a fraction, ``0 < support < 1``.
    It is turned into an absolute transaction count once per run.
    """

    def __init__(
        self,
        support: float,
        *,
        n_jobs: int = 1,
        backend: str = "loky",
        raise_listener_errors: bool = False,
        max_workers: Optional[int] = None,
    ) -> None:
        self.options = MinerOptions(
            support=support,
            n_jobs=n_jobs,
            backend=backend,
            raise_listener_errors=raise_listener_errors,
            max_workers=max_workers,
        )
        self._listeners: List[Listener] = []
        self._listeners_lock = threading.Lock()
        self.worker_runner = WorkerRunner(max_workers=max_workers)

    @property
    def support(self) -> float:
        return self.options.support

    def subscribe(self, listener: Listener) -> Listener:
        with self._listeners_lock:
            self._listeners.append(listener)
        return listener

    def unsubscribe(self, listener: Listener) -> None:
        with self._listeners_lock:
            self._listeners.remove(listener)

    def on(self, event: str, listener: Listener) -> "Apriori[T]":
        if event != "data":
            raise ValueError(f"Unsupported event: {event}")
        self.subscribe(listener)
        return self

    def execute(
        self,
        transactions: Iterable[Iterable[T]],
        callback: Optional[Callable[[AprioriResult[T]], Any]] = None,
        on_error: Optional[Callable[[BaseException], None]] = None,
    ) -> Future:
        """Mine ``transactions`` in the background and return a Future of the AprioriResult.

        Listeners are notified on the worker thread before the Future resolves.
        ``callback`` receives the result on success, ``on_error`` the exception
        that failed the run.
        """
        snapshot = self._snapshot(transactions)
        listeners = self._listener_snapshot()
        return self.worker_runner.start(self._mine, callback, on_error, snapshot, listeners)

    def run(self, transactions: Iterable[Iterable[T]]) -> AprioriResult[T]:
        """Synchronous variant of :meth:`execute`."""
        return self._mine(self._snapshot(transactions), self._listener_snapshot())

    async def aexecute(self, transactions: Iterable[Iterable[T]]) -> AprioriResult[T]:
        return await asyncio.wrap_future(self.execute(transactions))

    def close(self) -> None:
        self.worker_runner.shutdown()

    def __enter__(self) -> "Apriori[T]":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    @staticmethod
    def _snapshot(transactions: Optional[Iterable[Iterable[T]]]) -> List[List[T]]:
        if transactions is None:
            raise TypeError("transactions must not be None")
        return [list(tx) for tx in transactions]

    def _listener_snapshot(self) -> List[Listener]:
        with self._listeners_lock:
            return list(self._listeners)

    def _mine(self, transactions: List[List[T]], listeners: List[Listener]) -> AprioriResult[T]:
        state = ExecutionState(
            transactions=transactions,
            min_support_count=self.options.min_support_count(len(transactions)),
        )
        started = time.perf_counter()

        state.levels.append(self._frequent_one_itemsets(state, listeners))
        while state.levels[-1]:
            state.levels.append(self._frequent_k_itemsets(state, state.levels[-1], listeners))

        elapsed = time.perf_counter() - started
        itemsets = [itemset for level in state.levels for itemset in level]
        state.update_log("done", "completed", {"itemsets": len(itemsets), "levels": len(state.levels) - 1})
        logger.debug("Mined %d frequent itemsets from %d transactions", len(itemsets), state.transaction_count)
        return AprioriResult(
            itemsets=itemsets,
            execution_time=round(elapsed * 1000),
            transaction_count=state.transaction_count,
            min_support_count=state.min_support_count,
            logs=state.logs,
        )

    def _frequent_one_itemsets(self, state: ExecutionState, listeners: List[Listener]) -> List[Itemset[T]]:
        counts: Dict[Hashable, int] = {}
        first_seen: Dict[Hashable, T] = {}
        transaction_keys: List[frozenset] = []
        for tx in state.transactions:
            keys = []
            for item in tx:
                key = item_key(item)
                if key not in first_seen:
                    first_seen[key] = item
                keys.append(key)
            unique = frozenset(keys)
            for key in unique:
                counts[key] = counts.get(key, 0) + 1
            transaction_keys.append(unique)
        state.transaction_keys = transaction_keys
        state.update_log("count", "distinct items counted", {"items": len(first_seen), "threshold": state.min_support_count})

        frequent: List[Itemset[T]] = []
        # first_seen keeps first-appearance order; counts is filled per frozenset and does not.
        for key, item in first_seen.items():
            if counts[key] >= state.min_support_count:
                itemset = Itemset(items=[item], support=counts[key])
                frequent.append(itemset)
                self._emit(itemset, listeners, state)
        state.update_log("level", "filtered", {"k": 1, "candidates": len(first_seen), "frequent": len(frequent)})
        return frequent

    def _frequent_k_itemsets(
        self, state: ExecutionState, previous: List[Itemset[T]], listeners: List[Listener]
    ) -> List[Itemset[T]]:
        if not previous:
            return []
        k = len(previous[0]) + 1

        pool: List[T] = []
        pool_keys: List[Hashable] = []
        seen = set()
        for itemset in previous:
            for item in itemset.items:
                key = item_key(item)
                if key not in seen:
                    seen.add(key)
                    pool.append(item)
                    pool_keys.append(key)

        positions = list(generate_candidates(range(len(pool)), k))
        candidate_keys = [tuple(pool_keys[i] for i in combo) for combo in positions]
        supports = count_supports(candidate_keys, state.transaction_keys, self.options.n_jobs, self.options.backend)

        frequent: List[Itemset[T]] = []
        for combo, support in zip(positions, supports):
            if support >= state.min_support_count:
                itemset = Itemset(items=[pool[i] for i in combo], support=support)
                frequent.append(itemset)
                self._emit(itemset, listeners, state)
        state.update_log("level", "filtered", {"k": k, "pool": len(pool), "candidates": len(positions), "frequent": len(frequent)})
        logger.debug("Level %d: %d/%d candidates frequent", k, len(frequent), len(positions))
        return frequent

    def _emit(self, itemset: Itemset[T], listeners: List[Listener], state: ExecutionState) -> None:
        for listener in listeners:
            try:
                listener(itemset)
            except Exception as exc:  # noqa: BLE001
                if self.options.raise_listener_errors:
                    raise
                logger.exception("Listener %r failed on itemset %r", listener, itemset.items)
                state.update_log("listener", "failed", {"items": list(itemset.items), "error": repr(exc)})
