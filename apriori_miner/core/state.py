from __future__ import annotations

import math
import numbers
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


JOBLIB_BACKENDS = {"loky", "threading", "multiprocessing"}


class InvalidConfiguration(ValueError):
    """Raised when a miner is constructed with unusable options."""


@dataclass
class MinerOptions:
    """Configuration held by a miner for its whole lifetime."""

    support: float
    n_jobs: int = 1
    backend: str = "loky"
    raise_listener_errors: bool = False
    max_workers: Optional[int] = None

    def __post_init__(self) -> None:
        support = self.support
        if isinstance(support, bool) or not isinstance(support, numbers.Real):
            raise InvalidConfiguration(f"support must be a number, got {support!r}")
        if math.isnan(support) or not 0 < support < 1:
            raise InvalidConfiguration(f"support must satisfy 0 < support < 1, got {support!r}")
        if isinstance(self.n_jobs, bool) or not isinstance(self.n_jobs, int) or self.n_jobs == 0:
            raise InvalidConfiguration(f"n_jobs must be a non-zero integer, got {self.n_jobs!r}")
        if self.backend not in JOBLIB_BACKENDS:
            raise InvalidConfiguration(
                f"Unsupported backend: {self.backend} (expected one of {', '.join(sorted(JOBLIB_BACKENDS))})"
            )
        if self.max_workers is not None and self.max_workers < 1:
            raise InvalidConfiguration("max_workers must be at least 1")

    def min_support_count(self, transaction_count: int) -> int:
        # Rounded first so 0.7 * 10 gives 7, not 8.
        return math.ceil(round(self.support * transaction_count, 9))


@dataclass
class ExecutionState:
    """Per-call state of one mining run. Never shared between runs."""

    transactions: List[List[Any]]
    min_support_count: int
    transaction_keys: List[frozenset] = field(default_factory=list)
    levels: List[list] = field(default_factory=list)
    logs: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def transaction_count(self) -> int:
        return len(self.transactions)

    def update_log(self, stage: str, message: str, payload: Optional[Dict[str, Any]] = None) -> None:
        entry = {"stage": stage, "message": message}
        if payload:
            entry.update(payload)
        self.logs.append(entry)
