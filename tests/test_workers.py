from __future__ import annotations

import threading

import pytest

from apriori_miner.core.workers import WorkerRunner, count_supports


@pytest.fixture
def transaction_keys():
    return [frozenset(tx) for tx in (["a", "b"], ["a", "c"], ["a", "b", "c"], ["b"])]


def test_count_supports(transaction_keys):
    candidates = [("a",), ("a", "b"), ("b", "c"), ("a", "b", "c"), ("d",)]
    assert count_supports(candidates, transaction_keys) == [3, 2, 1, 1, 0]


@pytest.mark.parametrize("n_jobs", [2, 3, -1])
def test_parallel_count_keeps_candidate_order(transaction_keys, n_jobs):
    candidates = [("a",), ("b",), ("c",), ("a", "b"), ("a", "c"), ("b", "c"), ("a", "b", "c")]
    expected = count_supports(candidates, transaction_keys)
    assert count_supports(candidates, transaction_keys, n_jobs=n_jobs, backend="threading") == expected


def test_count_supports_without_candidates(transaction_keys):
    assert count_supports([], transaction_keys, n_jobs=2, backend="threading") == []


def test_worker_runner_runs_in_background():
    runner = WorkerRunner()
    finished = []
    future = runner.start(lambda x, y: (x + y, threading.current_thread().name), finished.append, None, 2, 3)
    value, thread_name = future.result()
    runner.shutdown()
    assert value == 5
    assert thread_name.startswith("apriori")
    assert finished == [(5, thread_name)]


def test_worker_runner_reports_errors():
    runner = WorkerRunner(max_workers=1)
    errors = []

    def fail():
        raise KeyError("missing")

    future = runner.start(fail, None, errors.append)
    with pytest.raises(KeyError):
        future.result()
    runner.shutdown()
    assert len(errors) == 1
    assert isinstance(errors[0], KeyError)


def test_worker_runner_restarts_after_shutdown():
    runner = WorkerRunner()
    assert runner.start(lambda: 1).result() == 1
    runner.shutdown()
    assert runner.start(lambda: 2).result() == 2
    runner.shutdown()
