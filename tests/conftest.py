from __future__ import annotations

import pytest

from apriori_miner.core.apriori import Apriori


@pytest.fixture
def transactions():
    return [
        [1, 3, 4],
        [2, 3, 5],
        [1, 2, 3, 5],
        [2, 5],
        [1, 2, 3, 5],
    ]


@pytest.fixture
def miner():
    with Apriori(0.4) as m:
        yield m

