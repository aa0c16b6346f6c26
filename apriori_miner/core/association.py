from __future__ import annotations

from typing import Any, Dict, Hashable, Iterable, List

import pandas as pd

from .apriori import Apriori, AprioriResult, item_key


def encode_transactions(transactions: Iterable[Iterable[Any]]) -> pd.DataFrame:
    """One-hot frame with a boolean column per distinct item, in first-seen order."""
    rows = [list(tx) for tx in transactions]
    columns: Dict[Hashable, Any] = {}
    for tx in rows:
        for item in tx:
            columns.setdefault(item_key(item), item)
    keys = list(columns)
    key_rows = [{item_key(item) for item in tx} for tx in rows]
    return pd.DataFrame([[key in tx for key in keys] for tx in key_rows], columns=keys, dtype=bool)


def itemsets_to_frame(result: AprioriResult) -> pd.DataFrame:
    if not result.itemsets:
        return pd.DataFrame(columns=["support", "count", "itemsets", "length"])
    n = result.transaction_count
    return pd.DataFrame(
        {
            "support": [itemset.support / n for itemset in result.itemsets],
            "count": [itemset.support for itemset in result.itemsets],
            "itemsets": [itemset.as_frozenset() for itemset in result.itemsets],
            "length": [len(itemset) for itemset in result.itemsets],
        }
    )


def mine_frequent_itemsets(token_sets: Iterable[List[Any]], min_support: float) -> pd.DataFrame:
    with Apriori(min_support) as miner:
        result = miner.run(token_sets)
    return itemsets_to_frame(result)
