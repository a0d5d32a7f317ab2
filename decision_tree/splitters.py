from dataclasses import dataclass
from typing import Optional, Tuple

import numpy as np

from data_utils import ExampleStore
from impurity import ImpurityCalculator


@dataclass(frozen=True)
class SplitCandidate:
    """
    Candidate split `feature[column] <= threshold` and its weighted Gini.
    """
    column: int
    threshold: float
    gini: float

    def sort_key(self) -> Tuple[float, int]:
        """Ordering used to pick the best split: lowest Gini, then lowest column."""
        return (self.gini, self.column)


class FeatureSplitter:
    """
    Finds the best threshold for one feature column.

    Candidate thresholds are the midpoints between adjacent values once the
    node's examples are ordered by the column. The ordering is an argsort over
    a private copy of the column values, so concurrent calls for different
    columns never touch shared state.
    """

    def __init__(self, store: ExampleStore):
        """
        Args:
            store (ExampleStore): Read-only training examples
        """
        self.store = store

    def best_split(self, column: int, indices: np.ndarray) -> Optional[SplitCandidate]:
        """
        Find the threshold on `column` with minimum weighted Gini impurity.

        Class counts of the `<=` side are read from running counts over the
        sorted order; the size of that side comes from a right-sided binary
        search, so repeated values are partitioned exactly as a full re-scan
        of the examples would partition them.

        Args:
            column (int): Feature column to evaluate
            indices (np.ndarray): Row indices of the examples at the current node

        Returns:
            SplitCandidate: Best (column, threshold, gini) for this column. The first
                minimum in ascending threshold order wins ties. None if fewer than
                2 examples are given.
        """
        n_examples = len(indices)
        if n_examples < 2:
            return None

        # Fancy indexing copies, the store itself is never reordered
        values = self.store.features[indices, column]
        order = np.argsort(values, kind='stable')
        sorted_values = values[order]
        # Only the classes present at this node get a count column
        _, sorted_codes = np.unique(self.store.label_codes[indices][order], return_inverse=True)
        sorted_codes = sorted_codes.reshape(-1)
        n_node_classes = int(sorted_codes.max()) + 1

        # Halve before adding so values near the float max don't overflow
        lower, upper = sorted_values[:-1], sorted_values[1:]
        thresholds = np.clip(lower / 2.0 + upper / 2.0, lower, upper)
        left_totals = np.searchsorted(sorted_values, thresholds, side='right')
        right_totals = n_examples - left_totals

        one_hot = np.zeros((n_examples, n_node_classes), dtype=np.int64)
        one_hot[np.arange(n_examples), sorted_codes] = 1
        running_counts = np.cumsum(one_hot, axis=0)

        left_counts = running_counts[left_totals - 1]
        right_counts = running_counts[-1] - left_counts

        gini = ImpurityCalculator.weighted_gini_from_count_matrix(
            left_counts, left_totals, right_counts, right_totals
        )

        best = int(np.argmin(gini))
        return SplitCandidate(column=column, threshold=float(thresholds[best]), gini=float(gini[best]))
