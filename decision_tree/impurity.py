from typing import Dict, Hashable, Iterable, Optional
from collections import Counter

import numpy as np


# Label given to leaves that no training example reached
UNKNOWN_CLASS = "unknown"


class ImpurityCalculator:
    """
    Calculator for the Gini impurity measures used in decision tree construction.

    Provides the scalar Gini calculation over class count maps, the weighted
    Gini of a binary split, majority class selection, and a vectorized form
    of the same formulas used by the threshold sweep in splitters.py.
    """

    @staticmethod
    def count_classes(labels: Iterable[Hashable]) -> Dict[Hashable, int]:
        """
        Build a class count map from a sequence of labels.

        Args:
            labels (Iterable[Hashable]): Class labels

        Returns:
            Dict[Hashable, int]: Number of occurrences of each label
        """
        return dict(Counter(labels))

    @staticmethod
    def calculate_gini(class_counts: Dict[Hashable, int], total_count: Optional[int] = None) -> float:
        """
        Calculate Gini impurity from class counts.

        Gini = 1 - Σ(p_i^2) where p_i is proportion of class i

        Args:
            class_counts (Dict[Hashable, int]): Count of each class in the partition
            total_count (int, optional): Partition size. Defaults to the sum of the counts.

        Returns:
            float: Gini impurity (0.0 = pure, 0.5 = maximum impurity for binary)
        """
        if total_count is None:
            total_count = sum(class_counts.values())

        # Handle edge case of empty partition
        if total_count == 0:
            return 0.0

        sum_squares = 0.0
        for count in class_counts.values():
            p = count / total_count
            sum_squares += p * p

        return 1.0 - sum_squares

    @staticmethod
    def calculate_weighted_gini(left_counts: Dict[Hashable, int],
                                right_counts: Dict[Hashable, int],
                                left_total: Optional[int] = None,
                                right_total: Optional[int] = None) -> float:
        """
        Calculate the weighted Gini impurity of a binary split.

        Weighted Gini = (n_left/n) * Gini_left + (n_right/n) * Gini_right

        Args:
            left_counts (Dict[Hashable, int]): Class counts of the left partition
            right_counts (Dict[Hashable, int]): Class counts of the right partition
            left_total (int, optional): Left partition size
            right_total (int, optional): Right partition size

        Returns:
            float: Weighted impurity of the split (lower is better)
        """
        if left_total is None:
            left_total = sum(left_counts.values())
        if right_total is None:
            right_total = sum(right_counts.values())

        total_count = left_total + right_total
        if total_count == 0:
            return 0.0

        left_gini = ImpurityCalculator.calculate_gini(left_counts, left_total)
        right_gini = ImpurityCalculator.calculate_gini(right_counts, right_total)

        return (left_total / total_count) * left_gini + (right_total / total_count) * right_gini

    @staticmethod
    def majority_class(class_counts: Dict[Hashable, int]) -> Hashable:
        """
        Return the most frequent class.

        Ties go to the lexicographically smallest label so that the result does
        not depend on the order in which the counts were accumulated.

        Args:
            class_counts (Dict[Hashable, int]): Count of each class

        Returns:
            Hashable: Majority label, or UNKNOWN_CLASS when there are no counts
        """
        best_label = UNKNOWN_CLASS
        best_count = 0
        for label in sorted(class_counts):
            count = class_counts[label]
            if count > best_count:
                best_label = label
                best_count = count
        return best_label

    @staticmethod
    def majority_class_of(labels: Iterable[Hashable]) -> Hashable:
        """Majority class of a sequence of labels (UNKNOWN_CLASS when empty)."""
        return ImpurityCalculator.majority_class(ImpurityCalculator.count_classes(labels))

    @staticmethod
    def gini_from_count_matrix(class_counts: np.ndarray, totals: np.ndarray) -> np.ndarray:
        """
        Vectorized Gini impurity for many partitions at once.

        Args:
            class_counts (np.ndarray): Shape (n_partitions, n_classes) count matrix
            totals (np.ndarray): Shape (n_partitions,) partition sizes

        Returns:
            np.ndarray: Shape (n_partitions,) Gini impurities, 0.0 for empty partitions
        """
        totals = totals.astype(np.float64)
        safe_totals = np.where(totals > 0, totals, 1.0)
        proportions = class_counts / safe_totals[:, np.newaxis]
        gini = 1.0 - np.sum(proportions * proportions, axis=1)
        return np.where(totals > 0, gini, 0.0)

    @staticmethod
    def weighted_gini_from_count_matrix(left_counts: np.ndarray, left_totals: np.ndarray,
                                        right_counts: np.ndarray, right_totals: np.ndarray) -> np.ndarray:
        """
        Vectorized weighted Gini impurity for many candidate splits.

        Args:
            left_counts (np.ndarray): Shape (n_splits, n_classes) left class counts
            left_totals (np.ndarray): Shape (n_splits,) left partition sizes
            right_counts (np.ndarray): Shape (n_splits, n_classes) right class counts
            right_totals (np.ndarray): Shape (n_splits,) right partition sizes

        Returns:
            np.ndarray: Shape (n_splits,) weighted impurities
        """
        totals = (left_totals + right_totals).astype(np.float64)
        safe_totals = np.where(totals > 0, totals, 1.0)

        left_gini = ImpurityCalculator.gini_from_count_matrix(left_counts, left_totals)
        right_gini = ImpurityCalculator.gini_from_count_matrix(right_counts, right_totals)

        weighted = (left_totals / safe_totals) * left_gini + (right_totals / safe_totals) * right_gini
        return np.where(totals > 0, weighted, 0.0)
