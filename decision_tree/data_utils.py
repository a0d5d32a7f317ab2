from dataclasses import dataclass
from typing import Hashable, Iterator, List, Optional, Sequence, Tuple, Union
import os

import numpy as np
import pandas as pd

from nodes import ClassDistribution


@dataclass(frozen=True)
class Example:
    """
    A single labeled training example.

    Attributes:
        features (Tuple[float, ...]): Numeric feature values, one per column
        label (Hashable): Class label (e.g. "Iris-setosa")
    """
    features: Tuple[float, ...]
    label: Hashable

    def __post_init__(self):
        object.__setattr__(self, 'features', tuple(float(v) for v in self.features))

    def __len__(self) -> int:
        return len(self.features)


class ExampleStore:
    """
    Immutable columnar storage for a set of examples.

    The feature matrix and label arrays are built once and flagged read-only.
    Tree construction never copies or reorders them: nodes refer to their
    examples through integer index arrays into the store, and split search
    sorts private index permutations.
    """

    def __init__(self,
                 features: Union[np.ndarray, Sequence[Sequence[float]]],
                 labels: Sequence[Hashable],
                 feature_names: Optional[Sequence[str]] = None):
        """
        Validate and store a feature matrix with its labels.

        Args:
            features (array-like): 2-D matrix with shape (n_examples, n_features)
            labels (Sequence[Hashable]): One class label per row
            feature_names (Sequence[str], optional): One name per column

        Raises:
            ValueError: If the matrix is not rectangular, labels don't match the
                number of rows, a feature value is missing or infinite, or the
                labels cannot be ordered
        """
        labels = list(labels)

        try:
            matrix = np.array(features, dtype=np.float64)
        except (TypeError, ValueError) as e:
            raise ValueError(f"Feature matrix must be rectangular and numeric: {e}") from e

        if matrix.size == 0 and matrix.ndim < 2:
            matrix = matrix.reshape(0, 0)

        if matrix.ndim != 2:
            raise ValueError(f"Feature matrix must be 2-dimensional, got shape {matrix.shape}")

        if matrix.shape[0] != len(labels):
            raise ValueError(f"Got {matrix.shape[0]} feature rows but {len(labels)} labels")

        if not np.all(np.isfinite(matrix)):
            bad_rows = np.unique(np.nonzero(~np.isfinite(matrix))[0])
            raise ValueError(f"Missing or infinite feature values in rows {bad_rows[:10].tolist()}")

        if feature_names is not None:
            feature_names = [str(name) for name in feature_names]
            if len(feature_names) != matrix.shape[1]:
                raise ValueError(f"Got {len(feature_names)} feature names for {matrix.shape[1]} features")

        try:
            classes = sorted(set(labels))
        except TypeError as e:
            raise ValueError(f"Class labels must be mutually comparable: {e}") from e

        class_codes = {label: code for code, label in enumerate(classes)}

        matrix.setflags(write=False)

        label_array = np.empty(len(labels), dtype=object)
        label_array[:] = labels
        label_array.setflags(write=False)

        codes = np.fromiter((class_codes[label] for label in labels), dtype=np.intp, count=len(labels))
        codes.setflags(write=False)

        self.features = matrix
        self.labels = label_array
        self.label_codes = codes
        self.classes: List[Hashable] = classes
        self.feature_names: Optional[List[str]] = feature_names

    @classmethod
    def from_examples(cls, examples: Sequence[Example],
                      feature_names: Optional[Sequence[str]] = None) -> 'ExampleStore':
        """
        Build a store from Example objects.

        Args:
            examples (Sequence[Example]): Training examples
            feature_names (Sequence[str], optional): Column names

        Returns:
            ExampleStore: Validated store

        Raises:
            ValueError: If examples have feature vectors of different lengths
        """
        examples = list(examples)
        if not examples:
            n_features = len(feature_names) if feature_names is not None else 0
            return cls(np.empty((0, n_features)), [], feature_names)

        n_features = len(examples[0].features)
        for i, example in enumerate(examples):
            if len(example.features) != n_features:
                raise ValueError(
                    f"Example {i} has {len(example.features)} features, expected {n_features}"
                )

        features = np.array([example.features for example in examples], dtype=np.float64).reshape(
            len(examples), n_features
        )
        return cls(features, [example.label for example in examples], feature_names)

    @classmethod
    def from_arrays(cls, features, labels, feature_names: Optional[Sequence[str]] = None) -> 'ExampleStore':
        """Build a store from a 2-D feature array and a label sequence."""
        return cls(features, labels, feature_names)

    def __len__(self) -> int:
        return self.features.shape[0]

    def __getitem__(self, index: int) -> Example:
        return Example(tuple(self.features[index]), self.labels[index])

    def __iter__(self) -> Iterator[Example]:
        for i in range(len(self)):
            yield self[i]

    @property
    def n_features(self) -> int:
        return self.features.shape[1]

    @property
    def n_classes(self) -> int:
        return len(self.classes)

    def all_indices(self) -> np.ndarray:
        """Index array covering every example in the store."""
        return np.arange(len(self), dtype=np.intp)

    def class_counts(self, indices: np.ndarray) -> np.ndarray:
        """Per-class counts (in self.classes order) for the examples at indices."""
        return np.bincount(self.label_codes[indices], minlength=self.n_classes)

    def class_distribution(self, indices: np.ndarray) -> ClassDistribution:
        """
        Class distribution of the examples at the given indices.

        Args:
            indices (np.ndarray): Row indices into the store

        Returns:
            ClassDistribution: Counts of each class present among those rows
        """
        counts = self.class_counts(indices)
        return ClassDistribution({
            self.classes[code]: int(count) for code, count in enumerate(counts) if count > 0
        })

    def __str__(self) -> str:
        return f"ExampleStore(examples={len(self)}, features={self.n_features}, classes={self.classes})"


def load_csv_examples(csv_file_path: str,
                      label_column: int = -1,
                      header: Optional[Union[int, str]] = 'infer',
                      sep: str = ',',
                      verbose: bool = False) -> ExampleStore:
    """
    Load a labeled numeric CSV file into an ExampleStore.

    Expected CSV format (IRIS-style):
    sepal_length,sepal_width,petal_length,petal_width,species
    5.1,3.5,1.4,0.2,Iris-setosa
    7.0,3.2,4.7,1.4,Iris-versicolor

    Every column other than the label column is a numeric feature. Labels are
    read as strings.

    Args:
        csv_file_path (str): Path to the CSV file
        label_column (int): Position of the label column (negative counts from the end)
        header: Passed to pandas.read_csv. The default reads the first row as
            column names; use None for files without a header row
        sep (str): Field separator
        verbose (bool): Print a loading summary

    Returns:
        ExampleStore: Validated examples with feature names taken from the header

    Raises:
        FileNotFoundError: If CSV file doesn't exist
        ValueError: If a feature column is not numeric, a value is missing, or
            the label column is out of range
    """
    if not os.path.exists(csv_file_path):
        raise FileNotFoundError(f"CSV file not found: {csv_file_path}")

    if verbose:
        print(f"Parsing CSV input: {csv_file_path}")

    df = pd.read_csv(csv_file_path, header=header, sep=sep)

    n_columns = df.shape[1]
    if n_columns < 2:
        raise ValueError(f"CSV must have at least one feature column and a label column. Found {n_columns} column(s)")

    label_position = label_column if label_column >= 0 else n_columns + label_column
    if not 0 <= label_position < n_columns:
        raise ValueError(f"Label column {label_column} out of range for {n_columns} columns")

    feature_positions = [i for i in range(n_columns) if i != label_position]
    feature_df = df.iloc[:, feature_positions]

    try:
        features = feature_df.apply(pd.to_numeric, errors='raise').to_numpy(dtype=np.float64)
    except (TypeError, ValueError) as e:
        raise ValueError(f"Non-numeric feature value in {csv_file_path}: {e}") from e

    labels = df.iloc[:, label_position].astype(str).str.strip().tolist()
    feature_names = [str(name) for name in feature_df.columns] if header is not None else None

    store = ExampleStore(features, labels, feature_names)

    if verbose:
        print(f"Loaded {len(store)} examples with {store.n_features} features")
        print(f"Classes: {store.classes}")

    return store


def generate_synthetic_examples(n_examples: int = 100000,
                                n_features: int = 4,
                                low: float = 0.0,
                                high: float = 10.0,
                                seed: Optional[int] = None) -> ExampleStore:
    """
    Generate a random benchmark dataset.

    Feature values are drawn uniformly from [low, high). Even rows are labeled
    "ClassB" and odd rows "ClassA", so the labels carry no signal and the tree
    grows to full depth.

    Args:
        n_examples (int): Number of examples
        n_features (int): Number of feature columns
        low (float): Lower bound of feature values
        high (float): Upper bound of feature values
        seed (int, optional): Seed for numpy's random generator

    Returns:
        ExampleStore: Generated examples

    Raises:
        ValueError: If sizes are negative or the value range is empty
    """
    if n_examples < 0:
        raise ValueError(f"n_examples must be non-negative, got {n_examples}")
    if n_features < 1:
        raise ValueError(f"n_features must be at least 1, got {n_features}")
    if not high > low:
        raise ValueError(f"high must be greater than low, got low={low}, high={high}")

    rng = np.random.default_rng(seed)
    features = rng.uniform(low, high, size=(n_examples, n_features))
    labels = np.where(np.arange(n_examples) % 2 == 0, "ClassB", "ClassA").tolist()

    return ExampleStore(features, labels)
