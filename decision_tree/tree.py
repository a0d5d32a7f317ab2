from concurrent.futures import ThreadPoolExecutor
from typing import Any, Dict, Hashable, List, Optional, Sequence, Union
import time

import numpy as np

# Import our components
from data_utils import Example, ExampleStore
from nodes import TreeNode, ClassDistribution
from split_finder import BestSplitFinder


DEFAULT_MAX_DEPTH = 3

# Forking subtrees below this many levels would need 2**depth - 1 threads
MAX_SUBTREE_PARALLEL_DEPTH = 6


def _validate_tree_parameters(max_depth: int,
                              n_jobs: Optional[int],
                              subtree_parallel_depth: int,
                              search_timeout: Optional[float]) -> None:
    if max_depth < 0:
        raise ValueError(f"max_depth must be non-negative, got {max_depth}")
    if n_jobs is not None and n_jobs < 1:
        raise ValueError(f"n_jobs must be at least 1, got {n_jobs}")
    if not 0 <= subtree_parallel_depth <= MAX_SUBTREE_PARALLEL_DEPTH:
        raise ValueError(
            f"subtree_parallel_depth must be between 0 and {MAX_SUBTREE_PARALLEL_DEPTH}, "
            f"got {subtree_parallel_depth}"
        )
    if search_timeout is not None and search_timeout <= 0:
        raise ValueError(f"search_timeout must be positive, got {search_timeout}")


class TreeBuilder:
    """
    Recursive Gini tree construction over an ExampleStore.

    Each node is described by an index array into the store. The builder asks
    the BestSplitFinder for the node's split, partitions the index array on
    the winning predicate, and recurses. For nodes shallower than
    subtree_parallel_depth the right subtree is built on a separate thread
    while the current thread builds the left one.
    """

    def __init__(self,
                 store: ExampleStore,
                 finder: BestSplitFinder,
                 max_depth: int = DEFAULT_MAX_DEPTH,
                 subtree_parallel_depth: int = 1,
                 verbose: bool = False):
        """
        Args:
            store (ExampleStore): Training examples
            finder (BestSplitFinder): Running split coordinator for the same store
            max_depth (int): Depth at which every node becomes a leaf
            subtree_parallel_depth (int): Number of tree levels whose subtrees are built concurrently
            verbose (bool): Print one line per node
        """
        self.store = store
        self.finder = finder
        self.max_depth = max_depth
        self.subtree_parallel_depth = subtree_parallel_depth
        self.verbose = verbose
        self._subtree_pool: Optional[ThreadPoolExecutor] = None

    def build(self) -> TreeNode:
        """
        Build the tree over every example in the store.

        Returns:
            TreeNode: Root of the tree
        """
        indices = self.store.all_indices()
        parallel_levels = min(self.subtree_parallel_depth, self.max_depth)

        if parallel_levels == 0:
            return self._build_node(indices, depth=0, node_id=0)

        # One worker per forked right subtree, so a parent waiting on its child never starves it
        with ThreadPoolExecutor(max_workers=2 ** parallel_levels - 1,
                                thread_name_prefix='subtree') as pool:
            self._subtree_pool = pool
            try:
                return self._build_node(indices, depth=0, node_id=0)
            finally:
                self._subtree_pool = None

    def _build_node(self, indices: np.ndarray, depth: int, node_id: int) -> TreeNode:
        """
        Recursively build the subtree for the examples at indices.

        Args:
            indices (np.ndarray): Row indices of the examples reaching this node
            depth (int): Current depth in the tree
            node_id (int): Unique node identifier

        Returns:
            TreeNode: Root of the subtree
        """
        class_dist = self.store.class_distribution(indices)

        if self.verbose:
            print(f"{'  ' * depth}Building node {node_id} at depth {depth}: {class_dist}")

        if self._is_stopping_condition(class_dist, depth):
            return self._make_leaf(class_dist, depth, node_id)

        split = self.finder.find_best_split(indices)
        if split is None:
            if self.verbose:
                print(f"{'  ' * depth}No split candidates, creating leaf")
            return self._make_leaf(class_dist, depth, node_id)

        if self.verbose:
            print(f"{'  ' * depth}Splitting on column {split.column} <= {split.threshold:.4f} "
                  f"(gini={split.gini:.4f})")

        goes_left = self.store.features[indices, split.column] <= split.threshold
        left_indices = indices[goes_left]
        right_indices = indices[~goes_left]

        if self._subtree_pool is not None and depth < self.subtree_parallel_depth:
            right_future = self._subtree_pool.submit(
                self._build_node, right_indices, depth + 1, node_id * 2 + 2
            )
            left_child = self._build_node(left_indices, depth + 1, node_id * 2 + 1)
            right_child = right_future.result()
        else:
            left_child = self._build_node(left_indices, depth + 1, node_id * 2 + 1)
            right_child = self._build_node(right_indices, depth + 1, node_id * 2 + 2)

        node = TreeNode(
            column=split.column,
            threshold=split.threshold,
            left_child=left_child,
            right_child=right_child,
            depth=depth,
            node_id=node_id,
            class_distribution=class_dist
        )
        node.split_gini = split.gini
        return node

    def _is_stopping_condition(self, class_dist: ClassDistribution, depth: int) -> bool:
        """
        Check if we should stop splitting at this node.

        Empty nodes, nodes at max_depth and pure nodes become leaves.
        """
        if class_dist.total_count == 0:
            return True

        if depth >= self.max_depth:
            if self.verbose:
                print(f"{'  ' * depth}Stopping: max depth {self.max_depth} reached")
            return True

        if class_dist.is_pure:
            if self.verbose:
                print(f"{'  ' * depth}Stopping: node is pure")
            return True

        return False

    def _make_leaf(self, class_dist: ClassDistribution, depth: int, node_id: int) -> TreeNode:
        leaf = TreeNode(depth=depth, node_id=node_id, class_distribution=class_dist)
        if self.verbose:
            print(f"{'  ' * depth}Created leaf: class={leaf.class_label}, impurity={leaf.impurity:.4f}")
        return leaf


def build_tree(examples: Union[ExampleStore, Sequence[Example]],
               max_depth: int = DEFAULT_MAX_DEPTH,
               n_jobs: Optional[int] = None,
               subtree_parallel_depth: int = 1,
               search_timeout: Optional[float] = None,
               verbose: bool = False) -> TreeNode:
    """
    Induce a Gini decision tree.

    Args:
        examples (ExampleStore or Sequence[Example]): Training examples
        max_depth (int): Maximum tree depth; nodes at this depth are leaves
        n_jobs (int, optional): Number of concurrent column workers
        subtree_parallel_depth (int): Number of levels whose two subtrees are
            built concurrently (0 = serial recursion)
        search_timeout (float, optional): Per-node deadline for the split search
        verbose (bool): Print build progress

    Returns:
        TreeNode: Root of the tree. Empty input gives a single UNKNOWN_CLASS leaf.

    Raises:
        ValueError: If the examples are malformed or a parameter is out of range
        SplitSearchTimeout: If search_timeout is set and a split search misses it
    """
    _validate_tree_parameters(max_depth, n_jobs, subtree_parallel_depth, search_timeout)

    store = examples if isinstance(examples, ExampleStore) else ExampleStore.from_examples(examples)

    with BestSplitFinder(store, n_jobs=n_jobs, timeout=search_timeout) as finder:
        builder = TreeBuilder(store, finder,
                              max_depth=max_depth,
                              subtree_parallel_depth=subtree_parallel_depth,
                              verbose=verbose)
        return builder.build()


class DecisionTreeClassifier:
    """
    Decision Tree Classifier using Gini impurity and concurrent split search.

    Builds binary trees over numeric features with `feature <= threshold`
    splits; leaves predict the majority class of their training examples.
    """

    def __init__(self,
                 max_depth: int = DEFAULT_MAX_DEPTH,
                 n_jobs: Optional[int] = None,
                 subtree_parallel_depth: int = 1,
                 search_timeout: Optional[float] = None,
                 verbose: bool = False):
        """
        Initialize the Decision Tree Classifier.

        Args:
            max_depth (int): Maximum depth of the tree
            n_jobs (int, optional): Number of concurrent column workers
                (default: one per feature, capped at the CPU count)
            subtree_parallel_depth (int): Number of tree levels whose left and
                right subtrees are built concurrently
            search_timeout (float, optional): Per-node deadline in seconds for the split search
            verbose (bool): Print training progress

        Raises:
            ValueError: If a parameter is out of range
        """
        _validate_tree_parameters(max_depth, n_jobs, subtree_parallel_depth, search_timeout)

        self.max_depth = max_depth
        self.n_jobs = n_jobs
        self.subtree_parallel_depth = subtree_parallel_depth
        self.search_timeout = search_timeout
        self.verbose = verbose

        # Tree components
        self.root: Optional[TreeNode] = None
        self.feature_names: Optional[List[str]] = None
        self.classes: List[Hashable] = []
        self.n_features: int = 0
        self.n_samples: int = 0

        # Training metadata
        self.training_time: float = 0.0
        self.node_count: int = 0
        self.leaf_count: int = 0
        self.max_tree_depth: int = 0

    def fit(self, features, labels: Sequence[Hashable],
            feature_names: Optional[Sequence[str]] = None) -> 'DecisionTreeClassifier':
        """
        Build a decision tree from a feature matrix and labels.

        Args:
            features (array-like): 2-D matrix with shape (n_samples, n_features)
            labels (Sequence[Hashable]): One class label per row
            feature_names (Sequence[str], optional): Column names used when printing

        Returns:
            DecisionTreeClassifier: Fitted classifier (self)

        Raises:
            ValueError: If the matrix is ragged, contains missing values, or
                doesn't match the labels
        """
        return self.fit_store(ExampleStore.from_arrays(features, labels, feature_names))

    def fit_examples(self, examples: Sequence[Example],
                     feature_names: Optional[Sequence[str]] = None) -> 'DecisionTreeClassifier':
        """Build a decision tree from Example objects."""
        return self.fit_store(ExampleStore.from_examples(examples, feature_names))

    def fit_store(self, store: ExampleStore) -> 'DecisionTreeClassifier':
        """
        Build a decision tree from an already validated ExampleStore.

        Args:
            store (ExampleStore): Training examples

        Returns:
            DecisionTreeClassifier: Fitted classifier (self)
        """
        if self.verbose:
            print(f"Training Decision Tree (max_depth={self.max_depth}, n_jobs={self.n_jobs}, "
                  f"subtree_parallel_depth={self.subtree_parallel_depth})...")
            print(f"Training data: {len(store)} samples, {store.n_features} features")

        start_time = time.perf_counter()

        self.root = build_tree(store,
                               max_depth=self.max_depth,
                               n_jobs=self.n_jobs,
                               subtree_parallel_depth=self.subtree_parallel_depth,
                               search_timeout=self.search_timeout,
                               verbose=self.verbose)

        # Update training metadata
        self.training_time = time.perf_counter() - start_time
        self.feature_names = store.feature_names
        self.classes = list(store.classes)
        self.n_features = store.n_features
        self.n_samples = len(store)
        self.node_count = self.root.get_node_count()
        self.leaf_count = self.root.get_leaf_count()
        self.max_tree_depth = self.root.get_max_depth()

        if self.verbose:
            print(f"Training completed in {self.training_time:.3f}s")
            print(f"Tree: {self.node_count} nodes, {self.leaf_count} leaves, max depth {self.max_tree_depth}")

        return self

    def predict(self, samples) -> List[Hashable]:
        """
        Predict classes for samples.

        Args:
            samples (array-like): Feature vectors, one per sample

        Returns:
            List[Hashable]: Predicted class labels

        Raises:
            ValueError: If the tree isn't trained or a sample has the wrong number of features
        """
        if self.root is None:
            raise ValueError("Tree not trained. Call fit() first.")

        predictions = []
        for i, sample in enumerate(samples):
            if len(sample) != self.n_features:
                raise ValueError(f"Sample {i} has {len(sample)} features, expected {self.n_features}")
            predictions.append(self.root.predict_single(sample))

        return predictions

    def print_tree(self) -> None:
        """Print a visual representation of the decision tree."""
        if self.root is None:
            print("Tree not trained.")
            return

        print(f"\nDecision Tree (criterion=gini, max_depth={self.max_depth}):")
        print(f"Training samples: {self.n_samples}, Features: {self.n_features}")
        print(f"Nodes: {self.node_count}, Leaves: {self.leaf_count}, Max depth: {self.max_tree_depth}")
        print("-" * 80)
        self.root.print_tree(self.feature_names)
        print("-" * 80)

    def to_json(self) -> Dict[str, Any]:
        """
        Convert the trained tree to a JSON-serializable dictionary.

        Returns:
            Dict[str, Any]: Model parameters, training metadata and the tree
                (None before training)
        """
        return {
            'model_info': {
                'criterion': 'gini',
                'max_depth': self.max_depth,
                'n_features': self.n_features,
                'n_samples': self.n_samples,
                'feature_names': self.feature_names,
                'classes': [str(label) for label in self.classes],
                'node_count': self.node_count,
                'leaf_count': self.leaf_count,
                'max_tree_depth': self.max_tree_depth,
                'training_time': round(self.training_time, 4),
                'trained': self.root is not None
            },
            'tree': self.root.to_json() if self.root is not None else None
        }

    def __str__(self) -> str:
        return (f"DecisionTreeClassifier(max_depth={self.max_depth}, n_jobs={self.n_jobs}, "
                f"subtree_parallel_depth={self.subtree_parallel_depth}, trained={self.root is not None})")
