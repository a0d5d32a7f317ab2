import unittest
import sys
import os
import io
import json
from contextlib import redirect_stdout

import numpy as np

# Add the parent directory to the path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from data_utils import Example, ExampleStore, generate_synthetic_examples
from impurity import ImpurityCalculator, UNKNOWN_CLASS
from nodes import TreeNode
from tree import DecisionTreeClassifier, build_tree, DEFAULT_MAX_DEPTH


def make_iris_like_store(n_per_class: int = 40, seed: int = 0) -> ExampleStore:
    """Three well separated classes over two features, plus one noise feature."""
    rng = np.random.default_rng(seed)
    blocks, labels = [], []
    for label, center in (("setosa", 1.0), ("versicolor", 5.0), ("virginica", 9.0)):
        block = np.column_stack([
            rng.normal(center, 0.3, n_per_class),
            rng.normal(center, 0.3, n_per_class),
            rng.uniform(0.0, 10.0, n_per_class),
        ])
        blocks.append(block)
        labels.extend([label] * n_per_class)
    return ExampleStore(np.vstack(blocks), labels, ["petal_length", "petal_width", "noise"])


class TreeAssertions(unittest.TestCase):

    def assertPartitionsConsistent(self, store: ExampleStore, node: TreeNode, indices: np.ndarray):
        """
        Walk the tree, re-deriving each node's examples from the root, and check
        partition sides, sample counts and majority labels at every node.
        """
        self.assertEqual(node.get_data_count(), len(indices))

        if node.is_leaf:
            self.assertIsNone(node.left_child)
            self.assertIsNone(node.right_child)
            expected = ImpurityCalculator.majority_class_of(store.labels[indices])
            self.assertEqual(node.class_label, expected)
            return

        self.assertIsNotNone(node.left_child)
        self.assertIsNotNone(node.right_child)

        values = store.features[indices, node.column]
        left = indices[values <= node.threshold]
        right = indices[values > node.threshold]
        self.assertEqual(len(left) + len(right), len(indices))
        self.assertTrue(np.all(store.features[left, node.column] <= node.threshold))
        self.assertTrue(np.all(store.features[right, node.column] > node.threshold))

        self.assertEqual(node.left_child.depth, node.depth + 1)
        self.assertEqual(node.right_child.depth, node.depth + 1)
        self.assertEqual(node.left_child.node_id, node.node_id * 2 + 1)
        self.assertEqual(node.right_child.node_id, node.node_id * 2 + 2)

        self.assertPartitionsConsistent(store, node.left_child, left)
        self.assertPartitionsConsistent(store, node.right_child, right)


class TestBuildTree(TreeAssertions):
    """Test the recursive builder entry point."""

    def test_four_example_scenario(self):
        """Root splits column 0 at 5.5 with pure leaves A and B."""
        examples = [
            Example([1.0], "A"),
            Example([2.0], "A"),
            Example([9.0], "B"),
            Example([10.0], "B"),
        ]
        root = build_tree(examples, max_depth=1)

        self.assertFalse(root.is_leaf)
        self.assertEqual(root.column, 0)
        self.assertEqual(root.threshold, 5.5)
        self.assertEqual(root.split_gini, 0.0)
        self.assertTrue(root.left_child.is_leaf)
        self.assertTrue(root.right_child.is_leaf)
        self.assertEqual(root.left_child.class_label, "A")
        self.assertEqual(root.right_child.class_label, "B")

    def test_single_label_gives_root_leaf(self):
        """A pure example set is a leaf at any max_depth."""
        examples = [Example([float(i), float(i % 3)], "only") for i in range(10)]
        for max_depth in (0, 1, 3, 10):
            root = build_tree(examples, max_depth=max_depth)
            self.assertTrue(root.is_leaf, f"max_depth={max_depth}")
            self.assertEqual(root.class_label, "only")

    def test_empty_input_gives_unknown_leaf(self):
        root = build_tree([])
        self.assertTrue(root.is_leaf)
        self.assertEqual(root.class_label, UNKNOWN_CLASS)
        self.assertEqual(root.get_data_count(), 0)

    def test_single_example(self):
        root = build_tree([Example([1.0, 2.0], "A")])
        self.assertTrue(root.is_leaf)
        self.assertEqual(root.class_label, "A")

    def test_max_depth_zero_gives_majority_leaf(self):
        examples = [Example([1.0], "A"), Example([2.0], "B"), Example([3.0], "B")]
        root = build_tree(examples, max_depth=0)
        self.assertTrue(root.is_leaf)
        self.assertEqual(root.class_label, "B")

    def test_majority_tie_at_depth_limit(self):
        examples = [Example([1.0], "B"), Example([2.0], "A")]
        root = build_tree(examples, max_depth=0)
        self.assertEqual(root.class_label, "A")

    def test_default_max_depth(self):
        store = generate_synthetic_examples(400, n_features=3, seed=1)
        root = build_tree(store)
        self.assertEqual(DEFAULT_MAX_DEPTH, 3)
        self.assertLessEqual(root.get_max_depth(), 3)

    def test_depth_never_exceeds_max_depth(self):
        store = generate_synthetic_examples(300, n_features=3, seed=5)
        for max_depth in (1, 2, 4):
            root = build_tree(store, max_depth=max_depth)
            self.assertLessEqual(root.get_max_depth(), max_depth)
            # Labels carry no signal, so the tree grows to the limit
            self.assertEqual(root.get_max_depth(), max_depth)

    def test_partitions_and_leaf_labels(self):
        """Every leaf predicts the majority of the examples that reach it."""
        store = generate_synthetic_examples(250, n_features=4, seed=11)
        root = build_tree(store, max_depth=4, n_jobs=4, subtree_parallel_depth=2)
        self.assertPartitionsConsistent(store, root, store.all_indices())

        iris = make_iris_like_store()
        root = build_tree(iris, max_depth=3)
        self.assertPartitionsConsistent(iris, root, iris.all_indices())

    def test_deterministic_across_scheduling(self):
        """Worker counts and subtree fan-out never change the tree."""
        store = generate_synthetic_examples(300, n_features=5, seed=3)
        reference = build_tree(store, max_depth=4, n_jobs=1, subtree_parallel_depth=0).to_json()

        for n_jobs in (1, 2, 5):
            for subtree_parallel_depth in (0, 1, 3, 6):
                root = build_tree(store, max_depth=4, n_jobs=n_jobs,
                                  subtree_parallel_depth=subtree_parallel_depth)
                self.assertEqual(root.to_json(), reference,
                                 f"n_jobs={n_jobs}, subtree_parallel_depth={subtree_parallel_depth}")

    def test_repeated_runs_identical(self):
        store = make_iris_like_store(seed=2)
        first = build_tree(store, max_depth=3, n_jobs=3, subtree_parallel_depth=3).to_text()
        for _ in range(5):
            self.assertEqual(build_tree(store, max_depth=3, n_jobs=3, subtree_parallel_depth=3).to_text(), first)

    def test_identical_features_terminate(self):
        """Unsplittable examples send everything left; the empty right side is an unknown leaf."""
        examples = [Example([1.0, 1.0], "A"), Example([1.0, 1.0], "B"), Example([1.0, 1.0], "B")]
        root = build_tree(examples, max_depth=3)

        self.assertFalse(root.is_leaf)
        self.assertEqual(root.threshold, 1.0)
        self.assertEqual(root.right_child.class_label, UNKNOWN_CLASS)
        self.assertEqual(root.right_child.get_data_count(), 0)
        self.assertEqual(root.get_max_depth(), 3)
        self.assertPartitionsConsistent(ExampleStore.from_examples(examples), root, np.arange(3))

    def test_huge_feature_values(self):
        """Values near the float max still split into two labelled leaves with a finite threshold."""
        examples = [Example([1e308], "A"), Example([1.7e308], "B")]
        root = build_tree(examples, max_depth=1)

        self.assertTrue(np.isfinite(root.threshold))
        self.assertEqual(root.left_child.class_label, "A")
        self.assertEqual(root.right_child.class_label, "B")
        # Strict JSON rejects Infinity
        json.dumps(root.to_json(), allow_nan=False)

    def test_ragged_examples_rejected(self):
        """Inconsistent feature vector lengths fail before training starts."""
        examples = [Example([1.0, 2.0], "A"), Example([3.0], "B")]
        with self.assertRaises(ValueError):
            build_tree(examples)

    def test_missing_values_rejected(self):
        with self.assertRaises(ValueError):
            build_tree([Example([1.0, float('nan')], "A"), Example([2.0, 3.0], "B")])

    def test_invalid_parameters(self):
        examples = [Example([1.0], "A")]
        with self.assertRaises(ValueError):
            build_tree(examples, max_depth=-1)
        with self.assertRaises(ValueError):
            build_tree(examples, n_jobs=0)
        with self.assertRaises(ValueError):
            build_tree(examples, subtree_parallel_depth=7)
        with self.assertRaises(ValueError):
            build_tree(examples, search_timeout=-1.0)

    def test_verbose_progress(self):
        buffer = io.StringIO()
        with redirect_stdout(buffer):
            build_tree([Example([1.0], "A"), Example([9.0], "B")], max_depth=2, verbose=True)
        output = buffer.getvalue()
        self.assertIn("Building node 0 at depth 0", output)
        self.assertIn("Splitting on column 0", output)
        self.assertIn("Stopping: node is pure", output)


class TestDecisionTreeClassifier(TreeAssertions):
    """Test the classifier facade."""

    def test_fit_and_predict(self):
        store = make_iris_like_store()
        classifier = DecisionTreeClassifier(max_depth=3, n_jobs=3)
        result = classifier.fit(store.features, list(store.labels), store.feature_names)

        self.assertIs(result, classifier)
        predictions = classifier.predict(store.features)
        accuracy = np.mean(np.array(predictions, dtype=object) == store.labels)
        self.assertEqual(accuracy, 1.0)

        self.assertEqual(classifier.predict([[1.0, 1.0, 5.0], [9.0, 9.0, 5.0]]), ["setosa", "virginica"])
        self.assertIn(classifier.root.column, (0, 1))

    def test_training_metadata(self):
        classifier = DecisionTreeClassifier(max_depth=2)
        classifier.fit_examples([
            Example([1.0], "A"), Example([2.0], "A"), Example([9.0], "B"), Example([10.0], "B"),
        ])
        self.assertEqual(classifier.n_samples, 4)
        self.assertEqual(classifier.n_features, 1)
        self.assertEqual(classifier.classes, ["A", "B"])
        self.assertEqual(classifier.node_count, 3)
        self.assertEqual(classifier.leaf_count, 2)
        self.assertEqual(classifier.max_tree_depth, 1)
        self.assertGreaterEqual(classifier.training_time, 0.0)

    def test_predict_before_fit(self):
        with self.assertRaises(ValueError):
            DecisionTreeClassifier().predict([[1.0]])

    def test_predict_wrong_feature_count(self):
        classifier = DecisionTreeClassifier().fit([[1.0, 2.0], [3.0, 4.0]], ["A", "B"])
        with self.assertRaises(ValueError):
            classifier.predict([[1.0]])

    def test_fit_rejects_mismatched_labels(self):
        with self.assertRaises(ValueError):
            DecisionTreeClassifier().fit([[1.0], [2.0]], ["A"])

    def test_constructor_validation(self):
        with self.assertRaises(ValueError):
            DecisionTreeClassifier(max_depth=-2)
        with self.assertRaises(ValueError):
            DecisionTreeClassifier(subtree_parallel_depth=-1)

    def test_json_before_and_after_training(self):
        classifier = DecisionTreeClassifier(max_depth=1)
        before = classifier.to_json()
        self.assertFalse(before['model_info']['trained'])
        self.assertIsNone(before['tree'])

        classifier.fit([[1.0], [2.0], [9.0], [10.0]], ["A", "A", "B", "B"])
        after = classifier.to_json()
        self.assertTrue(after['model_info']['trained'])
        self.assertEqual(after['model_info']['criterion'], 'gini')
        self.assertEqual(after['model_info']['classes'], ['A', 'B'])
        self.assertEqual(after['tree']['threshold'], 5.5)
        json.dumps(after)

    def test_print_tree(self):
        classifier = DecisionTreeClassifier(max_depth=1)
        buffer = io.StringIO()
        with redirect_stdout(buffer):
            classifier.print_tree()
            classifier.fit([[1.0], [2.0], [9.0], [10.0]], ["A", "A", "B", "B"], ["x"])
            classifier.print_tree()
        output = buffer.getvalue()
        self.assertIn("Tree not trained.", output)
        self.assertIn("x <= 5.50", output)
        self.assertIn("Class: A", output)
        self.assertIn("else", output)

    def test_str(self):
        self.assertIn("trained=False", str(DecisionTreeClassifier()))


if __name__ == '__main__':
    unittest.main(verbosity=2)
