#!/usr/bin/env python3
"""
Train a Gini decision tree on a CSV file or a synthetic dataset and print it.

Usage:
    python tree_demo.py --csv IRIS.csv
    python tree_demo.py --synthetic 100000 --features 4 --seed 7
    python tree_demo.py --csv data.csv --max-depth 5 --n-jobs 8 --json
"""

import argparse
import json
import os
import sys

from data_utils import ExampleStore, generate_synthetic_examples, load_csv_examples
from tree import DEFAULT_MAX_DEPTH, DecisionTreeClassifier


def parse_arguments(argv=None):
    """
    Parse command line arguments.

    Returns:
        argparse.Namespace: Parsed command line arguments
    """
    parser = argparse.ArgumentParser(
        description="Train a decision tree with concurrent Gini split search",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Train on a CSV whose last column is the class label
  python tree_demo.py --csv IRIS.csv

  # Benchmark on 100000 random examples with 4 features
  python tree_demo.py --synthetic 100000 --features 4

  # Deeper tree, 8 column workers, subtrees built concurrently on 2 levels
  python tree_demo.py --csv data.csv --max-depth 5 --n-jobs 8 --subtree-parallel-depth 2
        """
    )

    source = parser.add_mutually_exclusive_group(required=True)
    source.add_argument(
        '--csv',
        help=('Path to a CSV file: numeric feature columns and a label column. '
              'The first row is read as a header unless --no-header is given')
    )
    source.add_argument(
        '--synthetic',
        type=int,
        metavar='N',
        help='Generate N random examples instead of reading a file'
    )

    parser.add_argument(
        '--features',
        type=int,
        default=4,
        help='Number of features for --synthetic data (default: 4)'
    )
    parser.add_argument(
        '--seed',
        type=int,
        help='Random seed for --synthetic data'
    )
    parser.add_argument(
        '--no-header',
        action='store_true',
        help='CSV file has no header row, so every row is data'
    )
    parser.add_argument(
        '--label-column',
        type=int,
        default=-1,
        help='Position of the label column in the CSV (default: -1, the last column)'
    )
    parser.add_argument(
        '--max-depth',
        type=int,
        default=DEFAULT_MAX_DEPTH,
        help=f'Maximum tree depth (default: {DEFAULT_MAX_DEPTH})'
    )
    parser.add_argument(
        '--n-jobs',
        type=int,
        help='Number of concurrent column workers (default: one per feature, up to the CPU count)'
    )
    parser.add_argument(
        '--subtree-parallel-depth',
        type=int,
        default=1,
        help='Number of tree levels whose subtrees are built concurrently (default: 1)'
    )
    parser.add_argument(
        '--timeout',
        type=float,
        help='Per-node split search deadline in seconds'
    )
    parser.add_argument(
        '--json',
        action='store_true',
        help='Print the tree as JSON instead of text'
    )
    parser.add_argument(
        '--verbose', '-v',
        action='store_true',
        help='Enable verbose output'
    )

    return parser.parse_args(argv)


def validate_inputs(args) -> bool:
    """
    Validate command line arguments and input files.

    Args:
        args: Parsed command line arguments

    Returns:
        bool: True if inputs are valid
    """
    if args.csv is not None and not os.path.exists(args.csv):
        print(f"ERROR: Input file '{args.csv}' not found")
        return False

    if args.synthetic is not None and args.synthetic < 0:
        print(f"ERROR: --synthetic must be non-negative, got {args.synthetic}")
        return False

    if args.features < 1:
        print(f"ERROR: --features must be at least 1, got {args.features}")
        return False

    return True


def load_examples(args) -> ExampleStore:
    """Load or generate the training examples selected on the command line."""
    if args.csv is not None:
        return load_csv_examples(
            args.csv,
            label_column=args.label_column,
            header=None if args.no_header else 'infer',
            verbose=args.verbose
        )

    if args.verbose:
        print(f"Generating {args.synthetic} synthetic examples with {args.features} features")
    return generate_synthetic_examples(args.synthetic, n_features=args.features, seed=args.seed)


def main(argv=None) -> int:
    """
    Main function to process command line arguments and train the tree.
    """
    args = parse_arguments(argv)

    if not validate_inputs(args):
        return 1

    try:
        examples = load_examples(args)
        classifier = DecisionTreeClassifier(
            max_depth=args.max_depth,
            n_jobs=args.n_jobs,
            subtree_parallel_depth=args.subtree_parallel_depth,
            search_timeout=args.timeout,
            verbose=args.verbose
        )
        classifier.fit_store(examples)
    except (ValueError, FileNotFoundError, TimeoutError) as e:
        print(f"ERROR: {e}")
        return 1

    if args.json:
        # training_time is already part of model_info
        print(json.dumps(classifier.to_json(), indent=2))
    else:
        classifier.root.print_tree(classifier.feature_names)
        print(f"Training time: {classifier.training_time:.3f}s")
    return 0


if __name__ == "__main__":
    sys.exit(main())
