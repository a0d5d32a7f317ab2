from typing import Optional, Dict, Any, Hashable, List, Sequence
from dataclasses import dataclass, field

from impurity import ImpurityCalculator, UNKNOWN_CLASS


@dataclass
class ClassDistribution:
    """
    Class distribution information for tree nodes.

    Stores the count of each class among the examples that reached a node.
    """
    counts: Dict[Hashable, int] = field(default_factory=dict)

    @property
    def total_count(self) -> int:
        """Total number of samples at this node."""
        return sum(self.counts.values())

    def probability(self, label: Hashable) -> float:
        """Relative frequency of a class (0.0 for an empty node)."""
        if self.total_count == 0:
            return 0.0
        return self.counts.get(label, 0) / self.total_count

    @property
    def majority_class(self) -> Hashable:
        """Most frequent class, UNKNOWN_CLASS for an empty node."""
        return ImpurityCalculator.majority_class(self.counts)

    @property
    def is_pure(self) -> bool:
        """True when at most one class is present."""
        return sum(1 for count in self.counts.values() if count > 0) <= 1

    @property
    def confidence(self) -> float:
        """Confidence of the prediction (proportion of majority class)."""
        if self.total_count == 0:
            return 0.0
        return self.probability(self.majority_class)

    @property
    def gini(self) -> float:
        """Gini impurity of this distribution."""
        return ImpurityCalculator.calculate_gini(self.counts, self.total_count)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            'counts': {str(label): count for label, count in sorted(self.counts.items())},
            'total_count': self.total_count,
            'majority_class': str(self.majority_class),
            'confidence': round(self.confidence, 4)
        }

    def __str__(self) -> str:
        counts = ", ".join(f"{label}={count}" for label, count in sorted(self.counts.items()))
        return f"ClassDist({counts or 'empty'})"


class TreeNode:
    """
    Node in a decision tree.

    Either an internal node, which splits on `feature[column] <= threshold`
    and owns exactly two children, or a leaf node carrying a class label.
    """

    def __init__(self,
                 class_label: Optional[Hashable] = None,
                 column: Optional[int] = None,
                 threshold: Optional[float] = None,
                 left_child: Optional['TreeNode'] = None,
                 right_child: Optional['TreeNode'] = None,
                 depth: int = 0,
                 node_id: Optional[int] = None,
                 class_distribution: Optional[ClassDistribution] = None):
        """
        Initialize a tree node.

        Passing a column makes an internal node; otherwise the node is a leaf.

        Args:
            class_label (Hashable, optional): Leaf prediction. Defaults to the majority
                class of class_distribution, or UNKNOWN_CLASS without one
            column (int, optional): Feature column tested by an internal node
            threshold (float, optional): Split value; examples with
                feature[column] <= threshold go left
            left_child (TreeNode, optional): Subtree for feature[column] <= threshold
            right_child (TreeNode, optional): Subtree for feature[column] > threshold
            depth (int): Depth of this node in the tree (root = 0)
            node_id (int, optional): Unique identifier for this node
            class_distribution (ClassDistribution, optional): Classes of the examples
                that reached this node

        Raises:
            ValueError: If an internal node is missing its threshold or a child,
                or a leaf is given split fields
        """
        if column is None:
            if left_child is not None or right_child is not None or threshold is not None:
                raise ValueError("Leaf nodes cannot have a threshold or children")
            if class_label is None:
                class_label = class_distribution.majority_class if class_distribution else UNKNOWN_CLASS
        else:
            if threshold is None or left_child is None or right_child is None:
                raise ValueError(
                    f"Internal node on column {column} needs a threshold and both children"
                )
            if class_label is not None:
                raise ValueError("Internal nodes cannot carry a class label")

        # Node identification
        self.node_id = node_id
        self.depth = depth

        # Split information (for internal nodes)
        self.column = column
        self.threshold = float(threshold) if threshold is not None else None

        # Tree structure
        self.left_child = left_child    # feature <= threshold path
        self.right_child = right_child  # feature > threshold path

        # Leaf information
        self.is_leaf = column is None
        self.class_label = class_label
        self.class_distribution = class_distribution

        # Metadata for analysis
        self.impurity: Optional[float] = class_distribution.gini if class_distribution else None
        self.split_gini: Optional[float] = None  # Weighted Gini of the chosen split

    def get_data_count(self) -> int:
        """Total number of training examples that reached this node."""
        return self.class_distribution.total_count if self.class_distribution else 0

    def predict_single(self, sample: Sequence[float]) -> Hashable:
        """
        Predict the class for a single sample by traversing the tree.

        Args:
            sample (Sequence[float]): Feature values, indexed by column

        Returns:
            Hashable: Predicted class label
        """
        if self.is_leaf:
            return self.class_label

        if sample[self.column] <= self.threshold:
            return self.left_child.predict_single(sample)
        return self.right_child.predict_single(sample)

    def get_leaf_count(self) -> int:
        """Number of leaf nodes in the subtree rooted at this node."""
        if self.is_leaf:
            return 1
        return self.left_child.get_leaf_count() + self.right_child.get_leaf_count()

    def get_node_count(self) -> int:
        """Total number of nodes in the subtree rooted at this node."""
        if self.is_leaf:
            return 1
        return 1 + self.left_child.get_node_count() + self.right_child.get_node_count()

    def get_max_depth(self) -> int:
        """
        Get the maximum depth of the subtree rooted at this node.

        Returns:
            int: Depth of the deepest leaf (absolute, root = 0)
        """
        if self.is_leaf:
            return self.depth
        return max(self.left_child.get_max_depth(), self.right_child.get_max_depth())

    def to_json(self) -> Dict[str, Any]:
        """
        Convert node to JSON-serializable dictionary.

        Returns:
            Dict[str, Any]: JSON representation of the subtree
        """
        node_dict = {
            'node_id': self.node_id,
            'depth': self.depth,
            'is_leaf': self.is_leaf,
            'samples': self.get_data_count(),
        }

        if self.class_distribution is not None:
            node_dict['class_distribution'] = self.class_distribution.to_dict()

        if self.impurity is not None:
            node_dict['impurity'] = round(self.impurity, 4)

        if self.is_leaf:
            node_dict['type'] = 'leaf'
            node_dict['class_label'] = str(self.class_label)
        else:
            node_dict['type'] = 'internal'
            node_dict['column'] = self.column
            node_dict['threshold'] = self.threshold

            if self.split_gini is not None:
                node_dict['split_gini'] = round(self.split_gini, 4)

            node_dict['left_child'] = self.left_child.to_json()
            node_dict['right_child'] = self.right_child.to_json()

        return node_dict

    def to_text(self, feature_names: Optional[Sequence[str]] = None) -> str:
        """
        Render the subtree as indented text.

        Internal nodes print "Feature <column> <= <threshold>", then the left
        subtree, then "else" and the right subtree; leaves print "Class: <label>".

        Args:
            feature_names (Sequence[str], optional): Names to show instead of column numbers

        Returns:
            str: One line per node plus one "else" line per internal node
        """
        lines: List[str] = []
        self._append_text_lines(lines, 0, feature_names)
        return "\n".join(lines)

    def _append_text_lines(self, lines: List[str], indent: int,
                           feature_names: Optional[Sequence[str]]) -> None:
        indent_str = "  " * indent

        if self.is_leaf:
            lines.append(f"{indent_str}Class: {self.class_label}")
            return

        if feature_names is not None:
            feature = feature_names[self.column]
        else:
            feature = f"Feature {self.column}"

        lines.append(f"{indent_str}{feature} <= {self.threshold:.2f}")
        self.left_child._append_text_lines(lines, indent + 1, feature_names)
        lines.append(f"{indent_str}else")
        self.right_child._append_text_lines(lines, indent + 1, feature_names)

    def print_tree(self, feature_names: Optional[Sequence[str]] = None) -> None:
        """Print a visual representation of the tree."""
        print(self.to_text(feature_names))

    def __str__(self) -> str:
        """String representation of the node."""
        if self.is_leaf:
            return f"LeafNode(depth={self.depth}, label={self.class_label}, {self.class_distribution})"
        return f"InternalNode(depth={self.depth}, column={self.column}, threshold={self.threshold:.4f})"

    def __repr__(self) -> str:
        return self.__str__()
