# path: src/footyforest/models/tree.py
"""
Binary decision trees grown by Gini-impurity minimization.

Split search enumerates features in schema order and, within a feature,
candidate thresholds in ascending order (midpoints between consecutive
distinct observed values). The first (feature, threshold) pair reaching the
lowest weighted Gini impurity wins, so the tree is fully determined by its
input samples.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional, Sequence, Tuple, Union

import numpy as np

from footyforest.utils.logging_utils import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class LeafNode:
    """Terminal node: empirical class frequencies of its training samples."""

    probabilities: Dict[str, float]
    prediction: str
    n_samples: int


@dataclass(frozen=True)
class SplitNode:
    """Branching node: samples with `value <= threshold` go left."""

    feature: str
    feature_index: int
    threshold: float
    left: "Node"
    right: "Node"
    n_samples: int
    impurity: float


Node = Union[LeafNode, SplitNode]


@dataclass(frozen=True)
class SplitCandidate:
    feature_index: int
    threshold: float
    impurity: float


def gini_impurity(class_counts: Sequence[float]) -> float:
    """Gini impurity 1 - sum(p_k^2) of a label distribution given as counts."""
    counts = np.asarray(class_counts, dtype=float)
    total = counts.sum()
    if total == 0:
        return 0.0
    proportions = counts / total
    return float(1.0 - np.sum(proportions**2))


def weighted_gini(left_counts: Sequence[float], right_counts: Sequence[float]) -> float:
    """Sample-weighted Gini impurity of a two-way partition."""
    n_left = float(np.sum(left_counts))
    n_right = float(np.sum(right_counts))
    total = n_left + n_right
    if total == 0:
        return 0.0
    return (n_left / total) * gini_impurity(left_counts) + (
        n_right / total
    ) * gini_impurity(right_counts)


def find_best_split(X: np.ndarray, y: np.ndarray, n_classes: int) -> Optional[SplitCandidate]:
    """
    Return the impurity-minimizing split of (X, y), or None if no feature has
    two distinct values.

    y holds class indices in [0, n_classes).
    """
    n_samples, n_features = X.shape
    if n_samples < 2:
        return None

    onehot = np.eye(n_classes)[y]
    totals = onehot.sum(axis=0)
    n_left = np.arange(1, n_samples, dtype=float)
    n_right = n_samples - n_left

    best: Optional[SplitCandidate] = None
    for j in range(n_features):
        order = np.argsort(X[:, j], kind="mergesort")
        values = X[order, j]
        distinct = values[:-1] < values[1:]
        if not distinct.any():
            continue

        left_counts = np.cumsum(onehot[order], axis=0)[:-1]
        right_counts = totals - left_counts
        gini_left = 1.0 - np.sum((left_counts / n_left[:, None]) ** 2, axis=1)
        gini_right = 1.0 - np.sum((right_counts / n_right[:, None]) ** 2, axis=1)
        impurity = (n_left / n_samples) * gini_left + (n_right / n_samples) * gini_right
        impurity = np.where(distinct, impurity, np.inf)

        i = int(np.argmin(impurity))
        if best is None or impurity[i] < best.impurity:
            threshold = (values[i] + values[i + 1]) / 2.0
            best = SplitCandidate(j, float(threshold), float(impurity[i]))
    return best


def make_leaf(y: np.ndarray, class_labels: Sequence[str]) -> LeafNode:
    """
    Leaf with the label frequencies of `y`. The majority class is the most
    frequent one; ties go to the label that appears first in `y`.
    """
    n = len(y)
    counts = np.bincount(y, minlength=len(class_labels))
    probabilities = {
        label: (counts[k] / n if n else 0.0) for k, label in enumerate(class_labels)
    }

    first_seen: Dict[int, int] = {}
    for position, k in enumerate(y.tolist()):
        first_seen.setdefault(k, position)
    if first_seen:
        majority = max(first_seen, key=lambda k: (counts[k], -first_seen[k]))
    else:
        majority = 0
    return LeafNode(
        probabilities=probabilities,
        prediction=class_labels[majority],
        n_samples=n,
    )


@dataclass(frozen=True)
class DecisionTree:
    """A grown tree plus the schema it was trained on."""

    root: Node
    feature_names: Tuple[str, ...]
    class_labels: Tuple[str, ...]
    feature_importances: Tuple[float, ...]

    def predict(self, features: Mapping[str, float]) -> str:
        """Majority class of the leaf reached by a feature mapping."""
        return self.leaf_for(features).prediction

    def leaf_for(self, features: Mapping[str, float]) -> LeafNode:
        return predict_tree(self.root, features)

    def predict_row(self, row: np.ndarray) -> str:
        """Same as `predict` for a row already in `feature_names` order."""
        node = self.root
        while isinstance(node, SplitNode):
            node = node.left if row[node.feature_index] <= node.threshold else node.right
        return node.prediction

    @property
    def depth(self) -> int:
        return tree_depth(self.root)

    @property
    def n_leaves(self) -> int:
        return count_leaves(self.root)


def predict_tree(node: Node, features: Mapping[str, float]) -> LeafNode:
    """Route a feature mapping from `node` down to a leaf."""
    while isinstance(node, SplitNode):
        node = node.left if features[node.feature] <= node.threshold else node.right
    return node


def tree_depth(node: Node) -> int:
    if isinstance(node, LeafNode):
        return 0
    return 1 + max(tree_depth(node.left), tree_depth(node.right))


def count_leaves(node: Node) -> int:
    if isinstance(node, LeafNode):
        return 1
    return count_leaves(node.left) + count_leaves(node.right)


def iter_nodes(node: Node) -> List[Node]:
    """All nodes of a subtree in pre-order."""
    nodes: List[Node] = [node]
    if isinstance(node, SplitNode):
        nodes.extend(iter_nodes(node.left))
        nodes.extend(iter_nodes(node.right))
    return nodes


class TreeBuilder:
    """
    Grow a decision tree recursively.

    Recursion emits a leaf when the depth reaches `max_depth`, the node holds
    fewer than `min_samples_split` samples, no candidate split exists, or the
    best split would leave fewer than `min_samples_leaf` samples on either
    side. A pure node with a candidate split is still split.
    """

    def __init__(self, max_depth: int = 10, min_samples_split: int = 2, min_samples_leaf: int = 1):
        if max_depth < 0:
            raise ValueError("max_depth must be non-negative")
        if min_samples_split < 2:
            raise ValueError("min_samples_split must be at least 2")
        if min_samples_leaf < 1:
            raise ValueError("min_samples_leaf must be at least 1")
        self.max_depth = max_depth
        self.min_samples_split = min_samples_split
        self.min_samples_leaf = min_samples_leaf

    def build(
        self,
        X: np.ndarray,
        y: np.ndarray,
        feature_names: Sequence[str],
        class_labels: Sequence[str],
    ) -> DecisionTree:
        """
        Parameters
        ----------
        X : np.ndarray
            Feature matrix, shape (n_samples, n_features), columns in
            `feature_names` order.
        y : np.ndarray
            Class indices into `class_labels`.
        """
        X = np.asarray(X, dtype=float)
        y = np.asarray(y, dtype=int)
        if X.ndim != 2 or X.shape[0] == 0:
            raise ValueError("X must be a non-empty 2D array")
        if X.shape[0] != y.shape[0]:
            raise ValueError("X and y must have the same number of samples")
        if X.shape[1] != len(feature_names):
            raise ValueError("X columns do not match feature_names")

        self._feature_names = tuple(feature_names)
        self._class_labels = tuple(class_labels)
        self._importances = np.zeros(X.shape[1], dtype=float)

        root = self._build(X, y, depth=0)

        total = self._importances.sum()
        importances = self._importances / total if total > 0 else self._importances
        return DecisionTree(
            root=root,
            feature_names=self._feature_names,
            class_labels=self._class_labels,
            feature_importances=tuple(float(v) for v in importances),
        )

    def _build(self, X: np.ndarray, y: np.ndarray, depth: int) -> Node:
        n_samples = len(y)
        counts = np.bincount(y, minlength=len(self._class_labels))
        node_impurity = gini_impurity(counts)

        if depth >= self.max_depth or n_samples < self.min_samples_split:
            return make_leaf(y, self._class_labels)

        best = find_best_split(X, y, len(self._class_labels))
        if best is None:
            return make_leaf(y, self._class_labels)

        goes_left = X[:, best.feature_index] <= best.threshold
        n_left = int(goes_left.sum())
        n_right = n_samples - n_left
        if min(n_left, n_right) < self.min_samples_leaf or n_left == 0 or n_right == 0:
            return make_leaf(y, self._class_labels)

        self._importances[best.feature_index] += n_samples * (node_impurity - best.impurity)

        return SplitNode(
            feature=self._feature_names[best.feature_index],
            feature_index=best.feature_index,
            threshold=best.threshold,
            left=self._build(X[goes_left], y[goes_left], depth + 1),
            right=self._build(X[~goes_left], y[~goes_left], depth + 1),
            n_samples=n_samples,
            impurity=node_impurity,
        )
