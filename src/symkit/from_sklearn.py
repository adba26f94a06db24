"""Conversion of fitted scikit-learn trees and forests into symbolic models.

Only consumption is supported: the estimators must already be fitted. Each
internal node `feature <= threshold` becomes a `Branch` whose positive side is
sklearn's left child. Classification leaves predict the majority class of the
node; regression leaves predict the node's mean.

Forests vote by simple majority (classification) or by averaging
(regression). scikit-learn's `RandomForestClassifier.predict` averages class
probabilities instead, so the two can disagree on close votes.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

import numpy as np
from loguru import logger
from sklearn.ensemble import RandomForestClassifier, RandomForestRegressor
from sklearn.tree import DecisionTreeClassifier, DecisionTreeRegressor

from symkit.logic import Atom, NumericThreshold, ScalarCondition, VariableValue
from symkit.models import Branch, ConstantModel, DecisionForest, DecisionTree, ModelInfo

type SklearnTree = DecisionTreeClassifier | DecisionTreeRegressor

type SklearnForest = RandomForestClassifier | RandomForestRegressor


def tree_from_sklearn(
    estimator: SklearnTree,
    feature_names: Sequence[str] | None = None,
    *,
    info: ModelInfo | None = None,
) -> DecisionTree:
    """Convert a fitted sklearn decision tree into a DecisionTree.

    Args:
        estimator (SklearnTree): A fitted single-output classifier or regressor.
        feature_names (Sequence[str] | None): Variable name of each feature
            column. Defaults to `estimator.feature_names_in_` when the tree was
            fitted on a DataFrame, else `feature_0`, `feature_1`, ...
        info (ModelInfo | None): Annotations of the new tree.

    Returns:
        DecisionTree: The equivalent symbolic tree.

    Raises:
        ValueError: If the estimator is multi-output or `feature_names` has the
            wrong length.
    """
    names = _resolve_feature_names(estimator, feature_names)
    classes = getattr(estimator, "classes_", None)
    root = _build_node(estimator.tree_, 0, feature_names=names, classes=classes)
    tree = DecisionTree(root=root, info=info or ModelInfo())
    logger.debug("Converted sklearn tree", nnodes=tree.nnodes, height=tree.height)
    return tree


def forest_from_sklearn(
    estimator: SklearnForest,
    feature_names: Sequence[str] | None = None,
    *,
    info: ModelInfo | None = None,
) -> DecisionForest:
    """Convert a fitted sklearn random forest into a DecisionForest.

    Args:
        estimator (SklearnForest): A fitted single-output forest.
        feature_names (Sequence[str] | None): See `tree_from_sklearn`.
        info (ModelInfo | None): Annotations of the new forest.

    Returns:
        DecisionForest: One DecisionTree per estimator, in order.
    """
    names = _resolve_feature_names(estimator, feature_names)
    # Sub-estimators are fitted on class indices; labels come from the forest.
    classes = getattr(estimator, "classes_", None)
    trees = tuple(
        DecisionTree(root=_build_node(sub_estimator.tree_, 0, feature_names=names, classes=classes))
        for sub_estimator in estimator.estimators_
    )
    forest = DecisionForest(trees=trees, info=info or ModelInfo())
    logger.debug("Converted sklearn forest", ntrees=len(trees), nnodes=forest.nnodes)
    return forest


def _resolve_feature_names(estimator: Any, feature_names: Sequence[str] | None) -> list[str]:
    """Pick the variable names of the estimator's feature columns.

    Args:
        estimator (Any): A fitted sklearn tree or forest.
        feature_names (Sequence[str] | None): Caller-provided names.

    Returns:
        list[str]: One name per feature column.

    Raises:
        ValueError: If the estimator is multi-output or the names do not match
            the number of features.
    """
    if getattr(estimator, "n_outputs_", 1) != 1:
        raise ValueError("Only single-output estimators can be converted")
    n_features = int(estimator.n_features_in_)
    if feature_names is None:
        fitted_names = getattr(estimator, "feature_names_in_", None)
        if fitted_names is not None:
            return [str(name) for name in fitted_names]
        return [f"feature_{index}" for index in range(n_features)]
    if len(feature_names) != n_features:
        raise ValueError(f"Expected {n_features} feature names, got {len(feature_names)}")
    return list(feature_names)


def _build_node(
    sklearn_tree: Any,
    node_id: int,
    *,
    feature_names: Sequence[str],
    classes: np.ndarray | None,
) -> ConstantModel | Branch:
    """Recursively convert the subtree rooted at `node_id`.

    Args:
        sklearn_tree (Any): The `tree_` structure of a fitted sklearn tree.
        node_id (int): Index of the node in `sklearn_tree`.
        feature_names (Sequence[str]): Variable name per feature column.
        classes (np.ndarray | None): Class labels for classification; `None`
            for regression.

    Returns:
        ConstantModel | Branch: The converted node.
    """
    left_child = sklearn_tree.children_left[node_id]
    right_child = sklearn_tree.children_right[node_id]
    if left_child == right_child:  # Both are TREE_LEAF (-1) at leaves
        return _build_leaf(sklearn_tree, node_id, classes=classes)

    condition = ScalarCondition(
        feature=VariableValue(name=feature_names[sklearn_tree.feature[node_id]]),
        operator="<=",
        threshold=NumericThreshold(value=float(sklearn_tree.threshold[node_id])),
    )
    return Branch(
        antecedent=Atom(condition=condition),
        positive=_build_node(sklearn_tree, left_child, feature_names=feature_names, classes=classes),
        negative=_build_node(sklearn_tree, right_child, feature_names=feature_names, classes=classes),
    )


def _build_leaf(sklearn_tree: Any, node_id: int, *, classes: np.ndarray | None) -> ConstantModel:
    """Build the constant outcome of a leaf.

    Args:
        sklearn_tree (Any): The `tree_` structure of a fitted sklearn tree.
        node_id (int): Index of the leaf.
        classes (np.ndarray | None): Class labels, or `None` for regression.

    Returns:
        ConstantModel: The leaf's prediction, annotated with `n_samples`.
    """
    node_value = sklearn_tree.value[node_id][0]
    info = ModelInfo(n_samples=int(sklearn_tree.n_node_samples[node_id]))
    if classes is None:
        return ConstantModel(outcome=float(node_value[0]), info=info)
    label = classes[int(np.argmax(node_value))]
    return ConstantModel(outcome=label.item() if isinstance(label, np.generic) else label, info=info)
