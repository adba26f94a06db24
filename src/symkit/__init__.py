"""symkit: symbolic rule-based models (decision lists, trees, forests) and an Orange decision-list parser."""

from loguru import logger

from symkit.dataset import InterpretationSet
from symkit.logging import PACKAGE_NAME, enable_logging
from symkit.models import (
    AnyModel,
    Branch,
    ConstantModel,
    DecisionForest,
    DecisionList,
    DecisionTree,
    MixedModel,
    ModelInfo,
    Rule,
    best_guess,
)
from symkit.orange import parse_orange_decision_list, parse_orange_decision_list_file

logger.disable(PACKAGE_NAME)  # noqa: RUF067 - Disable logging for the symkit module by default

__all__ = [
    "AnyModel",
    "Branch",
    "ConstantModel",
    "DecisionForest",
    "DecisionList",
    "DecisionTree",
    "InterpretationSet",
    "MixedModel",
    "ModelInfo",
    "Rule",
    "best_guess",
    "enable_logging",
    "parse_orange_decision_list",
    "parse_orange_decision_list_file",
]
