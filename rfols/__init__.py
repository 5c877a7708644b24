"""
rfols: Random Forest vs. linear model interaction discovery

Fits a Random Forest and an OLS/GLM model on the same data, ranks the
predictors by how well they explain the discrepancy between the two, and
grows the linear formula with interaction terms while AIC improves.
"""

from .data import clean_dataset, make_planted_interaction, validate_dataset
from .discrepancy import compute_discrepancy, rank_importance, sort_ranking
from .errors import (AlignmentError, ConfigurationError, DuplicateTermError,
                     FitError, RFOLSError)
from .forest import FittedForest, fit_forest, oob_permutation_importance
from .formula import ModelSpec, augment_spec, select_pairs
from .linear import FittedLinear, fit_linear
from .search import InteractionSearch, IterationResult, discover_interactions

__version__ = "0.1.0"

__all__ = [
    "InteractionSearch", "IterationResult", "discover_interactions",
    "ModelSpec", "augment_spec", "select_pairs",
    "fit_forest", "FittedForest", "oob_permutation_importance",
    "fit_linear", "FittedLinear",
    "compute_discrepancy", "rank_importance", "sort_ranking",
    "clean_dataset", "validate_dataset", "make_planted_interaction",
    "RFOLSError", "ConfigurationError", "FitError", "AlignmentError",
    "DuplicateTermError",
]
