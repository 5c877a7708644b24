"""
Random Forest fitting with out-of-bag permutation importance.

The forest itself is scikit-learn's ``RandomForestRegressor``.  Importance
is computed tree by tree on each tree's out-of-bag rows:

    I_j = mean_t( MSE_t(x_j permuted) - MSE_t ) / sd_t( ... )

i.e. the average increase in out-of-bag error when feature j is shuffled,
scaled by the standard deviation of the per-tree increases.  When that
standard deviation is zero the unscaled mean is reported.
"""

import numpy as np
import pandas as pd
from scipy import stats
from sklearn.ensemble import RandomForestRegressor

from .data import encode_column, validate_dataset
from .errors import ConfigurationError, FitError


def default_max_features(n_features):
    """Candidate predictors per split for a regression forest: p // 3."""
    return max(n_features // 3, 1)


def model_target(values, log_target=False, name='target'):
    """Target on the modelling scale (``log`` when requested)."""
    y = np.asarray(values, dtype=np.float64).ravel()
    if log_target:
        if np.any(y <= 0):
            raise FitError(
                f"log target requested but '{name}' has non-positive values"
            )
        y = np.log(y)
    return y


def design_matrix(data, features, categories=None):
    """
    Encode ``data[features]`` as a float matrix for the forest.

    Returns
    -------
    X : np.ndarray of shape (n_samples, n_features)
    categories : dict
        Category levels used for each categorical column.
    """
    categories = dict(categories or {})
    columns = []
    for feat in features:
        values, cats = encode_column(data[feat], categories.get(feat))
        if cats is not None:
            categories[feat] = cats
        columns.append(values)
    return np.column_stack(columns), categories


# ---------------------------------------------------------------------------
# Fitted forest
# ---------------------------------------------------------------------------

class FittedForest:
    """
    A fitted ``RandomForestRegressor`` bound to the data it was fitted on.

    Attributes
    ----------
    model : RandomForestRegressor
    target : str
    features : list of str
    log_target : bool
        True when the forest was fitted on ``log(target)``.
    in_sample_predictions : pd.Series
        Predictions on the training rows, indexed like the training data.
    importance : pd.DataFrame or None
        Per-feature permutation importance in column order (see
        :func:`oob_permutation_importance`), when requested at fit time.
    random_state : int or None
    """

    def __init__(self, model, target, features, categories, log_target,
                 in_sample_predictions, importance=None, random_state=None):
        self.model = model
        self.target = target
        self.features = list(features)
        self.categories = categories
        self.log_target = log_target
        self.in_sample_predictions = in_sample_predictions
        self.importance = importance
        self.random_state = random_state

    @property
    def n_trees(self):
        return len(self.model.estimators_)

    def predict(self, data):
        """Predict on the modelling scale for new rows."""
        X, _ = design_matrix(data, self.features, self.categories)
        return self.model.predict(X)

    def __repr__(self):
        return (f"FittedForest(target={self.target!r}, "
                f"features={self.features!r}, n_trees={self.n_trees})")


# ---------------------------------------------------------------------------
# Fitting
# ---------------------------------------------------------------------------

def fit_forest(data, target, features=None, n_trees=500, max_features=None,
               min_samples_leaf=5, bootstrap=True, importance=False,
               log_target=False, random_state=None, n_jobs=None):
    """
    Fit a Random Forest regressor of ``target`` on ``features``.

    Parameters
    ----------
    data : pd.DataFrame
    target : str
    features : list of str or None
        Defaults to every column except ``target``.
    n_trees : int, default=500
    max_features : int or None
        Number of candidate predictors sampled at each split.  Defaults to
        ``max(p // 3, 1)``.
    min_samples_leaf : int, default=5
    bootstrap : bool, default=True
        Grow each tree on a bootstrap resample (with replacement).
    importance : bool, default=False
        Compute out-of-bag permutation importance.  Requires ``bootstrap``.
    log_target : bool, default=False
        Fit on ``log(target)``.
    random_state : int or None
        Seeds both the forest and the importance permutations.
    n_jobs : int or None
        Passed to scikit-learn.

    Returns
    -------
    FittedForest

    Raises
    ------
    ConfigurationError
        ``max_features`` outside ``1..p``, ``n_trees < 1``, or importance
        requested without bootstrap.
    FitError
        Target absent or non-numeric, predictors missing.
    """
    features = validate_dataset(data, target, features)
    p = len(features)

    if isinstance(n_trees, bool) or not isinstance(n_trees, (int, np.integer)) \
            or n_trees < 1:
        raise ConfigurationError(f"n_trees must be a positive integer, "
                                 f"got {n_trees!r}")
    mtry = default_max_features(p) if max_features is None else max_features
    if isinstance(mtry, bool) or not isinstance(mtry, (int, np.integer)):
        raise ConfigurationError(
            f"max_features must be an integer count, got {mtry!r}"
        )
    if mtry < 1 or mtry > p:
        raise ConfigurationError(
            f"max_features={mtry} exceeds the {p} available predictor(s)"
            if mtry > p else
            f"max_features must be at least 1, got {mtry}"
        )
    if importance and not bootstrap:
        raise ConfigurationError(
            "Permutation importance needs out-of-bag rows; "
            "set bootstrap=True"
        )

    X, categories = design_matrix(data, features)
    y = model_target(data[target], log_target, name=target)

    model = RandomForestRegressor(
        n_estimators=int(n_trees),
        max_features=int(mtry),
        min_samples_leaf=min_samples_leaf,
        bootstrap=bootstrap,
        random_state=random_state,
        n_jobs=n_jobs,
    )
    model.fit(X, y)

    in_sample = pd.Series(model.predict(X), index=data.index,
                          name='rf_prediction')

    imp = None
    if importance:
        imp = oob_permutation_importance(model, X, y, features,
                                         random_state=random_state)

    return FittedForest(model, target, features, categories, log_target,
                        in_sample, importance=imp, random_state=random_state)


def oob_permutation_importance(model, X, y, features, random_state=None):
    """
    Out-of-bag permutation importance for a fitted bootstrap forest.

    Parameters
    ----------
    model : RandomForestRegressor
        Fitted with ``bootstrap=True``.
    X : np.ndarray
        The training matrix the forest was fitted on.
    y : np.ndarray
        The training target.
    features : list of str
    random_state : int or None
        Seeds the permutations.

    Returns
    -------
    pd.DataFrame
        Indexed by feature (column order), with columns ``importance``
        (scaled), ``raw_importance``, ``importance_sd``, ``importance_se``
        and ``gini_importance``.
    """
    rng = np.random.RandomState(random_state)
    n, p = X.shape
    increases = []

    for tree, in_bag in zip(model.estimators_, model.estimators_samples_):
        oob = np.ones(n, dtype=bool)
        oob[in_bag] = False
        idx = np.flatnonzero(oob)
        if len(idx) == 0:
            continue
        X_oob = X[idx]
        y_oob = y[idx]
        base_mse = np.mean((y_oob - tree.predict(X_oob)) ** 2)

        row = np.empty(p)
        for j in range(p):
            X_perm = X_oob.copy()
            X_perm[:, j] = X_oob[rng.permutation(len(idx)), j]
            perm_mse = np.mean((y_oob - tree.predict(X_perm)) ** 2)
            row[j] = perm_mse - base_mse
        increases.append(row)

    if not increases:
        raise FitError("No tree has out-of-bag rows; cannot compute "
                       "permutation importance")

    increases = np.vstack(increases)
    raw = increases.mean(axis=0)
    if len(increases) > 1:
        sd = increases.std(axis=0, ddof=1)
        se = stats.sem(increases, axis=0)
    else:
        sd = np.zeros(p)
        se = np.zeros(p)
    scaled = np.where(sd > 0, raw / np.where(sd > 0, sd, 1.0), raw)

    return pd.DataFrame(
        {
            'importance': scaled,
            'raw_importance': raw,
            'importance_sd': sd,
            'importance_se': se,
            'gini_importance': model.feature_importances_,
        },
        index=pd.Index(features, name='feature'),
    )
