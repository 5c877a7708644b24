"""
Prediction discrepancy and the importance ranker.

The discrepancy between a Random Forest and a linear model fitted to the same
target is what the linear model is missing.  Features that best predict it
are the candidates for un-modelled interactions.
"""

import numpy as np
import pandas as pd

from .errors import AlignmentError
from .forest import fit_forest


def compute_discrepancy(rf_pred, linear_pred):
    """
    Element-wise ``rf_pred - linear_pred``.

    Parameters
    ----------
    rf_pred, linear_pred : array-like or pd.Series
        In-sample predictions from the same dataset.  When both are Series
        their indices must match exactly (same rows, same order).

    Returns
    -------
    pd.Series named ``'discrepancy'``

    Raises
    ------
    AlignmentError
        Different lengths, or Series with different row indices.
    """
    a_is_series = isinstance(rf_pred, pd.Series)
    b_is_series = isinstance(linear_pred, pd.Series)
    if a_is_series and b_is_series and not rf_pred.index.equals(
            linear_pred.index):
        raise AlignmentError(
            "Prediction vectors are indexed differently; they must come "
            "from the same rows in the same order"
        )

    a = np.asarray(rf_pred, dtype=np.float64).ravel()
    b = np.asarray(linear_pred, dtype=np.float64).ravel()
    if a.shape != b.shape:
        raise AlignmentError(
            f"Prediction vectors differ in length: {len(a)} vs {len(b)}"
        )

    if a_is_series:
        index = rf_pred.index
    elif b_is_series:
        index = linear_pred.index
    else:
        index = None
    return pd.Series(a - b, index=index, name='discrepancy')


def sort_ranking(importance, column='importance'):
    """
    Order an importance table by descending ``column``.

    Ties keep the table's existing (column) order.  A ``rank`` column
    (1 = most important) is added.
    """
    scores = importance[column].to_numpy(dtype=np.float64)
    order = np.argsort(-scores, kind='stable')
    ranking = importance.iloc[order].copy()
    ranking['rank'] = np.arange(1, len(ranking) + 1)
    return ranking


def rank_importance(data, discrepancy, features, n_trees=500,
                    max_features=None, min_samples_leaf=5, random_state=None,
                    n_jobs=None):
    """
    Rank ``features`` by how well they predict ``discrepancy``.

    Fits a fresh Random Forest of the discrepancy on ``data[features]`` and
    ranks by its out-of-bag permutation importance.

    Parameters
    ----------
    data : pd.DataFrame
        Original dataset.  Only ``features`` are used; pass the predictors,
        not the linear model's target.
    discrepancy : array-like or pd.Series
        Aligned with the rows of ``data``.
    features : list of str
    n_trees, max_features, min_samples_leaf, random_state, n_jobs
        Forest settings, see :func:`fit_forest`.

    Returns
    -------
    pd.DataFrame
        Indexed by feature, most important first, with the columns of
        :func:`oob_permutation_importance` plus ``rank``.
    """
    features = list(features)
    if len(discrepancy) != len(data):
        raise AlignmentError(
            f"Discrepancy has {len(discrepancy)} values but the dataset has "
            f"{len(data)} rows"
        )
    if isinstance(discrepancy, pd.Series) and not discrepancy.index.equals(
            data.index):
        raise AlignmentError("Discrepancy is not indexed like the dataset")

    response = 'discrepancy'
    while response in features:
        response = '_' + response

    work = data[features].copy()
    work[response] = np.asarray(discrepancy, dtype=np.float64)

    forest = fit_forest(
        work, response, features=features,
        n_trees=n_trees,
        max_features=max_features,
        min_samples_leaf=min_samples_leaf,
        bootstrap=True,
        importance=True,
        random_state=random_state,
        n_jobs=n_jobs,
    )
    return sort_ranking(forest.importance)
