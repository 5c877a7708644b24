"""
Dataset validation, cleaning and the planted-interaction generator.
"""

import numpy as np
import pandas as pd

from .errors import FitError


# ---------------------------------------------------------------------------
# Column helpers
# ---------------------------------------------------------------------------

def is_categorical(series):
    """True for columns the linear model treats as factors."""
    return (
        pd.api.types.is_bool_dtype(series)
        or not pd.api.types.is_numeric_dtype(series)
    )


def encode_column(series, categories=None):
    """
    Numeric encoding of a single column for the forest.

    Categorical columns become integer codes over ``categories`` (inferred
    when not given; unseen levels map to -1).  Numeric columns are returned
    as float64.

    Returns
    -------
    values : np.ndarray
    categories : pd.Index or None
    """
    if is_categorical(series):
        cat = pd.Categorical(series, categories=categories)
        return cat.codes.astype(np.float64), cat.categories
    return series.to_numpy(dtype=np.float64), None


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------

def validate_dataset(data, target, features=None):
    """
    Check that ``data`` can be used to fit ``target`` on ``features``.

    Parameters
    ----------
    data : pd.DataFrame
    target : str
        Response column.  Must be present and numeric.
    features : list of str or None
        Predictor columns.  Defaults to every column except ``target``.

    Returns
    -------
    list of str
        The predictor columns, in dataset order when defaulted.

    Raises
    ------
    FitError
        Target absent or non-numeric, predictors missing, or missing values
        in any column used for fitting.
    """
    if not isinstance(data, pd.DataFrame):
        raise FitError(
            f"Expected a pandas DataFrame, got {type(data).__name__}"
        )
    if target not in data.columns:
        raise FitError(f"Target column '{target}' is not in the dataset")
    if is_categorical(data[target]):
        raise FitError(
            f"Target column '{target}' must be numeric for regression "
            f"(dtype={data[target].dtype})"
        )

    if features is None:
        features = [c for c in data.columns if c != target]
    else:
        features = list(features)
    if not features:
        raise FitError("No predictor columns to fit")
    if target in features:
        raise FitError(f"Target '{target}' cannot also be a predictor")
    missing = [f for f in features if f not in data.columns]
    if missing:
        raise FitError(f"Predictor column(s) not in the dataset: {missing}")

    used = [target] + features
    nan_counts = data[used].isna().sum()
    cols_with_nan = nan_counts[nan_counts > 0]
    if len(cols_with_nan) > 0:
        details = ", ".join(f"{c}({n})" for c, n in cols_with_nan.items())
        raise FitError(
            f"Missing values in column(s) used for fitting: {details}. "
            f"Use clean_dataset() first."
        )
    numeric = [c for c in used if not is_categorical(data[c])]
    if numeric and not np.all(np.isfinite(data[numeric].to_numpy(
            dtype=np.float64))):
        raise FitError("Infinite values in column(s) used for fitting")

    return features


# ---------------------------------------------------------------------------
# Cleaning
# ---------------------------------------------------------------------------

def clean_dataset(data, target, verbose=False):
    """
    Return a cleaned copy of ``data`` that passes :func:`validate_dataset`.

    Cleaning steps
    --------------
    1.  Drop rows where the target is NaN or infinite.
    2.  Drop predictor columns that are entirely NaN.
    3.  Impute NaN in numeric predictors with column medians and in
        categorical predictors with the most frequent level.
    4.  Replace infinities in numeric predictors with the column max/min.
    5.  Drop zero-variance (single-valued) predictor columns.

    Every action is reported when ``verbose`` is True.  The input frame is
    never modified.
    """
    if not isinstance(data, pd.DataFrame):
        data = pd.DataFrame(data)
    if target not in data.columns:
        raise FitError(f"Target column '{target}' is not in the dataset")
    if is_categorical(data[target]):
        raise FitError(f"Target column '{target}' must be numeric")

    df = data.copy()
    cleaning_actions = []

    # --- Rows with unusable target ---------------------------------------
    y = df[target].astype(np.float64)
    bad_y = ~np.isfinite(y)
    if bad_y.any():
        cleaning_actions.append(
            f"Dropped {int(bad_y.sum())} row(s) where the target was "
            f"NaN or infinite"
        )
        df = df.loc[~bad_y]

    predictors = [c for c in df.columns if c != target]

    # --- All-NaN columns ---------------------------------------------------
    all_nan_cols = [c for c in predictors if df[c].isna().all()]
    if all_nan_cols:
        cleaning_actions.append(
            f"Dropped {len(all_nan_cols)} all-NaN column(s): {all_nan_cols}"
        )
        df = df.drop(columns=all_nan_cols)
        predictors = [c for c in predictors if c not in all_nan_cols]

    # --- Impute -------------------------------------------------------------
    imputed = []
    for col in predictors:
        n_nan = int(df[col].isna().sum())
        if n_nan == 0:
            continue
        if is_categorical(df[col]):
            df[col] = df[col].fillna(df[col].mode().iloc[0])
        else:
            df[col] = df[col].fillna(df[col].median())
        imputed.append(f"{col}({n_nan})")
    if imputed:
        cleaning_actions.append(
            f"Imputed NaN (median / most frequent level) in "
            f"{len(imputed)} column(s): {', '.join(imputed)}"
        )

    # --- Infinities ---------------------------------------------------------
    n_inf = 0
    for col in predictors:
        if is_categorical(df[col]):
            continue
        col_vals = df[col].astype(np.float64)
        inf_mask = np.isinf(col_vals)
        if not inf_mask.any():
            continue
        n_inf += int(inf_mask.sum())
        finite_vals = col_vals[~inf_mask]
        if len(finite_vals) == 0:
            df[col] = 0.0
        else:
            df[col] = col_vals.replace(
                [np.inf], finite_vals.max()
            ).replace([-np.inf], finite_vals.min())
    if n_inf:
        cleaning_actions.append(
            f"Replaced {n_inf} infinite value(s) in predictors with "
            f"column max/min"
        )

    # --- Zero variance ------------------------------------------------------
    zero_var_cols = [c for c in predictors if df[c].nunique() <= 1]
    if zero_var_cols:
        cleaning_actions.append(
            f"Dropped {len(zero_var_cols)} zero-variance column(s): "
            f"{zero_var_cols}"
        )
        df = df.drop(columns=zero_var_cols)

    if df.shape[1] < 2:
        raise FitError("No predictor columns remain after cleaning.")

    if verbose and cleaning_actions:
        print("DATA CLEANING")
        print("-" * 70)
        for action in cleaning_actions:
            print(f"  * {action}")
        print(f"  Final dataset: n={len(df)}, p={df.shape[1] - 1}")
        print()

    return df


# ---------------------------------------------------------------------------
# Synthetic data with a known interaction
# ---------------------------------------------------------------------------

def make_planted_interaction(n_samples=500, n_features=5, pair=(0, 1),
                             strength=10.0, noise=1.0, coef=1.0,
                             random_state=None):
    """
    Generate ``y = sum(coef * x_i) + strength * x_a * x_b + noise * e``.

    Predictors and noise are independent standard normals, so the planted
    product is uncorrelated with every main effect and an additive linear
    model cannot absorb it.

    Parameters
    ----------
    n_samples : int, default=500
    n_features : int, default=5
        Columns are named ``x0 .. x{n_features-1}``; the response is ``y``.
    pair : tuple of int, default=(0, 1)
        Indices of the two interacting predictors.
    strength : float, default=10.0
        Coefficient of the planted product term.
    noise : float, default=1.0
        Standard deviation of the additive Gaussian noise.
    coef : float or array-like, default=1.0
        Main-effect coefficient(s).
    random_state : int or None

    Returns
    -------
    pd.DataFrame
    """
    a, b = pair
    if a == b or not (0 <= a < n_features and 0 <= b < n_features):
        raise ValueError(
            f"pair must be two distinct indices below n_features, got {pair}"
        )

    rng = np.random.RandomState(random_state)
    X = rng.randn(n_samples, n_features)
    beta = np.broadcast_to(np.asarray(coef, dtype=np.float64), (n_features,))
    y = X @ beta + strength * X[:, a] * X[:, b] + noise * rng.randn(n_samples)

    df = pd.DataFrame(X, columns=[f"x{i}" for i in range(n_features)])
    df['y'] = y
    return df
