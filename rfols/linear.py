"""
Linear model fitting through the statsmodels formula API.
"""

import warnings

import numpy as np
import pandas as pd
import statsmodels.api as sm
import statsmodels.formula.api as smf
from patsy import PatsyError
from statsmodels.tools.sm_exceptions import MissingDataError

from .data import is_categorical, validate_dataset
from .errors import FitError


class FittedLinear:
    """
    A fitted OLS or GLM model bound to its :class:`ModelSpec`.

    Attributes
    ----------
    spec : ModelSpec
    results : statsmodels results object
    in_sample_predictions : pd.Series
        Fitted values on the modelling scale (``log(target)`` when the spec
        logs the target, the response mean for the log-link GLM), indexed
        like the training data.
    """

    def __init__(self, spec, results, in_sample_predictions):
        self.spec = spec
        self.results = results
        self.in_sample_predictions = in_sample_predictions

    @property
    def aic(self):
        return float(self.results.aic)

    @property
    def bic(self):
        return float(self.results.bic)

    @property
    def llf(self):
        return float(self.results.llf)

    @property
    def n_params(self):
        return len(self.results.params)

    @property
    def params(self):
        return self.results.params

    def predict(self, data):
        """Predict on the modelling scale for new rows."""
        return np.asarray(self.results.predict(data), dtype=np.float64)

    def __repr__(self):
        return f"FittedLinear('{self.spec}', aic={self.aic:.3f})"


def fit_linear(data, spec):
    """
    Fit the linear model described by ``spec``.

    ``family='gaussian'`` fits OLS with ``smf.ols``; ``'gaussian-log'`` fits
    a Gaussian GLM with a log link with ``smf.glm``.

    Returns
    -------
    FittedLinear

    Raises
    ------
    FitError
        Target absent or non-numeric, predictors missing or containing
        missing values, non-positive values under ``log``, a design the
        library cannot fit, a GLM that did not converge, or a non-finite
        log-likelihood.
    """
    try:
        validate_dataset(data, spec.target, spec.main_effects)
    except FitError as err:
        err.spec = spec
        raise

    logged = list(spec.log_features)
    if spec.log_target:
        logged.append(spec.target)
    for col in logged:
        if is_categorical(data[col]):
            raise FitError(f"log({col}) requested but '{col}' is "
                           f"categorical", spec=spec)
        if np.any(data[col].to_numpy(dtype=np.float64) <= 0):
            raise FitError(f"log({col}) requested but '{col}' has "
                           f"non-positive values", spec=spec)

    formula = spec.formula()
    try:
        with warnings.catch_warnings():
            warnings.simplefilter('ignore')
            if spec.family == 'gaussian':
                results = smf.ols(formula, data=data, missing='raise').fit()
            else:
                family = sm.families.Gaussian(link=sm.families.links.Log())
                results = smf.glm(formula, data=data, family=family,
                                  missing='raise').fit()
    except (ValueError, np.linalg.LinAlgError, PatsyError,
            MissingDataError) as err:
        raise FitError(f"Linear fit failed: {err}", spec=spec) from err

    if not getattr(results, 'converged', True):
        raise FitError("GLM fit did not converge", spec=spec)
    if not np.isfinite(results.llf):
        raise FitError("Linear fit produced a non-finite log-likelihood",
                       spec=spec)

    fitted = np.asarray(results.fittedvalues, dtype=np.float64)
    if len(fitted) != len(data):
        raise FitError(
            f"Linear fit used {len(fitted)} of {len(data)} rows", spec=spec
        )
    in_sample = pd.Series(fitted, index=data.index, name='linear_prediction')
    return FittedLinear(spec, results, in_sample)
