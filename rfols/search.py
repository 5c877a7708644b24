"""
Iteration driver: discrepancy-guided interaction search.

One iteration:

    1. fit the linear model for the current specification
    2. discrepancy = RF in-sample predictions - linear in-sample predictions
    3. rank the predictors by permutation importance for the discrepancy
    4. add interaction term(s) among the top-k ranked predictors
    5. refit the linear model and compare AIC

The new specification is accepted while ``AIC(new) < AIC(old) - epsilon``,
for at most ``max_iterations`` iterations.
"""

import time
from dataclasses import dataclass

import numpy as np
import pandas as pd
from sklearn.base import BaseEstimator

from .data import validate_dataset
from .discrepancy import compute_discrepancy, rank_importance
from .errors import ConfigurationError, DuplicateTermError, RFOLSError
from .forest import fit_forest
from .formula import (FAMILIES, PAIRING_POLICIES, ModelSpec, augment_spec,
                      ranking_order)
from .linear import fit_linear


@dataclass(frozen=True, eq=False)
class IterationResult:
    """Everything one iteration produced.  Never modified after creation."""

    iteration: int
    spec: object
    next_spec: object
    forest_predictions: pd.Series
    linear_predictions: pd.Series
    discrepancy: pd.Series
    ranking: pd.DataFrame
    linear: object
    next_linear: object
    aic_before: float
    aic_after: float
    accepted: bool

    @property
    def delta_aic(self):
        return self.aic_after - self.aic_before

    @property
    def added_terms(self):
        return self.next_spec.interactions[len(self.spec.interactions):]

    @property
    def top_features(self):
        return ranking_order(self.ranking)


_FITTED_ATTRIBUTES = ('forest_', 'history_', 'spec_', 'interactions_',
                      'linear_', 'stop_reason_', 'n_iterations_',
                      'aic_path_', 'runtime_')


def _draw_seed(rng):
    return int(rng.randint(np.iinfo(np.int32).max))


class InteractionSearch(BaseEstimator):
    """
    Discover un-modelled interactions by comparing a Random Forest with a
    linear model and growing the linear formula one step at a time.

    Parameters
    ----------
    n_trees : int, default=500
        Trees in the baseline forest (fitted once on the target).
    max_features : int or None, default=None
        Candidate predictors per split, for both forests.  ``None`` uses
        ``max(p // 3, 1)``.
    min_samples_leaf : int, default=5
    bootstrap : bool, default=True
        Bootstrap resampling for the baseline forest.  The discrepancy
        forest always bootstraps; its importance needs out-of-bag rows.
    ranker_trees : int or None, default=None
        Trees in the discrepancy forest.  ``None`` uses ``n_trees``.
    top_k : int, default=2
        Number of top-ranked predictors combined per iteration.
    pairing : {'chain', 'leading', 'all'}, default='chain'
        How the top-k predictors are paired into interaction terms.
    on_duplicate : {'skip', 'raise'}, default='skip'
        ``'skip'`` ignores pairs already in the model and stops the search
        when nothing new remains; ``'raise'`` propagates DuplicateTermError.
    epsilon : float, default=0.0
        Minimum AIC decrease required to accept a new specification.
    max_iterations : int, default=10
    family : {'gaussian', 'gaussian-log'}, default='gaussian'
        OLS, or a Gaussian GLM with a log link.
    log_target : bool, default=False
        Model ``log(target)``; the baseline forest uses the same scale.
    log_features : tuple of str, default=()
        Predictors entered as ``log(x)`` in the linear model.
    random_state : int or None, default=None
        Seeds every forest and permutation.  Per-iteration seeds are drawn
        from a RandomState seeded with this value and kept in ``seeds_``.
    n_jobs : int or None, default=None
        Passed to scikit-learn's forest.
    """

    def __init__(
        self,
        n_trees=500,
        max_features=None,
        min_samples_leaf=5,
        bootstrap=True,
        ranker_trees=None,
        top_k=2,
        pairing='chain',
        on_duplicate='skip',
        epsilon=0.0,
        max_iterations=10,
        family='gaussian',
        log_target=False,
        log_features=(),
        random_state=None,
        n_jobs=None,
    ):
        self.n_trees = n_trees
        self.max_features = max_features
        self.min_samples_leaf = min_samples_leaf
        self.bootstrap = bootstrap
        self.ranker_trees = ranker_trees
        self.top_k = top_k
        self.pairing = pairing
        self.on_duplicate = on_duplicate
        self.epsilon = epsilon
        self.max_iterations = max_iterations
        self.family = family
        self.log_target = log_target
        self.log_features = log_features
        self.random_state = random_state
        self.n_jobs = n_jobs

    # ---- public interface ------------------------------------------------

    def fit(self, data, target=None, spec=None, verbose=False):
        """
        Run the search.

        Parameters
        ----------
        data : pd.DataFrame
            Read-only for the whole run.
        target : str or None
            Response column.  Required unless ``spec`` is given.
        spec : ModelSpec or None
            Starting specification.  Defaults to every other column as a
            main effect, no interactions.
        verbose : bool, default=False
            Print progress.

        Returns
        -------
        self

        Raises
        ------
        RFOLSError
            Any configuration, fit or alignment failure.  The error carries
            the iteration index and the specification that triggered it;
            ``partial_history_`` and ``last_spec_`` hold what was committed
            before the failure.
        """
        t0 = time.time()
        for attr in _FITTED_ATTRIBUTES:
            if hasattr(self, attr):
                delattr(self, attr)
        self._check_params()

        if spec is None:
            if target is None:
                raise ConfigurationError("Either target or spec is required")
            spec = ModelSpec.from_data(
                data, target,
                log_target=self.log_target,
                log_features=frozenset(self.log_features),
                family=self.family,
            )

        rng = np.random.RandomState(self.random_state)
        self.seeds_ = []
        history = []
        current = spec
        current_linear = None
        self.partial_history_ = history
        self.last_spec_ = current

        if verbose:
            n, p = len(data), len(spec.main_effects)
            print("=" * 70)
            print("RF / LINEAR INTERACTION SEARCH")
            print("=" * 70)
            print(f"  Dataset : n={n}, p={p}")
            print(f"  top_k={self.top_k}  pairing={self.pairing}  "
                  f"epsilon={self.epsilon}  "
                  f"max_iterations={self.max_iterations}")
            print(f"  Start   : {spec}")
            print()

        seed = _draw_seed(rng)
        self.seeds_.append(seed)
        try:
            validate_dataset(data, spec.target, spec.main_effects)
            forest = self._fit_baseline(data, spec, seed)
        except RFOLSError as err:
            raise self._with_context(err, spec, 0)

        stop_reason = 'max_iterations'
        for i in range(self.max_iterations):
            seed = _draw_seed(rng)
            self.seeds_.append(seed)
            try:
                result = self.step(data, current, forest=forest,
                                   linear=current_linear, iteration=i,
                                   random_state=seed)
            except DuplicateTermError as err:
                if self.on_duplicate == 'skip':
                    stop_reason = 'exhausted'
                    if verbose:
                        print(f"  Iteration {i}: no new interaction "
                              f"candidates, stopping")
                    break
                self.last_spec_ = current
                raise self._with_context(err, current, i)
            except RFOLSError as err:
                self.last_spec_ = current
                raise self._with_context(err, current, i)

            history.append(result)
            if verbose:
                self._print_iteration(result)
            if not result.accepted:
                stop_reason = 'no_improvement'
                break
            current = result.next_spec
            current_linear = result.next_linear
            self.last_spec_ = current

        if current_linear is None:
            current_linear = (history[0].linear if history
                              else fit_linear(data, current))

        self.forest_ = forest
        self.history_ = list(history)
        self.spec_ = current
        self.interactions_ = list(current.interactions)
        self.linear_ = current_linear
        self.stop_reason_ = stop_reason
        self.n_iterations_ = len(history)
        self.aic_path_ = self._aic_path(history, current_linear)
        self.runtime_ = time.time() - t0

        if verbose:
            self._print_summary()

        return self

    def step(self, data, spec, forest=None, linear=None, iteration=0,
             random_state=None):
        """
        Run a single iteration from ``spec``.

        Parameters
        ----------
        data : pd.DataFrame
        spec : ModelSpec
        forest : FittedForest or None
            Baseline forest on ``spec.target``; fitted here when None.
        linear : FittedLinear or None
            Fitted linear model for ``spec``; fitted here when None.
        iteration : int, default=0
            Recorded on the result and on any error raised.
        random_state : int or None
            Seed for the forests fitted in this step.  Defaults to the
            estimator's ``random_state``.

        Returns
        -------
        IterationResult
        """
        self._check_params()
        if random_state is None:
            random_state = self.random_state
        try:
            if forest is None:
                forest = self._fit_baseline(data, spec, random_state)
            if linear is None:
                linear = fit_linear(data, spec)
            disc = compute_discrepancy(forest.in_sample_predictions,
                                       linear.in_sample_predictions)
            ranking = rank_importance(
                data, disc, list(spec.main_effects),
                n_trees=(self.n_trees if self.ranker_trees is None
                         else self.ranker_trees),
                max_features=self.max_features,
                min_samples_leaf=self.min_samples_leaf,
                random_state=random_state,
                n_jobs=self.n_jobs,
            )
            next_spec = augment_spec(spec, ranking, k=self.top_k,
                                     pairing=self.pairing,
                                     on_duplicate=self.on_duplicate)
            next_linear = fit_linear(data, next_spec)
        except RFOLSError as err:
            raise self._with_context(err, spec, iteration)

        aic_before = linear.aic
        aic_after = next_linear.aic
        return IterationResult(
            iteration=iteration,
            spec=spec,
            next_spec=next_spec,
            forest_predictions=forest.in_sample_predictions,
            linear_predictions=linear.in_sample_predictions,
            discrepancy=disc,
            ranking=ranking,
            linear=linear,
            next_linear=next_linear,
            aic_before=aic_before,
            aic_after=aic_after,
            accepted=bool(aic_after < aic_before - self.epsilon),
        )

    def summary(self):
        """One row per iteration: added terms, AIC before/after, accepted."""
        self._check_fitted()
        rows = []
        for r in self.history_:
            rows.append({
                'iteration': r.iteration,
                'added': ', '.join(f"{a}:{b}" for a, b in r.added_terms),
                'aic_before': r.aic_before,
                'aic_after': r.aic_after,
                'delta_aic': r.delta_aic,
                'accepted': r.accepted,
                'top_features': ', '.join(r.top_features[:self.top_k]),
            })
        return pd.DataFrame(rows, columns=[
            'iteration', 'added', 'aic_before', 'aic_after', 'delta_aic',
            'accepted', 'top_features',
        ])

    def get_ranking(self, iteration=-1):
        """Importance ranking of one iteration (default: the last)."""
        self._check_fitted()
        if not self.history_:
            raise IndexError("The search ran no iterations")
        return self.history_[iteration].ranking.copy()

    # ---- internal helpers ------------------------------------------------

    def _fit_baseline(self, data, spec, random_state):
        return fit_forest(
            data, spec.target, features=list(spec.main_effects),
            n_trees=self.n_trees,
            max_features=self.max_features,
            min_samples_leaf=self.min_samples_leaf,
            bootstrap=self.bootstrap,
            importance=False,
            log_target=spec.log_target,
            random_state=random_state,
            n_jobs=self.n_jobs,
        )

    @staticmethod
    def _with_context(err, spec, iteration):
        if err.spec is None:
            err.spec = spec
        if err.iteration is None:
            err.iteration = iteration
        return err

    @staticmethod
    def _aic_path(history, final_linear):
        if not history:
            return [final_linear.aic]
        path = [history[0].aic_before]
        path += [r.aic_after for r in history if r.accepted]
        return path

    def _check_params(self):
        if isinstance(self.top_k, bool) or not isinstance(
                self.top_k, (int, np.integer)) or self.top_k < 2:
            raise ConfigurationError(
                f"top_k must be an integer >= 2, got {self.top_k!r}"
            )
        if self.pairing not in PAIRING_POLICIES:
            raise ConfigurationError(
                f"pairing must be one of {PAIRING_POLICIES}, "
                f"got {self.pairing!r}"
            )
        if self.on_duplicate not in ('skip', 'raise'):
            raise ConfigurationError(
                f"on_duplicate must be 'skip' or 'raise', "
                f"got {self.on_duplicate!r}"
            )
        if self.family not in FAMILIES:
            raise ConfigurationError(
                f"family must be one of {FAMILIES}, got {self.family!r}"
            )
        if not np.isfinite(self.epsilon) or self.epsilon < 0:
            raise ConfigurationError(
                f"epsilon must be a finite non-negative number, "
                f"got {self.epsilon!r}"
            )
        if isinstance(self.max_iterations, bool) or not isinstance(
                self.max_iterations, (int, np.integer)) \
                or self.max_iterations < 1:
            raise ConfigurationError(
                f"max_iterations must be a positive integer, "
                f"got {self.max_iterations!r}"
            )

    def _print_iteration(self, result):
        print(f"ITERATION {result.iteration}")
        print("-" * 70)
        print("  Discrepancy importance (RF - linear):")
        for feat, row in result.ranking.iterrows():
            print(f"    {int(row['rank']):>3d}. {str(feat):20s}  "
                  f"{row['importance']:>10.4f}")
        added = ', '.join(f"{a}:{b}" for a, b in result.added_terms)
        print(f"  Added     : {added}")
        print(f"  AIC       : {result.aic_before:.3f} -> "
              f"{result.aic_after:.3f}  (Δ={result.delta_aic:+.3f})")
        print(f"  Accepted  : {'yes' if result.accepted else 'no'}")
        print()

    def _print_summary(self):
        print("=" * 70)
        print("FINAL MODEL SUMMARY")
        print("=" * 70)
        print(f"  Formula        : {self.spec_}")
        if self.spec_.interactions:
            print(f"  Interactions   : "
                  f"{', '.join(self.spec_.interaction_labels)}")
        else:
            print("  Interactions   : none accepted")
        print(f"  AIC path       : "
              f"{' -> '.join(f'{a:.2f}' for a in self.aic_path_)}")
        print(f"  Iterations     : {self.n_iterations_}")
        print(f"  Stop reason    : {self.stop_reason_}")
        print(f"  Runtime        : {self.runtime_:.2f}s")
        print("=" * 70)

    def _check_fitted(self):
        if not hasattr(self, 'spec_'):
            raise RuntimeError(
                "Search has not been run. Call .fit(data, target) first."
            )


# ---------------------------------------------------------------------------
# Convenience function
# ---------------------------------------------------------------------------

def discover_interactions(data, target, top_k=2, max_iterations=10,
                          epsilon=0.0, random_state=None, verbose=True,
                          **kwargs):
    """
    One-liner convenience function.

    Parameters
    ----------
    data : pd.DataFrame
    target : str
    top_k : int
        Top-ranked predictors combined per iteration.
    max_iterations : int
    epsilon : float
        Minimum AIC decrease to accept a new term.
    random_state : int or None
    verbose : bool
        Print progress?
    **kwargs
        Any other :class:`InteractionSearch` parameter.

    Returns
    -------
    InteractionSearch
        Fitted search.
    """
    search = InteractionSearch(top_k=top_k, max_iterations=max_iterations,
                               epsilon=epsilon, random_state=random_state,
                               **kwargs)
    search.fit(data, target, verbose=verbose)
    return search
