"""
Tests for the iteration driver.

Run with:  python -m pytest tests/ -v
"""

import numpy as np
import pandas as pd
import pytest
import sys
import os

# Allow running from repo root
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from sklearn.base import clone

from rfols import (ConfigurationError, DuplicateTermError, FitError,
                   InteractionSearch, ModelSpec, discover_interactions,
                   make_planted_interaction)


def _planted(seed=0):
    # y = x0 + ... + x4 + 10 * x1 * x3 + noise
    return make_planted_interaction(n_samples=500, n_features=5,
                                    pair=(1, 3), strength=10.0,
                                    random_state=seed)


def _has_pair(spec, a, b):
    return frozenset((a, b)) in {frozenset(p) for p in spec.interactions}


def test_planted_interaction_is_found_and_improves_aic():
    """
    End-to-end acceptance: one iteration on data with a planted x1*x3 term
    ranks {x1, x3} on top and lowers AIC.
    """
    df = _planted()

    search = InteractionSearch(n_trees=200, max_features=3,
                               max_iterations=1, random_state=0)
    search.fit(df, 'y')

    result = search.history_[0]
    assert set(result.top_features[:2]) == {'x1', 'x3'}, (
        f"top features were {result.top_features}"
    )
    assert result.aic_after < result.aic_before
    assert result.accepted
    assert _has_pair(search.spec_, 'x1', 'x3')
    assert search.stop_reason_ == 'max_iterations'
    assert len(result.discrepancy) == len(df)


def test_search_stops_and_aic_path_decreases():
    df = _planted(seed=3)

    search = InteractionSearch(n_trees=100, max_features=3,
                               max_iterations=5, random_state=3)
    search.fit(df, 'y')

    assert search.stop_reason_ in ('no_improvement', 'exhausted',
                                   'max_iterations')
    assert 1 <= search.n_iterations_ <= 5
    path = search.aic_path_
    assert all(b < a for a, b in zip(path, path[1:]))
    n_accepted = sum(r.accepted for r in search.history_)
    assert len(search.spec_.interactions) == n_accepted
    assert len(path) == n_accepted + 1
    assert _has_pair(search.spec_, 'x1', 'x3')
    assert abs(search.linear_.aic - path[-1]) < 1e-9


def test_search_does_not_mutate_dataset():
    df = _planted(seed=1)
    before = df.copy()

    InteractionSearch(n_trees=50, max_iterations=3,
                      random_state=1).fit(df, 'y')

    pd.testing.assert_frame_equal(df, before)
    assert df.shape == before.shape
    assert list(df.columns) == list(before.columns)


def test_large_epsilon_rejects_first_step():
    df = _planted(seed=2)

    search = InteractionSearch(n_trees=50, epsilon=1e12, random_state=2)
    search.fit(df, 'y')

    assert search.stop_reason_ == 'no_improvement'
    assert search.n_iterations_ == 1
    assert search.spec_.interactions == ()
    assert not search.history_[0].accepted
    assert len(search.aic_path_) == 1


def test_same_seed_same_result():
    df = _planted(seed=4)
    params = dict(n_trees=50, max_iterations=2, random_state=11)

    a = InteractionSearch(**params).fit(df, 'y')
    b = InteractionSearch(**params).fit(df, 'y')

    assert a.seeds_ == b.seeds_
    assert a.spec_ == b.spec_
    for ra, rb in zip(a.history_, b.history_):
        pd.testing.assert_frame_equal(ra.ranking, rb.ranking)
        assert ra.aic_after == rb.aic_after


def test_errors_carry_iteration_and_spec():
    df = _planted()

    with pytest.raises(ConfigurationError) as excinfo:
        InteractionSearch(n_trees=10, max_features=6).fit(df, 'y')
    assert excinfo.value.iteration == 0
    assert excinfo.value.spec is not None

    # x0 is standard normal, so log(x0) cannot be fitted
    spec = ModelSpec('y', ('x0', 'x1', 'x2'), log_features={'x0'})
    search = InteractionSearch(n_trees=10, random_state=0)
    with pytest.raises(FitError) as excinfo:
        search.step(df, spec, iteration=3)
    assert excinfo.value.iteration == 3
    assert excinfo.value.spec == spec
    assert 'iteration=3' in str(excinfo.value)


def test_two_feature_search_stops_when_exhausted():
    """
    With only x1 and x3 as main effects the first step adds x1:x3; after
    that every candidate pair is a duplicate and the run ends.
    """
    df = _planted()
    start = ModelSpec('y', ('x1', 'x3'))

    search = InteractionSearch(n_trees=50, random_state=0)
    search.fit(df, spec=start)

    assert search.stop_reason_ == 'exhausted'
    assert search.n_iterations_ == 1
    assert search.history_[0].accepted
    assert search.spec_ == search.history_[0].next_spec
    assert _has_pair(search.spec_, 'x1', 'x3')
    assert len(search.aic_path_) == 2


def test_duplicate_raises_when_configured():
    df = _planted()
    start = ModelSpec('y', ('x1', 'x3'), interactions=[('x1', 'x3')])

    search = InteractionSearch(n_trees=50, on_duplicate='raise',
                               random_state=0)
    with pytest.raises(DuplicateTermError) as excinfo:
        search.fit(df, spec=start)
    assert excinfo.value.iteration == 0
    assert excinfo.value.spec == start
    assert search.partial_history_ == []
    assert search.last_spec_ == start


def test_failure_mid_run_keeps_committed_state():
    """
    The first step is accepted and committed; the second fails.  The error
    names iteration 1 and the committed specification, and the completed
    iteration stays available.
    """
    df = _planted()
    start = ModelSpec('y', ('x1', 'x3'))

    search = InteractionSearch(n_trees=50, on_duplicate='raise',
                               random_state=0)
    with pytest.raises(DuplicateTermError) as excinfo:
        search.fit(df, spec=start)

    assert excinfo.value.iteration == 1
    assert len(search.partial_history_) == 1
    assert search.partial_history_[0].accepted
    committed = search.partial_history_[0].next_spec
    assert _has_pair(committed, 'x1', 'x3')
    assert search.last_spec_ == committed
    assert excinfo.value.spec == committed
    assert not hasattr(search, 'spec_')


def test_failed_refit_clears_previous_results():
    df = _planted(seed=7)
    search = InteractionSearch(n_trees=20, max_iterations=1, random_state=7)
    search.fit(df, 'y')
    assert hasattr(search, 'spec_')

    search.set_params(max_features=6)
    with pytest.raises(ConfigurationError):
        search.fit(df, 'y')
    for attr in ('spec_', 'history_', 'linear_', 'stop_reason_',
                 'aic_path_', 'interactions_'):
        assert not hasattr(search, attr), attr
    with pytest.raises(RuntimeError):
        search.summary()


def test_single_feature_dataset_cannot_form_interaction():
    df = _planted()[['x0', 'y']]

    search = InteractionSearch(n_trees=20, random_state=0)
    with pytest.raises(ConfigurationError):
        search.fit(df, 'y')
    assert search.partial_history_ == []
    assert search.last_spec_.main_effects == ('x0',)


def test_invalid_parameters():
    df = _planted()
    for bad in (dict(top_k=1), dict(pairing='random'), dict(epsilon=-1.0),
                dict(max_iterations=0), dict(on_duplicate='ignore'),
                dict(family='poisson')):
        with pytest.raises(ConfigurationError):
            InteractionSearch(n_trees=10, **bad).fit(df, 'y')

    with pytest.raises(ConfigurationError):
        InteractionSearch(n_trees=10).fit(df)


def test_summary_and_params():
    df = _planted(seed=5)
    search = InteractionSearch(n_trees=50, max_iterations=2, random_state=5)

    with pytest.raises(RuntimeError):
        search.summary()

    search.fit(df, 'y')
    table = search.summary()
    assert list(table.columns) == ['iteration', 'added', 'aic_before',
                                   'aic_after', 'delta_aic', 'accepted',
                                   'top_features']
    assert len(table) == search.n_iterations_
    assert table['iteration'].tolist() == list(range(search.n_iterations_))
    assert list(search.get_ranking(0).index) == \
        search.history_[0].top_features

    copy = clone(search)
    assert copy.get_params() == search.get_params()
    assert not hasattr(copy, 'spec_')


def test_discover_interactions_convenience(capsys):
    df = _planted(seed=6)

    search = discover_interactions(df, 'y', max_iterations=1,
                                   random_state=6, n_trees=50, verbose=True)

    out = capsys.readouterr().out
    assert 'FINAL MODEL SUMMARY' in out
    assert search.n_iterations_ == 1
    assert search.interactions_ == list(search.spec_.interactions)


if __name__ == '__main__':
    sys.exit(pytest.main([__file__, '-v']))
