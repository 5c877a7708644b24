"""
Model specifications and the formula augmenter.

A :class:`ModelSpec` is an immutable description of a linear model: the
target, its main effects (never removed) and the pairwise interaction terms
appended so far.  :func:`augment_spec` turns an importance ranking into the
next specification.
"""

import keyword
from dataclasses import dataclass, replace

from .errors import ConfigurationError, DuplicateTermError


FAMILIES = ('gaussian', 'gaussian-log')

# How the top-k ranked features are paired into interaction terms.
#   chain   : r1:r2, r2:r3, ..., r(k-1):rk
#   leading : r1:r2, r1:r3, ..., r1:rk
#   all     : every pair, in rank order
PAIRING_POLICIES = ('chain', 'leading', 'all')


def _quote(name):
    if name.isidentifier() and not keyword.iskeyword(name):
        return name
    escaped = name.replace('\\', '\\\\').replace('"', '\\"')
    return f'Q("{escaped}")'


@dataclass(frozen=True)
class ModelSpec:
    """
    Immutable linear model specification.

    Parameters
    ----------
    target : str
        Response column.
    main_effects : tuple of str
        Predictors entered additively, in dataset order.
    interactions : tuple of (str, str)
        Pairwise product terms, in the order they were added.  Each pair is
        kept in rank order; equality between pairs is unordered.
    log_target : bool, default=False
        Model ``log(target)``.
    log_features : frozenset of str
        Main effects entered as ``log(x)`` (also inside interactions).
    family : {'gaussian', 'gaussian-log'}
        ``'gaussian'`` is OLS; ``'gaussian-log'`` is a Gaussian GLM with a
        log link.
    """

    target: str
    main_effects: tuple
    interactions: tuple = ()
    log_target: bool = False
    log_features: frozenset = frozenset()
    family: str = 'gaussian'

    def __post_init__(self):
        object.__setattr__(self, 'main_effects', tuple(self.main_effects))
        object.__setattr__(self, 'interactions',
                           tuple(tuple(pair) for pair in self.interactions))
        object.__setattr__(self, 'log_features',
                           frozenset(self.log_features))

        if not self.main_effects:
            raise ConfigurationError("A specification needs at least one "
                                     "main effect")
        if len(set(self.main_effects)) != len(self.main_effects):
            raise ConfigurationError(
                f"Duplicate main effects: {list(self.main_effects)}"
            )
        if self.target in self.main_effects:
            raise ConfigurationError(
                f"Target '{self.target}' cannot be a main effect"
            )
        if self.family not in FAMILIES:
            raise ConfigurationError(
                f"Unknown family '{self.family}'; expected one of {FAMILIES}"
            )
        if self.log_target and self.family == 'gaussian-log':
            raise ConfigurationError(
                "log_target and the log link are mutually exclusive"
            )
        unknown = sorted(self.log_features - set(self.main_effects))
        if unknown:
            raise ConfigurationError(
                f"log_features not among the main effects: {unknown}"
            )

        seen = set()
        for pair in self.interactions:
            if len(pair) != 2 or pair[0] == pair[1]:
                raise ConfigurationError(
                    f"Interaction terms must pair two distinct predictors, "
                    f"got {pair}"
                )
            for name in pair:
                if name not in self.main_effects:
                    raise ConfigurationError(
                        f"Interaction uses '{name}', which is not a main "
                        f"effect"
                    )
            key = frozenset(pair)
            if key in seen:
                raise DuplicateTermError(
                    f"Interaction {pair[0]}:{pair[1]} appears twice"
                )
            seen.add(key)

    @classmethod
    def from_data(cls, data, target, features=None, **kwargs):
        """All main effects, no interactions."""
        if features is None:
            features = [c for c in data.columns if c != target]
        return cls(target=target, main_effects=tuple(features), **kwargs)

    # ---- terms -----------------------------------------------------------

    def has_interaction(self, a, b):
        key = frozenset((a, b))
        return any(frozenset(pair) == key for pair in self.interactions)

    def with_interaction(self, a, b):
        """Return a new spec with ``a:b`` appended."""
        if self.has_interaction(a, b):
            raise DuplicateTermError(
                f"Interaction {a}:{b} is already in the model", spec=self
            )
        return replace(self, interactions=self.interactions + ((a, b),))

    @property
    def interaction_labels(self):
        return [f"{a}:{b}" for a, b in self.interactions]

    @property
    def terms(self):
        """Main effects followed by interaction labels."""
        return list(self.main_effects) + self.interaction_labels

    # ---- formula rendering -----------------------------------------------

    def _term(self, name):
        quoted = _quote(name)
        if name in self.log_features:
            return f"np.log({quoted})"
        return quoted

    def formula(self):
        """statsmodels / patsy formula, e.g. ``y ~ A + B + C + B:A``."""
        lhs = _quote(self.target)
        if self.log_target:
            lhs = f"np.log({lhs})"
        rhs = [self._term(m) for m in self.main_effects]
        rhs += [f"{self._term(a)}:{self._term(b)}"
                for a, b in self.interactions]
        return f"{lhs} ~ {' + '.join(rhs)}"

    def __str__(self):
        return self.formula()


# ---------------------------------------------------------------------------
# Augmenter
# ---------------------------------------------------------------------------

def ranking_order(ranking):
    """Feature names in rank order from a ranking DataFrame or a sequence."""
    if hasattr(ranking, 'index') and hasattr(ranking, 'columns'):
        return list(ranking.index)
    return list(ranking)


def select_pairs(features, pairing='chain'):
    """
    Pair rank-ordered ``features`` into interaction candidates.

    >>> select_pairs(['B', 'A', 'C'], 'chain')
    [('B', 'A'), ('A', 'C')]
    >>> select_pairs(['B', 'A', 'C'], 'leading')
    [('B', 'A'), ('B', 'C')]
    >>> select_pairs(['B', 'A', 'C'], 'all')
    [('B', 'A'), ('B', 'C'), ('A', 'C')]
    """
    features = list(features)
    if pairing == 'chain':
        return [(features[i], features[i + 1])
                for i in range(len(features) - 1)]
    if pairing == 'leading':
        return [(features[0], f) for f in features[1:]]
    if pairing == 'all':
        return [(a, b) for i, a in enumerate(features)
                for b in features[i + 1:]]
    raise ConfigurationError(
        f"Unknown pairing policy '{pairing}'; expected one of "
        f"{PAIRING_POLICIES}"
    )


def augment_spec(spec, ranking, k=2, pairing='chain', on_duplicate='raise'):
    """
    Add interaction terms among the top-``k`` ranked features.

    Parameters
    ----------
    spec : ModelSpec
    ranking : pd.DataFrame or sequence of str
        Importance ranking, most important first.
    k : int, default=2
        Number of top-ranked features to combine.
    pairing : {'chain', 'leading', 'all'}, default='chain'
        How the top-k features are paired (see ``PAIRING_POLICIES``).  With
        ``k=2`` every policy yields the single pair rank-1:rank-2.
    on_duplicate : {'raise', 'skip'}, default='raise'
        What to do with a pair already in the model.  When skipping leaves
        nothing new to add, DuplicateTermError is raised regardless.

    Returns
    -------
    ModelSpec
        A new specification; ``spec`` is unchanged.

    Raises
    ------
    ConfigurationError
        ``k < 2``, fewer than ``k`` ranked features, or a ranked feature
        that is not a main effect of ``spec``.
    DuplicateTermError
        See ``on_duplicate``.
    """
    if on_duplicate not in ('raise', 'skip'):
        raise ConfigurationError(
            f"on_duplicate must be 'raise' or 'skip', got '{on_duplicate}'"
        )
    if k < 2:
        raise ConfigurationError(f"k must be at least 2 to form an "
                                 f"interaction, got {k}")
    order = ranking_order(ranking)
    if len(order) < k:
        raise ConfigurationError(
            f"Cannot form interactions among the top {k} features: the "
            f"ranking has only {len(order)} feature(s)",
            spec=spec,
        )

    top = order[:k]
    unknown = [f for f in top if f not in spec.main_effects]
    if unknown:
        raise ConfigurationError(
            f"Ranked feature(s) {unknown} are not main effects of the model",
            spec=spec,
        )

    new_spec = spec
    for a, b in select_pairs(top, pairing):
        if new_spec.has_interaction(a, b):
            if on_duplicate == 'raise':
                raise DuplicateTermError(
                    f"Interaction {a}:{b} is already in the model", spec=spec
                )
            continue
        new_spec = new_spec.with_interaction(a, b)

    if new_spec is spec:
        raise DuplicateTermError(
            f"Every candidate interaction among {top} is already in the "
            f"model",
            spec=spec,
        )
    return new_spec
