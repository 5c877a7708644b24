"""
Example: interaction search on dirty / messy data
==================================================
The search itself requires complete data.  clean_dataset() repairs the
usual problems first:
  - Missing values in predictors -> median (numeric) / mode (categorical)
  - Missing or infinite response -> rows dropped
  - Infinite predictor values    -> replaced with column max/min
  - All-NaN and zero-variance columns -> dropped

All cleaning actions are reported transparently.
"""

import numpy as np

# If running from the repo root (not pip-installed), uncomment:
# import sys; sys.path.insert(0, '..')

from rfols import (FitError, clean_dataset, discover_interactions,
                   make_planted_interaction, validate_dataset)

# ------------------------------------------------------------------
# 1.  Clean data with a planted x0 * x2 interaction, then make it dirty
# ------------------------------------------------------------------
df = make_planted_interaction(n_samples=800, n_features=4, pair=(0, 2),
                              random_state=42)
rng = np.random.RandomState(42)

dirty = df.copy()
dirty.loc[rng.choice(len(dirty), 40, replace=False), 'x1'] = np.nan
dirty.loc[rng.choice(len(dirty), 20, replace=False), 'y'] = np.nan
dirty['region'] = rng.choice(['north', 'south', None], size=len(dirty))
dirty['constant'] = 1.0
dirty.iloc[0, 3] = np.inf

try:
    validate_dataset(dirty, 'y')
except FitError as err:
    print(f"Raw data rejected: {err}\n")

# ------------------------------------------------------------------
# 2.  Clean, then search
# ------------------------------------------------------------------
clean = clean_dataset(dirty, 'y', verbose=True)
search = discover_interactions(clean, 'y', max_iterations=3,
                               n_trees=200, random_state=42)

print(f"\nInteractions found: {search.spec_.interaction_labels}")
