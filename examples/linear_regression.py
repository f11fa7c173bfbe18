"""
Example 1: Linear and Logistic Regression (Simulated Fuel-Economy Data)

Demonstrates:
- ``fit_lm`` / ``fit_glm`` — statsmodels formulas wrapped as ``FittedModel``
- ``term_view`` / ``augmented_view`` / ``summary_view`` on both kinds
- Column-collision marking when the data already has a ``.fitted`` column
- ``fit_by_group`` — one regression per cylinder count
- ``tidy_many`` — stacking the term views of several models
- Bootstrap confidence intervals for the regression slopes
"""

import numpy as np
import pandas as pd

from broomkit import (
    augmented_view,
    fit_by_group,
    fit_glm,
    fit_lm,
    print_resample_table,
    print_summary_table,
    print_terms_table,
    run,
    summary_view,
    term_view,
    tidy_many,
)

# ============================================================================
# Simulate data
# ============================================================================

rng = np.random.default_rng(2024)
n = 120
cyl = rng.choice([4, 6, 8], size=n)
wt = 1.2 + 0.35 * cyl + rng.uniform(-0.4, 0.4, n)
hp = 20 * cyl + rng.normal(0, 15, n)
mpg = 42 - 4.5 * wt - 0.02 * hp + rng.normal(0, 1.5, n)
am = rng.binomial(1, 1 / (1 + np.exp(-(9 - 2.8 * wt))))
cars = pd.DataFrame({"mpg": mpg, "wt": wt, "hp": hp, "cyl": cyl, "am": am})

# ============================================================================
# Ordinary least squares
# ============================================================================

lm = fit_lm(cars, "mpg ~ wt + hp")
print_terms_table(lm, title="OLS: mpg ~ wt + hp")
print_summary_table(lm, title="OLS model summary")

terms = term_view(lm)
assert list(terms["term"]) == ["Intercept", "wt", "hp"]
assert (terms["conf_low"] < terms["estimate"]).all()

aug = augmented_view(lm)
assert len(aug) == n
print(aug.head())

# The training frame already has a ".fitted" column: the derived one
# becomes "..fitted" and the original is left untouched.
clash = cars.assign(**{".fitted": 0.0})
aug_clash = augmented_view(lm, clash)
assert "..fitted" in aug_clash.columns
assert (aug_clash[".fitted"] == 0.0).all()

# ============================================================================
# Logistic regression
# ============================================================================

glm = fit_glm(cars, "am ~ wt", "binomial")
print_terms_table(glm, title="Logistic GLM: am ~ wt")
glm_summary = summary_view(glm)
# family was passed to the fit, so the summary leaves it out.
assert "family" not in glm_summary.columns
print(glm_summary)

# Link-scale (default) vs response-scale fitted values.
link = augmented_view(glm)[".fitted"]
resp = augmented_view(glm, type_predict="response")[".fitted"]
assert resp.between(0, 1).all()
np.testing.assert_allclose(resp, 1 / (1 + np.exp(-link)))

# ============================================================================
# One model per group, several models side by side
# ============================================================================

by_cyl = fit_by_group(cars, "cyl", lambda d: fit_lm(d, "mpg ~ wt"))
print(by_cyl)
assert sorted(by_cyl["cyl"].unique()) == [4, 6, 8]

stacked = tidy_many({"wt only": fit_lm(cars, "mpg ~ wt"), "wt + hp": lm})
print(stacked[["model", "term", "estimate", "p_value"]])

# ============================================================================
# Bootstrap the slopes
# ============================================================================

boot = run(
    cars,
    "bootstrap",
    500,
    lambda d: fit_lm(d, "mpg ~ wt + hp"),
    n_jobs=-1,
    random_state=7,
)
print_resample_table(boot, title="Bootstrap: mpg ~ wt + hp")
pct = boot.percentile_ci(0.95).set_index("term")
se = boot.get_confidence_interval(0.95, "se").set_index("term")
print(pct.join(se, lsuffix="_pct", rsuffix="_se"))
