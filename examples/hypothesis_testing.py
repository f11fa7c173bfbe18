"""
Example 4: Hypothesis Tests and Simulation-Based Inference (Simulated Survey)

Demonstrates:
- ``t_test`` / ``wilcox_test`` / ``chisq_test`` — scipy tests as tidy rows
- Per-cell augmented view of a chi-squared test
- ``calculate`` / ``statistic`` — named sample statistics as models
- Permutation null distribution for a difference in means
- Point-null bootstrap (``Bootstrap(center=...)``) for a single mean
- Simulated null for a goodness-of-fit statistic
"""

import numpy as np
import pandas as pd

from broomkit import (
    Bootstrap,
    augmented_view,
    calculate,
    chisq_test,
    get_p_value,
    print_resample_table,
    run,
    statistic,
    t_test,
    term_view,
    wilcox_test,
)

# ============================================================================
# Simulate survey responses
# ============================================================================

rng = np.random.default_rng(500)
n = 300
college = rng.choice(["degree", "no degree"], size=n, p=[0.35, 0.65])
hours = np.where(college == "degree", 41.5, 39.5) + rng.normal(0, 9, n)
party = rng.choice(["dem", "ind", "rep"], size=n, p=[0.38, 0.22, 0.40])
finrela = np.where(
    college == "degree",
    rng.choice(["above", "average", "below"], size=n, p=[0.4, 0.4, 0.2]),
    rng.choice(["above", "average", "below"], size=n, p=[0.2, 0.45, 0.35]),
)
gss = pd.DataFrame(
    {"hours": hours, "college": college, "party": party, "finrela": finrela}
)

# ============================================================================
# Classical tests
# ============================================================================

print(term_view(t_test(gss, "hours", mu=40)))
print(term_view(t_test(gss, "hours", "college", order=["degree", "no degree"])))
print(term_view(wilcox_test(gss, "hours", "college")))

independence = chisq_test(gss, "college", "finrela")
print(term_view(independence))
cells = augmented_view(independence)
assert len(cells) == 2 * 3
print(cells)

# ============================================================================
# Permutation test: difference in mean hours by degree
# ============================================================================

diff = statistic("diff in means", "hours", "college", order=["degree", "no degree"])
null = run(gss, "permute", 1000, diff, column="hours", n_jobs=-1, random_state=1)
print_resample_table(null, direction="two-sided", title="Permutation null: diff in means")

observed = calculate(gss, "diff in means", "hours", "college", order=["degree", "no degree"])
p = get_p_value(null.terms, observed, "two-sided")
assert p["p_value"].iloc[0] == null.p_value("two-sided")["p_value"].iloc[0]

# ============================================================================
# Point-null bootstrap: is mean weekly hours 40?
# ============================================================================

boot = run(
    gss,
    Bootstrap(center={"hours": 40.0}),
    1000,
    statistic("mean", "hours"),
    random_state=2,
)
print(boot.p_value("two-sided"))

# ============================================================================
# Simulated null: are party affiliations uniform?
# ============================================================================

sim = run(
    gss,
    "simulate",
    1000,
    statistic("Chisq", "party"),
    column="party",
    p={"dem": 1 / 3, "ind": 1 / 3, "rep": 1 / 3},
    random_state=3,
)
print(sim.p_value("greater", correction=True))
