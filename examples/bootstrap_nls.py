"""
Example 2: Nonlinear Least Squares and Smoothing Splines

Demonstrates:
- ``fit_nls`` — ``scipy.optimize.curve_fit`` with t-based term inference
- Bootstrapping an NLS fit and comparing percentile, standard-error and
  bias-corrected intervals
- Replicate failures: non-converging bootstrap fits are omitted and
  counted rather than aborting the run
- ``fit_smooth_spline`` — term view is unsupported, augmented and
  summary views are not
"""

import warnings

import numpy as np
import pandas as pd

from broomkit import (
    UnsupportedOperation,
    augmented_view,
    fit_nls,
    fit_smooth_spline,
    generate_replicates,
    print_resample_table,
    print_summary_table,
    print_terms_table,
    run,
    summary_view,
    term_view,
)

# ============================================================================
# Simulate data
# ============================================================================

rng = np.random.default_rng(11)
n = 60
x = np.linspace(0.5, 10, n)
y = 4.0 * np.exp(-0.35 * x) + 0.5 + rng.normal(0, 0.08, n)
decay = pd.DataFrame({"x": x, "y": y})


def exp_decay(x, amplitude, rate, floor):
    return amplitude * np.exp(-rate * x) + floor


# ============================================================================
# NLS fit on the original data
# ============================================================================

nls = fit_nls(decay, exp_decay, "x", "y", p0=(1.0, 0.1, 0.0))
print_terms_table(nls, title="NLS: y ~ amplitude * exp(-rate * x) + floor")
print_summary_table(nls, title="NLS summary")

terms = term_view(nls).set_index("term")
assert terms.loc["rate", "conf_low"] < 0.35 < terms.loc["rate", "conf_high"]
assert summary_view(nls)["is_conv"].iloc[0]

# ============================================================================
# Bootstrap the parameters
# ============================================================================

# Peek at the first replicate: same row count, rows drawn with replacement.
first = next(generate_replicates(decay, "bootstrap", 1, random_state=3))
assert len(first.data) == n

with warnings.catch_warnings():
    # warnings_as_failures turns curve_fit's OptimizeWarning into a
    # replicate failure; the omitted-replicates notice is printed below.
    warnings.simplefilter("ignore", UserWarning)
    boot = run(
        decay,
        "bootstrap",
        1000,
        lambda d: fit_nls(d, exp_decay, "x", "y", p0=(1.0, 0.1, 0.0)),
        n_jobs=-1,
        prefer="processes",
        random_state=3,
        warnings_as_failures=True,
    )
print_resample_table(boot, title="Bootstrap NLS parameters")
assert boot.n_completed + boot.n_omitted == 1000
print(f"{boot.n_omitted} of {boot.n_requested} replicates omitted")

for kind in ("percentile", "se", "bias-corrected"):
    ci = boot.get_confidence_interval(0.95, kind).set_index("term")
    print(f"{kind:>15}: rate in [{ci.loc['rate', 'conf_low']:.4f}, "
          f"{ci.loc['rate', 'conf_high']:.4f}]")

# Summary-level statistics can be aggregated too.
print(boot.percentile_ci(0.9, column="sigma", source="summaries"))

# ============================================================================
# Smoothing spline
# ============================================================================

spline = fit_smooth_spline(decay, "x", "y")
print_summary_table(spline, title="Smoothing spline (automatic smoothing)")

try:
    term_view(spline)
except UnsupportedOperation as exc:
    print(f"term_view: {exc}")
else:
    raise AssertionError("smoothing splines have no term view")

aug = augmented_view(spline)
assert list(aug.columns) == ["x", "y", ".fitted", ".resid"]
print(aug.head())

# A user-supplied smoothing factor is configuration, not a result.
fixed = fit_smooth_spline(decay, "x", "y", smoothing=0.5)
assert "smoothing" not in summary_view(fixed).columns
assert "smoothing" in summary_view(spline).columns
