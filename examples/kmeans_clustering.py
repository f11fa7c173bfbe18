"""
Example 3: k-means Clustering (Simulated Blobs)

Demonstrates:
- ``fit_kmeans`` — scikit-learn ``KMeans`` with the training frame kept
- Term view: one row per cluster (centre, size, within-cluster SS)
- Augmented view: cluster assignment for training rows and for new rows
- ``tidy_many`` over k = 1..6 to draw an elbow curve from the summaries
- Raw scikit-learn estimators through ``as_fitted``
"""

import numpy as np
import pandas as pd
from sklearn.cluster import KMeans

from broomkit import (
    ReconstructionFailure,
    as_fitted,
    augmented_view,
    fit_kmeans,
    print_summary_table,
    print_terms_table,
    summary_view,
    term_view,
    tidy_many,
)

# ============================================================================
# Simulate three clusters
# ============================================================================

rng = np.random.default_rng(27)
centres = np.array([[0.0, 0.0], [5.0, 1.0], [2.0, 6.0]])
sizes = [70, 50, 80]
points = pd.DataFrame(
    np.vstack([rng.normal(c, 0.8, size=(s, 2)) for c, s in zip(centres, sizes)]),
    columns=["x1", "x2"],
)
points["label"] = np.repeat(["a", "b", "c"], sizes)

# ============================================================================
# Fit with k = 3
# ============================================================================

km = fit_kmeans(points, 3, ["x1", "x2"], random_state=0)
print_terms_table(km, title="k-means cluster centres (k = 3)")
print_summary_table(km, title="k-means summary")

clusters = term_view(km)
assert sorted(clusters["size"]) == sorted(sizes)
assert list(clusters.columns) == ["x1", "x2", "size", "withinss", "cluster"]

# The summary leaves out n_clusters: it was an argument to the fit.
glance = summary_view(km)
assert "n_clusters" not in glance.columns
np.testing.assert_allclose(
    glance["totss"].iloc[0],
    glance["tot_withinss"].iloc[0] + glance["betweenss"].iloc[0],
)

aug = augmented_view(km)
print(pd.crosstab(aug["label"], aug[".cluster"]))

new_points = pd.DataFrame({"x1": [0.1, 4.9, 2.2], "x2": [-0.2, 1.1, 5.8]})
assigned = augmented_view(km, new_points)[".cluster"]
assert assigned.nunique() == 3

# ============================================================================
# Elbow curve
# ============================================================================

fits = {k: fit_kmeans(points, k, ["x1", "x2"], random_state=0) for k in range(1, 7)}
elbow = tidy_many(fits, "summary", key="k")
print(elbow[["k", "tot_withinss", "betweenss"]])
assert (elbow["totss"] == elbow["totss"].iloc[0]).all()

# ============================================================================
# A raw scikit-learn estimator
# ============================================================================

raw = as_fitted(KMeans(n_clusters=3, n_init=10, random_state=0).fit(points[["x1", "x2"]]))
print(term_view(raw))

# Without the training rows the augmented view needs data=.
try:
    augmented_view(raw)
except ReconstructionFailure as exc:
    print(f"augmented_view: {exc}")
print(augmented_view(raw, points[["x1", "x2"]]).head())
