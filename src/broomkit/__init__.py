"""broomkit — Tidy views of fitted models and resample-aggregate workflows.

Turns heterogeneous fitted-model objects (statsmodels OLS/GLM results,
scipy nonlinear least squares, smoothing splines and hypothesis tests,
scikit-learn k-means) into three uniform tables — one row per term, one
row per observation, one row per model — and runs bootstrap,
permutation and simulation workflows over them with parallel fitting
and percentile, standard-error and bias-corrected aggregation.

Public API:
    .. autosummary::
        term_view
        augmented_view
        summary_view
        tidy_many
        as_fitted
        fit_lm
        fit_glm
        fit_nls
        fit_smooth_spline
        fit_kmeans
        t_test
        wilcox_test
        chisq_test
        calculate
        statistic
        run
        fit_by_group
        ResampleWorkflow
        Bootstrap
        Permute
        Simulate
        generate_replicates
        generate_unique_permutations
        percentile_ci
        se_ci
        bias_corrected_ci
        get_confidence_interval
        get_p_value
        print_terms_table
        print_summary_table
        print_resample_table
        get_n_jobs
        set_n_jobs
        get_prefer
        set_prefer
        get_column_marker
        set_column_marker
        ModelAdapter
        register_adapter
        resolve_adapter
        FittedModel
        ModelKind
        ReplicateResult
        ResampleResult
        BroomkitError
        UnsupportedOperation
        ReconstructionFailure
        ReplicateFailure
"""

from ._config import (
    get_column_marker,
    get_n_jobs,
    get_prefer,
    set_column_marker,
    set_n_jobs,
    set_prefer,
)
from ._results import ReplicateResult, ResampleResult
from .adapters import (
    ModelAdapter,
    augmented_view,
    register_adapter,
    resolve_adapter,
    summary_view,
    term_view,
    tidy_many,
)
from .aggregate import (
    bias_corrected_ci,
    get_confidence_interval,
    get_p_value,
    percentile_ci,
    se_ci,
)
from .display import print_resample_table, print_summary_table, print_terms_table
from .errors import (
    BroomkitError,
    ReconstructionFailure,
    ReplicateFailure,
    UnsupportedOperation,
)
from .fitting import fit_glm, fit_kmeans, fit_lm, fit_nls, fit_smooth_spline
from .htests import chisq_test, t_test, wilcox_test
from .models import FittedModel, ModelKind, as_fitted
from .resample import (
    Bootstrap,
    Permute,
    Simulate,
    generate_replicates,
    generate_unique_permutations,
)
from .stats import calculate, statistic
from .workflow import ResampleWorkflow, fit_by_group, run

__all__ = [
    "term_view",
    "augmented_view",
    "summary_view",
    "tidy_many",
    "as_fitted",
    "fit_lm",
    "fit_glm",
    "fit_nls",
    "fit_smooth_spline",
    "fit_kmeans",
    "t_test",
    "wilcox_test",
    "chisq_test",
    "calculate",
    "statistic",
    "run",
    "fit_by_group",
    "ResampleWorkflow",
    "Bootstrap",
    "Permute",
    "Simulate",
    "generate_replicates",
    "generate_unique_permutations",
    "percentile_ci",
    "se_ci",
    "bias_corrected_ci",
    "get_confidence_interval",
    "get_p_value",
    "print_terms_table",
    "print_summary_table",
    "print_resample_table",
    "get_n_jobs",
    "set_n_jobs",
    "get_prefer",
    "set_prefer",
    "get_column_marker",
    "set_column_marker",
    "ModelAdapter",
    "register_adapter",
    "resolve_adapter",
    "FittedModel",
    "ModelKind",
    "ReplicateResult",
    "ResampleResult",
    "BroomkitError",
    "UnsupportedOperation",
    "ReconstructionFailure",
    "ReplicateFailure",
]

__version__ = "0.1.0"
