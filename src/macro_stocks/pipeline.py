# ---------------------------------------------------------------------------
# macro_stocks.pipeline — End-to-end analysis, data to report
# ---------------------------------------------------------------------------
"""Run every stage of the analysis in order and write the report.

Each model is fitted twice.  ADVI is given a freshly built copy of the
model: posterior predictive sampling registers replicated variables on the
model it is run under, after which the model no longer compiles for
variational fitting.
"""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path

import pymc as pm

from .checks import (
    compare_models,
    run_posterior_predictive_checks,
    run_prior_predictive_checks,
)
from .config import OUTPUT_DIR, SourceConfig
from .data import AnalysisData, load_data
from .diagnostics import print_diagnostics, print_variational_diagnostics
from .model import build_mixture_model, build_regression_model
from .plots import (
    plot_elbo,
    plot_intervals,
    plot_posterior_histograms,
    plot_predictor_correlations,
    plot_series,
    plot_traces,
    slugify,
)
from .report import FitSummary, summarize_mcmc, summarize_variational, write_report
from .sampling import InferenceEngine, PyMCEngine

RANDOM_SEED = 20240101


def model_builders(data: AnalysisData) -> dict[str, Callable[[], pm.Model]]:
    """Model name -> zero-argument builder over *data*."""
    names = list(data.predictor_names)
    return {
        "regression": lambda: build_regression_model(data.X, data.y, names),
        "mixture": lambda: build_mixture_model(data.X, data.y, names),
    }


def run_analysis(
    sources: list[SourceConfig] | None = None,
    data_dir: Path | None = None,
    output_dir: Path | None = None,
    engine: InferenceEngine | None = None,
) -> Path:
    """Load, de-trend, fit both models by NUTS and ADVI, compare, report.

    Returns
    -------
    Path
        The written ``report.md``.
    """
    if output_dir is None:
        output_dir = OUTPUT_DIR
    if engine is None:
        engine = PyMCEngine(random_seed=RANDOM_SEED)
    output_dir.mkdir(parents=True, exist_ok=True)

    # 1-3. Load, align, de-trend -------------------------------------------------
    data = load_data(sources, data_dir)
    data_figures = [
        plot_series(data, output_dir=output_dir),
        plot_predictor_correlations(data, output_dir=output_dir),
    ]
    names = list(data.predictor_names)

    fits: list[FitSummary] = []
    loo_inputs = {}
    for model_name, build in model_builders(data).items():
        model = build()

        # 4. Prior predictive ------------------------------------------------------
        run_prior_predictive_checks(model, data, model_name, output_dir=output_dir)

        # 5. NUTS ------------------------------------------------------------------
        nuts_label = f"{model_name.capitalize()} NUTS"
        idata = engine.sample(model)
        print_diagnostics(idata, nuts_label)
        nuts_fit = summarize_mcmc(nuts_label, model_name, idata, names)

        # 6. ADVI on its own copy of the model -------------------------------------
        advi_label = f"{model_name.capitalize()} ADVI"
        result = engine.variational_fit(build())
        print_variational_diagnostics(result, advi_label)
        advi_fit = summarize_variational(advi_label, model_name, result, names)

        # 7. Posterior predictive on the NUTS posterior ----------------------------
        nuts_fit.ppc_pvalues = run_posterior_predictive_checks(
            model, idata, data, nuts_label, output_dir=output_dir
        )

        # 8. Figures and saved posteriors ------------------------------------------
        nuts_fit.figures = [
            plot_traces(idata, nuts_label, output_dir=output_dir),
            plot_intervals(idata, nuts_label, output_dir=output_dir),
            plot_posterior_histograms(idata, nuts_label, output_dir=output_dir),
        ]
        advi_fit.figures = [
            plot_elbo(result, advi_label, output_dir=output_dir),
            plot_intervals(result.idata, advi_label, output_dir=output_dir),
            plot_posterior_histograms(result.idata, advi_label, output_dir=output_dir),
        ]
        fits += [nuts_fit, advi_fit]
        loo_inputs[model_name] = (model, idata)
        idata.to_netcdf(str(output_dir / f"idata_{slugify(nuts_label)}.nc"))
        result.idata.to_netcdf(str(output_dir / f"idata_{slugify(advi_label)}.nc"))

    # 9. Model comparison and report ----------------------------------------------
    comparison = compare_models(loo_inputs, output_dir=output_dir)
    return write_report(
        data,
        fits,
        comparison=comparison,
        figures=data_figures,
        sources=sources,
        output_dir=output_dir,
    )
