# ---------------------------------------------------------------------------
# macro_stocks — Bayesian regressions of a stock index on macro conditions
# ---------------------------------------------------------------------------
"""De-trended macroeconomic predictors, a plain and a mixture Bayesian
regression, fitted by NUTS and by ADVI, narrated as a Markdown report."""

from .config import BASE_DIR, DATA_DIR, OUTPUT_DIR, SOURCES, SourceConfig
from .data import AnalysisData, build_analysis_data, load_data
from .model import build_mixture_model, build_regression_model
from .sampling import (
    DEFAULT_SAMPLER_KWARGS,
    DEFAULT_VI_KWARGS,
    LIGHT_SAMPLER_KWARGS,
    LIGHT_VI_KWARGS,
    InferenceEngine,
    PyMCEngine,
    VariationalResult,
    fit_variational,
    sample_model,
)
from .report import write_report
from .pipeline import run_analysis

__all__ = [
    "BASE_DIR",
    "DATA_DIR",
    "OUTPUT_DIR",
    "SOURCES",
    "SourceConfig",
    "AnalysisData",
    "build_analysis_data",
    "load_data",
    "build_regression_model",
    "build_mixture_model",
    "sample_model",
    "fit_variational",
    "InferenceEngine",
    "PyMCEngine",
    "VariationalResult",
    "DEFAULT_SAMPLER_KWARGS",
    "LIGHT_SAMPLER_KWARGS",
    "DEFAULT_VI_KWARGS",
    "LIGHT_VI_KWARGS",
    "write_report",
    "run_analysis",
]
