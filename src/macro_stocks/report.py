# ---------------------------------------------------------------------------
# macro_stocks.report — Narrated Markdown report
# ---------------------------------------------------------------------------
"""Render the analysis as a single Markdown document.

The narrative is generated from the fitted objects: which coefficients have
intervals excluding zero, how the samplers behaved, and how far the
variational fits can be trusted.  Convergence problems are described, never
raised.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from pathlib import Path

import arviz as az
import numpy as np
import polars as pl

from .config import (
    BETA_PRIOR_SIGMA,
    HDI_PROB,
    N_COMPONENTS,
    OUTPUT_DIR,
    SIGMA_PRIOR_BETA,
    SOURCES,
    SourceConfig,
)
from .data import AnalysisData
from .diagnostics import (
    ESS_MIN,
    RHAT_MAX,
    coefficient_table,
    count_divergences,
    model_var_names,
    pareto_k_verdict,
)
from .sampling import VariationalResult


@dataclass
class FitSummary:
    """Everything the report needs about one fitted posterior."""

    label: str
    model_name: str  # 'regression' | 'mixture'
    method: str  # 'nuts' | 'advi'
    coefficients: pl.DataFrame
    weights: np.ndarray | None = None
    divergences: int | None = None
    max_rhat: float | None = None
    min_ess: float | None = None
    pareto_k: float | None = None
    converged: bool | None = None
    ppc_pvalues: dict[str, float] | None = None
    figures: list[Path] = field(default_factory=list)


def summarize_mcmc(
    label: str,
    model_name: str,
    idata: az.InferenceData,
    predictor_names: Sequence[str],
) -> FitSummary:
    summary = az.summary(idata, var_names=model_var_names(idata))
    rhat = summary["r_hat"].dropna()
    ess = summary["ess_bulk"].dropna()
    return FitSummary(
        label=label,
        model_name=model_name,
        method="nuts",
        coefficients=coefficient_table(idata, predictor_names),
        weights=_mixing_weights(idata),
        divergences=count_divergences(idata),
        max_rhat=float(rhat.max()) if len(rhat) else None,
        min_ess=float(ess.min()) if len(ess) else None,
    )


def summarize_variational(
    label: str,
    model_name: str,
    result: VariationalResult,
    predictor_names: Sequence[str],
) -> FitSummary:
    return FitSummary(
        label=label,
        model_name=model_name,
        method=result.method,
        coefficients=coefficient_table(result.idata, predictor_names),
        weights=_mixing_weights(result.idata),
        pareto_k=result.pareto_k,
        converged=result.converged,
    )


def _mixing_weights(idata: az.InferenceData) -> np.ndarray | None:
    if "w" not in idata.posterior:
        return None
    return idata.posterior["w"].values.mean(axis=(0, 1))


# =========================================================================
# Narrative
# =========================================================================


def narrate_coefficients(table: pl.DataFrame) -> str:
    """One paragraph per component naming the clearly signed coefficients."""
    pct = int(HDI_PROB * 100)
    paragraphs: list[str] = []
    components = table["component"].unique().sort().to_list()
    for k in components:
        rows = table.filter(pl.col("component") == k)
        prefix = f"In component {k}, " if len(components) > 1 else ""
        signed = rows.filter(pl.col("excludes_zero"))
        if len(signed) == 0:
            paragraphs.append(
                f"{prefix}no coefficient has a {pct}% interval that excludes zero; "
                "the de-trended index is not clearly associated with any single "
                "de-trended predictor."
            )
            continue
        parts = [
            f"`{r['predictor']}` ({'positive' if r['mean'] > 0 else 'negative'}, "
            f"mean {r['mean']:+.2f})"
            for r in signed.iter_rows(named=True)
        ]
        others = len(rows) - len(signed)
        paragraphs.append(
            f"{prefix}the {pct}% interval excludes zero for {', '.join(parts)}. "
            f"The remaining {others} "
            + ("coefficient straddles zero." if others == 1 else "coefficients straddle zero.")
        )
    return "\n\n".join(paragraphs)


def narrate_diagnostics(fit: FitSummary) -> str:
    if fit.method == "nuts":
        sentences = [f"NUTS produced {fit.divergences} divergent transitions."]
        if fit.max_rhat is not None:
            if fit.max_rhat > RHAT_MAX:
                sentences.append(
                    f"The largest R-hat is {fit.max_rhat:.3f}, above {RHAT_MAX}: the "
                    "chains disagree and the estimates should not be relied on."
                )
            else:
                sentences.append(f"All R-hat values are at most {fit.max_rhat:.3f}.")
        if fit.min_ess is not None:
            adequacy = "adequate" if fit.min_ess >= ESS_MIN else "low"
            sentences.append(f"The smallest bulk ESS is {fit.min_ess:.0f} ({adequacy}).")
        if fit.model_name == "mixture":
            sentences.append(
                "Mixture components are exchangeable, so disagreement between "
                "chains can reflect label switching rather than a failure to "
                "explore the posterior."
            )
        return " ".join(sentences)

    sentences = [
        "The optimiser "
        + ("converged" if fit.converged else "stopped at its iteration cap without converging")
        + "."
    ]
    verdict = pareto_k_verdict(fit.pareto_k)
    if fit.pareto_k is None:
        sentences.append("Importance resampling was not applied.")
    else:
        sentences.append(
            f"The Pareto k-hat of the importance weights is {fit.pareto_k:.2f} ({verdict})."
        )
        if verdict == "bad":
            sentences.append(
                "The variational approximation is a poor stand-in for the "
                "posterior; compare against the NUTS results before drawing "
                "conclusions."
            )
    return " ".join(sentences)


# =========================================================================
# Markdown rendering
# =========================================================================


def _markdown_table(headers: Sequence[str], rows: Sequence[Sequence[object]]) -> str:
    lines = [
        "| " + " | ".join(headers) + " |",
        "|" + "|".join("---" for _ in headers) + "|",
    ]
    for row in rows:
        lines.append("| " + " | ".join(str(c) for c in row) + " |")
    return "\n".join(lines)


def _sources_section(sources: list[SourceConfig]) -> str:
    rows = [
        (cfg.name, cfg.file, cfg.role, ", ".join(cfg.output_columns), cfg.trailing_trim)
        for cfg in sources
    ]
    return _markdown_table(["Source", "File", "Role", "Columns", "Trailing rows dropped"], rows)


def _model_section() -> str:
    return f"""### Model A: Bayesian linear regression

```
y_t   ~ Normal(x_t · β, σ)
β_j   ~ Normal(0, {BETA_PRIOR_SIGMA:g})
σ     ~ HalfCauchy(0, {SIGMA_PRIOR_BETA:g})
```

### Model B: {N_COMPONENTS}-component mixture regression

```
y_t    ~ Σ_k w_k · Normal(x_t · β_k, σ_k)
β_k,j  ~ Normal(0, {BETA_PRIOR_SIGMA:g})
σ_k    ~ HalfCauchy(0, {SIGMA_PRIOR_BETA:g})
w      ~ Dirichlet({", ".join(["1"] * N_COMPONENTS)})
```

Each observation's log-likelihood is the log-sum-exp over components of
`log w_k + log Normal(y_t | x_t · β_k, σ_k)`. Both models are fitted with
NUTS and with mean-field ADVI followed by Pareto-smoothed importance
resampling."""


def _fit_section(fit: FitSummary, output_dir: Path) -> str:
    out = [f"### {fit.label}", "", narrate_coefficients(fit.coefficients), ""]
    if fit.weights is not None:
        w = ", ".join(f"{x:.2f}" for x in fit.weights)
        out += [f"Posterior mean mixing weights: {w}.", ""]
    out += [narrate_diagnostics(fit), ""]

    pct = int(HDI_PROB * 100)
    rows = [
        (
            r["component"],
            f"`{r['predictor']}`",
            f"{r['mean']:+.3f}",
            f"{r['sd']:.3f}",
            f"[{r['lower']:+.3f}, {r['upper']:+.3f}]",
        )
        for r in fit.coefficients.iter_rows(named=True)
    ]
    out += [
        _markdown_table(["Component", "Predictor", "Mean", "SD", f"{pct}% interval"], rows),
        "",
    ]
    if fit.ppc_pvalues:
        pv = ", ".join(f"{k} p = {v:.2f}" for k, v in fit.ppc_pvalues.items())
        out += [f"Posterior predictive checks: {pv}.", ""]
    for fig in fit.figures:
        rel = _relative(fig, output_dir)
        out += [f"![{fit.label}: {Path(rel).stem}]({rel})", ""]
    return "\n".join(out)


def _comparison_section(comparison) -> str:
    if comparison is None:
        return "PSIS-LOO comparison was not available for these fits."
    rows = [
        (
            name,
            int(r["rank"]),
            f"{r['elpd_loo']:.1f}",
            f"{r['p_loo']:.1f}",
            f"{r['elpd_diff']:.1f}",
            f"{r['dse']:.1f}",
            f"{r['weight']:.2f}",
        )
        for name, r in comparison.iterrows()
    ]
    best = comparison.index[0]
    table = _markdown_table(
        ["Model", "Rank", "ELPD LOO", "p_loo", "ΔELPD", "SE(Δ)", "Weight"], rows
    )
    return (
        f"{table}\n\n`{best}` has the highest expected log predictive density. "
        "Differences smaller than about two standard errors are not decisive."
    )


def _relative(path: Path, base: Path) -> str:
    try:
        return str(Path(path).relative_to(base))
    except ValueError:
        return str(path)


def write_report(
    data: AnalysisData,
    fits: list[FitSummary],
    comparison=None,
    figures: Sequence[Path] = (),
    sources: list[SourceConfig] | None = None,
    output_dir: Path | None = None,
) -> Path:
    """Write ``report.md`` under *output_dir* and return its path."""
    if output_dir is None:
        output_dir = OUTPUT_DIR
    if sources is None:
        sources = SOURCES

    periods = data.periods
    trend_rows = [
        (f"`{col}`", f"{fit.slope:+.5f}", f"{fit.resid_std:.4f}")
        for col, fit in data.trends.items()
    ]

    sections = [
        "# Stock index and macroeconomic conditions",
        "",
        "This report relates the de-trended log level of a stock index to "
        f"{len(data.predictor_names)} de-trended macroeconomic predictors over "
        f"{data.n_obs} months ({periods[0]} to {periods[-1]}). Two Bayesian "
        f"regressions are fitted, a single regression and a {N_COMPONENTS}-component "
        "mixture, each by MCMC and by variational inference.",
        "",
        "## Data",
        "",
        "Every source is trimmed to the most recent window covered by all of "
        "them. A fixed number of trailing rows is first dropped from some "
        "files to remove provisional or incomplete releases.",
        "",
        _sources_section(sources),
        "",
        "## Preprocessing",
        "",
        "Each series is regressed on time by ordinary least squares and replaced "
        "by its standardised residual (mean 0, standard deviation 1). The "
        "response is the log closing price treated the same way.",
        "",
        _markdown_table(["Series", "Trend slope (per month)", "Residual SD"], trend_rows),
        "",
    ]
    for fig in figures:
        rel = _relative(fig, output_dir)
        sections += [f"![{Path(rel).stem}]({rel})", ""]

    sections += ["## Models", "", _model_section(), "", "## Results", ""]
    for fit in fits:
        sections += [_fit_section(fit, output_dir), ""]

    sections += ["## Model comparison", "", _comparison_section(comparison), ""]
    sections += [
        "## Caveats",
        "",
        "Series are paired by position after trimming; a shift between "
        "sources would pair the wrong months without failing. Convergence "
        "diagnostics are reported above but do not gate the results.",
        "",
    ]

    fpath = output_dir / "report.md"
    fpath.write_text("\n".join(sections), encoding="utf-8")
    print(f"Saved: {fpath}")
    return fpath
