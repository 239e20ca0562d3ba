#!/usr/bin/env python
# ---------------------------------------------------------------------------
# macro_stocks_report.py — Thin runner for the macro_stocks package
# ---------------------------------------------------------------------------
"""Stock index vs macroeconomic conditions: plain and mixture Bayesian
regressions, fitted by NUTS and ADVI, rendered to output/report.md.

Usage:
    python macro_stocks_report.py
"""
from __future__ import annotations

import logging
import sys
from pathlib import Path

# Allow running from repo root without installing the package
sys.path.insert(0, str(Path(__file__).resolve().parent / "src"))

from macro_stocks.pipeline import run_analysis


def main() -> None:
    logging.basicConfig(
        level=logging.INFO, format="%(asctime)s %(name)s %(levelname)s: %(message)s"
    )
    report = run_analysis()

    print("\n" + "=" * 72)
    print(f"macro_stocks report complete: {report}")
    print("=" * 72)


if __name__ == "__main__":
    main()
