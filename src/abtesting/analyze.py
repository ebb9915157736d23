"""
Experiment analysis entrypoint.

Input: an experiment with aggregated impressions/conversions per variant.
Output: AnalysisResult (advisory winner or a reason not to decide) and, via
run_analysis, analysis.json + variants.csv + a rate chart saved to
artifacts/abtesting/<experiment_id>/.
"""

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import List, Optional

import pandas as pd

from .config import Config
from .event_store import variant_counts
from .lifecycle import record_winner
from .registry import ExperimentRegistry
from .schema import (
    AnalysisOutcome,
    AnalysisResult,
    Experiment,
    VariantStats,
)
from .stats import check_srm, proportions_z_test, rate_interval, sample_size_proportion

logger = logging.getLogger(__name__)

DEFAULT_ARTIFACTS_DIR = Config.ARTIFACTS_DIR
DEFAULT_DATA_DIR = Config.DATA_DIR


def _variant_stats(experiment: Experiment) -> List[VariantStats]:
    control = experiment.control_variant
    control_rate = control.conversion_rate if control else None
    out = []
    for v in experiment.variants:
        rate = v.conversion_rate
        ci_low, ci_high = rate_interval(v.impressions, v.conversions, experiment.confidence_level)
        rel = None
        if v is not control and rate is not None and control_rate:
            rel = (rate - control_rate) / control_rate * 100
        out.append(VariantStats(
            variant_id=v.id,
            name=v.name,
            impressions=v.impressions,
            conversions=v.conversions,
            conversion_rate=rate,
            is_control=v is control,
            rate_ci_low=ci_low if rate is not None else None,
            rate_ci_high=ci_high if rate is not None else None,
            relative_improvement=rel,
        ))
    return out


def _required_sample_size(experiment: Experiment, best_id: Optional[str], alpha: float) -> Optional[int]:
    """Per-variant sample needed to confirm the observed best-vs-control lift."""
    control = experiment.control_variant
    best = experiment.variant(best_id) if best_id else None
    if control is None or best is None or best is control:
        return None
    c_rate, b_rate = control.conversion_rate, best.conversion_rate
    if c_rate is None or b_rate is None or not 0 < c_rate < 1 or b_rate == c_rate:
        return None
    return sample_size_proportion(c_rate, (b_rate - c_rate) / c_rate, alpha=alpha)


def analyze(experiment: Experiment) -> AnalysisResult:
    """
    Decide whether one variant is statistically better than all others.

    Every variant needs at least min_sample_size impressions; a variant with
    zero impressions is never treated as a 0% baseline and blocks a
    decision. The best variant by conversion rate is compared against each
    other variant with a two-proportion z-test at alpha = 1 - confidence
    level, Bonferroni-adjusted over the k - 1 comparisons. A winner is only
    declared when it beats every other variant.

    Returns:
        AnalysisResult; never changes the experiment's status
    """
    experiment.validate()
    alpha = 1 - experiment.confidence_level
    variant_stats = _variant_stats(experiment)

    result = AnalysisResult(
        experiment_id=experiment.id,
        outcome=AnalysisOutcome.INSUFFICIENT_DATA,
        rationale="",
        confidence_level=experiment.confidence_level,
        min_sample_size=experiment.min_sample_size,
        variant_stats=variant_stats,
    )

    impressions = [v.impressions for v in experiment.variants]
    if all(n > 0 for n in impressions):
        srm_passed, _, srm_p = check_srm(impressions, [v.weight for v in experiment.variants])
        result.srm_passed = srm_passed
        result.srm_p_value = srm_p

    empty = [v.id for v in experiment.variants if v.impressions == 0]
    if empty:
        result.needs_more_data = True
        result.rationale = f"Insufficient data: no impressions yet for {', '.join(empty)}."
        return result

    below = [v.id for v in experiment.variants if v.impressions < experiment.min_sample_size]
    if below:
        result.needs_more_data = True
        result.rationale = (
            f"Insufficient data: {', '.join(below)} below the minimum sample size "
            f"of {experiment.min_sample_size} impressions per variant."
        )
        return result

    # max() keeps the first variant in display order on ties
    best = max(experiment.variants, key=lambda v: v.conversion_rate)
    result.best_variant_id = best.id

    if len(experiment.variants) < 2:
        result.outcome = AnalysisOutcome.NO_SIGNIFICANT_DIFFERENCE
        result.rationale = "Only one variant; nothing to compare against."
        return result

    n_comparisons = len(experiment.variants) - 1
    adjusted_alpha = alpha / n_comparisons
    beaten = []
    by_id = {s.variant_id: s for s in variant_stats}
    for other in experiment.variants:
        if other is best:
            continue
        lift, _, p_val, ci_lo, ci_hi = proportions_z_test(
            other.impressions, other.conversions,
            best.impressions, best.conversions,
            ci_level=1 - adjusted_alpha,
        )
        s = by_id[other.id]
        s.p_value = p_val
        s.diff_ci_low = ci_lo
        s.diff_ci_high = ci_hi
        s.significant = p_val < adjusted_alpha and lift > 0
        if s.significant:
            beaten.append(other.id)

    by_id[best.id].significant = len(beaten) == n_comparisons
    result.required_sample_size = _required_sample_size(experiment, best.id, adjusted_alpha)

    if len(beaten) == n_comparisons:
        result.outcome = AnalysisOutcome.WINNER
        result.winning_variant_id = best.id
        result.rationale = (
            f"{best.id} converts at {best.conversion_rate:.2%} and beats every other variant "
            f"at {experiment.confidence_level:.0%} confidence."
        )
    else:
        tied = [v.id for v in experiment.variants if v is not best and v.id not in beaten]
        result.outcome = AnalysisOutcome.NO_SIGNIFICANT_DIFFERENCE
        result.rationale = (
            f"No significant difference: {best.id} is not distinguishable from "
            f"{', '.join(tied)} at {experiment.confidence_level:.0%} confidence."
        )

    if not result.srm_passed:
        result.rationale += (
            f" Warning: sample ratio mismatch (p={result.srm_p_value:.4f}); "
            "check assignment and tracking before acting."
        )
    return result


def run_analysis(
    experiment_id: str,
    registry: Optional[ExperimentRegistry] = None,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    record: bool = False,
    data_dir: str = DEFAULT_DATA_DIR,
    artifacts_dir: str = DEFAULT_ARTIFACTS_DIR,
) -> AnalysisResult:
    """
    Run full experiment analysis from stored events.

    Args:
        experiment_id: Experiment ID
        registry: Registry holding the definition
        start_date: Start of analysis window
        end_date: End of analysis window
        record: Store a declared winner on the experiment (status unchanged)
        data_dir: Base event data directory
        artifacts_dir: Base artifacts directory

    Returns:
        AnalysisResult
    """
    registry = registry or ExperimentRegistry()
    experiment = registry.get(experiment_id)

    counts = variant_counts(experiment_id, start_date, end_date, base_dir=data_dir)
    for variant in experiment.variants:
        variant.impressions, variant.conversions = counts.get(variant.id, (0, 0))
    unknown = set(counts) - {v.id for v in experiment.variants}
    if unknown:
        logger.warning(f"Events for unknown variants ignored: {sorted(unknown)}")

    result = analyze(experiment)

    if record and result.has_winner:
        registry.save(record_winner(experiment, result))

    out_dir = Path(artifacts_dir) / experiment_id
    out_dir.mkdir(parents=True, exist_ok=True)

    with open(out_dir / "analysis.json", "w") as f:
        json.dump(result.to_dict(), f, indent=2)

    pd.DataFrame(result.to_dict()["variant_stats"]).to_csv(out_dir / "variants.csv", index=False)

    _save_plots(result, out_dir)
    logger.info(f"Analysis saved to {out_dir}")
    return result


def _save_plots(result: AnalysisResult, out_dir: Path) -> None:
    """Conversion rate per variant with confidence intervals."""
    import matplotlib
    matplotlib.use("Agg")
    import matplotlib.pyplot as plt

    rated = [s for s in result.variant_stats if s.conversion_rate is not None]
    if not rated:
        return

    fig, ax = plt.subplots(figsize=(6, 4))
    names = [s.name or s.variant_id for s in rated]
    rates = [s.conversion_rate for s in rated]
    errs = [
        [s.conversion_rate - s.rate_ci_low for s in rated],
        [s.rate_ci_high - s.conversion_rate for s in rated],
    ]
    colors = ["#2ecc71" if s.variant_id == result.winning_variant_id else "#3498db" for s in rated]
    ax.bar(names, rates, color=colors, yerr=errs, capsize=5)
    ax.set_ylabel("Conversion rate")
    ax.set_title(f"Experiment {result.experiment_id}")
    plt.tight_layout()
    plt.savefig(out_dir / "conversion_rates.png", dpi=100)
    plt.close(fig)
