#!/usr/bin/env python3
"""
Run full experiment demo: register -> start -> simulate traffic -> analyze -> report.

Creates artifacts/abtesting/<id>/analysis.json, variants.csv, conversion_rates.png
and results_summary.html.
"""

import logging
import sys
from pathlib import Path

ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(ROOT))

logging.basicConfig(level=logging.INFO)


def main():
    from src.abtesting.schema import ChangeSet, Experiment, ExperimentStatus, GoalType, Variant
    from src.abtesting.registry import ExperimentRegistry

    experiment_id = "demo_cta_001"
    data_dir = ROOT / "data" / "abtesting"
    artifacts_dir = ROOT / "artifacts" / "abtesting"

    registry = ExperimentRegistry(data_dir / "experiments.json")
    registry.delete(experiment_id, data_dir=str(data_dir))

    experiment = Experiment(
        id=experiment_id,
        name="Hero call-to-action",
        element_selector="#hero-cta",
        goal_type=GoalType.CLICK,
        min_sample_size=1000,
        confidence_level=0.95,
        variants=[
            Variant(id="control", name="Original", is_control=True),
            Variant(
                id="action",
                name="Action-Oriented",
                changes=ChangeSet.from_dict({"text": "Get Started Now", "fontWeight": "bold"}),
            ),
        ],
    )
    registry.save(experiment)

    print("1. Starting experiment...")
    experiment = registry.set_status(experiment_id, ExperimentStatus.RUNNING)

    print("2. Simulating visitor traffic...")
    from src.abtesting.simulate import simulate_traffic
    summary = simulate_traffic(
        experiment,
        true_rates={"control": 0.08, "action": 0.12},
        n_visitors=3000,
        registry=registry,
        data_dir=str(data_dir),
    )
    print(f"   Impressions: {summary['impressions']}  Conversions: {summary['conversions']}")

    print("3. Running analysis...")
    from src.abtesting.analyze import run_analysis
    result = run_analysis(
        experiment_id,
        registry=registry,
        record=True,
        data_dir=str(data_dir),
        artifacts_dir=str(artifacts_dir),
    )
    print(f"   {result.outcome.value}: {result.rationale}")

    print("4. Generating results summary...")
    from src.abtesting.report import render_results_summary
    render_results_summary(result.to_dict(), experiment_id, artifacts_dir=str(artifacts_dir))

    out_dir = artifacts_dir / experiment_id
    print(f"\n[OK] Demo complete. Artifacts in {out_dir}:")
    for f in sorted(out_dir.iterdir()):
        print(f"   - {f.name}")


if __name__ == "__main__":
    main()
