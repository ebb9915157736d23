"""
Visitor traffic simulator.

Drives real ExperimentRuntime instances, one fresh page load and visitor
profile per simulated visitor, and decides with a seeded RNG whether the
visitor performs the goal action given each variant's true conversion rate.
Events go through LocalEventSink (buffered, flushed once) so the analysis
engine can run on realistic data. Returns a run summary.
"""

import logging
import random
from typing import Callable, Dict, Optional

import numpy as np

from .assignment import AssignmentStore, MemoryStorage
from .config import Config
from .dom import Document, compile_selector
from .event_store import LocalEventSink
from .goals import GoalState, custom_signal_name
from .runtime import ExperimentRuntime
from .schema import Experiment, GoalType

logger = logging.getLogger(__name__)

SIMULATOR_SEED = 42

PageBuilder = Callable[[Experiment], Document]


def _create_from_selector(document: Document, selector: str, default_tag: str):
    """Create nested elements matching the first group of a simple selector."""
    chain = compile_selector(selector)[0]
    parent = None
    for tokens in chain:
        tag = next((t["tag"] for t in tokens if "tag" in t and t["tag"] != "*"), default_tag)
        attrs = {}
        classes = []
        for t in tokens:
            if "id" in t:
                attrs["id"] = t["id"]
            elif "cls" in t:
                classes.append(t["cls"])
            elif "attr" in t:
                attrs[t["attr"]] = t.get("val", "")
        if classes:
            attrs["class"] = " ".join(classes)
        parent = document.create_element(tag, parent=parent, **attrs)
    return parent


def default_page(experiment: Experiment) -> Document:
    """Landing page containing the experiment's target and goal elements."""
    document = Document(path="/")
    goal_tag = "form" if experiment.goal_type == GoalType.FORM_SUBMIT else "button"
    _create_from_selector(document, experiment.element_selector, "div")
    if experiment.goal_selector and experiment.goal_type in (GoalType.CLICK, GoalType.FORM_SUBMIT):
        if not document.query_selector_all(experiment.goal_selector):
            _create_from_selector(document, experiment.goal_selector, goal_tag)
    return document


def _perform_goal(document: Document, experiment: Experiment, n_actions: int) -> None:
    if experiment.goal_type in (GoalType.CLICK, GoalType.FORM_SUBMIT):
        selector = experiment.goal_selector or experiment.element_selector
        targets = document.query_selector_all(selector)
        if not targets:
            return
        for _ in range(n_actions):
            if experiment.goal_type == GoalType.CLICK:
                targets[0].click()
            else:
                targets[0].submit()
    elif experiment.goal_type == GoalType.PAGE_VIEW:
        document.navigate(experiment.goal_selector)
    else:
        for _ in range(n_actions):
            document.raise_signal(custom_signal_name(experiment.id))


def simulate_traffic(
    experiment: Experiment,
    true_rates: Dict[str, float],
    n_visitors: int = 2000,
    registry=None,
    page_builder: Optional[PageBuilder] = None,
    data_dir: str = Config.DATA_DIR,
    random_seed: int = SIMULATOR_SEED,
) -> Dict:
    """
    Simulate visitors hitting a page that runs the experiment.

    Args:
        experiment: Running experiment
        true_rates: variant_id -> true conversion probability
        n_visitors: Number of simulated visitors (one page load each)
        registry: Optional registry, lets the sink refuse non-running experiments
        page_builder: Builds each visitor's page; defaults to default_page
        data_dir: Event store directory
        random_seed: Seed for assignments and visitor behaviour

    Returns:
        Summary dict with per-variant impressions/conversions written
    """
    missing = {v.id for v in experiment.variants} - set(true_rates)
    if missing:
        raise ValueError(f"No true conversion rate for variants: {sorted(missing)}")

    rng = np.random.default_rng(random_seed)
    assign_rng = random.Random(random_seed)
    page_builder = page_builder or default_page
    sink = LocalEventSink(base_dir=data_dir, registry=registry, autoflush=False)

    shown: Dict[str, int] = {v.id: 0 for v in experiment.variants}
    converted: Dict[str, int] = {v.id: 0 for v in experiment.variants}

    for _ in range(n_visitors):
        document = page_builder(experiment)
        store = AssignmentStore(MemoryStorage(), rng=assign_rng)
        runtime = ExperimentRuntime(document, store, sink)
        runtime.run([experiment])

        variant_id = runtime.applied.get(experiment.id)
        if variant_id is None:
            continue
        shown[variant_id] += 1
        if rng.random() < true_rates[variant_id]:
            # repeated actions must still count once
            _perform_goal(document, experiment, n_actions=int(rng.integers(1, 4)))
            if runtime.goals.state(experiment.id) == GoalState.CONVERTED:
                converted[variant_id] += 1

    written = sink.flush()
    logger.info(
        f"Simulation complete: {n_visitors} visitors -> "
        + ", ".join(f"{v}={shown[v]}/{converted[v]}" for v in shown)
    )
    return {
        "experiment_id": experiment.id,
        "n_visitors": n_visitors,
        "impressions": shown,
        "conversions": converted,
        "events_written": written,
    }
