"""
Experiment runtime: one instance per page load.

For every running experiment: resolve target elements, resolve or create
the visitor's assignment, apply the variant, record one impression and
wire goal tracking. Each experiment runs inside its own error boundary so a
broken definition or a failing sink never affects other experiments or the
host page.
"""

import logging
import uuid
from typing import Dict, Iterable, List, Optional

from .applier import apply_changes
from .assignment import AssignmentStore
from .dom import Document, compile_selector
from .goals import GoalTracker
from .interfaces import EventSink, ExperimentStore
from .schema import Experiment, ExperimentStatus, GoalType

logger = logging.getLogger(__name__)


class ExperimentRuntime:
    """
    Applies active experiments to a page and wires their goals.

    ``run`` may be called again on client-side navigation: experiments
    already applied in this page load are neither re-applied nor re-counted,
    while page_view goals are re-evaluated against the new path.
    """

    def __init__(
        self,
        document: Document,
        assignment_store: AssignmentStore,
        event_sink: EventSink,
        page_load_id: Optional[str] = None,
    ):
        self.document = document
        self.assignments = assignment_store
        self.sink = event_sink
        self.page_load_id = page_load_id or uuid.uuid4().hex
        self.visitor_id = assignment_store.visitor_id
        self.applied: Dict[str, str] = {}
        self.skipped: Dict[str, str] = {}
        self.goals = GoalTracker(document, self._report_conversion)

    def load_and_run(self, store: ExperimentStore) -> Dict[str, str]:
        """Fetch active experiments and run them. A failed fetch runs nothing."""
        try:
            experiments = store.get_active_experiments()
        except Exception as e:
            logger.error(f"Error loading A/B tests: {e}")
            experiments = []
        return self.run(experiments)

    def run(self, experiments: Iterable[Experiment]) -> Dict[str, str]:
        """
        Process experiments for this page load.

        Returns:
            Dict of experiment_id -> variant_id applied by this call
        """
        newly_applied: Dict[str, str] = {}
        for experiment in experiments:
            try:
                variant_id = self._run_one(experiment)
            except Exception as e:
                logger.error(f"Error applying test {experiment.id}: {e}")
                if experiment.id in self.applied:
                    newly_applied[experiment.id] = self.applied[experiment.id]
                else:
                    self.skipped[experiment.id] = f"error: {e}"
                continue
            if variant_id is not None:
                newly_applied[experiment.id] = variant_id
        self.goals.reevaluate_page_views()
        return newly_applied

    def handle_navigation(self, path: str, experiments: Optional[Iterable[Experiment]] = None) -> Dict[str, str]:
        """Client-side route change: update the path, then pick up any newly matching experiments."""
        self.document.navigate(path)
        return self.run(experiments or [])

    def _run_one(self, experiment: Experiment) -> Optional[str]:
        if experiment.id in self.applied:
            return None
        if experiment.status != ExperimentStatus.RUNNING:
            logger.debug(f"Skipping {experiment.id}: status is {experiment.status.value}")
            self.skipped[experiment.id] = f"status {experiment.status.value}"
            return None

        experiment.validate()
        if experiment.goal_type in (GoalType.CLICK, GoalType.FORM_SUBMIT) and experiment.goal_selector:
            # a goal that cannot be wired must not leave an impression behind
            compile_selector(experiment.goal_selector)

        elements = self.document.query_selector_all(experiment.element_selector)
        if not elements:
            logger.warning(f"No elements found for selector: {experiment.element_selector}")
            self.skipped[experiment.id] = "selector miss"
            return None

        variant_id = self.assignments.get_or_assign(experiment.id, experiment.variants)
        variant = experiment.variant(variant_id)

        apply_changes(elements, variant.changes)
        self.applied[experiment.id] = variant_id
        self.skipped.pop(experiment.id, None)

        # impression is issued before goals are wired
        self._report_impression(experiment.id, variant_id)
        self.goals.wire(experiment, variant_id)
        return variant_id

    def _context(self) -> Dict[str, str]:
        return {"visitor_id": self.visitor_id, "page_load_id": self.page_load_id}

    def _report_impression(self, experiment_id: str, variant_id: str) -> None:
        try:
            self.sink.record_impression(experiment_id, variant_id, **self._context())
        except Exception as e:
            logger.error(f"Error recording impression for {experiment_id}/{variant_id}: {e}")

    def _report_conversion(self, experiment_id: str, variant_id: str) -> None:
        try:
            self.sink.record_conversion(experiment_id, variant_id, **self._context())
        except Exception as e:
            logger.error(f"Error recording conversion for {experiment_id}/{variant_id}: {e}")

    @property
    def active_experiment_ids(self) -> List[str]:
        return list(self.applied)
