"""
Goal tracking: wire each goal type to a single conversion report.

Per (experiment, assigned variant) the tracker moves
not_wired -> wired -> converted. Only the wired -> converted step reports,
so each experiment emits at most one conversion per page load no matter
how often the underlying event fires.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, Optional

from .dom import Document, Event
from .schema import Experiment, GoalType

logger = logging.getLogger(__name__)

ConversionReporter = Callable[[str, str], None]

CUSTOM_SIGNAL_PREFIX = "ab_test_conversion:"


class GoalState(str, Enum):
    NOT_WIRED = "not_wired"
    WIRED = "wired"
    CONVERTED = "converted"


def custom_signal_name(experiment_id: str) -> str:
    """Signal the host application raises to convert a custom-goal experiment."""
    return f"{CUSTOM_SIGNAL_PREFIX}{experiment_id}"


def normalize_path(path: str) -> str:
    path = (path or "/").split("?", 1)[0].split("#", 1)[0]
    if len(path) > 1:
        path = path.rstrip("/")
    return path or "/"


@dataclass
class _Wiring:
    experiment_id: str
    variant_id: str
    goal_type: GoalType
    target_path: Optional[str] = None
    state: GoalState = GoalState.WIRED


class GoalTracker:
    """Attaches goal listeners for one page load."""

    def __init__(self, document: Document, report_conversion: ConversionReporter):
        self.document = document
        self.report_conversion = report_conversion
        self._wirings: Dict[str, _Wiring] = {}
        self._navigation_listener_attached = False

    def state(self, experiment_id: str) -> GoalState:
        wiring = self._wirings.get(experiment_id)
        return wiring.state if wiring else GoalState.NOT_WIRED

    def wire(self, experiment: Experiment, variant_id: str) -> GoalState:
        """
        Attach listeners for the experiment's goal. Wiring an experiment
        that is already wired in this page load is a no-op.
        """
        existing = self._wirings.get(experiment.id)
        if existing is not None:
            return existing.state

        wiring = _Wiring(
            experiment_id=experiment.id,
            variant_id=variant_id,
            goal_type=experiment.goal_type,
        )
        self._wirings[experiment.id] = wiring

        if experiment.goal_type in (GoalType.CLICK, GoalType.FORM_SUBMIT):
            self._wire_element_goal(experiment, wiring)
        elif experiment.goal_type == GoalType.PAGE_VIEW:
            wiring.target_path = normalize_path(experiment.goal_selector or "")
            self._ensure_navigation_listener()
            self._check_page_view(wiring)
        elif experiment.goal_type == GoalType.CUSTOM:
            self.document.on_signal(
                custom_signal_name(experiment.id),
                lambda event, exp_id=experiment.id: self._convert(exp_id),
            )
        return wiring.state

    def reevaluate_page_views(self) -> None:
        """Re-check every page_view goal against the current path."""
        for wiring in list(self._wirings.values()):
            if wiring.goal_type == GoalType.PAGE_VIEW:
                self._check_page_view(wiring)

    def _wire_element_goal(self, experiment: Experiment, wiring: _Wiring) -> None:
        selector = experiment.goal_selector or experiment.element_selector
        event_type = "click" if experiment.goal_type == GoalType.CLICK else "submit"
        elements = self.document.query_selector_all(selector)
        if not elements:
            logger.warning(
                f"Goal selector {selector!r} for {experiment.id} matched nothing; no conversion can fire"
            )
            return
        handler = self._make_handler(experiment.id)
        for element in elements:
            element.add_event_listener(event_type, handler)

    def _make_handler(self, experiment_id: str) -> Callable[[Event], None]:
        def handler(event: Event) -> None:
            self._convert(experiment_id)
        return handler

    def _ensure_navigation_listener(self) -> None:
        if not self._navigation_listener_attached:
            self.document.add_event_listener("navigation", lambda event: self.reevaluate_page_views())
            self._navigation_listener_attached = True

    def _check_page_view(self, wiring: _Wiring) -> None:
        if wiring.state == GoalState.WIRED and normalize_path(self.document.path) == wiring.target_path:
            self._convert(wiring.experiment_id)

    def _convert(self, experiment_id: str) -> None:
        wiring = self._wirings.get(experiment_id)
        if wiring is None or wiring.state != GoalState.WIRED:
            return
        wiring.state = GoalState.CONVERTED
        logger.info(f"Conversion for {experiment_id} ({wiring.goal_type.value}) -> {wiring.variant_id}")
        self.report_conversion(experiment_id, wiring.variant_id)
