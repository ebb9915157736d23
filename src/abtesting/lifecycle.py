"""
Experiment status state machine.

draft -> running -> {stopped, completed}; stopped -> running (resume);
stopped -> completed; completed is terminal. Transitions are operator
actions; the analysis engine only records a winner.
"""

import logging
from datetime import datetime
from typing import Dict, FrozenSet, Optional

from .schema import AnalysisResult, Experiment, ExperimentStatus, InvalidTransitionError

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS: Dict[ExperimentStatus, FrozenSet[ExperimentStatus]] = {
    ExperimentStatus.DRAFT: frozenset({ExperimentStatus.RUNNING}),
    ExperimentStatus.RUNNING: frozenset({ExperimentStatus.STOPPED, ExperimentStatus.COMPLETED}),
    ExperimentStatus.STOPPED: frozenset({ExperimentStatus.RUNNING, ExperimentStatus.COMPLETED}),
    ExperimentStatus.COMPLETED: frozenset(),
}


def can_transition(current: ExperimentStatus, target: ExperimentStatus) -> bool:
    return target in ALLOWED_TRANSITIONS[current]


def transition(
    experiment: Experiment,
    target: ExperimentStatus,
    now: Optional[datetime] = None,
) -> Experiment:
    """
    Move an experiment to a new status.

    Sets start_date the first time the experiment starts running and
    end_date on completion.

    Raises:
        InvalidTransitionError: if the lifecycle does not allow the move
    """
    target = ExperimentStatus(target)
    if not can_transition(experiment.status, target):
        raise InvalidTransitionError(
            f"Experiment {experiment.id}: cannot go from {experiment.status.value} to {target.value}"
        )
    if target == ExperimentStatus.RUNNING:
        # starting requires a runnable definition
        experiment.validate()

    now = now or datetime.utcnow()
    if target == ExperimentStatus.RUNNING and experiment.start_date is None:
        experiment.start_date = now
    if target == ExperimentStatus.COMPLETED:
        experiment.end_date = now

    logger.info(f"Experiment {experiment.id}: {experiment.status.value} -> {target.value}")
    experiment.status = target
    return experiment


def accepts_conversions(experiment: Experiment) -> bool:
    """Only running experiments accept events toward the decision."""
    return experiment.status == ExperimentStatus.RUNNING


def record_winner(experiment: Experiment, result: AnalysisResult) -> Experiment:
    """
    Store the analysis winner on the experiment without changing its status.

    Only allowed while running or stopped. A result without a winner leaves
    any previously recorded winner untouched.
    """
    if experiment.status not in (ExperimentStatus.RUNNING, ExperimentStatus.STOPPED):
        raise InvalidTransitionError(
            f"Experiment {experiment.id}: winner can only be recorded while running or stopped "
            f"(status is {experiment.status.value})"
        )
    if result.experiment_id != experiment.id:
        raise ValueError(f"Analysis for {result.experiment_id} does not belong to {experiment.id}")
    if result.winning_variant_id is not None:
        experiment.winning_variant_id = result.winning_variant_id
        logger.info(f"Experiment {experiment.id}: winner recorded -> {result.winning_variant_id}")
    return experiment
