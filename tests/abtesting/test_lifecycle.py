"""Tests for the experiment status state machine."""
from datetime import datetime

import pytest
from src.abtesting.lifecycle import accepts_conversions, can_transition, record_winner, transition
from src.abtesting.schema import (
    AnalysisOutcome,
    AnalysisResult,
    ExperimentStatus,
    InvalidTransitionError,
    MalformedExperimentError,
)

DRAFT = ExperimentStatus.DRAFT
RUNNING = ExperimentStatus.RUNNING
STOPPED = ExperimentStatus.STOPPED
COMPLETED = ExperimentStatus.COMPLETED


def _result(experiment_id, winner=None):
    return AnalysisResult(
        experiment_id=experiment_id,
        outcome=AnalysisOutcome.WINNER if winner else AnalysisOutcome.NO_SIGNIFICANT_DIFFERENCE,
        rationale="",
        confidence_level=0.95,
        min_sample_size=100,
        winning_variant_id=winner,
    )


def test_allowed_transitions():
    assert can_transition(DRAFT, RUNNING)
    assert can_transition(RUNNING, STOPPED)
    assert can_transition(STOPPED, RUNNING)
    assert can_transition(STOPPED, COMPLETED)
    assert not can_transition(DRAFT, COMPLETED)
    assert not can_transition(COMPLETED, RUNNING)


def test_start_sets_dates(make_experiment):
    """Start date is set once; resuming keeps it; completion sets end date."""
    exp = make_experiment(status=DRAFT)
    t0 = datetime(2024, 1, 1)
    transition(exp, RUNNING, now=t0)
    assert exp.status == RUNNING
    assert exp.start_date == t0

    transition(exp, STOPPED, now=datetime(2024, 1, 5))
    transition(exp, RUNNING, now=datetime(2024, 1, 6))
    assert exp.start_date == t0

    transition(exp, COMPLETED, now=datetime(2024, 2, 1))
    assert exp.end_date == datetime(2024, 2, 1)


def test_completed_is_terminal(make_experiment):
    exp = make_experiment(status=COMPLETED)
    with pytest.raises(InvalidTransitionError):
        transition(exp, RUNNING)
    assert exp.status == COMPLETED


def test_cannot_start_malformed(make_experiment):
    """Starting validates the definition."""
    exp = make_experiment(status=DRAFT, variants=[])
    with pytest.raises(MalformedExperimentError):
        transition(exp, RUNNING)
    assert exp.status == DRAFT


def test_only_running_accepts_conversions(make_experiment):
    assert accepts_conversions(make_experiment(status=RUNNING))
    for status in (DRAFT, STOPPED, COMPLETED):
        assert not accepts_conversions(make_experiment(status=status))


def test_record_winner_keeps_status(make_experiment):
    """Recording a winner never changes status."""
    exp = make_experiment(status=RUNNING)
    record_winner(exp, _result(exp.id, winner="bold"))
    assert exp.winning_variant_id == "bold"
    assert exp.status == RUNNING

    record_winner(exp, _result(exp.id))
    assert exp.winning_variant_id == "bold"


def test_record_winner_rules(make_experiment):
    exp = make_experiment(status=DRAFT)
    with pytest.raises(InvalidTransitionError):
        record_winner(exp, _result(exp.id, winner="bold"))
    running = make_experiment(status=RUNNING)
    with pytest.raises(ValueError):
        record_winner(running, _result("other", winner="bold"))
