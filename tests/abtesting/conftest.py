"""Shared fixtures for engine tests."""
import random

import pytest

from src.abtesting.assignment import AssignmentStore, MemoryStorage
from src.abtesting.dom import Document
from src.abtesting.schema import ChangeSet, Experiment, ExperimentStatus, GoalType, Variant


class RecordingSink:
    """EventSink that keeps every call."""

    def __init__(self):
        self.impressions = []
        self.conversions = []

    def record_impression(self, experiment_id, variant_id, **context):
        self.impressions.append((experiment_id, variant_id))

    def record_conversion(self, experiment_id, variant_id, **context):
        self.conversions.append((experiment_id, variant_id))


class FailingSink:
    """EventSink whose network is down."""

    def record_impression(self, experiment_id, variant_id, **context):
        raise ConnectionError("sink unreachable")

    def record_conversion(self, experiment_id, variant_id, **context):
        raise ConnectionError("sink unreachable")


@pytest.fixture
def sink():
    return RecordingSink()


@pytest.fixture
def failing_sink():
    return FailingSink()


@pytest.fixture
def store():
    return AssignmentStore(MemoryStorage(), rng=random.Random(7))


@pytest.fixture
def page():
    """Landing page with a hero heading, a CTA button and a signup form."""
    doc = Document(path="/")
    hero = doc.create_element("section", id="hero", class_="hero")
    doc.create_element("h1", parent=hero, text="Grow your business", class_="headline")
    doc.create_element("button", parent=hero, text="Sign up", id="cta", class_="btn btn-primary")
    form = doc.create_element("form", id="signup")
    doc.create_element("input", parent=form, name="email", type="email")
    return doc


def _build_experiment(
    experiment_id="exp_cta",
    element_selector="#cta",
    goal_type=GoalType.CLICK,
    goal_selector=None,
    status=ExperimentStatus.RUNNING,
    variants=None,
    **kwargs,
):
    if variants is None:
        variants = [
            Variant(id="control", name="Original", is_control=True),
            Variant(id="bold", name="Bold", changes=ChangeSet.from_dict({
                "text": "Start free trial",
                "fontWeight": "bold",
                "addClass": ["btn-bold"],
            })),
        ]
    return Experiment(
        id=experiment_id,
        element_selector=element_selector,
        goal_type=goal_type,
        goal_selector=goal_selector,
        status=status,
        variants=variants,
        **kwargs,
    )


@pytest.fixture
def make_experiment():
    """Factory for a two-variant CTA experiment; keyword overrides allowed."""
    return _build_experiment
